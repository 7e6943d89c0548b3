"""
In-process identity provider and document store.

Both follow the ``studyspend.gateway`` protocols and the error codes of the
hosted backend, so the app and the tests can run without network access.
Live queries are delivered through an ``EventBus``, one channel per owner
and period key, each with its own monotonic snapshot sequence.
"""

import json
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple, Union
from uuid import uuid4

from studyspend.domain import Expense, ExpenseDraft, Snapshot, User, month_key
from studyspend.errors import SyncError
from studyspend.events import SNAPSHOT, Event, EventBus, channel
from studyspend.gateway import AuthStateCallback, SnapshotCallback, Unsubscribe
from studyspend.logger import setup_logger
from studyspend.period import Period, UserSettings
from studyspend.validation import MIN_PASSWORD_LENGTH, validate_draft

logger = setup_logger(__name__)

Clock = Callable[[], datetime]


def _normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def _check_email(email: str) -> None:
    local, _, domain = email.partition("@")
    if not local or "." not in domain:
        raise SyncError("auth/invalid-email")


class InMemoryIdentityProvider:
    def __init__(self, clock: Clock = datetime.now):
        self._clock = clock
        self._accounts: Dict[str, Tuple[str, User]] = {}
        self._oauth_profiles: Dict[str, User] = {}
        self._callbacks: List[AuthStateCallback] = []
        self._current: Optional[User] = None
        self._next_failure: Optional[str] = None

    def add_account(self, email: str, password: str, display_name: str = "", uid: Optional[str] = None) -> User:
        email = _normalize_email(email)
        user = User(
            uid=uid or uuid4().hex,
            email=email,
            display_name=display_name,
            created_at=self._clock(),
        )
        self._accounts[email] = (password, user)
        return user

    def register_oauth_profile(self, provider: str, email: str, display_name: str = "", photo_url: Optional[str] = None) -> User:
        user = User(
            uid=uuid4().hex,
            email=_normalize_email(email),
            display_name=display_name,
            photo_url=photo_url,
            created_at=self._clock(),
        )
        self._oauth_profiles[provider] = user
        return user

    @property
    def oauth_providers(self) -> Tuple[str, ...]:
        return tuple(self._oauth_profiles)

    def fail_next(self, code: str) -> None:
        """Make the next sign-in style call raise ``SyncError(code)``."""
        self._next_failure = code

    def _raise_pending_failure(self) -> None:
        if self._next_failure is not None:
            code, self._next_failure = self._next_failure, None
            raise SyncError(code)

    async def _set_current(self, user: Optional[User]) -> None:
        self._current = user
        for callback in list(self._callbacks):
            await callback(user)

    async def sign_in(self, email: str, password: str) -> User:
        self._raise_pending_failure()
        email = _normalize_email(email)
        _check_email(email)
        account = self._accounts.get(email)
        if account is None:
            raise SyncError("auth/user-not-found")
        stored_password, user = account
        if stored_password != password:
            raise SyncError("auth/wrong-password")
        await self._set_current(user)
        return user

    async def sign_up(self, email: str, password: str, display_name: str) -> User:
        self._raise_pending_failure()
        email = _normalize_email(email)
        _check_email(email)
        if email in self._accounts:
            raise SyncError("auth/email-already-in-use")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise SyncError("auth/weak-password")
        user = self.add_account(email, password, display_name)
        await self._set_current(user)
        return user

    async def sign_in_with_oauth(self, provider: str) -> User:
        self._raise_pending_failure()
        user = self._oauth_profiles.get(provider)
        if user is None:
            raise SyncError("auth/operation-not-allowed")
        await self._set_current(user)
        return user

    async def sign_out(self) -> None:
        await self._set_current(None)

    async def current_user(self) -> Optional[User]:
        return self._current

    def on_auth_state_change(self, callback: AuthStateCallback) -> Unsubscribe:
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe


class _BusSubscription:
    def __init__(self, bus: EventBus, name: str, handler):
        self._bus = bus
        self._name = name
        self._handler = handler
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self._bus.unsubscribe(self._name, self._handler)
            self.active = False


class InMemoryDocumentStore:
    def __init__(self, bus: Optional[EventBus] = None):
        self._bus = bus or EventBus()
        self._records: Dict[Tuple[str, str], Dict[str, Expense]] = {}
        self._sequences: Dict[Tuple[str, str], int] = {}
        self._settings: Dict[str, UserSettings] = {}
        self._next_failure: Optional[str] = None

    def fail_next(self, code: str) -> None:
        self._next_failure = code

    def _raise_pending_failure(self) -> None:
        if self._next_failure is not None:
            code, self._next_failure = self._next_failure, None
            raise SyncError(code)

    def _snapshot(self, owner_id: str, period_key: str) -> Snapshot:
        key = (owner_id, period_key)
        return Snapshot(
            period_key=period_key,
            sequence=self._sequences.get(key, 0),
            records=tuple(self._records.get(key, {}).values()),
        )

    def _publish(self, owner_id: str, period_key: str) -> None:
        key = (owner_id, period_key)
        self._sequences[key] = self._sequences.get(key, 0) + 1
        snapshot = self._snapshot(owner_id, period_key)
        self._bus.publish(channel(SNAPSHOT, owner_id, period_key), {"snapshot": snapshot})

    def subscribe(self, owner_id: str, period_key: str, callback: SnapshotCallback) -> _BusSubscription:
        def handler(event: Event, payload: dict) -> None:
            callback(payload["snapshot"])

        name = channel(SNAPSHOT, owner_id, period_key)
        self._bus.subscribe(name, handler)
        subscription = _BusSubscription(self._bus, name, handler)
        callback(self._snapshot(owner_id, period_key))
        return subscription

    def put(self, owner_id: str, period_key: str, record: Expense) -> Expense:
        """Store a record without notifying subscribers (used for seeding)."""
        if record.id is None:
            record = record.with_id(uuid4().hex)
        self._records.setdefault((owner_id, period_key), {})[record.id] = record
        return record

    async def create(self, owner_id: str, period_key: str, draft: Expense) -> str:
        self._raise_pending_failure()
        record = self.put(owner_id, period_key, replace(draft, id=None))
        logger.debug("Stored expense %s for %s/%s", record.id, owner_id, period_key)
        self._publish(owner_id, period_key)
        return record.id

    async def delete_all(self, owner_id: str, period_key: str) -> None:
        self._raise_pending_failure()
        removed = self._records.pop((owner_id, period_key), {})
        logger.debug("Deleted %d expenses for %s/%s", len(removed), owner_id, period_key)
        self._publish(owner_id, period_key)

    def put_settings(self, owner_id: str, settings: UserSettings) -> None:
        self._settings[owner_id] = settings

    async def get_user_settings(self, owner_id: str) -> Optional[UserSettings]:
        self._raise_pending_failure()
        return self._settings.get(owner_id)

    async def set_user_settings(self, owner_id: str, settings: UserSettings) -> None:
        self._raise_pending_failure()
        self.put_settings(owner_id, settings)

    def count(self, owner_id: str, period_key: str) -> int:
        return len(self._records.get((owner_id, period_key), {}))


def load_seed(
    path: Union[str, Path], clock: Clock = datetime.now
) -> Tuple[InMemoryIdentityProvider, InMemoryDocumentStore]:
    """Build a populated gateway from a JSON seed file.

    Layout::

        {"accounts": [{"email", "password", "display_name", "uid"?,
                       "budget"?, "duration_days"?, "start_date"?,
                       "expenses": [{"description", "amount", "category",
                                     "date", "notes"?}]}],
         "oauth_profiles"?: [{"provider", "email", "display_name"?,
                              "photo_url"?}]}

    Expenses land in the month partition of their spend date.
    """
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    identity = InMemoryIdentityProvider(clock=clock)
    store = InMemoryDocumentStore()

    for a in data.get("accounts", []):
        user = identity.add_account(a["email"], a["password"], a.get("display_name", ""), a.get("uid"))

        if "start_date" in a or "budget" in a or "duration_days" in a:
            period = Period.create_default(clock().date())
            if "start_date" in a:
                period = period.restart(datetime.fromisoformat(a["start_date"]).date())
            period = period.update(
                a.get("duration_days", period.duration_days),
                Decimal(str(a.get("budget", period.budget_amount))),
            )
            store.put_settings(user.uid, UserSettings(period=period))

        for raw in a.get("expenses", []):
            checked = validate_draft(ExpenseDraft(**raw), clock())
            if checked.is_left():
                logger.warning("Skipping seed expense %r: %s", raw, checked.get_error())
                continue
            record = checked.get_or_else(None)
            store.put(user.uid, month_key(record.date), record)

    for p in data.get("oauth_profiles", []):
        identity.register_oauth_profile(p["provider"], p["email"], p.get("display_name", ""), p.get("photo_url"))

    return identity, store


def build_gateway(
    seed_path: Union[str, Path, None] = None, clock: Clock = datetime.now
) -> Tuple[InMemoryIdentityProvider, InMemoryDocumentStore]:
    """The app's gateway: seeded when a seed file is given, empty otherwise."""
    if seed_path is not None:
        return load_seed(seed_path, clock=clock)
    return InMemoryIdentityProvider(clock=clock), InMemoryDocumentStore()
