"""
Session lifecycle.

``SessionManager`` is built once at startup with the identity provider and
document store injected. It turns auth-state changes into an explicit
status (UNKNOWN -> SIGNED_OUT / SIGNED_IN) and owns at most one
``UserSession``, created on sign-in and torn down on sign-out. Everything a
signed-in UI does goes through that ``UserSession``.
"""

from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Callable, Dict, Optional, Tuple, Union

from studyspend.aggregator import (
    DashboardSummary,
    HistoryView,
    category_breakdown,
    dashboard_summary,
    export_rows,
    filter_history,
    recent_activity,
)
from studyspend.auth import GOOGLE, AuthService
from studyspend.domain import Category, Expense, ExpenseDraft, User, month_key
from studyspend.errors import SyncError
from studyspend.events import EXPENSE_ADDED, PERIOD_RESET, SESSION_STATUS, EventBus
from studyspend.export import to_csv
from studyspend.gateway import DocumentStore, IdentityProvider, Unsubscribe
from studyspend.ledger import Ledger
from studyspend.logger import setup_logger
from studyspend.period import DEFAULT_IDLE_TIMEOUT_MINUTES, Period, UserSettings
from studyspend.sync import SyncAdapter

logger = setup_logger(__name__)

Clock = Callable[[], datetime]


class SessionStatus(str, Enum):
    UNKNOWN = "unknown"
    SIGNED_OUT = "signed_out"
    SIGNED_IN = "signed_in"


@dataclass(frozen=True)
class SessionState:
    status: SessionStatus
    user: Optional[User] = None


class UserSession:
    def __init__(
        self,
        user: User,
        store: DocumentStore,
        settings: UserSettings,
        clock: Clock = datetime.now,
        bus: Optional[EventBus] = None,
    ):
        self.user = user
        self._store = store
        self._settings = settings
        self._clock = clock
        self._bus = bus or EventBus()
        self._adapter = SyncAdapter(store, user.uid, clock)
        self._last_activity = clock()
        self.closed = False

    @property
    def settings(self) -> UserSettings:
        return self._settings

    @property
    def period(self) -> Period:
        return self._settings.period

    @property
    def ledger(self) -> Ledger:
        return self._adapter.ledger

    @property
    def period_key(self) -> Optional[str]:
        return self._adapter.period_key

    def open(self, period_key: Optional[str] = None) -> Ledger:
        return self._adapter.attach(period_key or month_key(self._clock().date()))

    def switch_period(self, period_key: str) -> Ledger:
        if period_key == self.period_key:
            return self.ledger
        logger.info("%s switching period %s -> %s", self.user.uid, self.period_key, period_key)
        return self._adapter.attach(period_key)

    async def _save_settings(self, settings: UserSettings) -> None:
        await self._store.set_user_settings(self.user.uid, settings)
        self._settings = settings

    async def add_expense(self, draft: ExpenseDraft) -> Expense:
        self.touch()
        expense = await self._adapter.submit(draft)
        self._bus.publish(EXPENSE_ADDED, {"uid": self.user.uid, "expense": expense})
        return expense

    async def reset_period(self, new_start: Optional[date] = None) -> Period:
        """Delete this period's stored expenses and start a fresh window."""
        self.touch()
        await self._adapter.clear()
        period = self.period.restart(new_start or self._clock().date())
        await self._save_settings(replace(self._settings, period=period))
        self._bus.publish(PERIOD_RESET, {"uid": self.user.uid, "period": period})
        logger.info("%s reset period to start %s", self.user.uid, period.start_date)
        return period

    async def update_budget(self, duration_days: int, budget_amount: Union[Decimal, int, str]) -> Period:
        self.touch()
        period = self.period.update(duration_days, budget_amount)
        await self._save_settings(replace(self._settings, period=period))
        logger.info("%s budget set to %s over %d days", self.user.uid, period.budget_amount, period.duration_days)
        return period

    def summary(self, as_of: Union[date, datetime, None] = None) -> DashboardSummary:
        return dashboard_summary(self.ledger.all(), self.period, as_of or self._clock())

    def history(
        self,
        search_text: str = "",
        category: Union[Category, str, None] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> HistoryView:
        return filter_history(self.ledger.all(), search_text, category, date_from, date_to)

    def breakdown(self) -> Dict[Category, Decimal]:
        return category_breakdown(self.ledger.all())

    def recent(self, limit: int = 5) -> Tuple[Expense, ...]:
        return recent_activity(self.ledger.all(), limit)

    def export_csv(self, records: Optional[Tuple[Expense, ...]] = None) -> str:
        return to_csv(export_rows(self.ledger.all() if records is None else records))

    def touch(self, now: Optional[datetime] = None) -> None:
        self._last_activity = now or self._clock()

    def is_idle(self, now: Optional[datetime] = None) -> bool:
        idle = (now or self._clock()) - self._last_activity
        return idle >= timedelta(minutes=self._settings.idle_timeout_minutes)

    def close(self) -> None:
        self._adapter.detach()
        self.ledger.remove_all()
        self.closed = True


class SessionManager:
    def __init__(
        self,
        identity: IdentityProvider,
        store: DocumentStore,
        clock: Clock = datetime.now,
        bus: Optional[EventBus] = None,
        idle_timeout_minutes: int = DEFAULT_IDLE_TIMEOUT_MINUTES,
    ):
        self._identity = identity
        self._store = store
        self._auth = AuthService(identity)
        self._clock = clock
        self.bus = bus or EventBus()
        self._idle_timeout_minutes = idle_timeout_minutes
        self._state = SessionState(SessionStatus.UNKNOWN)
        self._session: Optional[UserSession] = None
        self._unsubscribe: Optional[Unsubscribe] = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def status(self) -> SessionStatus:
        return self._state.status

    @property
    def session(self) -> Optional[UserSession]:
        return self._session

    def _set_state(self, status: SessionStatus, user: Optional[User] = None) -> None:
        new_state = SessionState(status, user)
        if new_state == self._state:
            return
        logger.info("Session status %s -> %s", self._state.status.value, status.value)
        self._state = new_state
        self.bus.publish(SESSION_STATUS, {"state": new_state})

    async def start(self) -> SessionState:
        """Listen for auth changes and resolve the persisted user, if any."""
        if self._unsubscribe is None:
            self._unsubscribe = self._identity.on_auth_state_change(self._on_auth_state)
        await self._on_auth_state(await self._identity.current_user())
        return self._state

    async def _load_settings(self, user: User) -> UserSettings:
        try:
            settings = await self._store.get_user_settings(user.uid)
            if settings is None:
                settings = UserSettings(
                    period=Period.create_default(self._clock().date()),
                    idle_timeout_minutes=self._idle_timeout_minutes,
                )
                await self._store.set_user_settings(user.uid, settings)
            # The inactivity window is a deployment setting, not a per-user one.
            return replace(settings, idle_timeout_minutes=self._idle_timeout_minutes)
        except SyncError as e:
            logger.warning("Could not load settings for %s (%s); using defaults", user.uid, e.code)
            return UserSettings(
                period=Period.create_default(self._clock().date()),
                idle_timeout_minutes=self._idle_timeout_minutes,
            )

    def _close_session(self) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None

    async def _on_auth_state(self, user: Optional[User]) -> None:
        if user is None:
            self._close_session()
            self._set_state(SessionStatus.SIGNED_OUT)
            return
        if self._session is not None and self._session.user.uid == user.uid:
            self._set_state(SessionStatus.SIGNED_IN, user)
            return
        self._close_session()
        settings = await self._load_settings(user)
        self._session = UserSession(user, self._store, settings, self._clock, self.bus)
        self._session.open()
        self._set_state(SessionStatus.SIGNED_IN, user)

    async def sign_in(self, email: str, password: str) -> User:
        return await self._auth.sign_in(email, password)

    async def sign_up(self, display_name: str, email: str, password: str, confirm: str) -> User:
        return await self._auth.sign_up(display_name, email, password, confirm)

    async def sign_in_with_oauth(self, provider: str = GOOGLE) -> Optional[User]:
        return await self._auth.sign_in_with_oauth(provider)

    async def sign_out(self) -> None:
        # Local state goes first so nothing can write into a signed-out ledger.
        self._close_session()
        await self._auth.sign_out()
        self._set_state(SessionStatus.SIGNED_OUT)

    def record_activity(self, now: Optional[datetime] = None) -> None:
        if self._session is not None:
            self._session.touch(now)

    async def check_idle(self, now: Optional[datetime] = None) -> bool:
        """Sign out if the session has been idle past its timeout."""
        if self._session is None or not self._session.is_idle(now):
            return False
        logger.info("Signing out %s after %d idle minutes", self._session.user.uid, self._session.settings.idle_timeout_minutes)
        await self.sign_out()
        return True

    async def shutdown(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._close_session()
