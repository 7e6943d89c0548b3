"""
Contracts the core needs from the hosted identity and document backend.

Implementations raise ``SyncError`` for every failed call. Any backend that
satisfies these protocols can be injected into ``SessionManager``; see
``studyspend.memory`` for the in-process one.
"""

from typing import Awaitable, Callable, Optional, Protocol

from studyspend.domain import Expense, Snapshot, User
from studyspend.period import UserSettings

AuthStateCallback = Callable[[Optional[User]], Awaitable[None]]
SnapshotCallback = Callable[[Snapshot], None]
Unsubscribe = Callable[[], None]


class Subscription(Protocol):
    def unsubscribe(self) -> None:
        ...


class IdentityProvider(Protocol):
    async def sign_in(self, email: str, password: str) -> User:
        ...

    async def sign_up(self, email: str, password: str, display_name: str) -> User:
        ...

    async def sign_in_with_oauth(self, provider: str) -> User:
        ...

    async def sign_out(self) -> None:
        ...

    async def current_user(self) -> Optional[User]:
        """The persisted signed-in user, if any (restored across reloads)."""
        ...

    def on_auth_state_change(self, callback: AuthStateCallback) -> Unsubscribe:
        """Register ``callback``; it is awaited with the user (or None) on every change."""
        ...


class DocumentStore(Protocol):
    def subscribe(self, owner_id: str, period_key: str, callback: SnapshotCallback) -> Subscription:
        """Deliver the current record set at once, then a full snapshot on every change."""
        ...

    async def create(self, owner_id: str, period_key: str, draft: Expense) -> str:
        ...

    async def delete_all(self, owner_id: str, period_key: str) -> None:
        ...

    async def get_user_settings(self, owner_id: str) -> Optional[UserSettings]:
        ...

    async def set_user_settings(self, owner_id: str, settings: UserSettings) -> None:
        ...
