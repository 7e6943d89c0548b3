from typing import Dict, Final, FrozenSet, Optional


class StudySpendError(Exception):
    """Base class for all StudySpend errors."""

    def __init__(self, message: str, code: str = "STUDYSPEND_ERROR") -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


class ValidationError(StudySpendError):
    """
    Raised when user input is rejected. Nothing is mutated when this is raised.

    Attributes:
        errors: field name -> human readable message, one entry per bad field.
    """

    def __init__(self, errors: Dict[str, str]) -> None:
        super().__init__("; ".join(errors.values()), code="VALIDATION_ERROR")
        self.errors = dict(errors)

    @property
    def fields(self) -> tuple[str, ...]:
        return tuple(self.errors)


SYNC_ERROR_MESSAGES: Final[Dict[str, str]] = {
    "auth/user-not-found": "No account found with this email.",
    "auth/wrong-password": "Incorrect password. Please try again.",
    "auth/invalid-credential": "Invalid email or password.",
    "auth/invalid-email": "Please enter a valid email address.",
    "auth/email-already-in-use": "An account with this email already exists.",
    "auth/weak-password": "Password is too weak.",
    "auth/too-many-requests": "Too many attempts. Please wait and try again.",
    "auth/network-request-failed": "Network error. Check your connection.",
    "auth/popup-blocked": "Popup was blocked. Allow popups and try again.",
    "auth/popup-closed-by-user": "Sign-in popup was closed.",
    "auth/cancelled-popup-request": "Sign-in popup was cancelled.",
    "auth/operation-not-allowed": "This sign-in method is not enabled.",
    "auth/requires-recent-login": "Please sign in again to continue.",
    "permission-denied": "You do not have permission to do that.",
    "unavailable": "Service is unavailable. Please try again later.",
    "not-found": "The requested data was not found.",
}

DEFAULT_SYNC_MESSAGE: Final[str] = "Something went wrong. Please try again."

# The user closed the popup themselves; not shown as an error.
SUPPRESSED_SYNC_CODES: Final[FrozenSet[str]] = frozenset(
    {"auth/popup-closed-by-user", "auth/cancelled-popup-request"}
)


class SyncError(StudySpendError):
    """
    Raised when an identity or storage call fails.

    Attributes:
        code: provider error code, e.g. ``auth/wrong-password``.
        user_message: text safe to show in the UI, taken from the code table.
    """

    def __init__(self, code: str, message: Optional[str] = None) -> None:
        self.user_message = SYNC_ERROR_MESSAGES.get(code, DEFAULT_SYNC_MESSAGE)
        super().__init__(message or self.user_message, code=code)

    @property
    def suppressed(self) -> bool:
        return self.code in SUPPRESSED_SYNC_CODES


class ConsistencyError(StudySpendError):
    """Raised when a snapshot older than the one already applied is delivered."""

    def __init__(self, current: int, received: int) -> None:
        super().__init__(
            f"Snapshot sequence {received} is older than applied sequence {current}.",
            code="STALE_SNAPSHOT",
        )
        self.current = current
        self.received = received
