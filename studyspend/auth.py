from typing import Optional

from studyspend.domain import User
from studyspend.errors import SyncError
from studyspend.gateway import IdentityProvider
from studyspend.logger import setup_logger
from studyspend.validation import validate_credentials, validate_registration

logger = setup_logger(__name__)

GOOGLE = "google"


class AuthService:
    """Input checks and logging around an injected identity provider.

    ``ValidationError`` is raised before the provider is called; provider
    failures propagate as ``SyncError`` except cancelled OAuth popups.
    """

    def __init__(self, identity: IdentityProvider):
        self._identity = identity

    async def sign_in(self, email: str, password: str) -> User:
        validate_credentials(email, password)
        try:
            user = await self._identity.sign_in(email.strip(), password)
        except SyncError as e:
            logger.warning("Sign-in failed for %s: %s", email, e.code)
            raise
        logger.info("Signed in %s", user.uid)
        return user

    async def sign_up(self, display_name: str, email: str, password: str, confirm: str) -> User:
        validate_registration(display_name, email, password, confirm)
        try:
            user = await self._identity.sign_up(email.strip(), password, display_name.strip())
        except SyncError as e:
            logger.warning("Registration failed for %s: %s", email, e.code)
            raise
        logger.info("Registered %s", user.uid)
        return user

    async def sign_in_with_oauth(self, provider: str = GOOGLE) -> Optional[User]:
        try:
            user = await self._identity.sign_in_with_oauth(provider)
        except SyncError as e:
            if e.suppressed:
                logger.info("%s sign-in cancelled by user", provider)
                return None
            logger.warning("%s sign-in failed: %s", provider, e.code)
            raise
        logger.info("Signed in %s with %s", user.uid, provider)
        return user

    async def sign_out(self) -> None:
        await self._identity.sign_out()
