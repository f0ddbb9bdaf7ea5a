"""Login through the identity provider and session establishment."""

import logging

from src.deployer.auth.idp import IdentityProvider
from src.deployer.errors import DeployerError, ErrorCode
from src.deployer.store.models import Session
from src.deployer.store.repository import DeploymentStore, UserNotFoundError


logger = logging.getLogger(__name__)


class LoginService:
    """Resolves identity provider logins to local users and sessions."""

    def __init__(self, idp: IdentityProvider, store: DeploymentStore):
        self.idp = idp
        self.store = store

    async def start_login(self, provider: str) -> str:
        """Return the identity provider URL that starts a login.

        Raises:
            DeployerError: GET_AUTH_URL if the provider cannot start one.
        """
        try:
            return await self.idp.start_intent(provider)
        except Exception as e:
            logger.error(
                "Failed to get auth url",
                extra={"provider": provider, "error": str(e)},
            )
            raise DeployerError(ErrorCode.GET_AUTH_URL, "Failed to get auth url") from e

    async def handle_login_success(self, intent: str, token: str) -> Session:
        """Find or create the user behind a successful login and open a session.

        A missing local user is created from the provider identity; any other
        lookup failure aborts the login.

        Raises:
            DeployerError: GET_USER_FAILED, CREATE_USER_FAILED or
                CREATE_SESSION_FAILED, all mapped to 400.
        """
        try:
            info = await self.idp.get_idp_user(intent, token)
        except Exception as e:
            logger.error("Failed to get user", extra={"intent": intent, "error": str(e)})
            raise DeployerError(
                ErrorCode.GET_USER_FAILED, "Failed to get user", status_code=400
            ) from e

        try:
            user = await self.store.get_user_by_email(info.email)
        except UserNotFoundError:
            try:
                user = await self.store.create_user(info)
            except Exception as e:
                logger.error(
                    "Failed to create user",
                    extra={"intent": intent, "error": str(e)},
                )
                raise DeployerError(
                    ErrorCode.CREATE_USER_FAILED, "Failed to create user", status_code=400
                ) from e
            logger.info("Created user", extra={"user_id": user.id, "intent": intent})
        except Exception as e:
            logger.error("Failed to get user", extra={"intent": intent, "error": str(e)})
            raise DeployerError(
                ErrorCode.GET_USER_FAILED, "Failed to get user", status_code=400
            ) from e

        try:
            session = await self.store.create_session(user.id, intent, token)
        except Exception as e:
            logger.error(
                "Failed to create session",
                extra={"intent": intent, "user_id": user.id, "error": str(e)},
            )
            raise DeployerError(
                ErrorCode.CREATE_SESSION_FAILED, "Failed to create session", status_code=400
            ) from e

        logger.info("User logged in", extra={"user_id": user.id, "intent": intent})
        return session
