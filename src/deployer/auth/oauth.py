"""GitHub OAuth flow linking a user's GitHub account.

The flow is CSRF-protected by a random state token bound to the user's
email. ``start`` stores the state and returns GitHub's authorize URL;
``handle_callback`` consumes the state exactly once, exchanges the code for
tokens and stores the access token for that email.
"""

import hashlib
import logging
import uuid
from typing import Optional
from urllib.parse import urlencode

import httpx
from pydantic import ValidationError

from src.deployer.auth.models import GithubTokenResponse, TokenPair
from src.deployer.errors import DeployerError, ErrorCode
from src.deployer.store.repository import AuthStateNotFoundError, DeploymentStore


logger = logging.getLogger(__name__)

OAUTH_SCOPES = "openid profile email repo"


def state_fingerprint(state: str) -> str:
    """Short digest of a state token, safe to put in logs."""
    return hashlib.sha256(state.encode()).hexdigest()[:12]


class TokenExchangeError(Exception):
    """Raised when GitHub does not return tokens for an authorization code.

    Attributes:
        message: Human-readable error description.
        status_code: HTTP status code from the response, if any.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class GithubOAuthController:
    """Drives the GitHub OAuth authorization code flow.

    Attributes:
        store: Persistence for auth states and provider tokens.
        client_id: OAuth App client id.
        client_secret: OAuth App client secret.
        redirect_uri: Callback URL registered with GitHub.
        oauth_base_url: Host serving the OAuth endpoints.
    """

    def __init__(
        self,
        store: DeploymentStore,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        oauth_base_url: str = "https://github.com",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.store = store
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.oauth_base_url = oauth_base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def authorize_url(self, state: str) -> str:
        query = urlencode(
            {
                "client_id": self.client_id,
                "redirect_uri": self.redirect_uri,
                "state": state,
                "scope": OAUTH_SCOPES,
            }
        )
        return f"{self.oauth_base_url}/login/oauth/authorize?{query}"

    async def start(self, email: str) -> str:
        """Issue a state for the user and return the GitHub authorize URL.

        Raises:
            DeployerError: SAVE_AUTH_STATE_FAILED if the state cannot be
                stored.
        """
        state = str(uuid.uuid4())
        try:
            await self.store.save_auth_state(email, state)
        except Exception as e:
            logger.error(
                "Failed to save auth state",
                extra={"email": email, "state": state_fingerprint(state), "error": str(e)},
            )
            raise DeployerError(
                ErrorCode.SAVE_AUTH_STATE_FAILED,
                "Failed to save auth state",
            ) from e

        logger.info("Started GitHub OAuth flow", extra={"email": email})
        return self.authorize_url(state)

    async def handle_callback(
        self,
        code: Optional[str],
        state: Optional[str],
    ) -> TokenPair:
        """Complete the flow for a callback from GitHub.

        Args:
            code: Authorization code from the callback query.
            state: State token from the callback query.

        Returns:
            The exchanged tokens.

        Raises:
            DeployerError: CODE_NOT_FOUND or STATE_NOT_FOUND (400) for a
                missing or unknown parameter, TOKEN_EXCHANGE_FAILED or
                SAVE_TOKEN_FAILED (500) for downstream failures.
        """
        if not code:
            raise DeployerError(ErrorCode.CODE_NOT_FOUND, "Code not found", status_code=400)
        if not state:
            raise DeployerError(ErrorCode.STATE_NOT_FOUND, "State not found", status_code=400)

        try:
            email = await self.store.consume_auth_state(state)
        except AuthStateNotFoundError as e:
            logger.warning(
                "Unknown or expired auth state",
                extra={"state": state_fingerprint(state)},
            )
            raise DeployerError(
                ErrorCode.STATE_NOT_FOUND,
                "State not found",
                status_code=400,
            ) from e
        except Exception as e:
            logger.error(
                "Failed to look up auth state",
                extra={"state": state_fingerprint(state), "error": str(e)},
            )
            raise DeployerError(
                ErrorCode.STATE_NOT_FOUND,
                "State not found",
                status_code=400,
            ) from e

        try:
            tokens = await self.exchange_code_for_token(code)
        except Exception as e:
            logger.error(
                "Failed to exchange code for token",
                extra={"email": email, "error": str(e)},
            )
            raise DeployerError(
                ErrorCode.TOKEN_EXCHANGE_FAILED,
                "Failed to exchange code for token",
            ) from e

        try:
            await self.store.save_provider_token(email, tokens.access_token)
        except Exception as e:
            logger.error(
                "Failed to save provider token",
                extra={"email": email, "error": str(e)},
            )
            raise DeployerError(
                ErrorCode.SAVE_TOKEN_FAILED,
                "Failed to save token pair",
            ) from e

        logger.info("Linked GitHub account", extra={"email": email})
        return tokens

    async def exchange_code_for_token(self, code: str) -> TokenPair:
        """Exchange an authorization code for a token pair.

        Raises:
            TokenExchangeError: If GitHub answers with a non-200 status or a
                body without an access token.
        """
        url = f"{self.oauth_base_url}/login/oauth/access_token"
        params = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "code": code,
        }
        try:
            response = await self.client.post(
                url,
                params=params,
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            raise TokenExchangeError(f"Token request failed: {e}") from e

        if response.status_code != 200:
            raise TokenExchangeError(
                f"Failed to exchange code for token: {response.status_code}",
                status_code=response.status_code,
            )

        try:
            body = GithubTokenResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            # GitHub reports bad codes as 200 with an "error" field.
            raise TokenExchangeError(f"Unexpected token response: {e}") from e

        return TokenPair.from_response(body)
