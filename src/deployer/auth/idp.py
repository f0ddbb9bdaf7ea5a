"""Identity provider client used by the login flow.

The identity provider brokers external logins through "intents": the
deployer starts an intent for a provider and sends the user to the returned
auth URL; on success the provider redirects back with the intent id and an
intent token, which resolve to the user's identity.
"""

import logging
from typing import Any, Dict, Optional, Protocol

import httpx

from src.deployer.store.models import UserInfo


logger = logging.getLogger(__name__)


class IdentityProviderError(Exception):
    """Raised when the identity provider rejects or fails a request.

    Attributes:
        message: Human-readable error description.
        status_code: HTTP status code from the response, if any.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class IdentityProvider(Protocol):
    async def start_intent(self, provider: str) -> str:
        ...

    async def get_idp_user(self, intent: str, token: str) -> UserInfo:
        ...


class IdentityProviderClient:
    """httpx client for the identity provider's intent API.

    Attributes:
        base_url: Identity provider base URL.
        token: Service token sent as a Bearer credential.
        success_url: Where the provider redirects after a successful login.
        failure_url: Where the provider redirects after a failed login.
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        success_url: str,
        failure_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.success_url = success_url
        self.failure_url = failure_url
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            headers = {"Accept": "application/json"}
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _post(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = await self.client.post(path, json=body)
        except httpx.HTTPError as e:
            raise IdentityProviderError(f"Identity provider request failed: {e}") from e

        if response.status_code >= 400:
            raise IdentityProviderError(
                f"Identity provider returned {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        try:
            data = response.json()
        except ValueError as e:
            raise IdentityProviderError("Identity provider returned invalid JSON") from e
        if not isinstance(data, dict):
            raise IdentityProviderError("Identity provider returned unexpected body")
        return data

    async def start_intent(self, provider: str) -> str:
        """Start a login intent and return the URL to send the user to."""
        data = await self._post(
            "/v2/idp_intents",
            {
                "idpId": provider,
                "urls": {
                    "successUrl": self.success_url,
                    "failureUrl": self.failure_url,
                },
            },
        )
        auth_url = data.get("authUrl")
        if not auth_url:
            raise IdentityProviderError("Identity provider response has no authUrl")
        return auth_url

    async def get_idp_user(self, intent: str, token: str) -> UserInfo:
        """Resolve a completed intent to the user's identity.

        Raises:
            IdentityProviderError: If the intent cannot be retrieved or the
                provider does not report an email.
        """
        data = await self._post(
            f"/v2/idp_intents/{intent}",
            {"idpIntentToken": token},
        )
        info = data.get("idpInformation") or {}
        raw = info.get("rawInformation") or {}

        email = raw.get("email")
        if not email:
            raise IdentityProviderError("Identity provider did not return an email")

        return UserInfo(
            id=str(info.get("userId", "")),
            email=email,
            display_name=raw.get("name") or info.get("userName") or "",
        )
