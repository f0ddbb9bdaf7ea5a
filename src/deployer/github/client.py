"""GitHub App API client.

This module provides an async wrapper around the GitHub API endpoints the
deployer needs as a GitHub App:
- Issuing installation access tokens for cloning private repositories

Includes rate limit handling and retry logic for API resilience. Tokens are
requested fresh on every call; nothing is cached.
"""

import asyncio
import logging
import random
import time
from typing import Any, Dict, Optional

import httpx

from src.deployer.github.auth import generate_app_jwt


logger = logging.getLogger(__name__)


class GitHubAPIError(Exception):
    """Raised when a GitHub API request fails.

    Attributes:
        message: Human-readable error description.
        status_code: HTTP status code from the response.
        response_body: Response body from GitHub API.
        request_url: The URL that was requested.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        request_url: Optional[str] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.response_body = response_body
        self.request_url = request_url
        super().__init__(message)


class RateLimitError(GitHubAPIError):
    """Raised when GitHub API rate limit is exceeded.

    Attributes:
        reset_at: Unix timestamp when the rate limit resets.
        retry_after: Seconds to wait before retrying.
    """

    def __init__(
        self,
        message: str,
        reset_at: Optional[int] = None,
        retry_after: Optional[int] = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.reset_at = reset_at
        self.retry_after = retry_after


class GitHubAppClient:
    """Async GitHub API client authenticated as a GitHub App.

    - Automatic retry with exponential backoff for transient failures
    - Rate limit handling by respecting X-RateLimit-* headers
    - Support for both github.com and GitHub Enterprise Server

    Attributes:
        app_id: GitHub App identifier.
        private_key: PEM string or path to the App private key.
        base_url: Base URL for GitHub API (default: https://api.github.com).
        max_retries: Maximum number of retry attempts for transient failures.
        base_delay: Base delay in seconds for exponential backoff.
        max_delay: Maximum delay in seconds between retries.
        timeout: Request timeout in seconds.

    Example:
        >>> async with GitHubAppClient(app_id="123", private_key=pem) as client:
        ...     token = await client.issue_installation_token(42)
    """

    # HTTP status codes that should trigger a retry
    RETRYABLE_STATUS_CODES = {408, 500, 502, 503, 504}

    def __init__(
        self,
        app_id: str,
        private_key: str,
        base_url: str = "https://api.github.com",
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.app_id = app_id
        self.private_key = private_key
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the HTTP client, creating it if necessary."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._default_headers(),
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    def _default_headers(self) -> Dict[str, str]:
        return {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "Deployer/1.0",
        }

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "GitHubAppClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _calculate_backoff(self, attempt: int) -> float:
        """Calculate backoff delay with full jitter.

        Args:
            attempt: The current retry attempt (0-indexed).

        Returns:
            Delay in seconds before the next retry.
        """
        exponential_delay = self.base_delay * (2 ** attempt)
        capped_delay = min(exponential_delay, self.max_delay)
        return random.uniform(0, capped_delay)

    def _parse_int_header(self, headers: httpx.Headers, name: str) -> Optional[int]:
        value = headers.get(name)
        if value is not None:
            try:
                return int(value)
            except ValueError:
                pass
        return None

    def _raise_rate_limit(self, response: httpx.Response) -> None:
        """Raise RateLimitError with information about when to retry."""
        reset_at = self._parse_int_header(response.headers, "x-ratelimit-reset")

        retry_after = None
        if reset_at is not None:
            retry_after = max(0, reset_at - int(time.time()))
        retry_after_header = self._parse_int_header(response.headers, "retry-after")
        if retry_after_header is not None:
            retry_after = retry_after_header

        logger.warning(
            "GitHub API rate limit exceeded",
            extra={"reset_at": reset_at, "retry_after": retry_after},
        )
        raise RateLimitError(
            message="GitHub API rate limit exceeded",
            status_code=response.status_code,
            reset_at=reset_at,
            retry_after=retry_after,
        )

    async def _request(
        self,
        method: str,
        path: str,
        headers: Optional[Dict[str, str]] = None,
        json_data: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """Make an HTTP request with retry logic.

        Args:
            method: HTTP method.
            path: API path relative to base_url.
            headers: Extra headers for this request.
            json_data: Optional JSON body for the request.

        Returns:
            The HTTP response from GitHub.

        Raises:
            GitHubAPIError: If the request fails after all retries.
            RateLimitError: If rate limit is exceeded.
        """
        last_exception: Optional[Exception] = None

        for attempt in range(self.max_retries + 1):
            try:
                response = await self.client.request(
                    method=method,
                    url=path,
                    headers=headers,
                    json=json_data,
                )

                if response.status_code == 403:
                    remaining = self._parse_int_header(
                        response.headers, "x-ratelimit-remaining"
                    )
                    if remaining == 0:
                        self._raise_rate_limit(response)

                if response.status_code == 429:
                    self._raise_rate_limit(response)

                if response.status_code in self.RETRYABLE_STATUS_CODES:
                    if attempt < self.max_retries:
                        delay = self._calculate_backoff(attempt)
                        logger.warning(
                            "Retryable error from GitHub API",
                            extra={
                                "status_code": response.status_code,
                                "attempt": attempt + 1,
                                "delay": delay,
                                "path": path,
                            },
                        )
                        await asyncio.sleep(delay)
                        continue

                if response.status_code >= 400:
                    error_body = response.text
                    logger.error(
                        "GitHub API error",
                        extra={
                            "status_code": response.status_code,
                            "path": path,
                            "method": method,
                            "response_body": error_body[:500],
                        },
                    )
                    raise GitHubAPIError(
                        message=f"GitHub API error: {response.status_code}",
                        status_code=response.status_code,
                        response_body=error_body,
                        request_url=str(response.url),
                    )

                return response

            except GitHubAPIError:
                raise
            except httpx.RequestError as e:
                last_exception = e
                if attempt < self.max_retries:
                    delay = self._calculate_backoff(attempt)
                    logger.warning(
                        "Request error, retrying",
                        extra={
                            "error": str(e),
                            "attempt": attempt + 1,
                            "delay": delay,
                            "path": path,
                        },
                    )
                    await asyncio.sleep(delay)
                    continue

        logger.error(
            "GitHub API request failed after all retries",
            extra={
                "path": path,
                "method": method,
                "last_error": str(last_exception),
            },
        )
        raise GitHubAPIError(
            message=f"Request failed after {self.max_retries} retries: {last_exception}",
            request_url=f"{self.base_url}{path}",
        )

    async def issue_installation_token(self, installation_id: int) -> str:
        """Issue a scoped access token for a GitHub App installation.

        Args:
            installation_id: The installation to issue a token for.

        Returns:
            The installation access token.

        Raises:
            GitHubAPIError: If the request fails or the response carries
                no token.
        """
        path = f"/app/installations/{installation_id}/access_tokens"
        app_jwt = generate_app_jwt(self.app_id, self.private_key)

        logger.info(
            "Issuing installation token",
            extra={"installation_id": installation_id},
        )

        response = await self._request(
            method="POST",
            path=path,
            headers={"Authorization": f"Bearer {app_jwt}"},
        )

        try:
            token = response.json().get("token")
        except ValueError as e:
            raise GitHubAPIError(
                f"Malformed installation token response: {e}",
                status_code=response.status_code,
                request_url=str(response.url),
            ) from e
        if not isinstance(token, str) or not token:
            raise GitHubAPIError(
                "Installation token response missing token",
                status_code=response.status_code,
                request_url=str(response.url),
            )
        return token

    async def health_check(self) -> bool:
        """Check if the GitHub API accepts the App credentials."""
        try:
            response = await self.client.get(
                "/app",
                headers={
                    "Authorization": f"Bearer {generate_app_jwt(self.app_id, self.private_key)}"
                },
            )
            return response.status_code == 200
        except Exception as e:
            logger.warning(
                "GitHub API health check failed",
                extra={"error": str(e)},
            )
            return False
