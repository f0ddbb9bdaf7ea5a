"""Models for the GitHub OAuth and login flows."""

from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import BaseModel, Field

from src.deployer.store.models import UserInfo

# Subtracted from the provider's token lifetime so a token is refreshed
# before GitHub considers it expired.
TOKEN_EXPIRY_MARGIN = timedelta(seconds=10)


class GithubTokenResponse(BaseModel):
    """Body of a successful /login/oauth/access_token response."""

    access_token: str = Field(..., min_length=1)
    refresh_token: str = ""
    expires_in: int = 0
    token_type: str = ""
    scope: str = ""


class TokenPair(BaseModel):
    """Provider tokens with an absolute expiry.

    Attributes:
        access_token: Token used for GitHub API calls on the user's behalf.
        refresh_token: Token for renewing the access token; may be empty.
        expires_in: Absolute UTC time the access token should be treated
            as expired.
    """

    access_token: str
    refresh_token: str = ""
    expires_in: datetime

    @classmethod
    def from_response(
        cls,
        response: GithubTokenResponse,
        now: Optional[datetime] = None,
    ) -> "TokenPair":
        now = now or datetime.now(timezone.utc)
        return cls(
            access_token=response.access_token,
            refresh_token=response.refresh_token,
            expires_in=now + timedelta(seconds=response.expires_in) - TOKEN_EXPIRY_MARGIN,
        )


class LoginRequest(BaseModel):
    provider: str = Field(..., min_length=1)


class LoginResponse(BaseModel):
    session_id: str
    user_id: str


__all__ = [
    "GithubTokenResponse",
    "LoginRequest",
    "LoginResponse",
    "TokenPair",
    "UserInfo",
]
