"""GitHub account linking, identity provider login and sessions."""

from src.deployer.auth.idp import (
    IdentityProvider,
    IdentityProviderClient,
    IdentityProviderError,
)
from src.deployer.auth.login import LoginService
from src.deployer.auth.models import (
    GithubTokenResponse,
    LoginRequest,
    LoginResponse,
    TokenPair,
)
from src.deployer.auth.oauth import GithubOAuthController, TokenExchangeError
from src.deployer.auth.profile import (
    SESSION_COOKIE,
    resolve_profile,
    session_id_from_request,
)

__all__ = [
    "GithubOAuthController",
    "GithubTokenResponse",
    "IdentityProvider",
    "IdentityProviderClient",
    "IdentityProviderError",
    "LoginRequest",
    "LoginResponse",
    "LoginService",
    "SESSION_COOKIE",
    "TokenExchangeError",
    "TokenPair",
    "resolve_profile",
    "session_id_from_request",
]
