"""GitHub App authentication helpers.

A GitHub App authenticates as itself with a short-lived JWT signed by its
private key, then trades that JWT for per-installation access tokens.
"""

import time
from pathlib import Path

from jose import jwt

# GitHub rejects app JWTs that live longer than ten minutes
APP_JWT_LIFETIME_SECONDS = 600
# Backdate issuance to tolerate clock drift between us and GitHub
APP_JWT_CLOCK_SKEW_SECONDS = 60


class GithubConfigurationError(Exception):
    """Raised when GitHub App credentials are missing or unusable."""

    pass


def load_private_key(raw: str) -> str:
    """Load a PEM private key from an inline string or a file path.

    Args:
        raw: PEM text (escaped newlines allowed) or a filesystem path.

    Returns:
        The PEM-encoded key.

    Raises:
        GithubConfigurationError: If the value is neither.
    """
    if "PRIVATE KEY" in raw:
        return raw.replace("\\n", "\n")
    path = Path(raw.strip().strip('"'))
    if path.is_file():
        return path.read_text()
    raise GithubConfigurationError(
        "github_app_private_key must be a PEM string or path to a private key file"
    )


def generate_app_jwt(app_id: str, private_key: str) -> str:
    """Generate a JWT authenticating as the GitHub App.

    Args:
        app_id: GitHub App identifier (the ``iss`` claim).
        private_key: PEM string or path to the App private key.

    Returns:
        An RS256-signed JWT.
    """
    now = int(time.time())
    payload = {
        "iat": now - APP_JWT_CLOCK_SKEW_SECONDS,
        "exp": now + APP_JWT_LIFETIME_SECONDS - APP_JWT_CLOCK_SKEW_SECONDS,
        "iss": app_id,
    }
    return jwt.encode(payload, load_private_key(private_key), algorithm="RS256")
