"""GitHub App integration.

This module provides:
- App JWT generation from the App private key
- Installation access token issuance for private repository clones

Includes rate limiting and retry logic for API resilience.
"""

from src.deployer.github.auth import (
    GithubConfigurationError,
    generate_app_jwt,
    load_private_key,
)
from src.deployer.github.client import (
    GitHubAPIError,
    GitHubAppClient,
    RateLimitError,
)

__all__ = [
    "GitHubAPIError",
    "GitHubAppClient",
    "GithubConfigurationError",
    "RateLimitError",
    "generate_app_jwt",
    "load_private_key",
]
