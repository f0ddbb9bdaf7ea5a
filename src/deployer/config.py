"""Deployer configuration using pydantic-settings.

This module defines the DeployerSettings class that reads configuration
from environment variables with the DEPLOYER_ prefix. All required fields
must be set via environment variables for the service to start.
"""

from pathlib import Path
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DeployerSettings(BaseSettings):
    """Deployer configuration from environment variables.

    All environment variables are prefixed with DEPLOYER_ (e.g., DEPLOYER_GITHUB_APP_ID).

    Required fields (must be set via environment variables):
    - github_app_id: GitHub App identifier used to sign app JWTs
    - github_app_private_key: PEM string or path to the App private key
    - github_client_id / github_client_secret: OAuth App credentials
    - github_redirect_uri: OAuth callback registered with GitHub
    - docker_registry: Registry that built images are pushed to
    - database_url: PostgreSQL connection string
    """

    model_config = SettingsConfigDict(
        env_prefix="DEPLOYER_",
        case_sensitive=False,
    )

    # -------------------------------------------------------------------------
    # GitHub App Configuration
    # -------------------------------------------------------------------------
    github_app_id: str

    github_app_private_key: str

    # Base URL for GitHub API (supports GitHub Enterprise)
    github_base_url: str = "https://api.github.com"

    # -------------------------------------------------------------------------
    # GitHub OAuth Configuration
    # -------------------------------------------------------------------------
    github_client_id: str

    github_client_secret: str

    github_redirect_uri: str

    # Host serving /login/oauth/authorize and /login/oauth/access_token
    github_oauth_base_url: str = "https://github.com"

    # Seconds an OAuth state token stays valid after it is issued
    auth_state_ttl_seconds: int = 600

    # -------------------------------------------------------------------------
    # Identity Provider Configuration
    # -------------------------------------------------------------------------
    idp_base_url: str = "http://localhost:8081"

    idp_token: str = ""

    # Redirect targets handed to the identity provider for login intents
    login_success_url: str = "http://localhost:8080/auth/login/success"
    login_failure_url: str = "http://localhost:8080/auth/login/fail"

    # -------------------------------------------------------------------------
    # Workspace Configuration
    # -------------------------------------------------------------------------
    # Base path for repository clones
    workspace_base_path: str = "/var/lib/deployer/workspaces"

    clone_timeout_seconds: int = 300

    # -------------------------------------------------------------------------
    # Build and Deploy Configuration
    # -------------------------------------------------------------------------
    # Application config file read from the repository root
    extractor_config_file: str = "app.yaml"

    docker_path: str = "docker"

    docker_registry: str

    build_timeout_seconds: int = 1800

    kubectl_path: str = "kubectl"

    # Path to the kubeconfig of the target cluster
    kube_config_path: Optional[str] = None

    kube_namespace: str = "default"

    apply_timeout_seconds: int = 300

    # Upper bound for handling a single webhook delivery
    webhook_timeout_seconds: int = 3600

    # -------------------------------------------------------------------------
    # Database Configuration
    # -------------------------------------------------------------------------
    database_url: str

    # -------------------------------------------------------------------------
    # Server Configuration
    # -------------------------------------------------------------------------
    host: str = "0.0.0.0"

    port: int = 8080

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------
    @field_validator(
        "github_app_id",
        "github_app_private_key",
        "github_client_id",
        "github_client_secret",
        "docker_registry",
    )
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        """Validate that required credentials are not empty."""
        if not v or not v.strip():
            raise ValueError("value cannot be empty")
        return v

    @field_validator(
        "github_base_url",
        "github_oauth_base_url",
        "github_redirect_uri",
        "idp_base_url",
    )
    @classmethod
    def validate_http_url(cls, v: str) -> str:
        """Validate that URL settings use an HTTP scheme."""
        if not v or not v.strip():
            raise ValueError("url cannot be empty")
        if not v.startswith(("http://", "https://")):
            raise ValueError("url must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Validate that database URL is not empty and has valid format."""
        if not v or not v.strip():
            raise ValueError("database_url cannot be empty")
        if not v.startswith(("postgresql://", "postgres://", "memory://")):
            raise ValueError(
                "database_url must start with postgresql://, postgres:// or memory://"
            )
        return v

    @field_validator("workspace_base_path")
    @classmethod
    def validate_workspace_path(cls, v: str) -> str:
        """Validate that workspace base path is an absolute path."""
        if not Path(v).is_absolute():
            raise ValueError("workspace_base_path must be an absolute path")
        return v

    @field_validator(
        "auth_state_ttl_seconds",
        "clone_timeout_seconds",
        "build_timeout_seconds",
        "apply_timeout_seconds",
        "webhook_timeout_seconds",
    )
    @classmethod
    def validate_positive_seconds(cls, v: int) -> int:
        """Validate that durations are positive."""
        if v < 1:
            raise ValueError("duration must be at least 1 second")
        return v

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate that port is in valid range."""
        if not 1 <= v <= 65535:
            raise ValueError("port must be between 1 and 65535")
        return v


def get_settings() -> DeployerSettings:
    """Create and return DeployerSettings instance.

    Returns:
        DeployerSettings: Configured settings instance.

    Raises:
        pydantic.ValidationError: If required fields are missing or invalid.
    """
    return DeployerSettings()
