"""Persistence for deployments, installations, users and sessions."""

from src.deployer.store.memory import InMemoryStore
from src.deployer.store.models import (
    AppDefinition,
    AuthState,
    GithubInstallationLink,
    Session,
    User,
    UserInfo,
)
from src.deployer.store.repository import (
    AuthStateNotFoundError,
    DatabaseError,
    DeploymentStore,
    PostgresStore,
    SessionNotFoundError,
    UserNotFoundError,
)

__all__ = [
    "AppDefinition",
    "AuthState",
    "AuthStateNotFoundError",
    "DatabaseError",
    "DeploymentStore",
    "GithubInstallationLink",
    "InMemoryStore",
    "PostgresStore",
    "Session",
    "SessionNotFoundError",
    "User",
    "UserInfo",
    "UserNotFoundError",
]
