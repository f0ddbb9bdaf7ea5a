"""Working directory provisioning for deployment runs.

This module clones repositories into scoped working directories that are
removed when the deployment run for that repository ends.
"""

from src.deployer.provisioner.workspace import (
    GitCloneError,
    GitCloner,
    RepositoryCloner,
    WorkspaceConfig,
    WorkspaceProvisionError,
    authorized_clone_url,
    cloned_repository,
)

__all__ = [
    "GitCloneError",
    "GitCloner",
    "RepositoryCloner",
    "WorkspaceConfig",
    "WorkspaceProvisionError",
    "authorized_clone_url",
    "cloned_repository",
]
