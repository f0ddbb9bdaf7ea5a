"""GitHub webhook event models for the deployer.

This module defines the data models for the GitHub App webhook deliveries
that drive deployments: installation events (app installed, repositories
added or removed) and push events.

GitHub omits the ``action`` field on push deliveries, so an empty action is
how a push is recognized. Only pushes to the primary branch trigger work.

The models use Pydantic for validation, consistent with the service's
configuration approach in config.py.
"""

from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict, Field

PRIMARY_BRANCH_REFS = ("refs/heads/master", "refs/heads/main")
BRANCH_REF_PREFIX = "refs/heads/"


class WebhookAction(str, Enum):
    """Classified webhook actions.

    Attributes:
        INSTALL_CREATED: The GitHub App was installed on an account.
        REPO_ADDED: Repositories were connected to an existing installation.
        REPO_REMOVED: Repositories were disconnected from an installation.
        PUSH: A push delivery (GitHub sends no action field).
        NONE: Any other action; recognized but never processed.
    """

    INSTALL_CREATED = "created"
    REPO_ADDED = "added"
    REPO_REMOVED = "removed"
    PUSH = ""
    NONE = "none"


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore")


class Sender(_Payload):
    login: str = ""


class InstallationAccount(_Payload):
    id: int = 0
    type: str = ""
    login: str = ""


class Installation(_Payload):
    id: int = 0
    account: InstallationAccount = Field(default_factory=InstallationAccount)


class Repository(_Payload):
    """Repository descriptor embedded in push deliveries."""

    id: int = 0
    clone_url: str = ""
    full_name: str = ""
    private: bool = False


class InstalledRepository(_Payload):
    """A repository the deployer acts on.

    The first three fields come from the GitHub API; ``branch`` is managed
    by the deployer and stays empty until a push is observed.

    Attributes:
        id: GitHub repository id. Identity key.
        full_name: Repository path in format "{owner}/{repo}".
        private: Whether cloning requires an installation token.
        branch: Branch the repository was last pushed on.
    """

    id: int
    full_name: str
    private: bool = False
    branch: str = ""

    @property
    def clone_url(self) -> str:
        """Derive the HTTPS clone URL from the full name.

        Returns:
            str: URL in format "https://github.com/{owner}/{repo}.git"
        """
        return f"https://github.com/{self.full_name}.git"


class GithubWebhookEvent(_Payload):
    """Parsed GitHub App webhook delivery.

    Attributes:
        action: Raw action string; empty for push deliveries.
        after: Head commit SHA after a push; empty for other events.
        installation: The installation the delivery belongs to.
        sender: The user that triggered the delivery.
        repositories: Repositories granted when the app was installed.
        repositories_added: Repositories connected to the installation.
        repositories_removed: Repositories disconnected from the installation.
        ref: Full git ref of a push (e.g. "refs/heads/main").
        repository: Repository descriptor of a push.
    """

    action: str = ""
    after: str = ""
    installation: Installation = Field(default_factory=Installation)
    sender: Sender = Field(default_factory=Sender)

    repositories: List[InstalledRepository] = Field(default_factory=list)
    repositories_added: List[InstalledRepository] = Field(default_factory=list)
    repositories_removed: List[InstalledRepository] = Field(default_factory=list)

    ref: str = ""
    repository: Repository = Field(default_factory=Repository)

    @property
    def kind(self) -> WebhookAction:
        """Classify the raw action string."""
        if self.action == WebhookAction.NONE.value:
            return WebhookAction.NONE
        try:
            return WebhookAction(self.action)
        except ValueError:
            return WebhookAction.NONE

    @property
    def is_primary_branch_push(self) -> bool:
        return self.kind is WebhookAction.PUSH and self.ref in PRIMARY_BRANCH_REFS

    def repos_to_process(self) -> List[InstalledRepository]:
        """Derive the repositories this delivery should deploy.

        Returns:
            The installation's repositories for "created", the added
            repositories for "added", a single repository for a push to the
            primary branch, and an empty list for everything else.
        """
        kind = self.kind
        if kind is WebhookAction.INSTALL_CREATED:
            return list(self.repositories)
        if kind is WebhookAction.REPO_ADDED:
            return list(self.repositories_added)
        if kind is WebhookAction.PUSH:
            if not self.is_primary_branch_push:
                return []
            return [
                InstalledRepository(
                    id=self.repository.id,
                    full_name=self.repository.full_name,
                    private=self.repository.private,
                    branch=self.ref[len(BRANCH_REF_PREFIX):],
                )
            ]
        return []
