"""Persistent record models.

This module defines the records the deployer stores:
- AppDefinition: One successful deployment run; immutable once created
- GithubInstallationLink: GitHub App installation owned by an account
- AuthState: Single-use OAuth correlation token
- User / Session: Local accounts and their login sessions

The models use Pydantic for validation, consistent with webhook/models.py.
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from src.deployer.extractor.models import AppSpec
from src.deployer.webhook.models import InstalledRepository


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AppDefinition(BaseModel):
    """A deployment record.

    New deployments always create new records; existing ones are never
    updated, so repeated deliveries of the same commit yield separate
    records.

    Attributes:
        id: Assigned by the store on save; empty before that.
        app_id: Identifier of the deployed application.
        app: The extracted application spec.
        tag: Tag of the built image.
        sha: Commit SHA that triggered the deployment; empty outside pushes.
        user: GitHub login of the user who triggered the deployment.
        created_at: When the record was created (UTC).
    """

    model_config = ConfigDict(frozen=True)

    id: str = ""
    app_id: str = ""
    app: AppSpec
    tag: str
    sha: str = ""
    user: str = ""
    created_at: datetime = Field(default_factory=utc_now)


class GithubInstallationLink(BaseModel):
    installation_id: int
    account_login: str
    repositories: List[InstalledRepository] = Field(default_factory=list)
    linked_at: datetime = Field(default_factory=utc_now)


class AuthState(BaseModel):
    """OAuth correlation state binding a state token to an email.

    Attributes:
        state: Random opaque token sent to the provider.
        email: Email of the user that initiated the flow.
        created_at: When the state was issued (UTC).
    """

    state: str
    email: str
    created_at: datetime = Field(default_factory=utc_now)

    def is_expired(self, ttl_seconds: int, now: Optional[datetime] = None) -> bool:
        now = now or utc_now()
        return now - self.created_at >= timedelta(seconds=ttl_seconds)


class User(BaseModel):
    id: str
    email: str
    display_name: str = ""
    created_at: datetime = Field(default_factory=utc_now)


class Session(BaseModel):
    """A login session binding a local user to an identity provider intent.

    Attributes:
        id: Opaque session token handed to the client.
        user_id: Local user the session belongs to.
        intent: Identity provider login intent id.
        token: Identity provider intent token.
        created_at: When the session was established (UTC).
    """

    id: str
    user_id: str
    intent: str
    token: str
    created_at: datetime = Field(default_factory=utc_now)


class UserInfo(BaseModel):
    """Identity resolved from the identity provider.

    Attributes:
        id: User id at the identity provider.
        email: Verified email address; the key local users are matched on.
        display_name: Human-readable name.
    """

    id: str
    email: str
    display_name: str = ""
