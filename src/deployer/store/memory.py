"""In-memory DeploymentStore used for local runs and tests.

Nothing survives a restart. Single-use auth states rely on dict.pop,
which removes and returns in one step on the event loop.
"""

import logging
import uuid
from typing import Dict, List

from src.deployer.store.models import (
    AppDefinition,
    AuthState,
    GithubInstallationLink,
    Session,
    User,
    UserInfo,
    utc_now,
)
from src.deployer.store.repository import (
    DEFAULT_AUTH_STATE_TTL_SECONDS,
    AuthStateNotFoundError,
    SessionNotFoundError,
    UserNotFoundError,
    new_session_id,
)
from src.deployer.webhook.models import InstalledRepository

logger = logging.getLogger(__name__)


class InMemoryStore:
    """Dictionary-backed implementation of the DeploymentStore protocol."""

    def __init__(self, auth_state_ttl_seconds: int = DEFAULT_AUTH_STATE_TTL_SECONDS):
        self.auth_state_ttl_seconds = auth_state_ttl_seconds
        self.installations: Dict[int, GithubInstallationLink] = {}
        self.deployments: List[AppDefinition] = []
        self.auth_states: Dict[str, AuthState] = {}
        self.provider_tokens: Dict[str, str] = {}
        self.users: Dict[str, User] = {}
        self.sessions: Dict[str, Session] = {}

    async def link_github_installation(
        self,
        installation_id: int,
        account_login: str,
        repositories: List[InstalledRepository],
    ) -> None:
        self.installations[installation_id] = GithubInstallationLink(
            installation_id=installation_id,
            account_login=account_login,
            repositories=list(repositories),
        )

    async def save_deployment(self, app_def: AppDefinition) -> AppDefinition:
        saved = app_def.model_copy(
            update={"id": uuid.uuid4().hex, "created_at": utc_now()}
        )
        self.deployments.append(saved)
        return saved

    async def save_auth_state(self, email: str, state: str) -> None:
        expired = [
            key
            for key, auth_state in self.auth_states.items()
            if auth_state.is_expired(self.auth_state_ttl_seconds)
        ]
        for key in expired:
            del self.auth_states[key]
        self.auth_states[state] = AuthState(state=state, email=email)

    async def consume_auth_state(self, state: str) -> str:
        auth_state = self.auth_states.pop(state, None)
        if auth_state is None or auth_state.is_expired(self.auth_state_ttl_seconds):
            raise AuthStateNotFoundError(state)
        return auth_state.email

    async def save_provider_token(self, email: str, access_token: str) -> None:
        self.provider_tokens[email] = access_token

    async def get_user_by_email(self, email: str) -> User:
        for user in self.users.values():
            if user.email == email:
                return user
        raise UserNotFoundError(email)

    async def get_user(self, user_id: str) -> User:
        try:
            return self.users[user_id]
        except KeyError:
            raise UserNotFoundError(user_id)

    async def create_user(self, info: UserInfo) -> User:
        user = User(id=uuid.uuid4().hex, email=info.email, display_name=info.display_name)
        self.users[user.id] = user
        return user

    async def create_session(self, user_id: str, intent: str, token: str) -> Session:
        session = Session(id=new_session_id(), user_id=user_id, intent=intent, token=token)
        self.sessions[session.id] = session
        return session

    async def get_session(self, session_id: str) -> Session:
        try:
            return self.sessions[session_id]
        except KeyError:
            raise SessionNotFoundError()

    async def health_check(self) -> bool:
        return True
