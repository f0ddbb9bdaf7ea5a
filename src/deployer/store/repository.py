"""Persistence interface and PostgreSQL implementation.

This module defines the DeploymentStore protocol the deployer depends on
and implements it with asyncpg. It provides:
- Connection pooling for production use
- Atomic transactions for multi-statement writes
- Single-use OAuth state consumption via DELETE ... RETURNING

The schema lives in migrations/001_deployer.sql.
"""

import logging
import secrets
import uuid
from contextlib import asynccontextmanager
from datetime import timedelta, timezone
from typing import Any, AsyncIterator, List, Optional, Protocol, runtime_checkable

import asyncpg

from src.deployer.store.models import (
    AppDefinition,
    Session,
    User,
    UserInfo,
    utc_now,
)
from src.deployer.webhook.models import InstalledRepository


logger = logging.getLogger(__name__)

DEFAULT_AUTH_STATE_TTL_SECONDS = 600


class DatabaseError(Exception):
    """Raised when a database operation fails.

    Attributes:
        message: Human-readable error description.
        original_error: The underlying exception, if any.
    """

    def __init__(
        self,
        message: str,
        original_error: Optional[Exception] = None,
    ):
        self.message = message
        self.original_error = original_error
        super().__init__(message)


class AuthStateNotFoundError(Exception):
    """Raised when an OAuth state is unknown, expired or already used."""

    def __init__(self, state: str):
        self.state = state
        super().__init__("auth state not found")


class UserNotFoundError(Exception):
    """Raised when no local user matches a lookup."""

    def __init__(self, key: str):
        self.key = key
        super().__init__("user not found")


class SessionNotFoundError(Exception):
    """Raised when a session token is unknown."""

    def __init__(self):
        super().__init__("session not found")


@runtime_checkable
class DeploymentStore(Protocol):
    """Protocol defining the persistence contract of the deployer."""

    async def link_github_installation(
        self,
        installation_id: int,
        account_login: str,
        repositories: List[InstalledRepository],
    ) -> None:
        ...

    async def save_deployment(self, app_def: AppDefinition) -> AppDefinition:
        """Persist a new deployment and return it with id and created_at set."""
        ...

    async def save_auth_state(self, email: str, state: str) -> None:
        ...

    async def consume_auth_state(self, state: str) -> str:
        """Atomically invalidate a state and return its email.

        Raises:
            AuthStateNotFoundError: If the state is unknown, expired or
                already consumed.
        """
        ...

    async def save_provider_token(self, email: str, access_token: str) -> None:
        ...

    async def get_user_by_email(self, email: str) -> User:
        """Raises UserNotFoundError when no user has this email."""
        ...

    async def get_user(self, user_id: str) -> User:
        ...

    async def create_user(self, info: UserInfo) -> User:
        ...

    async def create_session(self, user_id: str, intent: str, token: str) -> Session:
        ...

    async def get_session(self, session_id: str) -> Session:
        ...


def new_session_id() -> str:
    return secrets.token_urlsafe(32)


def _utc(value):
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class PostgresStore:
    """PostgreSQL implementation of the DeploymentStore protocol.

    Attributes:
        connection_string: PostgreSQL connection URL.
        auth_state_ttl_seconds: Validity window of OAuth states.
        min_pool_size: Minimum connections in pool.
        max_pool_size: Maximum connections in pool.

    Example:
        >>> async with PostgresStore("postgresql://...") as store:
        ...     email = await store.consume_auth_state(state)
    """

    def __init__(
        self,
        connection_string: str,
        auth_state_ttl_seconds: int = DEFAULT_AUTH_STATE_TTL_SECONDS,
        min_pool_size: int = 2,
        max_pool_size: int = 10,
    ):
        self.connection_string = connection_string
        self.auth_state_ttl_seconds = auth_state_ttl_seconds
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self._pool: Optional[asyncpg.Pool] = None

    @property
    def pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise DatabaseError(
                "Database pool not initialized. Call connect() first."
            )
        return self._pool

    async def connect(self) -> None:
        """Initialize the connection pool.

        Raises:
            DatabaseError: If connection fails.
        """
        if self._pool is not None:
            logger.warning("Connection pool already initialized")
            return

        try:
            logger.info(
                "Connecting to PostgreSQL",
                extra={
                    "min_pool_size": self.min_pool_size,
                    "max_pool_size": self.max_pool_size,
                },
            )
            self._pool = await asyncpg.create_pool(
                self.connection_string,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
            )
            logger.info("PostgreSQL connection pool established")
        except Exception as e:
            logger.error(
                "Failed to connect to PostgreSQL",
                extra={"error": str(e)},
            )
            raise DatabaseError(
                f"Failed to connect to PostgreSQL: {e}",
                original_error=e,
            ) from e

    async def disconnect(self) -> None:
        if self._pool is not None:
            logger.info("Closing PostgreSQL connection pool")
            await self._pool.close()
            self._pool = None

    async def __aenter__(self) -> "PostgresStore":
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.disconnect()

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[asyncpg.Connection]:
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                yield conn

    async def link_github_installation(
        self,
        installation_id: int,
        account_login: str,
        repositories: List[InstalledRepository],
    ) -> None:
        """Link an installation to the account that installed the app.

        Re-linking an installation replaces its account and repository set.
        """
        try:
            async with self._transaction() as conn:
                await conn.execute(
                    """
                    INSERT INTO github_installations (installation_id, account_login, linked_at)
                    VALUES ($1, $2, $3)
                    ON CONFLICT (installation_id)
                    DO UPDATE SET account_login = EXCLUDED.account_login,
                                  linked_at = EXCLUDED.linked_at
                    """,
                    installation_id,
                    account_login,
                    utc_now(),
                )
                await conn.execute(
                    "DELETE FROM installation_repositories WHERE installation_id = $1",
                    installation_id,
                )
                await conn.executemany(
                    """
                    INSERT INTO installation_repositories (
                        installation_id, repo_id, full_name, private
                    ) VALUES ($1, $2, $3, $4)
                    """,
                    [
                        (installation_id, repo.id, repo.full_name, repo.private)
                        for repo in repositories
                    ],
                )

            logger.info(
                "Linked GitHub installation",
                extra={
                    "installation_id": installation_id,
                    "account_login": account_login,
                    "repositories": len(repositories),
                },
            )
        except Exception as e:
            logger.error(
                "Failed to link GitHub installation",
                extra={"installation_id": installation_id, "error": str(e)},
            )
            raise DatabaseError(
                f"Failed to link GitHub installation: {e}",
                original_error=e,
            ) from e

    async def save_deployment(self, app_def: AppDefinition) -> AppDefinition:
        saved = app_def.model_copy(
            update={"id": uuid.uuid4().hex, "created_at": utc_now()}
        )
        try:
            async with self.pool.acquire() as conn:
                await conn.execute(
                    """
                    INSERT INTO deployments (
                        id, app_id, app, tag, sha, username, created_at
                    ) VALUES ($1, $2, $3, $4, $5, $6, $7)
                    """,
                    saved.id,
                    saved.app_id,
                    saved.app.model_dump_json(by_alias=True),
                    saved.tag,
                    saved.sha,
                    saved.user,
                    saved.created_at,
                )
        except Exception as e:
            logger.error(
                "Failed to save deployment",
                extra={"app_id": saved.app_id, "error": str(e)},
            )
            raise DatabaseError(
                f"Failed to save deployment: {e}",
                original_error=e,
            ) from e

        logger.info(
            "Saved deployment",
            extra={"deployment_id": saved.id, "app_id": saved.app_id, "sha": saved.sha},
        )
        return saved

    async def save_auth_state(self, email: str, state: str) -> None:
        """Store a new state and delete states past their TTL."""
        now = utc_now()
        cutoff = now - timedelta(seconds=self.auth_state_ttl_seconds)
        try:
            async with self.pool.acquire() as conn:
                await conn.execute(
                    "DELETE FROM auth_states WHERE created_at <= $1",
                    cutoff,
                )
                await conn.execute(
                    """
                    INSERT INTO auth_states (state, email, created_at)
                    VALUES ($1, $2, $3)
                    """,
                    state,
                    email,
                    now,
                )
        except Exception as e:
            logger.error(
                "Failed to save auth state",
                extra={"email": email, "error": str(e)},
            )
            raise DatabaseError(
                f"Failed to save auth state: {e}",
                original_error=e,
            ) from e

    async def consume_auth_state(self, state: str) -> str:
        """Delete the state and return its email in a single statement.

        Concurrent callbacks carrying the same state race on the DELETE;
        only one of them gets the row back.
        """
        cutoff = utc_now() - timedelta(seconds=self.auth_state_ttl_seconds)
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    DELETE FROM auth_states
                    WHERE state = $1
                    RETURNING email, created_at
                    """,
                    state,
                )
        except Exception as e:
            logger.error(
                "Failed to consume auth state",
                extra={"error": str(e)},
            )
            raise DatabaseError(
                f"Failed to consume auth state: {e}",
                original_error=e,
            ) from e

        if row is None or _utc(row["created_at"]) <= cutoff:
            raise AuthStateNotFoundError(state)
        return row["email"]

    async def save_provider_token(self, email: str, access_token: str) -> None:
        try:
            async with self.pool.acquire() as conn:
                await conn.execute(
                    """
                    INSERT INTO provider_tokens (email, access_token, updated_at)
                    VALUES ($1, $2, $3)
                    ON CONFLICT (email)
                    DO UPDATE SET access_token = EXCLUDED.access_token,
                                  updated_at = EXCLUDED.updated_at
                    """,
                    email,
                    access_token,
                    utc_now(),
                )
        except Exception as e:
            logger.error(
                "Failed to save provider token",
                extra={"email": email, "error": str(e)},
            )
            raise DatabaseError(
                f"Failed to save provider token: {e}",
                original_error=e,
            ) from e

    async def _fetch_user(self, column: str, value: str) -> User:
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"SELECT id, email, display_name, created_at FROM users WHERE {column} = $1",
                    value,
                )
        except Exception as e:
            raise DatabaseError(
                f"Failed to get user: {e}",
                original_error=e,
            ) from e
        if row is None:
            raise UserNotFoundError(value)
        return User(
            id=row["id"],
            email=row["email"],
            display_name=row["display_name"],
            created_at=_utc(row["created_at"]),
        )

    async def get_user_by_email(self, email: str) -> User:
        return await self._fetch_user("email", email)

    async def get_user(self, user_id: str) -> User:
        return await self._fetch_user("id", user_id)

    async def create_user(self, info: UserInfo) -> User:
        user = User(id=uuid.uuid4().hex, email=info.email, display_name=info.display_name)
        try:
            async with self.pool.acquire() as conn:
                await conn.execute(
                    """
                    INSERT INTO users (id, email, display_name, created_at)
                    VALUES ($1, $2, $3, $4)
                    """,
                    user.id,
                    user.email,
                    user.display_name,
                    user.created_at,
                )
        except Exception as e:
            logger.error(
                "Failed to create user",
                extra={"email": info.email, "error": str(e)},
            )
            raise DatabaseError(
                f"Failed to create user: {e}",
                original_error=e,
            ) from e
        return user

    async def create_session(self, user_id: str, intent: str, token: str) -> Session:
        session = Session(id=new_session_id(), user_id=user_id, intent=intent, token=token)
        try:
            async with self.pool.acquire() as conn:
                await conn.execute(
                    """
                    INSERT INTO sessions (id, user_id, intent, token, created_at)
                    VALUES ($1, $2, $3, $4, $5)
                    """,
                    session.id,
                    session.user_id,
                    session.intent,
                    session.token,
                    session.created_at,
                )
        except Exception as e:
            raise DatabaseError(
                f"Failed to create session: {e}",
                original_error=e,
            ) from e
        return session

    async def get_session(self, session_id: str) -> Session:
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    SELECT id, user_id, intent, token, created_at
                    FROM sessions
                    WHERE id = $1
                    """,
                    session_id,
                )
        except Exception as e:
            raise DatabaseError(
                f"Failed to get session: {e}",
                original_error=e,
            ) from e
        if row is None:
            raise SessionNotFoundError()
        return Session(
            id=row["id"],
            user_id=row["user_id"],
            intent=row["intent"],
            token=row["token"],
            created_at=_utc(row["created_at"]),
        )

    async def health_check(self) -> bool:
        try:
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
                return True
        except Exception as e:
            logger.warning(
                "Database health check failed",
                extra={"error": str(e)},
            )
            return False
