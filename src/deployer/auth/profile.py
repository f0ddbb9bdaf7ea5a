"""Session-based profile resolution for authenticated endpoints."""

import logging
from typing import Optional

from fastapi import Request

from src.deployer.errors import DeployerError, ErrorCode
from src.deployer.store.models import User
from src.deployer.store.repository import (
    DeploymentStore,
    SessionNotFoundError,
    UserNotFoundError,
)


logger = logging.getLogger(__name__)

SESSION_COOKIE = "session"


def session_id_from_request(request: Request) -> Optional[str]:
    """Read the session id from the session cookie or a Bearer header."""
    session_id = request.cookies.get(SESSION_COOKIE)
    if session_id:
        return session_id

    authorization = request.headers.get("Authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return None


async def resolve_profile(store: DeploymentStore, session_id: Optional[str]) -> User:
    """Return the user owning a session.

    Raises:
        DeployerError: UNAUTHORIZED (401) when there is no session or it
            does not resolve to a user.
    """
    if not session_id:
        raise DeployerError(ErrorCode.UNAUTHORIZED, "Not authenticated", status_code=401)

    try:
        session = await store.get_session(session_id)
        return await store.get_user(session.user_id)
    except (SessionNotFoundError, UserNotFoundError) as e:
        raise DeployerError(
            ErrorCode.UNAUTHORIZED, "Invalid session", status_code=401
        ) from e
