"""Client-visible error type for the deployer HTTP surface.

Every failure surfaced to a caller carries a machine-readable code and a
human-readable message. The FastAPI application renders DeployerError as
``{"code": ..., "message": ...}`` with the attached HTTP status.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Machine-readable failure codes returned to callers."""

    UNKNOWN = "UNKNOWN"
    INVALID_PAYLOAD = "INVALID_PAYLOAD"
    UNAUTHORIZED = "UNAUTHORIZED"
    CODE_NOT_FOUND = "CODE_NOT_FOUND"
    STATE_NOT_FOUND = "STATE_NOT_FOUND"
    SAVE_AUTH_STATE_FAILED = "SAVE_AUTH_STATE_FAILED"
    TOKEN_EXCHANGE_FAILED = "TOKEN_EXCHANGE_FAILED"
    SAVE_TOKEN_FAILED = "SAVE_TOKEN_FAILED"
    GET_AUTH_URL = "GET_AUTH_URL"
    GET_USER_FAILED = "GET_USER_FAILED"
    CREATE_USER_FAILED = "CREATE_USER_FAILED"
    CREATE_SESSION_FAILED = "CREATE_SESSION_FAILED"
    LOGIN_FAILED = "LOGIN_FAILED"


class DeployerError(Exception):
    """Raised when a request fails with a client-visible error.

    Attributes:
        code: Machine-readable failure code.
        message: Human-readable description, usually the underlying cause.
        status_code: HTTP status the error maps to.
        details: Optional extra fields merged into the response body.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(f"{code.value}: {message}")

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code.value, "message": self.message, **self.details}


def unknown_error(exc: BaseException) -> DeployerError:
    """Wrap a downstream failure into the generic UNKNOWN error."""
    return DeployerError(ErrorCode.UNKNOWN, str(exc) or type(exc).__name__)
