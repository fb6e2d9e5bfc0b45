"""
Engine Error Taxonomy

Closed set of failures every core operation may raise. The transport layer
maps each kind to an HTTP status; nothing below the services layer leaks a
raw storage exception to callers.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Stable, machine-readable error kinds."""
    UNAUTHENTICATED = "UNAUTHENTICATED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    BAD_INPUT = "BAD_INPUT"
    CONFLICT = "CONFLICT"
    INTERNAL = "INTERNAL"


class EngineError(Exception):
    """Base exception for the order engine."""

    kind: ErrorKind = ErrorKind.INTERNAL
    http_status: int = 500
    default_reason: str = "Internal server error"

    def __init__(self, reason: Optional[str] = None) -> None:
        self.reason = reason or self.default_reason
        super().__init__(self.reason)

    def to_dict(self) -> dict:
        """Convert to the error body returned by the API."""
        return {
            "success": False,
            "error": self.kind.value,
            "detail": self.reason,
        }


class Unauthenticated(EngineError):
    """Raised when an operation is attempted without an identity."""

    kind = ErrorKind.UNAUTHENTICATED
    http_status = 401
    default_reason = "Not authenticated"


class Forbidden(EngineError):
    """Raised when the caller's role or scope does not cover the operation."""

    kind = ErrorKind.FORBIDDEN
    http_status = 403
    default_reason = "Access denied"


class NotFound(EngineError):
    """Raised when a resource does not exist or is outside the caller's scope."""

    kind = ErrorKind.NOT_FOUND
    http_status = 404
    default_reason = "Resource not found"


class BadInput(EngineError):
    """Raised when a request breaks a business rule."""

    kind = ErrorKind.BAD_INPUT
    http_status = 400
    default_reason = "Invalid input"


class Conflict(EngineError):
    """Raised when a uniqueness constraint or a concurrent writer wins a race."""

    kind = ErrorKind.CONFLICT
    http_status = 409
    default_reason = "Conflicting concurrent update"


class Internal(EngineError):
    """Raised when the store is unavailable or fails unexpectedly."""

    kind = ErrorKind.INTERNAL
    http_status = 500
