"""
Core module initialization.
Exports configuration, identity and error types.
"""

from order_engine.core.config import get_settings, Settings, EnvironmentMode
from order_engine.core.errors import (
    EngineError,
    ErrorKind,
    Unauthenticated,
    Forbidden,
    NotFound,
    BadInput,
    Conflict,
    Internal,
)
from order_engine.core.identity import Caller, Role

__all__ = [
    "get_settings",
    "Settings",
    "EnvironmentMode",
    "EngineError",
    "ErrorKind",
    "Unauthenticated",
    "Forbidden",
    "NotFound",
    "BadInput",
    "Conflict",
    "Internal",
    "Caller",
    "Role",
]
