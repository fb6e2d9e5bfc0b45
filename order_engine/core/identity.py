"""
Identity Context

The resolved caller of an operation. Token issuance and verification happen
upstream; the engine only ever sees the resolved `{id, role, tenant_id}`
triple, or None for an anonymous caller.
"""

import enum
from dataclasses import dataclass
from typing import Optional

from order_engine.core.errors import Unauthenticated


class Role(str, enum.Enum):
    """Closed set of caller roles."""
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    MEMBER = "MEMBER"


@dataclass(frozen=True)
class Caller:
    """
    An authenticated caller.

    Attributes:
        id: Opaque user identifier
        role: The caller's role
        tenant_id: Restaurant the caller belongs to (ADMINs usually have none)
    """
    id: str
    role: Role
    tenant_id: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def is_manager(self) -> bool:
        return self.role == Role.MANAGER


def require_caller(caller: Optional[Caller]) -> Caller:
    """Return the caller, or raise Unauthenticated for anonymous requests."""
    if caller is None:
        raise Unauthenticated()
    return caller


def resolve_caller(
    user_id: Optional[str],
    role: Optional[str],
    tenant_id: Optional[str] = None,
) -> Optional[Caller]:
    """
    Build a Caller from upstream-verified identity claims.

    A missing user id means anonymous. A role outside the closed set is
    treated as an unauthenticated identity rather than silently downgraded.
    """
    if not user_id:
        return None
    try:
        parsed_role = Role((role or "").upper())
    except ValueError:
        raise Unauthenticated(f"Unknown role: {role}")
    return Caller(id=user_id, role=parsed_role, tenant_id=tenant_id or None)
