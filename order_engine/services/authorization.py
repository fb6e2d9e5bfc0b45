"""
Authorization Guard

Every role check in the engine goes through the POLICY table below and the
`authorize()` function that evaluates it. The table maps an operation and a
role to the scope of resources that role may act on; a role missing from an
operation's row is denied outright.

Scopes:
    ANY        - every resource
    TENANT     - resources of the caller's own tenant
    OWN        - resources owned by the caller
    OWN_EARLY  - resources owned by the caller while still in an early status
    SELF       - resources the caller creates for themselves, inside their
                 tenant when they belong to one

Example:
    >>> decision = authorize(Operation.PROCESS_PAYMENT, member)
    >>> decision.allowed
    False
    >>> decision.reason
    'Only admins and managers can process payments'
"""

import enum
from dataclasses import dataclass
from typing import Optional

from order_engine.core.errors import Forbidden, Unauthenticated
from order_engine.core.identity import Caller, Role
from order_engine.models import OrderStatus
from order_engine.services.order_status import EARLY_STATUSES


class Operation(str, enum.Enum):
    CREATE_ORDER = "createOrder"
    VIEW_ORDER = "getOrder"
    LIST_ORDERS = "orders"
    UPDATE_ORDER_STATUS = "updateOrderStatus"
    CANCEL_ORDER = "cancelOrder"
    MANAGE_PAYMENT_METHODS = "managePaymentMethods"
    LIST_PAYMENT_METHODS = "paymentMethods"
    PROCESS_PAYMENT = "processPayment"
    LIST_PAYMENTS = "payments"
    VIEW_PAYMENT = "payment"


class Scope(str, enum.Enum):
    ANY = "any"
    TENANT = "tenant"
    OWN = "own"
    OWN_EARLY = "own_early"
    SELF = "self"


@dataclass(frozen=True)
class Target:
    """The resource an operation acts on, as far as authorization cares."""
    tenant_id: Optional[str] = None
    owner_id: Optional[str] = None
    status: Optional[OrderStatus] = None


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[str] = None
    scope: Optional[Scope] = None


POLICY: dict[Operation, dict[Role, Scope]] = {
    Operation.CREATE_ORDER: {
        Role.ADMIN: Scope.ANY,
        Role.MANAGER: Scope.SELF,
        Role.MEMBER: Scope.SELF,
    },
    Operation.VIEW_ORDER: {
        Role.ADMIN: Scope.ANY,
        Role.MANAGER: Scope.TENANT,
        Role.MEMBER: Scope.OWN,
    },
    Operation.LIST_ORDERS: {
        Role.ADMIN: Scope.ANY,
        Role.MANAGER: Scope.TENANT,
        Role.MEMBER: Scope.OWN,
    },
    Operation.UPDATE_ORDER_STATUS: {
        Role.ADMIN: Scope.ANY,
        Role.MANAGER: Scope.TENANT,
    },
    Operation.CANCEL_ORDER: {
        Role.ADMIN: Scope.ANY,
        Role.MANAGER: Scope.TENANT,
        Role.MEMBER: Scope.OWN_EARLY,
    },
    Operation.MANAGE_PAYMENT_METHODS: {
        Role.ADMIN: Scope.ANY,
    },
    Operation.LIST_PAYMENT_METHODS: {
        Role.ADMIN: Scope.ANY,
        Role.MANAGER: Scope.TENANT,
    },
    Operation.PROCESS_PAYMENT: {
        Role.ADMIN: Scope.ANY,
        Role.MANAGER: Scope.TENANT,
    },
    Operation.LIST_PAYMENTS: {
        Role.ADMIN: Scope.ANY,
    },
    Operation.VIEW_PAYMENT: {
        Role.ADMIN: Scope.ANY,
        Role.MANAGER: Scope.OWN,
        Role.MEMBER: Scope.OWN,
    },
}

ROLE_DENIALS: dict[Operation, str] = {
    Operation.UPDATE_ORDER_STATUS: "Members cannot update order status",
    Operation.MANAGE_PAYMENT_METHODS: "Admin access required to manage payment methods",
    Operation.LIST_PAYMENT_METHODS: "Only admins and managers can access payment methods",
    Operation.PROCESS_PAYMENT: "Only admins and managers can process payments",
    Operation.LIST_PAYMENTS: "Admin access required",
}

SCOPE_DENIALS: dict[Operation, str] = {
    Operation.CREATE_ORDER: "Cannot order from this restaurant",
    Operation.VIEW_ORDER: "Access denied to this order",
    Operation.UPDATE_ORDER_STATUS: "Access denied to this order",
    Operation.CANCEL_ORDER: "Order can no longer be cancelled by its owner",
    Operation.LIST_PAYMENT_METHODS: "Access denied to this restaurant's payment methods",
    Operation.PROCESS_PAYMENT: "Access denied to this order",
    Operation.VIEW_PAYMENT: "Access denied",
}


def _in_scope(scope: Scope, caller: Caller, target: Target) -> bool:
    if scope == Scope.ANY:
        return True
    if scope == Scope.TENANT:
        return caller.tenant_id is not None and caller.tenant_id == target.tenant_id
    if scope == Scope.OWN:
        return target.owner_id == caller.id
    if scope == Scope.OWN_EARLY:
        return target.owner_id == caller.id and target.status in EARLY_STATUSES
    if scope == Scope.SELF:
        if target.owner_id != caller.id:
            return False
        return caller.tenant_id is None or caller.tenant_id == target.tenant_id
    return False


def authorize(
    operation: Operation,
    caller: Optional[Caller],
    target: Optional[Target] = None,
) -> Decision:
    """
    Decide whether `caller` may perform `operation` on `target`.

    Without a target only role membership is checked; the returned decision
    then carries the scope the caller is limited to, which list operations
    turn into query filters.

    Args:
        operation: The operation being attempted
        caller: Resolved identity, None when anonymous
        target: The resource acted upon, if any

    Returns:
        Decision: allowed flag, denial reason and granted scope
    """
    if caller is None:
        return Decision(False, "Not authenticated")

    scope = POLICY[operation].get(caller.role)
    if scope is None:
        return Decision(False, ROLE_DENIALS.get(operation, "Access denied"))

    if target is not None and not _in_scope(scope, caller, target):
        return Decision(False, SCOPE_DENIALS.get(operation, "Access denied"), scope)

    return Decision(True, None, scope)


def require(
    operation: Operation,
    caller: Optional[Caller],
    target: Optional[Target] = None,
) -> Scope:
    """
    Raising form of `authorize()`.

    Returns:
        Scope: The scope granted to the caller

    Raises:
        Unauthenticated: Anonymous caller
        Forbidden: Role or scope does not cover the operation
    """
    if caller is None:
        raise Unauthenticated()
    decision = authorize(operation, caller, target)
    if not decision.allowed:
        raise Forbidden(decision.reason)
    return decision.scope
