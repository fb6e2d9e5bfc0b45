"""
Order Status State Machine

    PENDING -> CONFIRMED -> PREPARING -> READY -> DELIVERED
       |           |            |          |
       +-----------+------------+----------+--> CANCELLED

DELIVERED and CANCELLED are terminal.
"""

from typing import Optional

from order_engine.core.errors import BadInput
from order_engine.models import OrderStatus

TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PREPARING, OrderStatus.CANCELLED}),
    OrderStatus.PREPARING: frozenset({OrderStatus.READY, OrderStatus.CANCELLED}),
    OrderStatus.READY: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

FORWARD: dict[OrderStatus, OrderStatus] = {
    OrderStatus.PENDING: OrderStatus.CONFIRMED,
    OrderStatus.CONFIRMED: OrderStatus.PREPARING,
    OrderStatus.PREPARING: OrderStatus.READY,
    OrderStatus.READY: OrderStatus.DELIVERED,
}

# Statuses in which the ordering member may still cancel on their own
EARLY_STATUSES = frozenset({OrderStatus.PENDING})

# Only unpaid orders can be settled
PAYABLE_STATUS = OrderStatus.PENDING


def is_terminal(status: OrderStatus) -> bool:
    return not TRANSITIONS[status]


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    """Check whether `current -> target` is an edge of the state machine."""
    return target in TRANSITIONS[current]


def validate_transition(current: OrderStatus, target: OrderStatus) -> None:
    """Raise BadInput unless `current -> target` is allowed."""
    if not can_transition(current, target):
        raise BadInput(
            f"Invalid status transition from {current.value} to {target.value}"
        )


def next_status(current: OrderStatus) -> Optional[OrderStatus]:
    """The single forward step from `current`, or None at the end of the line."""
    return FORWARD.get(current)
