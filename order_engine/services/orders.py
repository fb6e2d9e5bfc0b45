"""
Order Service

Creates orders from a cart, reads them back under ownership filtering and
moves them through the status state machine. Every multi-row write commits
as one unit; line items are never visible without their order.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from order_engine.core import audit
from order_engine.core.errors import BadInput, Forbidden, NotFound
from order_engine.core.identity import Caller, require_caller
from order_engine.database import atomic
from order_engine.models import MenuItem, Order, OrderItem, OrderStatus
from order_engine.schemas import OrderItemCreate
from order_engine.services.authorization import (
    Operation,
    Scope,
    Target,
    authorize,
    require,
)
from order_engine.services.cache import BaseCacheService, order_keys
from order_engine.services.order_status import validate_transition

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def order_target(order: Order) -> Target:
    return Target(tenant_id=order.tenant_id, owner_id=order.user_id, status=order.status)


@dataclass
class CartLine:
    """A cart line after duplicate menu items have been merged."""
    menu_item_id: str
    quantity: int
    notes: Optional[str] = None


def merge_cart(items: Sequence[OrderItemCreate]) -> list[CartLine]:
    """Collapse repeated menu items into one line, summing quantities."""
    merged: dict[str, CartLine] = {}
    for item in items:
        if item.quantity <= 0:
            raise BadInput(f"Quantity for menu item {item.menu_item_id} must be positive")
        line = merged.get(item.menu_item_id)
        if line is None:
            merged[item.menu_item_id] = CartLine(item.menu_item_id, item.quantity, item.notes)
        else:
            line.quantity += item.quantity
            if item.notes:
                line.notes = f"{line.notes}; {item.notes}" if line.notes else item.notes
    return list(merged.values())


class OrderService:
    """
    Order aggregate store.

    Args:
        db: Session the unit of work runs in
        cache: Read-view cache to invalidate after writes
        clock: Source of timestamps
    """

    def __init__(
        self,
        db: AsyncSession,
        cache: Optional[BaseCacheService] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.cache = cache
        self.clock = clock

    async def _invalidate(self, order: Order, *user_ids: str) -> None:
        if self.cache is not None:
            await self.cache.invalidate(
                order_keys(order.id, order.user_id, *user_ids, tenant_id=order.tenant_id)
            )

    async def _load(self, order_id: str, for_update: bool = False) -> Optional[Order]:
        query = select(Order).where(Order.id == order_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def _load_visible(self, order_id: str, caller: Caller, for_update: bool = False) -> Order:
        """Load an order the caller may see; anything else is reported as missing."""
        order = await self._load(order_id, for_update=for_update)
        if order is None or not authorize(Operation.VIEW_ORDER, caller, order_target(order)).allowed:
            raise NotFound("Order not found")
        return order

    # =========================================================================
    # CREATE
    # =========================================================================

    async def create_order(
        self,
        caller: Optional[Caller],
        tenant_id: str,
        items: Sequence[OrderItemCreate],
        phone: str,
        special_instructions: Optional[str] = None,
    ) -> Order:
        """
        Place an order for the caller from a non-empty cart.

        Prices are read from the catalog inside the same transaction that
        writes the order, and copied onto each line item. The total is
        computed here; the client never supplies it.

        Raises:
            Unauthenticated: Anonymous caller
            Forbidden: Caller may not order from this tenant
            BadInput: Empty cart, unavailable or foreign menu item
            NotFound: Unknown menu item
        """
        with audit.track("createOrder", caller, tenant_id=tenant_id) as entry:
            caller = require_caller(caller)
            require(
                Operation.CREATE_ORDER,
                caller,
                Target(tenant_id=tenant_id, owner_id=caller.id),
            )
            if not items:
                raise BadInput("Order must contain at least one item")
            lines = merge_cart(items)

            async with atomic(self.db):
                menu_ids = [line.menu_item_id for line in lines]
                result = await self.db.execute(
                    select(MenuItem)
                    .where(MenuItem.id.in_(menu_ids))
                    .with_for_update(read=True)
                )
                catalog = {item.id: item for item in result.scalars().all()}

                total = Decimal("0")
                order_items = []
                for line in lines:
                    menu_item = catalog.get(line.menu_item_id)
                    if menu_item is None:
                        raise NotFound(f"Menu item {line.menu_item_id} not found")
                    if menu_item.tenant_id != tenant_id:
                        raise BadInput(
                            f"Menu item {line.menu_item_id} does not belong to this restaurant"
                        )
                    if not menu_item.is_available:
                        raise BadInput(f"Menu item {line.menu_item_id} is not available")

                    unit_price = Decimal(menu_item.price).quantize(CENT)
                    total += unit_price * line.quantity
                    order_items.append(
                        OrderItem(
                            menu_item_id=menu_item.id,
                            quantity=line.quantity,
                            unit_price=unit_price,
                            notes=line.notes,
                        )
                    )

                now = self.clock()
                order = Order(
                    user_id=caller.id,
                    tenant_id=tenant_id,
                    phone=phone,
                    special_instructions=special_instructions,
                    total_amount=total.quantize(CENT),
                    status=OrderStatus.PENDING,
                    created_at=now,
                    updated_at=now,
                    items=order_items,
                )
                self.db.add(order)
                await self.db.flush()

            entry["resource_id"] = order.id
            entry["total_amount"] = str(order.total_amount)
            entry["item_count"] = len(order_items)
            logger.info(f"Order {order.id} created for {caller.id}: ${order.total_amount}")

            await self._invalidate(order)
            return order

    # =========================================================================
    # READ
    # =========================================================================

    async def get_order(self, order_id: str, caller: Optional[Caller]) -> Order:
        """
        Fetch one order. Non-admins only see orders within their scope;
        everything else is reported as not found.
        """
        with audit.track("getOrder", caller, order_id):
            caller = require_caller(caller)
            async with atomic(self.db):
                return await self._load_visible(order_id, caller)

    async def list_orders(
        self,
        caller: Optional[Caller],
        skip: int = 0,
        limit: int = 20,
        status: Optional[OrderStatus] = None,
    ) -> tuple[int, list[Order]]:
        """
        List orders newest first: everything for admins, the tenant's orders
        for managers, the caller's own orders for members.

        Returns:
            (total matching, page of orders)
        """
        with audit.track("orders", caller, status=status.value if status else None) as entry:
            caller = require_caller(caller)
            scope = require(Operation.LIST_ORDERS, caller)

            query = select(Order).order_by(Order.created_at.desc(), Order.id)
            count_query = select(func.count(Order.id))

            conditions = []
            if scope == Scope.TENANT:
                conditions.append(Order.tenant_id == caller.tenant_id)
            elif scope == Scope.OWN:
                conditions.append(Order.user_id == caller.id)
            if status is not None:
                conditions.append(Order.status == status)
            if conditions:
                query = query.where(*conditions)
                count_query = count_query.where(*conditions)

            async with atomic(self.db):
                total = (await self.db.execute(count_query)).scalar() or 0
                result = await self.db.execute(query.offset(skip).limit(limit))
                orders = list(result.scalars().all())
            entry["total"] = total
            return total, orders

    # =========================================================================
    # STATUS TRANSITIONS
    # =========================================================================

    async def transition_status(
        self,
        order_id: str,
        target_status: OrderStatus,
        caller: Optional[Caller],
    ) -> Order:
        """
        Move an order to `target_status`.

        The row is locked for the duration of the check-and-write so two
        concurrent transitions cannot both pass validation.

        Raises:
            Forbidden: Members, or managers outside the order's tenant
            NotFound: Order does not exist or is not visible
            BadInput: Transition not allowed by the state machine
        """
        with audit.track("updateOrderStatus", caller, order_id, target=target_status.value) as entry:
            caller = require_caller(caller)
            require(Operation.UPDATE_ORDER_STATUS, caller)

            async with atomic(self.db):
                order = await self._load_visible(order_id, caller, for_update=True)
                require(Operation.UPDATE_ORDER_STATUS, caller, order_target(order))
                previous = order.status
                validate_transition(previous, target_status)
                order.status = target_status
                order.updated_at = self.clock()

            entry["previous"] = previous.value
            logger.info(f"Order {order.id}: {previous.value} -> {target_status.value}")
            await self._invalidate(order, caller.id)
            return order

    async def cancel_order(self, order_id: str, caller: Optional[Caller]) -> Order:
        """
        Cancel an order.

        Admins and the tenant's managers may cancel any non-terminal order;
        the ordering member only while it is still in an early status.
        """
        with audit.track("cancelOrder", caller, order_id) as entry:
            caller = require_caller(caller)
            require(Operation.CANCEL_ORDER, caller)

            async with atomic(self.db):
                order = await self._load_visible(order_id, caller, for_update=True)
                decision = authorize(Operation.CANCEL_ORDER, caller, order_target(order))
                if not decision.allowed:
                    raise Forbidden(decision.reason)
                previous = order.status
                validate_transition(previous, OrderStatus.CANCELLED)
                order.status = OrderStatus.CANCELLED
                order.updated_at = self.clock()

            entry["previous"] = previous.value
            logger.info(f"Order {order.id} cancelled by {caller.id}")
            await self._invalidate(order, caller.id)
            return order
