"""
Settlement Coordinator

Applies a payment to an order at most once.

Preconditions are checked in a fixed order, each with its own failure:

    1. caller authenticated                         -> Unauthenticated
    2. caller is ADMIN or MANAGER                   -> Forbidden
    3. order exists and is in the caller's scope    -> NotFound("Order not found")
    4. payment method exists in the order's tenant  -> NotFound("Payment method not found")
    5. no payment recorded for the order yet        -> BadInput("Order already has a payment")
    6. order is still PENDING                       -> BadInput
    7. amount equals the order total within 0.01    -> BadInput

Then, as one unit of work: insert the payment, settle it with the provider,
advance the order one status step, commit. The order row is locked from
step 3 onward; the unique index on payments.order_id is the backstop when
two requests still race past the pre-check, and surfaces as Conflict.
"""

import logging
import time
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from order_engine.core import audit
from order_engine.core.errors import BadInput, Internal, NotFound
from order_engine.core.identity import Caller, require_caller
from order_engine.database import atomic
from order_engine.models import Order, Payment, PaymentMethod, PaymentStatus
from order_engine.services.authorization import Operation, authorize, require
from order_engine.services.cache import BaseCacheService, order_keys
from order_engine.services.ledger import PaymentLedger
from order_engine.services.order_status import PAYABLE_STATUS, next_status
from order_engine.services.orders import order_target
from order_engine.services.payment import BaseSettlementProvider, get_settlement_provider

logger = logging.getLogger(__name__)

# Currency rounding tolerance between submitted amount and stored total
AMOUNT_TOLERANCE = Decimal("0.01")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_transaction_ref() -> str:
    """Server-side transaction reference: txn_<epoch ms>_<12 hex>."""
    return f"txn_{int(time.time() * 1000)}_{uuid.uuid4().hex[:12]}"


class SettlementCoordinator:
    """
    Orchestrates processPayment.

    Args:
        db: Session the settlement unit of work runs in
        cache: Read-view cache invalidated after a successful settlement
        provider: Settlement strategy (defaults to the configured provider)
        clock: Source of timestamps
        ref_factory: Source of unique transaction references
    """

    def __init__(
        self,
        db: AsyncSession,
        cache: Optional[BaseCacheService] = None,
        provider: Optional[BaseSettlementProvider] = None,
        clock: Callable[[], datetime] = utcnow,
        ref_factory: Callable[[], str] = generate_transaction_ref,
    ):
        self.db = db
        self.cache = cache
        self.provider = provider or get_settlement_provider()
        self.clock = clock
        self.ref_factory = ref_factory
        self.ledger = PaymentLedger(db)

    async def process_payment(
        self,
        order_id: str,
        payment_method_id: str,
        amount: Union[Decimal, str, int],
        caller: Optional[Caller],
    ) -> Payment:
        """
        Settle `order_id` with `payment_method_id` for `amount`.

        Returns:
            Payment: The completed payment

        Raises:
            Unauthenticated, Forbidden, NotFound, BadInput: see module docstring
            Conflict: A concurrent settlement for the same order won
            Internal: Store or provider failure; nothing was written
        """
        with audit.track(
            "processPayment",
            caller,
            order_id,
            payment_method_id=payment_method_id,
            amount=str(amount),
        ) as entry:
            caller = require_caller(caller)
            require(Operation.PROCESS_PAYMENT, caller)
            amount = Decimal(str(amount))

            async with atomic(self.db):
                order = await self.db.get(
                    Order, order_id, with_for_update=True, populate_existing=True
                )
                if order is None or not authorize(
                    Operation.PROCESS_PAYMENT, caller, order_target(order)
                ).allowed:
                    raise NotFound("Order not found")

                method = await self.db.get(PaymentMethod, payment_method_id)
                if method is None or method.tenant_id != order.tenant_id:
                    raise NotFound("Payment method not found")

                existing = await self.ledger.find_payment_for_order(order.id)
                if existing is not None:
                    entry["existing_payment_id"] = existing.id
                    raise BadInput("Order already has a payment")

                if order.status != PAYABLE_STATUS:
                    raise BadInput(f"Order cannot be paid in status {order.status.value}")

                if abs(amount - order.total_amount) > AMOUNT_TOLERANCE:
                    entry["expected_amount"] = str(order.total_amount)
                    raise BadInput("Payment amount does not match order total")

                now = self.clock()
                transaction_ref = self.ref_factory()
                payment = await self.ledger.create_payment(
                    order_id=order.id,
                    payment_method_id=method.id,
                    amount=order.total_amount,
                    transaction_ref=transaction_ref,
                    status=PaymentStatus.COMPLETED,
                    created_at=now,
                )
                payment.order = order
                payment.method = method

                try:
                    result = await self.provider.settle(
                        payment.amount,
                        transaction_ref,
                        metadata={"order_id": order.id, "tenant_id": order.tenant_id},
                    )
                except Exception as e:
                    logger.exception(f"Settlement provider failed for {transaction_ref}")
                    raise Internal("Settlement provider failure") from e
                if not result.success:
                    raise BadInput(f"Payment was declined: {result.error_message}")

                previous = order.status
                order.status = next_status(previous)
                order.updated_at = now

            entry["payment_id"] = payment.id
            entry["transaction_ref"] = transaction_ref
            entry["provider_reference"] = result.provider_reference
            logger.info(
                f"Payment {payment.id} settled for order {order.id}: "
                f"${payment.amount} ({self.provider.provider_name} {result.provider_reference}), "
                f"{previous.value} -> {order.status.value}"
            )

            if self.cache is not None:
                await self.cache.invalidate(
                    order_keys(order.id, order.user_id, caller.id, tenant_id=order.tenant_id)
                    + ["payments:*"]
                )
            return payment
