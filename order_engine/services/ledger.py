"""
Payment Ledger

Owns payment rows. The unique index on payments.order_id is the backstop
for "at most one payment per order": the settlement coordinator checks for
an existing payment first, and this ledger turns the constraint violation
that fires when two requests race past that check into a Conflict.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from order_engine.core.errors import Conflict
from order_engine.models import Payment, PaymentStatus

logger = logging.getLogger(__name__)


class PaymentLedger:
    """Query/command access to payments. Never commits; callers own the unit of work."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_payment_for_order(self, order_id: str) -> Optional[Payment]:
        result = await self.db.execute(select(Payment).where(Payment.order_id == order_id))
        return result.scalar_one_or_none()

    async def get_payment(self, payment_id: str) -> Optional[Payment]:
        result = await self.db.execute(select(Payment).where(Payment.id == payment_id))
        return result.scalar_one_or_none()

    async def list_payments(self) -> list[Payment]:
        result = await self.db.execute(
            select(Payment).order_by(Payment.created_at.desc(), Payment.id)
        )
        return list(result.scalars().all())

    async def count_for_method(self, payment_method_id: str) -> int:
        result = await self.db.execute(
            select(func.count(Payment.id)).where(Payment.payment_method_id == payment_method_id)
        )
        return result.scalar() or 0

    async def create_payment(
        self,
        order_id: str,
        payment_method_id: str,
        amount: Decimal,
        transaction_ref: str,
        status: PaymentStatus = PaymentStatus.COMPLETED,
        created_at: Optional[datetime] = None,
    ) -> Payment:
        """
        Insert a payment and flush it so uniqueness is enforced immediately.

        After a violation the session must be rolled back by the caller's
        unit of work.

        Raises:
            Conflict: A payment for `order_id` (or this transaction_ref) exists
        """
        payment = Payment(
            order_id=order_id,
            payment_method_id=payment_method_id,
            amount=amount,
            status=status,
            transaction_ref=transaction_ref,
        )
        if created_at is not None:
            payment.created_at = created_at
            payment.updated_at = created_at

        self.db.add(payment)
        try:
            await self.db.flush()
        except IntegrityError as e:
            logger.warning(f"Duplicate payment rejected for order {order_id}: {e.orig}")
            raise Conflict("Order already has a payment") from e
        return payment
