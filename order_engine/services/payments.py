"""
Payment Method & Payment Query Services

Administration of stored payment methods (admin only) and read access to
settled payments. Setting a default payment method unsets every other
default of the same tenant inside the same transaction, so a tenant never
has zero-or-many defaults visible mid-update.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from order_engine.core import audit
from order_engine.core.errors import BadInput, Forbidden, NotFound
from order_engine.core.identity import Caller, require_caller
from order_engine.database import atomic
from order_engine.models import Payment, PaymentMethod
from order_engine.schemas import PaymentMethodCreate
from order_engine.services.authorization import (
    Operation,
    Scope,
    Target,
    authorize,
    require,
)
from order_engine.services.ledger import PaymentLedger

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def mask_token(token: str) -> Optional[str]:
    """Keep only the last four digits of a card token; never the token itself."""
    digits = re.sub(r"\D", "", token)
    return digits[-4:] if len(digits) >= 4 else None


class PaymentMethodService:
    """Create, update, delete, list and read tenant payment methods."""

    def __init__(self, db: AsyncSession, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock
        self.ledger = PaymentLedger(db)

    async def _lock_tenant_methods(self, tenant_id: str) -> list[PaymentMethod]:
        result = await self.db.execute(
            select(PaymentMethod)
            .where(PaymentMethod.tenant_id == tenant_id)
            .order_by(PaymentMethod.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def _make_default(self, method: PaymentMethod) -> None:
        """Unset all other defaults of the tenant, then set this one."""
        await self._lock_tenant_methods(method.tenant_id)
        await self.db.execute(
            update(PaymentMethod)
            .where(
                PaymentMethod.tenant_id == method.tenant_id,
                PaymentMethod.id != method.id,
                PaymentMethod.is_default.is_(True),
            )
            .values(is_default=False, updated_at=self.clock())
            .execution_options(synchronize_session="fetch")
        )
        method.is_default = True

    async def create_payment_method(
        self,
        data: PaymentMethodCreate,
        caller: Optional[Caller],
    ) -> PaymentMethod:
        """
        Register a payment method for a tenant (admin only).

        Only the last four digits found in the token are stored.
        """
        with audit.track("createPaymentMethod", caller, tenant_id=data.tenant_id) as entry:
            require(Operation.MANAGE_PAYMENT_METHODS, caller)

            async with atomic(self.db):
                now = self.clock()
                method = PaymentMethod(
                    tenant_id=data.tenant_id,
                    type=data.type,
                    provider=data.provider,
                    last4=mask_token(data.token),
                    is_default=False,
                    created_at=now,
                    updated_at=now,
                )
                self.db.add(method)
                await self.db.flush()
                if data.is_default:
                    await self._make_default(method)

            entry["resource_id"] = method.id
            entry["provider"] = method.provider.value
            logger.info(f"Payment method {method.id} created for tenant {method.tenant_id}")
            return method

    async def update_payment_method(
        self,
        payment_method_id: str,
        is_default: bool,
        caller: Optional[Caller],
    ) -> PaymentMethod:
        """Toggle the default flag (admin only)."""
        with audit.track(
            "updatePaymentMethod", caller, payment_method_id, is_default=is_default
        ):
            require(Operation.MANAGE_PAYMENT_METHODS, caller)

            async with atomic(self.db):
                # Row locks are taken tenant-wide in id order by _make_default
                method = await self.db.get(PaymentMethod, payment_method_id, populate_existing=True)
                if method is None:
                    raise NotFound("Payment method not found")
                if is_default:
                    await self._make_default(method)
                else:
                    method.is_default = False
                method.updated_at = self.clock()

            logger.info(
                f"Payment method {method.id} updated (is_default={method.is_default})"
            )
            return method

    async def delete_payment_method(
        self,
        payment_method_id: str,
        caller: Optional[Caller],
    ) -> None:
        """
        Delete a payment method (admin only).

        Methods already used for a payment are kept for the payment's sake.
        """
        with audit.track("deletePaymentMethod", caller, payment_method_id):
            require(Operation.MANAGE_PAYMENT_METHODS, caller)

            async with atomic(self.db):
                method = await self.db.get(
                    PaymentMethod, payment_method_id, with_for_update=True, populate_existing=True
                )
                if method is None:
                    raise NotFound("Payment method not found")
                if await self.ledger.count_for_method(payment_method_id) > 0:
                    raise BadInput(
                        "Cannot delete payment method that has been used for payments"
                    )
                await self.db.delete(method)

            logger.info(f"Payment method {payment_method_id} deleted")

    def _scoped_tenant(self, caller: Caller, tenant_id: Optional[str]) -> str:
        """
        Resolve which tenant's payment methods the caller may read.

        Admins must name the tenant. Managers are limited to their own
        tenant and may omit it.
        """
        scope = require(Operation.LIST_PAYMENT_METHODS, caller)

        if scope == Scope.ANY:
            if not tenant_id:
                raise BadInput("tenant_id is required for admins")
            return tenant_id
        if caller.tenant_id is None:
            raise Forbidden("Restaurant assignment required for this action")
        tenant_id = tenant_id or caller.tenant_id
        require(Operation.LIST_PAYMENT_METHODS, caller, Target(tenant_id=tenant_id))
        return tenant_id

    async def list_payment_methods(
        self,
        caller: Optional[Caller],
        tenant_id: Optional[str] = None,
    ) -> list[PaymentMethod]:
        """List a tenant's payment methods, newest first."""
        with audit.track("paymentMethods", caller, tenant_id=tenant_id) as entry:
            caller = require_caller(caller)
            tenant_id = self._scoped_tenant(caller, tenant_id)
            entry["tenant_id"] = tenant_id

            async with atomic(self.db):
                result = await self.db.execute(
                    select(PaymentMethod)
                    .where(PaymentMethod.tenant_id == tenant_id)
                    .order_by(PaymentMethod.created_at.desc(), PaymentMethod.id)
                )
                return list(result.scalars().all())

    async def get_payment_method(
        self,
        payment_method_id: str,
        caller: Optional[Caller],
        tenant_id: Optional[str] = None,
    ) -> PaymentMethod:
        """
        One payment method of a tenant, under the same rules as the listing.

        A method belonging to any other tenant is reported as not found.
        """
        with audit.track("paymentMethod", caller, payment_method_id, tenant_id=tenant_id) as entry:
            caller = require_caller(caller)
            tenant_id = self._scoped_tenant(caller, tenant_id)
            entry["tenant_id"] = tenant_id

            async with atomic(self.db):
                method = await self.db.get(PaymentMethod, payment_method_id)
            if method is None or method.tenant_id != tenant_id:
                raise NotFound("Payment method not found")
            return method


class PaymentQueryService:
    """Read access to settled payments."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.ledger = PaymentLedger(db)

    async def list_payments(self, caller: Optional[Caller]) -> list[Payment]:
        """All payments, newest first (admin only)."""
        with audit.track("payments", caller) as entry:
            require(Operation.LIST_PAYMENTS, caller)
            async with atomic(self.db):
                payments = await self.ledger.list_payments()
            entry["count"] = len(payments)
            return payments

    async def get_payment(self, payment_id: str, caller: Optional[Caller]) -> Payment:
        """A single payment, visible to admins and to the user who placed the order."""
        with audit.track("payment", caller, payment_id):
            caller = require_caller(caller)
            async with atomic(self.db):
                payment = await self.ledger.get_payment(payment_id)
            if payment is None:
                raise NotFound("Payment not found")

            target = Target(tenant_id=payment.order.tenant_id, owner_id=payment.order.user_id)
            decision = authorize(Operation.VIEW_PAYMENT, caller, target)
            if not decision.allowed:
                raise Forbidden(decision.reason)
            return payment
