"""
Immediate Settlement Provider Implementation

Settles every payment synchronously and successfully without calling any
external gateway. This is the only provider today: real gateway integration
would be another BaseSettlementProvider.

Behavior:
    - No simulated latency
    - Rejects non-positive amounts
    - Generates provider-style ids (st_xxx)
"""

import logging
import uuid
from decimal import Decimal
from typing import Optional

from order_engine.services.payment.base import (
    BaseSettlementProvider,
    SettlementResult,
)

logger = logging.getLogger(__name__)


class ImmediateSettlementProvider(BaseSettlementProvider):
    """
    Provider that captures funds instantly.

    Example:
        >>> provider = ImmediateSettlementProvider()
        >>> result = await provider.settle(Decimal("29.99"), "txn_1_abc")
        >>> print(result.success)
        True
    """

    @property
    def provider_name(self) -> str:
        """Return the provider name."""
        return "immediate"

    def _generate_provider_reference(self) -> str:
        return f"st_{uuid.uuid4().hex[:24]}"

    async def settle(
        self,
        amount: Decimal,
        transaction_ref: str,
        metadata: Optional[dict] = None,
    ) -> SettlementResult:
        if amount <= 0:
            return SettlementResult(
                success=False,
                transaction_ref=transaction_ref,
                amount=amount,
                error_message="Amount must be greater than 0",
                error_code="invalid_amount",
            )

        provider_reference = self._generate_provider_reference()
        logger.info(f"Settled {transaction_ref} - ${amount:.2f} ({provider_reference})")

        return SettlementResult(
            success=True,
            transaction_ref=transaction_ref,
            provider_reference=provider_reference,
            amount=amount,
            metadata=metadata,
        )

    async def health_check(self) -> bool:
        """Always available."""
        return True
