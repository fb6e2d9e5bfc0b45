"""
Settlement Provider Abstract Base Class

Defines the interface contract for anything that can settle a payment.
The settlement coordinator only talks to this interface, so idempotency and
atomicity stay the coordinator's job regardless of which provider is plugged in.

Design Pattern: Strategy Pattern
    - Allows runtime switching between settlement providers
    - New providers can be added without modifying the coordinator
    - Facilitates testing with scripted implementations
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional


@dataclass
class SettlementResult:
    """
    Standardized result from settling a payment.

    Attributes:
        success: Whether the funds were captured
        transaction_ref: Reference the settlement was made under
        provider_reference: Identifier assigned by the provider, if any
        amount: Amount settled
        error_message: Decline description if settlement failed
        error_code: Machine-readable decline code
        metadata: Additional data from the provider
    """
    success: bool
    transaction_ref: str
    provider_reference: Optional[str] = None
    amount: Optional[Decimal] = None
    error_message: Optional[str] = None
    error_code: Optional[str] = None
    metadata: Optional[dict] = None


class BaseSettlementProvider(ABC):
    """
    Abstract base class for settlement providers.

    Example:
        >>> provider = get_settlement_provider()
        >>> result = await provider.settle(Decimal("45.99"), "txn_1700000000000_ab12cd34ef56")
        >>> if result.success:
        ...     print(result.provider_reference)
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """
        Return the name of the settlement provider.

        Returns:
            str: Provider name (e.g., "immediate")
        """
        pass

    @abstractmethod
    async def settle(
        self,
        amount: Decimal,
        transaction_ref: str,
        metadata: Optional[dict] = None,
    ) -> SettlementResult:
        """
        Capture `amount` under `transaction_ref`.

        Called inside the settlement transaction, after the payment row has
        claimed the order. A declined result rolls the whole unit back.

        Args:
            amount: Amount to capture, in currency units (e.g., 45.99)
            transaction_ref: Server-generated unique reference
            metadata: Additional key-value data to attach

        Returns:
            SettlementResult: Standardized result object
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Verify the provider is operational.

        Returns:
            bool: True if settlements can be made
        """
        pass
