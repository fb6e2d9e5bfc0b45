"""
Pydantic Schemas for Request/Response Validation

Shape validation for every operation of the order engine. Business rules
(ownership, amount, state) are re-checked by the services.
"""

import re
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from order_engine.models import (
    OrderStatus,
    PaymentMethodType,
    PaymentProvider,
    PaymentStatus,
)


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class OrderItemCreate(BaseModel):
    """Single cart line. Prices are never taken from the client."""
    menu_item_id: str = Field(..., min_length=1, max_length=36)
    quantity: int = Field(..., ge=1, le=99, examples=[2])
    notes: Optional[str] = Field(None, max_length=200)


class OrderCreate(BaseModel):
    """Request schema for creating a new order."""
    tenant_id: str = Field(..., min_length=1, max_length=36)
    items: List[OrderItemCreate] = Field(..., min_length=1)
    phone: str = Field(..., min_length=10, max_length=20, examples=["555-123-4567"])
    special_instructions: Optional[str] = Field(None, max_length=500)

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: str) -> str:
        cleaned = re.sub(r"[^\d]", "", v)
        if len(cleaned) < 10:
            raise ValueError("Phone number must have at least 10 digits")
        return v


class OrderStatusUpdate(BaseModel):
    """Request schema for moving an order through the state machine."""
    status: OrderStatus


class ProcessPaymentRequest(BaseModel):
    """Request schema for settling an order."""
    order_id: str = Field(..., min_length=1, max_length=36)
    payment_method_id: str = Field(..., min_length=1, max_length=36)
    amount: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2, examples=["45.99"])


class PaymentMethodCreate(BaseModel):
    """Request schema for registering a payment method."""
    tenant_id: str = Field(..., min_length=1, max_length=36)
    type: PaymentMethodType
    provider: PaymentProvider
    token: str = Field(..., min_length=1, max_length=255, examples=["tok_visa_4242"])
    is_default: bool = False


class PaymentMethodUpdate(BaseModel):
    """Request schema for toggling the default payment method."""
    is_default: bool


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class OrderItemResponse(BaseModel):
    """Line item as stored on the order."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    menu_item_id: str
    quantity: int
    unit_price: Decimal
    notes: Optional[str]


class OrderResponse(BaseModel):
    """Response schema for a single order."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    tenant_id: str
    status: OrderStatus
    total_amount: Decimal
    phone: str
    special_instructions: Optional[str]
    items: List[OrderItemResponse]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]


class OrderListResponse(BaseModel):
    """Response for listing multiple orders."""
    total: int
    orders: List[OrderResponse]


class PaymentMethodResponse(BaseModel):
    """Response schema for a payment method. Only the masked reference is exposed."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    type: PaymentMethodType
    provider: PaymentProvider
    last4: Optional[str]
    is_default: bool
    created_at: Optional[datetime]
    updated_at: Optional[datetime]


class PaymentResponse(BaseModel):
    """Response schema for a payment."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    order_id: str
    payment_method_id: str
    amount: Decimal
    status: PaymentStatus
    transaction_ref: str
    created_at: Optional[datetime]
    method: Optional[PaymentMethodResponse] = None


class DeleteResponse(BaseModel):
    """Response after deleting a resource."""
    success: bool
    id: str


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    cache: str
    settlement_provider: str
    timestamp: datetime
