"""
SQLAlchemy Database Models

Order lifecycle and payment settlement tables:
- Menu items (read-only catalog snapshot source)
- Orders and their line items
- Payment methods per tenant
- Payments, one per order
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from order_engine.database import Base


def new_id() -> str:
    """Opaque primary key."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderStatus(str, enum.Enum):
    """Order status workflow."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    """Settlement outcome of a payment."""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class PaymentMethodType(str, enum.Enum):
    """Kind of instrument behind a payment method."""
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    PAYPAL = "paypal"
    APPLE_PAY = "apple_pay"
    GOOGLE_PAY = "google_pay"


class PaymentProvider(str, enum.Enum):
    """Gateway that issued a payment method."""
    STRIPE = "stripe"
    PAYPAL = "paypal"
    SQUARE = "square"
    OTHER = "other"


# Fixed-point currency, two decimals
Money = Numeric(10, 2, asdecimal=True)


class MenuItem(Base):
    """
    Catalog entry a cart line refers to.

    The engine only reads this table: price and availability are looked up
    at order creation time and copied onto the order's line items.
    """
    __tablename__ = "menu_items"

    id = Column(String(36), primary_key=True, default=new_id)
    tenant_id = Column(String(36), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    price = Column(Money, nullable=False)
    is_available = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<MenuItem {self.id} - {self.name} - {self.price}>"


class Order(Base):
    """
    An order placed by a user against one tenant.

    Tracks the lifecycle from PENDING through DELIVERED or CANCELLED.
    Orders are never deleted; CANCELLED and DELIVERED are terminal.
    """
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=new_id)

    # =========================================================================
    # OWNERSHIP
    # =========================================================================
    user_id = Column(String(36), nullable=False, index=True)
    tenant_id = Column(String(36), nullable=False, index=True)

    # =========================================================================
    # ORDER DETAILS
    # =========================================================================
    phone = Column(String(20), nullable=False)
    special_instructions = Column(Text, nullable=True)
    total_amount = Column(Money, nullable=False)

    # =========================================================================
    # ORDER STATUS
    # =========================================================================
    status = Column(
        Enum(OrderStatus),
        default=OrderStatus.PENDING,
        nullable=False,
        index=True
    )

    # =========================================================================
    # TIMESTAMPS
    # =========================================================================
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self):
        return f"<Order {self.id} - {self.tenant_id} - {self.status.value}>"


class OrderItem(Base):
    """Line item of an order. Created with the order and never changed."""
    __tablename__ = "order_items"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    order_id = Column(
        String(36),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    menu_item_id = Column(String(36), ForeignKey("menu_items.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Money, nullable=False)  # snapshot at order time
    notes = Column(Text, nullable=True)

    order = relationship("Order", back_populates="items")

    def __repr__(self):
        return f"<OrderItem {self.menu_item_id} x{self.quantity} @ {self.unit_price}>"


class PaymentMethod(Base):
    """
    A stored payment instrument for a tenant.

    Only the masked reference (last four digits) is persisted. At most one
    method per tenant carries is_default; the partial unique index enforces
    it even when the tenant has no rows yet to lock.
    """
    __tablename__ = "payment_methods"

    id = Column(String(36), primary_key=True, default=new_id)
    tenant_id = Column(String(36), nullable=False, index=True)
    type = Column(Enum(PaymentMethodType), nullable=False)
    provider = Column(Enum(PaymentProvider), nullable=False)
    last4 = Column(String(4), nullable=True)
    is_default = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index(
            "uq_payment_methods_one_default",
            "tenant_id",
            unique=True,
            postgresql_where=is_default.is_(True),
            sqlite_where=is_default.is_(True),
        ),
    )

    def __repr__(self):
        return f"<PaymentMethod {self.id} - {self.provider.value} - default={self.is_default}>"


class Payment(Base):
    """
    Settlement record for an order.

    The unique constraint on order_id is what makes "at most one payment per
    order" hold under concurrent requests. Rows are never updated in place.
    """
    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, default=new_id)
    order_id = Column(
        String(36),
        ForeignKey("orders.id"),
        nullable=False,
        unique=True,
    )
    payment_method_id = Column(
        String(36),
        ForeignKey("payment_methods.id"),
        nullable=False,
        index=True,
    )
    amount = Column(Money, nullable=False)
    status = Column(Enum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False)
    transaction_ref = Column(String(64), nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow)

    order = relationship("Order", lazy="selectin")
    method = relationship("PaymentMethod", lazy="selectin")

    def __repr__(self):
        return f"<Payment {self.transaction_ref} - order {self.order_id} - {self.status.value}>"
