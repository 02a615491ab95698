import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List
from decimal import Decimal

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Integer, Text, Numeric, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storefront.database import Base
from storefront.db_types import UUIDType, MoneyType


class OrderStatus(str, Enum):
    """Order lifecycle status."""
    PENDING = "PENDING"               # Created at checkout, awaiting payment
    CONFIRMED = "CONFIRMED"           # Payment confirmed
    PROCESSING = "PROCESSING"         # Being picked/packed
    SHIPPED = "SHIPPED"               # Handed to courier
    DELIVERED = "DELIVERED"           # Received by customer

    # Terminal alternates
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class PaymentStatus(str, Enum):
    """Payment status, tracked independently of the order status."""
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class CustomerTier(str, Enum):
    """Customer classification driving price tables and coupon eligibility."""
    RETAIL = "RETAIL"
    RESELLER = "RESELLER"


class PriceSource(str, Enum):
    """Where a resolved unit price came from."""
    BASE = "BASE"
    TIER = "TIER"
    FLASH_SALE = "FLASH_SALE"


TERMINAL_ORDER_STATUSES = {OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.REFUNDED}

# Orders in these states no longer hold stock
STOCK_RELEASED_STATUSES = {OrderStatus.CANCELLED, OrderStatus.REFUNDED}


class Order(Base):
    """
    Order snapshot: the priced lines and summary frozen at checkout,
    plus lifecycle and payment status. Orders are never deleted.
    """
    __tablename__ = "orders"
    __table_args__ = (
        Index('ix_order_status_created', 'status', 'created_at'),
        Index('ix_order_user_created', 'user_id', 'created_at'),
        Index('ix_order_payment_status', 'payment_status', 'created_at'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    # Order Identification
    order_number: Mapped[str] = mapped_column(
        String(40),
        unique=True,
        nullable=False,
        index=True
    )

    # Customer
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    customer_tier: Mapped[str] = mapped_column(
        String(30),
        default="RETAIL",
        nullable=False,
        comment="RETAIL, RESELLER"
    )

    # Status
    status: Mapped[str] = mapped_column(
        String(30),
        default="PENDING",
        nullable=False,
        index=True,
        comment="PENDING, CONFIRMED, PROCESSING, SHIPPED, DELIVERED, CANCELLED, REFUNDED"
    )
    payment_status: Mapped[str] = mapped_column(
        String(30),
        default="PENDING",
        nullable=False,
        comment="PENDING, PAID, FAILED, REFUNDED"
    )
    payment_method: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Pricing snapshot
    subtotal: Mapped[Decimal] = mapped_column(
        MoneyType(),
        nullable=False,
        comment="Sum of line totals before coupon discount"
    )
    discount_amount: Mapped[Decimal] = mapped_column(MoneyType(), default=Decimal("0"), nullable=False)
    taxable_base: Mapped[Decimal] = mapped_column(MoneyType(), default=Decimal("0"), nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=Decimal("0"), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(MoneyType(), default=Decimal("0"), nullable=False)
    shipping_cost: Mapped[Decimal] = mapped_column(MoneyType(), default=Decimal("0"), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(
        MoneyType(),
        nullable=False,
        comment="subtotal - discount + tax + shipping"
    )
    currency: Mapped[str] = mapped_column(String(3), default="IDR", nullable=False)
    total_weight_grams: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    item_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    priced_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="Instant the summary was evaluated at"
    )

    # Coupon
    coupon_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("coupons.id", ondelete="SET NULL"),
        nullable=True
    )
    coupon_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    free_shipping: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Shipping
    shipping_name: Mapped[str] = mapped_column(String(100), nullable=False)
    shipping_phone: Mapped[str] = mapped_column(String(20), nullable=False)
    shipping_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    shipping_address: Mapped[str] = mapped_column(String(500), nullable=False)
    shipping_origin: Mapped[str] = mapped_column(String(50), nullable=False)
    shipping_destination: Mapped[str] = mapped_column(String(50), nullable=False)
    shipping_courier: Mapped[str] = mapped_column(String(30), nullable=False)
    shipping_estimated_days: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    tracking_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Payment gateway
    payment_token: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    payment_redirect_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    payment_reference: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="Gateway transaction id from the last applied notification"
    )
    payment_expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Notes
    customer_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cancel_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    shipped_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    refunded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Relationships
    items: Mapped[List["OrderItem"]] = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.line_number"
    )
    status_history: Mapped[List["OrderStatusHistory"]] = relationship(
        "OrderStatusHistory",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderStatusHistory.created_at"
    )

    @property
    def holds_stock(self) -> bool:
        return self.status not in {s.value for s in STOCK_RELEASED_STATUSES}

    def __repr__(self) -> str:
        return f"<Order(number='{self.order_number}', status='{self.status}', total={self.total_amount})>"


class OrderItem(Base):
    """Line item snapshot (price and product details at time of order)."""
    __tablename__ = "order_items"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)

    product_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    variant_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("product_variants.id", ondelete="RESTRICT"),
        nullable=True
    )

    # Product snapshot
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    product_sku: Mapped[str] = mapped_column(String(50), nullable=False)
    variant_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Pricing snapshot
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    base_unit_price: Mapped[Decimal] = mapped_column(MoneyType(), nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(MoneyType(), nullable=False)
    line_total: Mapped[Decimal] = mapped_column(MoneyType(), nullable=False)
    price_source: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        comment="BASE, TIER, FLASH_SALE"
    )
    tier_discount_percent: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        default=Decimal("0"),
        nullable=False
    )
    flash_sale_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("flash_sales.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    weight_grams: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    order: Mapped["Order"] = relationship("Order", back_populates="items")


class OrderStatusHistory(Base):
    """Append-only trail of order and payment status changes."""
    __tablename__ = "order_status_history"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    from_status: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    to_status: Mapped[str] = mapped_column(String(30), nullable=False)
    payment_status: Mapped[str] = mapped_column(String(30), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    order: Mapped["Order"] = relationship("Order", back_populates="status_history")
