"""
Coupon Model for the storefront checkout.

Supports percentage and fixed discounts, usage limits (global and per
user), tier eligibility and an optional free-shipping flag.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from decimal import Decimal

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Integer, Text, Index
from sqlalchemy.orm import Mapped, mapped_column

from storefront.database import Base
from storefront.db_types import UUIDType, MoneyType
from storefront.core.clock import ensure_utc


class DiscountType(str, Enum):
    """Discount type enumeration."""
    PERCENTAGE = "PERCENTAGE"  # e.g., 10% off
    FIXED = "FIXED"  # e.g., Rp 20.000 off


class CouponStatus(str, Enum):
    """Coupon status enumeration."""
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    EXPIRED = "EXPIRED"


class Coupon(Base):
    """
    Coupon/Promo code model.
    """
    __tablename__ = "coupons"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    # Coupon Code
    code: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        index=True,
        comment="Unique coupon code, stored upper-case"
    )

    # Display Info
    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        comment="Display name for the coupon"
    )
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Discount Type & Value
    discount_type: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default="PERCENTAGE",
        comment="PERCENTAGE, FIXED"
    )
    discount_value: Mapped[Decimal] = mapped_column(
        MoneyType(),
        nullable=False,
        default=Decimal("0"),
        comment="Discount value (percentage or amount)"
    )
    max_discount: Mapped[Optional[Decimal]] = mapped_column(
        MoneyType(),
        nullable=True,
        comment="Cap on discount for PERCENTAGE type"
    )
    free_shipping: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Waives the shipping cost of the order"
    )

    # Minimum Requirements
    min_purchase_amount: Mapped[Decimal] = mapped_column(
        MoneyType(),
        nullable=False,
        default=Decimal("0"),
        comment="Minimum subtotal to apply coupon"
    )

    # Usage Limits (0 = unlimited)
    max_usage_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Total times this coupon can be used"
    )
    usage_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Number of times coupon has been used"
    )
    max_usage_per_user: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Times each user can use this coupon"
    )

    # Validity Period (null = open-ended)
    valid_from: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    valid_until: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Customer Tier Restrictions
    for_retail: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    for_reseller: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Status
    status: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default="ACTIVE",
        comment="ACTIVE, INACTIVE, EXPIRED"
    )

    # Statistics
    total_discount_used: Mapped[Decimal] = mapped_column(
        MoneyType(),
        nullable=False,
        default=Decimal("0")
    )
    order_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

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

    def is_within_window(self, at: datetime) -> bool:
        if self.valid_from and at < ensure_utc(self.valid_from):
            return False
        if self.valid_until and at > ensure_utc(self.valid_until):
            return False
        return True

    @property
    def is_usage_exhausted(self) -> bool:
        return bool(self.max_usage_count) and self.usage_count >= self.max_usage_count

    def __repr__(self) -> str:
        return f"<Coupon(code='{self.code}', type='{self.discount_type}', value={self.discount_value})>"


class CouponUsage(Base):
    """
    Tracks coupon usage by users, one row per redeemed order.
    """
    __tablename__ = "coupon_usages"
    __table_args__ = (
        Index('ix_coupon_usage_coupon_user', 'coupon_id', 'user_id'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    coupon_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("coupons.id", ondelete="CASCADE"),
        nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    discount_amount: Mapped[Decimal] = mapped_column(MoneyType(), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
