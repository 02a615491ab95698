"""
Flash Sale Models

A flash sale is a time-boxed campaign; each product enrolled in it gets a
promotional price and, optionally, a stock cap shared by all buyers.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional
from decimal import Decimal

from sqlalchemy import String, DateTime, ForeignKey, Integer, Text, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storefront.database import Base
from storefront.db_types import UUIDType, MoneyType
from storefront.core.clock import ensure_utc


class FlashSaleStatus(str, Enum):
    """Flash sale status enumeration."""
    UPCOMING = "UPCOMING"
    ACTIVE = "ACTIVE"
    ENDED = "ENDED"
    CANCELLED = "CANCELLED"


class FlashSale(Base):
    """Flash sale campaign with a half-open active window [start_time, end_time)."""
    __tablename__ = "flash_sales"
    __table_args__ = (
        Index('ix_flash_sale_window', 'start_time', 'end_time'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(30),
        default="UPCOMING",
        nullable=False,
        comment="UPCOMING, ACTIVE, ENDED, CANCELLED"
    )

    # Timing
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Limits
    max_quantity_per_user: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        comment="Max units one user may buy at the flash price (0 = unlimited)"
    )

    # Statistics
    total_sold: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_orders: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    products: Mapped[List["FlashSaleProduct"]] = relationship(
        "FlashSaleProduct",
        back_populates="flash_sale",
        cascade="all, delete-orphan"
    )

    def is_running_at(self, at: datetime) -> bool:
        """True when `at` falls in [start_time, end_time) and the sale was not stopped."""
        if self.status in (FlashSaleStatus.CANCELLED.value, FlashSaleStatus.ENDED.value):
            return False
        return ensure_utc(self.start_time) <= at < ensure_utc(self.end_time)

    def __repr__(self) -> str:
        return f"<FlashSale(name='{self.name}', {self.start_time} - {self.end_time})>"


class FlashSaleProduct(Base):
    """Product enrolled in a flash sale."""
    __tablename__ = "flash_sale_products"
    __table_args__ = (
        UniqueConstraint('flash_sale_id', 'product_id', name='uq_flash_sale_product'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    flash_sale_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("flash_sales.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    product_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    flash_sale_price: Mapped[Decimal] = mapped_column(MoneyType(), nullable=False)
    flash_sale_stock: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        comment="Units available at the flash price across all buyers (0 = unlimited)"
    )
    sold_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    flash_sale: Mapped["FlashSale"] = relationship("FlashSale", back_populates="products")

    @property
    def remaining(self) -> Optional[int]:
        if not self.flash_sale_stock:
            return None
        return max(self.flash_sale_stock - self.sold_count, 0)

    @property
    def is_exhausted(self) -> bool:
        return self.remaining == 0
