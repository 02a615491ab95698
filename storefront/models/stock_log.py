import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import String, DateTime, ForeignKey, Integer, Index
from sqlalchemy.orm import Mapped, mapped_column

from storefront.database import Base
from storefront.db_types import UUIDType


class StockChangeReason(str, Enum):
    """Why a stock level changed."""
    CHECKOUT = "checkout"
    PAYMENT_FAILED_RESTORE = "payment_failed_restore"
    PAYMENT_RECOVERED = "payment_recovered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class StockLog(Base):
    """
    Stock ledger. Append-only: one row per stock-affecting event,
    never updated or deleted.
    """
    __tablename__ = "stock_logs"
    __table_args__ = (
        Index('ix_stock_log_product_created', 'product_id', 'created_at'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    product_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False
    )
    variant_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("product_variants.id", ondelete="RESTRICT"),
        nullable=True
    )

    # Quantity (negative for out, positive for in)
    change_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    previous_stock: Mapped[int] = mapped_column(Integer, nullable=False)
    new_stock: Mapped[int] = mapped_column(Integer, nullable=False)

    reason: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="checkout, payment_failed_restore, payment_recovered, cancelled, refunded"
    )
    reference_id: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        index=True,
        comment="E.g. order number"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return (
            f"<StockLog(product={self.product_id}, {self.previous_stock} "
            f"{self.change_amount:+d} -> {self.new_stock}, reason='{self.reason}')>"
        )
