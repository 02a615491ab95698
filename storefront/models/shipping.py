import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List
from decimal import Decimal

from sqlalchemy import String, Boolean, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column

from storefront.database import Base
from storefront.db_types import UUIDType, MoneyType, JSONType


class ShippingZoneStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class ShippingZone(Base):
    """
    Shipping zone: a set of destination region codes sharing courier
    rates and a free-shipping rule.
    """
    __tablename__ = "shipping_zones"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(30), default="ACTIVE", nullable=False)

    # Zone definition, e.g. ["ID-JK", "ID-JB"]
    region_codes: Mapped[List[str]] = mapped_column(JSONType, default=list, nullable=False)

    # Free Shipping
    free_shipping_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    free_shipping_threshold: Mapped[Optional[Decimal]] = mapped_column(MoneyType(), nullable=True)

    # Courier base rates per kg, e.g. {"jne": 15000, "tiki": 16000}
    courier_rates: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)

    # Additional Costs
    minimum_cost: Mapped[Decimal] = mapped_column(MoneyType(), default=Decimal("9000"), nullable=False)
    handling_fee: Mapped[Decimal] = mapped_column(MoneyType(), default=Decimal("0"), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def covers(self, region_code: str) -> bool:
        return region_code.upper() in {code.upper() for code in (self.region_codes or [])}

    def __repr__(self) -> str:
        return f"<ShippingZone(name='{self.name}', regions={self.region_codes})>"
