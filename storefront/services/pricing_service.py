"""Order Summary Composer.

Composes the chargeable amount of a cart at one evaluation instant:

    lines      -> PriceResolver, every line or nothing
    subtotal   =  sum of line totals
    discount   =  coupon evaluated against the subtotal (one per order)
    taxable    =  max(subtotal - discount, 0)
    tax        =  taxable * rate
    shipping   =  resolver(total weight), then the free-shipping policy
    total      =  subtotal - discount + tax + shipping

The composer holds no state and writes nothing; checkout re-runs it and
persists the result.
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple
import uuid
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from storefront.config import settings
from storefront.core.clock import utcnow, ensure_utc
from storefront.core.enum_utils import to_enum
from storefront.core.exceptions import EmptyCart
from storefront.core.money import ZERO, clamp, round_money
from storefront.models.order import CustomerTier, PriceSource
from storefront.services.coupon_service import CouponEvaluation, CouponService
from storefront.services.price_resolver import PriceResolver, ResolvedPrice
from storefront.services.shipping_service import (
    ShippingCostResolver,
    ShippingPolicy,
    ShippingQuote,
    get_shipping_resolver,
)
from storefront.services.tax_calculator import TaxCalculator

logger = logging.getLogger(__name__)

PricedLine = ResolvedPrice


@dataclass(frozen=True)
class CartItem:
    product_id: uuid.UUID
    quantity: int
    variant_id: Optional[uuid.UUID] = None


@dataclass(frozen=True)
class ShippingRequest:
    destination: str
    origin: Optional[str] = None
    courier: Optional[str] = None


@dataclass(frozen=True)
class OrderSummary:
    """Computed totals of a cart. grand_total == subtotal - discount + tax + shipping_cost."""
    lines: Tuple[PricedLine, ...]
    subtotal: Decimal
    discount: Decimal
    taxable_base: Decimal
    tax_rate: Decimal
    tax: Decimal
    shipping_cost: Decimal
    grand_total: Decimal
    total_weight_grams: int
    item_count: int
    savings: Decimal
    priced_at: datetime
    currency: str = field(default_factory=lambda: settings.CURRENCY)
    coupon: Optional[CouponEvaluation] = None
    free_shipping: bool = False
    courier: Optional[str] = None
    estimated_days: Optional[int] = None
    origin: Optional[str] = None
    destination: Optional[str] = None

    @property
    def coupon_code(self) -> Optional[str]:
        return self.coupon.code if self.coupon else None


class PricingService:
    """
    Service composing order summaries from price, coupon, tax and shipping.

    Collaborators are injected so that shipping and tax can be swapped
    (flat rates in tests, carrier API in production).
    """

    def __init__(
        self,
        db: AsyncSession,
        shipping_resolver: Optional[ShippingCostResolver] = None,
        tax_calculator: Optional[TaxCalculator] = None,
        shipping_policy: Optional[ShippingPolicy] = None,
    ):
        self.db = db
        self.price_resolver = PriceResolver(db)
        self.coupons = CouponService(db)
        self.shipping_resolver = shipping_resolver or get_shipping_resolver(db)
        self.tax_calculator = tax_calculator or TaxCalculator()
        self.shipping_policy = shipping_policy or ShippingPolicy(db)

    # ==================== LINE PRICING ====================

    async def resolve_lines(
        self,
        items: Sequence[CartItem],
        tier: CustomerTier,
        at: datetime,
        user_id: Optional[str] = None,
    ) -> List[PricedLine]:
        """Price every line; the first failure aborts the whole cart."""
        if not items:
            raise EmptyCart()

        lines: List[PricedLine] = []
        # Flash units already claimed by earlier lines, per product
        flash_claimed: Dict[uuid.UUID, int] = {}
        for item in items:
            line = await self.price_resolver.resolve(
                product_id=item.product_id,
                quantity=item.quantity,
                tier=tier,
                variant_id=item.variant_id,
                at=at,
                user_id=user_id,
                reserved_flash_quantity=flash_claimed.get(item.product_id, 0),
            )
            if line.source == PriceSource.FLASH_SALE:
                flash_claimed[line.product_id] = flash_claimed.get(line.product_id, 0) + line.quantity
            lines.append(line)
        return lines

    # ==================== SHIPPING ====================

    async def calculate_shipping(
        self,
        total_weight_grams: int,
        shipping: ShippingRequest,
        discounted_subtotal: Decimal = ZERO,
        coupon_free_shipping: bool = False,
    ) -> ShippingQuote:
        origin = shipping.origin or settings.DEFAULT_ORIGIN
        quote = await self.shipping_resolver.quote(
            origin,
            shipping.destination,
            total_weight_grams,
            shipping.courier or settings.DEFAULT_COURIER,
        )
        return await self.shipping_policy.apply(
            quote,
            discounted_subtotal,
            destination=shipping.destination,
            coupon_free_shipping=coupon_free_shipping,
        )

    async def calculate_shipping_for_items(
        self,
        items: Sequence[CartItem],
        shipping: ShippingRequest,
        tier: CustomerTier = CustomerTier.RETAIL,
        at: Optional[datetime] = None,
    ) -> Tuple[int, ShippingQuote]:
        """Total weight and shipping quote for a cart, before any coupon."""
        at = ensure_utc(at) if at else utcnow()
        tier = to_enum(tier, CustomerTier) or CustomerTier.RETAIL
        lines = await self.resolve_lines(items, tier, at)
        total_weight = sum(line.line_weight_grams for line in lines)
        subtotal = sum((line.line_total for line in lines), ZERO)
        quote = await self.calculate_shipping(total_weight, shipping, discounted_subtotal=subtotal)
        return total_weight, quote

    # ==================== ORDER SUMMARY ====================

    async def calculate_order_summary(
        self,
        items: Sequence[CartItem],
        shipping: ShippingRequest,
        tier: CustomerTier = CustomerTier.RETAIL,
        coupon_code: Optional[str] = None,
        user_id: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> OrderSummary:
        """
        Compute the full summary for a cart.

        Any failing step (line, coupon, shipping) raises; no partial
        totals are ever returned.
        """
        at = ensure_utc(at) if at else utcnow()
        tier = to_enum(tier, CustomerTier) or CustomerTier.RETAIL

        lines = await self.resolve_lines(items, tier, at, user_id)

        subtotal = sum((line.line_total for line in lines), ZERO)
        savings = sum(
            ((line.base_unit_price - line.unit_price) * line.quantity for line in lines), ZERO
        )
        total_weight = sum(line.line_weight_grams for line in lines)
        item_count = sum(line.quantity for line in lines)

        coupon = None
        discount = ZERO
        if coupon_code and coupon_code.strip():
            coupon = await self.coupons.evaluate(
                coupon_code, subtotal, tier=tier, user_id=user_id, at=at
            )
            discount = clamp(coupon.discount, low=ZERO, high=subtotal)

        taxable_base = clamp(subtotal - discount, low=ZERO)
        tax = self.tax_calculator.calculate(taxable_base)

        quote = await self.calculate_shipping(
            total_weight,
            shipping,
            discounted_subtotal=taxable_base,
            coupon_free_shipping=bool(coupon and coupon.free_shipping),
        )

        grand_total = round_money(subtotal - discount + tax + quote.cost)

        logger.debug(
            f"Summary at {at.isoformat()}: subtotal={subtotal} discount={discount} "
            f"tax={tax} shipping={quote.cost} total={grand_total}"
        )

        return OrderSummary(
            lines=tuple(lines),
            subtotal=round_money(subtotal),
            discount=round_money(discount),
            taxable_base=round_money(taxable_base),
            tax_rate=self.tax_calculator.rate,
            tax=tax,
            shipping_cost=quote.cost,
            grand_total=grand_total,
            total_weight_grams=total_weight,
            item_count=item_count,
            savings=round_money(savings),
            priced_at=at,
            coupon=coupon,
            free_shipping=quote.free_shipping,
            courier=quote.courier or shipping.courier,
            estimated_days=quote.estimated_days,
            origin=shipping.origin or settings.DEFAULT_ORIGIN,
            destination=shipping.destination,
        )
