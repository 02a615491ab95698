"""Price Resolver: the unit price of one cart line.

Precedence (single source, never stacked):
1. FLASH_SALE - an active flash sale whose caps admit the quantity
2. TIER       - the customer tier's quantity discount, when non-zero
3. BASE       - variant price override, else product price

The unit price is rounded once, after the source is chosen; the line
total is the rounded unit price times the quantity.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple
import uuid
import logging

from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.config import settings
from storefront.core.clock import utcnow, ensure_utc
from storefront.core.enum_utils import to_enum
from storefront.core.exceptions import InvalidQuantity, ProductNotFound, VariantMismatch
from storefront.core.money import ZERO, percent_of, round_money
from storefront.models.order import CustomerTier, PriceSource, Order, OrderItem, OrderStatus, PaymentStatus
from storefront.models.product import Product, ProductVariant
from storefront.models.promotion import FlashSale, FlashSaleProduct, FlashSaleStatus

logger = logging.getLogger(__name__)

TierTable = Sequence[Tuple[int, Decimal]]


@dataclass(frozen=True)
class ResolvedPrice:
    """One priced cart line."""
    product_id: uuid.UUID
    variant_id: Optional[uuid.UUID]
    quantity: int
    base_unit_price: Decimal
    unit_price: Decimal
    line_total: Decimal
    source: PriceSource
    tier_discount_percent: Decimal
    unit_weight_grams: int
    product_name: str
    product_sku: str
    variant_name: Optional[str] = None
    flash_sale_id: Optional[uuid.UUID] = None
    flash_sale_product_id: Optional[uuid.UUID] = None

    @property
    def line_weight_grams(self) -> int:
        return self.unit_weight_grams * self.quantity


def tier_table_for(tier: CustomerTier) -> List[Tuple[int, Decimal]]:
    if tier == CustomerTier.RESELLER:
        return list(settings.RESELLER_TIERS)
    return list(settings.RETAIL_TIERS)


def tier_discount_percent(quantity: int, table: TierTable) -> Decimal:
    """Percent of the highest tier whose minimum quantity is met."""
    percent = ZERO
    for min_quantity, tier_percent in sorted(table):
        if quantity >= min_quantity:
            percent = Decimal(str(tier_percent))
    return percent


def select_unit_price(
    base_price: Decimal,
    tier_percent: Decimal = ZERO,
    flash_price: Optional[Decimal] = None,
) -> Tuple[Decimal, PriceSource]:
    """
    Pick the unit price and its source.

    A flash price replaces the tier price outright; a zero tier percent
    keeps the base price.
    """
    if flash_price is not None:
        return round_money(flash_price), PriceSource.FLASH_SALE
    if tier_percent > ZERO:
        return round_money(base_price - percent_of(base_price, tier_percent)), PriceSource.TIER
    return round_money(base_price), PriceSource.BASE


class PriceResolver:
    """Resolves unit prices against the catalog and running flash sales."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_product(self, product_id: uuid.UUID) -> Product:
        result = await self.db.execute(
            select(Product).where(Product.id == product_id)
        )
        product = result.scalar_one_or_none()
        if not product or not product.is_active:
            raise ProductNotFound(product_id)
        return product

    async def get_variant(self, product: Product, variant_id: uuid.UUID) -> ProductVariant:
        result = await self.db.execute(
            select(ProductVariant).where(ProductVariant.id == variant_id)
        )
        variant = result.scalar_one_or_none()
        if not variant or variant.product_id != product.id or not variant.is_active:
            raise VariantMismatch(variant_id, product.id)
        return variant

    # ==================== FLASH SALE ====================

    async def get_active_flash_sale(
        self,
        product_id: uuid.UUID,
        at: datetime,
    ) -> Optional[Tuple[FlashSale, FlashSaleProduct]]:
        """Running flash sale for the product whose stock is not exhausted."""
        stmt = (
            select(FlashSale, FlashSaleProduct)
            .join(FlashSaleProduct, FlashSaleProduct.flash_sale_id == FlashSale.id)
            .where(
                and_(
                    FlashSaleProduct.product_id == product_id,
                    FlashSale.status.notin_([
                        FlashSaleStatus.CANCELLED.value,
                        FlashSaleStatus.ENDED.value,
                    ]),
                )
            )
            .order_by(FlashSale.start_time.desc())
        )
        result = await self.db.execute(stmt)
        for flash_sale, flash_product in result.all():
            if flash_sale.is_running_at(at) and not flash_product.is_exhausted:
                return flash_sale, flash_product
        return None

    async def get_user_flash_quantity(
        self,
        user_id: str,
        flash_sale_id: uuid.UUID,
        product_id: uuid.UUID,
    ) -> int:
        """Units the user already bought at this flash price (live orders only)."""
        stmt = (
            select(func.coalesce(func.sum(OrderItem.quantity), 0))
            .join(Order, Order.id == OrderItem.order_id)
            .where(
                and_(
                    Order.user_id == user_id,
                    OrderItem.flash_sale_id == flash_sale_id,
                    OrderItem.product_id == product_id,
                    Order.status != OrderStatus.CANCELLED.value,
                    Order.payment_status != PaymentStatus.FAILED.value,
                )
            )
        )
        result = await self.db.execute(stmt)
        return int(result.scalar() or 0)

    async def flash_caps_admit(
        self,
        flash_sale: FlashSale,
        flash_product: FlashSaleProduct,
        quantity: int,
        user_id: Optional[str],
        reserved_quantity: int = 0,
    ) -> bool:
        """Check the global stock cap and the per-user cap for this quantity."""
        wanted = quantity + reserved_quantity

        if flash_product.flash_sale_stock and flash_product.sold_count + wanted > flash_product.flash_sale_stock:
            logger.info(
                f"Flash sale {flash_sale.id} cap reached for product {flash_product.product_id}: "
                f"sold {flash_product.sold_count}/{flash_product.flash_sale_stock}, requested {wanted}"
            )
            return False

        if flash_sale.max_quantity_per_user and user_id:
            prior = await self.get_user_flash_quantity(user_id, flash_sale.id, flash_product.product_id)
            if prior + wanted > flash_sale.max_quantity_per_user:
                logger.info(
                    f"Flash sale {flash_sale.id} per-user cap reached for user {user_id}: "
                    f"prior {prior}, requested {wanted}, limit {flash_sale.max_quantity_per_user}"
                )
                return False

        return True

    # ==================== RESOLUTION ====================

    async def resolve(
        self,
        product_id: uuid.UUID,
        quantity: int,
        tier: CustomerTier = CustomerTier.RETAIL,
        variant_id: Optional[uuid.UUID] = None,
        at: Optional[datetime] = None,
        user_id: Optional[str] = None,
        reserved_flash_quantity: int = 0,
    ) -> ResolvedPrice:
        """
        Resolve the unit price of one line.

        Args:
            product_id: Product UUID
            quantity: Units requested (must be > 0)
            tier: Customer tier selecting the discount table
            variant_id: Optional variant; its price overrides the product's
            at: Evaluation instant (defaults to now)
            user_id: Buyer, for the flash sale per-user cap
            reserved_flash_quantity: Units of the same product already
                taken at the flash price by earlier lines of the cart
        """
        if quantity is None or quantity <= 0:
            raise InvalidQuantity(quantity)

        at = ensure_utc(at) if at else utcnow()
        tier = to_enum(tier, CustomerTier) or CustomerTier.RETAIL

        product = await self.get_product(product_id)
        variant = await self.get_variant(product, variant_id) if variant_id else None

        base_price = product.price
        weight = product.weight_grams or 0
        if variant is not None:
            if variant.price is not None:
                base_price = variant.price
            if variant.weight_grams is not None:
                weight = variant.weight_grams

        percent = tier_discount_percent(quantity, tier_table_for(tier))

        flash_price = None
        flash_sale_id = None
        flash_product_id = None
        active = await self.get_active_flash_sale(product.id, at)
        if active:
            flash_sale, flash_product = active
            if await self.flash_caps_admit(
                flash_sale, flash_product, quantity, user_id, reserved_flash_quantity
            ):
                flash_price = flash_product.flash_sale_price
                flash_sale_id = flash_sale.id
                flash_product_id = flash_product.id

        unit_price, source = select_unit_price(base_price, percent, flash_price)

        return ResolvedPrice(
            product_id=product.id,
            variant_id=variant.id if variant else None,
            quantity=quantity,
            base_unit_price=base_price,
            unit_price=unit_price,
            line_total=unit_price * quantity,
            source=source,
            tier_discount_percent=percent if source == PriceSource.TIER else ZERO,
            unit_weight_grams=weight,
            product_name=product.name,
            product_sku=variant.sku if variant else product.sku,
            variant_name=variant.name if variant else None,
            flash_sale_id=flash_sale_id,
            flash_sale_product_id=flash_product_id,
        )
