"""Catalog factories and request builders shared by the tests."""
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import select

from storefront.models.coupon import Coupon
from storefront.models.order import Order
from storefront.models.product import Product, ProductVariant
from storefront.models.promotion import FlashSale, FlashSaleProduct
from storefront.models.shipping import ShippingZone
from storefront.services.checkout_service import CheckoutRequest
from storefront.services.pricing_service import CartItem, ShippingRequest


NOW = datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)
SERVER_KEY = "test-server-key"
SHIPPING = ShippingRequest(destination="ID-JK", origin="ID-JB", courier="jne")


async def create_product(
    db,
    sku: str = "SKU-A",
    price: str = "50000",
    stock: int = 10,
    weight_grams: int = 500,
    is_active: bool = True,
) -> Product:
    product = Product(
        name=f"Product {sku}",
        sku=sku,
        price=Decimal(price),
        stock=stock,
        weight_grams=weight_grams,
        is_active=is_active,
    )
    db.add(product)
    await db.commit()
    return product


async def create_variant(
    db,
    product: Product,
    sku: str,
    price: Optional[str] = None,
    stock: int = 1,
    weight_grams: Optional[int] = None,
) -> ProductVariant:
    variant = ProductVariant(
        product_id=product.id,
        name=f"Variant {sku}",
        sku=sku,
        price=Decimal(price) if price is not None else None,
        stock=stock,
        weight_grams=weight_grams,
    )
    db.add(variant)
    await db.commit()
    return variant


async def create_coupon(db, code: str = "SALE10", **fields) -> Coupon:
    values = dict(
        name=f"Coupon {code}",
        discount_type="PERCENTAGE",
        discount_value=Decimal("10"),
        status="ACTIVE",
    )
    values.update(fields)
    coupon = Coupon(code=code, **values)
    db.add(coupon)
    await db.commit()
    return coupon


async def create_flash_sale(
    db,
    product: Product,
    flash_price: str,
    start: datetime = NOW - timedelta(hours=1),
    end: datetime = NOW + timedelta(hours=1),
    flash_sale_stock: int = 0,
    max_quantity_per_user: int = 0,
    sold_count: int = 0,
) -> Tuple[FlashSale, FlashSaleProduct]:
    flash_sale = FlashSale(
        name="Payday Sale",
        status="ACTIVE",
        start_time=start,
        end_time=end,
        max_quantity_per_user=max_quantity_per_user,
    )
    db.add(flash_sale)
    await db.flush()
    flash_product = FlashSaleProduct(
        flash_sale_id=flash_sale.id,
        product_id=product.id,
        flash_sale_price=Decimal(flash_price),
        flash_sale_stock=flash_sale_stock,
        sold_count=sold_count,
    )
    db.add(flash_product)
    await db.commit()
    return flash_sale, flash_product


async def create_zone(db, region_codes, **fields) -> ShippingZone:
    zone = ShippingZone(name=f"Zone {region_codes[0]}", region_codes=list(region_codes), **fields)
    db.add(zone)
    await db.commit()
    return zone


async def current_stock(db, product_id, variant_id=None) -> int:
    if variant_id is not None:
        stmt = select(ProductVariant.stock).where(ProductVariant.id == variant_id)
    else:
        stmt = select(Product.stock).where(Product.id == product_id)
    return (await db.execute(stmt)).scalar_one()


async def order_count(db) -> int:
    return len((await db.execute(select(Order.id))).all())


def checkout_request(items, user_id: str = "user-1", **fields) -> CheckoutRequest:
    values = dict(
        user_id=user_id,
        items=items,
        shipping=SHIPPING,
        recipient_name="Budi Santoso",
        recipient_phone="081234567890",
        recipient_email="budi@example.com",
        shipping_address="Jl. Sudirman 1, Jakarta",
    )
    values.update(fields)
    return CheckoutRequest(**values)


def cart(product, quantity: int = 1, variant=None) -> List[CartItem]:
    return [CartItem(product_id=product.id, quantity=quantity, variant_id=variant.id if variant else None)]
