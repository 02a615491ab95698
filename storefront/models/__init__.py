# Import all models so they register with Base.metadata
from storefront.models.product import Product, ProductVariant
from storefront.models.promotion import FlashSale, FlashSaleProduct, FlashSaleStatus
from storefront.models.coupon import Coupon, CouponUsage, CouponStatus, DiscountType
from storefront.models.shipping import ShippingZone, ShippingZoneStatus
from storefront.models.order import (
    Order, OrderItem, OrderStatusHistory,
    OrderStatus, PaymentStatus, CustomerTier, PriceSource,
)
from storefront.models.stock_log import StockLog, StockChangeReason

__all__ = [
    "Product",
    "ProductVariant",
    "FlashSale",
    "FlashSaleProduct",
    "FlashSaleStatus",
    "Coupon",
    "CouponUsage",
    "CouponStatus",
    "DiscountType",
    "ShippingZone",
    "ShippingZoneStatus",
    "Order",
    "OrderItem",
    "OrderStatusHistory",
    "OrderStatus",
    "PaymentStatus",
    "CustomerTier",
    "PriceSource",
    "StockLog",
    "StockChangeReason",
]
