# Services module
from storefront.services.price_resolver import PriceResolver
from storefront.services.coupon_service import CouponService
from storefront.services.tax_calculator import TaxCalculator
from storefront.services.shipping_service import ShippingPolicy, get_shipping_resolver
from storefront.services.pricing_service import PricingService
from storefront.services.inventory_service import InventoryService
from storefront.services.checkout_service import CheckoutService

__all__ = [
    "PriceResolver",
    "CouponService",
    "TaxCalculator",
    "ShippingPolicy",
    "get_shipping_resolver",
    "PricingService",
    "InventoryService",
    "CheckoutService",
]
