from typing import Annotated, Optional

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.database import get_db
from storefront.services.checkout_service import CheckoutService
from storefront.services.notification_service import LoggingNotificationDispatcher, NotificationDispatcher
from storefront.services.payment_service import PaymentGateway, get_payment_gateway
from storefront.services.pricing_service import PricingService
from storefront.services.shipping_service import ShippingCostResolver


def get_gateway() -> PaymentGateway:
    return get_payment_gateway()


def get_notifier() -> NotificationDispatcher:
    return LoggingNotificationDispatcher()


def get_shipping_resolver() -> Optional[ShippingCostResolver]:
    """None lets the pricing service pick from configuration."""
    return None


DB = Annotated[AsyncSession, Depends(get_db)]
Gateway = Annotated[PaymentGateway, Depends(get_gateway)]
Notifier = Annotated[NotificationDispatcher, Depends(get_notifier)]
ShippingResolver = Annotated[Optional[ShippingCostResolver], Depends(get_shipping_resolver)]


def get_pricing_service(db: DB, shipping_resolver: ShippingResolver) -> PricingService:
    return PricingService(db, shipping_resolver=shipping_resolver)


def get_checkout_service(
    db: DB,
    gateway: Gateway,
    notifier: Notifier,
    pricing: Annotated[PricingService, Depends(get_pricing_service)],
) -> CheckoutService:
    return CheckoutService(db, gateway=gateway, notifier=notifier, pricing=pricing)


Pricing = Annotated[PricingService, Depends(get_pricing_service)]
Checkout = Annotated[CheckoutService, Depends(get_checkout_service)]
