import logging

from fastapi import APIRouter, status

from storefront.api.deps import Checkout
from storefront.schemas.checkout import (
    CheckoutRequestSchema,
    CheckoutResponse,
    OrderResponse,
    PaymentTokenResponse,
)
from storefront.schemas.pricing import OrderSummaryResponse

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("", response_model=CheckoutResponse, status_code=status.HTTP_201_CREATED)
async def checkout(request: CheckoutRequestSchema, service: Checkout):
    """
    Place an order: re-price the cart, take stock, redeem the coupon and
    request a payment token. The order starts PENDING until the gateway
    notifies payment.
    """
    result = await service.checkout(request.to_checkout_request())
    return CheckoutResponse(
        order=OrderResponse.model_validate(result.order),
        summary=OrderSummaryResponse.model_validate(result.summary),
        payment=PaymentTokenResponse.model_validate(result.payment),
    )
