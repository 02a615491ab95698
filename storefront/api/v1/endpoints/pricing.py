"""
Pricing API Endpoints

Read-only quotes: unit price, shipping, coupon and full order summary.
Nothing here reserves stock or counts coupon usage.
"""

import logging

from fastapi import APIRouter

from storefront.api.deps import Pricing
from storefront.schemas.pricing import (
    PriceCalculateRequest,
    PricedLineResponse,
    ShippingCalculateRequest,
    ShippingQuoteResponse,
    OrderSummaryRequest,
    OrderSummaryResponse,
    CouponValidateRequest,
    CouponValidateResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/calculate", response_model=PricedLineResponse)
async def calculate_price(request: PriceCalculateRequest, pricing: Pricing):
    """Resolve the unit price of one product for a tier and quantity."""
    line = await pricing.price_resolver.resolve(
        product_id=request.product_id,
        quantity=request.quantity,
        tier=request.customer_tier,
        variant_id=request.variant_id,
        user_id=request.user_id,
    )
    return PricedLineResponse.model_validate(line)


@router.post("/shipping", response_model=ShippingQuoteResponse)
async def calculate_shipping(request: ShippingCalculateRequest, pricing: Pricing):
    """Shipping cost for a cart's total weight."""
    total_weight, quote = await pricing.calculate_shipping_for_items(
        [item.to_cart_item() for item in request.items],
        request.shipping.to_shipping_request(),
    )
    return ShippingQuoteResponse(
        total_weight_grams=total_weight,
        shipping_cost=quote.cost,
        courier=quote.courier,
        estimated_days=quote.estimated_days,
        free_shipping=quote.free_shipping,
    )


@router.post("/order-summary", response_model=OrderSummaryResponse)
async def order_summary(request: OrderSummaryRequest, pricing: Pricing):
    """Full order summary: lines, coupon, tax, shipping and grand total."""
    summary = await pricing.calculate_order_summary(
        [item.to_cart_item() for item in request.items],
        request.shipping.to_shipping_request(),
        tier=request.customer_tier,
        coupon_code=request.coupon_code,
        user_id=request.user_id,
    )
    return OrderSummaryResponse.model_validate(summary)


@router.post("/coupons/validate", response_model=CouponValidateResponse)
async def validate_coupon(request: CouponValidateRequest, pricing: Pricing):
    """
    Validate a coupon against a purchase amount.
    Invalid coupons answer with the coupon error (code and reason).
    """
    evaluation = await pricing.coupons.evaluate(
        request.code,
        request.amount,
        tier=request.customer_tier,
        user_id=request.user_id,
    )
    return CouponValidateResponse(
        code=evaluation.code,
        name=evaluation.name,
        discount=evaluation.discount,
        free_shipping=evaluation.free_shipping,
    )
