from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import Field

from storefront.models.order import CustomerTier, PriceSource
from storefront.schemas.base import BaseCreateSchema, BaseResponseSchema
from storefront.services.pricing_service import CartItem, ShippingRequest


# ==================== Requests ====================

class CartItemRequest(BaseCreateSchema):
    product_id: UUID
    variant_id: Optional[UUID] = None
    # Validated by the price resolver (InvalidQuantity)
    quantity: int

    def to_cart_item(self) -> CartItem:
        return CartItem(product_id=self.product_id, quantity=self.quantity, variant_id=self.variant_id)


class ShippingRequestSchema(BaseCreateSchema):
    destination: str = Field(..., min_length=1, max_length=50)
    origin: Optional[str] = Field(None, max_length=50)
    courier: Optional[str] = Field(None, max_length=30)

    def to_shipping_request(self) -> ShippingRequest:
        return ShippingRequest(destination=self.destination, origin=self.origin, courier=self.courier)


class PriceCalculateRequest(BaseCreateSchema):
    product_id: UUID
    variant_id: Optional[UUID] = None
    quantity: int
    customer_tier: CustomerTier = CustomerTier.RETAIL
    user_id: Optional[str] = None


class ShippingCalculateRequest(BaseCreateSchema):
    items: List[CartItemRequest]
    shipping: ShippingRequestSchema


class OrderSummaryRequest(BaseCreateSchema):
    items: List[CartItemRequest]
    shipping: ShippingRequestSchema
    customer_tier: CustomerTier = CustomerTier.RETAIL
    coupon_code: Optional[str] = Field(None, max_length=50)
    user_id: Optional[str] = None


class CouponValidateRequest(BaseCreateSchema):
    code: str = Field(..., min_length=1, max_length=50)
    amount: Decimal = Field(..., ge=0)
    customer_tier: CustomerTier = CustomerTier.RETAIL
    user_id: Optional[str] = None


# ==================== Responses ====================

class PricedLineResponse(BaseResponseSchema):
    product_id: UUID
    variant_id: Optional[UUID] = None
    product_name: str
    product_sku: str
    variant_name: Optional[str] = None
    quantity: int
    base_unit_price: Decimal
    unit_price: Decimal
    line_total: Decimal
    source: PriceSource
    tier_discount_percent: Decimal
    flash_sale_id: Optional[UUID] = None
    line_weight_grams: int


class ShippingQuoteResponse(BaseResponseSchema):
    total_weight_grams: int
    shipping_cost: Decimal
    courier: Optional[str] = None
    estimated_days: Optional[int] = None
    free_shipping: bool = False


class CouponValidateResponse(BaseResponseSchema):
    valid: bool = True
    code: str
    name: str
    discount: Decimal
    free_shipping: bool = False


class OrderSummaryResponse(BaseResponseSchema):
    lines: List[PricedLineResponse]
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
    currency: str
    coupon_code: Optional[str] = None
    free_shipping: bool = False
    courier: Optional[str] = None
    estimated_days: Optional[int] = None
