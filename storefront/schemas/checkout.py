from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from storefront.models.order import CustomerTier, OrderStatus
from storefront.schemas.base import BaseCreateSchema, BaseResponseSchema
from storefront.schemas.pricing import CartItemRequest, ShippingRequestSchema, OrderSummaryResponse
from storefront.services.checkout_service import CheckoutRequest


# ==================== Requests ====================

class CheckoutRequestSchema(BaseCreateSchema):
    """Cart plus recipient details; user_id comes from the caller's identity layer."""
    user_id: str = Field(..., min_length=1, max_length=64)
    items: List[CartItemRequest]
    shipping: ShippingRequestSchema
    recipient_name: str = Field(..., min_length=1, max_length=100)
    recipient_phone: str = Field(..., min_length=6, max_length=20)
    recipient_email: Optional[str] = Field(None, max_length=255)
    shipping_address: str = Field(..., min_length=1, max_length=500)
    customer_tier: CustomerTier = CustomerTier.RETAIL
    coupon_code: Optional[str] = Field(None, max_length=50)
    expected_total: Optional[Decimal] = Field(None, ge=0, description="Grand total from a prior quote")
    notes: Optional[str] = None

    def to_checkout_request(self) -> CheckoutRequest:
        return CheckoutRequest(
            user_id=self.user_id,
            items=[item.to_cart_item() for item in self.items],
            shipping=self.shipping.to_shipping_request(),
            recipient_name=self.recipient_name,
            recipient_phone=self.recipient_phone,
            recipient_email=self.recipient_email,
            shipping_address=self.shipping_address,
            tier=self.customer_tier,
            coupon_code=self.coupon_code,
            expected_total=self.expected_total,
            notes=self.notes,
        )


class CancelOrderRequest(BaseCreateSchema):
    reason: Optional[str] = Field(None, max_length=500)


class RefundOrderRequest(BaseCreateSchema):
    reason: Optional[str] = Field(None, max_length=500)


class AdvanceOrderRequest(BaseCreateSchema):
    status: OrderStatus
    tracking_number: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None


# ==================== Responses ====================

class OrderItemResponse(BaseResponseSchema):
    id: UUID
    line_number: int
    product_id: UUID
    variant_id: Optional[UUID] = None
    product_name: str
    product_sku: str
    variant_name: Optional[str] = None
    quantity: int
    base_unit_price: Decimal
    unit_price: Decimal
    line_total: Decimal
    price_source: str
    tier_discount_percent: Decimal
    flash_sale_id: Optional[UUID] = None


class OrderStatusHistoryResponse(BaseResponseSchema):
    from_status: Optional[str] = None
    to_status: str
    payment_status: str
    notes: Optional[str] = None
    created_at: datetime


class OrderResponse(BaseResponseSchema):
    id: UUID
    order_number: str
    user_id: str
    customer_tier: str
    status: str
    payment_status: str
    payment_method: Optional[str] = None
    subtotal: Decimal
    discount_amount: Decimal
    taxable_base: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    shipping_cost: Decimal
    total_amount: Decimal
    currency: str
    total_weight_grams: int
    item_count: int
    coupon_code: Optional[str] = None
    free_shipping: bool
    shipping_name: str
    shipping_phone: str
    shipping_address: str
    shipping_destination: str
    shipping_courier: str
    shipping_estimated_days: Optional[int] = None
    tracking_number: Optional[str] = None
    payment_redirect_url: Optional[str] = None
    cancel_reason: Optional[str] = None
    created_at: datetime
    confirmed_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None
    items: List[OrderItemResponse] = []


class OrderDetailResponse(OrderResponse):
    status_history: List[OrderStatusHistoryResponse] = []


class OrderListResponse(BaseModel):
    """Paginated order history."""
    items: List[OrderResponse]
    total: int
    limit: int
    offset: int


class PaymentTokenResponse(BaseResponseSchema):
    token: str
    redirect_url: str
    expires_at: Optional[datetime] = None


class CheckoutResponse(BaseResponseSchema):
    order: OrderResponse
    summary: OrderSummaryResponse
    payment: PaymentTokenResponse


class StockLogResponse(BaseResponseSchema):
    product_id: UUID
    variant_id: Optional[UUID] = None
    change_amount: int
    previous_stock: int
    new_stock: int
    reason: str
    reference_id: str
    created_at: datetime


class PaymentEventResponse(BaseResponseSchema):
    status: str = "ok"
    order_number: str
    outcome: str
    order_status: str
    payment_status: str
    note: Optional[str] = None
