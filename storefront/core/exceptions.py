"""
Error taxonomy for pricing and checkout.

Every error raised by the services derives from StorefrontError and
belongs to one category:

- VALIDATION: bad input (quantity, unknown product/variant/coupon,
  illegal state change). Reported to the caller, never retried.
- CONFLICT: the request was valid but lost against current state
  (stock, usage caps, a quote that moved). Caller may re-quote.
- COLLABORATOR: shipping/payment collaborator failed or timed out.
  Safe to retry: quoting has no side effects and checkout rolls back.
- INCONSISTENCY: webhook for an unknown order, stale or mismatched
  payment event. Logged and dropped; state is left untouched.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCategory(str, Enum):
    VALIDATION = "VALIDATION"
    CONFLICT = "CONFLICT"
    COLLABORATOR = "COLLABORATOR"
    INCONSISTENCY = "INCONSISTENCY"


class StorefrontError(Exception):
    """Base class for all engine errors."""

    code: str = "STOREFRONT_ERROR"
    category: ErrorCategory = ErrorCategory.VALIDATION
    status_code: int = 400
    retryable: bool = False

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = {
            key: value for key, value in details.items() if value is not None
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "code": self.code,
            "category": self.category.value,
            "retryable": self.retryable,
            "details": {key: str(value) for key, value in self.details.items()},
        }

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class ValidationError(StorefrontError):
    category = ErrorCategory.VALIDATION
    status_code = 400


class ConflictError(StorefrontError):
    category = ErrorCategory.CONFLICT
    status_code = 409


class CollaboratorError(StorefrontError):
    category = ErrorCategory.COLLABORATOR
    status_code = 503
    retryable = True


class InconsistencyError(StorefrontError):
    category = ErrorCategory.INCONSISTENCY
    status_code = 422


# ==================== VALIDATION ====================

class InvalidQuantity(ValidationError):
    code = "INVALID_QUANTITY"

    def __init__(self, quantity: int):
        super().__init__("Quantity must be greater than 0", quantity=quantity)


class EmptyCart(ValidationError):
    code = "EMPTY_CART"

    def __init__(self):
        super().__init__("No items provided")


class ProductNotFound(ValidationError):
    code = "PRODUCT_NOT_FOUND"
    status_code = 404

    def __init__(self, product_id: Any):
        super().__init__(f"Product not found: {product_id}", product_id=product_id)


class VariantMismatch(ValidationError):
    code = "VARIANT_MISMATCH"

    def __init__(self, variant_id: Any, product_id: Any):
        super().__init__(
            "Variant does not belong to the specified product",
            variant_id=variant_id,
            product_id=product_id,
        )


class CouponNotFound(ValidationError):
    code = "COUPON_NOT_FOUND"
    status_code = 404

    def __init__(self, code: str):
        super().__init__("Invalid coupon code", coupon_code=code)


class CouponExpired(ValidationError):
    code = "COUPON_EXPIRED"

    def __init__(self, code: str, reason: str = "This coupon has expired"):
        super().__init__(reason, coupon_code=code)


class CouponNotEligible(ValidationError):
    code = "COUPON_NOT_ELIGIBLE"

    def __init__(self, code: str, tier: str):
        super().__init__(
            f"This coupon is not available for {tier.lower()} customers",
            coupon_code=code,
            customer_tier=tier,
        )


class CouponMinimumNotMet(ValidationError):
    code = "COUPON_MINIMUM_NOT_MET"

    def __init__(self, code: str, minimum: Any, amount: Any):
        super().__init__(
            f"Minimum purchase of {minimum} required",
            coupon_code=code,
            minimum_purchase_amount=minimum,
            purchase_amount=amount,
        )


class InvalidStateTransition(ValidationError):
    code = "INVALID_STATE_TRANSITION"
    status_code = 409

    def __init__(self, order_number: str, current: str, action: str):
        super().__init__(
            f"Cannot {action} order {order_number} in state {current}",
            order_number=order_number,
            current_state=current,
            action=action,
        )


class InvalidSignature(ValidationError):
    code = "INVALID_SIGNATURE"
    status_code = 401

    def __init__(self, order_number: Optional[str] = None):
        super().__init__("Invalid payment notification signature", order_number=order_number)


# ==================== CONFLICT ====================

class InsufficientStock(ConflictError):
    code = "INSUFFICIENT_STOCK"

    def __init__(self, product_id: Any, variant_id: Any, requested: int):
        super().__init__(
            "Insufficient stock",
            product_id=product_id,
            variant_id=variant_id,
            requested=requested,
        )


class CouponUsageExceeded(ConflictError):
    code = "COUPON_USAGE_EXCEEDED"

    def __init__(self, code: str):
        super().__init__("This coupon has reached its usage limit", coupon_code=code)


class CouponUserLimitExceeded(ConflictError):
    code = "COUPON_USER_LIMIT_EXCEEDED"

    def __init__(self, code: str, user_id: Any):
        super().__init__(
            "You have already used this coupon the maximum number of times",
            coupon_code=code,
            user_id=user_id,
        )


class FlashSaleSoldOut(ConflictError):
    code = "FLASH_SALE_SOLD_OUT"

    def __init__(self, flash_sale_id: Any, product_id: Any):
        super().__init__(
            "Flash sale stock was taken before checkout completed",
            flash_sale_id=flash_sale_id,
            product_id=product_id,
        )


class QuoteMismatch(ConflictError):
    code = "QUOTE_MISMATCH"

    def __init__(self, expected: Any, actual: Any):
        super().__init__(
            "Order total changed since the quote; please review the cart",
            expected_total=expected,
            actual_total=actual,
        )


# ==================== COLLABORATOR ====================

class ShippingUnavailable(CollaboratorError):
    code = "SHIPPING_UNAVAILABLE"

    def __init__(self, message: str = "Shipping cost could not be determined, try again", **details: Any):
        super().__init__(message, **details)


class PaymentGatewayError(CollaboratorError):
    code = "PAYMENT_GATEWAY_ERROR"

    def __init__(self, message: str = "Payment gateway unavailable, try again", **details: Any):
        super().__init__(message, **details)


# ==================== INCONSISTENCY ====================

class OrderNotFound(InconsistencyError):
    code = "ORDER_NOT_FOUND"
    status_code = 404

    def __init__(self, order_number: str):
        super().__init__(f"Order not found: {order_number}", order_number=order_number)


class StalePaymentEvent(InconsistencyError):
    code = "STALE_PAYMENT_EVENT"

    def __init__(self, order_number: str, current: str, event: str):
        super().__init__(
            f"Payment event {event} is stale for order {order_number} ({current})",
            order_number=order_number,
            current_payment_status=current,
            event=event,
        )


class PaymentRecoveryFailed(InconsistencyError):
    code = "PAYMENT_RECOVERY_FAILED"

    def __init__(self, order_number: str, reason: str):
        super().__init__(
            f"Payment for order {order_number} arrived after its stock was released "
            f"and could not be re-taken; manual reconciliation required",
            order_number=order_number,
            reason=reason,
        )


class AmountMismatch(InconsistencyError):
    code = "AMOUNT_MISMATCH"

    def __init__(self, order_number: str, expected: Any, actual: Any):
        super().__init__(
            f"Notified amount does not match order {order_number}",
            order_number=order_number,
            expected_amount=expected,
            notified_amount=actual,
        )
