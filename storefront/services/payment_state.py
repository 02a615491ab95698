"""
Payment-state transition function.

Gateway notifications can arrive duplicated and out of order. Each one is
reduced to a PaymentStatus event and applied through a single pure
function, keyed by a monotonic precedence:

    PENDING < FAILED < PAID < REFUNDED

- an event equal to the current payment status is a no-op
- an event with lower precedence than the current status is stale
- a higher event moves the order forward and says what to do with stock
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from storefront.core.enum_utils import to_enum
from storefront.models.order import OrderStatus, PaymentStatus, STOCK_RELEASED_STATUSES
from storefront.models.stock_log import StockChangeReason


PAYMENT_PRECEDENCE = {
    PaymentStatus.PENDING: 0,
    PaymentStatus.FAILED: 1,
    PaymentStatus.PAID: 2,
    PaymentStatus.REFUNDED: 3,
}

# Gateway transaction statuses (Midtrans-style and Razorpay-style)
GATEWAY_STATUS_MAP = {
    "capture": PaymentStatus.PAID,
    "settlement": PaymentStatus.PAID,
    "paid": PaymentStatus.PAID,
    "captured": PaymentStatus.PAID,
    "deny": PaymentStatus.FAILED,
    "cancel": PaymentStatus.FAILED,
    "expire": PaymentStatus.FAILED,
    "failure": PaymentStatus.FAILED,
    "failed": PaymentStatus.FAILED,
    "refund": PaymentStatus.REFUNDED,
    "refunded": PaymentStatus.REFUNDED,
    "pending": PaymentStatus.PENDING,
    "authorized": PaymentStatus.PENDING,
    "created": PaymentStatus.PENDING,
}


def map_gateway_status(raw_status: Optional[str]) -> Optional[PaymentStatus]:
    """Gateway status string to a payment event, None when unknown."""
    if not raw_status:
        return None
    return GATEWAY_STATUS_MAP.get(raw_status.strip().lower())


class TransitionOutcome(str, Enum):
    APPLIED = "APPLIED"
    NOOP = "NOOP"
    REJECTED = "REJECTED"


class StockAction(str, Enum):
    NONE = "NONE"
    RESTORE = "RESTORE"
    RETAKE = "RETAKE"


@dataclass(frozen=True)
class PaymentTransition:
    outcome: TransitionOutcome
    order_status: OrderStatus
    payment_status: PaymentStatus
    stock_action: StockAction = StockAction.NONE
    stock_reason: Optional[StockChangeReason] = None
    note: Optional[str] = None

    @property
    def applied(self) -> bool:
        return self.outcome == TransitionOutcome.APPLIED


def apply_payment_event(order_status: Any, payment_status: Any, event: Any) -> PaymentTransition:
    """
    Compute the (order, payment) state after a payment event.

    Pure: the caller performs the stock action and persists the result.
    """
    order_status = to_enum(order_status, OrderStatus)
    payment_status = to_enum(payment_status, PaymentStatus)
    event = to_enum(event, PaymentStatus)
    if order_status is None or payment_status is None or event is None:
        raise ValueError("Unknown order status, payment status or event")

    holds_stock = order_status not in STOCK_RELEASED_STATUSES

    def unchanged(outcome: TransitionOutcome, note: str) -> PaymentTransition:
        return PaymentTransition(outcome, order_status, payment_status, note=note)

    if event == payment_status:
        return unchanged(TransitionOutcome.NOOP, f"duplicate {event.value} event")

    if PAYMENT_PRECEDENCE[event] < PAYMENT_PRECEDENCE[payment_status]:
        return unchanged(
            TransitionOutcome.REJECTED,
            f"stale {event.value} event after {payment_status.value}",
        )

    if event == PaymentStatus.FAILED:
        # Only reachable from PENDING
        if not holds_stock:
            return PaymentTransition(
                TransitionOutcome.APPLIED, order_status, PaymentStatus.FAILED,
                note="payment failed on a released order",
            )
        return PaymentTransition(
            TransitionOutcome.APPLIED,
            OrderStatus.CANCELLED,
            PaymentStatus.FAILED,
            stock_action=StockAction.RESTORE,
            stock_reason=StockChangeReason.PAYMENT_FAILED_RESTORE,
            note="payment failed",
        )

    if event == PaymentStatus.PAID:
        # From PENDING or FAILED
        if not holds_stock:
            return PaymentTransition(
                TransitionOutcome.APPLIED,
                OrderStatus.CONFIRMED,
                PaymentStatus.PAID,
                stock_action=StockAction.RETAKE,
                stock_reason=StockChangeReason.PAYMENT_RECOVERED,
                note=f"payment recovered after {payment_status.value}",
            )
        next_status = OrderStatus.CONFIRMED if order_status == OrderStatus.PENDING else order_status
        return PaymentTransition(
            TransitionOutcome.APPLIED, next_status, PaymentStatus.PAID, note="payment received",
        )

    # REFUNDED
    if payment_status != PaymentStatus.PAID:
        return unchanged(
            TransitionOutcome.REJECTED,
            f"refund for an order that was never paid ({payment_status.value})",
        )
    return PaymentTransition(
        TransitionOutcome.APPLIED,
        OrderStatus.REFUNDED,
        PaymentStatus.REFUNDED,
        stock_action=StockAction.RESTORE if holds_stock else StockAction.NONE,
        stock_reason=StockChangeReason.REFUNDED if holds_stock else None,
        note="payment refunded",
    )
