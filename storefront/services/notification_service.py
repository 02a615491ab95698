"""
Order Notification Dispatcher

Tells the customer about order events. Dispatch happens after the
order's transaction has committed and is best-effort: a failure is
logged and never undoes the order change.

LoggingNotificationDispatcher writes messages to the log; a WhatsApp or
email provider plugs in by implementing `send`.
"""
import logging
from enum import Enum
from typing import Any, Dict, Optional, Protocol

from storefront.models.order import Order


logger = logging.getLogger(__name__)


class OrderEvent(str, Enum):
    """Order events customers are told about."""
    ORDER_CREATED = "order_created"
    PAYMENT_CONFIRMED = "payment_confirmed"
    PAYMENT_FAILED = "payment_failed"
    ORDER_CANCELLED = "order_cancelled"
    ORDER_REFUNDED = "order_refunded"
    ORDER_SHIPPED = "order_shipped"
    ORDER_DELIVERED = "order_delivered"


MESSAGE_TEMPLATES = {
    OrderEvent.ORDER_CREATED: (
        "Hi {customer_name}, order #{order_number} is waiting for payment. "
        "Total: {currency} {amount}. Pay here: {payment_url}"
    ),
    OrderEvent.PAYMENT_CONFIRMED: (
        "Hi {customer_name}, payment for order #{order_number} was received. "
        "We are preparing your package."
    ),
    OrderEvent.PAYMENT_FAILED: (
        "Hi {customer_name}, payment for order #{order_number} did not go through "
        "and the order was cancelled."
    ),
    OrderEvent.ORDER_CANCELLED: (
        "Hi {customer_name}, order #{order_number} was cancelled. {reason}"
    ),
    OrderEvent.ORDER_REFUNDED: (
        "Hi {customer_name}, order #{order_number} was refunded: {currency} {amount}."
    ),
    OrderEvent.ORDER_SHIPPED: (
        "Hi {customer_name}, order #{order_number} has been shipped via {courier}."
    ),
    OrderEvent.ORDER_DELIVERED: (
        "Hi {customer_name}, order #{order_number} has been delivered. Thank you!"
    ),
}


def render_message(order: Order, event: OrderEvent) -> str:
    template_data: Dict[str, Any] = {
        "customer_name": order.shipping_name,
        "order_number": order.order_number,
        "currency": order.currency,
        "amount": order.total_amount,
        "payment_url": order.payment_redirect_url or "",
        "reason": order.cancel_reason or "",
        "courier": (order.shipping_courier or "").upper(),
    }
    template = MESSAGE_TEMPLATES.get(event, "")
    try:
        return template.format(**template_data)
    except KeyError as e:
        logger.warning(f"Missing template variable: {e}")
        return template


class NotificationDispatcher(Protocol):
    async def notify(self, order: Order, event: OrderEvent) -> None:
        ...


class LoggingNotificationDispatcher:
    """Dispatcher that logs messages instead of sending them."""

    async def send(self, recipient_phone: str, recipient_email: Optional[str], message: str) -> None:
        logger.info(f"[NOTIFICATION] to {recipient_phone}: {message[:100]}")

    async def notify(self, order: Order, event: OrderEvent) -> None:
        try:
            await self.send(order.shipping_phone, order.shipping_email, render_message(order, event))
        except Exception as e:
            logger.warning(f"Notification {event.value} for order {order.order_number} failed: {e}")
