"""
Payment Gateway collaborators.

A gateway does three things for checkout:
- issue a charge token (and redirect URL) for an order's grand total
- parse an incoming notification into a PaymentNotification
- verify the notification's signature

Implementations:
- SandboxGateway: deterministic, no network (development and tests)
- RazorpayGateway: Razorpay orders API and HMAC-SHA256 webhooks
"""

import asyncio
import hashlib
import hmac
import json
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional, Protocol

import razorpay
from pydantic import BaseModel, Field

from storefront.config import settings
from storefront.core.clock import utcnow
from storefront.core.exceptions import PaymentGatewayError, InvalidSignature
from storefront.core.money import round_money, to_minor_units, to_money
from storefront.models.order import PaymentStatus
from storefront.services.payment_state import map_gateway_status

logger = logging.getLogger(__name__)


class PaymentCustomer(BaseModel):
    """Buyer details forwarded to the gateway."""
    user_id: str
    name: str
    phone: str
    email: Optional[str] = None


class ChargeToken(BaseModel):
    """Token the client uses to complete payment."""
    token: str
    redirect_url: str
    expires_at: Optional[datetime] = None


class PaymentNotification(BaseModel):
    """Gateway notification reduced to what the order state machine needs."""
    order_number: str
    transaction_status: str
    gross_amount: Decimal
    signature: Optional[str] = None
    transaction_id: Optional[str] = None
    payment_type: Optional[str] = None
    raw_body: Optional[bytes] = Field(default=None, exclude=True, repr=False)

    @property
    def status(self) -> Optional[PaymentStatus]:
        return map_gateway_status(self.transaction_status)


def format_gross_amount(amount: Any) -> str:
    """Canonical two-decimal amount string used in signatures."""
    return str(round_money(amount, 2))


class PaymentGateway(Protocol):
    name: str

    async def create_charge_token(
        self, order_number: str, amount: Decimal, customer: PaymentCustomer
    ) -> ChargeToken:
        ...

    def parse_notification(self, body: bytes, headers: Mapping[str, str]) -> PaymentNotification:
        ...

    def verify_notification(self, notification: PaymentNotification) -> bool:
        ...


def _load_json(body: bytes) -> Dict[str, Any]:
    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise InvalidSignature()
    if not isinstance(payload, dict):
        raise InvalidSignature()
    return payload


# ==================== SANDBOX ====================

class SandboxGateway:
    """
    Deterministic gateway with Midtrans-style signatures:
    SHA-512 over order_number + transaction_status + gross_amount + server_key.
    """

    name = "sandbox"

    def __init__(self, server_key: Optional[str] = None, redirect_url: Optional[str] = None):
        self.server_key = server_key or settings.SANDBOX_SERVER_KEY
        self.redirect_url = redirect_url or settings.SANDBOX_REDIRECT_URL

    def sign(self, order_number: str, transaction_status: str, gross_amount: Any) -> str:
        payload = f"{order_number}{transaction_status}{format_gross_amount(gross_amount)}{self.server_key}"
        return hashlib.sha512(payload.encode()).hexdigest()

    async def create_charge_token(
        self, order_number: str, amount: Decimal, customer: PaymentCustomer
    ) -> ChargeToken:
        seed = f"{order_number}:{format_gross_amount(amount)}:{self.server_key}"
        token = hashlib.sha256(seed.encode()).hexdigest()[:32]
        return ChargeToken(
            token=token,
            redirect_url=f"{self.redirect_url.rstrip('/')}/{token}",
            expires_at=utcnow() + timedelta(hours=settings.PAYMENT_EXPIRY_HOURS),
        )

    def parse_notification(self, body: bytes, headers: Mapping[str, str]) -> PaymentNotification:
        payload = _load_json(body)
        try:
            return PaymentNotification(
                order_number=str(payload["order_id"]),
                transaction_status=str(payload["transaction_status"]),
                gross_amount=to_money(payload["gross_amount"]),
                signature=payload.get("signature_key"),
                transaction_id=payload.get("transaction_id"),
                payment_type=payload.get("payment_type"),
                raw_body=body,
            )
        except (KeyError, ArithmeticError, ValueError):
            raise InvalidSignature(order_number=payload.get("order_id"))

    def verify_notification(self, notification: PaymentNotification) -> bool:
        if not notification.signature:
            return False
        expected = self.sign(
            notification.order_number,
            notification.transaction_status,
            notification.gross_amount,
        )
        return hmac.compare_digest(expected, notification.signature)


# ==================== RAZORPAY ====================

# Razorpay webhook events to transaction statuses
RAZORPAY_EVENT_STATUS = {
    "payment.captured": "captured",
    "order.paid": "paid",
    "payment.failed": "failed",
    "refund.processed": "refunded",
    "payment.authorized": "authorized",
}


class RazorpayGateway:
    """
    Razorpay orders API.

    The SDK is synchronous, so calls run in a worker thread bounded by
    PAYMENT_TIMEOUT_SECONDS.
    """

    name = "razorpay"

    def __init__(
        self,
        key_id: Optional[str] = None,
        key_secret: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        client: Optional[razorpay.Client] = None,
    ):
        self.key_id = key_id or settings.RAZORPAY_KEY_ID
        self.key_secret = key_secret or settings.RAZORPAY_KEY_SECRET
        self.webhook_secret = webhook_secret or settings.RAZORPAY_WEBHOOK_SECRET
        self.client = client or razorpay.Client(auth=(self.key_id, self.key_secret))
        self.timeout = settings.PAYMENT_TIMEOUT_SECONDS

    async def create_charge_token(
        self, order_number: str, amount: Decimal, customer: PaymentCustomer
    ) -> ChargeToken:
        order_data = {
            "amount": to_minor_units(amount),
            "currency": settings.CURRENCY,
            "receipt": order_number,
            "notes": {
                "order_number": order_number,
                "user_id": customer.user_id,
                "customer_name": customer.name,
            },
        }
        if customer.email:
            order_data["notes"]["customer_email"] = customer.email

        try:
            razorpay_order = await asyncio.wait_for(
                asyncio.to_thread(self.client.order.create, data=order_data),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error(f"Razorpay order creation timed out for {order_number}")
            raise PaymentGatewayError("Payment gateway timed out, try again", order_number=order_number) from e
        except Exception as e:
            logger.error(f"Failed to create Razorpay order for {order_number}: {e}")
            raise PaymentGatewayError(order_number=order_number) from e

        logger.info(f"Created Razorpay order {razorpay_order['id']} for order {order_number}")

        return ChargeToken(
            token=razorpay_order["id"],
            redirect_url=(
                f"{settings.RAZORPAY_CHECKOUT_URL}?key_id={self.key_id}"
                f"&order_id={razorpay_order['id']}"
            ),
            expires_at=utcnow() + timedelta(hours=settings.PAYMENT_EXPIRY_HOURS),
        )

    def parse_notification(self, body: bytes, headers: Mapping[str, str]) -> PaymentNotification:
        payload = _load_json(body)
        event = payload.get("event", "")
        entity = payload.get("payload", {}).get("payment", {}).get("entity", {})
        notes = entity.get("notes") or {}
        order_number = notes.get("order_number")
        if not order_number or event not in RAZORPAY_EVENT_STATUS:
            logger.warning(f"Unusable Razorpay webhook: event={event}")
            raise InvalidSignature(order_number=order_number)

        return PaymentNotification(
            order_number=order_number,
            transaction_status=RAZORPAY_EVENT_STATUS[event],
            gross_amount=to_money(entity.get("amount", 0)) / 100,
            signature=headers.get("x-razorpay-signature"),
            transaction_id=entity.get("id"),
            payment_type=entity.get("method"),
            raw_body=body,
        )

    def verify_notification(self, notification: PaymentNotification) -> bool:
        if not self.webhook_secret:
            logger.warning("Webhook secret not configured")
            return False
        if not notification.signature or notification.raw_body is None:
            return False

        expected_signature = hmac.new(
            self.webhook_secret.encode(),
            notification.raw_body,
            hashlib.sha256
        ).hexdigest()
        return hmac.compare_digest(expected_signature, notification.signature)


def get_payment_gateway() -> PaymentGateway:
    """Gateway selected by PAYMENT_GATEWAY."""
    if settings.PAYMENT_GATEWAY == "razorpay":
        return RazorpayGateway()
    return SandboxGateway()
