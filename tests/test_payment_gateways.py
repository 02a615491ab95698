import hashlib
import hmac
import json
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from storefront.core.exceptions import InvalidSignature, PaymentGatewayError
from storefront.services.payment_service import (
    PaymentCustomer,
    RazorpayGateway,
    SandboxGateway,
    format_gross_amount,
)


CUSTOMER = PaymentCustomer(user_id="user-1", name="Budi", phone="0812", email="budi@example.com")


def test_format_gross_amount():
    assert format_gross_amount(Decimal("121000")) == "121000.00"
    assert format_gross_amount("99.5") == "99.50"


class TestSandboxGateway:
    async def test_token_is_deterministic(self):
        gateway = SandboxGateway(server_key="k", redirect_url="https://pay.test/")

        first = await gateway.create_charge_token("ORD-1", Decimal("1000"), CUSTOMER)
        second = await gateway.create_charge_token("ORD-1", Decimal("1000"), CUSTOMER)

        assert first.token == second.token
        assert first.redirect_url == f"https://pay.test/{first.token}"

    def test_parse_and_verify(self):
        gateway = SandboxGateway(server_key="k")
        body = json.dumps({
            "order_id": "ORD-1",
            "transaction_status": "settlement",
            "gross_amount": "121000.00",
            "signature_key": gateway.sign("ORD-1", "settlement", "121000"),
            "transaction_id": "trx-9",
        }).encode()

        notification = gateway.parse_notification(body, {})

        assert notification.order_number == "ORD-1"
        assert notification.gross_amount == Decimal("121000.00")
        assert gateway.verify_notification(notification)

    def test_tampered_amount_fails_verification(self):
        gateway = SandboxGateway(server_key="k")
        body = json.dumps({
            "order_id": "ORD-1",
            "transaction_status": "settlement",
            "gross_amount": "1.00",
            "signature_key": gateway.sign("ORD-1", "settlement", "121000"),
        }).encode()

        assert not gateway.verify_notification(gateway.parse_notification(body, {}))

    @pytest.mark.parametrize("body", [b"not json", b"[]", b'{"order_id": "ORD-1"}'])
    def test_unreadable_body(self, body):
        with pytest.raises(InvalidSignature):
            SandboxGateway(server_key="k").parse_notification(body, {})


class TestRazorpayGateway:
    async def test_creates_order_in_minor_units(self):
        client = MagicMock()
        client.order.create.return_value = {"id": "order_abc"}
        gateway = RazorpayGateway(key_id="rzp_test", key_secret="secret", webhook_secret="wh", client=client)

        token = await gateway.create_charge_token("ORD-1", Decimal("121000"), CUSTOMER)

        data = client.order.create.call_args.kwargs["data"]
        assert data["amount"] == 12100000
        assert data["notes"]["order_number"] == "ORD-1"
        assert token.token == "order_abc"
        assert "order_id=order_abc" in token.redirect_url

    async def test_client_error_becomes_gateway_error(self):
        client = MagicMock()
        client.order.create.side_effect = RuntimeError("connection reset")
        gateway = RazorpayGateway(key_id="rzp_test", key_secret="secret", client=client)

        with pytest.raises(PaymentGatewayError):
            await gateway.create_charge_token("ORD-1", Decimal("1000"), CUSTOMER)

    def test_webhook_signature(self):
        gateway = RazorpayGateway(key_id="rzp_test", key_secret="secret", webhook_secret="wh", client=MagicMock())
        body = json.dumps({
            "event": "payment.captured",
            "payload": {"payment": {"entity": {
                "id": "pay_1", "amount": 12100000, "method": "upi",
                "notes": {"order_number": "ORD-1"},
            }}},
        }).encode()
        signature = hmac.new(b"wh", body, hashlib.sha256).hexdigest()

        notification = gateway.parse_notification(body, {"x-razorpay-signature": signature})

        assert notification.transaction_status == "captured"
        assert notification.gross_amount == Decimal("121000")
        assert gateway.verify_notification(notification)

        forged = gateway.parse_notification(body, {"x-razorpay-signature": "0" * 64})
        assert not gateway.verify_notification(forged)

    def test_event_without_order_number(self):
        gateway = RazorpayGateway(key_id="rzp_test", key_secret="secret", webhook_secret="wh", client=MagicMock())
        body = json.dumps({"event": "payment.captured", "payload": {}}).encode()

        with pytest.raises(InvalidSignature):
            gateway.parse_notification(body, {})
