import json
from decimal import Decimal

import httpx
import pytest

from storefront.api.deps import get_gateway, get_notifier, get_shipping_resolver
from storefront.database import get_db
from storefront.main import app

from tests.factories import create_coupon, create_product


@pytest.fixture
async def client(session_factory, gateway, notifier, flat_shipping):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_shipping_resolver] = lambda: flat_shipping

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


def checkout_payload(product_id, quantity=2, **fields):
    payload = {
        "user_id": "user-1",
        "items": [{"product_id": str(product_id), "quantity": quantity}],
        "shipping": {"destination": "ID-JK", "origin": "ID-JB", "courier": "jne"},
        "recipient_name": "Budi Santoso",
        "recipient_phone": "081234567890",
        "shipping_address": "Jl. Sudirman 1, Jakarta",
    }
    payload.update(fields)
    return payload


def notification_body(gateway, order_number, status, amount):
    return json.dumps({
        "order_id": order_number,
        "transaction_status": status,
        "gross_amount": amount,
        "signature_key": gateway.sign(order_number, status, amount),
        "transaction_id": "trx-1",
    })


async def test_order_summary_endpoint(db, client):
    product = await create_product(db, price="50000")
    await create_coupon(db, "SALE10")

    response = await client.post("/api/v1/pricing/order-summary", json={
        "items": [{"product_id": str(product.id), "quantity": 2}],
        "shipping": {"destination": "ID-JK"},
        "coupon_code": "sale10",
    })

    assert response.status_code == 200
    body = response.json()
    assert Decimal(body["grand_total"]) == Decimal("109900")
    assert body["coupon_code"] == "SALE10"
    assert body["lines"][0]["source"] == "BASE"


async def test_price_endpoint_rejects_zero_quantity(db, client):
    product = await create_product(db)

    response = await client.post("/api/v1/pricing/calculate", json={
        "product_id": str(product.id), "quantity": 0,
    })

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_QUANTITY"


async def test_coupon_validate_reports_reason(db, client):
    await create_coupon(db, "MIN", min_purchase_amount=Decimal("500000"))

    response = await client.post("/api/v1/pricing/coupons/validate", json={"code": "MIN", "amount": "100000"})

    assert response.status_code == 400
    assert response.json()["code"] == "COUPON_MINIMUM_NOT_MET"


async def test_shipping_endpoint(db, client):
    product = await create_product(db, weight_grams=700)

    response = await client.post("/api/v1/pricing/shipping", json={
        "items": [{"product_id": str(product.id), "quantity": 3}],
        "shipping": {"destination": "ID-JK"},
    })

    assert response.status_code == 200
    body = response.json()
    assert body["total_weight_grams"] == 2100
    assert Decimal(body["shipping_cost"]) == Decimal("10000")


async def test_checkout_pay_and_read_back(db, client, gateway):
    product = await create_product(db, price="50000", stock=10)

    response = await client.post("/api/v1/checkout", json=checkout_payload(product.id))
    assert response.status_code == 201
    created = response.json()
    order_number = created["order"]["order_number"]
    assert created["order"]["status"] == "PENDING"
    assert created["payment"]["token"]

    response = await client.post(
        "/api/v1/payments/notification",
        content=notification_body(gateway, order_number, "settlement", "121000.00"),
    )
    assert response.status_code == 200
    assert response.json()["outcome"] == "APPLIED"

    response = await client.get(f"/api/v1/orders/{order_number}")
    assert response.status_code == 200
    order = response.json()
    assert (order["status"], order["payment_status"]) == ("CONFIRMED", "PAID")
    assert [h["to_status"] for h in order["status_history"]] == ["PENDING", "CONFIRMED"]

    response = await client.get(f"/api/v1/orders/{order_number}/stock-logs")
    assert [log["change_amount"] for log in response.json()] == [-2]


async def test_checkout_out_of_stock_is_conflict(db, client):
    product = await create_product(db, stock=1)

    response = await client.post("/api/v1/checkout", json=checkout_payload(product.id, quantity=2))

    assert response.status_code == 409
    body = response.json()
    assert body["code"] == "INSUFFICIENT_STOCK"
    assert body["category"] == "CONFLICT"


async def test_stale_notification_is_acknowledged(db, client, gateway):
    product = await create_product(db, price="50000", stock=10)
    order_number = (await client.post("/api/v1/checkout", json=checkout_payload(product.id))).json()["order"]["order_number"]
    await client.post(
        "/api/v1/payments/notification",
        content=notification_body(gateway, order_number, "settlement", "121000.00"),
    )

    response = await client.post(
        "/api/v1/payments/notification",
        content=notification_body(gateway, order_number, "expire", "121000.00"),
    )

    assert response.status_code == 200
    assert response.json()["status"] == "ignored"
    assert response.json()["outcome"] == "STALE_PAYMENT_EVENT"


async def test_notification_status_codes(client, gateway):
    forged = json.dumps({
        "order_id": "ORD-1", "transaction_status": "settlement",
        "gross_amount": "1.00", "signature_key": "forged",
    })
    unknown = notification_body(gateway, "ORD-20260302-00000000", "settlement", "1.00")

    assert (await client.post("/api/v1/payments/notification", content=forged)).status_code == 401
    assert (await client.post("/api/v1/payments/notification", content=unknown)).status_code == 404


async def test_cancel_refund_and_advance_endpoints(db, client, gateway):
    product = await create_product(db, price="50000", stock=10)
    first = (await client.post("/api/v1/checkout", json=checkout_payload(product.id))).json()["order"]["order_number"]
    second = (await client.post("/api/v1/checkout", json=checkout_payload(product.id))).json()["order"]["order_number"]

    response = await client.post(f"/api/v1/orders/{first}/cancel", json={"reason": "duplicate order"})
    assert response.status_code == 200
    assert response.json()["status"] == "CANCELLED"

    await client.post(
        "/api/v1/payments/notification",
        content=notification_body(gateway, second, "settlement", "121000.00"),
    )
    response = await client.post(f"/api/v1/orders/{second}/status", json={"status": "PROCESSING"})
    assert response.json()["status"] == "PROCESSING"

    response = await client.post(f"/api/v1/orders/{second}/status", json={"status": "DELIVERED"})
    assert response.status_code == 409

    response = await client.post(f"/api/v1/orders/{second}/refund", json={})
    assert response.status_code == 200
    assert (response.json()["status"], response.json()["payment_status"]) == ("REFUNDED", "REFUNDED")


async def test_order_history_endpoint(db, client):
    product = await create_product(db, price="50000", stock=10)
    for _ in range(2):
        await client.post("/api/v1/checkout", json=checkout_payload(product.id, quantity=1))

    response = await client.get("/api/v1/orders", params={"user_id": "user-1", "limit": 1, "offset": -2})
    assert response.status_code == 200
    body = response.json()
    assert (body["total"], body["limit"], body["offset"]) == (2, 1, 0)
    assert len(body["items"]) == 1
    assert body["items"][0]["status"] == "PENDING"

    response = await client.get("/api/v1/orders", params={"user_id": "user-1", "limit": 0})
    assert response.json()["limit"] == 10
    assert len(response.json()["items"]) == 2


async def test_root(client):
    response = await client.get("/")

    assert response.status_code == 200
    assert response.json()["docs"] == "/docs"
