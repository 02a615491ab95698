from decimal import Decimal

import pytest

from storefront.core.exceptions import InvalidStateTransition, OrderNotFound
from storefront.models.order import OrderStatus
from storefront.services.checkout_service import page_bounds
from storefront.services.payment_service import PaymentNotification

from tests.factories import NOW, cart, checkout_request, create_product, create_variant, current_stock


async def place(db, service, stock=10, quantity=3):
    product = await create_product(db, price="50000", stock=stock)
    result = await service.checkout(checkout_request(cart(product, quantity)), at=NOW)
    return product.id, result.order


async def pay(service, gateway, order):
    status = "settlement"
    amount = order.total_amount
    await service.process_payment_notification(
        PaymentNotification(
            order_number=order.order_number,
            transaction_status=status,
            gross_amount=amount,
            signature=gateway.sign(order.order_number, status, amount),
        )
    )


async def test_cancel_restores_exactly_what_was_taken(db, checkout_service, notifier):
    product_id, order = await place(db, checkout_service)

    await checkout_service.cancel(order.order_number, reason="changed my mind")
    order = await checkout_service.get_order(order.order_number)
    logs = await checkout_service.get_stock_logs(order.order_number)

    assert order.status == OrderStatus.CANCELLED.value
    assert order.cancel_reason == "changed my mind"
    assert await current_stock(db, product_id) == 10
    assert [(log.change_amount, log.reason) for log in logs] == [(-3, "checkout"), (3, "cancelled")]
    assert sum(log.change_amount for log in logs) == 0
    assert notifier.sent[-1] == (order.order_number, "order_cancelled")


async def test_cancel_variant_order_restores_variant_stock(db, checkout_service):
    product = await create_product(db, sku="SHIRT", stock=0)
    variant = await create_variant(db, product, "SHIRT-M", stock=4)
    product_id, variant_id = product.id, variant.id
    result = await checkout_service.checkout(checkout_request(cart(product, 2, variant)), at=NOW)
    assert await current_stock(db, product_id, variant_id) == 2

    await checkout_service.cancel(result.order.order_number)

    assert await current_stock(db, product_id, variant_id) == 4
    assert await current_stock(db, product_id) == 0


async def test_cancel_paid_order_keeps_payment_status(db, checkout_service, gateway):
    product_id, order = await place(db, checkout_service)
    await pay(checkout_service, gateway, order)

    await checkout_service.cancel(order.order_number)
    order = await checkout_service.get_order(order.order_number)

    assert (order.status, order.payment_status) == ("CANCELLED", "PAID")
    assert await current_stock(db, product_id) == 10


async def test_cancel_twice_is_rejected(db, checkout_service):
    product_id, order = await place(db, checkout_service)
    order_number = order.order_number
    await checkout_service.cancel(order_number)

    with pytest.raises(InvalidStateTransition):
        await checkout_service.cancel(order_number)

    assert await current_stock(db, product_id) == 10


async def test_shipped_order_cannot_be_cancelled(db, checkout_service, gateway):
    _, order = await place(db, checkout_service)
    order_number = order.order_number
    await pay(checkout_service, gateway, order)
    await checkout_service.advance(order_number, OrderStatus.PROCESSING)
    await checkout_service.advance(order_number, OrderStatus.SHIPPED, tracking_number="JNE123")

    with pytest.raises(InvalidStateTransition):
        await checkout_service.cancel(order_number)


async def test_refund_paid_order(db, checkout_service, gateway, notifier):
    product_id, order = await place(db, checkout_service)
    await pay(checkout_service, gateway, order)

    await checkout_service.refund(order.order_number, reason="damaged")
    order = await checkout_service.get_order(order.order_number)
    logs = await checkout_service.get_stock_logs(order.order_number)

    assert (order.status, order.payment_status) == ("REFUNDED", "REFUNDED")
    assert order.refunded_at is not None
    assert await current_stock(db, product_id) == 10
    assert [(log.change_amount, log.reason) for log in logs] == [(-3, "checkout"), (3, "refunded")]
    assert notifier.sent[-1] == (order.order_number, "order_refunded")


async def test_refund_after_cancel_does_not_restore_twice(db, checkout_service, gateway):
    product_id, order = await place(db, checkout_service)
    await pay(checkout_service, gateway, order)
    await checkout_service.cancel(order.order_number)

    await checkout_service.refund(order.order_number)

    assert await current_stock(db, product_id) == 10
    logs = await checkout_service.get_stock_logs(order.order_number)
    assert [log.reason for log in logs] == ["checkout", "cancelled"]


async def test_refund_unpaid_order_is_rejected(db, checkout_service):
    _, order = await place(db, checkout_service)

    with pytest.raises(InvalidStateTransition):
        await checkout_service.refund(order.order_number)


async def test_fulfilment_moves_one_step_at_a_time(db, checkout_service, gateway, notifier):
    _, order = await place(db, checkout_service)
    order_number = order.order_number
    await pay(checkout_service, gateway, order)

    with pytest.raises(InvalidStateTransition):
        await checkout_service.advance(order_number, OrderStatus.SHIPPED)

    await checkout_service.advance(order_number, OrderStatus.PROCESSING)
    await checkout_service.advance(order_number, OrderStatus.SHIPPED, tracking_number="JNE123")
    await checkout_service.advance(order_number, OrderStatus.DELIVERED, notes="left at the door")
    order = await checkout_service.get_order(order_number)

    assert order.status == "DELIVERED"
    assert order.tracking_number == "JNE123"
    assert order.shipped_at is not None and order.delivered_at is not None
    assert [h.to_status for h in order.status_history] == [
        "PENDING", "CONFIRMED", "PROCESSING", "SHIPPED", "DELIVERED",
    ]
    assert [event for _, event in notifier.sent][-2:] == ["order_shipped", "order_delivered"]


async def test_pending_order_cannot_be_fulfilled(db, checkout_service):
    _, order = await place(db, checkout_service)

    with pytest.raises(InvalidStateTransition):
        await checkout_service.advance(order.order_number, OrderStatus.PROCESSING)


async def test_unknown_order(checkout_service):
    with pytest.raises(OrderNotFound):
        await checkout_service.cancel("ORD-20260302-00000000")


async def test_order_totals_are_frozen(db, checkout_service):
    product_id, order = await place(db, checkout_service, quantity=1)
    order_number = order.order_number

    # Later price changes do not touch the order
    product = await checkout_service.pricing.price_resolver.get_product(product_id)
    product.price = Decimal("99000")
    await db.commit()

    order = await checkout_service.get_order(order_number)
    assert order.items[0].unit_price == Decimal("50000")
    assert order.total_amount == Decimal("65500")


@pytest.mark.parametrize(
    "limit, offset, expected",
    [
        (5, 20, (5, 20)),
        (50, 0, (50, 0)),
        (0, 0, (10, 0)),
        (-3, 0, (10, 0)),
        (51, 0, (10, 0)),
        (None, None, (10, 0)),
        (20, -1, (20, 0)),
    ],
)
def test_page_bounds(limit, offset, expected):
    assert page_bounds(limit, offset) == expected


async def test_order_history_pages_per_customer(db, checkout_service):
    product = await create_product(db, price="50000", stock=10)
    items = cart(product, 1)
    placed = []
    for _ in range(3):
        result = await checkout_service.checkout(checkout_request(items), at=NOW)
        placed.append(result.order.order_number)
    await checkout_service.checkout(checkout_request(items, user_id="user-2"), at=NOW)

    first_page, total = await checkout_service.list_orders("user-1", limit=2, offset=0)
    second_page, _ = await checkout_service.list_orders("user-1", limit=2, offset=2)
    clamped, _ = await checkout_service.list_orders("user-1", limit=500, offset=-5)

    assert total == 3
    assert len(first_page) == 2 and len(second_page) == 1
    assert sorted(o.order_number for o in first_page + second_page) == sorted(placed)
    assert len(clamped) == 3
    assert all(o.user_id == "user-1" for o in clamped)


async def test_order_history_for_customer_without_orders(checkout_service):
    orders, total = await checkout_service.list_orders("nobody")

    assert (orders, total) == ([], 0)
