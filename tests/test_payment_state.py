import pytest

from storefront.models.order import OrderStatus, PaymentStatus
from storefront.models.stock_log import StockChangeReason
from storefront.services.payment_state import (
    StockAction,
    TransitionOutcome,
    apply_payment_event,
    map_gateway_status,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("settlement", PaymentStatus.PAID),
        ("CAPTURE", PaymentStatus.PAID),
        ("expire", PaymentStatus.FAILED),
        ("deny", PaymentStatus.FAILED),
        ("refund", PaymentStatus.REFUNDED),
        ("partial_refund", None),
        ("pending", PaymentStatus.PENDING),
        ("something-else", None),
        ("", None),
    ],
)
def test_map_gateway_status(raw, expected):
    assert map_gateway_status(raw) == expected


@pytest.mark.parametrize(
    "order_status, payment_status, event, outcome, new_order, new_payment, action",
    [
        # Duplicates
        ("PENDING", "PENDING", "PENDING", "NOOP", "PENDING", "PENDING", "NONE"),
        ("CONFIRMED", "PAID", "PAID", "NOOP", "CONFIRMED", "PAID", "NONE"),
        # Forward moves
        ("PENDING", "PENDING", "PAID", "APPLIED", "CONFIRMED", "PAID", "NONE"),
        ("PENDING", "PENDING", "FAILED", "APPLIED", "CANCELLED", "FAILED", "RESTORE"),
        ("CANCELLED", "FAILED", "PAID", "APPLIED", "CONFIRMED", "PAID", "RETAKE"),
        ("CONFIRMED", "PAID", "REFUNDED", "APPLIED", "REFUNDED", "REFUNDED", "RESTORE"),
        ("CANCELLED", "PAID", "REFUNDED", "APPLIED", "REFUNDED", "REFUNDED", "NONE"),
        ("CANCELLED", "PENDING", "FAILED", "APPLIED", "CANCELLED", "FAILED", "NONE"),
        ("CANCELLED", "PENDING", "PAID", "APPLIED", "CONFIRMED", "PAID", "RETAKE"),
        ("SHIPPED", "PENDING", "PAID", "APPLIED", "SHIPPED", "PAID", "NONE"),
        # Stale or impossible
        ("CONFIRMED", "PAID", "FAILED", "REJECTED", "CONFIRMED", "PAID", "NONE"),
        ("CONFIRMED", "PAID", "PENDING", "REJECTED", "CONFIRMED", "PAID", "NONE"),
        ("REFUNDED", "REFUNDED", "PAID", "REJECTED", "REFUNDED", "REFUNDED", "NONE"),
        ("PENDING", "PENDING", "REFUNDED", "REJECTED", "PENDING", "PENDING", "NONE"),
    ],
)
def test_transition_table(order_status, payment_status, event, outcome, new_order, new_payment, action):
    transition = apply_payment_event(order_status, payment_status, event)

    assert transition.outcome == TransitionOutcome(outcome)
    assert transition.order_status == OrderStatus(new_order)
    assert transition.payment_status == PaymentStatus(new_payment)
    assert transition.stock_action == StockAction(action)


def test_stock_reasons():
    failed = apply_payment_event(OrderStatus.PENDING, PaymentStatus.PENDING, PaymentStatus.FAILED)
    recovered = apply_payment_event(OrderStatus.CANCELLED, PaymentStatus.FAILED, PaymentStatus.PAID)

    assert failed.stock_reason == StockChangeReason.PAYMENT_FAILED_RESTORE
    assert recovered.stock_reason == StockChangeReason.PAYMENT_RECOVERED


def test_replaying_any_event_twice_is_idempotent():
    for event in PaymentStatus:
        first = apply_payment_event("PENDING", "PENDING", event)
        if first.outcome != TransitionOutcome.APPLIED:
            continue
        second = apply_payment_event(first.order_status, first.payment_status, event)
        assert second.outcome == TransitionOutcome.NOOP


def test_unknown_values_raise():
    with pytest.raises(ValueError):
        apply_payment_event("PENDING", "PENDING", "BOUNCED")
