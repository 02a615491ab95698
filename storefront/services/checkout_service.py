"""
Checkout Orchestrator

Owns the order lifecycle:

    PENDING -> CONFIRMED -> PROCESSING -> SHIPPED -> DELIVERED
       |           |            |
       +-----------+------------+--> CANCELLED   (cancel, failed payment)
    payment PAID ----------------------> REFUNDED

Every mutation is one transaction: stock movements, order rows, status
history and coupon usage commit together or not at all. Customer
notifications go out only after the commit.
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple
import secrets
import logging

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from storefront.core.clock import utcnow, ensure_utc
from storefront.core.enum_utils import get_enum_value, to_enum
from storefront.core.exceptions import (
    StorefrontError,
    InsufficientStock,
    InvalidSignature,
    InvalidStateTransition,
    OrderNotFound,
    QuoteMismatch,
    StalePaymentEvent,
    AmountMismatch,
    PaymentRecoveryFailed,
)
from storefront.core.money import money_equal
from storefront.models.order import (
    Order, OrderItem, OrderStatusHistory,
    OrderStatus, PaymentStatus, CustomerTier, PriceSource,
)
from storefront.models.stock_log import StockLog, StockChangeReason
from storefront.services.coupon_service import CouponService
from storefront.services.inventory_service import InventoryService
from storefront.services.notification_service import (
    LoggingNotificationDispatcher,
    NotificationDispatcher,
    OrderEvent,
)
from storefront.services.payment_service import (
    ChargeToken,
    PaymentCustomer,
    PaymentGateway,
    PaymentNotification,
    get_payment_gateway,
)
from storefront.services.payment_state import (
    StockAction,
    TransitionOutcome,
    apply_payment_event,
)
from storefront.services.pricing_service import (
    CartItem,
    OrderSummary,
    PricingService,
    ShippingRequest,
)
from storefront.services.shipping_service import ShippingCostResolver

logger = logging.getLogger(__name__)


CANCELLABLE_STATUSES = {OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.PROCESSING}

# Fulfilment moves one step at a time
NEXT_FULFILMENT_STATUS = {
    OrderStatus.CONFIRMED: OrderStatus.PROCESSING,
    OrderStatus.PROCESSING: OrderStatus.SHIPPED,
    OrderStatus.SHIPPED: OrderStatus.DELIVERED,
}

PAYMENT_EVENT_NOTIFICATIONS = {
    PaymentStatus.PAID: OrderEvent.PAYMENT_CONFIRMED,
    PaymentStatus.FAILED: OrderEvent.PAYMENT_FAILED,
    PaymentStatus.REFUNDED: OrderEvent.ORDER_REFUNDED,
}

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 50


@dataclass(frozen=True)
class CheckoutRequest:
    user_id: str
    items: Sequence[CartItem]
    shipping: ShippingRequest
    recipient_name: str
    recipient_phone: str
    shipping_address: str
    recipient_email: Optional[str] = None
    tier: CustomerTier = CustomerTier.RETAIL
    coupon_code: Optional[str] = None
    expected_total: Optional[Decimal] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class CheckoutResult:
    order: Order
    summary: OrderSummary
    payment: ChargeToken


@dataclass(frozen=True)
class PaymentEventResult:
    order_number: str
    outcome: TransitionOutcome
    order_status: str
    payment_status: str
    note: Optional[str] = None
    stock_logs: List[StockLog] = field(default_factory=list)


def generate_order_number(at: Optional[datetime] = None) -> str:
    """Order number: ORD-YYYYMMDD-XXXXXXXX (random hex suffix)."""
    at = at or utcnow()
    return f"ORD-{at:%Y%m%d}-{secrets.token_hex(4).upper()}"


def page_bounds(limit: Optional[int], offset: Optional[int]) -> Tuple[int, int]:
    """Out-of-range limits fall back to the default page size; negative offsets start at 0."""
    if not limit or limit <= 0 or limit > MAX_PAGE_SIZE:
        limit = DEFAULT_PAGE_SIZE
    if not offset or offset < 0:
        offset = 0
    return limit, offset


class CheckoutService:
    """Service for checkout, payment notifications, cancellation and refunds."""

    def __init__(
        self,
        db: AsyncSession,
        gateway: Optional[PaymentGateway] = None,
        notifier: Optional[NotificationDispatcher] = None,
        shipping_resolver: Optional[ShippingCostResolver] = None,
        pricing: Optional[PricingService] = None,
    ):
        self.db = db
        self.gateway = gateway or get_payment_gateway()
        self.notifier = notifier or LoggingNotificationDispatcher()
        self.pricing = pricing or PricingService(db, shipping_resolver=shipping_resolver)
        self.inventory = InventoryService(db)
        self.coupons = CouponService(db)

    # ==================== LOOKUP ====================

    async def get_order(self, order_number: str, for_update: bool = False) -> Order:
        stmt = (
            select(Order)
            .options(selectinload(Order.items), selectinload(Order.status_history))
            .where(Order.order_number == order_number)
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update(of=Order)
        order = (await self.db.execute(stmt)).scalar_one_or_none()
        if not order:
            raise OrderNotFound(order_number)
        return order

    async def get_stock_logs(self, order_number: str) -> List[StockLog]:
        return await self.inventory.get_logs(order_number)

    async def list_orders(
        self,
        user_id: str,
        limit: Optional[int] = DEFAULT_PAGE_SIZE,
        offset: Optional[int] = 0,
    ) -> Tuple[List[Order], int]:
        """A customer's orders, newest first, with the total count for paging."""
        limit, offset = page_bounds(limit, offset)

        total = (
            await self.db.execute(
                select(func.count(Order.id)).where(Order.user_id == user_id)
            )
        ).scalar() or 0

        result = await self.db.execute(
            select(Order)
            .options(selectinload(Order.items))
            .where(Order.user_id == user_id)
            .order_by(Order.created_at.desc(), Order.id)
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    # ==================== QUOTE ====================

    async def quote(
        self,
        items: Sequence[CartItem],
        shipping: ShippingRequest,
        tier: CustomerTier = CustomerTier.RETAIL,
        coupon_code: Optional[str] = None,
        user_id: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> OrderSummary:
        """Read-only summary; nothing is reserved or counted."""
        return await self.pricing.calculate_order_summary(
            items, shipping, tier=tier, coupon_code=coupon_code, user_id=user_id, at=at
        )

    # ==================== CHECKOUT ====================

    async def checkout(self, request: CheckoutRequest, at: Optional[datetime] = None) -> CheckoutResult:
        """
        Turn a cart into a PENDING order with a payment token.

        Steps, all in one transaction:
        1. Decrement stock per line (and flash sale counters) with StockLog entries
        2. Persist the order, its items and the first status history row
        3. Request the payment token for the grand total
        4. Redeem the coupon

        Any failure rolls back everything, including stock and coupon usage.
        """
        at = ensure_utc(at) if at else utcnow()

        summary = await self.pricing.calculate_order_summary(
            request.items,
            request.shipping,
            tier=request.tier,
            coupon_code=request.coupon_code,
            user_id=request.user_id,
            at=at,
        )
        if request.expected_total is not None and not money_equal(request.expected_total, summary.grand_total):
            raise QuoteMismatch(request.expected_total, summary.grand_total)

        order_number = generate_order_number(at)

        try:
            for line in summary.lines:
                await self.inventory.decrement(
                    line.product_id, line.quantity, order_number,
                    variant_id=line.variant_id, reason=StockChangeReason.CHECKOUT,
                )
                if line.source == PriceSource.FLASH_SALE:
                    await self.inventory.claim_flash_sale(line.flash_sale_id, line.product_id, line.quantity)

            order = self._build_order(order_number, request, summary)
            self.db.add(order)
            await self.db.flush()
            self._record_history(order, None, "Order placed")

            payment = await self.gateway.create_charge_token(
                order_number,
                summary.grand_total,
                PaymentCustomer(
                    user_id=request.user_id,
                    name=request.recipient_name,
                    phone=request.recipient_phone,
                    email=request.recipient_email,
                ),
            )
            order.payment_token = payment.token
            order.payment_redirect_url = payment.redirect_url
            order.payment_expires_at = payment.expires_at
            order.payment_method = self.gateway.name

            if summary.coupon:
                await self.coupons.redeem(
                    summary.coupon, request.user_id, order.id, discount=summary.discount
                )

            await self.db.commit()

        except IntegrityError as e:
            await self.db.rollback()
            logger.error(f"Checkout {order_number} failed on integrity error: {e}")
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Checkout {order_number} failed on database error: {e}")
            raise
        except StorefrontError as e:
            await self.db.rollback()
            logger.warning(f"Checkout {order_number} rolled back: {e}")
            raise
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Checkout {order_number} failed: {e}")
            raise

        logger.info(
            f"Order {order_number} placed by {request.user_id}: total {summary.grand_total} "
            f"({summary.item_count} items, coupon={summary.coupon_code})"
        )
        await self._notify(order, OrderEvent.ORDER_CREATED)

        return CheckoutResult(order=order, summary=summary, payment=payment)

    def _build_order(self, order_number: str, request: CheckoutRequest, summary: OrderSummary) -> Order:
        order = Order(
            order_number=order_number,
            user_id=request.user_id,
            customer_tier=get_enum_value(to_enum(request.tier, CustomerTier) or CustomerTier.RETAIL),
            status=OrderStatus.PENDING.value,
            payment_status=PaymentStatus.PENDING.value,
            subtotal=summary.subtotal,
            discount_amount=summary.discount,
            taxable_base=summary.taxable_base,
            tax_rate=summary.tax_rate,
            tax_amount=summary.tax,
            shipping_cost=summary.shipping_cost,
            total_amount=summary.grand_total,
            currency=summary.currency,
            total_weight_grams=summary.total_weight_grams,
            item_count=summary.item_count,
            priced_at=summary.priced_at,
            coupon_id=summary.coupon.coupon_id if summary.coupon else None,
            coupon_code=summary.coupon_code,
            free_shipping=summary.free_shipping,
            shipping_name=request.recipient_name,
            shipping_phone=request.recipient_phone,
            shipping_email=request.recipient_email,
            shipping_address=request.shipping_address,
            shipping_origin=summary.origin or "",
            shipping_destination=summary.destination or request.shipping.destination,
            shipping_courier=summary.courier or "",
            shipping_estimated_days=summary.estimated_days,
            customer_notes=request.notes,
        )
        order.items = [
            OrderItem(
                line_number=index,
                product_id=line.product_id,
                variant_id=line.variant_id,
                product_name=line.product_name,
                product_sku=line.product_sku,
                variant_name=line.variant_name,
                quantity=line.quantity,
                base_unit_price=line.base_unit_price,
                unit_price=line.unit_price,
                line_total=line.line_total,
                price_source=line.source.value,
                tier_discount_percent=line.tier_discount_percent,
                flash_sale_id=line.flash_sale_id,
                weight_grams=line.line_weight_grams,
            )
            for index, line in enumerate(summary.lines, start=1)
        ]
        order.status_history = []
        return order

    # ==================== PAYMENT NOTIFICATIONS ====================

    async def process_payment_notification(self, notification: PaymentNotification) -> PaymentEventResult:
        """
        Apply a gateway notification to its order.

        Duplicates are no-ops. Stale events, amount mismatches and
        payments that cannot be recovered raise InconsistencyError
        subclasses after logging; nothing is changed in those cases.
        """
        if not self.gateway.verify_notification(notification):
            logger.warning(f"Invalid payment notification signature for order {notification.order_number}")
            raise InvalidSignature(notification.order_number)

        event = notification.status
        if event is None:
            logger.warning(
                f"Ignoring unknown transaction status '{notification.transaction_status}' "
                f"for order {notification.order_number}"
            )
            order = await self.get_order(notification.order_number)
            return PaymentEventResult(
                order_number=order.order_number,
                outcome=TransitionOutcome.NOOP,
                order_status=order.status,
                payment_status=order.payment_status,
                note=f"unknown status {notification.transaction_status}",
            )

        try:
            order = await self.get_order(notification.order_number, for_update=True)
        except OrderNotFound:
            logger.warning(f"Payment notification for unknown order {notification.order_number}")
            raise

        try:
            if not money_equal(notification.gross_amount, order.total_amount):
                logger.warning(
                    f"Amount mismatch for order {order.order_number}: "
                    f"notified {notification.gross_amount}, expected {order.total_amount}"
                )
                raise AmountMismatch(order.order_number, order.total_amount, notification.gross_amount)

            transition = apply_payment_event(order.status, order.payment_status, event)

            if transition.outcome == TransitionOutcome.NOOP:
                result = PaymentEventResult(
                    order_number=order.order_number,
                    outcome=transition.outcome,
                    order_status=order.status,
                    payment_status=order.payment_status,
                    note=transition.note,
                )
                # Releases the row lock
                await self.db.rollback()
                logger.info(f"Duplicate {event.value} notification for order {notification.order_number} ignored")
                return result

            if transition.outcome == TransitionOutcome.REJECTED:
                logger.warning(f"Rejected payment event for order {order.order_number}: {transition.note}")
                raise StalePaymentEvent(order.order_number, order.payment_status, event.value)

            stock_logs: List[StockLog] = []
            if transition.stock_action == StockAction.RESTORE:
                stock_logs = await self.inventory.restore_order_items(order, transition.stock_reason)
            elif transition.stock_action == StockAction.RETAKE:
                try:
                    stock_logs = await self.inventory.take_order_items(
                        order.order_number, order.items, transition.stock_reason
                    )
                except InsufficientStock as e:
                    logger.error(
                        f"Payment for order {order.order_number} arrived after its stock was "
                        f"released and cannot be re-taken; manual reconciliation required"
                    )
                    raise PaymentRecoveryFailed(order.order_number, str(e)) from e

            self._apply_status(order, transition.order_status, transition.payment_status, transition.note)
            if notification.transaction_id:
                order.payment_reference = notification.transaction_id
            if notification.payment_type:
                order.payment_method = notification.payment_type

            await self.db.commit()

        except StorefrontError:
            await self.db.rollback()
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Payment notification for {notification.order_number} failed: {e}")
            raise

        logger.info(
            f"Order {order.order_number} payment {event.value}: "
            f"now {order.status}/{order.payment_status}"
        )
        await self._notify(order, PAYMENT_EVENT_NOTIFICATIONS[event])

        return PaymentEventResult(
            order_number=order.order_number,
            outcome=transition.outcome,
            order_status=order.status,
            payment_status=order.payment_status,
            note=transition.note,
            stock_logs=stock_logs,
        )

    # ==================== CANCEL / REFUND / FULFILMENT ====================

    async def cancel(self, order_number: str, reason: Optional[str] = None) -> Order:
        """Cancel an order that has not shipped and give its stock back."""
        try:
            order = await self.get_order(order_number, for_update=True)
            current = to_enum(order.status, OrderStatus)
            if current not in CANCELLABLE_STATUSES:
                raise InvalidStateTransition(order_number, order.status, "cancel")

            await self.inventory.restore_order_items(order, StockChangeReason.CANCELLED)
            order.cancel_reason = reason
            self._apply_status(order, OrderStatus.CANCELLED, to_enum(order.payment_status, PaymentStatus), reason or "Order cancelled")

            await self.db.commit()
        except (StorefrontError, SQLAlchemyError):
            await self.db.rollback()
            raise

        logger.info(f"Order {order_number} cancelled: {reason}")
        await self._notify(order, OrderEvent.ORDER_CANCELLED)
        return order

    async def refund(self, order_number: str, reason: Optional[str] = None) -> Order:
        """Refund a paid order; stock comes back unless a cancel already returned it."""
        try:
            order = await self.get_order(order_number, for_update=True)
            if order.payment_status != PaymentStatus.PAID.value:
                raise InvalidStateTransition(order_number, order.payment_status, "refund")

            if order.holds_stock:
                await self.inventory.restore_order_items(order, StockChangeReason.REFUNDED)
            self._apply_status(order, OrderStatus.REFUNDED, PaymentStatus.REFUNDED, reason or "Order refunded")

            await self.db.commit()
        except (StorefrontError, SQLAlchemyError):
            await self.db.rollback()
            raise

        logger.info(f"Order {order_number} refunded ({order.total_amount})")
        await self._notify(order, OrderEvent.ORDER_REFUNDED)
        return order

    async def advance(
        self,
        order_number: str,
        new_status: OrderStatus,
        tracking_number: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Order:
        """Move a confirmed order one fulfilment step forward."""
        new_status = to_enum(new_status, OrderStatus)
        try:
            order = await self.get_order(order_number, for_update=True)
            current = to_enum(order.status, OrderStatus)
            if new_status is None or NEXT_FULFILMENT_STATUS.get(current) != new_status:
                raise InvalidStateTransition(order_number, order.status, f"move to {get_enum_value(new_status)}")

            if tracking_number:
                order.tracking_number = tracking_number
            self._apply_status(order, new_status, to_enum(order.payment_status, PaymentStatus), notes)

            await self.db.commit()
        except (StorefrontError, SQLAlchemyError):
            await self.db.rollback()
            raise

        logger.info(f"Order {order_number} moved to {new_status.value}")
        if new_status == OrderStatus.SHIPPED:
            await self._notify(order, OrderEvent.ORDER_SHIPPED)
        elif new_status == OrderStatus.DELIVERED:
            await self._notify(order, OrderEvent.ORDER_DELIVERED)
        return order

    # ==================== HELPERS ====================

    def _apply_status(
        self,
        order: Order,
        new_status: OrderStatus,
        payment_status: PaymentStatus,
        notes: Optional[str] = None,
    ) -> None:
        """Set order and payment status, stamp lifecycle times and append history."""
        old_status = order.status
        now = utcnow()

        if payment_status == PaymentStatus.PAID and order.payment_status != PaymentStatus.PAID.value:
            order.paid_at = now
        order.status = new_status.value
        order.payment_status = payment_status.value

        if new_status.value != old_status:
            if new_status == OrderStatus.CONFIRMED:
                order.confirmed_at = now
            elif new_status == OrderStatus.SHIPPED:
                order.shipped_at = now
            elif new_status == OrderStatus.DELIVERED:
                order.delivered_at = now
            elif new_status == OrderStatus.CANCELLED:
                order.cancelled_at = now
            elif new_status == OrderStatus.REFUNDED:
                order.refunded_at = now

        self._record_history(order, old_status, notes)

    def _record_history(self, order: Order, from_status: Optional[str], notes: Optional[str]) -> None:
        order.status_history.append(
            OrderStatusHistory(
                from_status=from_status,
                to_status=order.status,
                payment_status=order.payment_status,
                notes=notes,
            )
        )

    async def _notify(self, order: Order, event: OrderEvent) -> None:
        try:
            await self.notifier.notify(order, event)
        except Exception as e:
            logger.warning(f"Notification {event.value} for order {order.order_number} failed: {e}")
