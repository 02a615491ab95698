"""Coupon Evaluator.

Validation runs in a fixed order and the first failure wins:
exists -> active and in window -> tier eligible -> minimum purchase ->
global usage cap -> per-user cap.

Evaluation has no side effects. Usage is only counted by redeem(),
which checkout calls inside its transaction.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional
import uuid
import logging

from sqlalchemy import select, update, func, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.clock import utcnow, ensure_utc
from storefront.core.enum_utils import to_enum
from storefront.core.exceptions import (
    CouponNotFound,
    CouponExpired,
    CouponNotEligible,
    CouponMinimumNotMet,
    CouponUsageExceeded,
    CouponUserLimitExceeded,
)
from storefront.core.money import ZERO, clamp, percent_of, round_money, to_money
from storefront.models.coupon import Coupon, CouponUsage, CouponStatus, DiscountType
from storefront.models.order import CustomerTier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CouponEvaluation:
    coupon_id: uuid.UUID
    code: str
    name: str
    discount: Decimal
    free_shipping: bool = False


def calculate_discount(coupon: Coupon, amount: Decimal) -> Decimal:
    """
    Discount a coupon grants on `amount`.

    PERCENTAGE: amount * value / 100, capped at max_discount when set.
    FIXED: value.
    Either way the discount never exceeds the amount itself.
    """
    amount = to_money(amount)
    if amount <= ZERO:
        return ZERO

    if to_enum(coupon.discount_type, DiscountType) == DiscountType.PERCENTAGE:
        discount = percent_of(amount, coupon.discount_value)
        if coupon.max_discount is not None and coupon.max_discount > ZERO:
            discount = clamp(discount, high=coupon.max_discount)
    else:
        discount = to_money(coupon.discount_value)

    discount = clamp(discount, low=ZERO, high=amount)

    return round_money(discount)


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


class CouponService:
    """Validates coupons against a purchase and records redemptions."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_code(self, code: str) -> Optional[Coupon]:
        result = await self.db.execute(
            select(Coupon).where(func.upper(Coupon.code) == normalize_code(code))
        )
        return result.scalar_one_or_none()

    async def count_user_usages(self, coupon_id: uuid.UUID, user_id: str) -> int:
        result = await self.db.execute(
            select(func.count(CouponUsage.id)).where(
                and_(
                    CouponUsage.coupon_id == coupon_id,
                    CouponUsage.user_id == user_id,
                )
            )
        )
        return result.scalar() or 0

    async def evaluate(
        self,
        code: str,
        amount: Decimal,
        tier: CustomerTier = CustomerTier.RETAIL,
        user_id: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> CouponEvaluation:
        """
        Validate a coupon for a purchase amount and compute its discount.

        Raises the first failing check's error; never mutates anything.
        """
        at = ensure_utc(at) if at else utcnow()
        tier = to_enum(tier, CustomerTier) or CustomerTier.RETAIL
        amount = to_money(amount)

        coupon = await self.get_by_code(code)
        if not coupon:
            raise CouponNotFound(normalize_code(code))

        if coupon.status != CouponStatus.ACTIVE.value:
            raise CouponExpired(coupon.code, reason="This coupon is no longer active")
        if not coupon.is_within_window(at):
            if coupon.valid_from and at < ensure_utc(coupon.valid_from):
                raise CouponExpired(coupon.code, reason="This coupon is not yet valid")
            raise CouponExpired(coupon.code)

        if tier == CustomerTier.RESELLER and not coupon.for_reseller:
            raise CouponNotEligible(coupon.code, tier.value)
        if tier == CustomerTier.RETAIL and not coupon.for_retail:
            raise CouponNotEligible(coupon.code, tier.value)

        if amount < (coupon.min_purchase_amount or ZERO):
            raise CouponMinimumNotMet(coupon.code, coupon.min_purchase_amount, amount)

        if coupon.is_usage_exhausted:
            raise CouponUsageExceeded(coupon.code)

        if coupon.max_usage_per_user and user_id:
            used = await self.count_user_usages(coupon.id, user_id)
            if used >= coupon.max_usage_per_user:
                raise CouponUserLimitExceeded(coupon.code, user_id)

        return CouponEvaluation(
            coupon_id=coupon.id,
            code=coupon.code,
            name=coupon.name,
            discount=calculate_discount(coupon, amount),
            free_shipping=coupon.free_shipping,
        )

    async def redeem(
        self,
        evaluation: CouponEvaluation,
        user_id: str,
        order_id: uuid.UUID,
        discount: Optional[Decimal] = None,
    ) -> CouponUsage:
        """
        Count one use of the coupon for an order.

        `discount` is the amount the order actually took off; the usage row
        and `total_discount_used` record that figure.

        Must run inside the checkout transaction: the conditional increment
        holds the coupon row until commit, and a rollback undoes it along
        with the order.
        """
        if discount is None:
            discount = evaluation.discount
        discount = round_money(discount)

        stmt = (
            update(Coupon)
            .where(
                and_(
                    Coupon.id == evaluation.coupon_id,
                    or_(
                        Coupon.max_usage_count == 0,
                        Coupon.usage_count < Coupon.max_usage_count,
                    ),
                )
            )
            .values(
                usage_count=Coupon.usage_count + 1,
                order_count=Coupon.order_count + 1,
                total_discount_used=Coupon.total_discount_used + discount,
            )
            .returning(Coupon.usage_count, Coupon.max_usage_per_user)
            .execution_options(synchronize_session=False)
        )
        row = (await self.db.execute(stmt)).first()
        if row is None:
            logger.warning(f"Coupon {evaluation.code} usage cap reached during checkout")
            raise CouponUsageExceeded(evaluation.code)

        usage_count, max_per_user = row
        if max_per_user:
            used = await self.count_user_usages(evaluation.coupon_id, user_id)
            if used >= max_per_user:
                logger.warning(
                    f"Coupon {evaluation.code} per-user limit reached for user {user_id}"
                )
                raise CouponUserLimitExceeded(evaluation.code, user_id)

        usage = CouponUsage(
            coupon_id=evaluation.coupon_id,
            user_id=user_id,
            order_id=order_id,
            discount_amount=discount,
        )
        self.db.add(usage)
        await self.db.flush()

        logger.info(
            f"Coupon {evaluation.code} redeemed for order {order_id} "
            f"(usage {usage_count}, discount {discount})"
        )
        return usage
