"""Shipping Cost Resolver and free-shipping policy.

Resolvers quote a cost for (origin, destination, weight, courier):
- ZoneRateShippingResolver: per-kg courier rates, optionally overridden
  by the destination's shipping zone (default)
- FlatRateShippingResolver: fixed cost
- CarrierApiShippingResolver: remote carrier rate endpoint over HTTP

ShippingPolicy then zeroes the cost when the order qualifies for free
shipping.
"""
from dataclasses import dataclass, replace
from decimal import Decimal
from math import ceil
from typing import Dict, Optional, Protocol
import logging

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.config import settings
from storefront.core.exceptions import ShippingUnavailable
from storefront.core.money import ZERO, round_money, to_money
from storefront.models.shipping import ShippingZone, ShippingZoneStatus

logger = logging.getLogger(__name__)


# Default courier rates (IDR per kg) and delivery estimates (days)
DEFAULT_COURIER_RATES: Dict[str, Decimal] = {
    "jne": Decimal("15000"),
    "tiki": Decimal("16000"),
    "pos": Decimal("14000"),
    "sicepat": Decimal("13000"),
}
DEFAULT_ESTIMATED_DAYS: Dict[str, int] = {
    "jne": 2,
    "tiki": 2,
    "pos": 3,
    "sicepat": 1,
}
DEFAULT_MINIMUM_COST = Decimal("9000")
FALLBACK_COURIER = "jne"


@dataclass(frozen=True)
class ShippingQuote:
    cost: Decimal
    estimated_days: Optional[int] = None
    courier: Optional[str] = None
    free_shipping: bool = False


class ShippingCostResolver(Protocol):
    async def quote(
        self,
        origin: str,
        destination: str,
        total_weight_grams: int,
        courier: Optional[str] = None,
    ) -> ShippingQuote:
        ...


def chargeable_kilograms(total_weight_grams: int) -> int:
    """Weight is charged per started kilogram, at least one."""
    return max(1, ceil(max(total_weight_grams, 0) / 1000))


async def find_zone(db: Optional[AsyncSession], region_code: Optional[str]) -> Optional[ShippingZone]:
    """Active shipping zone covering the region code, if any."""
    if db is None or not region_code:
        return None
    result = await db.execute(
        select(ShippingZone)
        .where(ShippingZone.status == ShippingZoneStatus.ACTIVE.value)
        .order_by(ShippingZone.created_at)
    )
    for zone in result.scalars().all():
        if zone.covers(region_code):
            return zone
    return None


class ZoneRateShippingResolver:
    """
    Per-kg courier rate, minimum cost, then handling fee.

    Zone courier rates override the defaults for destinations the zone
    covers; unknown couriers fall back to the JNE rate.
    """

    def __init__(self, db: Optional[AsyncSession] = None):
        self.db = db

    async def quote(
        self,
        origin: str,
        destination: str,
        total_weight_grams: int,
        courier: Optional[str] = None,
    ) -> ShippingQuote:
        courier = (courier or settings.DEFAULT_COURIER).strip().lower()
        zone = await find_zone(self.db, destination)

        rates = dict(DEFAULT_COURIER_RATES)
        minimum_cost = DEFAULT_MINIMUM_COST
        handling_fee = ZERO
        if zone is not None:
            rates.update({
                name.lower(): to_money(rate) for name, rate in (zone.courier_rates or {}).items()
            })
            minimum_cost = to_money(zone.minimum_cost)
            handling_fee = to_money(zone.handling_fee)

        rate = rates.get(courier, rates[FALLBACK_COURIER])
        cost = rate * chargeable_kilograms(total_weight_grams)
        if cost < minimum_cost:
            cost = minimum_cost
        cost += handling_fee

        return ShippingQuote(
            cost=round_money(cost),
            estimated_days=DEFAULT_ESTIMATED_DAYS.get(courier, DEFAULT_ESTIMATED_DAYS[FALLBACK_COURIER]),
            courier=courier,
        )


class FlatRateShippingResolver:
    """Same cost for every shipment."""

    def __init__(self, cost: Decimal, estimated_days: Optional[int] = None):
        self.cost = round_money(cost)
        self.estimated_days = estimated_days

    async def quote(
        self,
        origin: str,
        destination: str,
        total_weight_grams: int,
        courier: Optional[str] = None,
    ) -> ShippingQuote:
        return ShippingQuote(cost=self.cost, estimated_days=self.estimated_days, courier=courier)


class CarrierApiShippingResolver:
    """
    Quotes from a remote carrier rate endpoint.

    The endpoint is called with origin, destination, weight (grams) and
    courier as query parameters and must answer with
    {"cost": ..., "estimated_days": ...} (optionally wrapped in "data").
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url or settings.SHIPPING_API_URL
        self.api_key = api_key if api_key is not None else settings.SHIPPING_API_KEY
        self.timeout = timeout or settings.SHIPPING_TIMEOUT_SECONDS
        self.transport = transport

    async def quote(
        self,
        origin: str,
        destination: str,
        total_weight_grams: int,
        courier: Optional[str] = None,
    ) -> ShippingQuote:
        courier = (courier or settings.DEFAULT_COURIER).strip().lower()
        params = {
            "origin": origin,
            "destination": destination,
            "weight": total_weight_grams,
            "courier": courier,
        }
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["key"] = self.api_key

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(self.base_url, params=params, headers=headers)
        except httpx.TimeoutException as e:
            logger.error(f"Carrier rate request timed out after {self.timeout}s: {e}")
            raise ShippingUnavailable("Shipping rate service timed out, try again", courier=courier)
        except httpx.HTTPError as e:
            logger.error(f"Carrier rate request failed: {e}")
            raise ShippingUnavailable(courier=courier)

        if response.status_code >= 400:
            logger.error(f"Carrier rate API error: {response.status_code} - {response.text}")
            raise ShippingUnavailable(courier=courier, status_code=response.status_code)

        try:
            data = response.json()
            data = data.get("data", data)
            cost = to_money(data["cost"])
        except (ValueError, KeyError, TypeError, ArithmeticError) as e:
            logger.error(f"Unreadable carrier rate response: {response.text}")
            raise ShippingUnavailable("Shipping rate service returned an invalid response", courier=courier) from e

        return ShippingQuote(
            cost=round_money(cost),
            estimated_days=data.get("estimated_days"),
            courier=courier,
        )


def get_shipping_resolver(db: Optional[AsyncSession] = None) -> ShippingCostResolver:
    """Carrier API when an endpoint is configured, else the zone rate table."""
    if settings.SHIPPING_API_URL:
        return CarrierApiShippingResolver()
    return ZoneRateShippingResolver(db)


class ShippingPolicy:
    """
    Free shipping applies when the post-discount subtotal reaches the
    threshold (the destination zone's when it enables free shipping,
    else the global FREE_SHIPPING_THRESHOLD) or the coupon grants it.
    """

    def __init__(
        self,
        db: Optional[AsyncSession] = None,
        global_threshold: Optional[Decimal] = None,
    ):
        self.db = db
        self.global_threshold = (
            settings.FREE_SHIPPING_THRESHOLD if global_threshold is None else global_threshold
        )

    async def threshold_for(self, destination: Optional[str]) -> Optional[Decimal]:
        zone = await find_zone(self.db, destination)
        if zone is not None and zone.free_shipping_enabled and zone.free_shipping_threshold is not None:
            return to_money(zone.free_shipping_threshold)
        if self.global_threshold is not None:
            return to_money(self.global_threshold)
        return None

    async def apply(
        self,
        quote: ShippingQuote,
        discounted_subtotal: Decimal,
        destination: Optional[str] = None,
        coupon_free_shipping: bool = False,
    ) -> ShippingQuote:
        if coupon_free_shipping:
            return replace(quote, cost=round_money(ZERO), free_shipping=True)

        threshold = await self.threshold_for(destination)
        if threshold is not None and to_money(discounted_subtotal) >= threshold:
            return replace(quote, cost=round_money(ZERO), free_shipping=True)

        return quote
