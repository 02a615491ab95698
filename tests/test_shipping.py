from decimal import Decimal

import httpx
import pytest

from storefront.core.exceptions import ShippingUnavailable
from storefront.services.shipping_service import (
    CarrierApiShippingResolver,
    ShippingPolicy,
    ShippingQuote,
    ZoneRateShippingResolver,
    chargeable_kilograms,
)

from tests.factories import create_zone


@pytest.mark.parametrize(
    "grams, kilograms",
    [(0, 1), (1, 1), (1000, 1), (1001, 2), (2500, 3)],
)
def test_chargeable_kilograms(grams, kilograms):
    assert chargeable_kilograms(grams) == kilograms


async def test_default_rates_without_zone():
    resolver = ZoneRateShippingResolver()

    quote = await resolver.quote("ID-JB", "ID-JK", 1500, "jne")

    assert quote.cost == Decimal("30000")
    assert quote.courier == "jne"
    assert quote.estimated_days == 2


async def test_unknown_courier_uses_fallback_rate():
    quote = await ZoneRateShippingResolver().quote("ID-JB", "ID-JK", 900, "kurir-x")

    assert quote.cost == Decimal("15000")


async def test_zone_rates_minimum_and_handling_fee(db):
    await create_zone(
        db, ["ID-PA"],
        courier_rates={"jne": 5000},
        minimum_cost=Decimal("20000"),
        handling_fee=Decimal("2500"),
    )
    resolver = ZoneRateShippingResolver(db)

    small = await resolver.quote("ID-JB", "id-pa", 1000, "JNE")
    large = await resolver.quote("ID-JB", "ID-PA", 6000, "jne")

    # 5,000 x 1 kg is under the minimum
    assert small.cost == Decimal("22500")
    assert large.cost == Decimal("32500")


class TestShippingPolicy:
    async def test_global_threshold(self):
        policy = ShippingPolicy(global_threshold=Decimal("200000"))
        quote = ShippingQuote(cost=Decimal("15000"), courier="jne")

        below = await policy.apply(quote, Decimal("199999"))
        at = await policy.apply(quote, Decimal("200000"))

        assert (below.cost, below.free_shipping) == (Decimal("15000"), False)
        assert (at.cost, at.free_shipping) == (Decimal("0"), True)

    async def test_coupon_grants_free_shipping(self):
        quote = ShippingQuote(cost=Decimal("15000"))

        result = await ShippingPolicy().apply(quote, Decimal("1"), coupon_free_shipping=True)

        assert result.cost == Decimal("0")
        assert result.free_shipping

    async def test_zone_threshold_overrides_global(self, db):
        await create_zone(
            db, ["ID-JK"],
            free_shipping_enabled=True,
            free_shipping_threshold=Decimal("100000"),
        )
        policy = ShippingPolicy(db, global_threshold=Decimal("500000"))
        quote = ShippingQuote(cost=Decimal("15000"))

        inside = await policy.apply(quote, Decimal("100000"), destination="ID-JK")
        outside = await policy.apply(quote, Decimal("100000"), destination="ID-BA")

        assert inside.free_shipping
        assert not outside.free_shipping


class TestCarrierApi:
    async def test_reads_wrapped_response(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["weight"] == "1200"
            assert request.headers["key"] == "secret"
            return httpx.Response(200, json={"data": {"cost": 18000, "estimated_days": 3}})

        resolver = CarrierApiShippingResolver(
            base_url="https://carrier.test/cost",
            api_key="secret",
            transport=httpx.MockTransport(handler),
        )

        quote = await resolver.quote("ID-JB", "ID-JK", 1200, "tiki")

        assert quote.cost == Decimal("18000")
        assert quote.estimated_days == 3
        assert quote.courier == "tiki"

    async def test_server_error_is_collaborator_failure(self):
        resolver = CarrierApiShippingResolver(
            base_url="https://carrier.test/cost",
            transport=httpx.MockTransport(lambda request: httpx.Response(502, text="bad gateway")),
        )

        with pytest.raises(ShippingUnavailable) as excinfo:
            await resolver.quote("ID-JB", "ID-JK", 1000)
        assert excinfo.value.retryable

    async def test_timeout_is_collaborator_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        resolver = CarrierApiShippingResolver(
            base_url="https://carrier.test/cost",
            transport=httpx.MockTransport(handler),
        )

        with pytest.raises(ShippingUnavailable):
            await resolver.quote("ID-JB", "ID-JK", 1000)
