"""
Shared fixtures: a fresh SQLite file database per test and deterministic
collaborators (flat shipping, sandbox payments, recording notifier).
"""
from decimal import Decimal
from typing import List, Tuple

import pytest

from storefront.core.exceptions import PaymentGatewayError
from storefront.database import build_engine, build_session_factory, init_db
from storefront.services.checkout_service import CheckoutService
from storefront.services.payment_service import SandboxGateway
from storefront.services.shipping_service import FlatRateShippingResolver
from storefront.services.tax_calculator import TaxCalculator

from tests.factories import SERVER_KEY


@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'storefront_test.db'}")
    await init_db(bind=engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


# ==================== Collaborators ====================

class FailingGateway(SandboxGateway):
    """Gateway whose token endpoint is down."""

    async def create_charge_token(self, order_number, amount, customer):
        raise PaymentGatewayError(order_number=order_number)


class RecordingNotifier:
    def __init__(self):
        self.sent: List[Tuple[str, str]] = []

    async def notify(self, order, event):
        self.sent.append((order.order_number, event.value))


class BrokenNotifier:
    """Dispatcher whose delivery channel is down."""

    def __init__(self):
        self.attempts = 0

    async def notify(self, order, event):
        self.attempts += 1
        raise ConnectionError(f"cannot deliver {event.value}")


@pytest.fixture
def flat_shipping():
    return FlatRateShippingResolver(Decimal("10000"), estimated_days=2)


@pytest.fixture
def gateway():
    return SandboxGateway(server_key=SERVER_KEY, redirect_url="https://pay.test/checkout")


@pytest.fixture
def failing_gateway():
    return FailingGateway(server_key=SERVER_KEY)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def broken_notifier():
    return BrokenNotifier()


@pytest.fixture
def make_checkout_service(gateway, notifier, flat_shipping):
    def factory(session, **overrides):
        overrides.setdefault("gateway", gateway)
        overrides.setdefault("notifier", notifier)
        overrides.setdefault("shipping_resolver", flat_shipping)
        service = CheckoutService(session, **overrides)
        service.pricing.tax_calculator = TaxCalculator(Decimal("11"))
        return service
    return factory


@pytest.fixture
def checkout_service(db, make_checkout_service):
    return make_checkout_service(db)
