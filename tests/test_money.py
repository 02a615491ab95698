from decimal import Decimal

from storefront.core.money import (
    clamp,
    money_equal,
    percent_of,
    round_money,
    to_minor_units,
    to_money,
)
from storefront.services.tax_calculator import TaxCalculator


def test_round_half_up_to_whole_units():
    assert round_money(Decimal("1049.5")) == Decimal("1050")
    assert round_money(Decimal("1049.49")) == Decimal("1049")
    assert round_money(Decimal("-2.5")) == Decimal("-3")


def test_round_with_explicit_places():
    assert round_money(Decimal("10.005"), 2) == Decimal("10.01")
    assert round_money("10.004", 2) == Decimal("10.00")


def test_to_money_avoids_float_artefacts():
    assert to_money(0.1) + to_money(0.2) == Decimal("0.3")
    assert to_money(None) == Decimal("0")


def test_percent_of_is_unrounded():
    assert percent_of(Decimal("999"), Decimal("11")) == Decimal("109.89")


def test_clamp():
    assert clamp(Decimal("5"), low=Decimal("0"), high=Decimal("3")) == Decimal("3")
    assert clamp(Decimal("-1"), low=Decimal("0")) == Decimal("0")
    assert clamp(Decimal("2"), low=Decimal("0"), high=Decimal("3")) == Decimal("2")


def test_money_equal_compares_after_rounding():
    assert money_equal(Decimal("121000.00"), Decimal("121000"))
    assert money_equal(Decimal("99.6"), Decimal("100"))
    assert not money_equal(Decimal("100"), Decimal("101"))


def test_minor_units():
    assert to_minor_units(Decimal("121000")) == 12100000
    assert to_minor_units(Decimal("10.5")) == 1050


class TestTaxCalculator:
    def test_eleven_percent(self):
        assert TaxCalculator(Decimal("11")).calculate(Decimal("100000")) == Decimal("11000")

    def test_rounds_once(self):
        # 999 * 11% = 109.89
        assert TaxCalculator(Decimal("11")).calculate(Decimal("999")) == Decimal("110")

    def test_non_positive_base_is_zero(self):
        calculator = TaxCalculator(Decimal("11"))
        assert calculator.calculate(Decimal("0")) == Decimal("0")
        assert calculator.calculate(Decimal("-50")) == Decimal("0")
