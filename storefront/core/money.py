"""
Money and rounding rules shared by every pricing component.

RULES:
━━━━━━
• Amounts are Decimal, never float. Floats are converted through str().
• Rounding is ROUND_HALF_UP (half away from zero), to the currency's
  smallest unit (CURRENCY_DECIMAL_PLACES), applied once at the end of a
  computation - never on intermediate values.
• Two amounts are equal when they are equal after rounding.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union

from storefront.config import settings

Number = Union[Decimal, int, str, float]

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_money(value: Optional[Number]) -> Decimal:
    """Convert a value to Decimal without binary float artefacts."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def money_quantum(decimal_places: Optional[int] = None) -> Decimal:
    places = settings.CURRENCY_DECIMAL_PLACES if decimal_places is None else decimal_places
    return Decimal(1).scaleb(-places)


def round_money(value: Number, decimal_places: Optional[int] = None) -> Decimal:
    """Round to the smallest currency unit, half away from zero."""
    return to_money(value).quantize(money_quantum(decimal_places), rounding=ROUND_HALF_UP)


def percent_of(amount: Number, percent: Number) -> Decimal:
    """Unrounded `amount * percent / 100`."""
    return to_money(amount) * to_money(percent) / HUNDRED


def clamp(value: Decimal, low: Optional[Decimal] = None, high: Optional[Decimal] = None) -> Decimal:
    if low is not None and value < low:
        return low
    if high is not None and value > high:
        return high
    return value


def money_equal(a: Number, b: Number) -> bool:
    return round_money(a) == round_money(b)


def to_minor_units(amount: Number, minor_digits: int = 2) -> int:
    """Integer amount in the gateway's minor unit (e.g. paise, cents)."""
    return int(round_money(amount, minor_digits).scaleb(minor_digits))
