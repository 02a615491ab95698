from decimal import Decimal
from typing import Optional

from storefront.config import settings
from storefront.core.money import ZERO, percent_of, round_money, to_money


class TaxCalculator:
    """Flat-rate tax on the post-discount subtotal. Shipping is not taxed."""

    def __init__(self, rate_percent: Optional[Decimal] = None):
        self.rate = to_money(settings.TAX_RATE_PERCENT if rate_percent is None else rate_percent)

    def calculate(self, taxable_base: Decimal) -> Decimal:
        base = to_money(taxable_base)
        if base <= ZERO:
            return round_money(ZERO)
        return round_money(percent_of(base, self.rate))
