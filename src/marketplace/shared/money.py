"""Monetary arithmetic for order totals and gateway amounts.

Amounts are stored as floats in major units (12.50) on aggregates, and
sent to the payment gateway as integers in minor units (1250). All
arithmetic goes through ``Decimal`` so totals never drift.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

VALID_CURRENCIES = frozenset({"usd", "eur", "gbp", "cad", "aud", "jpy", "krw", "chf", "nzd", "sek"})

# Currencies the gateway expects without a fractional part
ZERO_DECIMAL_CURRENCIES = frozenset({"jpy", "krw"})

_CENT = Decimal("0.01")


def _decimal(amount) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))


def _exponent(currency: str) -> int:
    return 0 if currency.lower() in ZERO_DECIMAL_CURRENCIES else 2


def round_amount(amount) -> float:
    """Round a major-unit amount to whole cents, half up."""
    return float(_decimal(amount).quantize(_CENT, rounding=ROUND_HALF_UP))


def to_minor_units(amount, currency: str = "usd") -> int:
    """Convert a major-unit amount to the gateway's integer minor units.

    >>> to_minor_units(12.5)
    1250
    """
    scaled = _decimal(amount).scaleb(_exponent(currency))
    return int(scaled.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def from_minor_units(amount: int, currency: str = "usd") -> float:
    return float(Decimal(amount).scaleb(-_exponent(currency)))


def line_total(unit_price, quantity: int) -> float:
    return round_amount(_decimal(unit_price) * quantity)


def sum_amounts(amounts: Iterable) -> float:
    return round_amount(sum((_decimal(a) for a in amounts), Decimal(0)))


def same_amount(left, right) -> bool:
    """Compare two major-unit amounts at cent precision."""
    return to_minor_units(left) == to_minor_units(right)
