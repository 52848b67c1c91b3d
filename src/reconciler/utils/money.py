"""Currency helpers. Amounts are fixed-point decimals with 2 fractional digits."""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def quantize_amount(amount: Decimal) -> Decimal:
    """Round to 2 fractional digits (half up)."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def parse_amount(value: Any) -> Decimal:
    """Parse a sender-reported amount, degrading to 0.00 when malformed.

    Accepts strings ("12.50"), ints and Decimals. Floats go through str()
    so that 0.1 parses as 0.10 rather than its binary expansion.
    """
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        return ZERO
    if not amount.is_finite():
        return ZERO
    return quantize_amount(amount)


def to_minor_units(amount: Decimal) -> int:
    """Convert a decimal currency amount to integer minor units (cents)."""
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
