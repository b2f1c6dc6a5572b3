"""Ringgit amount helpers.  Amounts are ``Decimal``; never float."""

from decimal import ROUND_HALF_UP, Decimal

ZERO = Decimal("0")
CENT = Decimal("0.01")


def to_money(value: Decimal | int | str) -> Decimal:
    """Quantize to sen, half-up."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def money_sum(values) -> Decimal:
    """Sum an iterable of amounts without rounding."""
    total = ZERO
    for v in values:
        total += Decimal(v)
    return total
