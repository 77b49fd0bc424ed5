"""Decimal helpers for scores and percentages."""

from decimal import ROUND_HALF_UP, Decimal


_CENT = Decimal("0.01")


def round_half_up(value: Decimal | int | float) -> int:
    """Round to the nearest integer, halves away from zero (75.5 -> 76)."""
    return int(Decimal(str(value)).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def percentage(part: int, whole: int) -> Decimal:
    """100 * part / whole with two decimals; 0 when ``whole`` is 0."""
    if whole <= 0:
        return Decimal(0).quantize(_CENT)
    return (Decimal(100) * part / whole).quantize(_CENT, rounding=ROUND_HALF_UP)
