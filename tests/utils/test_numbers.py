"""Tests for score and percentage helpers."""

from decimal import Decimal

import pytest

from coursepath.utils.numbers import percentage, round_half_up


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (Decimal("75.5"), 76),
        (Decimal("75.49"), 75),
        (Decimal("12.5"), 13),
        (Decimal("0.5"), 1),
        (100, 100),
        (0, 0),
    ],
)
def test_round_half_up(value, expected) -> None:
    assert round_half_up(value) == expected


def test_percentage() -> None:
    assert percentage(1, 3) == Decimal("33.33")
    assert percentage(2, 3) == Decimal("66.67")
    assert percentage(4, 4) == Decimal("100.00")


def test_percentage_of_nothing_is_zero() -> None:
    assert percentage(0, 0) == Decimal(0)
