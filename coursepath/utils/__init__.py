"""Utility modules for the progression engine."""

from coursepath.utils.numbers import percentage, round_half_up


__all__ = ["percentage", "round_half_up"]
