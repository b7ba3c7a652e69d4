"""Rounding helpers shared by the aggregate calculations."""

from decimal import Decimal, ROUND_HALF_UP
from typing import Union


def round_half_up(value: Union[int, float]) -> int:
    """Round to the nearest integer, halves away from zero.

    The built-in ``round`` uses banker's rounding (``round(2.5) == 2``), which
    would make percentages like 62.5 drop to 62.
    """
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def round_half_up_to(value: Union[int, float], digits: int) -> float:
    """Round to ``digits`` decimal places, halves away from zero (0.25 -> 0.3)."""
    return float(Decimal(str(value)).quantize(Decimal(1).scaleb(-digits), rounding=ROUND_HALF_UP))


def percentage(part: int, whole: int) -> int:
    """Return ``round_half_up(100 * part / whole)``, or 0 when ``whole`` is 0."""
    if whole <= 0:
        return 0
    return round_half_up(100 * part / whole)
