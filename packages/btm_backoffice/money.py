"""Decimal helpers for currency amounts.

All amounts are ``Decimal``; rounding to cents is half-up.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

ZERO = Decimal("0")
CENT = Decimal("0.01")
DOLLAR = Decimal("1")


def to_decimal(value: Any) -> Decimal | None:
    """Coerce ``value`` to ``Decimal``; ``None`` and unparsable input give ``None``."""

    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def round_money(value: Decimal | int | float | None) -> Decimal:
    """Round to cents (half-up). ``None`` counts as zero."""

    if value is None:
        return ZERO.quantize(CENT)
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def round_dollars(value: Decimal | int | float | None) -> Decimal:
    """Round to whole dollars (half-up), as the sales summaries are shown."""

    if value is None:
        return ZERO
    return Decimal(str(value)).quantize(DOLLAR, rounding=ROUND_HALF_UP)


def money_sum(values) -> Decimal:
    """Sum amounts, treating ``None`` as zero."""

    total = ZERO
    for v in values:
        if v is not None:
            total += v
    return total


__all__ = [
    "ZERO",
    "CENT",
    "DOLLAR",
    "to_decimal",
    "round_money",
    "round_dollars",
    "money_sum",
]
