"""Decimal helpers shared by every calculation module."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

ZERO = Decimal("0")
CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def to_decimal(value: Any, default: Optional[Decimal] = None) -> Decimal:
    """
    Convert a number or numeric string to Decimal.

    Floats go through ``str`` so 0.06 stays 0.06 instead of its binary
    expansion. ``None`` maps to ``default`` (or raises if no default).
    """
    if value is None:
        if default is None:
            raise ValueError("Expected a number, got None")
        return default
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Expected a number, got {value!r}")
    try:
        return Decimal(str(value).strip().replace(",", ""))
    except InvalidOperation as e:
        raise ValueError(f"Not a number: {value!r}") from e


def round_money(amount: Decimal) -> Decimal:
    """Round to the nearest cent, half-up."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def round_rate(rate: Decimal, places: int = 4) -> Decimal:
    """Round a percentage or factor for display and matrix output."""
    return rate.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def clamp_floor(amount: Decimal, floor: Decimal = ZERO) -> Decimal:
    return amount if amount > floor else floor
