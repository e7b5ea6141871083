"""Utilities for working with point amounts in Money Pots."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union

from .exceptions import InvalidAmountError

CENT = Decimal("0.01")

AmountLike = Union[int, Decimal, str, float]


def to_points(value: AmountLike) -> int:
    """Convert ``value`` to a whole number of points.

    Fractional amounts are rejected rather than rounded; jar balances only
    ever hold integers.
    """

    if isinstance(value, bool):
        raise InvalidAmountError(f"Unsupported amount type: {type(value)!r}")
    if isinstance(value, int):
        return value
    try:
        if isinstance(value, Decimal):
            result = value
        elif isinstance(value, float):
            result = Decimal(str(value))
        elif isinstance(value, str):
            result = Decimal(value.strip())
        else:
            raise InvalidAmountError(f"Unsupported amount type: {type(value)!r}")
    except InvalidOperation as exc:
        raise InvalidAmountError(f"Malformed amount: {value!r}") from exc
    if not result.is_finite() or result != result.to_integral_value():
        raise InvalidAmountError(f"Amount must be a whole number of points, got {value!r}.")
    return int(result)


def require_positive(amount: int, *, allow_zero: bool = False) -> int:
    """Ensure ``amount`` is positive (or non-negative when ``allow_zero`` is true)."""

    if allow_zero:
        if amount < 0:
            raise InvalidAmountError("Amount must be zero or greater.")
    else:
        if amount <= 0:
            raise InvalidAmountError("Amount must be greater than zero.")
    return amount


def format_points(amount: int, *, currency: str = "points", conversion_rate: float = 1) -> str:
    """Return ``amount`` formatted for display in the family's currency.

    In ``inr`` mode the conversion rate is a display multiplier (1 point = X
    rupees); balances themselves stay in points.
    """

    if currency == "inr":
        rupees = (Decimal(amount) * Decimal(str(conversion_rate))).quantize(CENT, rounding=ROUND_HALF_UP)
        return f"₹{rupees:,.2f}"
    unit = "point" if abs(amount) == 1 else "points"
    return f"{amount:,} {unit}"


__all__ = ["AmountLike", "CENT", "format_points", "require_positive", "to_points"]
