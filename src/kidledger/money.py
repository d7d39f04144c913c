"""Utilities for working with monetary values in kidledger."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union

from .exceptions import ValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

AmountLike = Union[Decimal, int, float, str]


def to_decimal(value: AmountLike) -> Decimal:
    """Convert ``value`` to a :class:`~decimal.Decimal` with two decimal places."""

    if isinstance(value, bool):
        raise ValidationError(f"Unsupported amount type: {type(value)!r}")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation as exc:
            raise ValidationError(f"Amount {value!r} is not a number.") from exc
    else:
        raise ValidationError(f"Unsupported amount type: {type(value)!r}")

    if not result.is_finite():
        raise ValidationError(f"Amount {value!r} is not a number.")
    try:
        return result.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise ValidationError(f"Amount {value!r} is too large.") from exc


def to_rate(value: AmountLike) -> Decimal:
    """Convert an annual percentage rate to a :class:`~decimal.Decimal`."""

    if isinstance(value, bool):
        raise ValidationError(f"Unsupported rate type: {type(value)!r}", code="invalid_rate")
    try:
        result = Decimal(str(value).strip()) if not isinstance(value, Decimal) else value
    except InvalidOperation as exc:
        raise ValidationError(f"Rate {value!r} is not a number.", code="invalid_rate") from exc
    if not result.is_finite():
        raise ValidationError(f"Rate {value!r} is not a number.", code="invalid_rate")
    return result


def require_positive(amount: Decimal, *, allow_zero: bool = False) -> Decimal:
    """Ensure ``amount`` is positive (or non-negative when ``allow_zero`` is true)."""

    if allow_zero:
        if amount < ZERO:
            raise ValidationError("Amount must be zero or greater.")
    else:
        if amount <= ZERO:
            raise ValidationError("Amount must be greater than zero.")
    return amount


def format_currency(amount: Decimal) -> str:
    """Return ``amount`` formatted in Hong Kong dollars (e.g. ``HK$12.34``)."""

    value = amount.quantize(CENT, rounding=ROUND_HALF_UP)
    sign = "-" if value < ZERO else ""
    return f"{sign}HK${abs(value):,.2f}"
