from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from app.core.errors import ValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def dec(x: Any, field: str = "amount") -> Decimal:
    """Convert float/int/str input to Decimal without binary float noise."""
    if x is None:
        return Decimal("0")
    if isinstance(x, Decimal):
        return x
    if isinstance(x, bool):
        raise ValidationError(f"{field} must be numeric", field=field)
    try:
        value = Decimal(str(x))
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(f"{field} must be numeric", field=field) from e
    if not value.is_finite():
        raise ValidationError(f"{field} must be finite", field=field)
    return value


def q(x: Any) -> Decimal:
    """Round half-up to cents. Apply once per computed field."""
    return dec(x).quantize(CENT, rounding=ROUND_HALF_UP)


def percent_of(base: Decimal, pct: Decimal) -> Decimal:
    return q(dec(base) * dec(pct) / HUNDRED)


def positive(x: Any, field: str = "amount") -> Decimal:
    value = q(x)
    if value <= 0:
        raise ValidationError(f"{field} must be greater than zero", field=field)
    return value


def non_negative(x: Any, field: str = "amount") -> Decimal:
    value = q(x)
    if value < 0:
        raise ValidationError(f"{field} must not be negative", field=field)
    return value
