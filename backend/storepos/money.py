# Overview: Decimal helpers for money and stock quantities.

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

from .errors import ValidationError

CENT = Decimal("0.01")
QTY_STEP = Decimal("0.001")
ZERO = Decimal("0")

# Numeric(12, 2) / Numeric(12, 3) upper bounds
MAX_MONEY = Decimal("9999999999.99")
MAX_QTY = Decimal("999999999.999")


def quantize_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def quantize_qty(value: Decimal) -> Decimal:
    return value.quantize(QTY_STEP, rounding=ROUND_HALF_UP)


def _to_decimal(field: str, value: Any) -> Decimal:
    # bool is an int subclass; "true" is never a quantity
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number")
    if isinstance(value, float):
        value = repr(value)
    try:
        dec = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not dec.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    return dec


def parse_money(field: str, value: Any, *, allow_negative: bool = False) -> Decimal:
    dec = _to_decimal(field, value)
    if dec != quantize_money(dec):
        raise ValidationError(f"{field} supports at most 2 decimal places")
    if not allow_negative and dec < 0:
        raise ValidationError(f"{field} must be >= 0")
    if abs(dec) > MAX_MONEY:
        raise ValidationError(f"{field} cannot exceed {MAX_MONEY}")
    return quantize_money(dec)


def parse_qty(field: str, value: Any) -> Decimal:
    dec = _to_decimal(field, value)
    if dec != quantize_qty(dec):
        raise ValidationError(f"{field} supports at most 3 decimal places")
    if abs(dec) > MAX_QTY:
        raise ValidationError(f"{field} cannot exceed {MAX_QTY}")
    return quantize_qty(dec)


def money_str(value: Optional[Decimal]) -> Optional[str]:
    if value is None:
        return None
    return str(quantize_money(Decimal(value)))


def qty_str(value: Optional[Decimal]) -> Optional[str]:
    if value is None:
        return None
    return str(quantize_qty(Decimal(value)))
