"""
Numeric parsing and fixed-decimal formatting.

Every amount that reaches the ledger client goes through to_fixed_amount()
so that binary floating point never ends up inside a signed transaction.
"""
from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

from winelot.core.errors import ValidationError

LEDGER_DECIMALS = 7
MAX_BPS = 10000

TOKEN_CODE_RE = re.compile(r"^[A-Z0-9]{1,12}$")


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        # str() keeps the shortest repr of a float: 0.1 -> "0.1"
        return Decimal(str(value))
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None


def to_decimal(value: Any, field_name: str = "amount") -> Decimal:
    parsed = _to_decimal(value)
    if parsed is None or not parsed.is_finite():
        raise ValidationError(f"Invalid numeric value for {field_name}", field=field_name, kind="InvalidAmount")
    return parsed


def to_fixed_amount(value: Any, decimals: int = LEDGER_DECIMALS, field_name: str = "amount") -> str:
    parsed = to_decimal(value, field_name)
    if parsed < 0:
        raise ValidationError(f"{field_name} must be non-negative", field=field_name, kind="InvalidAmount")
    quantum = Decimal(1).scaleb(-decimals)
    try:
        return format(parsed.quantize(quantum, rounding=ROUND_HALF_UP), "f")
    except InvalidOperation:
        raise ValidationError(f"{field_name} is out of range", field=field_name, kind="InvalidAmount")


def ensure_positive_integer(value: Any, field_name: str) -> int:
    parsed = _to_decimal(value)
    if parsed is None or not parsed.is_finite() or parsed <= 0:
        raise ValidationError(f"{field_name} must be a positive number", field=field_name)
    if parsed != parsed.to_integral_value():
        raise ValidationError(f"{field_name} must be a whole number", field=field_name)
    return int(parsed)


def ensure_number(value: Any, field_name: str, *, min: Optional[Any] = None) -> Decimal:
    parsed = _to_decimal(value)
    if parsed is None or not parsed.is_finite():
        raise ValidationError(f"{field_name} must be a valid number", field=field_name)
    if min is not None and parsed < Decimal(str(min)):
        raise ValidationError(f"{field_name} must be >= {min}", field=field_name)
    return parsed


def ensure_bps(value: Any, field_name: str) -> int:
    parsed = _to_decimal(value)
    if parsed is None or not parsed.is_finite() or parsed != parsed.to_integral_value():
        raise ValidationError(f"{field_name} must be a whole number of basis points", field=field_name)
    if parsed < 0 or parsed > MAX_BPS:
        raise ValidationError(f"{field_name} must be between 0 and {MAX_BPS}", field=field_name)
    return int(parsed)


def derive_token_supply(bottle_count: Any, units_per_bottle: Any = 1) -> str:
    total = to_decimal(bottle_count, "bottleCount") * to_decimal(units_per_bottle, "unitsPerBottle")
    if total <= 0:
        raise ValidationError("Derived token supply must be positive", field="tokenSupply", kind="InvalidAmount")
    return to_fixed_amount(total, LEDGER_DECIMALS, "tokenSupply")


def normalize_token_code(code: Any) -> str:
    upper = str(code or "").strip().upper()
    if not TOKEN_CODE_RE.match(upper):
        raise ValidationError(
            "Token code must be 1-12 alphanumeric characters",
            field="tokenCode",
            details={"received": code},
        )
    return upper
