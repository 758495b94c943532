"""
Decimal money helpers.

Amounts are kept as Decimal in memory and TEXT in SQLite, always quantized
to MONEY_PLACES with half-up rounding. Nothing here touches the database.
"""
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from ..constants import MONEY_PLACES

__all__ = [
    "ZERO",
    "to_money",
    "money_str",
    "clamp_non_negative",
    "remaining_due_sale",
    "remaining_payable_purchase",
]

_QUANTUM = Decimal(1).scaleb(-MONEY_PLACES)

ZERO = Decimal("0").quantize(_QUANTUM)


def to_money(value) -> Decimal:
    """
    Parse value into a quantized Decimal. Floats go through str() so 0.1 stays 0.1.
    Raises ValueError when value is not a finite number.
    """
    if isinstance(value, Decimal):
        d = value
    else:
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValueError("Amount is required.")
        try:
            d = Decimal(str(value).strip())
        except InvalidOperation as e:
            raise ValueError(f"Could not parse '{value}' as an amount.") from e
    if not d.is_finite():
        raise ValueError(f"Could not parse '{value}' as an amount.")
    return d.quantize(_QUANTUM, rounding=ROUND_HALF_UP)


def money_str(value) -> str:
    """Fixed-point string for storage and API output."""
    return format(to_money(value), "f")


def clamp_non_negative(x: Decimal) -> Decimal:
    return x if x > 0 else ZERO


def remaining_due_sale(total_amount, returned_amount, paid_amount) -> Decimal:
    """remaining = (total - returned) - paid, never below zero."""
    raw = to_money(total_amount) - to_money(returned_amount) - to_money(paid_amount)
    return clamp_non_negative(raw)


def remaining_payable_purchase(total_amount, paid_amount) -> Decimal:
    return clamp_non_negative(to_money(total_amount) - to_money(paid_amount))
