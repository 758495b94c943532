# utils/validators.py
from decimal import Decimal, InvalidOperation

from .money import to_money


def non_empty(text) -> bool:
    """
    True if `text` is not None/empty after stripping whitespace.
    """
    return bool(text and str(text).strip())


def try_parse_money(x):
    """
    Best-effort parse to a quantized Decimal.

    Returns:
        (ok: bool, value: Decimal|None)
    """
    try:
        return True, to_money(x)
    except ValueError:
        return False, None


def try_parse_int(x):
    """
    Parse a whole quantity. Accepts ints and integral strings/Decimals;
    rejects bools and fractional values.
    """
    if isinstance(x, bool) or x is None:
        return False, None
    if isinstance(x, int):
        return True, x
    try:
        d = Decimal(str(x).strip())
    except (InvalidOperation, ValueError):
        return False, None
    if not d.is_finite() or d != d.to_integral_value():
        return False, None
    return True, int(d)


def is_positive_int(x) -> bool:
    ok, val = try_parse_int(x)
    return bool(ok and val > 0)
