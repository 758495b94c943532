# utils/helpers.py
from datetime import date, datetime
from typing import Optional, Union

DateLike = Union[date, datetime, str, None]


def today_str() -> str:
    """Return today's date as ISO string (YYYY-MM-DD)."""
    return date.today().isoformat()


def now_stamp() -> str:
    """Compact local timestamp used in generated batch numbers."""
    return datetime.now().strftime("%Y%m%d%H%M%S%f")


def parse_date(value: DateLike) -> Optional[date]:
    """
    Accept a date, datetime or ISO string (date or datetime) and return a date.
    Empty values return None; anything unparseable raises ValueError.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError as e:
        raise ValueError(f"Could not parse {value!r} as a date.") from e


def iso_date(value: DateLike, default: Optional[str] = None) -> Optional[str]:
    d = parse_date(value)
    return d.isoformat() if d else default


def fmt_money(v, places: int = 2) -> str:
    """Thousands separators and a fixed number of decimals; for CLI output only."""
    return f"{v:,.{places}f}"
