"""
modules/inventory/expiry.py

Single definition of batch expiry status, shared by every list and report:

    days_until_expiry = ceil((expiry_date - today) / 86400 s)
    expired        days < 0
    expiring_soon  0 <= days <= EXPIRING_SOON_DAYS
    ok             later than that
    no_expiry      no expiry date on the batch
"""
from __future__ import annotations

from datetime import date, datetime, time
from enum import Enum
import math
from typing import Optional

from ...constants import EXPIRING_SOON_DAYS
from ...utils.helpers import DateLike


class ExpiryStatus(str, Enum):
    EXPIRED = "expired"
    EXPIRING_SOON = "expiring_soon"
    OK = "ok"
    NO_EXPIRY = "no_expiry"


def _as_datetime(value: DateLike) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    text = str(value).strip()
    if not text:
        return None
    try:
        return datetime.fromisoformat(text.replace("Z", "")).replace(tzinfo=None)
    except ValueError as e:
        raise ValueError(f"Could not parse {value!r} as a date.") from e


def days_until_expiry(expiry_date: DateLike, today: DateLike = None) -> Optional[int]:
    expiry = _as_datetime(expiry_date)
    if expiry is None:
        return None
    now = _as_datetime(today) if today is not None else datetime.combine(date.today(), time.min)
    return math.ceil((expiry - now).total_seconds() / 86400)


def classify_expiry(expiry_date: DateLike, today: DateLike = None) -> ExpiryStatus:
    days = days_until_expiry(expiry_date, today)
    if days is None:
        return ExpiryStatus.NO_EXPIRY
    if days < 0:
        return ExpiryStatus.EXPIRED
    if days <= EXPIRING_SOON_DAYS:
        return ExpiryStatus.EXPIRING_SOON
    return ExpiryStatus.OK
