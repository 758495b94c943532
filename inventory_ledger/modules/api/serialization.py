"""
modules/api/serialization.py

Wire format for the request/response surface:
  - keys are camelCase on the wire and snake_case inside
  - Decimal goes out as a fixed-point string, never a float
  - enums go out as their value, dates as ISO-8601
"""
from __future__ import annotations

from dataclasses import fields, is_dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
import re
from typing import Any, Mapping

from ...utils.money import money_str

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])([A-Z])")


def to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(p[:1].upper() + p[1:] for p in rest)


def to_snake(name: str) -> str:
    return _CAMEL_BOUNDARY.sub(lambda m: "_" + m.group(1), name).lower()


def serialize(obj: Any) -> Any:
    if is_dataclass(obj) and not isinstance(obj, type):
        return {to_camel(f.name): serialize(getattr(obj, f.name)) for f in fields(obj)}
    if isinstance(obj, Decimal):
        return money_str(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Mapping):
        return {to_camel(str(k)): serialize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [serialize(v) for v in obj]
    return obj


def normalize_payload(data: Any) -> Any:
    """camelCase (or snake_case) request keys -> snake_case, recursively."""
    if isinstance(data, Mapping):
        return {to_snake(str(k)): normalize_payload(v) for k, v in data.items()}
    if isinstance(data, (list, tuple)):
        return [normalize_payload(v) for v in data]
    return data


def flatten_detail(detail: Any, *collections: str) -> dict:
    """
    {header: {...}, items: [...]} -> {...header fields, items: [...]}
    for the document detail views.
    """
    out = serialize(detail.header)
    for name in collections:
        out[to_camel(name)] = serialize(getattr(detail, name))
    return out


def flatten_summary(summary: Any, party_field: str) -> dict:
    """Party record with its derived balances folded in."""
    out = serialize(getattr(summary, party_field))
    for f in fields(summary):
        if f.name != party_field:
            out[to_camel(f.name)] = serialize(getattr(summary, f.name))
    return out
