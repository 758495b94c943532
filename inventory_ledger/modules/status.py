"""
modules/status.py

Closed sets of document states and the transitions allowed between them.

    Purchase:  pending -> completed | cancelled
    Sale:      in_progress -> completed
               completed -> returned | partial_return
               partial_return -> partial_return | returned
               returned is terminal
"""
from __future__ import annotations

from enum import Enum
from typing import Mapping, Optional, TypeVar

from ..errors import ValidationError


class PurchaseStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class SaleStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    RETURNED = "returned"
    PARTIAL_RETURN = "partial_return"


PURCHASE_TRANSITIONS: Mapping[PurchaseStatus, frozenset] = {
    PurchaseStatus.PENDING: frozenset({PurchaseStatus.COMPLETED, PurchaseStatus.CANCELLED}),
    PurchaseStatus.COMPLETED: frozenset(),
    PurchaseStatus.CANCELLED: frozenset(),
}

SALE_TRANSITIONS: Mapping[SaleStatus, frozenset] = {
    SaleStatus.IN_PROGRESS: frozenset({SaleStatus.COMPLETED}),
    SaleStatus.COMPLETED: frozenset({SaleStatus.RETURNED, SaleStatus.PARTIAL_RETURN}),
    SaleStatus.PARTIAL_RETURN: frozenset({SaleStatus.PARTIAL_RETURN, SaleStatus.RETURNED}),
    SaleStatus.RETURNED: frozenset(),
}

# states a new document may start in
PURCHASE_ENTRY_STATES = (PurchaseStatus.PENDING, PurchaseStatus.COMPLETED)
SALE_ENTRY_STATES = (SaleStatus.IN_PROGRESS, SaleStatus.COMPLETED)

S = TypeVar("S", PurchaseStatus, SaleStatus)


def parse_status(enum_cls: type[S], value: Optional[str], default: Optional[S] = None) -> S:
    """Lowercase & strip; empty falls back to `default`. Unknown values raise ValidationError."""
    text = str(value).strip().lower() if value is not None else ""
    if not text:
        if default is None:
            raise ValidationError("Status is required")
        return default
    try:
        return enum_cls(text)
    except ValueError as e:
        allowed = ", ".join(s.value for s in enum_cls)
        raise ValidationError(f"Status must be one of: {allowed}") from e


def ensure_transition(transitions: Mapping[S, frozenset], current: S, target: S, what: str) -> S:
    if target not in transitions[current]:
        raise ValidationError(
            f"Cannot change {what} status from {current.value} to {target.value}"
        )
    return target
