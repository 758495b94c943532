"""
modules/inventory/allocator.py

Batch-level stock allocation.

allocate() hands out units from a product's batches and is all-or-nothing:
availability is checked for the whole request before any batch is touched,
and the decrements run inside a savepoint so a lost race on the last unit
undoes the ones already applied.

release() puts units back on one specific batch and refuses to push
available_quantity above the batch's original quantity.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
import sqlite3
from typing import Iterable, Optional, Sequence

from ...database import transaction
from ...database.repositories.batches_repo import Batch, BatchesRepo
from ...database.repositories.products_repo import ProductsRepo
from ...errors import InsufficientStock, ValidationError
from ...utils.loggers import get_logger
from ...utils.validators import try_parse_int

_log = get_logger(__name__)


class AllocationStrategy(str, Enum):
    FIFO = "fifo"
    EXPLICIT = "explicit"


@dataclass(frozen=True)
class Allocation:
    batch_id: int
    quantity: int
    unit_cost: Decimal


def _positive_quantity(value, what: str = "Quantity") -> int:
    ok, qty = try_parse_int(value)
    if not ok or qty <= 0:
        raise ValidationError(f"{what} must be a whole number greater than zero")
    return qty


class BatchAllocator:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.batches = BatchesRepo(conn)
        self.products = ProductsRepo(conn)

    def allocate(
        self,
        product_id: int,
        quantity,
        strategy: AllocationStrategy = AllocationStrategy.FIFO,
        batches: Optional[Iterable[tuple[int, int]]] = None,
    ) -> list[Allocation]:
        """
        Take `quantity` units of a product.

        FIFO: oldest manufacturing date first, undated batches last.
        EXPLICIT: `batches` lists (batch_id, quantity) pairs chosen by the caller;
        their quantities must add up to `quantity`.

        Returns the (batch, quantity, unit cost) pieces in the order taken.
        """
        qty = _positive_quantity(quantity)
        product = self.products.require(product_id)
        strategy = AllocationStrategy(strategy)

        if strategy is AllocationStrategy.FIFO:
            plan = self._plan_fifo(product.product_id, product.name, qty)
        else:
            if not batches:
                raise ValidationError("Explicit allocation needs at least one batch")
            plan = self._plan_explicit(product.product_id, product.name, qty, batches)

        with transaction(self.conn, "allocate stock"):
            for batch, take in plan:
                if not self.batches.take(batch.batch_id, take):
                    # someone else drew the batch down after we planned
                    current = self.batches.require(batch.batch_id)
                    raise InsufficientStock(
                        product.name, current.available_quantity, take, current.batch_number
                    )
        _log.debug(
            "Allocated %s x %s from %s",
            qty, product.sku, [(b.batch_number, t) for b, t in plan],
        )
        return [Allocation(b.batch_id, t, b.purchase_price) for b, t in plan]

    def release(self, batch_id: int, quantity) -> int:
        """Return units to one batch; raises OverRelease past the original quantity."""
        qty = _positive_quantity(quantity, "Release quantity")
        with transaction(self.conn, "release stock"):
            return self.batches.release(batch_id, qty)

    def stock_totals(self, product_id: int) -> tuple[int, int]:
        self.products.require(product_id)
        return self.batches.stock_totals(product_id)

    # ---------------------------------------------------------------------
    # planning (read-only)
    # ---------------------------------------------------------------------
    def _plan_fifo(self, product_id: int, product_name: str, qty: int) -> list[tuple[Batch, int]]:
        candidates = self.batches.fifo_candidates(product_id)
        available = sum(b.available_quantity for b in candidates)
        if available < qty:
            raise InsufficientStock(product_name, available, qty)
        plan: list[tuple[Batch, int]] = []
        remaining = qty
        for b in candidates:
            if remaining == 0:
                break
            take = min(b.available_quantity, remaining)
            plan.append((b, take))
            remaining -= take
        return plan

    def _plan_explicit(
        self,
        product_id: int,
        product_name: str,
        qty: int,
        requested: Iterable[tuple[int, int]],
    ) -> list[tuple[Batch, int]]:
        # merge repeats of the same batch, keep first-seen order
        merged: dict[int, int] = {}
        for batch_id, batch_qty in requested:
            merged[int(batch_id)] = merged.get(int(batch_id), 0) + _positive_quantity(batch_qty)
        if sum(merged.values()) != qty:
            raise ValidationError(
                f"Batch quantities ({sum(merged.values())}) must add up to the line quantity ({qty})"
            )
        plan: list[tuple[Batch, int]] = []
        for batch_id, take in merged.items():
            b = self.batches.require(batch_id)
            if b.product_id != product_id:
                raise ValidationError(f"Batch {b.batch_number} does not belong to {product_name}")
            if b.available_quantity < take:
                raise InsufficientStock(product_name, b.available_quantity, take, b.batch_number)
            plan.append((b, take))
        return plan


def total_cost(allocations: Sequence[Allocation]) -> Decimal:
    return sum((a.unit_cost * a.quantity for a in allocations), Decimal(0))
