# tests/test_allocator.py
from __future__ import annotations

from decimal import Decimal
import sqlite3

import pytest

from inventory_ledger.database import transaction
from inventory_ledger.database.repositories.batches_repo import BatchesRepo
from inventory_ledger.errors import InsufficientStock, OverRelease, ValidationError
from inventory_ledger.modules.inventory.allocator import (
    Allocation,
    AllocationStrategy,
    BatchAllocator,
    total_cost,
)


def test_fifo_takes_oldest_batch_first(conn, stocked, available):
    alloc = BatchAllocator(conn)
    pieces = alloc.allocate(stocked["prod_A"], 7)

    assert [(p.batch_id, p.quantity) for p in pieces] == [(stocked["B1"], 5), (stocked["B2"], 2)]
    assert available(stocked["B1"]) == 0
    assert available(stocked["B2"]) == 3
    assert total_cost(pieces) == Decimal("74")


def test_fifo_puts_undated_batches_last(conn, ids, available):
    with transaction(conn, "seed batches"):
        repo = BatchesRepo(conn)
        undated = repo.insert(
            company_id=ids["company_id"], product_id=ids["prod_B"], batch_number="U1",
            quantity=3, purchase_price=Decimal("1"),
        )
        dated = repo.insert(
            company_id=ids["company_id"], product_id=ids["prod_B"], batch_number="D1",
            quantity=3, purchase_price=Decimal("1"), manufacturing_date="2024-05-01",
        )
    pieces = BatchAllocator(conn).allocate(ids["prod_B"], 4)
    assert [(p.batch_id, p.quantity) for p in pieces] == [(dated, 3), (undated, 1)]


def test_insufficient_stock_changes_nothing(conn, stocked, available):
    alloc = BatchAllocator(conn)
    with pytest.raises(InsufficientStock) as exc:
        alloc.allocate(stocked["prod_A"], 11)

    assert exc.value.message == "Insufficient stock for Widget A. Available: 10, Requested: 11"
    assert available(stocked["B1"]) == 5
    assert available(stocked["B2"]) == 5


def test_explicit_allocation_uses_named_batches(conn, stocked, available):
    alloc = BatchAllocator(conn)
    pieces = alloc.allocate(
        stocked["prod_A"], 3, AllocationStrategy.EXPLICIT,
        [(stocked["B2"], 2), (stocked["B2"], 1)],
    )
    assert pieces == [Allocation(stocked["B2"], 3, Decimal("12.0000"))]
    assert available(stocked["B1"]) == 5
    assert available(stocked["B2"]) == 2


def test_explicit_allocation_must_add_up(conn, stocked):
    with pytest.raises(ValidationError, match="must add up"):
        BatchAllocator(conn).allocate(
            stocked["prod_A"], 4, AllocationStrategy.EXPLICIT, [(stocked["B1"], 3)]
        )


def test_explicit_allocation_checks_batch_stock(conn, stocked, available):
    with pytest.raises(InsufficientStock, match=r"\(batch B1\)"):
        BatchAllocator(conn).allocate(
            stocked["prod_A"], 8, AllocationStrategy.EXPLICIT,
            [(stocked["B2"], 2), (stocked["B1"], 6)],
        )
    assert available(stocked["B2"]) == 5


def test_explicit_allocation_rejects_foreign_batch(conn, stocked):
    with pytest.raises(ValidationError, match="does not belong"):
        BatchAllocator(conn).allocate(
            stocked["prod_B"], 1, AllocationStrategy.EXPLICIT, [(stocked["B1"], 1)]
        )


@pytest.mark.parametrize("qty", [0, -2, "1.5", True, None, "abc"])
def test_allocation_quantity_must_be_positive_whole_number(conn, stocked, qty):
    with pytest.raises(ValidationError):
        BatchAllocator(conn).allocate(stocked["prod_A"], qty)


def test_release_mirrors_allocation(conn, stocked, available):
    alloc = BatchAllocator(conn)
    for p in alloc.allocate(stocked["prod_A"], 7):
        alloc.release(p.batch_id, p.quantity)

    assert available(stocked["B1"]) == 5
    assert available(stocked["B2"]) == 5
    assert alloc.stock_totals(stocked["prod_A"]) == (10, 10)


def test_release_cannot_exceed_original_quantity(conn, stocked, available):
    alloc = BatchAllocator(conn)
    alloc.allocate(stocked["prod_A"], 2)
    with pytest.raises(OverRelease):
        alloc.release(stocked["B1"], 3)
    assert available(stocked["B1"]) == 3


def test_lost_race_rolls_back_earlier_takes(conn, stocked, available, monkeypatch):
    repo = BatchesRepo(conn)
    real_take = BatchesRepo.take

    def take(self, batch_id, quantity):
        if batch_id == stocked["B2"]:
            return False
        return real_take(self, batch_id, quantity)

    monkeypatch.setattr(BatchesRepo, "take", take)
    with pytest.raises(InsufficientStock):
        BatchAllocator(conn).allocate(stocked["prod_A"], 7)

    assert repo.require(stocked["B1"]).available_quantity == 5
    assert available(stocked["B2"]) == 5


def test_stored_quantity_cannot_change(conn, stocked):
    with pytest.raises(sqlite3.IntegrityError, match="fixed once created"):
        conn.execute("UPDATE batches SET quantity = 99 WHERE batch_id=?", (stocked["B1"],))
