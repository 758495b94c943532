# inventory_ledger/database/repositories/batches_repo.py
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
import sqlite3
from typing import Optional

from ...constants import BATCH_PREFIX
from ...errors import NotFoundError, OverRelease, ValidationError
from ...utils.helpers import now_stamp
from ...utils.money import money_str, to_money


def make_batch_number(sku: str) -> str:
    """BATCH-{sku}-{timestamp} for lines that arrive without a batch number."""
    return f"{BATCH_PREFIX}{sku}-{now_stamp()}"


@dataclass
class Batch:
    batch_id: int | None
    company_id: int
    product_id: int
    batch_number: str
    quantity: int
    available_quantity: int
    manufacturing_date: str | None
    expiry_date: str | None
    purchase_price: Decimal
    notes: str | None = None
    opening_transaction_id: int | None = None
    product_name: str | None = None
    sku: str | None = None
    created_at: str | None = None

    @classmethod
    def from_row(cls, r: sqlite3.Row) -> "Batch":
        d = dict(r)
        d["purchase_price"] = to_money(d["purchase_price"])
        return cls(**d)


_SELECT = """
    SELECT b.batch_id, b.company_id, b.product_id, b.batch_number, b.quantity,
           b.available_quantity, b.manufacturing_date, b.expiry_date, b.purchase_price,
           b.notes, b.opening_transaction_id, p.name AS product_name, p.sku, b.created_at
    FROM batches b
    JOIN products p ON p.product_id = b.product_id
"""


class BatchesRepo:
    """
    Row-level access to batches. Quantity movement goes through take() and
    release(), which are the only writers of available_quantity.
    No commit here; caller controls the transaction boundary.
    """

    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn

    # ---------------------------------------------------------------------
    # READ
    # ---------------------------------------------------------------------
    def get(self, batch_id: int) -> Batch | None:
        r = self.conn.execute(_SELECT + " WHERE b.batch_id=?", (batch_id,)).fetchone()
        return Batch.from_row(r) if r else None

    def require(self, batch_id: int) -> Batch:
        b = self.get(batch_id)
        if b is None:
            raise NotFoundError("Batch", batch_id)
        return b

    def list_for_product(self, product_id: int) -> list[Batch]:
        rows = self.conn.execute(
            _SELECT + " WHERE b.product_id=? ORDER BY b.batch_id", (product_id,)
        ).fetchall()
        return [Batch.from_row(r) for r in rows]

    def list_for_company(self, company_id: int) -> list[Batch]:
        rows = self.conn.execute(
            _SELECT + " WHERE b.company_id=? ORDER BY p.name COLLATE NOCASE, b.batch_id",
            (company_id,),
        ).fetchall()
        return [Batch.from_row(r) for r in rows]

    def fifo_candidates(self, product_id: int) -> list[Batch]:
        """
        Batches with stock left, oldest manufacturing date first. Undated
        batches go last; creation order breaks ties.
        """
        rows = self.conn.execute(
            _SELECT
            + """
            WHERE b.product_id=? AND b.available_quantity > 0
            ORDER BY (b.manufacturing_date IS NULL OR b.manufacturing_date = ''),
                     b.manufacturing_date ASC,
                     b.batch_id ASC
            """,
            (product_id,),
        ).fetchall()
        return [Batch.from_row(r) for r in rows]

    def stock_totals(self, product_id: int) -> tuple[int, int]:
        """(sum of quantity, sum of available_quantity) for one product."""
        r = self.conn.execute(
            """
            SELECT COALESCE(SUM(quantity), 0) AS total,
                   COALESCE(SUM(available_quantity), 0) AS available
            FROM batches WHERE product_id=?
            """,
            (product_id,),
        ).fetchone()
        return int(r["total"]), int(r["available"])

    def batch_number_exists(self, product_id: int, batch_number: str) -> bool:
        r = self.conn.execute(
            "SELECT 1 FROM batches WHERE product_id=? AND batch_number=?",
            (product_id, batch_number),
        ).fetchone()
        return r is not None

    def used_in_sales(self, batch_id: int) -> bool:
        r = self.conn.execute(
            "SELECT 1 FROM sale_item_allocations WHERE batch_id=? LIMIT 1", (batch_id,)
        ).fetchone()
        return r is not None

    def linked_purchase_id(self, batch_id: int) -> Optional[int]:
        r = self.conn.execute(
            "SELECT purchase_id FROM purchase_items WHERE batch_id=?", (batch_id,)
        ).fetchone()
        return int(r["purchase_id"]) if r else None

    # ---------------------------------------------------------------------
    # WRITE
    # ---------------------------------------------------------------------
    def insert(
        self,
        *,
        company_id: int,
        product_id: int,
        batch_number: str,
        quantity: int,
        purchase_price: Decimal,
        manufacturing_date: Optional[str] = None,
        expiry_date: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> int:
        if quantity <= 0:
            raise ValidationError("Batch quantity must be greater than zero")
        if self.batch_number_exists(product_id, batch_number):
            raise ValidationError(f"Batch number {batch_number} already exists for this product")
        cur = self.conn.execute(
            """
            INSERT INTO batches(company_id, product_id, batch_number, quantity, available_quantity,
                                manufacturing_date, expiry_date, purchase_price, notes)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                company_id, product_id, batch_number, quantity, quantity,
                manufacturing_date, expiry_date, money_str(purchase_price), notes,
            ),
        )
        return int(cur.lastrowid)

    def take(self, batch_id: int, quantity: int) -> bool:
        """
        Decrement available_quantity only if enough is left. Returns False when
        another writer got there first; the caller decides what that means.
        """
        cur = self.conn.execute(
            """
            UPDATE batches
               SET available_quantity = available_quantity - ?
             WHERE batch_id = ? AND available_quantity >= ?
            """,
            (quantity, batch_id, quantity),
        )
        return cur.rowcount == 1

    def release(self, batch_id: int, quantity: int) -> int:
        """Give `quantity` units back; returns the new available quantity."""
        if quantity <= 0:
            raise OverRelease(f"Release quantity must be positive, got {quantity}")
        b = self.require(batch_id)
        if b.available_quantity + quantity > b.quantity:
            raise OverRelease(
                f"Releasing {quantity} to batch {b.batch_number} would exceed its "
                f"original quantity {b.quantity} (available {b.available_quantity})"
            )
        cur = self.conn.execute(
            """
            UPDATE batches
               SET available_quantity = available_quantity + ?
             WHERE batch_id = ? AND available_quantity + ? <= quantity
            """,
            (quantity, batch_id, quantity),
        )
        if cur.rowcount != 1:
            raise OverRelease(f"Concurrent change while releasing stock to batch {b.batch_number}")
        return b.available_quantity + quantity

    def set_opening_transaction(self, batch_id: int, transaction_id: int) -> None:
        self.conn.execute(
            "UPDATE batches SET opening_transaction_id=? WHERE batch_id=?",
            (transaction_id, batch_id),
        )

    def delete(self, batch_id: int) -> None:
        self.conn.execute("DELETE FROM batches WHERE batch_id=?", (batch_id,))
