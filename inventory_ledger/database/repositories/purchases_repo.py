# inventory_ledger/database/repositories/purchases_repo.py
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
import sqlite3
from typing import Optional

from ...constants import PURCHASE_PREFIX
from ...errors import NotFoundError
from ...utils.money import money_str, remaining_payable_purchase, to_money
from .document_numbers import next_document_number


@dataclass
class PurchaseHeader:
    purchase_id: int | None
    company_id: int
    purchase_number: str
    vendor_id: int
    purchase_date: str
    total_amount: Decimal
    paid_amount: Decimal
    status: str
    payment_type: str
    notes: str | None = None
    vendor_name: str | None = None
    remaining_balance: Decimal = field(init=False)

    def __post_init__(self):
        # derived on every read, never stored
        self.remaining_balance = remaining_payable_purchase(self.total_amount, self.paid_amount)

    @classmethod
    def from_row(cls, r: sqlite3.Row) -> "PurchaseHeader":
        d = dict(r)
        d["total_amount"] = to_money(d["total_amount"])
        d["paid_amount"] = to_money(d["paid_amount"])
        return cls(**d)


@dataclass
class PurchaseItem:
    item_id: int | None
    purchase_id: int
    product_id: int
    batch_id: int | None
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    product_name: str | None = None
    batch_number: str | None = None

    @classmethod
    def from_row(cls, r: sqlite3.Row) -> "PurchaseItem":
        d = dict(r)
        d["unit_price"] = to_money(d["unit_price"])
        d["total_price"] = to_money(d["total_price"])
        return cls(**d)


_HEADER_SELECT = """
    SELECT p.purchase_id, p.company_id, p.purchase_number, p.vendor_id, p.purchase_date,
           p.total_amount, p.paid_amount, p.status, p.payment_type, p.notes,
           v.name AS vendor_name
    FROM purchases p
    JOIN vendors v ON v.vendor_id = p.vendor_id
"""


class PurchasesRepo:
    """
    Purchase headers and lines. No commit here; caller controls the
    transaction boundary.
    """

    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn

    # ---------------------------------------------------------------------
    # READ
    # ---------------------------------------------------------------------
    def list_purchases(self, company_id: int) -> list[PurchaseHeader]:
        rows = self.conn.execute(
            _HEADER_SELECT + " WHERE p.company_id=? ORDER BY p.purchase_date DESC, p.purchase_id DESC",
            (company_id,),
        ).fetchall()
        return [PurchaseHeader.from_row(r) for r in rows]

    def list_for_vendor(self, vendor_id: int) -> list[PurchaseHeader]:
        rows = self.conn.execute(
            _HEADER_SELECT + " WHERE p.vendor_id=? ORDER BY p.purchase_date DESC, p.purchase_id DESC",
            (vendor_id,),
        ).fetchall()
        return [PurchaseHeader.from_row(r) for r in rows]

    def get_header(self, purchase_id: int) -> PurchaseHeader | None:
        r = self.conn.execute(
            _HEADER_SELECT + " WHERE p.purchase_id=?", (purchase_id,)
        ).fetchone()
        return PurchaseHeader.from_row(r) if r else None

    def require(self, purchase_id: int) -> PurchaseHeader:
        h = self.get_header(purchase_id)
        if h is None:
            raise NotFoundError("Purchase", purchase_id)
        return h

    def list_items(self, purchase_id: int) -> list[PurchaseItem]:
        rows = self.conn.execute(
            """
            SELECT pi.item_id, pi.purchase_id, pi.product_id, pi.batch_id, pi.quantity,
                   pi.unit_price, pi.total_price,
                   pr.name AS product_name, b.batch_number
            FROM purchase_items pi
            JOIN products pr ON pr.product_id = pi.product_id
            LEFT JOIN batches b ON b.batch_id = pi.batch_id
            WHERE pi.purchase_id=?
            ORDER BY pi.item_id
            """,
            (purchase_id,),
        ).fetchall()
        return [PurchaseItem.from_row(r) for r in rows]

    def next_number(self, company_id: int) -> str:
        start = len(PURCHASE_PREFIX) + 1
        row = self.conn.execute(
            f"""
            SELECT MAX(CAST(SUBSTR(purchase_number, {start}) AS INTEGER)) AS m
            FROM purchases WHERE company_id=? AND purchase_number LIKE ?
            """,
            (company_id, PURCHASE_PREFIX + "%"),
        ).fetchone()
        used = int(row["m"]) if row and row["m"] is not None else 0
        return next_document_number(self.conn, company_id, "purchase", PURCHASE_PREFIX, used)

    # ---------------------------------------------------------------------
    # WRITE
    # ---------------------------------------------------------------------
    def create_header(
        self,
        *,
        company_id: int,
        vendor_id: int,
        purchase_date: str,
        total_amount: Decimal,
        paid_amount: Decimal,
        status: str,
        payment_type: str,
        notes: Optional[str] = None,
    ) -> int:
        cur = self.conn.execute(
            """
            INSERT INTO purchases(company_id, purchase_number, vendor_id, purchase_date,
                                  total_amount, paid_amount, status, payment_type, notes)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                company_id, self.next_number(company_id), vendor_id, purchase_date,
                money_str(total_amount), money_str(paid_amount), status, payment_type, notes,
            ),
        )
        return int(cur.lastrowid)

    def add_item(
        self,
        purchase_id: int,
        *,
        product_id: int,
        batch_id: int,
        quantity: int,
        unit_price: Decimal,
    ) -> int:
        cur = self.conn.execute(
            """
            INSERT INTO purchase_items(purchase_id, product_id, batch_id, quantity, unit_price, total_price)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                purchase_id, product_id, batch_id, quantity,
                money_str(unit_price), money_str(to_money(unit_price) * quantity),
            ),
        )
        return int(cur.lastrowid)

    def set_paid_amount(self, purchase_id: int, paid_amount: Decimal) -> None:
        self.conn.execute(
            "UPDATE purchases SET paid_amount=? WHERE purchase_id=?",
            (money_str(paid_amount), purchase_id),
        )

    def set_status(self, purchase_id: int, status: str) -> None:
        self.conn.execute(
            "UPDATE purchases SET status=? WHERE purchase_id=?", (status, purchase_id)
        )

    def delete(self, purchase_id: int) -> None:
        """Lines and payments go with the header (ON DELETE CASCADE)."""
        self.conn.execute("DELETE FROM purchases WHERE purchase_id=?", (purchase_id,))
