from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
import sqlite3
from typing import Optional

from ...utils.money import money_str, to_money


@dataclass
class PurchasePayment:
    payment_id: int | None
    purchase_id: int
    amount: Decimal
    payment_date: str
    payment_type: str
    notes: str | None = None


class PurchasePaymentsRepo:
    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn

    def record_payment(
        self,
        purchase_id: int,
        *,
        amount: Decimal,
        payment_type: str,
        payment_date: str,
        notes: Optional[str] = None,
    ) -> int:
        """
        Insert one row into purchase_payments. Bounds are checked by the
        purchase workflow; the header's paid_amount is updated there too.
        """
        cur = self.conn.execute(
            """
            INSERT INTO purchase_payments(purchase_id, amount, payment_date, payment_type, notes)
            VALUES (?, ?, ?, ?, ?)
            """,
            (purchase_id, money_str(amount), payment_date, payment_type, notes),
        )
        return int(cur.lastrowid)

    def list_payments(self, purchase_id: int) -> list[PurchasePayment]:
        rows = self.conn.execute(
            """
            SELECT payment_id, purchase_id, amount, payment_date, payment_type, notes
            FROM purchase_payments WHERE purchase_id=?
            ORDER BY payment_date, payment_id
            """,
            (purchase_id,),
        ).fetchall()
        out = []
        for r in rows:
            d = dict(r)
            d["amount"] = to_money(d["amount"])
            out.append(PurchasePayment(**d))
        return out
