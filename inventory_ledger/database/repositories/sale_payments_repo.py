from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
import sqlite3
from typing import Optional

from ...utils.money import money_str, to_money


@dataclass
class SalePayment:
    payment_id: int | None
    sale_id: int
    amount: Decimal
    payment_date: str
    payment_type: str
    notes: str | None = None
    transaction_id: int | None = None


class SalePaymentsRepo:
    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn

    def record_payment(
        self,
        sale_id: int,
        *,
        amount: Decimal,
        payment_type: str,
        payment_date: str,
        notes: Optional[str] = None,
        transaction_id: Optional[int] = None,
    ) -> int:
        cur = self.conn.execute(
            """
            INSERT INTO sale_payments(sale_id, amount, payment_date, payment_type, notes, transaction_id)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (sale_id, money_str(amount), payment_date, payment_type, notes, transaction_id),
        )
        return int(cur.lastrowid)

    def list_payments(self, sale_id: int) -> list[SalePayment]:
        rows = self.conn.execute(
            """
            SELECT payment_id, sale_id, amount, payment_date, payment_type, notes, transaction_id
            FROM sale_payments WHERE sale_id=?
            ORDER BY payment_date, payment_id
            """,
            (sale_id,),
        ).fetchall()
        out = []
        for r in rows:
            d = dict(r)
            d["amount"] = to_money(d["amount"])
            out.append(SalePayment(**d))
        return out
