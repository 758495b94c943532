# inventory_ledger/database/repositories/sales_repo.py
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
import sqlite3
from typing import Iterable, Optional

from ...constants import SALE_PREFIX
from ...errors import NotFoundError
from ...utils.money import money_str, remaining_due_sale, to_money
from .document_numbers import next_document_number


@dataclass
class SaleHeader:
    sale_id: int | None
    company_id: int
    sale_number: str
    customer_id: int | None
    sale_date: str
    total_amount: Decimal
    returned_amount: Decimal
    paid_amount: Decimal
    status: str
    payment_type: str
    notes: str | None = None
    customer_name: str | None = None
    revenue_transaction_id: int | None = None
    cost_transaction_id: int | None = None
    remaining_balance: Decimal = field(init=False)

    def __post_init__(self):
        # what is still owed on the un-returned part of the sale
        self.remaining_balance = remaining_due_sale(
            self.total_amount, self.returned_amount, self.paid_amount
        )

    @property
    def net_amount(self) -> Decimal:
        return self.total_amount - self.returned_amount

    @classmethod
    def from_row(cls, r: sqlite3.Row) -> "SaleHeader":
        d = dict(r)
        for k in ("total_amount", "returned_amount", "paid_amount"):
            d[k] = to_money(d[k])
        return cls(**d)


@dataclass
class SaleAllocation:
    allocation_id: int | None
    item_id: int
    batch_id: int
    quantity: int
    returned_quantity: int
    unit_cost: Decimal
    batch_number: str | None = None

    @property
    def outstanding(self) -> int:
        return self.quantity - self.returned_quantity


@dataclass
class SaleItem:
    item_id: int | None
    sale_id: int
    product_id: int
    quantity: int
    returned_quantity: int
    unit_price: Decimal
    total_price: Decimal
    product_name: str | None = None
    allocations: list[SaleAllocation] = field(default_factory=list)


_HEADER_SELECT = """
    SELECT s.sale_id, s.company_id, s.sale_number, s.customer_id, s.sale_date,
           s.total_amount, s.returned_amount, s.paid_amount, s.status, s.payment_type,
           s.notes, c.name AS customer_name, s.revenue_transaction_id, s.cost_transaction_id
    FROM sales s
    LEFT JOIN customers c ON c.customer_id = s.customer_id
"""


class SalesRepo:
    """
    Sales headers, lines and the per-line batch allocations that make
    returns exact. No commit here; caller controls the transaction boundary.
    """

    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn

    # ---------------------------------------------------------------------
    # READ
    # ---------------------------------------------------------------------
    def list_sales(self, company_id: int) -> list[SaleHeader]:
        rows = self.conn.execute(
            _HEADER_SELECT + " WHERE s.company_id=? ORDER BY s.sale_date DESC, s.sale_id DESC",
            (company_id,),
        ).fetchall()
        return [SaleHeader.from_row(r) for r in rows]

    def list_for_customer(self, customer_id: int) -> list[SaleHeader]:
        rows = self.conn.execute(
            _HEADER_SELECT + " WHERE s.customer_id=? ORDER BY s.sale_date DESC, s.sale_id DESC",
            (customer_id,),
        ).fetchall()
        return [SaleHeader.from_row(r) for r in rows]

    def get_header(self, sale_id: int) -> SaleHeader | None:
        r = self.conn.execute(_HEADER_SELECT + " WHERE s.sale_id=?", (sale_id,)).fetchone()
        return SaleHeader.from_row(r) if r else None

    def require(self, sale_id: int) -> SaleHeader:
        h = self.get_header(sale_id)
        if h is None:
            raise NotFoundError("Sale", sale_id)
        return h

    def list_items(self, sale_id: int) -> list[SaleItem]:
        rows = self.conn.execute(
            """
            SELECT si.item_id, si.sale_id, si.product_id, si.quantity, si.returned_quantity,
                   si.unit_price, si.total_price, p.name AS product_name
            FROM sale_items si
            JOIN products p ON p.product_id = si.product_id
            WHERE si.sale_id=?
            ORDER BY si.item_id
            """,
            (sale_id,),
        ).fetchall()
        items = []
        for r in rows:
            d = dict(r)
            d["unit_price"] = to_money(d["unit_price"])
            d["total_price"] = to_money(d["total_price"])
            item = SaleItem(**d)
            item.allocations = self.list_allocations(item.item_id)
            items.append(item)
        return items

    def list_allocations(self, item_id: int) -> list[SaleAllocation]:
        """Allocation order is the order stock was taken."""
        rows = self.conn.execute(
            """
            SELECT a.allocation_id, a.item_id, a.batch_id, a.quantity, a.returned_quantity,
                   a.unit_cost, b.batch_number
            FROM sale_item_allocations a
            JOIN batches b ON b.batch_id = a.batch_id
            WHERE a.item_id=?
            ORDER BY a.allocation_id
            """,
            (item_id,),
        ).fetchall()
        out = []
        for r in rows:
            d = dict(r)
            d["unit_cost"] = to_money(d["unit_cost"])
            out.append(SaleAllocation(**d))
        return out

    def next_number(self, company_id: int) -> str:
        start = len(SALE_PREFIX) + 1
        row = self.conn.execute(
            f"""
            SELECT MAX(CAST(SUBSTR(sale_number, {start}) AS INTEGER)) AS m
            FROM sales WHERE company_id=? AND sale_number LIKE ?
            """,
            (company_id, SALE_PREFIX + "%"),
        ).fetchone()
        used = int(row["m"]) if row and row["m"] is not None else 0
        return next_document_number(self.conn, company_id, "sale", SALE_PREFIX, used)

    # ---------------------------------------------------------------------
    # WRITE
    # ---------------------------------------------------------------------
    def create_header(
        self,
        *,
        company_id: int,
        customer_id: Optional[int],
        sale_date: str,
        total_amount: Decimal,
        paid_amount: Decimal,
        status: str,
        payment_type: str,
        notes: Optional[str] = None,
    ) -> int:
        cur = self.conn.execute(
            """
            INSERT INTO sales(company_id, sale_number, customer_id, sale_date, total_amount,
                              returned_amount, paid_amount, status, payment_type, notes)
            VALUES (?, ?, ?, ?, ?, '0.0000', ?, ?, ?, ?)
            """,
            (
                company_id, self.next_number(company_id), customer_id, sale_date,
                money_str(total_amount), money_str(paid_amount), status, payment_type, notes,
            ),
        )
        return int(cur.lastrowid)

    def add_item(self, sale_id: int, *, product_id: int, quantity: int, unit_price: Decimal) -> int:
        cur = self.conn.execute(
            """
            INSERT INTO sale_items(sale_id, product_id, quantity, returned_quantity, unit_price, total_price)
            VALUES (?, ?, ?, 0, ?, ?)
            """,
            (
                sale_id, product_id, quantity,
                money_str(unit_price), money_str(to_money(unit_price) * quantity),
            ),
        )
        return int(cur.lastrowid)

    def add_allocation(self, item_id: int, *, batch_id: int, quantity: int, unit_cost: Decimal) -> int:
        cur = self.conn.execute(
            """
            INSERT INTO sale_item_allocations(item_id, batch_id, quantity, returned_quantity, unit_cost)
            VALUES (?, ?, ?, 0, ?)
            """,
            (item_id, batch_id, quantity, money_str(unit_cost)),
        )
        return int(cur.lastrowid)

    def mark_returned(self, allocation_id: int, item_id: int, quantity: int) -> None:
        """Count `quantity` units of one allocation (and its line) as returned."""
        self.conn.execute(
            "UPDATE sale_item_allocations SET returned_quantity = returned_quantity + ? WHERE allocation_id=?",
            (quantity, allocation_id),
        )
        self.conn.execute(
            "UPDATE sale_items SET returned_quantity = returned_quantity + ? WHERE item_id=?",
            (quantity, item_id),
        )

    def set_postings(self, sale_id: int, *, revenue_transaction_id, cost_transaction_id) -> None:
        self.conn.execute(
            "UPDATE sales SET revenue_transaction_id=?, cost_transaction_id=? WHERE sale_id=?",
            (revenue_transaction_id, cost_transaction_id, sale_id),
        )

    def set_status(self, sale_id: int, status: str) -> None:
        self.conn.execute("UPDATE sales SET status=? WHERE sale_id=?", (status, sale_id))

    def set_paid_amount(self, sale_id: int, paid_amount: Decimal) -> None:
        self.conn.execute(
            "UPDATE sales SET paid_amount=? WHERE sale_id=?", (money_str(paid_amount), sale_id)
        )

    def set_returned_amount(self, sale_id: int, returned_amount: Decimal) -> None:
        self.conn.execute(
            "UPDATE sales SET returned_amount=? WHERE sale_id=?",
            (money_str(returned_amount), sale_id),
        )

    def record_return(
        self,
        sale_id: int,
        *,
        kind: str,
        amount: Decimal,
        cost_amount: Decimal,
        return_date: str,
        lines: Iterable[tuple[int, int]],
        notes: Optional[str] = None,
    ) -> int:
        """One sale_returns row plus (allocation_id, quantity) lines."""
        cur = self.conn.execute(
            """
            INSERT INTO sale_returns(sale_id, return_date, kind, amount, cost_amount, notes)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (sale_id, return_date, kind, money_str(amount), money_str(cost_amount), notes),
        )
        return_id = int(cur.lastrowid)
        self.conn.executemany(
            "INSERT INTO sale_return_items(return_id, allocation_id, quantity) VALUES (?, ?, ?)",
            [(return_id, allocation_id, qty) for allocation_id, qty in lines],
        )
        return return_id

    def list_returns(self, sale_id: int) -> list[dict]:
        rows = self.conn.execute(
            """
            SELECT return_id, sale_id, return_date, kind, amount, cost_amount, notes
            FROM sale_returns WHERE sale_id=? ORDER BY return_id
            """,
            (sale_id,),
        ).fetchall()
        out = []
        for r in rows:
            d = dict(r)
            d["amount"] = to_money(d["amount"])
            d["cost_amount"] = to_money(d["cost_amount"])
            out.append(d)
        return out

    def delete(self, sale_id: int) -> None:
        """Lines, allocations, payments and return records cascade."""
        self.conn.execute("DELETE FROM sales WHERE sale_id=?", (sale_id,))
