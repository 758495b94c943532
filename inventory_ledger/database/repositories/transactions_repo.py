# inventory_ledger/database/repositories/transactions_repo.py
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
import sqlite3
from typing import Iterator, Optional

from ...constants import TRANSACTION_PREFIX
from ...errors import NotFoundError
from ...utils.money import money_str, to_money


@dataclass
class LedgerTransaction:
    transaction_id: int | None
    company_id: int
    transaction_number: str
    description: str
    amount: Decimal
    transaction_date: str
    debit_account_id: int
    credit_account_id: int
    sale_id: int | None = None
    purchase_id: int | None = None
    reverses_transaction_id: int | None = None
    reversed_by_id: int | None = None

    @classmethod
    def from_row(cls, r: sqlite3.Row) -> "LedgerTransaction":
        keys = r.keys()
        return cls(
            transaction_id=r["transaction_id"],
            company_id=r["company_id"],
            transaction_number=r["transaction_number"],
            description=r["description"],
            amount=to_money(r["amount"]),
            transaction_date=r["transaction_date"],
            debit_account_id=r["debit_account_id"],
            credit_account_id=r["credit_account_id"],
            sale_id=r["sale_id"],
            purchase_id=r["purchase_id"],
            reverses_transaction_id=r["reverses_transaction_id"],
            reversed_by_id=r["reversed_by_id"] if "reversed_by_id" in keys else None,
        )


_SELECT = """
    SELECT t.transaction_id, t.company_id, t.transaction_number, t.description,
           t.amount, t.transaction_date, t.debit_account_id, t.credit_account_id,
           t.sale_id, t.purchase_id, t.reverses_transaction_id,
           (SELECT r.transaction_id FROM transactions r
             WHERE r.reverses_transaction_id = t.transaction_id) AS reversed_by_id
    FROM transactions t
"""


def _number_sql(column: str = "transaction_number") -> str:
    # numeric part of TXN-0001; keeps TXN-10000 after TXN-9999
    return f"CAST(SUBSTR({column}, {len(TRANSACTION_PREFIX) + 1}) AS INTEGER)"


class TransactionsRepo:
    """
    Append-only ledger rows. Rows are never updated or deleted (the schema
    enforces it); corrections are new rows that reference what they reverse.
    No commit here; caller controls the transaction boundary.
    """

    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn

    def next_number(self, company_id: int) -> str:
        row = self.conn.execute(
            f"SELECT MAX({_number_sql()}) AS m FROM transactions WHERE company_id=?",
            (company_id,),
        ).fetchone()
        last = int(row["m"]) if row and row["m"] is not None else 0
        return f"{TRANSACTION_PREFIX}{last + 1:04d}"

    def insert(
        self,
        *,
        company_id: int,
        description: str,
        amount: Decimal,
        transaction_date: str,
        debit_account_id: int,
        credit_account_id: int,
        sale_id: Optional[int] = None,
        purchase_id: Optional[int] = None,
        reverses_transaction_id: Optional[int] = None,
    ) -> LedgerTransaction:
        number = self.next_number(company_id)
        cur = self.conn.execute(
            """
            INSERT INTO transactions(
                company_id, transaction_number, description, amount, transaction_date,
                debit_account_id, credit_account_id, sale_id, purchase_id,
                reverses_transaction_id
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                company_id, number, description, money_str(amount), transaction_date,
                debit_account_id, credit_account_id, sale_id, purchase_id,
                reverses_transaction_id,
            ),
        )
        return self.require(int(cur.lastrowid))

    def get(self, transaction_id: int) -> LedgerTransaction | None:
        r = self.conn.execute(
            _SELECT + " WHERE t.transaction_id=?", (transaction_id,)
        ).fetchone()
        return LedgerTransaction.from_row(r) if r else None

    def require(self, transaction_id: int) -> LedgerTransaction:
        txn = self.get(transaction_id)
        if txn is None:
            raise NotFoundError("Transaction", transaction_id)
        return txn

    def list_transactions(self, company_id: int) -> list[LedgerTransaction]:
        """Newest first, the way the ledger screen lists them."""
        rows = self.conn.execute(
            _SELECT
            + f" WHERE t.company_id=? ORDER BY t.transaction_date DESC, {_number_sql('t.transaction_number')} DESC",
            (company_id,),
        ).fetchall()
        return [LedgerTransaction.from_row(r) for r in rows]

    def list_for_sale(self, sale_id: int) -> list[LedgerTransaction]:
        rows = self.conn.execute(
            _SELECT + " WHERE t.sale_id=? ORDER BY t.transaction_id", (sale_id,)
        ).fetchall()
        return [LedgerTransaction.from_row(r) for r in rows]

    def list_for_purchase(self, purchase_id: int) -> list[LedgerTransaction]:
        rows = self.conn.execute(
            _SELECT + " WHERE t.purchase_id=? ORDER BY t.transaction_id", (purchase_id,)
        ).fetchall()
        return [LedgerTransaction.from_row(r) for r in rows]

    def count(self, company_id: int) -> int:
        row = self.conn.execute(
            "SELECT COUNT(*) AS n FROM transactions WHERE company_id=?", (company_id,)
        ).fetchone()
        return int(row["n"])

    def iter_replay_chunks(self, company_id: int, chunk_size: int = 500) -> Iterator[list[sqlite3.Row]]:
        """
        Yield transactions in replay order (transaction_date, then number) in
        chunks of at most `chunk_size` rows.
        """
        cur = self.conn.execute(
            f"""
            SELECT transaction_id, amount, debit_account_id, credit_account_id
            FROM transactions
            WHERE company_id=?
            ORDER BY transaction_date ASC, {_number_sql()} ASC
            """,
            (company_id,),
        )
        while True:
            rows = cur.fetchmany(chunk_size)
            if not rows:
                break
            yield rows

    def side_totals(self, company_id: int) -> dict[int, tuple[Decimal, Decimal]]:
        """account_id -> (sum of debits, sum of credits) over every posting."""
        totals: dict[int, list[Decimal]] = {}
        for chunk in self.iter_replay_chunks(company_id):
            for r in chunk:
                amount = to_money(r["amount"])
                totals.setdefault(r["debit_account_id"], [Decimal(0), Decimal(0)])[0] += amount
                totals.setdefault(r["credit_account_id"], [Decimal(0), Decimal(0)])[1] += amount
        return {k: (to_money(v[0]), to_money(v[1])) for k, v in totals.items()}
