# inventory_ledger/database/repositories/accounts_repo.py
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
import sqlite3
from typing import Optional

from ...errors import NotFoundError, ValidationError
from ...utils.money import ZERO, money_str, to_money
from ...utils.validators import non_empty

ACCOUNT_TYPES: tuple[str, ...] = ("asset", "liability", "equity", "income", "expense")

# accounts whose balance grows on the debit side
DEBIT_NORMAL_TYPES: tuple[str, ...] = ("asset", "expense")

_UNSET = object()


def balance_effect(account_type: str, side: str, amount: Decimal) -> Decimal:
    """
    Signed change to an account's cached balance when `amount` is posted on
    `side` ('debit' or 'credit').
    """
    if side not in ("debit", "credit"):
        raise ValueError(f"side must be 'debit' or 'credit', got {side!r}")
    increases = (side == "debit") == (account_type in DEBIT_NORMAL_TYPES)
    return amount if increases else -amount


@dataclass
class Account:
    account_id: int | None
    company_id: int
    code: str
    name: str
    type: str
    parent_id: int | None
    balance: Decimal
    description: str | None = None

    @classmethod
    def from_row(cls, r: sqlite3.Row) -> "Account":
        return cls(
            account_id=r["account_id"],
            company_id=r["company_id"],
            code=r["code"],
            name=r["name"],
            type=r["type"],
            parent_id=r["parent_id"],
            balance=to_money(r["balance"]),
            description=r["description"],
        )


_COLUMNS = "account_id, company_id, code, name, type, parent_id, balance, description"


class AccountsRepo:
    """
    Chart of accounts. Balances are written only by the ledger and the
    recalculation job. No commit here; caller controls the transaction boundary.
    """

    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn

    # ---------------------------------------------------------------------
    # READ
    # ---------------------------------------------------------------------
    def list_accounts(self, company_id: int) -> list[Account]:
        rows = self.conn.execute(
            f"SELECT {_COLUMNS} FROM accounts WHERE company_id=? ORDER BY code",
            (company_id,),
        ).fetchall()
        return [Account.from_row(r) for r in rows]

    def get(self, account_id: int) -> Account | None:
        r = self.conn.execute(
            f"SELECT {_COLUMNS} FROM accounts WHERE account_id=?", (account_id,)
        ).fetchone()
        return Account.from_row(r) if r else None

    def require(self, account_id: int) -> Account:
        acc = self.get(account_id)
        if acc is None:
            raise NotFoundError("Account", account_id)
        return acc

    def get_by_code(self, company_id: int, code: str) -> Account | None:
        r = self.conn.execute(
            f"SELECT {_COLUMNS} FROM accounts WHERE company_id=? AND code=?",
            (company_id, code),
        ).fetchone()
        return Account.from_row(r) if r else None

    def has_postings(self, account_id: int) -> bool:
        r = self.conn.execute(
            """
            SELECT 1 FROM transactions
            WHERE debit_account_id=? OR credit_account_id=?
            LIMIT 1
            """,
            (account_id, account_id),
        ).fetchone()
        return r is not None

    def has_children(self, account_id: int) -> bool:
        r = self.conn.execute(
            "SELECT 1 FROM accounts WHERE parent_id=? LIMIT 1", (account_id,)
        ).fetchone()
        return r is not None

    # ---------------------------------------------------------------------
    # WRITE
    # ---------------------------------------------------------------------
    def create(
        self,
        company_id: int,
        code: str,
        name: str,
        type: str,
        parent_id: Optional[int] = None,
        description: Optional[str] = None,
    ) -> int:
        code = (code or "").strip()
        name = (name or "").strip()
        type = (type or "").strip().lower()
        if not non_empty(code):
            raise ValidationError("Account code is required")
        if not non_empty(name):
            raise ValidationError("Account name is required")
        if type not in ACCOUNT_TYPES:
            raise ValidationError(f"Account type must be one of: {', '.join(ACCOUNT_TYPES)}")
        if self.get_by_code(company_id, code) is not None:
            raise ValidationError(f"Account code {code} already exists")
        if parent_id is not None:
            self._check_parent(company_id, None, parent_id)

        cur = self.conn.execute(
            """
            INSERT INTO accounts(company_id, code, name, type, parent_id, balance, description)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (company_id, code, name, type, parent_id, money_str(ZERO), description),
        )
        return int(cur.lastrowid)

    def update(
        self,
        account_id: int,
        *,
        code: Optional[str] = None,
        name: Optional[str] = None,
        type: Optional[str] = None,
        parent_id=_UNSET,
        description=_UNSET,
    ) -> None:
        """
        Change descriptive fields. `balance` is not writable here.
        parent_id=None detaches the account; leaving it out keeps the parent.
        """
        acc = self.require(account_id)
        fields: dict[str, object] = {}

        if code is not None:
            code = code.strip()
            if not non_empty(code):
                raise ValidationError("Account code is required")
            other = self.get_by_code(acc.company_id, code)
            if other is not None and other.account_id != account_id:
                raise ValidationError(f"Account code {code} already exists")
            fields["code"] = code
        if name is not None:
            if not non_empty(name):
                raise ValidationError("Account name is required")
            fields["name"] = name.strip()
        if type is not None:
            type = type.strip().lower()
            if type not in ACCOUNT_TYPES:
                raise ValidationError(f"Account type must be one of: {', '.join(ACCOUNT_TYPES)}")
            if type != acc.type and self.has_postings(account_id):
                raise ValidationError("Account type cannot change once the account has postings")
            fields["type"] = type
        if parent_id is not _UNSET:
            if parent_id is not None:
                self._check_parent(acc.company_id, account_id, parent_id)
            fields["parent_id"] = parent_id
        if description is not _UNSET:
            fields["description"] = description

        if not fields:
            return
        assignments = ", ".join(f"{k}=?" for k in fields)
        self.conn.execute(
            f"UPDATE accounts SET {assignments} WHERE account_id=?",
            (*fields.values(), account_id),
        )

    def delete(self, account_id: int) -> None:
        self.require(account_id)
        if self.has_postings(account_id):
            raise ValidationError("Cannot delete an account that has transactions")
        if self.has_children(account_id):
            raise ValidationError("Cannot delete an account that has sub-accounts")
        self.conn.execute("DELETE FROM accounts WHERE account_id=?", (account_id,))

    def set_balance(self, account_id: int, balance: Decimal) -> None:
        self.conn.execute(
            "UPDATE accounts SET balance=? WHERE account_id=?",
            (money_str(balance), account_id),
        )

    def apply_delta(self, account_id: int, delta: Decimal) -> Decimal:
        """Add `delta` to the cached balance and return the new balance."""
        acc = self.require(account_id)
        new_balance = acc.balance + delta
        self.set_balance(account_id, new_balance)
        return new_balance

    # ---------------------------------------------------------------------
    # helpers
    # ---------------------------------------------------------------------
    def _check_parent(self, company_id: int, account_id: Optional[int], parent_id: int) -> None:
        parent = self.get(parent_id)
        if parent is None:
            raise NotFoundError("Parent account", parent_id)
        if parent.company_id != company_id:
            raise ValidationError("Parent account belongs to another company")
        if account_id is None:
            return
        # walk up from the proposed parent; meeting ourselves means a cycle
        seen: set[int] = set()
        cursor: Optional[int] = parent_id
        while cursor is not None and cursor not in seen:
            if cursor == account_id:
                raise ValidationError("Account hierarchy cannot contain cycles")
            seen.add(cursor)
            row = self.conn.execute(
                "SELECT parent_id FROM accounts WHERE account_id=?", (cursor,)
            ).fetchone()
            cursor = row["parent_id"] if row else None
