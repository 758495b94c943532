"""
modules/ledger/ledger.py

The account ledger: every balance change is a two-account transaction, and
the cached balances of both accounts move in the same database transaction
as the row that explains them.

Sign convention:
  asset / expense                  -> debit increases, credit decreases
  liability / equity / income      -> credit increases, debit decreases
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
import sqlite3
from typing import Iterable, Optional

from ...database import transaction
from ...database.repositories.accounts_repo import AccountsRepo, balance_effect
from ...database.repositories.transactions_repo import LedgerTransaction, TransactionsRepo
from ...errors import UnbalancedPosting, ValidationError
from ...utils.helpers import iso_date, today_str
from ...utils.loggers import get_logger
from ...utils.money import ZERO, to_money
from ...utils.validators import non_empty
from .reconciliation import recalculate_account_balances

_log = get_logger(__name__)


@dataclass
class TrialBalanceLine:
    account_id: int
    code: str
    name: str
    type: str
    debit_total: Decimal
    credit_total: Decimal
    balance: Decimal


@dataclass
class TrialBalance:
    lines: list[TrialBalanceLine]
    total_debits: Decimal
    total_credits: Decimal

    @property
    def is_balanced(self) -> bool:
        return self.total_debits == self.total_credits


def live_postings(txns: Iterable[LedgerTransaction]) -> list[LedgerTransaction]:
    """Transactions that are neither reversals nor already reversed."""
    return [t for t in txns if t.reverses_transaction_id is None and t.reversed_by_id is None]


class Ledger:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.accounts = AccountsRepo(conn)
        self.transactions = TransactionsRepo(conn)

    def post(
        self,
        debit_account_id: int,
        credit_account_id: int,
        amount,
        description: str,
        date=None,
        *,
        sale_id: Optional[int] = None,
        purchase_id: Optional[int] = None,
        reverses_transaction_id: Optional[int] = None,
    ) -> LedgerTransaction:
        if debit_account_id == credit_account_id:
            raise UnbalancedPosting("Debit and credit accounts must differ")
        try:
            amount = to_money(amount)
        except ValueError as e:
            raise UnbalancedPosting(f"Posting amount is not a number: {amount!r}") from e
        if amount <= ZERO:
            raise UnbalancedPosting(f"Posting amount must be positive, got {amount}")
        if not non_empty(description):
            raise ValidationError("Transaction description is required")

        debit = self.accounts.require(debit_account_id)
        credit = self.accounts.require(credit_account_id)
        if debit.company_id != credit.company_id:
            raise UnbalancedPosting("Debit and credit accounts belong to different companies")

        with transaction(self.conn, "ledger post"):
            txn = self.transactions.insert(
                company_id=debit.company_id,
                description=description.strip(),
                amount=amount,
                transaction_date=iso_date(date, today_str()),
                debit_account_id=debit.account_id,
                credit_account_id=credit.account_id,
                sale_id=sale_id,
                purchase_id=purchase_id,
                reverses_transaction_id=reverses_transaction_id,
            )
            self.accounts.apply_delta(debit.account_id, balance_effect(debit.type, "debit", amount))
            self.accounts.apply_delta(credit.account_id, balance_effect(credit.type, "credit", amount))

        _log.debug(
            "Posted %s Dr %s / Cr %s %s", txn.transaction_number, debit.code, credit.code, amount
        )
        return txn

    def reverse(self, transaction_id: int, description: Optional[str] = None, date=None) -> LedgerTransaction:
        """
        Post the mirror image of a transaction. The original row is left as is;
        a transaction can be reversed once, and reversals are final.
        """
        original = self.transactions.require(transaction_id)
        if original.reverses_transaction_id is not None:
            raise ValidationError("A reversal cannot itself be reversed")
        if original.reversed_by_id is not None:
            raise ValidationError(f"Transaction {original.transaction_number} has already been reversed")
        return self.post(
            original.credit_account_id,
            original.debit_account_id,
            original.amount,
            description or f"Reversal of {original.transaction_number}: {original.description}",
            date,
            sale_id=original.sale_id,
            purchase_id=original.purchase_id,
            reverses_transaction_id=original.transaction_id,
        )

    def recalculate(self, company_id: int) -> int:
        """Rebuild every cached balance from history; returns accounts updated."""
        return recalculate_account_balances(self.conn, company_id).accounts_updated

    def trial_balance(self, company_id: int) -> TrialBalance:
        totals = self.transactions.side_totals(company_id)
        lines = []
        total_debits = ZERO
        total_credits = ZERO
        for acc in self.accounts.list_accounts(company_id):
            dr, cr = totals.get(acc.account_id, (ZERO, ZERO))
            total_debits += dr
            total_credits += cr
            lines.append(
                TrialBalanceLine(
                    account_id=acc.account_id,
                    code=acc.code,
                    name=acc.name,
                    type=acc.type,
                    debit_total=dr,
                    credit_total=cr,
                    balance=acc.balance,
                )
            )
        return TrialBalance(lines=lines, total_debits=total_debits, total_credits=total_credits)
