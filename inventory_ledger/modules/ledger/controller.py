"""
modules/ledger/controller.py

Chart-of-accounts maintenance and ledger queries. Each write runs as one
transaction under the company lock.
"""
from __future__ import annotations

import sqlite3
from typing import Optional

from ...database import transaction
from ...database.repositories.accounts_repo import Account, AccountsRepo
from ...database.repositories.companies_repo import CompaniesRepo
from ...database.repositories.transactions_repo import LedgerTransaction, TransactionsRepo
from ...utils.locks import company_lock
from ...utils.loggers import get_logger
from .ledger import Ledger, TrialBalance
from .reconciliation import RecalculationResult, recalculate_account_balances

_log = get_logger(__name__)


class AccountsController:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.repo = AccountsRepo(conn)
        self.transactions = TransactionsRepo(conn)
        self.companies = CompaniesRepo(conn)
        self.ledger = Ledger(conn)

    # ---- accounts ----
    def list_accounts(self, company_id: int) -> list[Account]:
        return self.repo.list_accounts(company_id)

    def get_account(self, account_id: int) -> Account:
        return self.repo.require(account_id)

    def create_account(
        self,
        company_id: int,
        code: str,
        name: str,
        type: str,
        parent_id: Optional[int] = None,
        description: Optional[str] = None,
    ) -> Account:
        self.companies.require(company_id)
        with company_lock(company_id), transaction(self.conn, "create account"):
            account_id = self.repo.create(company_id, code, name, type, parent_id, description)
        _log.info("Created account %s %s for company %s", code, name, company_id)
        return self.repo.require(account_id)

    def update_account(self, account_id: int, **changes) -> Account:
        acc = self.repo.require(account_id)
        with company_lock(acc.company_id), transaction(self.conn, "update account"):
            self.repo.update(account_id, **changes)
        return self.repo.require(account_id)

    def delete_account(self, account_id: int) -> None:
        acc = self.repo.require(account_id)
        with company_lock(acc.company_id), transaction(self.conn, "delete account"):
            self.repo.delete(account_id)
        _log.info("Deleted account %s %s", acc.code, acc.name)

    def recalculate(self, company_id: int, progress=None) -> RecalculationResult:
        return recalculate_account_balances(self.conn, company_id, progress)

    def trial_balance(self, company_id: int) -> TrialBalance:
        self.companies.require(company_id)
        return self.ledger.trial_balance(company_id)

    # ---- transactions ----
    def list_transactions(self, company_id: int) -> list[LedgerTransaction]:
        return self.transactions.list_transactions(company_id)

    def get_transaction(self, transaction_id: int) -> LedgerTransaction:
        return self.transactions.require(transaction_id)

    def reverse_transaction(self, transaction_id: int, description: Optional[str] = None) -> LedgerTransaction:
        original = self.transactions.require(transaction_id)
        with company_lock(original.company_id), transaction(self.conn, "reverse transaction"):
            reversal = self.ledger.reverse(transaction_id, description)
        _log.info("Reversed %s with %s", original.transaction_number, reversal.transaction_number)
        return reversal
