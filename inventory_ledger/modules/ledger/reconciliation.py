"""
modules/ledger/reconciliation.py

"Recalculate Balances": replay the full transaction history of one company
and replace every cached account balance.

- Runs under the company lock inside one write transaction, so no posting
  interleaves and a failure leaves the previous balances untouched.
- History is read in chunks; progress is reported through an optional
  callback and structured log events.
- Idempotent: a second run over the same history writes the same numbers.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
import sqlite3
import time
from typing import Callable, Optional

from ...database import transaction
from ...database.repositories.accounts_repo import AccountsRepo, balance_effect
from ...database.repositories.companies_repo import CompaniesRepo
from ...database.repositories.transactions_repo import TransactionsRepo
from ...errors import InvariantViolation
from ...utils.locks import company_lock
from ...utils.loggers import get_event_logger, get_logger, log_event
from ...utils.money import to_money

_log = get_logger(__name__)

ProgressCallback = Callable[[int, int], None]


@dataclass
class RecalculationResult:
    company_id: int
    accounts_updated: int
    transactions_replayed: int

    @property
    def message(self) -> str:
        return (
            f"Recalculated balances for {self.accounts_updated} accounts "
            f"from {self.transactions_replayed} transactions"
        )


def recalculate_account_balances(
    conn: sqlite3.Connection,
    company_id: int,
    progress: Optional[ProgressCallback] = None,
    chunk_size: int = 500,
) -> RecalculationResult:
    CompaniesRepo(conn).require(company_id)
    events = get_event_logger()
    accounts_repo = AccountsRepo(conn)
    txns_repo = TransactionsRepo(conn)
    started = time.monotonic()

    with company_lock(company_id), transaction(conn, f"recalculate company {company_id}"):
        accounts = accounts_repo.list_accounts(company_id)
        types = {a.account_id: a.type for a in accounts}
        balances: dict[int, Decimal] = {a.account_id: Decimal(0) for a in accounts}
        total = txns_repo.count(company_id)
        log_event(events, "recalculate", "start", "Replaying ledger",
                  {"company_id": company_id, "accounts": len(accounts), "transactions": total})

        replayed = 0
        for chunk in txns_repo.iter_replay_chunks(company_id, chunk_size):
            for r in chunk:
                amount = to_money(r["amount"])
                debit_id = r["debit_account_id"]
                credit_id = r["credit_account_id"]
                if debit_id not in balances or credit_id not in balances:
                    raise InvariantViolation(
                        f"Transaction {r['transaction_id']} references an account outside company {company_id}"
                    )
                balances[debit_id] += balance_effect(types[debit_id], "debit", amount)
                balances[credit_id] += balance_effect(types[credit_id], "credit", amount)
            replayed += len(chunk)
            if progress is not None:
                progress(replayed, total)
            log_event(events, "recalculate", "chunk", "Replayed chunk",
                      {"company_id": company_id, "replayed": replayed, "total": total})

        for account_id, balance in balances.items():
            accounts_repo.set_balance(account_id, balance)

    result = RecalculationResult(
        company_id=company_id,
        accounts_updated=len(balances),
        transactions_replayed=replayed,
    )
    log_event(events, "recalculate", "done", result.message,
              {"company_id": company_id, "seconds": round(time.monotonic() - started, 3)})
    _log.info("Company %s: %s", company_id, result.message)
    return result
