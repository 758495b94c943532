# tests/test_ledger.py
from __future__ import annotations

from decimal import Decimal
import sqlite3

import pytest

from inventory_ledger.database import transaction
from inventory_ledger.database.repositories.accounts_repo import AccountsRepo, balance_effect
from inventory_ledger.database.repositories.companies_repo import CompaniesRepo
from inventory_ledger.database.repositories.transactions_repo import TransactionsRepo
from inventory_ledger.errors import UnbalancedPosting, ValidationError
from inventory_ledger.modules.ledger.ledger import Ledger
from inventory_ledger.modules.ledger.reconciliation import recalculate_account_balances


def _acc(conn, ids, code):
    return AccountsRepo(conn).get_by_code(ids["company_id"], code)


@pytest.mark.parametrize(
    "account_type, side, expected",
    [
        ("asset", "debit", Decimal("5")),
        ("asset", "credit", Decimal("-5")),
        ("expense", "debit", Decimal("5")),
        ("liability", "credit", Decimal("5")),
        ("equity", "debit", Decimal("-5")),
        ("income", "credit", Decimal("5")),
    ],
)
def test_balance_effect_follows_normal_side(account_type, side, expected):
    assert balance_effect(account_type, side, Decimal("5")) == expected


def test_post_moves_both_balances(conn, ids, balance):
    ledger = Ledger(conn)
    txn = ledger.post(
        _acc(conn, ids, "1000").account_id, _acc(conn, ids, "3000").account_id,
        "250.50", "Owner investment", "2024-03-01",
    )
    assert txn.transaction_number == "TXN-0001"
    assert txn.amount == Decimal("250.5")
    assert txn.transaction_date == "2024-03-01"
    assert balance("1000") == Decimal("250.50")
    assert balance("3000") == Decimal("250.50")


def test_transaction_numbers_increase(conn, ids):
    ledger = Ledger(conn)
    cash, equity = _acc(conn, ids, "1000").account_id, _acc(conn, ids, "3000").account_id
    numbers = [ledger.post(cash, equity, 1, f"Deposit {i}").transaction_number for i in range(3)]
    assert numbers == ["TXN-0001", "TXN-0002", "TXN-0003"]


@pytest.mark.parametrize("amount", [0, -10, "abc"])
def test_post_rejects_non_positive_amounts(conn, ids, amount, balance):
    cash, equity = _acc(conn, ids, "1000").account_id, _acc(conn, ids, "3000").account_id
    with pytest.raises(UnbalancedPosting):
        Ledger(conn).post(cash, equity, amount, "Bad")
    assert balance("1000") == Decimal("0")


def test_post_rejects_same_account(conn, ids):
    cash = _acc(conn, ids, "1000").account_id
    with pytest.raises(UnbalancedPosting):
        Ledger(conn).post(cash, cash, 10, "Self")


def test_post_rejects_accounts_of_different_companies(conn, ids):
    with transaction(conn, "second company"):
        other = CompaniesRepo(conn).create("Other Co")
    foreign = AccountsRepo(conn).get_by_code(other, "3000").account_id
    with pytest.raises(UnbalancedPosting):
        Ledger(conn).post(_acc(conn, ids, "1000").account_id, foreign, 10, "Cross")
    assert TransactionsRepo(conn).count(ids["company_id"]) == 0


def test_reverse_restores_balances(conn, ids, balance):
    ledger = Ledger(conn)
    txn = ledger.post(_acc(conn, ids, "1000").account_id, _acc(conn, ids, "4100").account_id, 40, "Misc")
    rev = ledger.reverse(txn.transaction_id)

    assert rev.reverses_transaction_id == txn.transaction_id
    assert rev.debit_account_id == txn.credit_account_id
    assert rev.credit_account_id == txn.debit_account_id
    assert rev.amount == txn.amount
    assert balance("1000") == Decimal("0")
    assert balance("4100") == Decimal("0")
    assert TransactionsRepo(conn).require(txn.transaction_id).reversed_by_id == rev.transaction_id


def test_reverse_only_once_and_never_a_reversal(conn, ids):
    ledger = Ledger(conn)
    txn = ledger.post(_acc(conn, ids, "1000").account_id, _acc(conn, ids, "4100").account_id, 40, "Misc")
    rev = ledger.reverse(txn.transaction_id)
    with pytest.raises(ValidationError, match="already been reversed"):
        ledger.reverse(txn.transaction_id)
    with pytest.raises(ValidationError, match="cannot itself be reversed"):
        ledger.reverse(rev.transaction_id)


def test_transactions_are_append_only(conn, ids):
    txn = Ledger(conn).post(_acc(conn, ids, "1000").account_id, _acc(conn, ids, "4100").account_id, 40, "Misc")
    with pytest.raises(sqlite3.IntegrityError, match="immutable"):
        conn.execute("UPDATE transactions SET amount='1.0000' WHERE transaction_id=?", (txn.transaction_id,))
    with pytest.raises(sqlite3.IntegrityError, match="immutable"):
        conn.execute("DELETE FROM transactions WHERE transaction_id=?", (txn.transaction_id,))


def test_trial_balance_is_balanced(conn, stocked):
    tb = Ledger(conn).trial_balance(stocked["company_id"])
    assert tb.is_balanced
    assert tb.total_debits == Decimal("110")
    inventory = next(l for l in tb.lines if l.code == "1200")
    assert (inventory.debit_total, inventory.credit_total, inventory.balance) == (
        Decimal("110"), Decimal("0"), Decimal("110"),
    )


def test_recalculate_is_idempotent(conn, stocked, balance):
    first = recalculate_account_balances(conn, stocked["company_id"])
    snapshot = [(a.code, a.balance) for a in AccountsRepo(conn).list_accounts(stocked["company_id"])]
    second = recalculate_account_balances(conn, stocked["company_id"])

    assert first.transactions_replayed == second.transactions_replayed == 2
    assert first.accounts_updated == 11
    assert snapshot == [(a.code, a.balance) for a in AccountsRepo(conn).list_accounts(stocked["company_id"])]
    assert "11 accounts" in second.message


def test_recalculate_repairs_drift(conn, stocked, balance):
    inventory = _acc(conn, stocked, "1200")
    conn.execute("UPDATE accounts SET balance='999.0000' WHERE account_id=?", (inventory.account_id,))
    assert balance("1200") == Decimal("999")

    seen = []
    recalculate_account_balances(conn, stocked["company_id"], progress=lambda d, t: seen.append((d, t)), chunk_size=1)

    assert balance("1200") == Decimal("110")
    assert balance("3000") == Decimal("110")
    assert seen == [(1, 2), (2, 2)]


def test_recalculate_on_empty_ledger_zeroes_balances(conn, ids, balance):
    conn.execute(
        "UPDATE accounts SET balance='5.0000' WHERE company_id=? AND code='1000'", (ids["company_id"],)
    )
    result = recalculate_account_balances(conn, ids["company_id"])
    assert result.transactions_replayed == 0
    assert balance("1000") == Decimal("0")
