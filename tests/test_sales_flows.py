# tests/test_sales_flows.py
from __future__ import annotations

from decimal import Decimal

import pytest

from inventory_ledger.database.repositories.sales_repo import SalesRepo
from inventory_ledger.database.repositories.transactions_repo import TransactionsRepo
from inventory_ledger.errors import InsufficientStock, NotFoundError, ValidationError
from inventory_ledger.modules.ledger.ledger import Ledger
from inventory_ledger.modules.ledger.posting import PostingEngine
from inventory_ledger.modules.sales.controller import SalesController


# --------------------------- helpers ---------------------------

def _sell(conn, ids, qty=7, price="20", payment_type="cash", line=None, **kw):
    raw = {"product_id": ids["prod_A"], "quantity": qty, "unit_price": price, **(line or {})}
    return SalesController(conn).create_sale(
        ids["company_id"], [raw], customer_id=ids["customer_id"], payment_type=payment_type, **kw
    )


def _assert_balanced(conn, ids):
    assert Ledger(conn).trial_balance(ids["company_id"]).is_balanced


# --------------------------- create ---------------------------

def test_cash_sale_allocates_fifo_and_posts_cost(conn, stocked, balance, available):
    detail = _sell(conn, stocked, sale_date="2024-06-01")
    h = detail.header

    assert h.sale_number == "SALE-0001"
    assert h.total_amount == Decimal("140")
    assert h.paid_amount == Decimal("140")
    assert h.remaining_balance == Decimal("0")
    assert h.customer_name == "Customer Y"
    assert h.status == "completed"

    [item] = detail.items
    assert [(a.batch_id, a.quantity, a.unit_cost) for a in item.allocations] == [
        (stocked["B1"], 5, Decimal("10")),
        (stocked["B2"], 2, Decimal("12")),
    ]
    assert available(stocked["B1"]) == 0
    assert available(stocked["B2"]) == 3

    assert balance("1000") == Decimal("140")
    assert balance("4000") == Decimal("140")
    assert balance("5000") == Decimal("74")
    assert balance("1200") == Decimal("36")
    _assert_balanced(conn, stocked)


def test_cod_sale_goes_to_receivable(conn, stocked, balance):
    detail = _sell(conn, stocked, qty=2, price="15", payment_type="cod")
    assert detail.header.paid_amount == Decimal("0")
    assert detail.header.remaining_balance == Decimal("30")
    assert balance("1100") == Decimal("30")
    assert balance("1000") == Decimal("0")


def test_sale_from_named_batch(conn, stocked, available):
    detail = _sell(conn, stocked, qty=2, line={"batch_id": stocked["B2"]})
    assert [(a.batch_id, a.quantity) for a in detail.items[0].allocations] == [(stocked["B2"], 2)]
    assert available(stocked["B1"]) == 5
    assert available(stocked["B2"]) == 3


def test_sale_split_across_named_batches(conn, stocked, available):
    detail = _sell(
        conn, stocked, qty=4,
        line={"batches": [{"batch_id": stocked["B2"], "quantity": 3}, {"batch_id": stocked["B1"], "quantity": 1}]},
    )
    assert sorted((a.batch_id, a.quantity) for a in detail.items[0].allocations) == sorted(
        [(stocked["B2"], 3), (stocked["B1"], 1)]
    )
    assert available(stocked["B1"]) == 4
    assert available(stocked["B2"]) == 2


def test_insufficient_stock_leaves_no_trace(conn, stocked, balance, available):
    with pytest.raises(InsufficientStock, match="Available: 10, Requested: 11"):
        _sell(conn, stocked, qty=11)
    assert SalesRepo(conn).list_sales(stocked["company_id"]) == []
    assert available(stocked["B1"]) == 5
    assert balance("4000") == Decimal("0")


def test_second_line_failure_rolls_back_first(conn, stocked, available):
    with pytest.raises(InsufficientStock):
        SalesController(conn).create_sale(
            stocked["company_id"],
            [
                {"product_id": stocked["prod_A"], "quantity": 3, "unit_price": "20"},
                {"product_id": stocked["prod_B"], "quantity": 1, "unit_price": "20"},
            ],
        )
    assert available(stocked["B1"]) == 5
    assert SalesRepo(conn).list_sales(stocked["company_id"]) == []


def test_posting_failure_rolls_back_stock(conn, stocked, balance, available, monkeypatch):
    def boom(self, header):
        raise RuntimeError("ledger unavailable")

    monkeypatch.setattr(PostingEngine, "sale", boom)
    with pytest.raises(RuntimeError):
        _sell(conn, stocked)

    assert available(stocked["B1"]) == 5
    assert available(stocked["B2"]) == 5
    assert SalesRepo(conn).list_sales(stocked["company_id"]) == []
    assert TransactionsRepo(conn).count(stocked["company_id"]) == 2


@pytest.mark.parametrize(
    "line, message",
    [
        ({"quantity": 0}, "quantity must be a whole number"),
        ({"unit_price": "-1"}, "unit price cannot be negative"),
        ({"product_id": 999}, "Product not found"),
        ({"product_id": "abc"}, "product is required"),
        ({"batch_id": "abc"}, "batch must be a whole number"),
        ({"batches": [{"batch_id": "B1", "quantity": 1}]}, "batch must be a whole number"),
    ],
)
def test_invalid_sale_lines(conn, stocked, line, message):
    raw = {"product_id": stocked["prod_A"], "quantity": 1, "unit_price": "5", **line}
    with pytest.raises((ValidationError, NotFoundError), match=message):
        SalesController(conn).create_sale(stocked["company_id"], [raw])


def test_unknown_payment_type(conn, stocked):
    with pytest.raises(ValidationError, match="Payment type must be one of: cash, bank, cod"):
        _sell(conn, stocked, payment_type="credit")


# --------------------------- payments ---------------------------

def test_cod_payments_settle_receivable(conn, stocked, balance):
    ctrl = SalesController(conn)
    sid = _sell(conn, stocked, qty=2, price="15", payment_type="cod").header.sale_id

    detail = ctrl.add_sale_payment(sid, "10", "bank")
    assert detail.header.remaining_balance == Decimal("20")
    assert balance("1050") == Decimal("10")
    assert balance("1100") == Decimal("20")
    assert detail.payments[0].transaction_id is not None

    with pytest.raises(ValidationError, match=r"cannot exceed remaining balance \(20.00\)"):
        ctrl.add_sale_payment(sid, "20.01", "cash")


def test_paid_sale_takes_no_more_payments(conn, stocked):
    sid = _sell(conn, stocked, qty=1).header.sale_id
    with pytest.raises(ValidationError, match="cannot exceed"):
        SalesController(conn).add_sale_payment(sid, "1", "cash")


# --------------------------- status ---------------------------

def test_in_progress_sale_must_be_completed_before_return(conn, stocked):
    ctrl = SalesController(conn)
    sid = _sell(conn, stocked, qty=1, status="in_progress").header.sale_id
    with pytest.raises(ValidationError, match="from in_progress to returned"):
        ctrl.return_sale(sid)
    assert ctrl.complete_sale(sid).header.status == "completed"
    assert ctrl.return_sale(sid).header.status == "returned"


def test_sale_cannot_be_created_as_returned(conn, stocked):
    with pytest.raises(ValidationError, match="cannot be created as returned"):
        _sell(conn, stocked, qty=1, status="returned")


# --------------------------- full return ---------------------------

def test_full_return_restores_batches_and_ledger(conn, stocked, balance, available):
    ctrl = SalesController(conn)
    detail = _sell(conn, stocked)
    h = detail.header

    returned = ctrl.return_sale(h.sale_id, notes="damaged")

    assert returned.header.status == "returned"
    assert returned.header.returned_amount == Decimal("140")
    assert returned.header.paid_amount == Decimal("0")
    assert returned.header.remaining_balance == Decimal("0")
    assert available(stocked["B1"]) == 5
    assert available(stocked["B2"]) == 5
    for code in ("1000", "4000", "5000"):
        assert balance(code) == Decimal("0")
    assert balance("1200") == Decimal("110")

    # equal and opposite entries for revenue and cost
    txns = TransactionsRepo(conn).list_for_sale(h.sale_id)
    reversals = {t.reverses_transaction_id: t for t in txns if t.reverses_transaction_id}
    assert set(reversals) == {h.revenue_transaction_id, h.cost_transaction_id}
    for original_id, rev in reversals.items():
        original = next(t for t in txns if t.transaction_id == original_id)
        assert (rev.debit_account_id, rev.credit_account_id, rev.amount) == (
            original.credit_account_id, original.debit_account_id, original.amount,
        )
    assert returned.returns[0]["kind"] == "full"
    assert returned.returns[0]["cost_amount"] == Decimal("74")
    _assert_balanced(conn, stocked)


def test_returned_sale_is_final(conn, stocked):
    ctrl = SalesController(conn)
    sid = _sell(conn, stocked, qty=1).header.sale_id
    ctrl.return_sale(sid)
    with pytest.raises(ValidationError, match="from returned to returned"):
        ctrl.return_sale(sid)
    items = ctrl.get_sale(sid).items
    with pytest.raises(ValidationError, match="from returned to partial_return"):
        ctrl.partial_return(sid, [{"item_id": items[0].item_id, "quantity": 1}])


def test_full_return_of_cod_sale_refunds_payments(conn, stocked, balance):
    ctrl = SalesController(conn)
    sid = _sell(conn, stocked, qty=2, price="15", payment_type="cod").header.sale_id
    ctrl.add_sale_payment(sid, "10", "cash")

    detail = ctrl.return_sale(sid)

    assert detail.header.paid_amount == Decimal("0")
    for code in ("1000", "1100", "4000", "5000"):
        assert balance(code) == Decimal("0")
    _assert_balanced(conn, stocked)


# --------------------------- partial return ---------------------------

def test_partial_return_on_cod_sale(conn, stocked, balance, available):
    ctrl = SalesController(conn)
    detail = _sell(conn, stocked, qty=10, price="10", payment_type="cod")
    sid = detail.header.sale_id
    item_id = detail.items[0].item_id

    after = ctrl.partial_return(sid, [{"item_id": item_id, "quantity": 3}])

    assert after.header.status == "partial_return"
    assert after.header.returned_amount == Decimal("30")
    assert after.header.remaining_balance == Decimal("70")
    assert after.items[0].returned_quantity == 3
    # newest allocation goes back first
    assert available(stocked["B1"]) == 0
    assert available(stocked["B2"]) == 3
    assert balance("1100") == Decimal("70")
    assert balance("4000") == Decimal("70")
    assert balance("5000") == Decimal("74")
    assert balance("1200") == Decimal("36")
    _assert_balanced(conn, stocked)


def test_partial_return_to_named_batch(conn, stocked, available):
    ctrl = SalesController(conn)
    detail = _sell(conn, stocked, qty=7)
    item_id = detail.items[0].item_id
    ctrl.partial_return(detail.header.sale_id, [{"item_id": item_id, "quantity": 2, "batch_id": stocked["B1"]}])
    assert available(stocked["B1"]) == 2
    assert available(stocked["B2"]) == 3


def test_partial_return_on_cash_sale_reduces_paid(conn, stocked, balance):
    ctrl = SalesController(conn)
    detail = _sell(conn, stocked, qty=7)
    after = ctrl.partial_return(detail.header.sale_id, [{"item_id": detail.items[0].item_id, "quantity": 2}])
    assert after.header.paid_amount == Decimal("100")
    assert after.header.remaining_balance == Decimal("0")
    assert balance("1000") == Decimal("100")


def test_cannot_return_more_than_sold(conn, stocked, available):
    ctrl = SalesController(conn)
    detail = _sell(conn, stocked, qty=7)
    item_id = detail.items[0].item_id
    ctrl.partial_return(detail.header.sale_id, [{"item_id": item_id, "quantity": 5}])
    with pytest.raises(ValidationError, match="Cannot return 3 of Widget A: only 2 returnable"):
        ctrl.partial_return(detail.header.sale_id, [{"item_id": item_id, "quantity": 3}])
    assert available(stocked["B1"]) + available(stocked["B2"]) == 8


def test_partial_return_checks_named_batch(conn, stocked):
    ctrl = SalesController(conn)
    detail = _sell(conn, stocked, qty=2)
    with pytest.raises(ValidationError, match="not supplied from that batch"):
        ctrl.partial_return(
            detail.header.sale_id,
            [{"item_id": detail.items[0].item_id, "quantity": 1, "batch_id": stocked["B2"]}],
        )
    with pytest.raises(ValidationError, match="Line 1: batch must be a whole number"):
        ctrl.partial_return(
            detail.header.sale_id,
            [{"item_id": detail.items[0].item_id, "quantity": 1, "batch_id": "abc"}],
        )


def test_partial_returns_until_nothing_is_left(conn, stocked, balance, available):
    ctrl = SalesController(conn)
    detail = _sell(conn, stocked, qty=10, price="10", payment_type="cod")
    sid, item_id = detail.header.sale_id, detail.items[0].item_id
    ctrl.partial_return(sid, [{"item_id": item_id, "quantity": 3}])
    ctrl.add_sale_payment(sid, "70", "cash")

    final = ctrl.partial_return(sid, [{"item_id": item_id, "quantity": 7}])

    assert final.header.status == "returned"
    assert final.header.returned_amount == Decimal("100")
    assert final.header.paid_amount == Decimal("0")
    assert available(stocked["B1"]) == 5
    assert available(stocked["B2"]) == 5
    for code in ("1000", "1100", "4000", "5000"):
        assert balance(code) == Decimal("0")
    assert balance("1200") == Decimal("110")
    _assert_balanced(conn, stocked)


def test_return_rest_after_partial(conn, stocked, balance):
    ctrl = SalesController(conn)
    detail = _sell(conn, stocked, qty=7)
    ctrl.partial_return(detail.header.sale_id, [{"item_id": detail.items[0].item_id, "quantity": 2}])

    final = ctrl.return_sale(detail.header.sale_id)

    assert final.header.status == "returned"
    assert [r["kind"] for r in final.returns] == ["partial", "full"]
    assert final.returns[1]["amount"] == Decimal("100")
    assert balance("1000") == Decimal("0")
    assert balance("1200") == Decimal("110")


# --------------------------- delete ---------------------------

def test_delete_sale_restores_stock_and_ledger(conn, stocked, balance, available):
    ctrl = SalesController(conn)
    detail = _sell(conn, stocked, qty=7, payment_type="cod")
    sid = detail.header.sale_id
    ctrl.add_sale_payment(sid, "40", "cash")
    ctrl.partial_return(sid, [{"item_id": detail.items[0].item_id, "quantity": 1}])

    ctrl.delete_sale(sid)

    with pytest.raises(NotFoundError):
        ctrl.get_sale(sid)
    assert available(stocked["B1"]) == 5
    assert available(stocked["B2"]) == 5
    for code in ("1000", "1100", "4000", "5000"):
        assert balance(code) == Decimal("0")
    assert balance("1200") == Decimal("110")
    txns = TransactionsRepo(conn).list_transactions(stocked["company_id"])
    assert all(t.sale_id is None for t in txns)
    _assert_balanced(conn, stocked)


def test_deleted_sale_number_is_not_reused(conn, stocked):
    ctrl = SalesController(conn)
    _sell(conn, stocked, qty=1)
    second = _sell(conn, stocked, qty=1)
    ctrl.delete_sale(second.header.sale_id)

    third = _sell(conn, stocked, qty=1)
    assert third.header.sale_number == "SALE-0003"
