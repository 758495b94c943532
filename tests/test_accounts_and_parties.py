# tests/test_accounts_and_parties.py
from __future__ import annotations

from decimal import Decimal

import pytest

from inventory_ledger.database import transaction
from inventory_ledger.database.seeders.default_data import seed_chart_of_accounts
from inventory_ledger.errors import NotFoundError, ValidationError
from inventory_ledger.modules.ledger.controller import AccountsController
from inventory_ledger.modules.parties.controller import PartiesController
from inventory_ledger.modules.purchase.controller import PurchaseController
from inventory_ledger.modules.sales.controller import SalesController


# --------------------------- chart of accounts ---------------------------

def test_company_gets_default_chart(conn, ids):
    accounts = AccountsController(conn).list_accounts(ids["company_id"])
    assert [a.code for a in accounts] == [
        "1000", "1050", "1100", "1200", "2000", "3000", "3100", "4000", "4100", "5000", "6000",
    ]
    by_code = {a.code: a for a in accounts}
    assert by_code["3100"].parent_id == by_code["3000"].account_id
    assert all(a.balance == Decimal("0") for a in accounts)


def test_seeding_twice_adds_nothing(conn, ids):
    with transaction(conn, "reseed"):
        assert seed_chart_of_accounts(conn, ids["company_id"]) == 0


def test_create_account_validations(conn, ids):
    ctrl = AccountsController(conn)
    acc = ctrl.create_account(ids["company_id"], "6100", "Rent", "Expense", description="office")
    assert (acc.type, acc.balance) == ("expense", Decimal("0"))

    with pytest.raises(ValidationError, match="Account code 6100 already exists"):
        ctrl.create_account(ids["company_id"], "6100", "Rent again", "expense")
    with pytest.raises(ValidationError, match="Account type must be one of"):
        ctrl.create_account(ids["company_id"], "6200", "Odd", "revenue")
    with pytest.raises(ValidationError, match="Account name is required"):
        ctrl.create_account(ids["company_id"], "6200", "  ", "expense")


def test_account_hierarchy_rejects_cycles(conn, ids):
    ctrl = AccountsController(conn)
    parent = ctrl.create_account(ids["company_id"], "6100", "Premises", "expense")
    child = ctrl.create_account(ids["company_id"], "6110", "Rent", "expense", parent_id=parent.account_id)
    with pytest.raises(ValidationError, match="cycles"):
        ctrl.update_account(parent.account_id, parent_id=child.account_id)
    assert ctrl.update_account(child.account_id, parent_id=None).parent_id is None


def test_account_type_locked_once_posted(conn, stocked):
    ctrl = AccountsController(conn)
    inventory = next(a for a in ctrl.list_accounts(stocked["company_id"]) if a.code == "1200")
    with pytest.raises(ValidationError, match="cannot change once the account has postings"):
        ctrl.update_account(inventory.account_id, type="expense")
    assert ctrl.update_account(inventory.account_id, name="Stock on hand").name == "Stock on hand"


def test_account_delete_rules(conn, stocked):
    ctrl = AccountsController(conn)
    by_code = {a.code: a for a in ctrl.list_accounts(stocked["company_id"])}
    with pytest.raises(ValidationError, match="has transactions"):
        ctrl.delete_account(by_code["1200"].account_id)
    ctrl.create_account(stocked["company_id"], "6100", "Rent", "expense", parent_id=by_code["6000"].account_id)
    with pytest.raises(ValidationError, match="sub-accounts"):
        ctrl.delete_account(by_code["6000"].account_id)
    ctrl.delete_account(by_code["4100"].account_id)
    with pytest.raises(NotFoundError):
        ctrl.get_account(by_code["4100"].account_id)


def test_manual_reversal_through_controller(conn, stocked):
    ctrl = AccountsController(conn)
    txn = ctrl.list_transactions(stocked["company_id"])[-1]
    rev = ctrl.reverse_transaction(txn.transaction_id, "Entered twice")
    assert rev.description == "Entered twice"
    assert ctrl.trial_balance(stocked["company_id"]).is_balanced
    assert ctrl.list_transactions(stocked["company_id"])[0].transaction_id == rev.transaction_id


# --------------------------- parties ---------------------------

def test_customer_summary_nets_returns(conn, stocked):
    sales = SalesController(conn)
    parties = PartiesController(conn)
    d1 = sales.create_sale(
        stocked["company_id"], [{"product_id": stocked["prod_A"], "quantity": 3, "unit_price": "10"}],
        customer_id=stocked["customer_id"], payment_type="cod",
    )
    sales.create_sale(
        stocked["company_id"], [{"product_id": stocked["prod_A"], "quantity": 1, "unit_price": "10"}],
        customer_id=stocked["customer_id"], payment_type="cash",
    )
    sales.partial_return(d1.header.sale_id, [{"item_id": d1.items[0].item_id, "quantity": 1}])

    summary = parties.get_customer(stocked["customer_id"])
    assert summary.sales_count == 2
    assert summary.total_amount == Decimal("30")
    assert summary.paid_amount == Decimal("10")
    assert summary.remaining_balance == Decimal("20")
    assert summary.customer.area_code == "042"


def test_vendor_summary_skips_cancelled(conn, ids):
    purchases = PurchaseController(conn)
    line = {"product_id": ids["prod_A"], "quantity": 2, "unit_price": "5"}
    purchases.create_purchase(ids["company_id"], ids["vendor_id"], [line], payment_type="credit")
    pending = purchases.create_purchase(
        ids["company_id"], ids["vendor_id"], [line], payment_type="credit", status="pending"
    )
    purchases.cancel_purchase(pending.header.purchase_id)

    [summary] = PartiesController(conn).list_vendors(ids["company_id"])
    assert summary.purchases_count == 1
    assert summary.total_amount == Decimal("10")
    assert summary.remaining_balance == Decimal("10")


def test_party_update_and_delete(conn, ids):
    parties = PartiesController(conn)
    updated = parties.update_customer(ids["customer_id"], phone="555-0199", unknown="ignored")
    assert (updated.customer.name, updated.customer.phone) == ("Customer Y", "555-0199")

    with pytest.raises(ValidationError, match="Customer name is required"):
        parties.update_customer(ids["customer_id"], name=" ")

    v = parties.create_vendor(ids["company_id"], "Vendor Z")
    parties.delete_vendor(v.vendor.vendor_id)
    assert [s.vendor.name for s in parties.list_vendors(ids["company_id"])] == ["Vendor X"]


def test_party_delete_refused_with_documents(conn, stocked):
    SalesController(conn).create_sale(
        stocked["company_id"], [{"product_id": stocked["prod_A"], "quantity": 1, "unit_price": "1"}],
        customer_id=stocked["customer_id"],
    )
    with pytest.raises(ValidationError, match="existing sales"):
        PartiesController(conn).delete_customer(stocked["customer_id"])
