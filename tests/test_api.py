# tests/test_api.py
from __future__ import annotations

import pytest

from inventory_ledger.errors import OverRelease
from inventory_ledger.modules.api import GENERIC_ERROR, LedgerApi
from inventory_ledger.modules.api.serialization import normalize_payload, to_camel, to_snake
from inventory_ledger.modules.inventory.allocator import BatchAllocator
from inventory_ledger.modules.ledger.posting import PostingEngine


@pytest.fixture()
def api(conn):
    return LedgerApi(conn)


def test_key_conversion():
    assert to_camel("remaining_balance") == "remainingBalance"
    assert to_snake("paymentType") == "payment_type"
    assert to_snake("batch_id") == "batch_id"
    assert normalize_payload({"items": [{"productId": 1, "unitPrice": "2"}]}) == {
        "items": [{"product_id": 1, "unit_price": "2"}]
    }


def test_create_sale_round_trip(api, stocked):
    res = api.create_sale({
        "companyId": stocked["company_id"],
        "customerId": stocked["customer_id"],
        "paymentType": "cod",
        "items": [{"productId": stocked["prod_A"], "quantity": 3, "unitPrice": "19.99"}],
    })
    assert res["success"] is True
    sale = res["data"]
    assert sale["saleNumber"] == "SALE-0001"
    assert sale["totalAmount"] == "59.9700"
    assert sale["remainingBalance"] == "59.9700"
    assert sale["status"] == "completed"
    [item] = sale["items"]
    assert item["allocations"][0]["batchId"] == stocked["B1"]
    assert item["allocations"][0]["unitCost"] == "10.0000"

    again = api.get_sale(sale["saleId"])
    assert again == res


def test_validation_errors_are_returned_verbatim(api, stocked):
    res = api.create_sale({
        "companyId": stocked["company_id"],
        "items": [{"productId": stocked["prod_A"], "quantity": 11, "unitPrice": "1"}],
    })
    assert res == {
        "success": False,
        "error": "Insufficient stock for Widget A. Available: 10, Requested: 11",
    }


def test_not_found(api, ids):
    assert api.get_sale(404) == {"success": False, "error": "Sale not found"}
    assert api.get_product("x") == {"success": False, "error": "productId must be a whole number"}


def test_invariant_violation_is_masked(api, stocked, monkeypatch):
    def over(self, batch_id, quantity):
        raise OverRelease("release past original quantity")

    monkeypatch.setattr(BatchAllocator, "release", over)
    sale = api.create_sale({
        "companyId": stocked["company_id"],
        "items": [{"productId": stocked["prod_A"], "quantity": 1, "unitPrice": "1"}],
    })["data"]
    res = api.return_sale(sale["saleId"])
    assert res == {"success": False, "error": GENERIC_ERROR}
    assert api.get_sale(sale["saleId"])["data"]["status"] == "completed"


def test_unexpected_error_is_masked(api, stocked, monkeypatch):
    def boom(self, header, cost):
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(PostingEngine, "sale_cost", boom)
    res = api.create_sale({
        "companyId": stocked["company_id"],
        "items": [{"productId": stocked["prod_A"], "quantity": 1, "unitPrice": "1"}],
    })
    assert res == {"success": False, "error": GENERIC_ERROR}
    assert api.get_sales(stocked["company_id"])["data"] == []


def test_purchase_and_payment(api, ids):
    res = api.create_purchase({
        "companyId": ids["company_id"],
        "vendorId": ids["vendor_id"],
        "paymentType": "credit",
        "items": [{"productId": ids["prod_B"], "quantity": 4, "unitPrice": "2.5", "batchNumber": "PB-1"}],
    })
    assert res["success"] is True
    pid = res["data"]["purchaseId"]
    assert res["data"]["items"][0]["batchNumber"] == "PB-1"

    paid = api.add_purchase_payment(pid, {"amount": "4", "paymentType": "bank"})
    assert paid["data"]["remainingBalance"] == "6.0000"
    assert paid["data"]["payments"][0]["amount"] == "4.0000"

    over = api.add_purchase_payment(pid, {"amount": "7", "paymentType": "cash"})
    assert over == {
        "success": False,
        "error": "Payment amount (7.00) cannot exceed remaining balance (6.00)",
    }


def test_partial_return_through_api(api, stocked):
    sale = api.create_sale({
        "companyId": stocked["company_id"],
        "paymentType": "cod",
        "items": [{"productId": stocked["prod_A"], "quantity": 10, "unitPrice": "10"}],
    })["data"]
    res = api.partial_return_sale(sale["saleId"], {
        "items": [{"itemId": sale["items"][0]["itemId"], "quantity": 3}],
    })
    assert res["data"]["status"] == "partial_return"
    assert res["data"]["remainingBalance"] == "70.0000"
    assert res["data"]["returns"][0]["kind"] == "partial"


def test_accounts_and_reports(api, stocked):
    accounts = api.get_accounts(stocked["company_id"])["data"]
    inventory = next(a for a in accounts if a["code"] == "1200")
    assert inventory["balance"] == "110.0000"

    recalc = api.recalculate_account_balances(stocked["company_id"])["data"]
    assert recalc["accountsUpdated"] == 11
    assert recalc["transactionsReplayed"] == 2
    assert recalc["message"].startswith("Recalculated balances for 11 accounts")

    tb = api.get_trial_balance(stocked["company_id"])["data"]
    assert tb["isBalanced"] is True
    assert tb["totalDebits"] == tb["totalCredits"] == "110.0000"

    report = api.get_expiry_report(stocked["company_id"], "2025-12-20")["data"]
    assert report["expiringSoon"][0]["batch"]["batchNumber"] == "B1"
    assert report["expiringSoon"][0]["status"] == "expiring_soon"


def test_party_endpoints(api, ids):
    created = api.create_customer({"companyId": ids["company_id"], "name": "Walk-in", "areaCode": "021"})
    assert created["success"] is True
    assert created["data"]["areaCode"] == "021"
    assert created["data"]["totalAmount"] == "0.0000"

    cid = created["data"]["customerId"]
    assert api.update_customer(cid, {"phone": "123"})["data"]["phone"] == "123"
    assert api.delete_customer(cid) == {"success": True, "data": {"deleted": True}}
    assert api.create_vendor({"companyId": ids["company_id"], "name": ""}) == {
        "success": False,
        "error": "Vendor name is required",
    }


def _floats(value):
    if isinstance(value, float):
        return [value]
    if isinstance(value, dict):
        return [f for v in value.values() for f in _floats(v)]
    if isinstance(value, list):
        return [f for v in value for f in _floats(v)]
    return []


def test_list_queries_keep_exact_amounts(api, ids):
    purchase = api.create_purchase({
        "companyId": ids["company_id"],
        "vendorId": ids["vendor_id"],
        "paymentType": "credit",
        "items": [{"productId": ids["prod_A"], "quantity": 6, "unitPrice": "3.3333", "batchNumber": "PB-1"}],
    })["data"]
    api.add_purchase_payment(purchase["purchaseId"], {"amount": "13.3332", "paymentType": "cash"})
    api.create_sale({
        "companyId": ids["company_id"],
        "customerId": ids["customer_id"],
        "paymentType": "cod",
        "items": [{"productId": ids["prod_A"], "quantity": 2, "unitPrice": "5.5"}],
    })

    results = {
        "products": api.get_products(ids["company_id"]),
        "batches": api.get_batches(ids["prod_A"]),
        "all_batches": api.get_all_batches(ids["company_id"]),
        "purchases": api.get_purchases(ids["company_id"]),
        "vendor_purchases": api.get_vendor_purchases(ids["vendor_id"]),
        "sales": api.get_sales(ids["company_id"]),
        "customer_sales": api.get_customer_sales(ids["customer_id"]),
        "transactions": api.get_transactions(ids["company_id"]),
        "customers": api.get_customers(ids["company_id"]),
        "vendors": api.get_vendors(ids["company_id"]),
    }
    for name, res in results.items():
        assert res["success"] is True, name
        assert _floats(res["data"]) == [], name

    products = {p["sku"]: p for p in results["products"]["data"]}
    assert (products["WA-1"]["totalQuantity"], products["WA-1"]["availableQuantity"]) == (6, 4)

    for key in ("batches", "all_batches"):
        [batch] = results[key]["data"]
        assert batch["batchNumber"] == "PB-1"
        assert batch["purchasePrice"] == "3.3333"
        assert batch["availableQuantity"] == 4

    for key in ("purchases", "vendor_purchases"):
        [p] = results[key]["data"]
        assert (p["totalAmount"], p["paidAmount"], p["remainingBalance"]) == ("19.9998", "13.3332", "6.6666")

    for key in ("sales", "customer_sales"):
        [s] = results[key]["data"]
        assert (s["totalAmount"], s["remainingBalance"]) == ("11.0000", "11.0000")

    amounts = sorted(t["amount"] for t in results["transactions"]["data"])
    assert amounts == ["11.0000", "13.3332", "19.9998", "6.6666"]

    [customer] = results["customers"]["data"]
    assert (customer["name"], customer["remainingBalance"], customer["salesCount"]) == ("Customer Y", "11.0000", 1)
    [vendor] = results["vendors"]["data"]
    assert (vendor["name"], vendor["remainingBalance"], vendor["purchasesCount"]) == ("Vendor X", "6.6666", 1)
