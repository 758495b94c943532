"""
modules/api/handlers.py

Request/response surface consumed by the desktop UI. Every method returns

    {"success": True,  "data": <entity or list>}
    {"success": False, "error": "<message>"}

and never lets an exception escape. Validation, not-found and stock errors
carry their own message; internal consistency failures and anything
unexpected are logged with a traceback and reported as GENERIC_ERROR.
Writes either fully succeed or leave nothing behind.
"""
from __future__ import annotations

import sqlite3
from typing import Any, Callable, Mapping, Optional

from ...errors import DomainError, InvariantViolation, ValidationError
from ...utils.loggers import get_logger
from ..inventory.controller import InventoryController
from ..ledger.controller import AccountsController
from ..parties.controller import PartiesController
from ..purchase.controller import PurchaseController
from ..sales.controller import SalesController
from .serialization import flatten_detail, flatten_summary, normalize_payload, serialize

_log = get_logger(__name__)

GENERIC_ERROR = "Operation failed. Please try again."

Envelope = dict[str, Any]


def _int(value, name: str) -> int:
    if value is None or value == "":
        raise ValidationError(f"{name} is required")
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{name} must be a whole number") from e


def _opt_int(value, name: str) -> Optional[int]:
    if value is None or value == "":
        return None
    return _int(value, name)


def _payload(data: Optional[Mapping]) -> dict:
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ValidationError("Request body must be an object")
    return normalize_payload(data)


def _purchase_items(items) -> list[dict]:
    return [
        {
            "product_id": _int(i.get("product_id"), "productId"),
            "quantity": i.get("quantity"),
            "unit_price": i.get("unit_price"),
            "batch_number": i.get("batch_number"),
            "manufacturing_date": i.get("manufacturing_date"),
            "expiry_date": i.get("expiry_date"),
        }
        for i in (items or [])
    ]


def _sale_items(items) -> list[dict]:
    out = []
    for i in items or []:
        line = {
            "product_id": _int(i.get("product_id"), "productId"),
            "quantity": i.get("quantity"),
            "unit_price": i.get("unit_price"),
        }
        if i.get("batches"):
            line["batches"] = [
                {"batch_id": _int(b.get("batch_id"), "batchId"), "quantity": b.get("quantity")}
                for b in i["batches"]
            ]
        elif i.get("batch_id") not in (None, ""):
            line["batch_id"] = _int(i.get("batch_id"), "batchId")
        out.append(line)
    return out


class LedgerApi:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.accounts = AccountsController(conn)
        self.inventory = InventoryController(conn)
        self.purchases = PurchaseController(conn)
        self.sales = SalesController(conn)
        self.parties = PartiesController(conn)

    def _call(self, op: str, fn: Callable[[], Any]) -> Envelope:
        try:
            data = fn()
        except InvariantViolation:
            _log.exception("%s failed an internal consistency check", op)
            return {"success": False, "error": GENERIC_ERROR}
        except DomainError as e:
            return {"success": False, "error": e.message}
        except Exception:
            _log.exception("%s failed", op)
            return {"success": False, "error": GENERIC_ERROR}
        return {"success": True, "data": data}

    # ---------------------------------------------------------------------
    # accounts
    # ---------------------------------------------------------------------
    def get_accounts(self, company_id) -> Envelope:
        return self._call("getAccounts", lambda: serialize(
            self.accounts.list_accounts(_int(company_id, "companyId"))))

    def get_account(self, account_id) -> Envelope:
        return self._call("getAccount", lambda: serialize(
            self.accounts.get_account(_int(account_id, "accountId"))))

    def create_account(self, data: Mapping) -> Envelope:
        def run():
            d = _payload(data)
            acc = self.accounts.create_account(
                _int(d.get("company_id"), "companyId"),
                d.get("code"),
                d.get("name"),
                d.get("type"),
                _opt_int(d.get("parent_id"), "parentId"),
                d.get("description"),
            )
            return serialize(acc)
        return self._call("createAccount", run)

    def update_account(self, account_id, data: Mapping) -> Envelope:
        def run():
            d = _payload(data)
            changes = {k: d[k] for k in ("code", "name", "type", "description") if k in d}
            if "parent_id" in d:
                changes["parent_id"] = _opt_int(d["parent_id"], "parentId")
            return serialize(self.accounts.update_account(_int(account_id, "accountId"), **changes))
        return self._call("updateAccount", run)

    def delete_account(self, account_id) -> Envelope:
        def run():
            self.accounts.delete_account(_int(account_id, "accountId"))
            return {"deleted": True}
        return self._call("deleteAccount", run)

    def recalculate_account_balances(self, company_id) -> Envelope:
        def run():
            result = self.accounts.recalculate(_int(company_id, "companyId"))
            out = serialize(result)
            out["message"] = result.message
            return out
        return self._call("recalculateAccountBalances", run)

    def get_trial_balance(self, company_id) -> Envelope:
        def run():
            tb = self.accounts.trial_balance(_int(company_id, "companyId"))
            out = serialize(tb)
            out["isBalanced"] = tb.is_balanced
            return out
        return self._call("getTrialBalance", run)

    # ---------------------------------------------------------------------
    # ledger
    # ---------------------------------------------------------------------
    def get_transactions(self, company_id) -> Envelope:
        return self._call("getTransactions", lambda: serialize(
            self.accounts.list_transactions(_int(company_id, "companyId"))))

    def get_transaction(self, transaction_id) -> Envelope:
        return self._call("getTransaction", lambda: serialize(
            self.accounts.get_transaction(_int(transaction_id, "transactionId"))))

    def reverse_transaction(self, transaction_id, data: Optional[Mapping] = None) -> Envelope:
        def run():
            d = _payload(data)
            return serialize(self.accounts.reverse_transaction(
                _int(transaction_id, "transactionId"), d.get("description")))
        return self._call("reverseTransaction", run)

    # ---------------------------------------------------------------------
    # products & batches
    # ---------------------------------------------------------------------
    def get_products(self, company_id) -> Envelope:
        return self._call("getProducts", lambda: serialize(
            self.inventory.list_products(_int(company_id, "companyId"))))

    def get_product(self, product_id) -> Envelope:
        return self._call("getProduct", lambda: serialize(
            self.inventory.get_product(_int(product_id, "productId"))))

    def create_product(self, data: Mapping) -> Envelope:
        def run():
            d = _payload(data)
            return serialize(self.inventory.create_product(
                _int(d.get("company_id"), "companyId"),
                d.get("sku"),
                d.get("name"),
                d.get("description"),
                d.get("category"),
                _opt_int(d.get("vendor_id"), "vendorId"),
            ))
        return self._call("createProduct", run)

    def update_product(self, product_id, data: Mapping) -> Envelope:
        def run():
            d = _payload(data)
            changes = {k: d[k] for k in ("sku", "name", "description", "category") if k in d}
            if d.get("vendor_id") not in (None, ""):
                changes["vendor_id"] = _int(d["vendor_id"], "vendorId")
            return serialize(self.inventory.update_product(_int(product_id, "productId"), **changes))
        return self._call("updateProduct", run)

    def delete_product(self, product_id) -> Envelope:
        def run():
            self.inventory.delete_product(_int(product_id, "productId"))
            return {"deleted": True}
        return self._call("deleteProduct", run)

    def get_batches(self, product_id) -> Envelope:
        return self._call("getBatches", lambda: serialize(
            self.inventory.list_batches(_int(product_id, "productId"))))

    def get_all_batches(self, company_id) -> Envelope:
        return self._call("getAllBatches", lambda: serialize(
            self.inventory.list_all_batches(_int(company_id, "companyId"))))

    def create_batch(self, data: Mapping) -> Envelope:
        def run():
            d = _payload(data)
            return serialize(self.inventory.create_batch(
                _int(d.get("product_id"), "productId"),
                d.get("quantity"),
                d.get("purchase_price") or "0",
                d.get("batch_number"),
                d.get("manufacturing_date"),
                d.get("expiry_date"),
                d.get("notes"),
            ))
        return self._call("createBatch", run)

    def delete_batch(self, batch_id) -> Envelope:
        def run():
            self.inventory.delete_batch(_int(batch_id, "batchId"))
            return {"deleted": True}
        return self._call("deleteBatch", run)

    def get_expiry_report(self, company_id, today=None) -> Envelope:
        return self._call("getExpiryReport", lambda: serialize(
            self.inventory.expiry_report(_int(company_id, "companyId"), today)))

    # ---------------------------------------------------------------------
    # purchases
    # ---------------------------------------------------------------------
    def get_purchases(self, company_id) -> Envelope:
        return self._call("getPurchases", lambda: serialize(
            self.purchases.list_purchases(_int(company_id, "companyId"))))

    def get_purchase(self, purchase_id) -> Envelope:
        return self._call("getPurchase", lambda: flatten_detail(
            self.purchases.get_purchase(_int(purchase_id, "purchaseId")), "items", "payments"))

    def create_purchase(self, data: Mapping) -> Envelope:
        def run():
            d = _payload(data)
            detail = self.purchases.create_purchase(
                _int(d.get("company_id"), "companyId"),
                _int(d.get("vendor_id"), "vendorId"),
                _purchase_items(d.get("items")),
                payment_type=d.get("payment_type") or "cash",
                notes=d.get("notes"),
                purchase_date=d.get("purchase_date"),
                status=d.get("status"),
            )
            return flatten_detail(detail, "items", "payments")
        return self._call("createPurchase", run)

    def delete_purchase(self, purchase_id) -> Envelope:
        def run():
            self.purchases.delete_purchase(_int(purchase_id, "purchaseId"))
            return {"deleted": True}
        return self._call("deletePurchase", run)

    def add_purchase_payment(self, purchase_id, data: Mapping) -> Envelope:
        def run():
            d = _payload(data)
            detail = self.purchases.add_purchase_payment(
                _int(purchase_id, "purchaseId"),
                d.get("amount"),
                d.get("payment_type") or "cash",
                d.get("notes"),
                d.get("payment_date"),
            )
            return flatten_detail(detail, "items", "payments")
        return self._call("addPurchasePayment", run)

    def complete_purchase(self, purchase_id) -> Envelope:
        return self._call("completePurchase", lambda: flatten_detail(
            self.purchases.complete_purchase(_int(purchase_id, "purchaseId")), "items", "payments"))

    def cancel_purchase(self, purchase_id) -> Envelope:
        return self._call("cancelPurchase", lambda: flatten_detail(
            self.purchases.cancel_purchase(_int(purchase_id, "purchaseId")), "items", "payments"))

    # ---------------------------------------------------------------------
    # sales
    # ---------------------------------------------------------------------
    def get_sales(self, company_id) -> Envelope:
        return self._call("getSales", lambda: serialize(
            self.sales.list_sales(_int(company_id, "companyId"))))

    def get_sale(self, sale_id) -> Envelope:
        return self._call("getSale", lambda: flatten_detail(
            self.sales.get_sale(_int(sale_id, "saleId")), "items", "payments", "returns"))

    def create_sale(self, data: Mapping) -> Envelope:
        def run():
            d = _payload(data)
            detail = self.sales.create_sale(
                _int(d.get("company_id"), "companyId"),
                _sale_items(d.get("items")),
                customer_id=_opt_int(d.get("customer_id"), "customerId"),
                payment_type=d.get("payment_type") or "cash",
                notes=d.get("notes"),
                sale_date=d.get("sale_date"),
                status=d.get("status"),
            )
            return flatten_detail(detail, "items", "payments", "returns")
        return self._call("createSale", run)

    def delete_sale(self, sale_id) -> Envelope:
        def run():
            self.sales.delete_sale(_int(sale_id, "saleId"))
            return {"deleted": True}
        return self._call("deleteSale", run)

    def complete_sale(self, sale_id) -> Envelope:
        return self._call("completeSale", lambda: flatten_detail(
            self.sales.complete_sale(_int(sale_id, "saleId")), "items", "payments", "returns"))

    def return_sale(self, sale_id, data: Optional[Mapping] = None) -> Envelope:
        def run():
            d = _payload(data)
            detail = self.sales.return_sale(_int(sale_id, "saleId"), d.get("notes"), d.get("return_date"))
            return flatten_detail(detail, "items", "payments", "returns")
        return self._call("returnSale", run)

    def partial_return_sale(self, sale_id, data: Mapping) -> Envelope:
        def run():
            d = _payload(data)
            lines = []
            for line in d.get("items") or []:
                entry = {
                    "item_id": _int(line.get("item_id"), "itemId"),
                    "quantity": line.get("quantity"),
                }
                if line.get("batch_id") not in (None, ""):
                    entry["batch_id"] = _int(line["batch_id"], "batchId")
                lines.append(entry)
            detail = self.sales.partial_return(
                _int(sale_id, "saleId"), lines, d.get("notes"), d.get("return_date")
            )
            return flatten_detail(detail, "items", "payments", "returns")
        return self._call("partialReturnSale", run)

    def add_sale_payment(self, sale_id, data: Mapping) -> Envelope:
        def run():
            d = _payload(data)
            detail = self.sales.add_sale_payment(
                _int(sale_id, "saleId"),
                d.get("amount"),
                d.get("payment_type") or "cash",
                d.get("notes"),
                d.get("payment_date"),
            )
            return flatten_detail(detail, "items", "payments", "returns")
        return self._call("addSalePayment", run)

    # ---------------------------------------------------------------------
    # parties
    # ---------------------------------------------------------------------
    def get_customers(self, company_id) -> Envelope:
        return self._call("getCustomers", lambda: [
            flatten_summary(s, "customer")
            for s in self.parties.list_customers(_int(company_id, "companyId"))
        ])

    def get_customer(self, customer_id) -> Envelope:
        return self._call("getCustomer", lambda: flatten_summary(
            self.parties.get_customer(_int(customer_id, "customerId")), "customer"))

    def create_customer(self, data: Mapping) -> Envelope:
        def run():
            d = _payload(data)
            return flatten_summary(self.parties.create_customer(
                _int(d.get("company_id"), "companyId"),
                d.get("name"),
                d.get("email"),
                d.get("phone"),
                d.get("address"),
                d.get("area_code"),
            ), "customer")
        return self._call("createCustomer", run)

    def update_customer(self, customer_id, data: Mapping) -> Envelope:
        def run():
            d = _payload(data)
            return flatten_summary(
                self.parties.update_customer(_int(customer_id, "customerId"), **d), "customer")
        return self._call("updateCustomer", run)

    def delete_customer(self, customer_id) -> Envelope:
        def run():
            self.parties.delete_customer(_int(customer_id, "customerId"))
            return {"deleted": True}
        return self._call("deleteCustomer", run)

    def get_customer_sales(self, customer_id) -> Envelope:
        return self._call("getCustomerSales", lambda: serialize(
            self.sales.list_customer_sales(_int(customer_id, "customerId"))))

    def get_vendors(self, company_id) -> Envelope:
        return self._call("getVendors", lambda: [
            flatten_summary(s, "vendor")
            for s in self.parties.list_vendors(_int(company_id, "companyId"))
        ])

    def get_vendor(self, vendor_id) -> Envelope:
        return self._call("getVendor", lambda: flatten_summary(
            self.parties.get_vendor(_int(vendor_id, "vendorId")), "vendor"))

    def create_vendor(self, data: Mapping) -> Envelope:
        def run():
            d = _payload(data)
            return flatten_summary(self.parties.create_vendor(
                _int(d.get("company_id"), "companyId"),
                d.get("name"),
                d.get("email"),
                d.get("phone"),
                d.get("address"),
            ), "vendor")
        return self._call("createVendor", run)

    def update_vendor(self, vendor_id, data: Mapping) -> Envelope:
        def run():
            d = _payload(data)
            return flatten_summary(self.parties.update_vendor(_int(vendor_id, "vendorId"), **d), "vendor")
        return self._call("updateVendor", run)

    def delete_vendor(self, vendor_id) -> Envelope:
        def run():
            self.parties.delete_vendor(_int(vendor_id, "vendorId"))
            return {"deleted": True}
        return self._call("deleteVendor", run)

    def get_vendor_purchases(self, vendor_id) -> Envelope:
        return self._call("getVendorPurchases", lambda: serialize(
            self.purchases.list_vendor_purchases(_int(vendor_id, "vendorId"))))
