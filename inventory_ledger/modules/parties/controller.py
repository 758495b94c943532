"""
modules/parties/controller.py

Customers and vendors. Their balances are not stored anywhere: every read
folds over the party's sales or purchases, so they cannot drift from the
documents they summarize.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
import sqlite3
from typing import Optional

from ...database import transaction
from ...database.repositories.companies_repo import CompaniesRepo
from ...database.repositories.customers_repo import Customer, CustomersRepo
from ...database.repositories.purchases_repo import PurchaseHeader, PurchasesRepo
from ...database.repositories.sales_repo import SaleHeader, SalesRepo
from ...database.repositories.vendors_repo import Vendor, VendorsRepo
from ...utils.locks import company_lock
from ...utils.loggers import get_logger
from ...utils.money import ZERO
from ..status import PurchaseStatus

_log = get_logger(__name__)


@dataclass
class CustomerSummary:
    customer: Customer
    total_amount: Decimal
    paid_amount: Decimal
    remaining_balance: Decimal
    sales_count: int


@dataclass
class VendorSummary:
    vendor: Vendor
    total_amount: Decimal
    paid_amount: Decimal
    remaining_balance: Decimal
    purchases_count: int


def summarize_sales(customer: Customer, sales: list[SaleHeader]) -> CustomerSummary:
    total = paid = remaining = ZERO
    for s in sales:
        total += s.net_amount
        paid += s.paid_amount
        remaining += s.remaining_balance
    return CustomerSummary(customer, total, paid, remaining, len(sales))


def summarize_purchases(vendor: Vendor, purchases: list[PurchaseHeader]) -> VendorSummary:
    live = [p for p in purchases if p.status != PurchaseStatus.CANCELLED.value]
    total = paid = remaining = ZERO
    for p in live:
        total += p.total_amount
        paid += p.paid_amount
        remaining += p.remaining_balance
    return VendorSummary(vendor, total, paid, remaining, len(live))


class PartiesController:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.customers = CustomersRepo(conn)
        self.vendors = VendorsRepo(conn)
        self.sales = SalesRepo(conn)
        self.purchases = PurchasesRepo(conn)
        self.companies = CompaniesRepo(conn)

    # ---------------------------------------------------------------------
    # customers
    # ---------------------------------------------------------------------
    def list_customers(self, company_id: int) -> list[CustomerSummary]:
        return [
            summarize_sales(c, self.sales.list_for_customer(c.customer_id))
            for c in self.customers.list_customers(company_id)
        ]

    def get_customer(self, customer_id: int) -> CustomerSummary:
        c = self.customers.require(customer_id)
        return summarize_sales(c, self.sales.list_for_customer(customer_id))

    def create_customer(
        self,
        company_id: int,
        name: str,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        address: Optional[str] = None,
        area_code: Optional[str] = None,
    ) -> CustomerSummary:
        self.companies.require(company_id)
        with company_lock(company_id), transaction(self.conn, "create customer"):
            customer_id = self.customers.create(company_id, name, email, phone, address, area_code)
        _log.info("Created customer %s", name)
        return self.get_customer(customer_id)

    def update_customer(self, customer_id: int, **fields) -> CustomerSummary:
        c = self.customers.require(customer_id)
        merged = {
            "name": c.name,
            "email": c.email,
            "phone": c.phone,
            "address": c.address,
            "area_code": c.area_code,
        }
        merged.update({k: v for k, v in fields.items() if k in merged})
        with company_lock(c.company_id), transaction(self.conn, "update customer"):
            self.customers.update(customer_id, **merged)
        return self.get_customer(customer_id)

    def delete_customer(self, customer_id: int) -> None:
        c = self.customers.require(customer_id)
        with company_lock(c.company_id), transaction(self.conn, "delete customer"):
            self.customers.delete(customer_id)
        _log.info("Deleted customer %s", c.name)

    # ---------------------------------------------------------------------
    # vendors
    # ---------------------------------------------------------------------
    def list_vendors(self, company_id: int) -> list[VendorSummary]:
        return [
            summarize_purchases(v, self.purchases.list_for_vendor(v.vendor_id))
            for v in self.vendors.list_vendors(company_id)
        ]

    def get_vendor(self, vendor_id: int) -> VendorSummary:
        v = self.vendors.require(vendor_id)
        return summarize_purchases(v, self.purchases.list_for_vendor(vendor_id))

    def create_vendor(
        self,
        company_id: int,
        name: str,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        address: Optional[str] = None,
    ) -> VendorSummary:
        self.companies.require(company_id)
        with company_lock(company_id), transaction(self.conn, "create vendor"):
            vendor_id = self.vendors.create(company_id, name, email, phone, address)
        _log.info("Created vendor %s", name)
        return self.get_vendor(vendor_id)

    def update_vendor(self, vendor_id: int, **fields) -> VendorSummary:
        v = self.vendors.require(vendor_id)
        merged = {"name": v.name, "email": v.email, "phone": v.phone, "address": v.address}
        merged.update({k: val for k, val in fields.items() if k in merged})
        with company_lock(v.company_id), transaction(self.conn, "update vendor"):
            self.vendors.update(vendor_id, **merged)
        return self.get_vendor(vendor_id)

    def delete_vendor(self, vendor_id: int) -> None:
        v = self.vendors.require(vendor_id)
        with company_lock(v.company_id), transaction(self.conn, "delete vendor"):
            self.vendors.delete(vendor_id)
        _log.info("Deleted vendor %s", v.name)
