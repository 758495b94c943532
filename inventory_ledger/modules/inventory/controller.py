"""
modules/inventory/controller.py

Products, batches and stock reports. Batches created here are opening or
adjustment stock; purchase batches come from the purchase workflow.
"""
from __future__ import annotations

from dataclasses import dataclass, field
import sqlite3
from typing import Optional

from ...database import transaction
from ...database.repositories.batches_repo import Batch, BatchesRepo, make_batch_number
from ...database.repositories.companies_repo import CompaniesRepo
from ...database.repositories.products_repo import Product, ProductsRepo
from ...database.repositories.vendors_repo import VendorsRepo
from ...errors import ValidationError
from ...utils.helpers import DateLike, iso_date, parse_date, today_str
from ...utils.locks import company_lock
from ...utils.loggers import get_logger
from ...utils.money import ZERO, to_money
from ...utils.validators import non_empty, try_parse_int
from ..ledger.posting import PostingEngine
from .expiry import ExpiryStatus, classify_expiry, days_until_expiry

_log = get_logger(__name__)


@dataclass
class ExpiryLine:
    batch: Batch
    status: ExpiryStatus
    days_until_expiry: Optional[int]


@dataclass
class ExpiryReport:
    as_of: str
    expired: list[ExpiryLine] = field(default_factory=list)
    expiring_soon: list[ExpiryLine] = field(default_factory=list)
    ok: list[ExpiryLine] = field(default_factory=list)
    no_expiry: list[ExpiryLine] = field(default_factory=list)


class InventoryController:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.products = ProductsRepo(conn)
        self.batches = BatchesRepo(conn)
        self.vendors = VendorsRepo(conn)
        self.companies = CompaniesRepo(conn)
        self.posting = PostingEngine(conn)

    # ---------------------------------------------------------------------
    # products
    # ---------------------------------------------------------------------
    def list_products(self, company_id: int) -> list[Product]:
        return self.products.list_products(company_id)

    def get_product(self, product_id: int) -> Product:
        return self.products.require(product_id)

    def create_product(
        self,
        company_id: int,
        sku: str,
        name: str,
        description: Optional[str] = None,
        category: Optional[str] = None,
        vendor_id: Optional[int] = None,
    ) -> Product:
        self.companies.require(company_id)
        if vendor_id is not None:
            self._check_vendor(company_id, vendor_id)
        with company_lock(company_id), transaction(self.conn, "create product"):
            product_id = self.products.create(company_id, sku, name, description, category, vendor_id)
        _log.info("Created product %s (%s)", name, sku)
        return self.products.require(product_id)

    def update_product(self, product_id: int, **changes) -> Product:
        p = self.products.require(product_id)
        if changes.get("vendor_id") is not None:
            self._check_vendor(p.company_id, changes["vendor_id"])
        with company_lock(p.company_id), transaction(self.conn, "update product"):
            self.products.update(product_id, **changes)
        return self.products.require(product_id)

    def delete_product(self, product_id: int) -> None:
        p = self.products.require(product_id)
        with company_lock(p.company_id), transaction(self.conn, "delete product"):
            self.products.delete(product_id)
        _log.info("Deleted product %s (%s)", p.name, p.sku)

    def _check_vendor(self, company_id: int, vendor_id: int) -> None:
        v = self.vendors.require(vendor_id)
        if v.company_id != company_id:
            raise ValidationError("Vendor belongs to another company")

    # ---------------------------------------------------------------------
    # batches
    # ---------------------------------------------------------------------
    def list_batches(self, product_id: int) -> list[Batch]:
        self.products.require(product_id)
        return self.batches.list_for_product(product_id)

    def list_all_batches(self, company_id: int) -> list[Batch]:
        return self.batches.list_for_company(company_id)

    def stock_totals(self, product_id: int) -> tuple[int, int]:
        self.products.require(product_id)
        return self.batches.stock_totals(product_id)

    def create_batch(
        self,
        product_id: int,
        quantity,
        purchase_price=ZERO,
        batch_number: Optional[str] = None,
        manufacturing_date: DateLike = None,
        expiry_date: DateLike = None,
        notes: Optional[str] = None,
    ) -> Batch:
        """
        Receive stock that did not come through a purchase. A priced batch is
        valued into Inventory against Owner's Equity.
        """
        product = self.products.require(product_id)
        ok, qty = try_parse_int(quantity)
        if not ok or qty <= 0:
            raise ValidationError("Quantity must be a whole number greater than zero")
        try:
            price = to_money(purchase_price if purchase_price not in (None, "") else ZERO)
        except ValueError as e:
            raise ValidationError("Purchase price must be a number") from e
        if price < ZERO:
            raise ValidationError("Purchase price cannot be negative")
        mfg, exp = _check_dates(manufacturing_date, expiry_date)

        with company_lock(product.company_id), transaction(self.conn, "create batch"):
            number = batch_number.strip() if non_empty(batch_number) else make_batch_number(product.sku)
            batch_id = self.batches.insert(
                company_id=product.company_id,
                product_id=product.product_id,
                batch_number=number,
                quantity=qty,
                purchase_price=price,
                manufacturing_date=mfg,
                expiry_date=exp,
                notes=notes,
            )
            txn = self.posting.opening_stock(product.company_id, price * qty, number, today_str())
            if txn is not None:
                self.batches.set_opening_transaction(batch_id, txn.transaction_id)
        _log.info("Created batch %s for %s qty=%s", number, product.sku, qty)
        return self.batches.require(batch_id)

    def delete_batch(self, batch_id: int) -> None:
        """Only untouched batches that never fed a sale and do not belong to a purchase."""
        b = self.batches.require(batch_id)
        with company_lock(b.company_id), transaction(self.conn, "delete batch"):
            b = self.batches.require(batch_id)
            if b.available_quantity != b.quantity:
                raise ValidationError(f"Cannot delete batch {b.batch_number}: stock has been used")
            if self.batches.used_in_sales(batch_id):
                raise ValidationError(f"Cannot delete batch {b.batch_number}: it has been used in sales")
            if self.batches.linked_purchase_id(batch_id) is not None:
                raise ValidationError(
                    f"Cannot delete batch {b.batch_number}: it belongs to a purchase; delete the purchase instead"
                )
            if b.opening_transaction_id is not None:
                self.posting.reverse(
                    b.opening_transaction_id, f"Batch {b.batch_number} deleted", today_str()
                )
            self.batches.delete(batch_id)
        _log.info("Deleted batch %s", b.batch_number)

    # ---------------------------------------------------------------------
    # reports
    # ---------------------------------------------------------------------
    def expiry_report(self, company_id: int, today: DateLike = None, include_empty: bool = False) -> ExpiryReport:
        """Batches grouped by expiry status; empty batches are left out unless asked for."""
        as_of = parse_date(today) or parse_date(today_str())
        report = ExpiryReport(as_of=as_of.isoformat())
        for b in self.batches.list_for_company(company_id):
            if b.available_quantity == 0 and not include_empty:
                continue
            status = classify_expiry(b.expiry_date, as_of)
            line = ExpiryLine(batch=b, status=status, days_until_expiry=days_until_expiry(b.expiry_date, as_of))
            getattr(report, status.value).append(line)
        report.expired.sort(key=lambda l: l.days_until_expiry)
        report.expiring_soon.sort(key=lambda l: l.days_until_expiry)
        return report


def _check_dates(manufacturing_date: DateLike, expiry_date: DateLike) -> tuple[Optional[str], Optional[str]]:
    try:
        mfg = iso_date(manufacturing_date)
        exp = iso_date(expiry_date)
    except ValueError as e:
        raise ValidationError(str(e)) from e
    if mfg and exp and exp < mfg:
        raise ValidationError("Expiry date cannot be before the manufacturing date")
    return mfg, exp
