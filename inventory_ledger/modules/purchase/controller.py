"""
modules/purchase/controller.py

Purchase workflow: receive goods into new batches, post them to the ledger
and settle the vendor balance through payments. Each public write is one
transaction under the company lock; any failure rolls all of it back.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
import sqlite3
from typing import Iterable, Mapping, Optional

from ...database import transaction
from ...database.repositories.batches_repo import BatchesRepo, make_batch_number
from ...database.repositories.companies_repo import CompaniesRepo
from ...database.repositories.products_repo import Product, ProductsRepo
from ...database.repositories.purchase_payments_repo import PurchasePayment, PurchasePaymentsRepo
from ...database.repositories.purchases_repo import PurchaseHeader, PurchaseItem, PurchasesRepo
from ...database.repositories.transactions_repo import TransactionsRepo
from ...database.repositories.vendors_repo import VendorsRepo
from ...errors import ValidationError
from ...utils.helpers import iso_date, today_str
from ...utils.locks import company_lock
from ...utils.loggers import get_logger
from ...utils.money import ZERO, to_money
from ...utils.validators import non_empty, try_parse_int
from ..ledger.posting import PostingEngine
from ..status import (
    PURCHASE_ENTRY_STATES,
    PURCHASE_TRANSITIONS,
    PurchaseStatus,
    ensure_transition,
    parse_status,
)

_log = get_logger(__name__)

PURCHASE_PAYMENT_TYPES: tuple[str, ...] = ("cash", "bank", "credit")
PAYMENT_METHODS: tuple[str, ...] = ("cash", "bank")


@dataclass
class PurchaseDetail:
    header: PurchaseHeader
    items: list[PurchaseItem] = field(default_factory=list)
    payments: list[PurchasePayment] = field(default_factory=list)


@dataclass
class _Line:
    product: Product
    quantity: int
    unit_price: Decimal
    batch_number: Optional[str]
    manufacturing_date: Optional[str]
    expiry_date: Optional[str]


def _parse_payment_type(value, allowed: tuple[str, ...], default: str) -> str:
    pt = (str(value).strip().lower() if value is not None else "") or default
    if pt not in allowed:
        raise ValidationError(f"Payment type must be one of: {', '.join(allowed)}")
    return pt


def _parse_amount(value, what: str = "Payment amount") -> Decimal:
    try:
        amount = to_money(value)
    except ValueError as e:
        raise ValidationError(f"{what} must be a number") from e
    if amount <= ZERO:
        raise ValidationError(f"{what} must be greater than zero")
    return amount


class PurchaseController:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.repo = PurchasesRepo(conn)
        self.payments = PurchasePaymentsRepo(conn)
        self.batches = BatchesRepo(conn)
        self.products = ProductsRepo(conn)
        self.vendors = VendorsRepo(conn)
        self.companies = CompaniesRepo(conn)
        self.transactions = TransactionsRepo(conn)
        self.posting = PostingEngine(conn)

    # ---------------------------------------------------------------------
    # READ
    # ---------------------------------------------------------------------
    def list_purchases(self, company_id: int) -> list[PurchaseHeader]:
        return self.repo.list_purchases(company_id)

    def list_vendor_purchases(self, vendor_id: int) -> list[PurchaseHeader]:
        self.vendors.require(vendor_id)
        return self.repo.list_for_vendor(vendor_id)

    def get_purchase(self, purchase_id: int) -> PurchaseDetail:
        header = self.repo.require(purchase_id)
        return PurchaseDetail(
            header=header,
            items=self.repo.list_items(purchase_id),
            payments=self.payments.list_payments(purchase_id),
        )

    # ---------------------------------------------------------------------
    # CREATE
    # ---------------------------------------------------------------------
    def create_purchase(
        self,
        company_id: int,
        vendor_id: int,
        items: Iterable[Mapping],
        payment_type: str = "cash",
        notes: Optional[str] = None,
        purchase_date=None,
        status: Optional[str] = None,
    ) -> PurchaseDetail:
        """
        One batch per line, one posting for the total:
        Dr Inventory / Cr Cash | Bank | Accounts Payable.
        Cash and bank purchases are settled on the spot.
        """
        self.companies.require(company_id)
        vendor = self.vendors.require(vendor_id)
        if vendor.company_id != company_id:
            raise ValidationError("Vendor belongs to another company")
        payment_type = _parse_payment_type(payment_type, PURCHASE_PAYMENT_TYPES, "cash")
        entry = parse_status(PurchaseStatus, status, PurchaseStatus.COMPLETED)
        if entry not in PURCHASE_ENTRY_STATES:
            raise ValidationError(f"A purchase cannot be created as {entry.value}")
        try:
            date = iso_date(purchase_date, today_str())
        except ValueError as e:
            raise ValidationError(str(e)) from e

        lines = self._validate_lines(company_id, items)
        total = sum((l.unit_price * l.quantity for l in lines), ZERO)
        paid = total if payment_type in PAYMENT_METHODS else ZERO

        with company_lock(company_id), transaction(self.conn, "create purchase"):
            purchase_id = self.repo.create_header(
                company_id=company_id,
                vendor_id=vendor_id,
                purchase_date=date,
                total_amount=total,
                paid_amount=paid,
                status=entry.value,
                payment_type=payment_type,
                notes=notes,
            )
            taken: set[tuple[int, str]] = set()
            for line in lines:
                number = self._batch_number_for(line, taken)
                batch_id = self.batches.insert(
                    company_id=company_id,
                    product_id=line.product.product_id,
                    batch_number=number,
                    quantity=line.quantity,
                    purchase_price=line.unit_price,
                    manufacturing_date=line.manufacturing_date,
                    expiry_date=line.expiry_date,
                )
                self.repo.add_item(
                    purchase_id,
                    product_id=line.product.product_id,
                    batch_id=batch_id,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                )
                self.products.set_vendor(line.product.product_id, vendor_id)
            header = self.repo.require(purchase_id)
            self.posting.purchase(header)

        _log.info("Created purchase %s total=%s (%s)", header.purchase_number, total, payment_type)
        return self.get_purchase(purchase_id)

    def _validate_lines(self, company_id: int, items: Iterable[Mapping]) -> list[_Line]:
        items = list(items or [])
        if not items:
            raise ValidationError("At least one item is required")
        lines: list[_Line] = []
        seen: set[tuple[int, str]] = set()
        for idx, raw in enumerate(items, start=1):
            ok, product_id = try_parse_int(raw.get("product_id"))
            if not ok:
                raise ValidationError(f"Item {idx}: product is required")
            product = self.products.require(product_id)
            if product.company_id != company_id:
                raise ValidationError(f"Item {idx}: product belongs to another company")
            ok, qty = try_parse_int(raw.get("quantity"))
            if not ok or qty <= 0:
                raise ValidationError(f"Item {idx}: quantity must be a whole number greater than zero")
            try:
                price = to_money(raw.get("unit_price"))
            except ValueError as e:
                raise ValidationError(f"Item {idx}: unit price must be a number") from e
            if price <= ZERO:
                raise ValidationError(f"Item {idx}: unit price must be greater than zero")
            try:
                mfg = iso_date(raw.get("manufacturing_date"))
                exp = iso_date(raw.get("expiry_date"))
            except ValueError as e:
                raise ValidationError(f"Item {idx}: {e}") from e
            if mfg and exp and exp < mfg:
                raise ValidationError(f"Item {idx}: expiry date cannot be before the manufacturing date")

            number = raw.get("batch_number")
            number = str(number).strip() if non_empty(number) else None
            if number is not None:
                key = (product.product_id, number)
                if key in seen:
                    raise ValidationError(f"Batch number {number} is repeated for {product.name}")
                if self.batches.batch_number_exists(product.product_id, number):
                    raise ValidationError(f"Batch number {number} already exists for {product.name}")
                seen.add(key)
            lines.append(_Line(product, qty, price, number, mfg, exp))
        return lines

    def _batch_number_for(self, line: _Line, taken: set[tuple[int, str]]) -> str:
        if line.batch_number:
            taken.add((line.product.product_id, line.batch_number))
            return line.batch_number
        base = make_batch_number(line.product.sku)
        number, n = base, 1
        while (line.product.product_id, number) in taken or self.batches.batch_number_exists(
            line.product.product_id, number
        ):
            n += 1
            number = f"{base}-{n}"
        taken.add((line.product.product_id, number))
        return number

    # ---------------------------------------------------------------------
    # PAYMENTS
    # ---------------------------------------------------------------------
    def add_purchase_payment(
        self,
        purchase_id: int,
        amount,
        payment_type: str = "cash",
        notes: Optional[str] = None,
        payment_date=None,
    ) -> PurchaseDetail:
        """
        0 < amount <= remaining balance. Posts Dr Accounts Payable / Cr Cash | Bank.
        """
        header = self.repo.require(purchase_id)
        payment_type = _parse_payment_type(payment_type, PAYMENT_METHODS, "cash")
        amount = _parse_amount(amount)
        try:
            date = iso_date(payment_date, today_str())
        except ValueError as e:
            raise ValidationError(str(e)) from e

        with company_lock(header.company_id), transaction(self.conn, "purchase payment"):
            header = self.repo.require(purchase_id)
            if header.status == PurchaseStatus.CANCELLED.value:
                raise ValidationError("Cannot add a payment to a cancelled purchase")
            remaining = header.remaining_balance
            if amount > remaining:
                raise ValidationError(
                    f"Payment amount ({amount:.2f}) cannot exceed remaining balance ({remaining:.2f})"
                )
            self.payments.record_payment(
                purchase_id,
                amount=amount,
                payment_type=payment_type,
                payment_date=date,
                notes=notes,
            )
            self.repo.set_paid_amount(purchase_id, header.paid_amount + amount)
            self.posting.purchase_payment(header, amount, payment_type, date)

        _log.info("Payment %s on purchase %s (%s)", amount, header.purchase_number, payment_type)
        return self.get_purchase(purchase_id)

    # ---------------------------------------------------------------------
    # STATUS
    # ---------------------------------------------------------------------
    def complete_purchase(self, purchase_id: int) -> PurchaseDetail:
        header = self.repo.require(purchase_id)
        with company_lock(header.company_id), transaction(self.conn, "complete purchase"):
            header = self.repo.require(purchase_id)
            target = ensure_transition(
                PURCHASE_TRANSITIONS, PurchaseStatus(header.status), PurchaseStatus.COMPLETED, "purchase"
            )
            self.repo.set_status(purchase_id, target.value)
        _log.info("Completed purchase %s", header.purchase_number)
        return self.get_purchase(purchase_id)

    def cancel_purchase(self, purchase_id: int) -> PurchaseDetail:
        """
        Pending purchases only, before any payment and before any of their
        stock moves. The posting is reversed and the batches removed; the
        purchase stays on file as cancelled.
        """
        header = self.repo.require(purchase_id)
        with company_lock(header.company_id), transaction(self.conn, "cancel purchase"):
            header = self.repo.require(purchase_id)
            target = ensure_transition(
                PURCHASE_TRANSITIONS, PurchaseStatus(header.status), PurchaseStatus.CANCELLED, "purchase"
            )
            if self.payments.list_payments(purchase_id):
                raise ValidationError("Cannot cancel a purchase that has payments")
            items = self.repo.list_items(purchase_id)
            self._ensure_batches_untouched(items)
            self.posting.reverse_all(
                self.transactions.list_for_purchase(purchase_id),
                f"Purchase {header.purchase_number} cancelled",
                today_str(),
            )
            for item in items:
                if item.batch_id is not None:
                    self.batches.delete(item.batch_id)
            self.repo.set_paid_amount(purchase_id, ZERO)
            self.repo.set_status(purchase_id, target.value)
        _log.info("Cancelled purchase %s", header.purchase_number)
        return self.get_purchase(purchase_id)

    # ---------------------------------------------------------------------
    # DELETE
    # ---------------------------------------------------------------------
    def delete_purchase(self, purchase_id: int) -> None:
        """
        Allowed while none of the purchase's batches has been drawn from.
        Every live posting of the purchase (payments included) is reversed,
        then batches, lines, payments and the header are removed.
        """
        header = self.repo.require(purchase_id)
        with company_lock(header.company_id), transaction(self.conn, "delete purchase"):
            header = self.repo.require(purchase_id)
            items = self.repo.list_items(purchase_id)
            self._ensure_batches_untouched(items)
            self.posting.reverse_all(
                self.transactions.list_for_purchase(purchase_id),
                f"Purchase {header.purchase_number} deleted",
                today_str(),
            )
            self.repo.delete(purchase_id)
            for item in items:
                if item.batch_id is not None:
                    self.batches.delete(item.batch_id)
        _log.info("Deleted purchase %s", header.purchase_number)

    def _ensure_batches_untouched(self, items: list[PurchaseItem]) -> None:
        for item in items:
            if item.batch_id is None:
                continue
            b = self.batches.require(item.batch_id)
            if b.available_quantity != b.quantity or self.batches.used_in_sales(b.batch_id):
                raise ValidationError(
                    f"Cannot remove purchase: batch {b.batch_number} has been used in sales"
                )
