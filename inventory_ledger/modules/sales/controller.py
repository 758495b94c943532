"""
modules/sales/controller.py

Sale workflow. Stock leaves specific batches, the allocation of every line is
kept so returns go back to exactly the batches they came from, and each
step posts its ledger entries in the same transaction as the stock move.

Postings per sale:
  revenue   Dr Cash | Bank | Accounts Receivable   Cr Sales Revenue
  cost      Dr Cost of Goods Sold                  Cr Inventory      (batch purchase prices)

Returns:
  full, straight from completed   -> the revenue and cost postings are reversed
  partial, or the rest after one  -> Dr Sales Revenue / Cr original debit account
                                     and Dr Inventory / Cr COGS for the returned part
When a sale ends up fully returned, whatever the customer paid is refunded.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
import sqlite3
from typing import Iterable, Mapping, Optional

from ...database import transaction
from ...database.repositories.companies_repo import CompaniesRepo
from ...database.repositories.customers_repo import CustomersRepo
from ...database.repositories.products_repo import Product, ProductsRepo
from ...database.repositories.sale_payments_repo import SalePayment, SalePaymentsRepo
from ...database.repositories.sales_repo import SaleAllocation, SaleHeader, SaleItem, SalesRepo
from ...database.repositories.sales_returns_helpers import (
    get_returnable_quantities,
    nothing_left_to_return,
)
from ...database.repositories.transactions_repo import TransactionsRepo
from ...errors import ValidationError
from ...utils.helpers import iso_date, today_str
from ...utils.locks import company_lock
from ...utils.loggers import get_logger
from ...utils.money import ZERO, clamp_non_negative, to_money
from ...utils.validators import try_parse_int
from ..inventory.allocator import AllocationStrategy, BatchAllocator, total_cost
from ..ledger.ledger import live_postings
from ..ledger.posting import PostingEngine
from ..status import (
    SALE_ENTRY_STATES,
    SALE_TRANSITIONS,
    SaleStatus,
    ensure_transition,
    parse_status,
)

_log = get_logger(__name__)

SALE_PAYMENT_TYPES: tuple[str, ...] = ("cash", "bank", "cod")
PAYMENT_METHODS: tuple[str, ...] = ("cash", "bank")
PREPAID_TYPES: tuple[str, ...] = ("cash", "bank")


@dataclass
class SaleDetail:
    header: SaleHeader
    items: list[SaleItem] = field(default_factory=list)
    payments: list[SalePayment] = field(default_factory=list)
    returns: list[dict] = field(default_factory=list)


@dataclass
class _Line:
    product: Product
    quantity: int
    unit_price: Decimal
    strategy: AllocationStrategy
    batches: Optional[list[tuple[int, int]]]


@dataclass
class _ReturnPiece:
    item: SaleItem
    allocation: SaleAllocation
    quantity: int


def _parse_payment_type(value, allowed: tuple[str, ...], default: str) -> str:
    pt = (str(value).strip().lower() if value is not None else "") or default
    if pt not in allowed:
        raise ValidationError(f"Payment type must be one of: {', '.join(allowed)}")
    return pt


def _parse_date(value) -> str:
    try:
        return iso_date(value, today_str())
    except ValueError as e:
        raise ValidationError(str(e)) from e


def _parse_batch_id(value, label: str) -> int:
    ok, batch_id = try_parse_int(value)
    if not ok:
        raise ValidationError(f"{label}: batch must be a whole number")
    return batch_id


class SalesController:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.repo = SalesRepo(conn)
        self.payments = SalePaymentsRepo(conn)
        self.products = ProductsRepo(conn)
        self.customers = CustomersRepo(conn)
        self.companies = CompaniesRepo(conn)
        self.transactions = TransactionsRepo(conn)
        self.allocator = BatchAllocator(conn)
        self.posting = PostingEngine(conn)

    # ---------------------------------------------------------------------
    # READ
    # ---------------------------------------------------------------------
    def list_sales(self, company_id: int) -> list[SaleHeader]:
        return self.repo.list_sales(company_id)

    def list_customer_sales(self, customer_id: int) -> list[SaleHeader]:
        self.customers.require(customer_id)
        return self.repo.list_for_customer(customer_id)

    def get_sale(self, sale_id: int) -> SaleDetail:
        header = self.repo.require(sale_id)
        return SaleDetail(
            header=header,
            items=self.repo.list_items(sale_id),
            payments=self.payments.list_payments(sale_id),
            returns=self.repo.list_returns(sale_id),
        )

    # ---------------------------------------------------------------------
    # CREATE
    # ---------------------------------------------------------------------
    def create_sale(
        self,
        company_id: int,
        items: Iterable[Mapping],
        customer_id: Optional[int] = None,
        payment_type: str = "cash",
        notes: Optional[str] = None,
        sale_date=None,
        status: Optional[str] = None,
    ) -> SaleDetail:
        """
        Allocate every line (FIFO unless the line names its batches), then
        post revenue and cost. Cash and bank sales are paid on the spot;
        cod sales start unpaid.
        """
        self.companies.require(company_id)
        if customer_id is not None:
            customer = self.customers.require(customer_id)
            if customer.company_id != company_id:
                raise ValidationError("Customer belongs to another company")
        payment_type = _parse_payment_type(payment_type, SALE_PAYMENT_TYPES, "cash")
        entry = parse_status(SaleStatus, status, SaleStatus.COMPLETED)
        if entry not in SALE_ENTRY_STATES:
            raise ValidationError(f"A sale cannot be created as {entry.value}")
        date = _parse_date(sale_date)
        lines = self._validate_lines(company_id, items)
        total = sum((l.unit_price * l.quantity for l in lines), ZERO)
        paid = total if payment_type in PREPAID_TYPES else ZERO

        with company_lock(company_id), transaction(self.conn, "create sale"):
            sale_id = self.repo.create_header(
                company_id=company_id,
                customer_id=customer_id,
                sale_date=date,
                total_amount=total,
                paid_amount=paid,
                status=entry.value,
                payment_type=payment_type,
                notes=notes,
            )
            cost = ZERO
            for line in lines:
                allocations = self.allocator.allocate(
                    line.product.product_id, line.quantity, line.strategy, line.batches
                )
                item_id = self.repo.add_item(
                    sale_id,
                    product_id=line.product.product_id,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                )
                for a in allocations:
                    self.repo.add_allocation(
                        item_id, batch_id=a.batch_id, quantity=a.quantity, unit_cost=a.unit_cost
                    )
                cost += total_cost(allocations)

            header = self.repo.require(sale_id)
            revenue_txn = self.posting.sale(header)
            cost_txn = self.posting.sale_cost(header, cost)
            self.repo.set_postings(
                sale_id,
                revenue_transaction_id=revenue_txn.transaction_id if revenue_txn else None,
                cost_transaction_id=cost_txn.transaction_id if cost_txn else None,
            )

        _log.info("Created sale %s total=%s cost=%s (%s)", header.sale_number, total, cost, payment_type)
        return self.get_sale(sale_id)

    def _validate_lines(self, company_id: int, items: Iterable[Mapping]) -> list[_Line]:
        items = list(items or [])
        if not items:
            raise ValidationError("At least one item is required")
        lines = []
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
            if price < ZERO:
                raise ValidationError(f"Item {idx}: unit price cannot be negative")

            batches = None
            strategy = AllocationStrategy.FIFO
            if raw.get("batches"):
                strategy = AllocationStrategy.EXPLICIT
                batches = []
                for b in raw["batches"]:
                    if b.get("batch_id") is None:
                        raise ValidationError(f"Item {idx}: batch is required for each batch quantity")
                    batches.append((_parse_batch_id(b["batch_id"], f"Item {idx}"), b.get("quantity")))
            elif raw.get("batch_id") is not None:
                strategy = AllocationStrategy.EXPLICIT
                batches = [(_parse_batch_id(raw["batch_id"], f"Item {idx}"), qty)]
            lines.append(_Line(product, qty, price, strategy, batches))
        return lines

    # ---------------------------------------------------------------------
    # STATUS
    # ---------------------------------------------------------------------
    def complete_sale(self, sale_id: int) -> SaleDetail:
        header = self.repo.require(sale_id)
        with company_lock(header.company_id), transaction(self.conn, "complete sale"):
            header = self.repo.require(sale_id)
            target = ensure_transition(
                SALE_TRANSITIONS, SaleStatus(header.status), SaleStatus.COMPLETED, "sale"
            )
            self.repo.set_status(sale_id, target.value)
        _log.info("Completed sale %s", header.sale_number)
        return self.get_sale(sale_id)

    # ---------------------------------------------------------------------
    # PAYMENTS
    # ---------------------------------------------------------------------
    def add_sale_payment(
        self,
        sale_id: int,
        amount,
        payment_type: str = "cash",
        notes: Optional[str] = None,
        payment_date=None,
    ) -> SaleDetail:
        """0 < amount <= remaining balance. Posts Dr Cash | Bank / Cr Accounts Receivable."""
        header = self.repo.require(sale_id)
        payment_type = _parse_payment_type(payment_type, PAYMENT_METHODS, "cash")
        try:
            amount = to_money(amount)
        except ValueError as e:
            raise ValidationError("Payment amount must be a number") from e
        if amount <= ZERO:
            raise ValidationError("Payment amount must be greater than zero")
        date = _parse_date(payment_date)

        with company_lock(header.company_id), transaction(self.conn, "sale payment"):
            header = self.repo.require(sale_id)
            remaining = header.remaining_balance
            if amount > remaining:
                raise ValidationError(
                    f"Payment amount ({amount:.2f}) cannot exceed remaining balance ({remaining:.2f})"
                )
            txn = self.posting.sale_payment(header, amount, payment_type, date)
            self.payments.record_payment(
                sale_id,
                amount=amount,
                payment_type=payment_type,
                payment_date=date,
                notes=notes,
                transaction_id=txn.transaction_id,
            )
            self.repo.set_paid_amount(sale_id, header.paid_amount + amount)

        _log.info("Payment %s on sale %s (%s)", amount, header.sale_number, payment_type)
        return self.get_sale(sale_id)

    # ---------------------------------------------------------------------
    # RETURNS
    # ---------------------------------------------------------------------
    def return_sale(self, sale_id: int, notes: Optional[str] = None, return_date=None) -> SaleDetail:
        """Return everything not yet returned to the batches it came from."""
        header = self.repo.require(sale_id)
        date = _parse_date(return_date)
        with company_lock(header.company_id), transaction(self.conn, "return sale"):
            header = self.repo.require(sale_id)
            current = SaleStatus(header.status)
            ensure_transition(SALE_TRANSITIONS, current, SaleStatus.RETURNED, "sale")
            items = self.repo.list_items(sale_id)
            pieces = [
                _ReturnPiece(item, a, a.outstanding)
                for item in items
                for a in item.allocations
                if a.outstanding > 0
            ]
            _, cost = self._release(pieces)
            value = header.total_amount - header.returned_amount

            if current is SaleStatus.COMPLETED:
                # nothing returned before: undo the original postings one for one
                for txn_id in (header.revenue_transaction_id, header.cost_transaction_id):
                    if txn_id is not None:
                        self.posting.reverse(txn_id, f"Sale {header.sale_number} returned", date)
            else:
                self.posting.sale_return(header, value, date)
                self.posting.cost_return(header, cost, date)

            self.repo.record_return(
                sale_id,
                kind="full",
                amount=value,
                cost_amount=cost,
                return_date=date,
                lines=[(p.allocation.allocation_id, p.quantity) for p in pieces],
                notes=notes,
            )
            self._settle_full_return(header, date)
            self.repo.set_status(sale_id, SaleStatus.RETURNED.value)

        _log.info("Returned sale %s value=%s", header.sale_number, value)
        return self.get_sale(sale_id)

    def partial_return(
        self,
        sale_id: int,
        lines: Iterable[Mapping],
        notes: Optional[str] = None,
        return_date=None,
    ) -> SaleDetail:
        """
        Return part of a sale. Each line is {item_id, quantity[, batch_id]};
        without a batch the units go back newest allocation first.
        """
        header = self.repo.require(sale_id)
        date = _parse_date(return_date)
        requested = list(lines or [])
        if not requested:
            raise ValidationError("At least one item to return is required")

        with company_lock(header.company_id), transaction(self.conn, "partial return"):
            header = self.repo.require(sale_id)
            ensure_transition(
                SALE_TRANSITIONS, SaleStatus(header.status), SaleStatus.PARTIAL_RETURN, "sale"
            )
            pieces = self._plan_partial(sale_id, requested)
            value, cost = self._release(pieces)
            self.posting.sale_return(header, value, date)
            self.posting.cost_return(header, cost, date)
            self.repo.record_return(
                sale_id,
                kind="partial",
                amount=value,
                cost_amount=cost,
                return_date=date,
                lines=[(p.allocation.allocation_id, p.quantity) for p in pieces],
                notes=notes,
            )

            returned = header.returned_amount + value
            self.repo.set_returned_amount(sale_id, returned)
            if nothing_left_to_return(self.conn, sale_id):
                self._settle_full_return(header, date)
                self.repo.set_status(sale_id, SaleStatus.RETURNED.value)
            else:
                if header.payment_type in PREPAID_TYPES:
                    self.repo.set_paid_amount(sale_id, clamp_non_negative(header.paid_amount - value))
                self.repo.set_status(sale_id, SaleStatus.PARTIAL_RETURN.value)

        _log.info("Partial return on sale %s value=%s", header.sale_number, value)
        return self.get_sale(sale_id)

    def _plan_partial(self, sale_id: int, requested: list[Mapping]) -> list[_ReturnPiece]:
        items = {i.item_id: i for i in self.repo.list_items(sale_id)}
        returnable = get_returnable_quantities(self.conn, sale_id)
        claimed: dict[int, int] = {}
        asked: dict[int, int] = {}
        pieces: list[_ReturnPiece] = []
        for idx, raw in enumerate(requested, start=1):
            ok, item_id = try_parse_int(raw.get("item_id"))
            if not ok or item_id not in items:
                raise ValidationError(f"Line {idx}: item does not belong to this sale")
            item = items[item_id]
            ok, qty = try_parse_int(raw.get("quantity"))
            if not ok or qty <= 0:
                raise ValidationError(f"Line {idx}: quantity must be a whole number greater than zero")
            asked[item.item_id] = asked.get(item.item_id, 0) + qty
            if asked[item.item_id] > returnable[item.item_id]:
                raise ValidationError(
                    f"Cannot return {asked[item.item_id]} of {item.product_name}: "
                    f"only {returnable[item.item_id]} returnable"
                )

            candidates = list(reversed(item.allocations))
            batch_id = raw.get("batch_id")
            if batch_id is not None:
                batch_id = _parse_batch_id(batch_id, f"Line {idx}")
                candidates = [a for a in candidates if a.batch_id == batch_id]
                if not candidates:
                    raise ValidationError(
                        f"Line {idx}: {item.product_name} was not supplied from that batch"
                    )
            remaining = qty
            for a in candidates:
                free = a.outstanding - claimed.get(a.allocation_id, 0)
                if free <= 0:
                    continue
                take = min(free, remaining)
                pieces.append(_ReturnPiece(item, a, take))
                claimed[a.allocation_id] = claimed.get(a.allocation_id, 0) + take
                remaining -= take
                if remaining == 0:
                    break
            if remaining:
                raise ValidationError(
                    f"Line {idx}: only {qty - remaining} of {item.product_name} can be returned to that batch"
                )
        return pieces

    def _release(self, pieces: list[_ReturnPiece]) -> tuple[Decimal, Decimal]:
        """Put stock back on its source batches; returns (sale value, cost) of the pieces."""
        value = ZERO
        cost = ZERO
        for p in pieces:
            self.allocator.release(p.allocation.batch_id, p.quantity)
            self.repo.mark_returned(p.allocation.allocation_id, p.item.item_id, p.quantity)
            value += p.item.unit_price * p.quantity
            cost += p.allocation.unit_cost * p.quantity
        return value, cost

    def _settle_full_return(self, header: SaleHeader, date: str) -> None:
        """
        The whole sale is back: returned_amount becomes the total and the
        customer gets back what they paid. Cash and bank refunds already went
        out through the return postings; cod payments are reversed here.
        """
        self.repo.set_returned_amount(header.sale_id, header.total_amount)
        if header.payment_type not in PREPAID_TYPES:
            payment_txns = [
                self.transactions.require(p.transaction_id)
                for p in self.payments.list_payments(header.sale_id)
                if p.transaction_id is not None
            ]
            for t in live_postings(payment_txns):
                self.posting.reverse(t.transaction_id, f"Refund on returned sale {header.sale_number}", date)
        self.repo.set_paid_amount(header.sale_id, ZERO)

    # ---------------------------------------------------------------------
    # DELETE
    # ---------------------------------------------------------------------
    def delete_sale(self, sale_id: int) -> None:
        """
        Put every unit still out back on its batch, reverse every live
        posting of the sale, and remove the sale. Ledger rows stay for audit.
        """
        header = self.repo.require(sale_id)
        with company_lock(header.company_id), transaction(self.conn, "delete sale"):
            header = self.repo.require(sale_id)
            pieces = [
                _ReturnPiece(item, a, a.outstanding)
                for item in self.repo.list_items(sale_id)
                for a in item.allocations
                if a.outstanding > 0
            ]
            for p in pieces:
                self.allocator.release(p.allocation.batch_id, p.quantity)
            self.posting.reverse_all(
                self.transactions.list_for_sale(sale_id),
                f"Sale {header.sale_number} deleted",
                today_str(),
            )
            self.repo.delete(sale_id)
        _log.info("Deleted sale %s", header.sale_number)
