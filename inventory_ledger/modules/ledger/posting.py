"""
modules/ledger/posting.py

Turns commercial events into ledger postings. Each method picks the
debit/credit pair for one kind of event and hands it to the Ledger.

    purchase            Dr Inventory            Cr Cash | Bank | Accounts Payable
    purchase payment    Dr Accounts Payable     Cr Cash | Bank
    sale                Dr Cash | Bank | A/R    Cr Sales Revenue
    sale cost           Dr Cost of Goods Sold   Cr Inventory
    sale payment        Dr Cash | Bank          Cr Accounts Receivable
    sale return         Dr Sales Revenue        Cr Cash | Bank | A/R
    cost return         Dr Inventory            Cr Cost of Goods Sold
    opening stock       Dr Inventory            Cr Owner's Equity
"""
from __future__ import annotations

from decimal import Decimal
import sqlite3
from typing import Iterable, Optional

from ...constants import (
    BANK_ACCOUNT,
    CASH_ACCOUNT,
    COGS_ACCOUNT,
    EQUITY_ACCOUNT,
    INVENTORY_ACCOUNT,
    PAYABLE_ACCOUNT,
    RECEIVABLE_ACCOUNT,
    SALES_REVENUE_ACCOUNT,
)
from ...database.repositories.accounts_repo import Account, AccountsRepo
from ...database.repositories.purchases_repo import PurchaseHeader
from ...database.repositories.sales_repo import SaleHeader
from ...database.repositories.transactions_repo import LedgerTransaction
from ...errors import ValidationError
from ...utils.money import ZERO, to_money
from .ledger import Ledger, live_postings

# settlement account per payment type
PURCHASE_CREDIT_ACCOUNTS = {"cash": CASH_ACCOUNT, "bank": BANK_ACCOUNT, "credit": PAYABLE_ACCOUNT}
SALE_DEBIT_ACCOUNTS = {"cash": CASH_ACCOUNT, "bank": BANK_ACCOUNT, "cod": RECEIVABLE_ACCOUNT}
PAYMENT_ACCOUNTS = {"cash": CASH_ACCOUNT, "bank": BANK_ACCOUNT}


class PostingEngine:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.ledger = Ledger(conn)
        self.accounts = AccountsRepo(conn)

    def account_for(self, company_id: int, code: str) -> Account:
        acc = self.accounts.get_by_code(company_id, code)
        if acc is None:
            raise ValidationError(f"Required account {code} is missing from the chart of accounts")
        return acc

    def _post(
        self,
        company_id: int,
        debit_code: str,
        credit_code: str,
        amount: Decimal,
        description: str,
        date,
        *,
        sale_id: Optional[int] = None,
        purchase_id: Optional[int] = None,
    ) -> Optional[LedgerTransaction]:
        amount = to_money(amount)
        if amount == ZERO:
            return None
        debit = self.account_for(company_id, debit_code)
        credit = self.account_for(company_id, credit_code)
        return self.ledger.post(
            debit.account_id, credit.account_id, amount, description, date,
            sale_id=sale_id, purchase_id=purchase_id,
        )

    # ---------------------------------------------------------------------
    # purchases
    # ---------------------------------------------------------------------
    def purchase(self, header: PurchaseHeader) -> Optional[LedgerTransaction]:
        return self._post(
            header.company_id,
            INVENTORY_ACCOUNT,
            PURCHASE_CREDIT_ACCOUNTS[header.payment_type],
            header.total_amount,
            f"Purchase {header.purchase_number}",
            header.purchase_date,
            purchase_id=header.purchase_id,
        )

    def purchase_payment(self, header: PurchaseHeader, amount: Decimal, payment_type: str, date) -> LedgerTransaction:
        return self._post(
            header.company_id,
            PAYABLE_ACCOUNT,
            PAYMENT_ACCOUNTS[payment_type],
            amount,
            f"Payment for purchase {header.purchase_number}",
            date,
            purchase_id=header.purchase_id,
        )

    # ---------------------------------------------------------------------
    # sales
    # ---------------------------------------------------------------------
    def sale(self, header: SaleHeader) -> Optional[LedgerTransaction]:
        return self._post(
            header.company_id,
            SALE_DEBIT_ACCOUNTS[header.payment_type],
            SALES_REVENUE_ACCOUNT,
            header.total_amount,
            f"Sale {header.sale_number}",
            header.sale_date,
            sale_id=header.sale_id,
        )

    def sale_cost(self, header: SaleHeader, cost: Decimal) -> Optional[LedgerTransaction]:
        return self._post(
            header.company_id,
            COGS_ACCOUNT,
            INVENTORY_ACCOUNT,
            cost,
            f"Cost of goods sold for {header.sale_number}",
            header.sale_date,
            sale_id=header.sale_id,
        )

    def sale_payment(self, header: SaleHeader, amount: Decimal, payment_type: str, date) -> LedgerTransaction:
        return self._post(
            header.company_id,
            PAYMENT_ACCOUNTS[payment_type],
            RECEIVABLE_ACCOUNT,
            amount,
            f"Payment received for sale {header.sale_number}",
            date,
            sale_id=header.sale_id,
        )

    def sale_return(self, header: SaleHeader, amount: Decimal, date) -> Optional[LedgerTransaction]:
        return self._post(
            header.company_id,
            SALES_REVENUE_ACCOUNT,
            SALE_DEBIT_ACCOUNTS[header.payment_type],
            amount,
            f"Return on sale {header.sale_number}",
            date,
            sale_id=header.sale_id,
        )

    def cost_return(self, header: SaleHeader, cost: Decimal, date) -> Optional[LedgerTransaction]:
        return self._post(
            header.company_id,
            INVENTORY_ACCOUNT,
            COGS_ACCOUNT,
            cost,
            f"Returned stock for {header.sale_number}",
            date,
            sale_id=header.sale_id,
        )

    # ---------------------------------------------------------------------
    # stock outside purchases
    # ---------------------------------------------------------------------
    def opening_stock(self, company_id: int, amount: Decimal, batch_number: str, date) -> Optional[LedgerTransaction]:
        return self._post(
            company_id,
            INVENTORY_ACCOUNT,
            EQUITY_ACCOUNT,
            amount,
            f"Opening stock for batch {batch_number}",
            date,
        )

    # ---------------------------------------------------------------------
    # reversal
    # ---------------------------------------------------------------------
    def reverse(self, transaction_id: int, description: Optional[str] = None, date=None) -> LedgerTransaction:
        return self.ledger.reverse(transaction_id, description, date)

    def reverse_all(self, txns: Iterable[LedgerTransaction], reason: str, date=None) -> list[LedgerTransaction]:
        """Reverse every live posting in `txns`; reversals and reversed rows are skipped."""
        out = []
        for t in live_postings(txns):
            out.append(
                self.ledger.reverse(
                    t.transaction_id,
                    f"{reason}: reversal of {t.transaction_number}",
                    date,
                )
            )
        return out
