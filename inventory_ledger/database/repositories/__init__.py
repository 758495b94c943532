# inventory_ledger/database/repositories/__init__.py
"""
Repository layer public API.

Usage:
    from inventory_ledger.database.repositories import (
        AccountsRepo, Account,
        TransactionsRepo, LedgerTransaction,
        ProductsRepo, Product,
        BatchesRepo, Batch,
        PurchasesRepo, PurchaseHeader, PurchaseItem, PurchasePaymentsRepo,
        SalesRepo, SaleHeader, SaleItem, SaleAllocation, SalePaymentsRepo,
        CustomersRepo, Customer, VendorsRepo, Vendor,
        CompaniesRepo, Company,
    )

Repositories never commit; wrap calls in database.transaction().
"""

from .accounts_repo import ACCOUNT_TYPES, Account, AccountsRepo, balance_effect
from .batches_repo import Batch, BatchesRepo
from .companies_repo import CompaniesRepo, Company
from .customers_repo import Customer, CustomersRepo
from .products_repo import Product, ProductsRepo
from .purchase_payments_repo import PurchasePayment, PurchasePaymentsRepo
from .purchases_repo import PurchaseHeader, PurchaseItem, PurchasesRepo
from .sale_payments_repo import SalePayment, SalePaymentsRepo
from .sales_repo import SaleAllocation, SaleHeader, SaleItem, SalesRepo
from .transactions_repo import LedgerTransaction, TransactionsRepo
from .vendors_repo import Vendor, VendorsRepo

__all__ = [
    "ACCOUNT_TYPES",
    "Account",
    "AccountsRepo",
    "balance_effect",
    "Batch",
    "BatchesRepo",
    "CompaniesRepo",
    "Company",
    "Customer",
    "CustomersRepo",
    "Product",
    "ProductsRepo",
    "PurchasePayment",
    "PurchasePaymentsRepo",
    "PurchaseHeader",
    "PurchaseItem",
    "PurchasesRepo",
    "SalePayment",
    "SalePaymentsRepo",
    "SaleAllocation",
    "SaleHeader",
    "SaleItem",
    "SalesRepo",
    "LedgerTransaction",
    "TransactionsRepo",
    "Vendor",
    "VendorsRepo",
]
