# tests/conftest.py
# ---------------------------------------------------------------------
# Ground rules:
# - Every test gets its own SQLite file under tmp_path (schema applied by
#   get_connection, autocommit connection, foreign_keys ON)
# - One company with the default chart of accounts, one vendor, one
#   customer and two products are seeded per test
# - Stock is received through the workflows so the ledger stays balanced
# ---------------------------------------------------------------------
from __future__ import annotations

from decimal import Decimal
import sqlite3

import pytest

from inventory_ledger.database import get_connection, transaction
from inventory_ledger.database.repositories.accounts_repo import AccountsRepo
from inventory_ledger.database.repositories.companies_repo import CompaniesRepo
from inventory_ledger.database.repositories.customers_repo import CustomersRepo
from inventory_ledger.database.repositories.products_repo import ProductsRepo
from inventory_ledger.database.repositories.vendors_repo import VendorsRepo
from inventory_ledger.modules.inventory.controller import InventoryController


# ---------- Per-test database ----------
@pytest.fixture()
def conn(tmp_path) -> sqlite3.Connection:
    con = get_connection(tmp_path / "ledger.db")
    try:
        yield con
    finally:
        con.close()


# ---------- Seed ----------
@pytest.fixture()
def ids(conn: sqlite3.Connection) -> dict:
    """Common IDs used throughout the workflow tests."""
    with transaction(conn, "seed"):
        company_id = CompaniesRepo(conn).create("Acme Traders")
        vendor_id = VendorsRepo(conn).create(company_id, "Vendor X", phone="555-0100")
        customer_id = CustomersRepo(conn).create(company_id, "Customer Y", area_code="042")
        products = ProductsRepo(conn)
        prod_a = products.create(company_id, "WA-1", "Widget A", category="widgets")
        prod_b = products.create(company_id, "WB-1", "Widget B", category="widgets")
    return {
        "company_id": company_id,
        "vendor_id": vendor_id,
        "customer_id": customer_id,
        "prod_A": prod_a,
        "prod_B": prod_b,
    }


@pytest.fixture()
def balance(conn: sqlite3.Connection, ids: dict):
    """balance("1200") -> cached balance of that account code as Decimal."""
    repo = AccountsRepo(conn)

    def _get(code: str) -> Decimal:
        return repo.get_by_code(ids["company_id"], code).balance

    return _get


@pytest.fixture()
def stocked(conn: sqlite3.Connection, ids: dict) -> dict:
    """
    Widget A in two priced batches:
      B1  qty 5  cost 10  manufactured 2024-01-01
      B2  qty 5  cost 12  manufactured 2024-02-01
    Both are valued into Inventory against Owner's Equity.
    """
    inv = InventoryController(conn)
    b1 = inv.create_batch(ids["prod_A"], 5, "10", "B1", "2024-01-01", "2026-01-01")
    b2 = inv.create_batch(ids["prod_A"], 5, "12", "B2", "2024-02-01", "2026-06-01")
    return {**ids, "B1": b1.batch_id, "B2": b2.batch_id}


@pytest.fixture()
def available(conn: sqlite3.Connection):
    """available(batch_id) -> current available_quantity of the batch."""
    def _get(batch_id: int) -> int:
        r = conn.execute(
            "SELECT available_quantity FROM batches WHERE batch_id=?", (batch_id,)
        ).fetchone()
        return int(r["available_quantity"])

    return _get
