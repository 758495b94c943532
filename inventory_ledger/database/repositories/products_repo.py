# inventory_ledger/database/repositories/products_repo.py
from dataclasses import dataclass
from typing import Optional
import sqlite3

from ...errors import NotFoundError, ValidationError
from ...utils.validators import non_empty


@dataclass
class Product:
    product_id: int | None
    company_id: int
    sku: str
    name: str
    description: str | None
    category: str | None
    vendor_id: int | None
    total_quantity: int = 0
    available_quantity: int = 0


# stock totals ride along through the batches(product_id) index
_SELECT = """
    SELECT p.product_id, p.company_id, p.sku, p.name, p.description, p.category, p.vendor_id,
           COALESCE((SELECT SUM(b.quantity) FROM batches b WHERE b.product_id = p.product_id), 0)
               AS total_quantity,
           COALESCE((SELECT SUM(b.available_quantity) FROM batches b WHERE b.product_id = p.product_id), 0)
               AS available_quantity
    FROM products p
"""


class ProductsRepo:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.conn.row_factory = sqlite3.Row

    def list_products(self, company_id: int) -> list[Product]:
        rows = self.conn.execute(
            _SELECT + " WHERE p.company_id=? ORDER BY p.name COLLATE NOCASE, p.product_id",
            (company_id,),
        ).fetchall()
        return [Product(**dict(r)) for r in rows]

    def get(self, product_id: int) -> Product | None:
        r = self.conn.execute(_SELECT + " WHERE p.product_id=?", (product_id,)).fetchone()
        return Product(**dict(r)) if r else None

    def require(self, product_id: int) -> Product:
        p = self.get(product_id)
        if p is None:
            raise NotFoundError("Product", product_id)
        return p

    def get_by_sku(self, company_id: int, sku: str) -> Product | None:
        r = self.conn.execute(
            _SELECT + " WHERE p.company_id=? AND p.sku=?", (company_id, sku)
        ).fetchone()
        return Product(**dict(r)) if r else None

    def create(
        self,
        company_id: int,
        sku: str,
        name: str,
        description: Optional[str] = None,
        category: Optional[str] = None,
        vendor_id: Optional[int] = None,
    ) -> int:
        if not non_empty(sku):
            raise ValidationError("SKU is required")
        if not non_empty(name):
            raise ValidationError("Product name is required")
        sku = sku.strip()
        if self.get_by_sku(company_id, sku) is not None:
            raise ValidationError(f"Product with SKU {sku} already exists")
        cur = self.conn.execute(
            """
            INSERT INTO products(company_id, sku, name, description, category, vendor_id)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (company_id, sku, name.strip(), description, category, vendor_id),
        )
        return int(cur.lastrowid)

    def update(
        self,
        product_id: int,
        *,
        sku: Optional[str] = None,
        name: Optional[str] = None,
        description: Optional[str] = None,
        category: Optional[str] = None,
        vendor_id: Optional[int] = None,
    ) -> None:
        """
        Descriptive fields are always editable. The SKU is locked once stock
        has been received against the product.
        """
        p = self.require(product_id)
        if sku is not None and sku.strip() != p.sku:
            sku = sku.strip()
            if not non_empty(sku):
                raise ValidationError("SKU is required")
            if self.has_batches(product_id):
                raise ValidationError("SKU cannot change once batches reference the product")
            if self.get_by_sku(p.company_id, sku) is not None:
                raise ValidationError(f"Product with SKU {sku} already exists")
        else:
            sku = p.sku
        if name is not None and not non_empty(name):
            raise ValidationError("Product name is required")
        self.conn.execute(
            """
            UPDATE products
               SET sku=?, name=?, description=?, category=?, vendor_id=?
             WHERE product_id=?
            """,
            (
                sku,
                name.strip() if name is not None else p.name,
                description if description is not None else p.description,
                category if category is not None else p.category,
                vendor_id if vendor_id is not None else p.vendor_id,
                product_id,
            ),
        )

    def set_vendor(self, product_id: int, vendor_id: int) -> None:
        self.conn.execute(
            "UPDATE products SET vendor_id=? WHERE product_id=?", (vendor_id, product_id)
        )

    def has_batches(self, product_id: int) -> bool:
        r = self.conn.execute(
            "SELECT 1 FROM batches WHERE product_id=? LIMIT 1", (product_id,)
        ).fetchone()
        return r is not None

    def delete(self, product_id: int) -> None:
        self.require(product_id)
        if self.has_batches(product_id):
            raise ValidationError("Cannot delete product with existing batches")
        used = self.conn.execute(
            """
            SELECT 1 FROM sale_items WHERE product_id=?
            UNION ALL
            SELECT 1 FROM purchase_items WHERE product_id=?
            LIMIT 1
            """,
            (product_id, product_id),
        ).fetchone()
        if used:
            raise ValidationError("Cannot delete product referenced by sales or purchases")
        self.conn.execute("DELETE FROM products WHERE product_id=?", (product_id,))
