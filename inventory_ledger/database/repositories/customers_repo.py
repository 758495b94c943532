from dataclasses import dataclass
import sqlite3
from typing import Optional

from ...errors import NotFoundError, ValidationError
from ...utils.validators import non_empty


@dataclass
class Customer:
    customer_id: int | None
    company_id: int
    name: str
    email: str | None
    phone: str | None
    address: str | None
    area_code: str | None = None


_COLUMNS = "customer_id, company_id, name, email, phone, address, area_code"


class CustomersRepo:
    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn

    def list_customers(self, company_id: int) -> list[Customer]:
        rows = self.conn.execute(
            f"SELECT {_COLUMNS} FROM customers WHERE company_id=? ORDER BY name COLLATE NOCASE, customer_id",
            (company_id,),
        ).fetchall()
        return [Customer(**dict(r)) for r in rows]

    def get(self, customer_id: int) -> Customer | None:
        r = self.conn.execute(
            f"SELECT {_COLUMNS} FROM customers WHERE customer_id=?", (customer_id,)
        ).fetchone()
        return Customer(**dict(r)) if r else None

    def require(self, customer_id: int) -> Customer:
        c = self.get(customer_id)
        if c is None:
            raise NotFoundError("Customer", customer_id)
        return c

    def create(
        self,
        company_id: int,
        name: str,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        address: Optional[str] = None,
        area_code: Optional[str] = None,
    ) -> int:
        if not non_empty(name):
            raise ValidationError("Customer name is required")
        cur = self.conn.execute(
            """
            INSERT INTO customers(company_id, name, email, phone, address, area_code)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (company_id, name.strip(), email, phone, address, area_code),
        )
        return int(cur.lastrowid)

    def update(
        self,
        customer_id: int,
        name: str,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        address: Optional[str] = None,
        area_code: Optional[str] = None,
    ) -> None:
        self.require(customer_id)
        if not non_empty(name):
            raise ValidationError("Customer name is required")
        self.conn.execute(
            """
            UPDATE customers SET name=?, email=?, phone=?, address=?, area_code=?
            WHERE customer_id=?
            """,
            (name.strip(), email, phone, address, area_code, customer_id),
        )

    def has_sales(self, customer_id: int) -> bool:
        r = self.conn.execute(
            "SELECT 1 FROM sales WHERE customer_id=? LIMIT 1", (customer_id,)
        ).fetchone()
        return r is not None

    def delete(self, customer_id: int) -> None:
        self.require(customer_id)
        if self.has_sales(customer_id):
            raise ValidationError("Cannot delete customer with existing sales")
        self.conn.execute("DELETE FROM customers WHERE customer_id=?", (customer_id,))
