from dataclasses import dataclass
import sqlite3
from typing import Optional

from ...errors import NotFoundError, ValidationError
from ...utils.validators import non_empty


@dataclass
class Vendor:
    vendor_id: int | None
    company_id: int
    name: str
    email: str | None
    phone: str | None
    address: str | None


_COLUMNS = "vendor_id, company_id, name, email, phone, address"


class VendorsRepo:
    def __init__(self, conn: sqlite3.Connection):
        # ensure rows behave like dicts/tuples
        conn.row_factory = sqlite3.Row
        self.conn = conn

    def list_vendors(self, company_id: int) -> list[Vendor]:
        rows = self.conn.execute(
            f"SELECT {_COLUMNS} FROM vendors WHERE company_id=? ORDER BY name COLLATE NOCASE, vendor_id",
            (company_id,),
        ).fetchall()
        return [Vendor(**dict(r)) for r in rows]

    def get(self, vendor_id: int) -> Vendor | None:
        r = self.conn.execute(
            f"SELECT {_COLUMNS} FROM vendors WHERE vendor_id=?", (vendor_id,)
        ).fetchone()
        return Vendor(**dict(r)) if r else None

    def require(self, vendor_id: int) -> Vendor:
        v = self.get(vendor_id)
        if v is None:
            raise NotFoundError("Vendor", vendor_id)
        return v

    def create(
        self,
        company_id: int,
        name: str,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        address: Optional[str] = None,
    ) -> int:
        if not non_empty(name):
            raise ValidationError("Vendor name is required")
        cur = self.conn.execute(
            "INSERT INTO vendors(company_id, name, email, phone, address) VALUES (?, ?, ?, ?, ?)",
            (company_id, name.strip(), email, phone, address),
        )
        return int(cur.lastrowid)

    def update(
        self,
        vendor_id: int,
        name: str,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        address: Optional[str] = None,
    ) -> None:
        self.require(vendor_id)
        if not non_empty(name):
            raise ValidationError("Vendor name is required")
        self.conn.execute(
            "UPDATE vendors SET name=?, email=?, phone=?, address=? WHERE vendor_id=?",
            (name.strip(), email, phone, address, vendor_id),
        )

    def has_purchases(self, vendor_id: int) -> bool:
        r = self.conn.execute(
            "SELECT 1 FROM purchases WHERE vendor_id=? LIMIT 1", (vendor_id,)
        ).fetchone()
        return r is not None

    def delete(self, vendor_id: int) -> None:
        self.require(vendor_id)
        if self.has_purchases(vendor_id):
            raise ValidationError("Cannot delete vendor with existing purchases")
        self.conn.execute("DELETE FROM vendors WHERE vendor_id=?", (vendor_id,))
