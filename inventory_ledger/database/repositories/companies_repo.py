from dataclasses import dataclass
import sqlite3

from ...errors import NotFoundError, ValidationError
from ...utils.validators import non_empty
from ..seeders.default_data import seed_chart_of_accounts


@dataclass
class Company:
    company_id: int | None
    name: str


class CompaniesRepo:
    """Minimal company bootstrap: a row plus its default chart of accounts."""

    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn

    def get(self, company_id: int) -> Company | None:
        r = self.conn.execute(
            "SELECT company_id, name FROM companies WHERE company_id=?", (company_id,)
        ).fetchone()
        return Company(**dict(r)) if r else None

    def require(self, company_id: int) -> Company:
        c = self.get(company_id)
        if c is None:
            raise NotFoundError("Company", company_id)
        return c

    def create(self, name: str, *, seed_accounts: bool = True) -> int:
        if not non_empty(name):
            raise ValidationError("Company name is required")
        cur = self.conn.execute("INSERT INTO companies(name) VALUES (?)", (name.strip(),))
        company_id = int(cur.lastrowid)
        if seed_accounts:
            seed_chart_of_accounts(self.conn, company_id)
        return company_id
