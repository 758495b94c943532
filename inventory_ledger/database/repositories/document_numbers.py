"""
Sequential document numbers (SALE-0001, PURCH-0001).

The counter lives in `document_counters` so a deleted document's number is
never handed out again. `floor` is the highest number already on file, which
covers rows written before the counter existed. No commit here; the caller's
transaction owns the increment, so a rolled-back create leaves no gap.
"""
from __future__ import annotations

import sqlite3


def next_document_number(
    conn: sqlite3.Connection, company_id: int, kind: str, prefix: str, floor: int = 0
) -> str:
    row = conn.execute(
        "SELECT last_value FROM document_counters WHERE company_id=? AND kind=?",
        (company_id, kind),
    ).fetchone()
    last = max(int(row[0]) if row else 0, floor)
    value = last + 1
    conn.execute(
        """
        INSERT INTO document_counters(company_id, kind, last_value) VALUES (?, ?, ?)
        ON CONFLICT(company_id, kind) DO UPDATE SET last_value=excluded.last_value
        """,
        (company_id, kind, value),
    )
    return f"{prefix}{value:04d}"
