from __future__ import annotations

from typing import Dict
import sqlite3


def get_returnable_quantities(conn: sqlite3.Connection, sale_id: int) -> Dict[int, int]:
    """
    Remaining returnable quantity per sale item for a given sale.

    Returns a dict mapping item_id -> remaining_qty (clamped to >= 0).
    """
    rows = conn.execute(
        """
        SELECT item_id, quantity, returned_quantity
        FROM sale_items
        WHERE sale_id = ?
        ORDER BY item_id
        """,
        (sale_id,),
    ).fetchall()
    out: Dict[int, int] = {}
    for r in rows:
        out[int(r["item_id"])] = max(0, int(r["quantity"]) - int(r["returned_quantity"]))
    return out


def nothing_left_to_return(conn: sqlite3.Connection, sale_id: int) -> bool:
    return all(q == 0 for q in get_returnable_quantities(conn, sale_id).values())
