import sqlite3

from ...constants import DEFAULT_ACCOUNTS


def seed_chart_of_accounts(conn: sqlite3.Connection, company_id: int) -> int:
    """
    Insert any missing default account for the company. Safe to run repeatedly.
    Returns the number of accounts created. No commit; caller owns the transaction.
    """
    created = 0
    for code, name, acc_type, parent_code in DEFAULT_ACCOUNTS:
        exists = conn.execute(
            "SELECT 1 FROM accounts WHERE company_id=? AND code=?", (company_id, code)
        ).fetchone()
        if exists:
            continue
        parent_id = None
        if parent_code:
            row = conn.execute(
                "SELECT account_id FROM accounts WHERE company_id=? AND code=?",
                (company_id, parent_code),
            ).fetchone()
            parent_id = row["account_id"] if row else None
        conn.execute(
            """
            INSERT INTO accounts(company_id, code, name, type, parent_id, balance)
            VALUES (?, ?, ?, ?, ?, '0.0000')
            """,
            (company_id, code, name, acc_type, parent_id),
        )
        created += 1
    return created
