"""
The database records the schema version that last touched it. Opening a file
stamped by a newer release is refused instead of silently running old code
against tables it does not know.
"""
from __future__ import annotations

import sqlite3

from ..constants import TABLE_SCHEMA_VERSION
from ..errors import ValidationError


def _version_tuple(version: str) -> tuple[int, ...]:
    return tuple(int(part) for part in version.split("."))


def _ensure_table(conn: sqlite3.Connection) -> None:
    conn.execute(f"""
        CREATE TABLE IF NOT EXISTS {TABLE_SCHEMA_VERSION}(
            id          INTEGER PRIMARY KEY CHECK (id=1),
            version     TEXT NOT NULL,
            applied_at  TEXT NOT NULL DEFAULT (datetime('now'))
        );
    """)


def get_current_version(conn: sqlite3.Connection) -> str | None:
    _ensure_table(conn)
    row = conn.execute(f"SELECT version FROM {TABLE_SCHEMA_VERSION} WHERE id=1;").fetchone()
    return row["version"] if row else None


def set_current_version(conn: sqlite3.Connection, version: str) -> None:
    _ensure_table(conn)
    conn.execute(
        f"""
        INSERT INTO {TABLE_SCHEMA_VERSION}(id, version) VALUES (1, ?)
        ON CONFLICT(id) DO UPDATE SET version=excluded.version, applied_at=datetime('now');
        """,
        (version,),
    )


def check_version(conn: sqlite3.Connection, expected: str) -> str:
    """
    Stamp a fresh database with `expected`, bump an older stamp, and reject a
    database written by a newer release. Returns the version now recorded.
    """
    current = get_current_version(conn)
    if current is not None and _version_tuple(current) > _version_tuple(expected):
        raise ValidationError(
            f"Database schema {current} is newer than this release ({expected})"
        )
    if current != expected:
        set_current_version(conn, expected)
    return expected
