# database/__init__.py
from __future__ import annotations

from contextlib import contextmanager
from itertools import count
from pathlib import Path
import sqlite3
from typing import Iterator

from ..config import DB_PATH
from ..constants import SCHEMA_VERSION
from ..errors import DomainError
from ..utils.loggers import get_logger
from . import schema as schema_module
from .versioning import check_version

_log = get_logger(__name__)
_savepoints = count(1)


def get_connection(db_path: Path | str | None = None) -> sqlite3.Connection:
    """
    Returns a sqlite3.Connection with:
      - WAL mode
      - foreign_keys ON
      - row_factory = sqlite3.Row
      - autocommit mode (isolation_level=None); compound operations open
        their own transaction through `transaction()`
    Ensures the schema is applied idempotently.
    """
    path = Path(db_path) if db_path is not None else DB_PATH
    path.parent.mkdir(parents=True, exist_ok=True)

    # Always apply the schema (idempotent: uses CREATE IF NOT EXISTS / DROP TRIGGER IF EXISTS)
    schema_module.init_schema(path)

    conn = sqlite3.connect(path, isolation_level=None, timeout=30.0)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    conn.execute("PRAGMA journal_mode = WAL;")

    try:
        check_version(conn, SCHEMA_VERSION)
    except DomainError:
        conn.close()
        raise
    return conn


@contextmanager
def transaction(conn: sqlite3.Connection, label: str = "operation") -> Iterator[sqlite3.Connection]:
    """
    One all-or-nothing unit of work.

    Outermost use issues BEGIN IMMEDIATE so the write lock is taken before the
    first read; nested use becomes a SAVEPOINT that rolls back on its own.
    Any exception rolls back and propagates.
    """
    if conn.in_transaction:
        name = f"sp_{next(_savepoints)}"
        conn.execute(f"SAVEPOINT {name}")
        try:
            yield conn
        except BaseException:
            conn.execute(f"ROLLBACK TO SAVEPOINT {name}")
            conn.execute(f"RELEASE SAVEPOINT {name}")
            raise
        conn.execute(f"RELEASE SAVEPOINT {name}")
        return

    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except DomainError as e:
        conn.rollback()
        _log.info("ROLLBACK %s: %s", label, e)
        raise
    except BaseException:
        conn.rollback()
        _log.exception("ROLLBACK %s due to unexpected error", label)
        raise
    conn.commit()


__all__ = [
    "get_connection",
    "transaction",
]
