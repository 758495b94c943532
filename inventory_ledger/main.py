"""
inventory_ledger/main.py

Command-line entry point for housekeeping on a ledger database:

    python -m inventory_ledger.main init-db
    python -m inventory_ledger.main create-company "Acme Traders"
    python -m inventory_ledger.main recalculate 1
    python -m inventory_ledger.main trial-balance 1

--db points at another database file (defaults to config.DB_PATH).
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

from .config import DB_PATH
from .constants import APP_NAME
from .database import get_connection, transaction
from .database.repositories.companies_repo import CompaniesRepo
from .errors import DomainError
from .modules.ledger.controller import AccountsController
from .utils.helpers import fmt_money
from .utils.loggers import get_logger

_log = get_logger(__name__)


def _progress(done: int, total: int) -> None:
    print(f"  replayed {done}/{total}", file=sys.stderr)


def cmd_init_db(conn, args) -> int:
    print(f"Schema ready at {args.db}")
    return 0


def cmd_create_company(conn, args) -> int:
    repo = CompaniesRepo(conn)
    with transaction(conn, "create company"):
        company_id = repo.create(args.name)
    print(f"Created company {company_id}: {args.name}")
    return 0


def cmd_recalculate(conn, args) -> int:
    result = AccountsController(conn).recalculate(args.company_id, _progress)
    print(result.message)
    return 0


def cmd_trial_balance(conn, args) -> int:
    tb = AccountsController(conn).trial_balance(args.company_id)
    print(f"{'Code':<8}{'Account':<28}{'Debit':>14}{'Credit':>14}")
    for line in tb.lines:
        print(f"{line.code:<8}{line.name[:27]:<28}{fmt_money(line.debit_total):>14}{fmt_money(line.credit_total):>14}")
    print(f"{'':<36}{fmt_money(tb.total_debits):>14}{fmt_money(tb.total_credits):>14}")
    print("Balanced" if tb.is_balanced else "NOT BALANCED")
    return 0 if tb.is_balanced else 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="inventory_ledger", description=APP_NAME)
    parser.add_argument("--db", type=Path, default=DB_PATH, help="database file")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("init-db", help="create or upgrade the schema")
    p.set_defaults(func=cmd_init_db)

    p = sub.add_parser("create-company", help="add a company with the default chart of accounts")
    p.add_argument("name")
    p.set_defaults(func=cmd_create_company)

    p = sub.add_parser("recalculate", help="rebuild cached account balances from the ledger")
    p.add_argument("company_id", type=int)
    p.set_defaults(func=cmd_recalculate)

    p = sub.add_parser("trial-balance", help="print debit and credit totals per account")
    p.add_argument("company_id", type=int)
    p.set_defaults(func=cmd_trial_balance)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    conn = get_connection(args.db)
    try:
        return args.func(conn, args)
    except DomainError as e:
        print(f"error: {e.message}", file=sys.stderr)
        return 1
    except Exception:
        _log.exception("%s failed", args.command)
        return 1
    finally:
        conn.close()


if __name__ == "__main__":
    sys.exit(main())
