# tests/test_helpers_and_cli.py
from __future__ import annotations

from decimal import Decimal

import pytest

from inventory_ledger.constants import SCHEMA_VERSION
from inventory_ledger.database import get_connection
from inventory_ledger.database.versioning import get_current_version, set_current_version
from inventory_ledger.errors import ValidationError
from inventory_ledger.main import main
from inventory_ledger.modules.status import (
    SALE_TRANSITIONS,
    SaleStatus,
    ensure_transition,
    parse_status,
)
from inventory_ledger.utils.money import money_str, remaining_due_sale, to_money
from inventory_ledger.utils.validators import is_positive_int, try_parse_int, try_parse_money


def test_money_rounds_half_up_to_four_places():
    assert to_money("1.00005") == Decimal("1.0001")
    assert to_money(0.1) == Decimal("0.1000")
    assert money_str(Decimal("2")) == "2.0000"


@pytest.mark.parametrize("value", [None, "", "abc", "NaN", "Infinity"])
def test_money_rejects_non_numbers(value):
    with pytest.raises(ValueError):
        to_money(value)
    assert try_parse_money(value) == (False, None)


def test_remaining_due_never_negative():
    assert remaining_due_sale("100", "30", "0") == Decimal("70")
    assert remaining_due_sale("100", "30", "90") == Decimal("0")


@pytest.mark.parametrize(
    "value, expected",
    [(3, (True, 3)), ("4", (True, 4)), ("5.0", (True, 5)), ("5.5", (False, None)),
     (True, (False, None)), (None, (False, None)), ("x", (False, None))],
)
def test_try_parse_int(value, expected):
    assert try_parse_int(value) == expected


def test_is_positive_int():
    assert is_positive_int("2")
    assert not is_positive_int(0)


def test_status_parsing_and_transitions():
    assert parse_status(SaleStatus, " Completed ") is SaleStatus.COMPLETED
    assert parse_status(SaleStatus, None, SaleStatus.IN_PROGRESS) is SaleStatus.IN_PROGRESS
    with pytest.raises(ValidationError, match="Status must be one of"):
        parse_status(SaleStatus, "shipped")
    assert ensure_transition(
        SALE_TRANSITIONS, SaleStatus.PARTIAL_RETURN, SaleStatus.PARTIAL_RETURN, "sale"
    ) is SaleStatus.PARTIAL_RETURN
    with pytest.raises(ValidationError, match="from completed to in_progress"):
        ensure_transition(SALE_TRANSITIONS, SaleStatus.COMPLETED, SaleStatus.IN_PROGRESS, "sale")


def test_cli_commands(tmp_path, capsys):
    db = str(tmp_path / "cli.db")
    assert main(["--db", db, "init-db"]) == 0
    assert main(["--db", db, "create-company", "Acme"]) == 0
    assert "Created company 1: Acme" in capsys.readouterr().out

    assert main(["--db", db, "recalculate", "1"]) == 0
    assert "Recalculated balances for 11 accounts from 0 transactions" in capsys.readouterr().out

    assert main(["--db", db, "trial-balance", "1"]) == 0
    out = capsys.readouterr().out
    assert "Inventory" in out
    assert out.strip().endswith("Balanced")


def test_cli_reports_domain_errors(tmp_path, capsys):
    assert main(["--db", str(tmp_path / "cli.db"), "recalculate", "7"]) == 1
    assert "error: Company not found" in capsys.readouterr().err


def test_schema_version_is_stamped(conn):
    assert get_current_version(conn) == SCHEMA_VERSION


def test_older_stamp_is_bumped_and_newer_refused(tmp_path):
    path = tmp_path / "versions.db"
    conn = get_connection(path)
    set_current_version(conn, "0.9.0")
    conn.close()

    conn = get_connection(path)
    assert get_current_version(conn) == SCHEMA_VERSION
    set_current_version(conn, "99.0.0")
    conn.close()

    with pytest.raises(ValidationError, match="newer than this release"):
        get_connection(path)
