from __future__ import annotations

import asyncpg
import pytest

from dbwatcher import InvalidTableNameError, SQLExecutionError, install_triggers, uninstall_functions, uninstall_triggers
from dbwatcher.models import RowImage, Timing
from dbwatcher.triggers import (
    NOTIFY_NEW_FUNCTION,
    NOTIFY_OLD_FUNCTION,
    all_trigger_names,
    create_functions_sql,
    create_new_row_trigger_sql,
    create_old_row_trigger_sql,
    trigger_name,
    validate_table_name,
)


@pytest.mark.asyncio
async def test_install_with_no_tables_issues_nothing(conn) -> None:
    await install_triggers(conn, [])
    assert conn.log == []


@pytest.mark.asyncio
async def test_install_creates_functions_then_two_transactions_per_table(conn) -> None:
    await install_triggers(conn, ["orders", "orders"])

    assert "CREATE OR REPLACE FUNCTION" in conn.log[0]
    shape = [
        "BEGIN" if entry == "BEGIN" else "COMMIT" if entry == "COMMIT" else entry.split()[0]
        for entry in conn.log[1:]
    ]
    assert shape == ["BEGIN", "DROP", "CREATE", "COMMIT", "BEGIN", "DROP", "CREATE", "COMMIT"]
    assert "BEFORE INSERT OR UPDATE" in conn.log[3]
    assert "AFTER DELETE" in conn.log[7]


@pytest.mark.asyncio
async def test_delete_trigger_failure_keeps_committed_insert_trigger(conn) -> None:
    conn.failures["AFTER DELETE"] = asyncpg.exceptions.UndefinedTableError('relation "orders" does not exist')

    with pytest.raises(SQLExecutionError) as exc_info:
        await install_triggers(conn, ["orders"])

    assert exc_info.value.sqlstate == "42P01"
    assert "install delete trigger on orders" in str(exc_info.value)
    assert conn.log.count("COMMIT") == 1
    assert conn.log[-1] == "ROLLBACK"


@pytest.mark.asyncio
async def test_install_rejects_bad_names_before_any_sql(conn) -> None:
    with pytest.raises(InvalidTableNameError):
        await install_triggers(conn, ["orders", "bad name"])
    assert conn.log == []


@pytest.mark.asyncio
async def test_uninstall_drops_all_four_trigger_names(conn) -> None:
    await uninstall_triggers(conn, ["orders"])

    assert len(conn.log) == 1
    for name in all_trigger_names("orders"):
        assert f'DROP TRIGGER IF EXISTS "{name}" ON "orders";' in conn.log[0]


@pytest.mark.asyncio
async def test_uninstall_functions(conn) -> None:
    await uninstall_functions(conn)

    assert f"DROP FUNCTION IF EXISTS {NOTIFY_NEW_FUNCTION}();" in conn.log[0]
    assert f"DROP FUNCTION IF EXISTS {NOTIFY_OLD_FUNCTION}();" in conn.log[0]


@pytest.mark.asyncio
async def test_uninstall_functions_translates_driver_errors(conn) -> None:
    conn.failures["DROP FUNCTION"] = asyncpg.exceptions.DependentObjectsStillExistError("still used")

    with pytest.raises(SQLExecutionError) as exc_info:
        await uninstall_functions(conn)

    assert exc_info.value.sqlstate == "2BP01"


def test_trigger_names() -> None:
    assert trigger_name("orders", Timing.BEFORE, RowImage.NEW) == "dbwatcher_orders_before_new"
    assert trigger_name("orders", Timing.AFTER, RowImage.OLD) == "dbwatcher_orders_after_old"
    assert sorted(all_trigger_names("t")) == [
        "dbwatcher_t_after_new",
        "dbwatcher_t_after_old",
        "dbwatcher_t_before_new",
        "dbwatcher_t_before_old",
    ]


def test_function_sql_builds_wire_format_header() -> None:
    sql = create_functions_sql()

    assert f"FUNCTION {NOTIFY_NEW_FUNCTION}()" in sql
    assert f"FUNCTION {NOTIFY_OLD_FUNCTION}()" in sql
    assert "row_to_json(NEW)" in sql
    assert "row_to_json(OLD)" in sql
    assert "' NewRow:('" in sql
    assert "' OldRow:('" in sql
    assert "pg_notify" in sql


def test_trigger_sql_quotes_table() -> None:
    assert 'ON "Orders"' in create_new_row_trigger_sql("Orders")
    assert f"EXECUTE PROCEDURE {NOTIFY_OLD_FUNCTION}()" in create_old_row_trigger_sql("Orders")


@pytest.mark.parametrize("name", ["orders", "_t", "T1", "a$b", "a" * 63])
def test_valid_table_names(name: str) -> None:
    assert validate_table_name(name) == name


@pytest.mark.parametrize("name", ["", "1t", "a-b", "a b", 'a"b', "public.orders", "a" * 64, None, 3])
def test_invalid_table_names(name: object) -> None:
    with pytest.raises(InvalidTableNameError):
        validate_table_name(name)
