"""Installation and removal of the NOTIFY trigger functions and per-table triggers."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable

from dbwatcher.exceptions import InvalidTableNameError, translate_error
from dbwatcher.models import RowImage, Timing
from dbwatcher.protocols import NotifyConnection

logger = logging.getLogger(__name__)

NOTIFY_NEW_FUNCTION = "dbwatcher_notify_new"
NOTIFY_OLD_FUNCTION = "dbwatcher_notify_old"
TRIGGER_PREFIX = "dbwatcher_"
MAX_IDENTIFIER_LENGTH = 63

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_$]*$")


def validate_table_name(name: object) -> str:
    """Return ``name`` if it is a plain SQL identifier, else raise InvalidTableNameError."""
    if not isinstance(name, str) or len(name) > MAX_IDENTIFIER_LENGTH or not _IDENTIFIER.match(name):
        raise InvalidTableNameError(name)
    return name


def _notify_function(function_name: str, image: RowImage) -> str:
    row = image.value.upper()
    return f"""
CREATE OR REPLACE FUNCTION {function_name}() RETURNS TRIGGER AS $$
  DECLARE
    row_body text := row_to_json({row})::text;
  BEGIN
    PERFORM pg_notify(
      TG_TABLE_NAME,
      TG_WHEN || ' ' || TG_OP || ' ' || TG_TABLE_NAME || ' {image.value}Row:('
        || substr(row_body, 2, length(row_body) - 2) || ')'
    );
    RETURN {row};
  END;
  $$ LANGUAGE plpgsql;
"""


def create_functions_sql() -> str:
    """Both shared trigger functions; safe to run repeatedly."""
    return _notify_function(NOTIFY_OLD_FUNCTION, RowImage.OLD) + _notify_function(NOTIFY_NEW_FUNCTION, RowImage.NEW)


def trigger_name(table: str, timing: Timing, image: RowImage) -> str:
    return f"{TRIGGER_PREFIX}{table}_{timing.value.lower()}_{image.value.lower()}"


def drop_trigger_sql(trigger: str, table: str) -> str:
    return f'DROP TRIGGER IF EXISTS "{trigger}" ON "{table}";'


def create_new_row_trigger_sql(table: str) -> str:
    trigger = trigger_name(table, Timing.BEFORE, RowImage.NEW)
    return f"""
CREATE TRIGGER "{trigger}"
  BEFORE INSERT OR UPDATE ON "{table}"
  FOR EACH ROW EXECUTE PROCEDURE {NOTIFY_NEW_FUNCTION}();
"""


def create_old_row_trigger_sql(table: str) -> str:
    trigger = trigger_name(table, Timing.AFTER, RowImage.OLD)
    return f"""
CREATE TRIGGER "{trigger}"
  AFTER DELETE ON "{table}"
  FOR EACH ROW EXECUTE PROCEDURE {NOTIFY_OLD_FUNCTION}();
"""


def all_trigger_names(table: str) -> list[str]:
    """Every trigger name dbwatcher may have created on ``table``."""
    return [trigger_name(table, timing, image) for timing in Timing for image in RowImage]


def drop_functions_sql() -> str:
    return f"DROP FUNCTION IF EXISTS {NOTIFY_NEW_FUNCTION}();\nDROP FUNCTION IF EXISTS {NOTIFY_OLD_FUNCTION}();"


async def _run_in_transaction(connection: NotifyConnection, statements: list[str], action: str) -> None:
    try:
        async with connection.transaction():
            for statement in statements:
                await connection.execute(statement)
    except Exception as exc:
        raise translate_error(exc, action) from exc


async def install_triggers(connection: NotifyConnection, table_names: Iterable[str]) -> None:
    """Install the notify functions and the per-table triggers.

    The functions are (re)created on every call. For each table the
    insert/update trigger and the delete trigger are created in two separate
    transactions, so a failure on one never leaves the other uncommitted.

    Raises:
        InvalidTableNameError: A table name is not a plain identifier.
        SQLExecutionError: The server rejected a statement.
        DatabaseConnectionError: The driver failed to send a statement.
    """
    tables = [validate_table_name(name) for name in dict.fromkeys(table_names)]
    if not tables:
        return
    try:
        await connection.execute(create_functions_sql())
    except Exception as exc:
        raise translate_error(exc, "create trigger functions") from exc
    logger.debug("Trigger functions %s, %s installed", NOTIFY_NEW_FUNCTION, NOTIFY_OLD_FUNCTION)

    for table in tables:
        new_trigger = trigger_name(table, Timing.BEFORE, RowImage.NEW)
        await _run_in_transaction(
            connection,
            [drop_trigger_sql(new_trigger, table), create_new_row_trigger_sql(table)],
            f"install insert/update trigger on {table}",
        )
        old_trigger = trigger_name(table, Timing.AFTER, RowImage.OLD)
        await _run_in_transaction(
            connection,
            [drop_trigger_sql(old_trigger, table), create_old_row_trigger_sql(table)],
            f"install delete trigger on {table}",
        )
        logger.debug("Triggers %s, %s installed on %s", new_trigger, old_trigger, table)


async def uninstall_triggers(connection: NotifyConnection, table_names: Iterable[str]) -> None:
    """Drop every dbwatcher trigger from the given tables; absent triggers are fine."""
    tables = [validate_table_name(name) for name in dict.fromkeys(table_names)]
    for table in tables:
        statements = "\n".join(drop_trigger_sql(name, table) for name in all_trigger_names(table))
        try:
            await connection.execute(statements)
        except Exception as exc:
            raise translate_error(exc, f"drop triggers on {table}") from exc
        logger.debug("Triggers removed from %s", table)


async def uninstall_functions(connection: NotifyConnection) -> None:
    """Drop the shared notify functions. Triggers still using them must be removed first."""
    try:
        await connection.execute(drop_functions_sql())
    except Exception as exc:
        raise translate_error(exc, "drop trigger functions") from exc
    logger.debug("Trigger functions %s, %s dropped", NOTIFY_NEW_FUNCTION, NOTIFY_OLD_FUNCTION)
