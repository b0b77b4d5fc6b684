"""dbwatcher notify: publish a synthetic change notification with pg_notify."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import typer
from rich.markup import escape

from dbwatcher.cli._common import connect, console, mask_url, resolve_settings
from dbwatcher.codec import encode_payload
from dbwatcher.exceptions import DbWatcherError, translate_error
from dbwatcher.models import Operation, Timing
from dbwatcher.triggers import validate_table_name


def _coerce_field_value(raw: str) -> Any:
    value = raw.strip()
    try:
        return json.loads(value)
    except ValueError:
        return value


def parse_fields(pairs: list[str]) -> dict[str, Any]:
    """Parse ``column=value`` pairs; values are JSON when they parse as JSON."""
    fields: dict[str, Any] = {}
    for pair in pairs:
        column, sep, raw = pair.partition("=")
        if not sep or not column.strip():
            raise typer.BadParameter(f"field must look like column=value: {pair!r}")
        fields[column.strip()] = _coerce_field_value(raw)
    return fields


async def _notify(dsn: str, table: str, payload: str) -> None:
    conn = await connect(dsn)
    try:
        await conn.execute("SELECT pg_notify($1, $2)", table, payload)
    except Exception as exc:
        raise translate_error(exc, f"pg_notify {table}") from exc
    finally:
        await conn.close()


def notify_command(
    table: str = typer.Argument(..., help="Table (channel) to notify"),
    op: str = typer.Option("INSERT", "--op", help="INSERT, UPDATE or DELETE"),
    timing: str = typer.Option("", "--timing", help="BEFORE or AFTER (default: AFTER for DELETE, else BEFORE)"),
    field: list[str] = typer.Option([], "--field", "-f", help="column=value, repeatable"),
    database_url: str = typer.Option("", "--database-url", help="PostgreSQL URL (default: DBWATCHER_DATABASE_URL)"),
    config: str = typer.Option("", "--config", help="Path to dbwatcher.yaml"),
    log_level: str = typer.Option("", "--log-level", help="Logging level"),
) -> None:
    """Send one notification in the trigger wire format."""
    try:
        validate_table_name(table)
        operation = Operation(op.strip().upper())
        when = Timing(timing.strip().upper()) if timing.strip() else (
            Timing.AFTER if operation is Operation.DELETE else Timing.BEFORE
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    payload = encode_payload(when, operation, table, parse_fields(field))
    _, dsn = resolve_settings(config, database_url, log_level)
    try:
        asyncio.run(_notify(dsn, table, payload))
    except DbWatcherError as exc:
        console.print(f"[red]Notify failed on {mask_url(dsn)}:[/red] {escape(str(exc))}")
        raise typer.Exit(1) from exc
    console.print(f"Sent: {escape(payload)}")
