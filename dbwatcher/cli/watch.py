"""dbwatcher watch: stream change records of tables as JSON lines."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from typing import Any

import typer
from rich.markup import escape

from dbwatcher.cli._common import connect, console, mask_url, resolve_settings
from dbwatcher.config import DbWatcherSettings
from dbwatcher.exceptions import DbWatcherError, MalformedPayloadError, WatcherCleanupError
from dbwatcher.models import ChangeRecord, RawNotification
from dbwatcher.watcher import DbWatcher

logger = logging.getLogger(__name__)


def _print_record(record: ChangeRecord) -> None:
    typer.echo(json.dumps(record.to_dict(), ensure_ascii=False, default=str))


def _print_malformed(error: MalformedPayloadError, notification: RawNotification) -> None:
    console.print(f"[red]Malformed notification on {notification.channel}:[/red] {escape(error.reason)}")


async def _is_alive(conn: Any) -> bool:
    if conn.is_closed():
        return False
    try:
        await conn.execute("SELECT 1")
    except Exception:
        return False
    return True


async def _supervise(watcher: DbWatcher, dsn: str, interval: float, stop: asyncio.Event) -> None:
    """Check the connection every ``interval`` seconds and move the watcher to a new one when it dies."""
    while not stop.is_set():
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(stop.wait(), timeout=interval)
        if stop.is_set():
            return
        if await _is_alive(watcher.connection):
            continue
        logger.warning("Connection lost, reconnecting to %s", mask_url(dsn))
        try:
            replacement = await connect(dsn)
            await watcher.use_connection(replacement)
        except DbWatcherError as exc:
            logger.warning("Reconnect failed, retrying in %.1fs: %s", interval, exc)
            continue
        console.print("Reconnected; notifications sent while disconnected are lost.")


async def run_watch(settings: DbWatcherSettings, dsn: str, stop: asyncio.Event | None = None) -> None:
    """Watch the configured tables until ``stop`` is set or the task is cancelled."""
    stop = stop or asyncio.Event()
    conn = await connect(dsn)
    watcher = DbWatcher(conn, change_listener=_print_record)
    watcher.on_error(_print_malformed)
    try:
        for table in settings.watcher.tables:
            await watcher.watch(table)
        console.print(f"Watching {', '.join(settings.watcher.tables)} on {mask_url(dsn)}")
        await _supervise(watcher, dsn, settings.watcher.reconnect_interval, stop)
    finally:
        if settings.watcher.drop_triggers_on_exit:
            try:
                await watcher.close()
            except WatcherCleanupError as exc:
                logger.warning("Cleanup incomplete: %s (%s)", exc, exc.__cause__)
        with contextlib.suppress(Exception):
            await watcher.connection.close()


def watch_command(
    tables: list[str] = typer.Argument(None, help="Tables to watch (default: watcher.tables)"),
    database_url: str = typer.Option("", "--database-url", help="PostgreSQL URL (default: DBWATCHER_DATABASE_URL)"),
    config: str = typer.Option("", "--config", help="Path to dbwatcher.yaml"),
    log_level: str = typer.Option("", "--log-level", help="Logging level"),
) -> None:
    """Watch tables and print every change record as one JSON line."""
    settings, dsn = resolve_settings(config, database_url, log_level, tables)
    if not settings.watcher.tables:
        console.print("[yellow]No tables given.[/yellow]")
        raise typer.Exit(2)
    try:
        asyncio.run(run_watch(settings, dsn))
    except DbWatcherError as exc:
        console.print(f"[red]Watch failed on {mask_url(dsn)}:[/red] {escape(str(exc))}")
        raise typer.Exit(1) from exc
