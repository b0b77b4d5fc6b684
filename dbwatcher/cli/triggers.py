"""dbwatcher install / uninstall: provision NOTIFY triggers without a running watcher."""

from __future__ import annotations

import asyncio

import typer
from rich.markup import escape

from dbwatcher.cli._common import connect, console, mask_url, resolve_settings
from dbwatcher.exceptions import DbWatcherError
from dbwatcher.triggers import install_triggers, uninstall_functions, uninstall_triggers


async def _install(dsn: str, tables: list[str]) -> None:
    conn = await connect(dsn)
    try:
        await install_triggers(conn, tables)
    finally:
        await conn.close()


async def _uninstall(dsn: str, tables: list[str], drop_functions: bool) -> None:
    conn = await connect(dsn)
    try:
        await uninstall_triggers(conn, tables)
        if drop_functions:
            await uninstall_functions(conn)
    finally:
        await conn.close()


def install_command(
    tables: list[str] = typer.Argument(None, help="Tables to install triggers on (default: watcher.tables)"),
    database_url: str = typer.Option("", "--database-url", help="PostgreSQL URL (default: DBWATCHER_DATABASE_URL)"),
    config: str = typer.Option("", "--config", help="Path to dbwatcher.yaml"),
    log_level: str = typer.Option("", "--log-level", help="Logging level"),
) -> None:
    """Install the notify functions and per-table triggers."""
    settings, dsn = resolve_settings(config, database_url, log_level, tables)
    targets = settings.watcher.tables
    if not targets:
        console.print("[yellow]No tables given.[/yellow]")
        raise typer.Exit(2)
    try:
        asyncio.run(_install(dsn, targets))
    except DbWatcherError as exc:
        console.print(f"[red]Install failed on {mask_url(dsn)}:[/red] {escape(str(exc))}")
        raise typer.Exit(1) from exc
    console.print(f"Triggers installed on: {', '.join(targets)}")


def uninstall_command(
    tables: list[str] = typer.Argument(None, help="Tables to remove triggers from (default: watcher.tables)"),
    drop_functions: bool = typer.Option(False, "--drop-functions", help="Also drop the shared notify functions"),
    database_url: str = typer.Option("", "--database-url", help="PostgreSQL URL (default: DBWATCHER_DATABASE_URL)"),
    config: str = typer.Option("", "--config", help="Path to dbwatcher.yaml"),
    log_level: str = typer.Option("", "--log-level", help="Logging level"),
) -> None:
    """Drop dbwatcher triggers from tables."""
    settings, dsn = resolve_settings(config, database_url, log_level, tables)
    targets = settings.watcher.tables
    if not targets and not drop_functions:
        console.print("[yellow]No tables given.[/yellow]")
        raise typer.Exit(2)
    try:
        asyncio.run(_uninstall(dsn, targets, drop_functions))
    except DbWatcherError as exc:
        console.print(f"[red]Uninstall failed on {mask_url(dsn)}:[/red] {escape(str(exc))}")
        raise typer.Exit(1) from exc
    console.print(f"Triggers removed from: {', '.join(targets) or '-'}")
