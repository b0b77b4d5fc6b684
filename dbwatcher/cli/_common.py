"""Shared helpers for dbwatcher CLI commands."""

from __future__ import annotations

import logging
import sys
from urllib.parse import urlsplit, urlunsplit

import asyncpg
import typer
from rich.console import Console
from rich.markup import escape

from dbwatcher.config import ConfigLoadError, DbWatcherSettings, load_settings
from dbwatcher.exceptions import ConfigurationError, DatabaseConnectionError

console = Console(stderr=True)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def mask_url(dsn: str) -> str:
    """Replace the DSN password with ``***`` for console and log output."""
    try:
        parts = urlsplit(dsn)
    except ValueError:
        return dsn
    if parts.password is None:
        return dsn
    userinfo, _, hostinfo = parts.netloc.rpartition("@")
    user = userinfo.split(":", 1)[0]
    return urlunsplit(parts._replace(netloc=f"{user}:***@{hostinfo}"))


def configure_logging(level: str) -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT, stream=sys.stderr)


def resolve_settings(
    config: str,
    database_url: str,
    log_level: str,
    tables: list[str] | None = None,
) -> tuple[DbWatcherSettings, str]:
    """Load settings, apply CLI overrides and return them with the DSN.

    Exits with code 2 on configuration problems.
    """
    try:
        settings = load_settings(config or None).with_overrides(
            database_url=database_url,
            log_level=log_level,
            tables=tables,
        )
        dsn = settings.resolved_database_url()
    except (ConfigLoadError, ConfigurationError, ValueError) as exc:
        console.print(f"[red]Configuration error:[/red] {escape(str(exc))}")
        raise typer.Exit(2) from exc
    configure_logging(settings.log_level)
    return settings, dsn


async def connect(dsn: str) -> asyncpg.Connection:
    """Open a driver connection; failures surface as DatabaseConnectionError."""
    try:
        return await asyncpg.connect(dsn)
    except Exception as exc:
        raise DatabaseConnectionError("connect", str(exc) or type(exc).__name__) from exc
