"""Exceptions raised by dbwatcher.

Messages never include connection strings or credentials.
"""

from __future__ import annotations

import asyncio

import asyncpg


class DbWatcherError(Exception):
    """Base exception for dbwatcher."""

    pass


class ConfigurationError(DbWatcherError):
    """Raised when watcher configuration is invalid or missing."""

    pass


class DatabaseConnectionError(DbWatcherError):
    """Raised when the driver fails to issue LISTEN, UNLISTEN or a query."""

    def __init__(self, action: str, message: str) -> None:
        self.action = action
        super().__init__(f"{action} failed: {message}")


class SQLExecutionError(DbWatcherError):
    """Raised when the server rejects a statement (e.g. trigger creation)."""

    def __init__(self, action: str, message: str, sqlstate: str | None = None) -> None:
        self.action = action
        self.sqlstate = sqlstate
        suffix = f" (sqlstate={sqlstate})" if sqlstate else ""
        super().__init__(f"{action} failed{suffix}: {message}")


class MalformedPayloadError(DbWatcherError, ValueError):
    """Raised when a notification payload does not match the trigger wire format."""

    def __init__(self, channel: str, payload: str, reason: str) -> None:
        self.channel = channel
        self.payload = payload
        self.reason = reason
        super().__init__(f"Malformed notification on channel '{channel}': {reason}")


class InvalidTableNameError(DbWatcherError, ValueError):
    """Raised when a table name is not a plain SQL identifier."""

    def __init__(self, name: object) -> None:
        self.name = name
        super().__init__(f"Invalid table name: {name!r}")


class WatcherClosedError(DbWatcherError):
    """Raised when an operation is attempted on a closed watcher."""

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"Cannot {operation}: watcher is closed")


class WatcherCleanupError(DbWatcherError):
    """Raised after best-effort cleanup completed with at least one failing step.

    The first failure is available as ``__cause__``.
    """

    def __init__(self, operation: str, tables: list[str]) -> None:
        self.operation = operation
        self.tables = tables
        super().__init__(f"{operation} completed with errors for: {', '.join(tables) or '-'}")


def translate_error(exc: BaseException, action: str) -> DbWatcherError:
    """Map a driver exception onto the dbwatcher hierarchy."""
    if isinstance(exc, DbWatcherError):
        return exc
    if isinstance(exc, asyncpg.PostgresError):
        return SQLExecutionError(action, str(exc), getattr(exc, "sqlstate", None))
    if isinstance(exc, (asyncpg.InterfaceError, OSError, asyncio.TimeoutError)):
        return DatabaseConnectionError(action, str(exc) or type(exc).__name__)
    return DatabaseConnectionError(action, f"{type(exc).__name__}: {exc}")
