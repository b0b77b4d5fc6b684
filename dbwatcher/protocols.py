"""Database connection protocol consumed by the watcher."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Protocol

NotificationCallback = Callable[[Any, int, str, str], Any]
"""Driver callback signature: ``(connection, pid, channel, payload)``."""


class Transaction(Protocol):
    async def __aenter__(self) -> Any: ...

    async def __aexit__(self, *exc_info: Any) -> Any: ...


class NotifyConnection(Protocol):
    """Subset of ``asyncpg.Connection`` used by dbwatcher."""

    async def execute(self, query: str, *args: Any) -> str:
        """Execute a statement and return its status string."""

    async def fetch(self, query: str, *args: Any) -> list[Any]:
        """Run a query and return rows addressable by column name."""

    async def add_listener(self, channel: str, callback: NotificationCallback) -> None:
        """Issue LISTEN on ``channel`` and route its notifications to ``callback``."""

    async def remove_listener(self, channel: str, callback: NotificationCallback) -> None:
        """Detach ``callback`` and issue UNLISTEN when no callbacks remain."""

    def transaction(self) -> Transaction:
        """Return an async context manager wrapping a transaction."""
