"""In-memory stand-in for an asyncpg connection."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import pytest


class _FakeTransaction:
    def __init__(self, conn: FakeConnection) -> None:
        self._conn = conn

    async def __aenter__(self) -> _FakeTransaction:
        self._conn.log.append("BEGIN")
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> bool:
        self._conn.log.append("ROLLBACK" if exc_type is not None else "COMMIT")
        return False


@dataclass
class FakeConnection:
    """Records statements, LISTEN state and delivers notifications synchronously.

    ``failures`` maps a statement substring to the exception raised when a
    matching statement (or ``LISTEN <t>`` / ``UNLISTEN <t>``) is issued.
    """

    columns: dict[str, list[tuple[str, str]]] = field(default_factory=dict)
    failures: dict[str, BaseException] = field(default_factory=dict)
    log: list[str] = field(default_factory=list)
    listeners: dict[str, list[Any]] = field(default_factory=dict)
    closed: bool = False

    def _maybe_fail(self, statement: str) -> None:
        for marker, exc in self.failures.items():
            if marker in statement:
                raise exc

    async def execute(self, query: str, *args: Any) -> str:
        self._maybe_fail(query)
        self.log.append(query.strip())
        return "OK"

    async def fetch(self, query: str, *args: Any) -> list[dict[str, str]]:
        self._maybe_fail(query)
        self.log.append(query.strip())
        table = args[0] if args else ""
        return [{"column_name": name, "data_type": data_type} for name, data_type in self.columns.get(table, [])]

    async def add_listener(self, channel: str, callback: Any) -> None:
        self._maybe_fail(f"LISTEN {channel}")
        if channel not in self.listeners:
            self.log.append(f"LISTEN {channel}")
            self.listeners[channel] = []
        if callback not in self.listeners[channel]:
            self.listeners[channel].append(callback)

    async def remove_listener(self, channel: str, callback: Any) -> None:
        self._maybe_fail(f"UNLISTEN {channel}")
        callbacks = self.listeners.get(channel)
        if callbacks is None:
            return
        if callback in callbacks:
            callbacks.remove(callback)
        if not callbacks:
            del self.listeners[channel]
            self.log.append(f"UNLISTEN {channel}")

    def transaction(self) -> _FakeTransaction:
        return _FakeTransaction(self)

    def notify(self, channel: str, payload: str) -> None:
        for callback in list(self.listeners.get(channel, ())):
            callback(self, 4242, channel, payload)

    def statements(self, needle: str) -> list[str]:
        return [entry for entry in self.log if needle in entry]

    def is_closed(self) -> bool:
        return self.closed

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def conn() -> FakeConnection:
    return FakeConnection(
        columns={
            "orders": [
                ("id", "integer"),
                ("note", "character varying"),
                ("created_at", "timestamp without time zone"),
            ],
        }
    )


@pytest.fixture
def make_conn() -> type[FakeConnection]:
    return FakeConnection
