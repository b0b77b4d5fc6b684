"""Watch lifecycle: LISTEN, schema introspection and trigger provisioning per table."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Iterable
from types import TracebackType

from dbwatcher.dispatcher import ChangeListener, EventDispatcher, ErrorListener
from dbwatcher.exceptions import (
    DatabaseConnectionError,
    DbWatcherError,
    WatcherCleanupError,
    WatcherClosedError,
    translate_error,
)
from dbwatcher.models import RawNotification, TableSchema
from dbwatcher.protocols import NotifyConnection
from dbwatcher.schema import SchemaCache
from dbwatcher.triggers import install_triggers, uninstall_triggers, validate_table_name

logger = logging.getLogger(__name__)


class DbWatcher:
    """Watch PostgreSQL tables and publish their row changes.

    The watcher shares one connection between the SQL it issues and the
    notifications it receives. It never closes that connection; the caller
    owns it. Mutating operations are serialized with an ``asyncio.Lock``.

    Example::

        watcher = DbWatcher(conn, change_listener=print)
        watcher.on("orders", handle_order)
        await watcher.watch("orders")
        ...
        await watcher.close()
    """

    def __init__(self, connection: NotifyConnection, change_listener: ChangeListener | None = None) -> None:
        if connection is None:
            raise ValueError("connection is required")
        self._connection = connection
        self._schemas = SchemaCache()
        self._dispatcher = EventDispatcher(self._schemas.get)
        self._handler = self._dispatcher.handle_notification
        self._watched: dict[str, TableSchema] | None = {}
        self._lock = asyncio.Lock()
        if change_listener is not None:
            self._dispatcher.on_change(change_listener)

    async def __aenter__(self) -> DbWatcher:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    @property
    def connection(self) -> NotifyConnection:
        return self._connection

    @property
    def closed(self) -> bool:
        return self._watched is None

    @property
    def watched_tables(self) -> list[str]:
        return list(self._watched or ())

    def schema_for(self, table: str) -> TableSchema | None:
        return self._schemas.get(table)

    def on(self, table: str, listener: ChangeListener) -> None:
        """Subscribe to change records of one table."""
        self._dispatcher.on(table, listener)

    def off(self, table: str, listener: ChangeListener) -> None:
        self._dispatcher.off(table, listener)

    def on_change(self, listener: ChangeListener) -> None:
        """Subscribe to change records of every watched table."""
        self._dispatcher.on_change(listener)

    def off_change(self, listener: ChangeListener) -> None:
        self._dispatcher.off_change(listener)

    def on_error(self, listener: ErrorListener) -> None:
        """Subscribe to notifications that could not be decoded."""
        self._dispatcher.on_error(listener)

    def process_notification(self, channel: str, payload: str) -> None:
        """Feed one notification through the decode/publish pipeline."""
        self._dispatcher.process(RawNotification(channel=channel, payload=payload))

    def is_watching(self, table: str, listener: ChangeListener) -> bool:
        """True if ``table`` is watched and ``listener`` is subscribed to it."""
        if self._watched is None or table not in self._watched:
            return False
        return self._dispatcher.has_listener(table, listener)

    def _require_open(self, operation: str) -> dict[str, TableSchema]:
        if self._watched is None:
            raise WatcherClosedError(operation)
        return self._watched

    async def watch(self, table: str) -> None:
        """Start watching ``table``.

        Issues LISTEN, introspects the column types and installs the triggers.
        Watching an already watched table is a no-op.

        Raises:
            WatcherClosedError: The watcher was closed.
            InvalidTableNameError: ``table`` is not a plain identifier.
            DatabaseConnectionError: LISTEN could not be issued.
            SQLExecutionError: Trigger installation failed. LISTEN is left
                active in that case; ``unwatch`` removes it.
        """
        async with self._lock:
            watched = self._require_open("watch")
            validate_table_name(table)
            if table in watched:
                logger.debug("Table %s is already watched", table)
                return

            try:
                await self._connection.add_listener(table, self._handler)
            except Exception as exc:
                raise DatabaseConnectionError(f"LISTEN {table}", str(exc) or type(exc).__name__) from exc
            logger.debug("Listening to %s", table)

            schema = await self._schemas.load(self._connection, table)
            try:
                await install_triggers(self._connection, [table])
            except DbWatcherError as exc:
                self._schemas.evict(table)
                logger.warning("Trigger installation failed for %s, LISTEN remains active: %s", table, exc)
                raise

            watched[table] = schema
            logger.info("Watching table %s (%d columns)", table, len(schema))

    async def unwatch(self, table: str) -> None:
        """Stop watching ``table`` and drop its listeners.

        Every cleanup step is attempted and local state is always cleared.

        Raises:
            WatcherClosedError: The watcher was closed.
            WatcherCleanupError: UNLISTEN or trigger removal failed; the first
                failure is the exception's cause.
        """
        async with self._lock:
            self._require_open("unwatch")
            validate_table_name(table)
            error = await self._unwatch_locked(table)
        if error is not None:
            raise WatcherCleanupError("unwatch", [table]) from error

    async def _unwatch_locked(self, table: str) -> DbWatcherError | None:
        first_error: DbWatcherError | None = None
        try:
            await self._connection.remove_listener(table, self._handler)
            logger.debug("Stopped listening to %s", table)
        except Exception as exc:
            first_error = DatabaseConnectionError(f"UNLISTEN {table}", str(exc) or type(exc).__name__)
            first_error.__cause__ = exc
            logger.warning("UNLISTEN %s failed, continuing cleanup: %s", table, exc)
        try:
            await uninstall_triggers(self._connection, [table])
        except Exception as exc:
            translated = translate_error(exc, f"drop triggers on {table}")
            first_error = first_error or translated
            logger.warning("Dropping triggers on %s failed, continuing cleanup: %s", table, exc)

        self._dispatcher.remove_all(table)
        self._schemas.evict(table)
        if self._watched is not None:
            self._watched.pop(table, None)
        logger.info("Stopped watching table %s", table)
        return first_error

    async def close(self) -> None:
        """Unwatch every table and mark the watcher closed. Idempotent.

        The connection itself stays open.

        Raises:
            WatcherCleanupError: At least one table failed to clean up; the
                first failure is the exception's cause.
        """
        async with self._lock:
            if self._watched is None:
                return
            first_error: DbWatcherError | None = None
            failed: list[str] = []
            for table in list(self._watched):
                error = await self._unwatch_locked(table)
                if error is not None:
                    failed.append(table)
                    first_error = first_error or error
            self._watched = None
            self._schemas.clear()
            logger.info("Watcher closed")
        if first_error is not None:
            raise WatcherCleanupError("close", failed) from first_error

    async def use_connection(self, connection: NotifyConnection) -> None:
        """Move the watch state onto a replacement connection.

        Passing the current connection is a no-op, so listeners are never
        attached twice. Triggers live in the database and are not reinstalled.
        The switch is all or nothing: if any LISTEN fails, the channels already
        attached to ``connection`` are released and the watcher keeps its
        previous connection, so a later retry starts from a clean state.

        Raises:
            WatcherClosedError: The watcher was closed.
            DatabaseConnectionError: LISTEN failed on the new connection.
        """
        async with self._lock:
            watched = self._require_open("use_connection")
            if connection is self._connection:
                return
            previous = self._connection
            await self._detach_all(previous, watched)
            attached: list[str] = []
            for table in watched:
                try:
                    await connection.add_listener(table, self._handler)
                except Exception as exc:
                    logger.warning(
                        "LISTEN %s failed on the new connection; releasing %s and keeping the old one",
                        table,
                        ", ".join(attached) or "nothing",
                    )
                    await self._detach_all(connection, attached)
                    for table_name in watched:
                        with contextlib.suppress(Exception):
                            await previous.add_listener(table_name, self._handler)
                    raise DatabaseConnectionError(f"LISTEN {table}", str(exc) or type(exc).__name__) from exc
                attached.append(table)
            self._connection = connection
            logger.info("Watcher moved to a new connection (%d tables)", len(watched))

    async def _detach_all(self, connection: NotifyConnection, tables: Iterable[str]) -> None:
        for table in tables:
            with contextlib.suppress(Exception):
                await connection.remove_listener(table, self._handler)
