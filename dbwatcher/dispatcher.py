"""Fan-out of decoded change records to table and catch-all listeners."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from dbwatcher.codec import decode_payload
from dbwatcher.exceptions import MalformedPayloadError
from dbwatcher.models import ChangeRecord, RawNotification, TableSchema

logger = logging.getLogger(__name__)

ChangeListener = Callable[[ChangeRecord], Any]
ErrorListener = Callable[[MalformedPayloadError, RawNotification], Any]
SchemaLookup = Callable[[str], TableSchema | None]


class EventDispatcher:
    """Route decoded notifications to subscribers.

    Table listeners run before catch-all listeners, each in registration
    order, synchronously inside the driver callback. A failing listener is
    logged and does not prevent delivery to the others.
    """

    def __init__(self, schema_lookup: SchemaLookup) -> None:
        self._schema_lookup = schema_lookup
        self._table_listeners: dict[str, list[ChangeListener]] = {}
        self._change_listeners: list[ChangeListener] = []
        self._error_listeners: list[ErrorListener] = []

    def on(self, table: str, listener: ChangeListener) -> None:
        self._table_listeners.setdefault(table, []).append(listener)

    def off(self, table: str, listener: ChangeListener) -> None:
        listeners = self._table_listeners.get(table)
        if not listeners:
            return
        for index, registered in enumerate(listeners):
            if registered is listener:
                del listeners[index]
                break
        if not listeners:
            del self._table_listeners[table]

    def remove_all(self, table: str) -> None:
        self._table_listeners.pop(table, None)

    def has_listener(self, table: str, listener: ChangeListener) -> bool:
        return any(registered is listener for registered in self._table_listeners.get(table, ()))

    def listener_count(self, table: str) -> int:
        return len(self._table_listeners.get(table, ()))

    def on_change(self, listener: ChangeListener) -> None:
        self._change_listeners.append(listener)

    def off_change(self, listener: ChangeListener) -> None:
        self._change_listeners = [registered for registered in self._change_listeners if registered is not listener]

    def on_error(self, listener: ErrorListener) -> None:
        self._error_listeners.append(listener)

    def off_error(self, listener: ErrorListener) -> None:
        self._error_listeners = [registered for registered in self._error_listeners if registered is not listener]

    def handle_notification(self, connection: Any, pid: int, channel: str, payload: str) -> None:  # noqa: ARG002
        """Driver callback registered through ``add_listener``."""
        self.process(RawNotification(channel=channel, payload=payload, pid=pid))

    def process(self, notification: RawNotification) -> ChangeRecord | None:
        """Decode one notification and publish it. Returns the record, or None on decode failure.

        Every decode failure goes to the error listeners; nothing is raised
        back into the driver callback.
        """
        try:
            record = decode_payload(
                notification.channel,
                notification.payload,
                self._schema_lookup(notification.channel),
            )
        except MalformedPayloadError as exc:
            self._report_malformed(exc, notification)
            return None
        except Exception as exc:
            error = MalformedPayloadError(notification.channel, notification.payload, f"decode failed: {type(exc).__name__}")
            error.__cause__ = exc
            self._report_malformed(error, notification)
            return None
        self.publish(record)
        return record

    def publish(self, record: ChangeRecord) -> None:
        for listener in list(self._table_listeners.get(record.table, ())):
            self._invoke(listener, record)
        for listener in list(self._change_listeners):
            self._invoke(listener, record)

    def _invoke(self, listener: ChangeListener, record: ChangeRecord) -> None:
        try:
            listener(record)
        except Exception:
            logger.exception("Change listener %r failed for %s %s on %s", listener, record.timing.value, record.operation.value, record.table)

    def _report_malformed(self, error: MalformedPayloadError, notification: RawNotification) -> None:
        logger.error(
            "Dropping malformed notification on channel %s (%s); payload=%r",
            notification.channel,
            error.reason,
            notification.payload[:200],
        )
        for listener in list(self._error_listeners):
            try:
                listener(error, notification)
            except Exception:
                logger.exception("Error listener %r failed for channel %s", listener, notification.channel)
