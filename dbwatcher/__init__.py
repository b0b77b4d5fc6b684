"""dbwatcher: typed row change events from PostgreSQL LISTEN/NOTIFY."""

from dbwatcher.codec import decode_payload, encode_payload
from dbwatcher.dispatcher import EventDispatcher
from dbwatcher.exceptions import (
    ConfigurationError,
    DatabaseConnectionError,
    DbWatcherError,
    InvalidTableNameError,
    MalformedPayloadError,
    SQLExecutionError,
    WatcherCleanupError,
    WatcherClosedError,
)
from dbwatcher.models import ChangeRecord, Operation, RawNotification, RowImage, TableSchema, Timing
from dbwatcher.schema import SchemaCache
from dbwatcher.triggers import install_triggers, uninstall_functions, uninstall_triggers
from dbwatcher.watcher import DbWatcher

__all__ = [
    "ChangeRecord",
    "ConfigurationError",
    "DatabaseConnectionError",
    "DbWatcher",
    "DbWatcherError",
    "EventDispatcher",
    "InvalidTableNameError",
    "MalformedPayloadError",
    "Operation",
    "RawNotification",
    "RowImage",
    "SQLExecutionError",
    "SchemaCache",
    "TableSchema",
    "Timing",
    "WatcherCleanupError",
    "WatcherClosedError",
    "decode_payload",
    "encode_payload",
    "install_triggers",
    "uninstall_functions",
    "uninstall_triggers",
]
