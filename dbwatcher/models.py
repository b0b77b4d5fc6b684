"""Change record data models."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any

TableSchema = Mapping[str, str]
"""Column name -> declared SQL type (``information_schema.columns.data_type``)."""


class Operation(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class Timing(str, Enum):
    BEFORE = "BEFORE"
    AFTER = "AFTER"


class RowImage(str, Enum):
    """Which row a trigger rendered: ``OLD`` before delete, ``NEW`` on insert/update."""

    OLD = "Old"
    NEW = "New"


@dataclass(frozen=True, slots=True)
class RawNotification:
    """One NOTIFY frame as delivered by the driver."""

    channel: str
    payload: str
    pid: int | None = None


@dataclass(frozen=True, slots=True)
class ChangeRecord:
    """One decoded row-level change.

    The same instance is handed to every listener; ``fields`` is read-only.
    """

    table: str
    operation: Operation
    timing: Timing
    fields: Mapping[str, Any]
    received_at: datetime

    def __post_init__(self) -> None:
        if not isinstance(self.fields, MappingProxyType):
            object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly representation."""
        return {
            "table": self.table,
            "operation": self.operation.value,
            "timing": self.timing.value,
            "fields": {key: _jsonable(value) for key, value in self.fields.items()},
            "received_at": self.received_at.isoformat(),
        }


def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return value
