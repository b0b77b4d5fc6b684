"""Encoding and decoding of trigger notification payloads.

A trigger publishes one NOTIFY per changed row, on the channel named after the
table, with a payload of the form::

    <TIMING> <OPERATION> <TABLE> <Old|New>Row:(<row_to_json body without braces>)

``row_to_json`` renders text columns holding JSON as JSON-encoded strings, so
string values are unwrapped once more here. Timestamp columns are rendered as
plain strings; they are only parsed when the table schema says the column is a
timestamp, so arbitrary text is never mistaken for a date.
"""

from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from typing import Any

from dbwatcher.exceptions import MalformedPayloadError
from dbwatcher.models import ChangeRecord, Operation, RowImage, TableSchema, Timing

ROW_MARKER = "Row:"
TIMESTAMP_TYPE_MARKER = "timestamp"

_FRACTION = re.compile(r"\.(\d+)")


def _reject_constant(name: str) -> Any:
    raise ValueError(f"non-standard JSON constant {name}")


def _strict_loads(text: str) -> Any:
    return json.loads(text, parse_constant=_reject_constant)


def _strip_delimiters(body: str) -> str:
    if body.startswith("{") and body.endswith("}"):
        return body[1:-1]
    if body.startswith("("):
        body = body[1:]
    if body.endswith(")"):
        body = body[:-1]
    return body


def is_timestamp_type(data_type: str | None) -> bool:
    """Return True when a declared SQL type belongs to the timestamp family."""
    return bool(data_type) and TIMESTAMP_TYPE_MARKER in data_type.lower()


def parse_timestamp(value: str) -> datetime | None:
    """Parse the text PostgreSQL renders for timestamp columns.

    Accepts ISO 8601 with ``T`` or a space separator, fractional seconds of
    any precision and optional UTC offsets (``+02``, ``+05:30``, ``Z``).
    """
    text = value.strip()
    if len(text) < 10:
        return None
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    sign_at = max(text.rfind("+"), text.rfind("-"))
    if sign_at > 10 and text[sign_at + 1 :].isdigit() and len(text) - sign_at - 1 == 2:
        text = text + ":00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def coerce_value(value: Any, data_type: str | None) -> Any:
    """Recover the typed value of one row field."""
    if not isinstance(value, str):
        return value
    try:
        return _strict_loads(value)
    except (ValueError, RecursionError):
        pass
    if is_timestamp_type(data_type):
        parsed = parse_timestamp(value)
        if parsed is not None:
            return parsed
    return value


def decode_payload(
    channel: str,
    payload: str,
    schema: TableSchema | None = None,
    received_at: datetime | None = None,
) -> ChangeRecord:
    """Decode one notification payload into a ChangeRecord.

    Args:
        channel: Notification channel, i.e. the table name.
        payload: Raw payload string produced by the trigger functions.
        schema: Declared column types of the table, if known. Without it no
            timestamp coercion is attempted.
        received_at: Override for the receive time (defaults to now, UTC).

    Raises:
        MalformedPayloadError: The payload does not follow the wire format.
    """
    marker_at = payload.find(ROW_MARKER)
    if marker_at < 0:
        raise MalformedPayloadError(channel, payload, f"missing '{ROW_MARKER}' marker")

    meta = payload[:marker_at].split()
    if len(meta) < 2:
        raise MalformedPayloadError(channel, payload, "missing timing/operation header")
    try:
        timing = Timing(meta[0].upper())
        operation = Operation(meta[1].upper())
    except ValueError as exc:
        raise MalformedPayloadError(channel, payload, f"unknown header '{meta[0]} {meta[1]}'") from exc

    body = _strip_delimiters(payload[marker_at + len(ROW_MARKER) :].strip())
    try:
        row = _strict_loads("{" + body + "}")
    except (ValueError, RecursionError) as exc:
        raise MalformedPayloadError(channel, payload, f"row body is not valid JSON: {exc}") from exc
    if not isinstance(row, dict):
        raise MalformedPayloadError(channel, payload, "row body must decode to an object")

    column_types = schema or {}
    fields = {column: coerce_value(value, column_types.get(column)) for column, value in row.items()}
    return ChangeRecord(
        table=channel,
        operation=operation,
        timing=timing,
        fields=fields,
        received_at=received_at or datetime.now(timezone.utc),
    )


def encode_payload(
    timing: Timing | str,
    operation: Operation | str,
    table: str,
    fields: dict[str, Any],
    image: RowImage | str | None = None,
) -> str:
    """Render a payload in the same format the trigger functions produce.

    Nested mappings and lists are JSON-encoded into strings, the way
    ``row_to_json`` renders JSON stored in text columns.
    """
    timing = Timing(str(getattr(timing, "value", timing)).upper())
    operation = Operation(str(getattr(operation, "value", operation)).upper())
    if image is None:
        image = RowImage.OLD if operation is Operation.DELETE else RowImage.NEW
    image = RowImage(str(getattr(image, "value", image)).capitalize())

    rendered: dict[str, Any] = {}
    for column, value in fields.items():
        if isinstance(value, (dict, list)):
            value = json.dumps(value, separators=(",", ":"))
        elif isinstance(value, datetime):
            value = value.isoformat()
        rendered[column] = value
    row_json = json.dumps(rendered, separators=(",", ":"))
    return f"{timing.value} {operation.value} {table} {image.value}{ROW_MARKER}({row_json[1:-1]})"
