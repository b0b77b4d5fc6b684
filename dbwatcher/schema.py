"""Per-table column type cache used to gate timestamp coercion."""

from __future__ import annotations

import logging
from types import MappingProxyType

from dbwatcher.models import TableSchema
from dbwatcher.protocols import NotifyConnection

logger = logging.getLogger(__name__)

COLUMNS_QUERY = """
SELECT column_name, data_type
FROM information_schema.columns
WHERE table_name = $1
ORDER BY ordinal_position
"""

_EMPTY_SCHEMA: TableSchema = MappingProxyType({})


class SchemaCache:
    """Table name -> declared column types.

    Entries are written once per successful introspection and never mutated
    afterwards; a table that could not be introspected maps to an empty schema.
    """

    def __init__(self) -> None:
        self._schemas: dict[str, TableSchema] = {}

    def __contains__(self, table: object) -> bool:
        return table in self._schemas

    def __len__(self) -> int:
        return len(self._schemas)

    def get(self, table: str) -> TableSchema | None:
        return self._schemas.get(table)

    def put(self, table: str, columns: dict[str, str]) -> TableSchema:
        schema: TableSchema = MappingProxyType(dict(columns))
        self._schemas[table] = schema
        return schema

    def evict(self, table: str) -> None:
        self._schemas.pop(table, None)

    def clear(self) -> None:
        self._schemas.clear()

    async def load(self, connection: NotifyConnection, table: str) -> TableSchema:
        """Introspect ``table`` and cache its column types.

        Introspection only enriches decoding, so failures are logged and the
        table gets an empty schema instead of failing the caller.
        """
        try:
            rows = await connection.fetch(COLUMNS_QUERY, table)
        except Exception as exc:
            logger.warning("Schema introspection failed for table %s, timestamps will not be coerced: %s", table, exc)
            self._schemas[table] = _EMPTY_SCHEMA
            return _EMPTY_SCHEMA
        columns = {str(row["column_name"]): str(row["data_type"]) for row in rows}
        if not columns:
            logger.debug("Schema introspection returned no columns for table %s", table)
        return self.put(table, columns)
