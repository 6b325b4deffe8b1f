"""In-memory remote store, for tests, demos and local development."""

from __future__ import annotations

import copy
from typing import Any

from ..exceptions import DuplicateKeyError, NotFoundError
from .base import RemoteDataStore, Row


class InMemoryRemoteStore(RemoteDataStore):
    """Dictionary-backed remote store.

    Every call is appended to ``calls`` as ``(operation, table, row_id)``
    so callers can assert on ordering.
    """

    def __init__(
        self,
        tables: dict[str, list[Row]] | None = None,
        id_field: str = "id",
    ):
        """Initialize the store.

        Args:
            tables: Optional seed rows per table
            id_field: Primary key field name
        """
        self.id_field = id_field
        self.tables: dict[str, dict[Any, Row]] = {}
        self.calls: list[tuple[str, str, Any]] = []
        for table, rows in (tables or {}).items():
            for row in rows:
                self.tables.setdefault(table, {})[row[id_field]] = copy.deepcopy(row)

    def rows(self, table: str) -> list[Row]:
        """All rows in a table, in insertion order."""
        return [copy.deepcopy(row) for row in self.tables.get(table, {}).values()]

    async def insert(self, table: str, row: Row) -> Row:
        row_id = row.get(self.id_field)
        self.calls.append(("insert", table, row_id))
        rows = self.tables.setdefault(table, {})
        if row_id in rows:
            raise DuplicateKeyError(table, row_id)
        rows[row_id] = copy.deepcopy(row)
        return copy.deepcopy(row)

    async def select_by_id(self, table: str, row_id: Any) -> Row:
        self.calls.append(("select", table, row_id))
        row = self.tables.get(table, {}).get(row_id)
        if row is None:
            raise NotFoundError(table, row_id)
        return copy.deepcopy(row)

    async def update(self, table: str, row_id: Any, patch: Row) -> None:
        self.calls.append(("update", table, row_id))
        row = self.tables.get(table, {}).get(row_id)
        if row is None:
            raise NotFoundError(table, row_id)
        row.update(copy.deepcopy(patch))
        row[self.id_field] = row_id

    async def delete(self, table: str, row_id: Any) -> None:
        self.calls.append(("delete", table, row_id))
        rows = self.tables.get(table, {})
        if row_id not in rows:
            raise NotFoundError(table, row_id)
        del rows[row_id]
