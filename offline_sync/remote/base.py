"""
Remote data store abstraction.

The sync engine talks to the remote side only through this interface,
addressed per table. Adapters translate their transport's failures into
the shared exception taxonomy:

- DuplicateKeyError: insert hit an existing primary key
- NotFoundError: the addressed row does not exist
- TransientError (or any other exception): retried with backoff
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

Row = dict[str, Any]


class RemoteDataStore(ABC):
    """Async CRUD-by-primary-key access to remote tables."""

    @abstractmethod
    async def insert(self, table: str, row: Row) -> Row:
        """Insert a row.

        Returns:
            The stored row

        Raises:
            DuplicateKeyError: If a row with the same primary key exists
        """

    @abstractmethod
    async def select_by_id(self, table: str, row_id: Any) -> Row:
        """Fetch a row by primary key.

        Raises:
            NotFoundError: If no such row exists
        """

    @abstractmethod
    async def update(self, table: str, row_id: Any, patch: Row) -> None:
        """Apply a partial update to a row.

        Raises:
            NotFoundError: If no such row exists
        """

    @abstractmethod
    async def delete(self, table: str, row_id: Any) -> None:
        """Delete a row by primary key.

        Raises:
            NotFoundError: If no such row exists
        """

    async def close(self) -> None:
        """Release connections held by the adapter."""

    async def __aenter__(self) -> RemoteDataStore:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
