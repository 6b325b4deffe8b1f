"""
Remote data store adapters.

The engine only depends on RemoteDataStore; pick the adapter matching
where the rows live. The Cosmos adapter is imported lazily by callers
(``from offline_sync.remote.cosmos import CosmosRemoteStore``) so the
Azure SDK is only loaded when used.
"""

from .base import RemoteDataStore, Row
from .memory import InMemoryRemoteStore
from .postgrest import PostgrestRemoteStore

__all__ = [
    "RemoteDataStore",
    "Row",
    "InMemoryRemoteStore",
    "PostgrestRemoteStore",
]
