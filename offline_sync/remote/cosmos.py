"""
Azure Cosmos DB remote store.

Each table maps to a container of the same name, partitioned by ``/id``,
so every row is addressable by its primary key alone. Containers are
created on first use.

Error mapping:
- CosmosResourceExistsError -> DuplicateKeyError
- CosmosResourceNotFoundError -> NotFoundError
- Any other CosmosHttpResponseError (throttling, 412 on a concurrent
  replace, service errors) -> TransientError
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any

from azure.core import MatchConditions
from azure.cosmos import PartitionKey
from azure.cosmos.aio import ContainerProxy, CosmosClient, DatabaseProxy
from azure.cosmos.exceptions import (
    CosmosHttpResponseError,
    CosmosResourceExistsError,
    CosmosResourceNotFoundError,
)
from azure.identity.aio import DefaultAzureCredential

from ..exceptions import ConfigurationError, DuplicateKeyError, NotFoundError, TransientError
from .base import RemoteDataStore, Row

logger = logging.getLogger(__name__)

AUTH_KEY = "key"
AUTH_DEFAULT_CREDENTIAL = "default_credential"

# Properties Cosmos adds to every document
SYSTEM_PROPERTIES = ("_rid", "_self", "_etag", "_attachments", "_ts")


@dataclass
class CosmosConfig:
    """Configuration for the Cosmos DB remote store."""

    endpoint: str
    database_name: str = "offline_sync"
    auth_method: str = AUTH_DEFAULT_CREDENTIAL
    key: str | None = None

    @classmethod
    def from_env(cls) -> CosmosConfig:
        """Create config from environment variables.

        Expected environment variables:
        - OFFLINE_SYNC_COSMOS_ENDPOINT: account endpoint (required)
        - OFFLINE_SYNC_COSMOS_DATABASE: database name
        - OFFLINE_SYNC_COSMOS_AUTH_METHOD: ``key`` or ``default_credential``
        - OFFLINE_SYNC_COSMOS_KEY: account key (for key auth)

        Raises:
            ConfigurationError: If required values are missing
        """
        endpoint = os.environ.get("OFFLINE_SYNC_COSMOS_ENDPOINT")
        if not endpoint:
            raise ConfigurationError("cosmos_endpoint", "OFFLINE_SYNC_COSMOS_ENDPOINT not set")

        auth_method = os.environ.get("OFFLINE_SYNC_COSMOS_AUTH_METHOD", AUTH_DEFAULT_CREDENTIAL)
        key = os.environ.get("OFFLINE_SYNC_COSMOS_KEY")
        if auth_method == AUTH_KEY and not key:
            raise ConfigurationError("cosmos_key", "OFFLINE_SYNC_COSMOS_KEY required for key auth")

        return cls(
            endpoint=endpoint,
            database_name=os.environ.get("OFFLINE_SYNC_COSMOS_DATABASE", "offline_sync"),
            auth_method=auth_method,
            key=key,
        )


def _strip_system_properties(doc: dict[str, Any]) -> Row:
    return {k: v for k, v in doc.items() if k not in SYSTEM_PROPERTIES}


class CosmosRemoteStore(RemoteDataStore):
    """Remote store backed by Azure Cosmos DB containers."""

    def __init__(self, config: CosmosConfig, id_field: str = "id"):
        """Initialize the adapter.

        Args:
            config: Cosmos connection settings
            id_field: Primary key field of the rows (copied into ``id``)
        """
        self.config = config
        self.id_field = id_field
        self._client: CosmosClient | None = None
        self._credential: DefaultAzureCredential | None = None
        self._database: DatabaseProxy | None = None
        self._containers: dict[str, ContainerProxy] = {}
        self._initialized = False

    @classmethod
    async def create(cls, config: CosmosConfig | None = None) -> CosmosRemoteStore:
        """Create and initialize the adapter."""
        store = cls(config or CosmosConfig.from_env())
        await store.initialize()
        return store

    async def initialize(self) -> None:
        """Open the client and ensure the database exists."""
        if self._initialized:
            return

        try:
            if self.config.auth_method == AUTH_KEY:
                if not self.config.key:
                    raise ConfigurationError("cosmos_key", "Key required for key auth")
                self._client = CosmosClient(self.config.endpoint, credential=self.config.key)
            else:
                self._credential = DefaultAzureCredential()
                self._client = CosmosClient(self.config.endpoint, credential=self._credential)

            self._database = await self._client.create_database_if_not_exists(
                id=self.config.database_name
            )
            self._initialized = True
            logger.info(f"Cosmos remote store initialized: {self.config.endpoint}")
        except CosmosHttpResponseError as e:
            raise TransientError("initialize", cause=e, status=e.status_code) from e

    async def _container(self, table: str) -> ContainerProxy:
        if table in self._containers:
            return self._containers[table]

        await self.initialize()
        if self._database is None:
            raise TransientError("initialize", table, cause=RuntimeError("Database not initialized"))

        try:
            container = await self._database.create_container_if_not_exists(
                id=table,
                partition_key=PartitionKey(path="/id"),
            )
        except CosmosHttpResponseError as e:
            raise TransientError("create_container", table, cause=e, status=e.status_code) from e

        self._containers[table] = container
        return container

    def _document(self, row: Row, row_id: Any) -> dict[str, Any]:
        return {**row, "id": str(row_id)}

    async def insert(self, table: str, row: Row) -> Row:
        row_id = row.get(self.id_field)
        container = await self._container(table)
        try:
            created = await container.create_item(body=self._document(row, row_id))
        except CosmosResourceExistsError as e:
            raise DuplicateKeyError(table, row_id) from e
        except CosmosHttpResponseError as e:
            raise TransientError("insert", table, cause=e, status=e.status_code) from e
        return _strip_system_properties(created)

    async def select_by_id(self, table: str, row_id: Any) -> Row:
        container = await self._container(table)
        try:
            doc = await container.read_item(item=str(row_id), partition_key=str(row_id))
        except CosmosResourceNotFoundError as e:
            raise NotFoundError(table, row_id) from e
        except CosmosHttpResponseError as e:
            raise TransientError("select", table, cause=e, status=e.status_code) from e
        return _strip_system_properties(doc)

    async def update(self, table: str, row_id: Any, patch: Row) -> None:
        """Read-merge-replace guarded by the document etag."""
        container = await self._container(table)
        try:
            current = await container.read_item(item=str(row_id), partition_key=str(row_id))
            merged = {**current, **patch, "id": str(row_id)}
            await container.replace_item(
                item=str(row_id),
                body=_strip_system_properties(merged),
                etag=current.get("_etag"),
                match_condition=MatchConditions.IfNotModified,
            )
        except CosmosResourceNotFoundError as e:
            raise NotFoundError(table, row_id) from e
        except CosmosHttpResponseError as e:
            raise TransientError("update", table, cause=e, status=e.status_code) from e

    async def delete(self, table: str, row_id: Any) -> None:
        container = await self._container(table)
        try:
            await container.delete_item(item=str(row_id), partition_key=str(row_id))
        except CosmosResourceNotFoundError as e:
            raise NotFoundError(table, row_id) from e
        except CosmosHttpResponseError as e:
            raise TransientError("delete", table, cause=e, status=e.status_code) from e

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
        if self._credential is not None:
            await self._credential.close()
        self._client = None
        self._credential = None
        self._database = None
        self._containers = {}
        self._initialized = False
