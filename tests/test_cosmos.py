"""
Tests for the Cosmos DB remote store.

Uses mocked container proxies; no Cosmos account is needed.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from azure.core import MatchConditions
from azure.cosmos.exceptions import (
    CosmosHttpResponseError,
    CosmosResourceExistsError,
    CosmosResourceNotFoundError,
)

from offline_sync.exceptions import (
    ConfigurationError,
    DuplicateKeyError,
    NotFoundError,
    TransientError,
)
from offline_sync.remote.cosmos import AUTH_KEY, CosmosConfig, CosmosRemoteStore


@pytest.fixture
def container():
    """Mocked container proxy."""
    mock = MagicMock()
    mock.create_item = AsyncMock()
    mock.read_item = AsyncMock(return_value={})
    mock.replace_item = AsyncMock()
    mock.delete_item = AsyncMock()
    return mock


@pytest.fixture
def store(container):
    """Adapter with a mocked database already attached."""
    database = MagicMock()
    database.create_container_if_not_exists = AsyncMock(return_value=container)
    adapter = CosmosRemoteStore(CosmosConfig(endpoint="https://test.documents.azure.com:443/"))
    adapter._database = database
    adapter._initialized = True
    return adapter


class TestCosmosConfig:
    """Tests for CosmosConfig.from_env."""

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("OFFLINE_SYNC_COSMOS_ENDPOINT", "https://acct.documents.azure.com")
        monkeypatch.setenv("OFFLINE_SYNC_COSMOS_DATABASE", "school")
        monkeypatch.delenv("OFFLINE_SYNC_COSMOS_AUTH_METHOD", raising=False)

        config = CosmosConfig.from_env()

        assert config.endpoint == "https://acct.documents.azure.com"
        assert config.database_name == "school"
        assert config.auth_method == "default_credential"

    def test_missing_endpoint(self, monkeypatch):
        monkeypatch.delenv("OFFLINE_SYNC_COSMOS_ENDPOINT", raising=False)
        with pytest.raises(ConfigurationError):
            CosmosConfig.from_env()

    def test_key_auth_requires_key(self, monkeypatch):
        monkeypatch.setenv("OFFLINE_SYNC_COSMOS_ENDPOINT", "https://acct.documents.azure.com")
        monkeypatch.setenv("OFFLINE_SYNC_COSMOS_AUTH_METHOD", AUTH_KEY)
        monkeypatch.delenv("OFFLINE_SYNC_COSMOS_KEY", raising=False)
        with pytest.raises(ConfigurationError):
            CosmosConfig.from_env()


class TestCosmosInitialization:
    """Tests for opening the client."""

    @pytest.mark.asyncio
    async def test_key_auth(self):
        config = CosmosConfig(endpoint="https://acct", auth_method=AUTH_KEY, key="secret")
        with patch("offline_sync.remote.cosmos.CosmosClient") as client_cls:
            client = client_cls.return_value
            client.create_database_if_not_exists = AsyncMock(return_value=MagicMock())
            client.close = AsyncMock()

            store = await CosmosRemoteStore.create(config)

            client_cls.assert_called_once_with("https://acct", credential="secret")
            client.create_database_if_not_exists.assert_awaited_once_with(id="offline_sync")
            await store.close()
            client.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_key_auth_without_key(self):
        store = CosmosRemoteStore(CosmosConfig(endpoint="https://acct", auth_method=AUTH_KEY))
        with pytest.raises(ConfigurationError):
            await store.initialize()

    @pytest.mark.asyncio
    async def test_container_per_table(self, store, container):
        await store.select_by_id("students", "s1")
        await store.select_by_id("students", "s2")
        await store.select_by_id("marks", "m1")

        calls = store._database.create_container_if_not_exists.await_args_list
        assert [c.kwargs["id"] for c in calls] == ["students", "marks"]


class TestCosmosCrud:
    """Tests for CRUD calls and error mapping."""

    @pytest.mark.asyncio
    async def test_insert_strips_system_properties(self, store, container):
        container.create_item.return_value = {"id": "s1", "name": "Ada", "_etag": "x", "_ts": 1}

        row = await store.insert("students", {"id": "s1", "name": "Ada"})

        assert row == {"id": "s1", "name": "Ada"}
        container.create_item.assert_awaited_once_with(body={"id": "s1", "name": "Ada"})

    @pytest.mark.asyncio
    async def test_insert_duplicate(self, store, container):
        container.create_item.side_effect = CosmosResourceExistsError(
            status_code=409, message="exists"
        )
        with pytest.raises(DuplicateKeyError):
            await store.insert("students", {"id": "s1"})

    @pytest.mark.asyncio
    async def test_select_missing(self, store, container):
        container.read_item.side_effect = CosmosResourceNotFoundError(
            status_code=404, message="missing"
        )
        with pytest.raises(NotFoundError):
            await store.select_by_id("students", "s1")

    @pytest.mark.asyncio
    async def test_throttling_is_transient(self, store, container):
        container.read_item.side_effect = CosmosHttpResponseError(
            status_code=429, message="too many requests"
        )
        with pytest.raises(TransientError) as exc_info:
            await store.select_by_id("students", "s1")
        assert exc_info.value.status == 429

    @pytest.mark.asyncio
    async def test_update_is_etag_guarded(self, store, container):
        container.read_item.return_value = {
            "id": "s1",
            "name": "Ada",
            "grade": 4,
            "_etag": "etag-1",
        }

        await store.update("students", "s1", {"name": "Ada L."})

        kwargs = container.replace_item.await_args.kwargs
        assert kwargs["body"] == {"id": "s1", "name": "Ada L.", "grade": 4}
        assert kwargs["etag"] == "etag-1"
        assert kwargs["match_condition"] == MatchConditions.IfNotModified

    @pytest.mark.asyncio
    async def test_update_missing(self, store, container):
        container.read_item.side_effect = CosmosResourceNotFoundError(
            status_code=404, message="missing"
        )
        with pytest.raises(NotFoundError):
            await store.update("students", "s1", {"name": "x"})

    @pytest.mark.asyncio
    async def test_delete_missing(self, store, container):
        container.delete_item.side_effect = CosmosResourceNotFoundError(
            status_code=404, message="missing"
        )
        with pytest.raises(NotFoundError):
            await store.delete("students", "s1")

    @pytest.mark.asyncio
    async def test_numeric_ids_are_stringified(self, store, container):
        await store.delete("students", 42)
        container.delete_item.assert_awaited_once_with(item="42", partition_key="42")
