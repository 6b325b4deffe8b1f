"""
PostgREST (Supabase REST) remote store.

Maps the four CRUD-by-id calls onto PostgREST requests against
``{base_url}/{table}`` and translates its error reporting:

- HTTP 409 with Postgres code 23505 (unique violation) -> DuplicateKeyError
- PGRST116 (single-object request matched no row) -> NotFoundError
- An empty ``return=representation`` body on PATCH/DELETE -> NotFoundError
- Anything else, including connection errors and timeouts -> TransientError

No timeout is imposed unless ``request_timeout`` is given; aiohttp's own
default then governs.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import aiohttp

from ..exceptions import DuplicateKeyError, NotFoundError, TransientError
from .base import RemoteDataStore, Row

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"
NO_ROWS = "PGRST116"
SINGLE_OBJECT = "application/vnd.pgrst.object+json"


class PostgrestRemoteStore(RemoteDataStore):
    """Remote store speaking the PostgREST HTTP dialect."""

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        access_token: str | None = None,
        id_field: str = "id",
        request_timeout: float | None = None,
        session: aiohttp.ClientSession | None = None,
    ):
        """Initialize the adapter.

        Args:
            base_url: REST root, e.g. ``https://<project>.supabase.co/rest/v1``
            api_key: Sent as ``apikey`` (and as bearer token if no access_token)
            access_token: Bearer token for row-level security
            id_field: Primary key column
            request_timeout: Total seconds per request (transport default if None)
            session: Existing aiohttp session to reuse (not closed by close())
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.access_token = access_token
        self.id_field = id_field
        self.request_timeout = request_timeout
        self._session = session
        self._owns_session = session is None

    def _headers(self, **extra: str) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
        token = self.access_token or self.api_key
        if token:
            headers["Authorization"] = f"Bearer {token}"
        headers.update(extra)
        return headers

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = (
                aiohttp.ClientTimeout(total=self.request_timeout)
                if self.request_timeout is not None
                else None
            )
            if timeout is None:
                self._session = aiohttp.ClientSession()
            else:
                self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True
        return self._session

    def _filter(self, row_id: Any) -> dict[str, str]:
        return {self.id_field: f"eq.{row_id}"}

    async def _request(
        self,
        method: str,
        table: str,
        *,
        params: dict[str, str] | None = None,
        body: Any = None,
        headers: dict[str, str] | None = None,
    ) -> tuple[int, Any]:
        """Send a request and return (status, parsed body)."""
        url = f"{self.base_url}/{table}"
        try:
            async with self._get_session().request(
                method,
                url,
                params=params,
                data=json.dumps(body) if body is not None else None,
                headers=headers or self._headers(),
            ) as response:
                text = await response.text()
                try:
                    payload = json.loads(text) if text else None
                except ValueError:
                    payload = text
                return response.status, payload
        except (aiohttp.ClientError, TimeoutError) as e:
            raise TransientError(method.lower(), table, cause=e) from e

    @staticmethod
    def _error_code(payload: Any) -> str | None:
        if isinstance(payload, dict):
            code = payload.get("code")
            return str(code) if code is not None else None
        return None

    async def insert(self, table: str, row: Row) -> Row:
        status, payload = await self._request(
            "POST",
            table,
            body=row,
            headers=self._headers(Prefer="return=representation"),
        )
        if status == 409 and self._error_code(payload) == UNIQUE_VIOLATION:
            raise DuplicateKeyError(table, row.get(self.id_field))
        if status >= 400:
            raise TransientError("insert", table, status=status)
        if isinstance(payload, list):
            return payload[0] if payload else dict(row)
        return payload if isinstance(payload, dict) else dict(row)

    async def select_by_id(self, table: str, row_id: Any) -> Row:
        params = {**self._filter(row_id), "select": "*"}
        status, payload = await self._request(
            "GET",
            table,
            params=params,
            headers=self._headers(Accept=SINGLE_OBJECT),
        )
        if status == 406 or self._error_code(payload) == NO_ROWS:
            raise NotFoundError(table, row_id)
        if status >= 400:
            raise TransientError("select", table, status=status)
        if not isinstance(payload, dict):
            raise NotFoundError(table, row_id)
        return payload

    async def update(self, table: str, row_id: Any, patch: Row) -> None:
        status, payload = await self._request(
            "PATCH",
            table,
            params=self._filter(row_id),
            body=patch,
            headers=self._headers(Prefer="return=representation"),
        )
        if self._error_code(payload) == NO_ROWS:
            raise NotFoundError(table, row_id)
        if status >= 400:
            raise TransientError("update", table, status=status)
        if isinstance(payload, list) and not payload:
            raise NotFoundError(table, row_id)

    async def delete(self, table: str, row_id: Any) -> None:
        status, payload = await self._request(
            "DELETE",
            table,
            params=self._filter(row_id),
            headers=self._headers(Prefer="return=representation"),
        )
        if self._error_code(payload) == NO_ROWS:
            raise NotFoundError(table, row_id)
        if status >= 400:
            raise TransientError("delete", table, status=status)
        if isinstance(payload, list) and not payload:
            raise NotFoundError(table, row_id)

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None
