import asyncio
import logging
import threading
from typing import Any

import requests

from ..config import Config
from ..errors import StoreError, TransportError
from .async_utils import run_sync_limited

logger = logging.getLogger(__name__)

Row = dict[str, Any]


def _format_filter_value(value: Any) -> str:
    if value is None:
        return "is.null"
    if isinstance(value, bool):
        return f"eq.{str(value).lower()}"
    return f"eq.{value}"


def _as_list(rows: Row | list[Row]) -> list[Row]:
    return [rows] if isinstance(rows, dict) else list(rows)


class StoreClient:
    """Blocking client for a PostgREST-style relational store.

    Each thread gets its own ``requests.Session`` so the client can be
    driven from ``asyncio.to_thread`` workers.
    """

    def __init__(self, config: Config):
        self.config = config
        self._thread_local = threading.local()
        self.rest_url = f"{config.store_url.rstrip('/')}/rest/v1"

    @property
    def session(self) -> requests.Session:
        """Return the current thread's session."""
        return self._get_session()

    def _get_session(self) -> requests.Session:
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update(
            {
                "apikey": self.config.api_key,
                "Authorization": f"Bearer {self.config.api_key}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            }
        )
        return session

    def _request(
        self,
        method: str,
        table: str,
        params: dict[str, str] | None = None,
        body: Any = None,
        prefer: str | None = None,
    ) -> list[Row]:
        """
        Send one request to ``/rest/v1/<table>`` and return the row list.
        """
        url = f"{self.rest_url}/{table}"
        headers = {"Prefer": prefer} if prefer else None
        try:
            response = self._get_session().request(
                method,
                url,
                params=params,
                json=body,
                headers=headers,
                timeout=self.config.timeout,
            )
        except (requests.ConnectionError, requests.Timeout) as exc:
            raise TransportError(url, str(exc)) from exc

        if response.status_code >= 400:
            raise StoreError(
                response.status_code, self._error_message(response), table
            )

        if not response.content:
            return []
        data = response.json()
        if isinstance(data, list):
            return data
        return [data] if data else []

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            payload = response.json()
        except ValueError:
            return response.text[:200] or response.reason or "unknown error"
        if isinstance(payload, dict):
            return str(
                payload.get("message")
                or payload.get("error")
                or payload.get("hint")
                or payload
            )
        return str(payload)

    @staticmethod
    def _filter_params(filters: dict[str, Any] | None) -> dict[str, str]:
        return {
            column: _format_filter_value(value)
            for column, value in (filters or {}).items()
        }

    @staticmethod
    def _require_filters(filters: dict[str, Any], action: str) -> None:
        # Unfiltered PATCH/DELETE would touch every row in the table.
        if not filters:
            raise ValueError(f"{action} requires at least one filter")

    def select(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        order: str | None = None,
        descending: bool = False,
        columns: str = "*",
    ) -> list[Row]:
        """
        Return rows of *table* matching all equality *filters*.
        """
        params = self._filter_params(filters)
        params["select"] = columns
        if order:
            params["order"] = f"{order}.{'desc' if descending else 'asc'}"
        return self._request("GET", table, params=params)

    def insert(self, table: str, rows: Row | list[Row]) -> list[Row]:
        """
        Insert one or many rows and return them as stored.
        """
        return self._request(
            "POST",
            table,
            body=_as_list(rows),
            prefer="return=representation",
        )

    def update(
        self, table: str, values: Row, filters: dict[str, Any]
    ) -> list[Row]:
        """
        Update rows matching *filters* with *values*.
        """
        self._require_filters(filters, "update")
        return self._request(
            "PATCH",
            table,
            params=self._filter_params(filters),
            body=values,
            prefer="return=representation",
        )

    def delete(self, table: str, filters: dict[str, Any]) -> list[Row]:
        """
        Delete rows matching *filters* and return the deleted rows.
        """
        self._require_filters(filters, "delete")
        return self._request(
            "DELETE",
            table,
            params=self._filter_params(filters),
            prefer="return=representation",
        )

    def upsert(
        self, table: str, rows: Row | list[Row], on_conflict: str
    ) -> list[Row]:
        """
        Insert rows, updating any row that collides on *on_conflict*.

        Args:
            on_conflict: Comma-separated unique-key columns.
        """
        return self._request(
            "POST",
            table,
            params={"on_conflict": on_conflict},
            body=_as_list(rows),
            prefer="resolution=merge-duplicates,return=representation",
        )


class AsyncStoreClient:
    """``RemoteStore`` implementation over a blocking ``StoreClient``.

    Calls run in worker threads, at most ``max_parallel`` at a time.
    """

    def __init__(self, client: StoreClient, max_parallel: int = 5) -> None:
        self.client = client
        self._semaphore = asyncio.Semaphore(max_parallel)

    @classmethod
    def from_config(cls, config: Config) -> "AsyncStoreClient":
        return cls(StoreClient(config), config.max_parallel_requests)

    async def select(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        order: str | None = None,
        descending: bool = False,
    ) -> list[Row]:
        return await run_sync_limited(
            self._semaphore,
            self.client.select,
            table,
            filters=filters,
            order=order,
            descending=descending,
        )

    async def insert(self, table: str, rows: Row | list[Row]) -> list[Row]:
        return await run_sync_limited(
            self._semaphore, self.client.insert, table, rows
        )

    async def update(
        self, table: str, values: Row, filters: dict[str, Any]
    ) -> list[Row]:
        return await run_sync_limited(
            self._semaphore, self.client.update, table, values, filters
        )

    async def delete(self, table: str, filters: dict[str, Any]) -> list[Row]:
        return await run_sync_limited(
            self._semaphore, self.client.delete, table, filters
        )

    async def upsert(
        self, table: str, rows: Row | list[Row], on_conflict: str
    ) -> list[Row]:
        return await run_sync_limited(
            self._semaphore, self.client.upsert, table, rows, on_conflict
        )
