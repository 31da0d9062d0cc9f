"""Shared pytest fixtures for cms-content-sync tests."""

from __future__ import annotations

import asyncio
import itertools
from collections import defaultdict
from typing import Any, Callable

import pytest
from dotenv import load_dotenv

from cms_sync.config import Config
from cms_sync.content.tree import ContentTree
from cms_sync.core.remote import ContentRepository
from cms_sync.errors import StoreError

load_dotenv()


def _matches(row: dict[str, Any], filters: dict[str, Any] | None) -> bool:
    return all(row.get(k) == v for k, v in (filters or {}).items())


class FakeStore:
    """In-memory ``RemoteStore`` for testing.

    Tables are lists of dicts.  Every call is recorded in ``calls`` as
    ``(method, table, payload)``.  Failures can be injected per
    ``(method, table)`` via ``fail``, or per row via ``reject``.
    """

    def __init__(self, tables: dict[str, list[dict]] | None = None) -> None:
        self.tables: dict[str, list[dict]] = defaultdict(list)
        self.calls: list[tuple[str, str, Any]] = []
        self.failures: dict[
            tuple[str, str], tuple[Exception, Callable[[Any], bool] | None]
        ] = {}
        self.reject: Callable[[str, dict], bool] | None = None
        self.delay = 0.0
        self._ids = itertools.count(1)
        for table, rows in (tables or {}).items():
            self.seed(table, rows)

    # -- test helpers -------------------------------------------------------

    def seed(self, table: str, rows: list[dict]) -> None:
        for row in rows:
            stored = dict(row)
            stored.setdefault("id", next(self._ids))
            self.tables[table].append(stored)

    def fail(
        self,
        method: str,
        table: str,
        exc: Exception | None = None,
        when: Callable[[Any], bool] | None = None,
    ) -> None:
        """Make *method* on *table* raise; only for payloads matching *when*."""
        self.failures[(method, table)] = (
            exc or StoreError(500, "injected failure", table),
            when,
        )

    def clear_failures(self) -> None:
        self.failures.clear()
        self.reject = None

    def calls_for(self, method: str, table: str | None = None) -> list[tuple]:
        return [
            c
            for c in self.calls
            if c[0] == method and (table is None or c[1] == table)
        ]

    @property
    def write_calls(self) -> list[tuple]:
        return [c for c in self.calls if c[0] != "select"]

    async def _enter(self, method: str, table: str, payload: Any) -> None:
        self.calls.append((method, table, payload))
        if self.delay:
            await asyncio.sleep(self.delay)
        failure = self.failures.get((method, table))
        if failure is None:
            return
        exc, when = failure
        if when is None or when(payload):
            raise exc

    def _check_rows(self, table: str, rows: list[dict]) -> None:
        if self.reject and any(self.reject(table, row) for row in rows):
            raise StoreError(400, "row rejected", table)

    # -- RemoteStore --------------------------------------------------------

    async def select(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        order: str | None = None,
        descending: bool = False,
    ) -> list[dict]:
        await self._enter("select", table, filters)
        rows = [dict(r) for r in self.tables[table] if _matches(r, filters)]
        if order:
            rows.sort(
                key=lambda r: (r.get(order) is None, r.get(order)),
                reverse=descending,
            )
        return rows

    async def insert(self, table: str, rows) -> list[dict]:
        rows = [rows] if isinstance(rows, dict) else list(rows)
        await self._enter("insert", table, rows)
        self._check_rows(table, rows)
        stored = []
        for row in rows:
            new = dict(row)
            new.setdefault("id", next(self._ids))
            self.tables[table].append(new)
            stored.append(dict(new))
        return stored

    async def update(self, table: str, values: dict, filters: dict) -> list[dict]:
        await self._enter("update", table, (values, filters))
        updated = []
        for row in self.tables[table]:
            if _matches(row, filters):
                row.update(values)
                updated.append(dict(row))
        return updated

    async def delete(self, table: str, filters: dict) -> list[dict]:
        await self._enter("delete", table, filters)
        kept, removed = [], []
        for row in self.tables[table]:
            (removed if _matches(row, filters) else kept).append(row)
        self.tables[table] = kept
        return removed

    async def upsert(self, table: str, rows, on_conflict: str) -> list[dict]:
        rows = [rows] if isinstance(rows, dict) else list(rows)
        await self._enter("upsert", table, rows)
        self._check_rows(table, rows)
        keys = on_conflict.split(",")
        stored = []
        for row in rows:
            existing = next(
                (
                    r
                    for r in self.tables[table]
                    if all(r.get(k) == row.get(k) for k in keys)
                ),
                None,
            )
            if existing is None:
                existing = dict(row)
                existing.setdefault("id", next(self._ids))
                self.tables[table].append(existing)
            else:
                existing.update(row)
            stored.append(dict(existing))
        return stored


@pytest.fixture
def store() -> FakeStore:
    """An empty in-memory store."""
    return FakeStore()


@pytest.fixture
def repository(store: FakeStore) -> ContentRepository:
    return ContentRepository(store)


@pytest.fixture
def tree() -> ContentTree:
    return ContentTree()


@pytest.fixture
def mock_config(tmp_path) -> Config:
    """Create a Config instance for testing."""
    return Config(
        store_url="https://store.example.com",
        api_key="test-key",
        state_dir=str(tmp_path / ".cms_sync"),
    )
