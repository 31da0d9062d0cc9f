"""Remote store contract and the content-domain repository built on it.

``RemoteStore`` is the async table-level protocol every backend implements
(``AsyncStoreClient`` in production, an in-memory fake in tests).
``ContentRepository`` layers the page/content/media/draft operations on
top and is the only place that knows those tables' column names.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Protocol

from cms_sync.config_schema import TableNames
from cms_sync.content.models import ContentRow, PageRecord

logger = logging.getLogger(__name__)

Row = dict[str, Any]

CONTENT_CONFLICT_KEY = "page_slug,content_key"
PAGE_CONFLICT_KEY = "slug"
DRAFT_CONFLICT_KEY = "page_slug,section,content_key,language"


class RemoteStore(Protocol):
    """Async, table-oriented access to the relational store."""

    async def select(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        order: str | None = None,
        descending: bool = False,
    ) -> list[Row]: ...

    async def insert(self, table: str, rows: Row | list[Row]) -> list[Row]: ...

    async def update(
        self, table: str, values: Row, filters: dict[str, Any]
    ) -> list[Row]: ...

    async def delete(self, table: str, filters: dict[str, Any]) -> list[Row]: ...

    async def upsert(
        self, table: str, rows: Row | list[Row], on_conflict: str
    ) -> list[Row]: ...


class ContentRepository:
    """Domain operations over a ``RemoteStore``.

    Args:
        store: Any ``RemoteStore`` implementation.
        tables: Table names; defaults to the ``cms_*`` tables.
    """

    def __init__(
        self, store: RemoteStore, tables: TableNames | None = None
    ) -> None:
        self.store = store
        self.tables = tables or TableNames()

    # ------------------------------------------------------------------
    # Pages
    # ------------------------------------------------------------------

    async def list_pages(self) -> list[PageRecord]:
        rows = await self.store.select(
            self.tables.pages, order="display_order"
        )
        return [PageRecord.model_validate(row) for row in rows]

    async def list_page_slugs(self) -> set[str]:
        rows = await self.store.select(self.tables.pages)
        return {row["slug"] for row in rows if row.get("slug")}

    async def get_page_by_slug(self, slug: str) -> PageRecord | None:
        rows = await self.store.select(self.tables.pages, {"slug": slug})
        if not rows:
            return None
        return PageRecord.model_validate(rows[0])

    async def upsert_pages(self, pages: Iterable[PageRecord]) -> list[Row]:
        records = [page.to_record() for page in pages]
        if not records:
            return []
        return await self.store.upsert(
            self.tables.pages, records, PAGE_CONFLICT_KEY
        )

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    async def list_content_rows(self) -> list[ContentRow]:
        rows = await self.store.select(
            self.tables.content, order="display_order"
        )
        return [ContentRow.model_validate(row) for row in rows]

    async def content_for_section(
        self, page_slug: str, section: str
    ) -> list[ContentRow]:
        rows = await self.store.select(
            self.tables.content,
            {"page_slug": page_slug, "section": section},
            order="display_order",
        )
        return [ContentRow.model_validate(row) for row in rows]

    async def upsert_content_rows(
        self, rows: Iterable[ContentRow]
    ) -> list[Row]:
        """Write rows, replacing any existing row with the same key."""
        records = [row.to_record() for row in rows]
        if not records:
            return []
        return await self.store.upsert(
            self.tables.content, records, CONTENT_CONFLICT_KEY
        )

    async def insert_content_rows(
        self, rows: Iterable[ContentRow]
    ) -> list[Row]:
        records = [row.to_record() for row in rows]
        if not records:
            return []
        return await self.store.insert(self.tables.content, records)

    async def delete_content_for_page(self, page_slug: str) -> int:
        deleted = await self.store.delete(
            self.tables.content, {"page_slug": page_slug}
        )
        return len(deleted)

    # ------------------------------------------------------------------
    # Media
    # ------------------------------------------------------------------

    async def media_for_section(
        self, page_slug: str, section: str
    ) -> list[Row]:
        """Return media rows for a section, newest first."""
        return await self.store.select(
            self.tables.media,
            {"page_slug": page_slug, "section": section},
            order="created_at",
            descending=True,
        )

    # ------------------------------------------------------------------
    # Drafts
    # ------------------------------------------------------------------

    async def drafts_for_section(
        self, page_slug: str, section: str
    ) -> list[Row]:
        return await self.store.select(
            self.tables.drafts,
            {"page_slug": page_slug, "section": section},
        )

    async def upsert_drafts(self, rows: list[Row]) -> list[Row]:
        if not rows:
            return []
        return await self.store.upsert(
            self.tables.drafts, rows, DRAFT_CONFLICT_KEY
        )

    async def delete_drafts_for_section(
        self, page_slug: str, section: str
    ) -> int:
        deleted = await self.store.delete(
            self.tables.drafts,
            {"page_slug": page_slug, "section": section},
        )
        return len(deleted)
