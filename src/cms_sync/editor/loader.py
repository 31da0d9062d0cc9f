"""Read-only data composition for a section editor."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel

from cms_sync.content.models import ContentRow, PageRecord
from cms_sync.core.remote import ContentRepository
from cms_sync.structure.manifest import PageManifest

logger = logging.getLogger(__name__)


class EditorData(BaseModel):
    """Everything a section editor needs for one ``(page, section)``.

    ``page_not_found`` is distinct from ``error``: the store answered but
    has no such page.
    """

    page_slug: str | None = None
    section_id: str | None = None
    page: PageRecord | None = None
    content: list[ContentRow] = []
    media: list[dict[str, Any]] = []
    error: str | None = None
    page_not_found: bool = False
    fetched_at: str | None = None

    model_config = {"frozen": True}


class EditorDataLoader:
    """Loads a page's section content and media for editing.

    Every ``fetch()`` works on its own local state; only the most recently
    started call updates ``data``, so a slow, superseded fetch can never
    overwrite a newer one.
    """

    def __init__(
        self,
        repository: ContentRepository,
        manifest: PageManifest | None = None,
    ) -> None:
        self.repository = repository
        self.manifest = manifest
        self.data = EditorData()
        self.is_loading = False
        self._generation = 0
        self._last_args: tuple[str | None, str | None] | None = None

    async def fetch(
        self, page_slug: str | None, section_id: str | None
    ) -> EditorData:
        """Fetch content and media for a section.  Never raises."""
        self._generation += 1
        generation = self._generation
        self._last_args = (page_slug, section_id)
        self.is_loading = True
        result = await self._fetch(page_slug, section_id)
        if generation == self._generation:
            self.data = result
            self.is_loading = False
        else:
            logger.debug("Discarding stale editor fetch for %s/%s", page_slug, section_id)
        return result

    async def refetch(self) -> EditorData:
        if self._last_args is None:
            return self.data
        return await self.fetch(*self._last_args)

    async def _fetch(
        self, page_slug: str | None, section_id: str | None
    ) -> EditorData:
        if not page_slug or not section_id:
            return EditorData(
                page_slug=page_slug,
                section_id=section_id,
                error="Missing page or section identifier",
            )

        data_slug = (
            self.manifest.data_page_for(page_slug, section_id)
            if self.manifest
            else page_slug
        )
        logger.info("Fetching %s/%s (store page: %s)", page_slug, section_id, data_slug)

        try:
            page = await self.repository.get_page_by_slug(data_slug)
            if page is None and data_slug != page_slug:
                logger.info("Falling back to page %s", page_slug)
                page = await self.repository.get_page_by_slug(page_slug)

            if page is None:
                logger.warning("Page not found: %s", data_slug)
                return EditorData(
                    page_slug=page_slug,
                    section_id=section_id,
                    page_not_found=True,
                    fetched_at=datetime.now(timezone.utc).isoformat(),
                )

            content, media = await asyncio.gather(
                self.repository.content_for_section(page.slug, section_id),
                self.repository.media_for_section(page.slug, section_id),
            )
        except Exception as e:
            logger.error(
                "Editor fetch failed: %s",
                e,
                extra={"details": {"page": page_slug, "section": section_id}},
            )
            return EditorData(
                page_slug=page_slug, section_id=section_id, error=str(e)
            )

        logger.info(
            "Loaded %d content row(s), %d media for %s/%s",
            len(content),
            len(media),
            page.slug,
            section_id,
        )
        return EditorData(
            page_slug=page_slug,
            section_id=section_id,
            page=page,
            content=content,
            media=media,
            fetched_at=datetime.now(timezone.utc).isoformat(),
        )
