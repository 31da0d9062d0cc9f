"""Merge remote content rows over the seeded content tree."""

from __future__ import annotations

import logging

from cms_sync.content.codec import row_to_field
from cms_sync.content.models import LocalizedValue
from cms_sync.content.tree import ContentTree
from cms_sync.core.remote import ContentRepository
from cms_sync.sync.models import LoadResult
from cms_sync.sync.tracker import ChangeTracker

logger = logging.getLogger(__name__)


class RemoteContentLoader:
    """Re-hydrates a ``ContentTree`` from the remote store.

    Remote rows replace the seeded value of their field.  Rows whose page
    is not a known page are dropped, and fields with unsaved local edits
    are left alone.

    Args:
        repository: Remote content access.
        tree: Tree to merge into (normally seeded from the fallback).
        tracker: Optional change tracker; its pending fields are skipped.
    """

    def __init__(
        self,
        repository: ContentRepository,
        tree: ContentTree,
        tracker: ChangeTracker | None = None,
    ) -> None:
        self.repository = repository
        self.tree = tree
        self.tracker = tracker
        self.last_result: LoadResult | None = None

    async def load(self) -> LoadResult:
        """Fetch remote rows and merge them into the tree.

        Never raises; a failure leaves the tree untouched and returns a
        degraded result.
        """
        try:
            slugs = await self.repository.list_page_slugs()
            rows = await self.repository.list_content_rows()
        except Exception as e:
            logger.warning(
                "Remote content unavailable, using local content only: %s", e
            )
            result = LoadResult(degraded=True, error=str(e))
            self.last_result = result
            return result

        updates: list[tuple[str, str, str, LocalizedValue]] = []
        orphans: list[str] = []
        for row in rows:
            if row.page_slug not in slugs:
                orphans.append(f"{row.page_slug}/{row.content_key}")
                continue
            section, field, value = row_to_field(row)
            updates.append((row.page_slug, section, field, value))

        if orphans:
            logger.warning(
                "Dropped %d content row(s) for unknown pages",
                len(orphans),
                extra={"details": {"orphans": orphans}},
            )

        # Pending fields are read after the awaits so edits made during
        # the fetch are protected too.
        pending = self.tracker.pending_fields() if self.tracker else set()
        merged = 0
        skipped = 0
        for page, section, field, value in updates:
            if (page, section, field) in pending:
                skipped += 1
                continue
            self.tree.put_field(page, section, field, value)
            merged += 1

        logger.info(
            "Loaded %d remote field(s) (%d kept local edits, %d orphan(s))",
            merged,
            skipped,
            len(orphans),
        )
        result = LoadResult(
            merged=merged, skipped_pending=skipped, orphans=orphans
        )
        self.last_result = result
        return result
