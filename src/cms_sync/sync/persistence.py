"""Persistence of tracked edits to the remote store.

``PersistenceSync.save()`` turns the pending-change map into one row per
edited field and writes each with a native upsert keyed on
``(page_slug, content_key)``.  Every language column of a row is seeded
from the tree before the pending values are applied, so saving one
language never blanks the others.

``push_all()`` and ``force_resync()`` are bulk operations that write whole
trees in fixed-size batches, retrying a failed batch row by row.

``BackgroundSaver`` drains the pending changes on its own task: it wakes
on each recorded edit, waits for the burst to settle, then saves.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Awaitable, Callable

from cms_sync.content.codec import content_key, field_to_row
from cms_sync.content.fallback import FallbackSnapshot
from cms_sync.content.models import ContentRow, LocalizedValue, PendingChange
from cms_sync.content.tree import ContentTree
from cms_sync.core.remote import ContentRepository
from cms_sync.sync.loader import RemoteContentLoader
from cms_sync.sync.models import ResyncResult, RowFailure, SaveResult
from cms_sync.sync.tracker import ChangeTracker

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 50

RowWriter = Callable[[list[ContentRow]], Awaitable[object]]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _group_changes(
    changes: list[PendingChange],
) -> dict[tuple[str, str, str], list[PendingChange]]:
    groups: dict[tuple[str, str, str], list[PendingChange]] = defaultdict(list)
    for change in changes:
        groups[change.field_key].append(change)
    return groups


class PersistenceSync:
    """Writes tracked edits and whole trees to the remote store.

    Args:
        repository: Remote content access.
        tracker: Source of pending changes.
        tree: The live content tree (snapshotted at save time).
        batch_size: Rows per request for bulk writes.
    """

    def __init__(
        self,
        repository: ContentRepository,
        tracker: ChangeTracker,
        tree: ContentTree,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.repository = repository
        self.tracker = tracker
        self.tree = tree
        self.batch_size = batch_size
        self.last_result: SaveResult | None = None
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Incremental save
    # ------------------------------------------------------------------

    async def save(self) -> SaveResult:
        """Persist every pending change.

        Never raises.  Fields that fail stay pending and are retried by
        the next save.
        """
        async with self._lock:
            result = await self._save_locked()
        self.last_result = result
        return result

    async def _save_locked(self) -> SaveResult:
        started_at = _now()
        # Both snapshots are taken before the first await.
        pending = self.tracker.snapshot()
        if not pending:
            return SaveResult(
                success=True, started_at=started_at, completed_at=_now()
            )
        tree = self.tree.snapshot()
        groups = _group_changes(list(pending.values()))

        try:
            known_pages = await self.repository.list_page_slugs()
        except Exception as e:
            logger.error("Save aborted, could not resolve pages: %s", e)
            return SaveResult(
                success=False,
                error=f"Could not resolve pages: {e}",
                started_at=started_at,
                completed_at=_now(),
            )

        saved_keys: list[str] = []
        failures: list[RowFailure] = []
        persisted: list[PendingChange] = []

        for (page, section, field), changes in groups.items():
            key = content_key(section, field)
            if page not in known_pages:
                logger.warning("Skipping %s/%s: unknown page", page, key)
                failures.append(
                    RowFailure(
                        page=page, content_key=key, reason="unknown page"
                    )
                )
                continue
            try:
                value = self._merged_value(tree, changes)
                row = field_to_row(page, section, field, value)
                await self.repository.upsert_content_rows([row])
            except Exception as e:
                logger.error("Failed to save %s/%s: %s", page, key, e)
                failures.append(
                    RowFailure(page=page, content_key=key, reason=str(e))
                )
                continue
            saved_keys.append(f"{page}/{key}")
            persisted.extend(changes)

        self.tracker.acknowledge(persisted)
        result = SaveResult(
            success=not failures,
            saved_keys=saved_keys,
            failures=failures,
            started_at=started_at,
            completed_at=_now(),
        )
        logger.info(
            result.summary(),
            extra={
                "details": {
                    "saved": len(saved_keys),
                    "failed": [f.content_key for f in failures],
                }
            },
        )
        return result

    @staticmethod
    def _merged_value(
        tree: ContentTree, changes: list[PendingChange]
    ) -> LocalizedValue:
        first = changes[0]
        current = tree.get_field(first.page, first.section, first.field)
        value = current.copy_value() if current else LocalizedValue()
        for change in changes:
            value.set(change.language, change.value)
        return value

    # ------------------------------------------------------------------
    # Bulk writes
    # ------------------------------------------------------------------

    async def push_all(self) -> ResyncResult:
        """Upsert every field of the current tree.

        Pages unknown to the store are skipped.  Never raises.
        """
        started_at = _now()
        tree = self.tree.snapshot()
        try:
            known_pages = await self.repository.list_page_slugs()
        except Exception as e:
            logger.error("Push aborted, could not resolve pages: %s", e)
            return ResyncResult(
                error=str(e), started_at=started_at, completed_at=_now()
            )

        rows, pages, skipped = self._flatten(tree, known_pages)
        written, failures = await self._write_in_batches(
            rows, self.repository.upsert_content_rows
        )
        result = ResyncResult(
            pages=pages,
            skipped_pages=skipped,
            written=written,
            failures=failures,
            started_at=started_at,
            completed_at=_now(),
        )
        logger.info("Pushed %d/%d row(s)", written, len(rows))
        return result

    async def force_resync(
        self,
        fallback: FallbackSnapshot,
        loader: RemoteContentLoader | None = None,
    ) -> ResyncResult:
        """Replace remote content with the pristine fallback content.

        The in-memory tree is ignored.  Existing rows of every known page
        in the fallback are deleted before the fallback rows are inserted.
        A page whose delete fails is left untouched and reported in
        ``failed_pages``; the other pages still proceed.  When *loader* is
        given the tree is reloaded afterwards.  Never raises.
        """
        started_at = _now()
        tree = fallback.tree()
        try:
            known_pages = await self.repository.list_page_slugs()
        except Exception as e:
            logger.error("Forced resync aborted: %s", e)
            return ResyncResult(
                error=str(e), started_at=started_at, completed_at=_now()
            )

        rows, candidates, skipped = self._flatten(tree, known_pages)
        pages: list[str] = []
        failed_pages: list[str] = []
        deleted = 0
        for page in candidates:
            try:
                deleted += await self.repository.delete_content_for_page(page)
            except Exception as e:
                logger.error("Could not clear content of page %s: %s", page, e)
                failed_pages.append(page)
                continue
            pages.append(page)
        if failed_pages:
            rows = [row for row in rows if row.page_slug not in failed_pages]

        written, failures = await self._write_in_batches(
            rows, self.repository.insert_content_rows
        )
        result = ResyncResult(
            pages=pages,
            skipped_pages=skipped,
            failed_pages=failed_pages,
            written=written,
            failures=failures,
            deleted=deleted,
            started_at=started_at,
            completed_at=_now(),
        )
        logger.warning(
            "Forced resync wrote %d/%d row(s) after deleting %d",
            written,
            len(rows),
            deleted,
        )
        if loader is not None:
            await loader.load()
        return result

    @staticmethod
    def _flatten(
        tree: ContentTree, known_pages: set[str]
    ) -> tuple[list[ContentRow], list[str], list[str]]:
        rows: list[ContentRow] = []
        pages: list[str] = []
        skipped: list[str] = []
        order = 0
        for page in tree.pages():
            if page not in known_pages:
                logger.warning("No page record for %s, skipping", page)
                skipped.append(page)
                continue
            pages.append(page)
            for section, fields in (tree.get_page_content(page) or {}).items():
                for field, value in fields.items():
                    rows.append(
                        field_to_row(
                            page,
                            section,
                            field,
                            value,
                            display_order=order,
                            with_label=True,
                        )
                    )
                    order += 1
        return rows, pages, skipped

    async def _write_in_batches(
        self, rows: list[ContentRow], write: RowWriter
    ) -> tuple[int, list[RowFailure]]:
        written = 0
        failures: list[RowFailure] = []
        for start in range(0, len(rows), self.batch_size):
            batch = rows[start:start + self.batch_size]
            number = start // self.batch_size + 1
            try:
                await write(batch)
            except Exception as e:
                logger.warning(
                    "Batch %d failed, retrying row by row: %s", number, e
                )
            else:
                written += len(batch)
                logger.debug("Batch %d: %d row(s)", number, len(batch))
                continue
            for row in batch:
                try:
                    await write([row])
                except Exception as e:
                    failures.append(
                        RowFailure(
                            page=row.page_slug,
                            content_key=row.content_key,
                            reason=str(e),
                        )
                    )
                else:
                    written += 1
        return written, failures


class BackgroundSaver:
    """Saves pending changes on a background task.

    Each recorded edit wakes the task; it then waits ``interval`` seconds
    so a burst of edits is written by one save.

    Args:
        persistence: The sync used to write changes.
        interval: Quiet period before saving, in seconds.
    """

    def __init__(self, persistence: PersistenceSync, interval: float = 1.0):
        self.persistence = persistence
        self.interval = interval
        self._wake = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._unsubscribe = self.persistence.tracker.add_listener(
            lambda _change: self.notify()
        )
        if self.persistence.tracker.has_changes:
            self._wake.set()
        self._task = asyncio.create_task(self._run())

    def notify(self) -> None:
        """Signal that new changes are waiting."""
        self._wake.set()

    async def _run(self) -> None:
        while True:
            await self._wake.wait()
            await asyncio.sleep(self.interval)
            self._wake.clear()
            result = await self.persistence.save()
            if not result.success:
                logger.warning("Background save incomplete: %s", result.summary())

    async def stop(self) -> SaveResult | None:
        """Stop the task and save whatever is still pending."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self.persistence.tracker.has_changes:
            return await self.persistence.save()
        return None
