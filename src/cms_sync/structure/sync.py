"""Reconcile the declared page manifest with the remote pages table.

``StructureSync`` computes the one-way difference manifest -> store and
creates the missing page records.  Its status follows a small state
machine::

    idle -> loading -> idle            (refresh)
    idle -> syncing -> success -> idle (sync; success reverts after a delay)
    any  -> error                      (until the next refresh/sync)
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum

from cms_sync.core.remote import ContentRepository
from cms_sync.structure.manifest import PageManifest
from cms_sync.sync.state import LAST_STRUCTURE_SYNC, LocalState

logger = logging.getLogger(__name__)

DEFAULT_RESET_DELAY = 2.0


class StructureStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    SYNCING = "syncing"
    SUCCESS = "success"
    ERROR = "error"


class StructureSync:
    """Creates manifest pages that are missing from the store.

    Args:
        repository: Remote access for the pages table.
        manifest: Declared pages.
        state: Durable storage for the last sync time; optional.
        reset_delay: Seconds before ``success`` reverts to ``idle``.
    """

    def __init__(
        self,
        repository: ContentRepository,
        manifest: PageManifest,
        state: LocalState | None = None,
        reset_delay: float = DEFAULT_RESET_DELAY,
    ) -> None:
        self.repository = repository
        self.manifest = manifest
        self.state = state
        self.reset_delay = reset_delay

        self.status = StructureStatus.IDLE
        self.error: str | None = None
        self.remote_count = 0
        self.missing_slugs: list[str] = []
        self.last_synced_at: str | None = (
            state.get(LAST_STRUCTURE_SYNC) if state else None
        )
        self._refreshed = False
        self._reset_task: asyncio.Task | None = None

    @property
    def manifest_count(self) -> int:
        return len(self.manifest)

    @property
    def missing_count(self) -> int:
        return len(self.missing_slugs)

    def _set_status(self, status: StructureStatus) -> None:
        if self._reset_task is not None:
            self._reset_task.cancel()
            self._reset_task = None
        self.status = status

    def _fail(self, action: str, exc: Exception) -> None:
        self._set_status(StructureStatus.ERROR)
        self.error = str(exc)
        logger.error("Structure %s failed: %s", action, exc)

    async def refresh(self) -> bool:
        """Recompute which manifest pages are missing remotely.

        Returns:
            False if the remote pages could not be loaded.
        """
        self._set_status(StructureStatus.LOADING)
        self.error = None
        try:
            await self._load_counts()
        except Exception as e:
            self._fail("refresh", e)
            return False
        self._set_status(StructureStatus.IDLE)
        return True

    async def _load_counts(self) -> None:
        """Fetch the remote pages and recompute the counts; status is untouched."""
        pages = await self.repository.list_pages()
        remote = {page.slug for page in pages}
        self.remote_count = len(pages)
        self.missing_slugs = [s for s in self.manifest.slugs if s not in remote]
        self._refreshed = True
        logger.info(
            "Structure loaded: store=%d, manifest=%d, missing=%d",
            self.remote_count,
            self.manifest_count,
            self.missing_count,
        )

    async def sync(self) -> bool:
        """Create every missing manifest page in one batched upsert.

        Returns:
            True on success (including when nothing was missing).
        """
        if not self._refreshed and not await self.refresh():
            return False

        if not self.missing_slugs:
            self._succeed()
            return True

        self._set_status(StructureStatus.SYNCING)
        self.error = None
        missing = set(self.missing_slugs)
        created = list(self.missing_slugs)
        logger.info(
            "Syncing %d page(s)", len(created), extra={"details": {"slugs": created}}
        )
        try:
            records = [
                page.to_page_record(index)
                for index, page in enumerate(self.manifest.pages)
                if page.slug in missing
            ]
            await self.repository.upsert_pages(records)
            now = datetime.now(timezone.utc).isoformat()
            if self.state is not None:
                self.state.set(LAST_STRUCTURE_SYNC, now)
            self.last_synced_at = now
            await self._load_counts()
        except Exception as e:
            self._fail("sync", e)
            return False

        self._succeed()
        logger.info(
            "Structure sync complete",
            extra={
                "details": {
                    "created_slugs": created,
                    "last_synced_at": self.last_synced_at,
                }
            },
        )
        return True

    def _succeed(self) -> None:
        self._set_status(StructureStatus.SUCCESS)
        self._reset_task = asyncio.create_task(self._reset_to_idle())

    async def _reset_to_idle(self) -> None:
        await asyncio.sleep(self.reset_delay)
        if self.status is StructureStatus.SUCCESS:
            self.status = StructureStatus.IDLE
        self._reset_task = None

    async def close(self) -> None:
        if self._reset_task is not None:
            self._reset_task.cancel()
            self._reset_task = None
