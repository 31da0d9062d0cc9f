"""Section-scoped draft storage with debounced autosave.

Drafts hold unpublished edits in their own table, keyed by
``(page_slug, section, content_key, language)``.  They never touch the
content tree or the content table; publishing a draft is an explicit
operation outside this module.

``autosave()`` only updates local state and (re)starts a per-section
timer.  When a section has been quiet for ``delay`` seconds, every
unsynced edit of that section is written in one batched upsert.  A
failed write leaves the edits unsynced and schedules a retry of the
section with exponential backoff, so they are re-sent even without a
further edit.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from cms_sync.content.codec import (
    content_key,
    parse_column,
    serialize_value,
    split_content_key,
)
from cms_sync.content.models import (
    Draft,
    FieldValue,
    Language,
    LocalizedValue,
    parse_language,
    shape_of,
)
from cms_sync.core.remote import ContentRepository

logger = logging.getLogger(__name__)

DEFAULT_DELAY = 0.8
MAX_RETRY_DELAY = 30.0

SectionKey = tuple[str, str]
EditKey = tuple[str, Language]


class DraftStatus(str, Enum):
    """Autosave status of the store."""

    IDLE = "idle"
    SYNCING = "syncing"
    SYNCED = "synced"
    ERROR = "error"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class _SectionDraft:
    values: dict[EditKey, FieldValue] = field(default_factory=dict)
    # Unsynced edits and the revision that made them.
    dirty: dict[EditKey, int] = field(default_factory=dict)
    updated_at: str | None = None


class DraftStore:
    """Local draft cache with debounced remote autosave.

    Args:
        repository: Remote access for the drafts table.
        delay: Quiet period before a section is written, in seconds.
    """

    def __init__(
        self, repository: ContentRepository, delay: float = DEFAULT_DELAY
    ) -> None:
        self.repository = repository
        self.delay = delay
        self.status = DraftStatus.IDLE
        self.last_synced_at: str | None = None
        self.error: str | None = None
        self._sections: dict[SectionKey, _SectionDraft] = {}
        self._timers: dict[SectionKey, asyncio.Task] = {}
        self._locks: dict[SectionKey, asyncio.Lock] = {}
        self._attempts: dict[SectionKey, int] = {}
        self._revisions = itertools.count(1)

    @property
    def pending_count(self) -> int:
        """Number of edits not yet written remotely."""
        return sum(len(d.dirty) for d in self._sections.values())

    # ------------------------------------------------------------------
    # Local edits
    # ------------------------------------------------------------------

    def autosave(
        self,
        page: str,
        section: str,
        edits: Mapping[str, Mapping[str, FieldValue]],
    ) -> None:
        """Record edits for a section and restart its autosave timer.

        Args:
            edits: ``{field: {language: value}}``.

        Raises:
            UnknownLanguageError: If an edit uses an unsupported language.
        """
        parsed = [
            (name, parse_language(code), value)
            for name, languages in edits.items()
            for code, value in languages.items()
        ]
        draft = self._sections.setdefault((page, section), _SectionDraft())
        for name, lang, value in parsed:
            key = (name, lang)
            draft.values[key] = list(value) if isinstance(value, list) else value
            draft.dirty[key] = next(self._revisions)
        draft.updated_at = _now()
        self._schedule(page, section)

    def _schedule(
        self, page: str, section: str, delay: float | None = None
    ) -> None:
        key = (page, section)
        timer = self._timers.pop(key, None)
        if timer is not None:
            timer.cancel()
        self._timers[key] = asyncio.create_task(
            self._autosave_after_delay(key, self.delay if delay is None else delay)
        )

    async def _autosave_after_delay(self, key: SectionKey, delay: float) -> None:
        await asyncio.sleep(delay)
        # Past this point a newer autosave starts a new timer instead of
        # cancelling the write in progress.
        if self._timers.get(key) is asyncio.current_task():
            del self._timers[key]
        await self._write(*key)

    # ------------------------------------------------------------------
    # Remote writes
    # ------------------------------------------------------------------

    async def _write(self, page: str, section: str) -> bool:
        key = (page, section)
        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            draft = self._sections.get(key)
            if draft is None or not draft.dirty:
                return True
            batch = dict(draft.dirty)
            updated_at = draft.updated_at or _now()
            rows = [
                {
                    "page_slug": page,
                    "section": section,
                    "content_key": content_key(section, name),
                    "language": lang.value,
                    "value": serialize_value(draft.values[(name, lang)]),
                    "content_type": shape_of(draft.values[(name, lang)]),
                    "updated_at": updated_at,
                }
                for name, lang in batch
            ]
            self.status = DraftStatus.SYNCING
            try:
                await self.repository.upsert_drafts(rows)
            except Exception as e:
                self.status = DraftStatus.ERROR
                self.error = str(e)
                attempts = self._attempts.get(key, 0) + 1
                self._attempts[key] = attempts
                retry_in = min(self.delay * 2**attempts, MAX_RETRY_DELAY)
                logger.warning(
                    "Draft autosave failed for %s/%s, retrying in %.1fs: %s",
                    page,
                    section,
                    retry_in,
                    e,
                )
                # A pending timer from a newer edit re-sends these too.
                if key not in self._timers:
                    self._schedule(page, section, delay=retry_in)
                return False

            for edit_key, revision in batch.items():
                if draft.dirty.get(edit_key) == revision:
                    del draft.dirty[edit_key]
            self._attempts.pop(key, None)
            self.status = DraftStatus.SYNCED
            self.error = None
            self.last_synced_at = _now()
            logger.info(
                "Saved %d draft edit(s) for %s/%s", len(rows), page, section
            )
            return True

    async def flush(
        self, page: str | None = None, section: str | None = None
    ) -> bool:
        """Write unsynced edits now, skipping the debounce.

        Limited to *page* and/or *section* when given.

        Returns:
            True if every write succeeded.
        """
        keys = [
            key
            for key in list(self._sections)
            if (page is None or key[0] == page)
            and (section is None or key[1] == section)
        ]
        ok = True
        for key in keys:
            timer = self._timers.pop(key, None)
            if timer is not None:
                timer.cancel()
            ok = await self._write(*key) and ok
        return ok

    # ------------------------------------------------------------------
    # Load / discard
    # ------------------------------------------------------------------

    async def load(self, page: str, section: str) -> Draft:
        """Fetch a section's remote drafts and merge them under local edits."""
        try:
            rows = await self.repository.drafts_for_section(page, section)
        except Exception as e:
            self.error = str(e)
            logger.error("Failed to load drafts for %s/%s: %s", page, section, e)
            return Draft(page=page, section=section)

        draft = self._sections.setdefault((page, section), _SectionDraft())
        loaded = 0
        for row in rows:
            try:
                lang = parse_language(row.get("language", ""))
            except ValueError:
                logger.warning(
                    "Ignoring draft with unknown language %r",
                    row.get("language"),
                )
                continue
            _, name = split_content_key(section, row.get("content_key") or "")
            key = (name, lang)
            if key in draft.dirty:
                continue
            value = parse_column(row.get("value"), row.get("content_type"))
            draft.values[key] = "" if value is None else value
            loaded += 1
            stamp = row.get("updated_at")
            if stamp and (draft.updated_at is None or stamp > draft.updated_at):
                draft.updated_at = stamp
        self.error = None
        logger.info("Loaded %d draft(s) for %s/%s", loaded, page, section)
        return self.get_draft(page, section)

    async def discard(self, page: str, section: str) -> bool:
        """Delete a section's drafts remotely and locally.

        Returns:
            False if the remote delete failed; local drafts are kept then.
        """
        key = (page, section)
        timer = self._timers.pop(key, None)
        if timer is not None:
            timer.cancel()
        try:
            await self.repository.delete_drafts_for_section(page, section)
        except Exception as e:
            self.error = str(e)
            self.status = DraftStatus.ERROR
            logger.error(
                "Failed to discard drafts for %s/%s: %s", page, section, e
            )
            return False
        self._sections.pop(key, None)
        self._locks.pop(key, None)
        self._attempts.pop(key, None)
        logger.info("Discarded drafts for %s/%s", page, section)
        return True

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_draft(self, page: str, section: str) -> Draft:
        state = self._sections.get((page, section))
        if state is None:
            return Draft(page=page, section=section)
        edits: dict[str, LocalizedValue] = {}
        for (name, lang), value in state.values.items():
            setattr(edits.setdefault(name, LocalizedValue()), lang.value, value)
        return Draft(
            page=page, section=section, edits=edits, updated_at=state.updated_at
        )

    def get_value(
        self,
        page: str,
        section: str,
        field_name: str,
        language: str | Language,
    ) -> FieldValue | None:
        """Return the draft value, or ``None`` when there is no draft."""
        state = self._sections.get((page, section))
        if state is None:
            return None
        value = state.values.get((field_name, parse_language(language)))
        if isinstance(value, list):
            return list(value)
        return value

    def has_draft(
        self,
        page: str,
        section: str,
        field_name: str | None = None,
        language: str | Language | None = None,
    ) -> bool:
        state = self._sections.get((page, section))
        if state is None or not state.values:
            return False
        if field_name is None:
            return True
        if language is None:
            return any(name == field_name for name, _ in state.values)
        return (field_name, parse_language(language)) in state.values

    async def close(self) -> None:
        """Write anything unsynced and stop all timers."""
        await self.flush()
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
