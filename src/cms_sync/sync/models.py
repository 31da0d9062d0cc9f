"""Pydantic models describing the outcome of sync operations.

- ``RowFailure``: one field (or row) that could not be written.
- ``SaveResult``: outcome of persisting the pending changes.
- ``LoadResult``: outcome of merging remote content into the tree.
- ``ResyncResult``: outcome of a bulk push or forced resync.

All models are frozen (immutable).
"""

from __future__ import annotations

from pydantic import BaseModel


class RowFailure(BaseModel):
    """A single field that failed to persist.

    Attributes:
        page: Page slug of the field.
        content_key: Flattened ``section.field`` key.
        reason: Human-readable cause.
    """

    page: str
    content_key: str
    reason: str

    model_config = {"frozen": True}


class SaveResult(BaseModel):
    """Outcome of one ``PersistenceSync.save()`` call.

    Attributes:
        success: True when every grouped field was written.
        saved_keys: ``page/section.field`` keys that were written.
        failures: Fields that were not written; they remain pending.
        error: Set when the save could not start (for example, the page
            list could not be fetched).
        started_at: ISO 8601 timestamp when the save started.
        completed_at: ISO 8601 timestamp when the save finished.
    """

    success: bool
    saved_keys: list[str] = []
    failures: list[RowFailure] = []
    error: str | None = None
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True}

    @property
    def saved_count(self) -> int:
        return len(self.saved_keys)

    @property
    def failure_count(self) -> int:
        return len(self.failures)

    @property
    def is_noop(self) -> bool:
        """True when there was nothing to save."""
        return self.success and not self.saved_keys and not self.failures

    def summary(self) -> str:
        if self.error:
            return f"Save failed: {self.error}"
        if self.is_noop:
            return "Nothing to save"
        text = f"Saved {self.saved_count} field(s)"
        if self.failures:
            text += f", {self.failure_count} failed"
        return text


class LoadResult(BaseModel):
    """Outcome of ``RemoteContentLoader.load()``.

    ``degraded`` means the remote store was unavailable and the tree still
    holds only the fallback content (plus any earlier loads).
    """

    merged: int = 0
    skipped_pending: int = 0
    orphans: list[str] = []
    degraded: bool = False
    error: str | None = None

    model_config = {"frozen": True}


class ResyncResult(BaseModel):
    """Outcome of ``push_all()`` or ``force_resync()``.

    Attributes:
        pages: Pages that were written.
        skipped_pages: Pages absent from the store.
        failed_pages: Pages whose existing content could not be cleared;
            they were left untouched (forced resync only).
        written: Number of rows written.
        failures: Rows that could not be written.
        deleted: Rows removed before writing (forced resync only).
    """

    pages: list[str] = []
    skipped_pages: list[str] = []
    failed_pages: list[str] = []
    written: int = 0
    failures: list[RowFailure] = []
    deleted: int = 0
    error: str | None = None
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True}

    @property
    def success(self) -> bool:
        return self.error is None and not self.failures and not self.failed_pages

    @property
    def failure_count(self) -> int:
        return len(self.failures)

    def summary(self) -> str:
        lines = [
            f"Resync {'succeeded' if self.success else 'finished with errors'}",
            f"  Pages:    {len(self.pages)}",
            f"  Skipped:  {len(self.skipped_pages)}",
            f"  Blocked:  {len(self.failed_pages)}",
            f"  Deleted:  {self.deleted}",
            f"  Written:  {self.written}",
            f"  Failed:   {self.failure_count}",
        ]
        if self.error:
            lines.append(f"  Error:    {self.error}")
        return "\n".join(lines)
