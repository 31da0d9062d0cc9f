"""Pending-edit tracking.

Every edit mutates the content tree synchronously and is recorded as a
``PendingChange`` keyed by ``(page, section, field, language)``.  Later
edits to the same key replace earlier ones, so a save only ever sees the
latest value.  Each recorded edit gets a fresh revision; a save
acknowledges the revisions it wrote, and anything edited again in the
meantime stays pending.
"""

from __future__ import annotations

import itertools
import logging
from typing import Callable, Iterable

from cms_sync.content.models import (
    FieldValue,
    Language,
    PendingChange,
    parse_language,
)
from cms_sync.content.tree import ContentTree

logger = logging.getLogger(__name__)

ChangeKey = tuple[str, str, str, Language]
Listener = Callable[[PendingChange], None]


class ChangeTracker:
    """Records edits against a ``ContentTree``."""

    def __init__(self, tree: ContentTree) -> None:
        self.tree = tree
        self._pending: dict[ChangeKey, PendingChange] = {}
        self._revisions = itertools.count(1)
        self._listeners: list[Listener] = []

    @property
    def has_changes(self) -> bool:
        return bool(self._pending)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def record_edit(
        self,
        page: str,
        section: str,
        field: str,
        language: str | Language,
        value: FieldValue,
    ) -> PendingChange:
        """Apply an edit to the tree and record it as pending.

        Raises:
            UnknownLanguageError: If *language* is not supported.
            ShapeMismatchError: If *value* conflicts with the field's shape.
        """
        lang = parse_language(language)
        self.tree.set_value(page, section, field, lang, value)
        change = PendingChange(
            page=page,
            section=section,
            field=field,
            language=lang,
            value=list(value) if isinstance(value, list) else value,
            revision=next(self._revisions),
        )
        self._pending[change.key] = change
        logger.debug(
            "Recorded edit %s/%s.%s [%s] rev %d",
            page,
            section,
            field,
            lang.value,
            change.revision,
        )
        for listener in list(self._listeners):
            listener(change)
        return change

    def snapshot(self) -> dict[ChangeKey, PendingChange]:
        """Return a copy of the pending map."""
        return dict(self._pending)

    def acknowledge(self, changes: Iterable[PendingChange]) -> int:
        """Clear pending entries that were persisted.

        An entry is cleared only when its current revision equals the
        acknowledged one.

        Returns:
            Number of entries cleared.
        """
        cleared = 0
        for change in changes:
            current = self._pending.get(change.key)
            if current is not None and current.revision == change.revision:
                del self._pending[change.key]
                cleared += 1
        return cleared

    def has_pending_for_field(self, page: str, section: str, field: str) -> bool:
        return any(
            change.field_key == (page, section, field)
            for change in self._pending.values()
        )

    def pending_fields(self) -> set[tuple[str, str, str]]:
        return {change.field_key for change in self._pending.values()}

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Register *listener* for new edits; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove
