"""Activity feed and transient notifications.

Two small services shared by the editing surface:

- ``ActivityLog`` -- a ``logging.Handler`` that keeps the most recent
  records in a bounded ring so a debug panel can show what the sync
  components have been doing.
- ``Notifier`` -- short-lived user notifications (save succeeded, three
  rows failed, ...).

Identifiers come from an ``IdGenerator`` owned by each instance, so two
sessions in one process never share a counter.
"""

from __future__ import annotations

import itertools
import json
import logging
import threading
from collections import deque
from datetime import datetime, timezone
from typing import Any, Callable

from pydantic import BaseModel

MAX_ENTRIES = 500

_LEVEL_NAMES = {
    logging.DEBUG: "debug",
    logging.INFO: "info",
    logging.WARNING: "warn",
    logging.ERROR: "error",
    logging.CRITICAL: "error",
}


class IdGenerator:
    """Monotonic identifier source scoped to one owner.

    Args:
        prefix: String prepended to every identifier.
    """

    def __init__(self, prefix: str) -> None:
        self.prefix = prefix
        self._counter = itertools.count(1)
        self._lock = threading.Lock()

    def next(self) -> str:
        """Return the next identifier, e.g. ``"log-7"``."""
        with self._lock:
            return f"{self.prefix}-{next(self._counter)}"


class ActivityEntry(BaseModel):
    """One captured log record."""

    id: str
    timestamp: str
    level: str
    source: str
    message: str
    details: dict[str, Any] | None = None

    model_config = {"frozen": True}


class Notification(BaseModel):
    """A transient user-facing notification."""

    id: str
    kind: str
    title: str
    message: str | None = None

    model_config = {"frozen": True}


class ActivityLog(logging.Handler):
    """Capture log records into a bounded in-memory feed.

    Args:
        max_entries: Ring size; the oldest entries are evicted first.
        ids: Identifier source; a private one is created when omitted.
    """

    def __init__(
        self,
        max_entries: int = MAX_ENTRIES,
        ids: IdGenerator | None = None,
        level: int = logging.INFO,
    ) -> None:
        super().__init__(level=level)
        self._entries: deque[ActivityEntry] = deque(maxlen=max_entries)
        self._ids = ids or IdGenerator("log")
        self._subscribers: list[Callable[[list[ActivityEntry]], None]] = []

    def emit(self, record: logging.LogRecord) -> None:
        try:
            details = getattr(record, "details", None)
            entry = ActivityEntry(
                id=self._ids.next(),
                timestamp=datetime.fromtimestamp(
                    record.created, tz=timezone.utc
                ).isoformat(),
                level=_LEVEL_NAMES.get(record.levelno, "info"),
                source=record.name.rsplit(".", 1)[-1],
                message=record.getMessage(),
                details=details if isinstance(details, dict) else None,
            )
        except Exception:
            self.handleError(record)
            return
        self._entries.append(entry)
        self._publish()

    def entries(self) -> list[ActivityEntry]:
        """Return captured entries, newest first."""
        return list(reversed(self._entries))

    def subscribe(
        self, callback: Callable[[list[ActivityEntry]], None]
    ) -> Callable[[], None]:
        """Register *callback* and return a function that unregisters it.

        The callback is invoked immediately with the current entries.
        """
        self._subscribers.append(callback)
        callback(self.entries())

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def clear(self) -> None:
        self._entries.clear()
        self._publish()

    def export_json(self) -> str:
        """Serialise the feed (newest first) as a JSON array."""
        return json.dumps(
            [e.model_dump(exclude_none=True) for e in self.entries()],
            indent=2,
        )

    def _publish(self) -> None:
        snapshot = self.entries()
        for callback in list(self._subscribers):
            callback(snapshot)


class Notifier:
    """Hold the currently visible notifications.

    Args:
        ids: Identifier source; a private one is created when omitted.
    """

    def __init__(self, ids: IdGenerator | None = None) -> None:
        self._ids = ids or IdGenerator("toast")
        self._active: dict[str, Notification] = {}
        self._subscribers: list[Callable[[list[Notification]], None]] = []

    @property
    def active(self) -> list[Notification]:
        return list(self._active.values())

    def notify(
        self, kind: str, title: str, message: str | None = None
    ) -> Notification:
        """Publish a notification and return it.

        Args:
            kind: One of ``success``, ``error``, ``info``, ``warning``.
            title: Short headline.
            message: Optional detail line.
        """
        note = Notification(
            id=self._ids.next(), kind=kind, title=title, message=message
        )
        self._active[note.id] = note
        self._publish()
        return note

    def dismiss(self, notification_id: str) -> bool:
        """Remove a notification; returns ``False`` if it was not active."""
        if self._active.pop(notification_id, None) is None:
            return False
        self._publish()
        return True

    def subscribe(
        self, callback: Callable[[list[Notification]], None]
    ) -> Callable[[], None]:
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def _publish(self) -> None:
        snapshot = self.active
        for callback in list(self._subscribers):
            callback(snapshot)
