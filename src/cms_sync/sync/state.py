"""Durable local state.

A small JSON document in the state directory (``.cms_sync/`` by default)
holding values that must survive a restart, such as the time of the last
structure sync.

Writes are atomic: ``set()`` writes to a temp file then calls
``os.replace()`` so readers never see partial data.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

STATE_FILENAME = "state.json"

LAST_STRUCTURE_SYNC = "last_structure_sync_at"


class LocalState:
    """Key/value store backed by one JSON file.

    Args:
        state_dir: Directory holding the state file; created on first write.
    """

    def __init__(self, state_dir: str | Path) -> None:
        self._state_dir = Path(state_dir)

    @property
    def path(self) -> Path:
        return self._state_dir / STATE_FILENAME

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> dict:
        """Return the whole state dict; empty if the file is missing.

        An unreadable file is logged and treated as empty.
        """
        if not self.path.exists():
            return {}
        try:
            with open(self.path, encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable state file %s: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def save(self, state: dict) -> None:
        """Persist *state* atomically."""
        self._state_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=str(self._state_dir), suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(state, fh, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    # ------------------------------------------------------------------
    # Key helpers
    # ------------------------------------------------------------------

    def get(self, key: str, default: Any = None) -> Any:
        return self.load().get(key, default)

    def set(self, key: str, value: Any) -> None:
        state = self.load()
        state[key] = value
        self.save(state)

    def remove(self, key: str) -> None:
        """Remove *key*; no-op if absent."""
        state = self.load()
        if key in state:
            del state[key]
            self.save(state)
