"""Bundled fallback content snapshot.

The fallback document ships with the client and mirrors the tree shape::

    {
      "meta": {"version": "1", "languages": ["en", "sv", "de", "pl"]},
      "pages": [...],
      "content": {"hero": {"hero": {"title": {"en": "Welcome"}}}}
    }

A bare content map (without the ``content`` wrapper) is accepted too.  It
seeds the tree before the remote load and is the only source used by a
forced full resync, so it is never mutated after loading.
"""

from __future__ import annotations

import copy
import json
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

from cms_sync.content.tree import ContentTree

logger = logging.getLogger(__name__)


class FallbackSnapshot:
    """Immutable holder for the bundled fallback document."""

    def __init__(self, document: Mapping[str, Any]) -> None:
        doc = copy.deepcopy(dict(document))
        if "content" in doc and isinstance(doc["content"], dict):
            content = doc["content"]
            self.meta: Mapping[str, Any] = MappingProxyType(
                doc.get("meta") or {}
            )
            self.pages: tuple[dict, ...] = tuple(doc.get("pages") or ())
        else:
            content = doc
            self.meta = MappingProxyType({})
            self.pages = ()
        self._content = content
        # Parse once up front so a malformed document fails at load time.
        self._tree = ContentTree(content)

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> FallbackSnapshot:
        return cls(document)

    @classmethod
    def from_file(cls, path: str | Path) -> FallbackSnapshot:
        path = Path(path)
        with open(path, encoding="utf-8") as fh:
            document = json.load(fh)
        snapshot = cls(document)
        logger.info(
            "Loaded fallback content from %s (%d fields)",
            path,
            len(snapshot._tree),
        )
        return snapshot

    @classmethod
    def empty(cls) -> FallbackSnapshot:
        return cls({})

    def tree(self) -> ContentTree:
        """Return a fresh tree built from the pristine document."""
        return self._tree.snapshot()

    def __len__(self) -> int:
        return len(self._tree)
