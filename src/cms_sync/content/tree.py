"""In-memory content tree: page -> section -> field -> LocalizedValue.

The tree is the local authoritative cache the editing surface reads from.
Edits mutate it synchronously; persistence works from snapshots of it.
Reads never raise for unknown paths.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from typing import Any

from cms_sync.content.models import (
    FieldValue,
    Language,
    LocalizedValue,
)

SectionContent = dict[str, LocalizedValue]
PageContent = dict[str, SectionContent]


class ContentTree:
    """Nested, language-aware content store.

    Args:
        content: Optional initial ``{page: {section: {field: value}}}``
            mapping; values may be ``LocalizedValue`` instances or plain
            ``{language: value}`` dicts.
    """

    def __init__(self, content: Mapping[str, Any] | None = None) -> None:
        self._pages: dict[str, PageContent] = {}
        if content:
            self.merge_document(content)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_value(
        self,
        page: str,
        section: str,
        field: str,
        language: str | Language,
    ) -> FieldValue:
        """Return the field's value in *language*.

        Falls back to the primary language, then to ``""``.
        """
        value = self.get_field(page, section, field)
        if value is None:
            # Still validate the language so typos surface early.
            LocalizedValue().get(language)
            return ""
        return value.get(language)

    def get_field(
        self, page: str, section: str, field: str
    ) -> LocalizedValue | None:
        return self._pages.get(page, {}).get(section, {}).get(field)

    def get_section_fields(
        self, page: str, section: str
    ) -> SectionContent | None:
        return self._pages.get(page, {}).get(section)

    def get_page_content(self, page: str) -> PageContent | None:
        return self._pages.get(page)

    def pages(self) -> list[str]:
        return list(self._pages)

    def iter_fields(
        self,
    ) -> Iterator[tuple[str, str, str, LocalizedValue]]:
        """Yield ``(page, section, field, value)`` in insertion order."""
        for page, sections in self._pages.items():
            for section, fields in sections.items():
                for field, value in fields.items():
                    yield page, section, field, value

    def __len__(self) -> int:
        return sum(1 for _ in self.iter_fields())

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, tuple) or len(key) != 3:
            return False
        return self.get_field(*key) is not None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def set_value(
        self,
        page: str,
        section: str,
        field: str,
        language: str | Language,
        value: FieldValue,
    ) -> None:
        """Set one language of one field, creating the path as needed."""
        fields = self._pages.setdefault(page, {}).setdefault(section, {})
        current = fields.get(field)
        if current is None:
            current = LocalizedValue()
        else:
            current = current.copy_value()
        # Validate on a copy so a rejected value leaves the tree intact.
        current.set(language, value)
        fields[field] = current

    def put_field(
        self, page: str, section: str, field: str, value: LocalizedValue
    ) -> None:
        """Replace a whole field."""
        self._pages.setdefault(page, {}).setdefault(section, {})[
            field
        ] = value.copy_value()

    def merge_document(self, content: Mapping[str, Any]) -> None:
        """Merge a nested ``{page: {section: {field: {lang: value}}}}`` map.

        Raises:
            UnknownLanguageError: If a field uses an unsupported language.
        """
        for page, sections in content.items():
            for section, fields in (sections or {}).items():
                for field, raw in (fields or {}).items():
                    if isinstance(raw, LocalizedValue):
                        value = raw
                    else:
                        value = LocalizedValue.from_mapping(raw or {})
                    self.put_field(page, section, field, value)

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def snapshot(self) -> ContentTree:
        """Return a deep, independent copy of the tree."""
        copy = ContentTree()
        for page, section, field, value in self.iter_fields():
            copy.put_field(page, section, field, value)
        return copy

    def to_dict(self) -> dict[str, Any]:
        """Return plain nested dicts, omitting empty languages."""
        result: dict[str, Any] = {}
        for page, section, field, value in self.iter_fields():
            result.setdefault(page, {}).setdefault(section, {})[
                field
            ] = value.model_dump(exclude_none=True)
        return result
