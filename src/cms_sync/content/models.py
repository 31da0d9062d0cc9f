"""Pydantic models for the content tree and its remote representations.

Defines the data contracts shared by every sync component:

- ``Language``: the closed set of supported language codes.
- ``LocalizedValue``: one field's value across all languages.
- ``PendingChange``: a recorded, not-yet-persisted edit.
- ``ContentRow``: the flattened remote row for one field.
- ``PageRecord``: a remote page row.
- ``Draft``: unpublished, section-scoped edits.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from enum import Enum
from typing import Any, Union

from pydantic import BaseModel

from cms_sync.errors import ShapeMismatchError, UnknownLanguageError

FieldValue = Union[str, list[str]]


class Language(str, Enum):
    """Supported content languages."""

    EN = "en"
    SV = "sv"
    DE = "de"
    PL = "pl"


PRIMARY_LANGUAGE = Language.EN


def parse_language(code: str | Language) -> Language:
    """Return the ``Language`` for *code*, rejecting unknown codes."""
    if isinstance(code, Language):
        return code
    try:
        return Language(code)
    except ValueError:
        raise UnknownLanguageError(code) from None


def shape_of(value: FieldValue) -> str:
    """Return ``"array"`` for list values, ``"text"`` otherwise."""
    return "array" if isinstance(value, list) else "text"


class LocalizedValue(BaseModel):
    """A field's value in every supported language.

    Each attribute holds scalar text, an ordered list of text, or ``None``
    when the language has no value.  All populated languages share one
    shape.
    """

    en: FieldValue | None = None
    sv: FieldValue | None = None
    de: FieldValue | None = None
    pl: FieldValue | None = None

    model_config = {"extra": "forbid"}

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> LocalizedValue:
        """Build from a ``{language: value}`` mapping.

        Raises:
            UnknownLanguageError: If a key is not a supported language.
        """
        values: dict[str, Any] = {}
        for code, value in data.items():
            values[parse_language(code).value] = value
        return cls(**values)

    def get(self, language: str | Language) -> FieldValue:
        """Return the value for *language*.

        Falls back to the primary language when the value is missing, an
        empty string or an empty list, and to ``""`` when that is missing too.
        """
        lang = parse_language(language)
        value = getattr(self, lang.value)
        if value is None or value == "" or value == []:
            value = getattr(self, PRIMARY_LANGUAGE.value)
        if value is None:
            return ""
        return list(value) if isinstance(value, list) else value

    def raw(self, language: str | Language) -> FieldValue | None:
        """Return the stored value for *language* without fallback."""
        return getattr(self, parse_language(language).value)

    def set(self, language: str | Language, value: FieldValue) -> None:
        """Set *language* to *value*, keeping every language in one shape.

        Raises:
            ShapeMismatchError: If *value* is a list while the field holds
                text (or the reverse).
        """
        lang = parse_language(language)
        new_shape = shape_of(value)
        for other, existing in self.populated():
            if other is lang or existing == "":
                continue
            if shape_of(existing) != new_shape:
                raise ShapeMismatchError(
                    lang.value, shape_of(existing), new_shape
                )
        setattr(
            self, lang.value, list(value) if isinstance(value, list) else value
        )

    def populated(self) -> Iterator[tuple[Language, FieldValue]]:
        """Yield ``(language, value)`` for every language that is set."""
        for lang in Language:
            value = getattr(self, lang.value)
            if value is not None:
                yield lang, value

    @property
    def shape(self) -> str:
        for _, value in self.populated():
            if isinstance(value, list):
                return "array"
        return "text"

    def is_empty(self) -> bool:
        return not any(v != "" for _, v in self.populated())

    def copy_value(self) -> LocalizedValue:
        return self.model_copy(deep=True)


class PendingChange(BaseModel):
    """The latest unsaved value for one (page, section, field, language).

    Attributes:
        revision: Monotonic edit number; used to tell a newer edit of the
            same key apart from the one a save included.
    """

    page: str
    section: str
    field: str
    language: Language
    value: FieldValue
    revision: int

    model_config = {"frozen": True}

    @property
    def key(self) -> tuple[str, str, str, Language]:
        return (self.page, self.section, self.field, self.language)

    @property
    def field_key(self) -> tuple[str, str, str]:
        return (self.page, self.section, self.field)


class ContentRow(BaseModel):
    """Flattened remote representation of one field across all languages.

    ``content_type`` is the explicit shape discriminator (``"text"`` or
    ``"array"``); rows written before it existed leave it unset.
    """

    id: str | int | None = None
    page_slug: str
    section: str | None = None
    content_key: str
    content_type: str | None = None
    content_en: str | None = None
    content_sv: str | None = None
    content_de: str | None = None
    content_pl: str | None = None
    field_label: str | None = None
    display_order: int | None = None

    model_config = {"extra": "ignore"}

    def column(self, language: Language) -> str | None:
        return getattr(self, f"content_{language.value}")

    def to_record(self) -> dict[str, Any]:
        """Return the row as a dict suitable for insert/upsert."""
        return self.model_dump(exclude_none=True, exclude={"id"})


class PageRecord(BaseModel):
    """A row of the remote pages table."""

    id: str | int | None = None
    slug: str
    name: str
    description: str | None = None
    icon: str | None = None
    display_order: int = 0

    model_config = {"extra": "ignore"}

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(exclude={"id"})


class Draft(BaseModel):
    """Unpublished edits for one page section.

    Attributes:
        edits: Field name to its draft value in each edited language.
        updated_at: ISO 8601 timestamp of the newest edit.
    """

    page: str
    section: str
    edits: dict[str, LocalizedValue] = {}
    updated_at: str | None = None

    def is_empty(self) -> bool:
        return not self.edits
