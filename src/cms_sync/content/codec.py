"""Conversion between tree fields and flattened remote rows.

A field ``(page, section, field)`` is stored as one ``ContentRow`` whose
``content_key`` is ``"section.field"`` and which carries one text column
per language.  List values are serialised as JSON arrays; the row's
``content_type`` records which shape was written.
"""

from __future__ import annotations

import json
import logging

from cms_sync.content.models import (
    ContentRow,
    FieldValue,
    Language,
    LocalizedValue,
)

logger = logging.getLogger(__name__)

DEFAULT_SECTION = "default"


def content_key(section: str, field: str) -> str:
    """Return the flattened key for *field* within *section*."""
    return f"{section}.{field}"


def split_content_key(section: str | None, key: str) -> tuple[str, str]:
    """Return ``(section, field)`` for a flattened *key* stored under *section*.

    The stored section decides where the key splits: only an exact
    ``"<section>."`` prefix is stripped, so field names that contain dots
    survive intact.  Without a section the whole key is the field.
    """
    if section:
        prefix = f"{section}."
        if key.startswith(prefix) and len(key) > len(prefix):
            return section, key[len(prefix):]
        return section, key
    return DEFAULT_SECTION, key


def field_name_from_row(row: ContentRow) -> tuple[str, str]:
    """Return ``(section, field)`` for *row*."""
    return split_content_key(row.section, row.content_key)


def _sniff_list(text: str) -> list[str] | None:
    trimmed = text.strip()
    if not (trimmed.startswith("[") and trimmed.endswith("]")):
        return None
    try:
        parsed = json.loads(trimmed)
    except ValueError:
        return None
    if isinstance(parsed, list) and all(isinstance(i, str) for i in parsed):
        return parsed
    return None


def parse_column(
    text: str | None, content_type: str | None = None
) -> FieldValue | None:
    """Decode one language column.

    Returns ``None`` for empty columns.  With ``content_type == "text"``
    the text is returned verbatim; with ``"array"`` or no type at all a
    bracketed JSON array of strings becomes a list.  Anything that fails to
    parse is treated as scalar text.
    """
    if text is None or text == "":
        return None
    if content_type == "text":
        return text
    parsed = _sniff_list(text)
    if parsed is not None:
        return parsed
    if content_type == "array":
        logger.debug("Array column is not a JSON list, keeping text")
    return text


def serialize_value(value: FieldValue | None) -> str:
    """Encode a field value for a text column."""
    if value is None:
        return ""
    if isinstance(value, list):
        return json.dumps(value, ensure_ascii=False)
    return value


def row_to_field(row: ContentRow) -> tuple[str, str, LocalizedValue]:
    """Decode *row* into ``(section, field, value)``."""
    section, field = field_name_from_row(row)
    value = LocalizedValue()
    for lang in Language:
        parsed = parse_column(row.column(lang), row.content_type)
        if parsed is not None:
            setattr(value, lang.value, parsed)
    return section, field, value


def humanize_field(field: str) -> str:
    """Turn ``"ctaPrimary"`` into ``"Cta Primary"`` for display labels."""
    words: list[str] = []
    current = ""
    for ch in field:
        if ch.isupper() and current:
            words.append(current)
            current = ch
        else:
            current += ch
    if current:
        words.append(current)
    label = " ".join(words).strip()
    return label[:1].upper() + label[1:]


def field_to_row(
    page: str,
    section: str,
    field: str,
    value: LocalizedValue,
    display_order: int | None = None,
    with_label: bool = False,
) -> ContentRow:
    """Encode one field as a ``ContentRow``.

    Every language column is written; absent languages become ``""`` so an
    update never leaves a stale value behind.
    """
    columns = {
        f"content_{lang.value}": serialize_value(value.raw(lang))
        for lang in Language
    }
    return ContentRow(
        page_slug=page,
        section=section,
        content_key=content_key(section, field),
        content_type=value.shape,
        field_label=humanize_field(field) if with_label else None,
        display_order=display_order,
        **columns,
    )
