"""Content tree, field values and the row codec."""

from .fallback import FallbackSnapshot
from .models import (
    PRIMARY_LANGUAGE,
    ContentRow,
    Draft,
    Language,
    LocalizedValue,
    PageRecord,
    PendingChange,
    parse_language,
)
from .tree import ContentTree

__all__ = [
    "PRIMARY_LANGUAGE",
    "ContentRow",
    "ContentTree",
    "Draft",
    "FallbackSnapshot",
    "Language",
    "LocalizedValue",
    "PageRecord",
    "PendingChange",
    "parse_language",
]
