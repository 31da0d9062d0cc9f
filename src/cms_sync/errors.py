"""Typed exception hierarchy for the content sync engine.

All exceptions inherit from ``CmsSyncError`` so callers can catch any
library-level failure in one place.  Absence of content is never an
exception: missing pages, sections and fields are represented as empty
values or explicit flags instead.
"""

from __future__ import annotations


class CmsSyncError(Exception):
    """Base exception for all cms_sync errors."""


class TransportError(CmsSyncError):
    """Raised when the remote store cannot be reached."""

    def __init__(self, endpoint: str, reason: str):
        super().__init__(f"Store unreachable at {endpoint}: {reason}")
        self.endpoint = endpoint
        self.reason = reason


class StoreError(CmsSyncError):
    """Raised when the remote store rejects a request."""

    def __init__(
        self, status: int, message: str, table: str | None = None
    ):
        prefix = f"[{table}] " if table else ""
        super().__init__(f"{prefix}Store error {status}: {message}")
        self.status = status
        self.message = message
        self.table = table


class UnknownLanguageError(CmsSyncError, ValueError):
    """Raised when a language code outside the supported set is used."""

    def __init__(self, code: object):
        super().__init__(f"Unsupported language code: {code!r}")
        self.code = code


class ShapeMismatchError(CmsSyncError, ValueError):
    """Raised when a field would mix scalar text and list values."""

    def __init__(self, language: str, expected: str, got: str):
        super().__init__(
            f"Field holds {expected} values; cannot set {language} to {got}"
        )
        self.language = language
        self.expected = expected
        self.got = got
