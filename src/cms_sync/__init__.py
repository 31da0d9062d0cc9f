"""Multilingual content synchronization and draft reconciliation."""

__version__ = "0.1.0"

from .errors import (
    CmsSyncError,
    ShapeMismatchError,
    StoreError,
    TransportError,
    UnknownLanguageError,
)
from .session import ContentSession, open_session

__all__ = [
    "CmsSyncError",
    "ContentSession",
    "ShapeMismatchError",
    "StoreError",
    "TransportError",
    "UnknownLanguageError",
    "__version__",
    "open_session",
]
