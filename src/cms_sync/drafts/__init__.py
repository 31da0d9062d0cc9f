"""Unpublished, section-scoped drafts."""

from .store import DraftStatus, DraftStore

__all__ = ["DraftStatus", "DraftStore"]
