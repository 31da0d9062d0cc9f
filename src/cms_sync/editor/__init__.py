"""Section editor data loading."""

from .loader import EditorData, EditorDataLoader

__all__ = ["EditorData", "EditorDataLoader"]
