"""Page manifest and structure reconciliation."""

from .manifest import ManifestPage, ManifestSection, PageManifest, load_manifest
from .sync import StructureStatus, StructureSync

__all__ = [
    "ManifestPage",
    "ManifestSection",
    "PageManifest",
    "StructureStatus",
    "StructureSync",
    "load_manifest",
]
