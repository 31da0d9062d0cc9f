"""Declared page manifest.

The manifest is the static list of pages (and their editable sections)
the presentation layer expects the store to contain.  It is loaded from
YAML or JSON::

    pages:
      - slug: home
        label: Home
        sections:
          - id: hero
            label: Hero
            icon: "🎬"
            description: Background video and title
            data_page: hero

A top-level list of pages is accepted as well.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

from cms_sync.content.models import PageRecord

logger = logging.getLogger(__name__)

DEFAULT_ICON = "📄"


class ManifestSection(BaseModel):
    """One editable section of a manifest page.

    Attributes:
        data_page: Slug of the page that actually stores this section's
            content, when it differs from the parent page.
    """

    id: str
    label: str
    icon: str | None = None
    description: str | None = None
    data_page: str | None = None

    model_config = {"frozen": True, "extra": "ignore"}


class ManifestPage(BaseModel):
    """A declared page."""

    slug: str
    label: str
    icon: str | None = None
    group: str | None = None
    sections: list[ManifestSection] = Field(default_factory=list)

    model_config = {"frozen": True, "extra": "ignore"}

    def get_section(self, section_id: str) -> ManifestSection | None:
        for section in self.sections:
            if section.id == section_id:
                return section
        return None

    def to_page_record(self, index: int) -> PageRecord:
        """Build the remote page row for this page at manifest *index*.

        Description and icon come from the first declared section.
        """
        first = self.sections[0] if self.sections else None
        return PageRecord(
            slug=self.slug,
            name=self.label,
            description=(first.description if first else None) or None,
            icon=(first.icon if first else None) or DEFAULT_ICON,
            display_order=index + 1,
        )


class PageManifest(BaseModel):
    """Ordered collection of declared pages."""

    pages: list[ManifestPage] = Field(default_factory=list)

    model_config = {"frozen": True}

    def __len__(self) -> int:
        return len(self.pages)

    @property
    def slugs(self) -> list[str]:
        return [page.slug for page in self.pages]

    def get_page(self, slug: str) -> ManifestPage | None:
        for page in self.pages:
            if page.slug == slug:
                return page
        return None

    def data_page_for(self, slug: str, section_id: str) -> str:
        """Return the slug that stores *section_id*'s content.

        Falls back to *slug* when the section is undeclared or has no
        override.
        """
        page = self.get_page(slug)
        section = page.get_section(section_id) if page else None
        if section is not None and section.data_page:
            return section.data_page
        return slug


def load_manifest(path: str | Path) -> PageManifest:
    """Load a manifest from a YAML or JSON file.

    Raises:
        FileNotFoundError: If *path* does not exist.
        ValueError: If the document is not a page list.
    """
    path = Path(path)
    with open(path, encoding="utf-8") as fh:
        # JSON is a subset of YAML, so one parser covers both.
        data = yaml.safe_load(fh)

    if isinstance(data, list):
        data = {"pages": data}
    if not isinstance(data, dict):
        raise ValueError(f"Manifest {path} must be a mapping or a list")

    manifest = PageManifest.model_validate(data)
    duplicates = {s for s in manifest.slugs if manifest.slugs.count(s) > 1}
    if duplicates:
        raise ValueError(
            f"Manifest {path} declares duplicate pages: {sorted(duplicates)}"
        )
    logger.info("Loaded manifest %s (%d pages)", path, len(manifest))
    return manifest
