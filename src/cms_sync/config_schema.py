"""Unified configuration schema for cms_sync.

Defines Pydantic models for the unified config structure with dedicated
sections for the remote store, sync behaviour and logging. Includes an
adapter function that produces the flat ``Config`` dataclass.

Usage:
    from cms_sync.config_schema import build_config, to_legacy_config

    raw = load_hierarchical_config()
    unified = build_config(raw)
    config = to_legacy_config(unified, cli_overrides={"url": "https://..."})
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from .config import Config

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class TableNames(BaseModel):
    """Remote table names consumed by the sync core."""

    pages: str = Field(default="cms_pages")
    content: str = Field(default="cms_content")
    media: str = Field(default="cms_media")
    drafts: str = Field(default="cms_drafts")

    model_config = {"frozen": True}


class StoreConfig(BaseModel):
    """Remote store connection settings.

    All connection fields are optional to support zero-config: env vars
    can supply them at runtime instead.
    """

    url: str | None = Field(default=None, description="Store base URL")
    api_key: str | None = Field(default=None, description="Store API key")
    timeout: float = Field(
        default=30.0, gt=0, description="Per-request timeout in seconds"
    )
    max_parallel_requests: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Maximum concurrent requests to the store (1-100)",
    )
    tables: TableNames = Field(default_factory=TableNames)

    model_config = {"frozen": True}


class SyncConfig(BaseModel):
    """Timing and batching knobs for the sync components."""

    batch_size: int = Field(
        default=50,
        ge=1,
        le=1000,
        description="Rows per batch for full resync writes (1-1000)",
    )
    draft_debounce: float = Field(
        default=0.8, gt=0, description="Draft autosave quiet window (s)"
    )
    success_reset_delay: float = Field(
        default=2.0,
        ge=0,
        description="Delay before structure sync returns to idle (s)",
    )
    autosave_interval: float | None = Field(
        default=None,
        gt=0,
        description="Background save coalescing window; None disables it",
    )
    state_dir: str = Field(
        default=".cms_sync", description="Directory for local state"
    )
    fallback_path: str | None = Field(
        default=None, description="Bundled fallback content document"
    )
    manifest_path: str | None = Field(
        default=None, description="Declared page manifest (YAML/JSON)"
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
        format: ``text`` or ``json``.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")
    format: str = Field(default="text", pattern="^(text|json)$")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Every section has sensible defaults, so ``UnifiedConfig()`` is always
    valid.
    """

    store: StoreConfig = Field(default_factory=StoreConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the merged raw YAML dict.

    Missing sections get defaults.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)


# ---------------------------------------------------------------------------
# Adapter: UnifiedConfig -> Config dataclass
# ---------------------------------------------------------------------------


def to_legacy_config(
    unified: UnifiedConfig,
    cli_overrides: dict | None = None,
) -> Config:
    """Convert a ``UnifiedConfig`` into the flat ``Config`` dataclass,
    applying explicit overrides on top.

    Override keys: url, api_key, debug.

    Returns:
        ``Config`` instance (NOT validated -- call ``validate_config()``).
    """
    # Import here to avoid circular imports (config.py imports config_schema)
    from .config import Config

    overrides = cli_overrides or {}
    store = unified.store
    sync = unified.sync

    return Config(
        store_url=overrides.get("url") or store.url or "",
        api_key=overrides.get("api_key") or store.api_key or "",
        debug=bool(overrides.get("debug", False))
        or unified.logging.level.upper() == "DEBUG",
        timeout=store.timeout,
        max_parallel_requests=store.max_parallel_requests,
        batch_size=sync.batch_size,
        draft_debounce=sync.draft_debounce,
        success_reset_delay=sync.success_reset_delay,
        autosave_interval=sync.autosave_interval,
        state_dir=sync.state_dir,
        fallback_path=sync.fallback_path,
        manifest_path=sync.manifest_path,
        tables=store.tables,
    )
