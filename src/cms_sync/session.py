"""Session composition: wires every sync component for one editing session."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from dotenv import load_dotenv

from .activity import ActivityLog, IdGenerator, Notifier
from .config import Config, load_config
from .config_loader import discover_config_files, load_hierarchical_config
from .config_schema import UnifiedConfig, build_config
from .content.fallback import FallbackSnapshot
from .content.models import FieldValue, Language, PendingChange
from .content.tree import ContentTree
from .core.client import AsyncStoreClient
from .core.remote import ContentRepository, RemoteStore
from .drafts.store import DraftStore
from .editor.loader import EditorDataLoader
from .logger import setup_logging
from .structure.manifest import PageManifest, load_manifest
from .structure.sync import StructureSync
from .sync.loader import RemoteContentLoader
from .sync.models import LoadResult, ResyncResult, SaveResult
from .sync.persistence import BackgroundSaver, PersistenceSync
from .sync.state import LocalState
from .sync.tracker import ChangeTracker

logger = logging.getLogger(__name__)

PACKAGE_LOGGER = "cms_sync"


class ContentSession:
    """One editing session over a content tree and its remote store.

    Edits go through ``record_edit()`` and become visible immediately via
    ``get_value()``; ``save()`` persists them and posts a notification.
    """

    def __init__(
        self,
        config: Config,
        store: RemoteStore,
        fallback: FallbackSnapshot,
        manifest: PageManifest,
        activity: ActivityLog | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        self.config = config
        self.fallback = fallback
        self.manifest = manifest
        self.activity = activity or ActivityLog(ids=IdGenerator("log"))
        self.notifier = notifier or Notifier(ids=IdGenerator("toast"))

        self.repository = ContentRepository(store, config.tables)
        self.tree: ContentTree = fallback.tree()
        self.tracker = ChangeTracker(self.tree)
        self.loader = RemoteContentLoader(self.repository, self.tree, self.tracker)
        self.persistence = PersistenceSync(
            self.repository, self.tracker, self.tree, config.batch_size
        )
        self.drafts = DraftStore(self.repository, config.draft_debounce)
        self.structure = StructureSync(
            self.repository,
            manifest,
            LocalState(config.state_dir),
            config.success_reset_delay,
        )
        self.editor = EditorDataLoader(self.repository, manifest)
        self.saver: BackgroundSaver | None = None
        if config.autosave_interval:
            self.saver = BackgroundSaver(self.persistence, config.autosave_interval)

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    @property
    def has_changes(self) -> bool:
        return self.tracker.has_changes

    def get_value(
        self, page: str, section: str, field: str, language: str | Language
    ) -> FieldValue:
        return self.tree.get_value(page, section, field, language)

    def record_edit(
        self,
        page: str,
        section: str,
        field: str,
        language: str | Language,
        value: FieldValue,
    ) -> PendingChange:
        return self.tracker.record_edit(page, section, field, language, value)

    async def load(self) -> LoadResult:
        result = await self.loader.load()
        if result.degraded:
            self.notifier.notify(
                "warning",
                "Working offline",
                "Remote content could not be loaded; showing bundled content.",
            )
        return result

    async def save(self) -> SaveResult:
        """Save pending edits and notify the outcome."""
        result = await self.persistence.save()
        if result.is_noop:
            return result
        if result.success:
            self.notifier.notify("success", "Changes saved", result.summary())
        elif result.error:
            self.notifier.notify("error", "Save failed", result.error)
        else:
            self.notifier.notify(
                "error",
                "Some changes were not saved",
                f"{result.failure_count} field(s) failed; they will be retried.",
            )
        return result

    async def push_all(self) -> ResyncResult:
        return await self.persistence.push_all()

    async def force_resync(self) -> ResyncResult:
        """Overwrite remote content from the bundled fallback and reload."""
        result = await self.persistence.force_resync(self.fallback, self.loader)
        if result.success:
            self.notifier.notify("success", "Resync complete", f"{result.written} row(s) written")
        else:
            self.notifier.notify(
                "error",
                "Resync incomplete",
                result.error or f"{result.failure_count} row(s) failed",
            )
        return result

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self.saver is not None:
            self.saver.start()

    async def close(self) -> None:
        if self.saver is not None:
            await self.saver.stop()
        await self.drafts.close()
        await self.structure.close()


def _yaml_fallbacks(unified: UnifiedConfig) -> dict[str, Any]:
    """Flatten the ``store`` and ``sync`` sections for ``load_config``."""
    fallbacks = {
        k: v for k, v in unified.store.model_dump().items() if v is not None
    }
    fallbacks.update(
        {k: v for k, v in unified.sync.model_dump().items() if v is not None}
    )
    if unified.logging.level.upper() == "DEBUG":
        fallbacks["debug"] = True
    return fallbacks


@asynccontextmanager
async def open_session(
    config_overrides: dict[str, Any] | None = None,
    *,
    store: RemoteStore | None = None,
    fallback: FallbackSnapshot | None = None,
    manifest: PageManifest | None = None,
    configure_logging: bool = False,
) -> AsyncIterator[ContentSession]:
    """
    Open an editing session.

    On startup:
    - Load .env (so values are available for env lookups and YAML interpolation)
    - Load YAML config if present (as fallback values)
    - Merge all sources via load_config(): overrides > env vars > .env > YAML > defaults
    - Build the store client unless one is injected
    - Seed the tree from the fallback content and load remote content

    On shutdown:
    - Stop background saving and flush drafts
    - Detach the activity log

    Args:
        config_overrides: Optional dict with url, api_key and debug.
        store: Injected ``RemoteStore``; an ``AsyncStoreClient`` is built
            from the config when omitted.
        fallback: Bundled content; read from ``fallback_path`` when omitted.
        manifest: Declared pages; read from ``manifest_path`` when omitted.
        configure_logging: Install root handlers via ``setup_logging``.

    Yields:
        The ready ``ContentSession``.

    Raises:
        RuntimeError: If the configuration is invalid.
    """
    try:
        load_dotenv()

        unified = UnifiedConfig()
        yaml_fallbacks: dict[str, Any] | None = None
        config_files = discover_config_files()
        if config_files:
            unified = build_config(load_hierarchical_config())
            yaml_fallbacks = _yaml_fallbacks(unified)
            logger.info("Configuration file: %s", config_files[0])

        overrides = config_overrides or {}
        config = load_config(
            url=overrides.get("url"),
            api_key=overrides.get("api_key"),
            debug=overrides.get("debug", False),
            yaml_fallbacks=yaml_fallbacks,
        )
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        raise RuntimeError(
            f"Configuration error: {e}. Ensure CMS_STORE_URL and CMS_STORE_KEY are set."
        ) from e

    if configure_logging:
        setup_logging(
            debug=config.debug,
            log_file=unified.logging.file,
            log_format=unified.logging.format,
            level=unified.logging.level if config_files else None,
        )

    if store is None:
        store = AsyncStoreClient.from_config(config)
    if fallback is None:
        fallback = (
            FallbackSnapshot.from_file(config.fallback_path)
            if config.fallback_path
            else FallbackSnapshot.empty()
        )
    if manifest is None:
        manifest = (
            load_manifest(config.manifest_path)
            if config.manifest_path
            else PageManifest()
        )

    session = ContentSession(config, store, fallback, manifest)

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    previous_level = package_logger.level
    if previous_level == logging.NOTSET:
        package_logger.setLevel(logging.DEBUG if config.debug else logging.INFO)
    package_logger.addHandler(session.activity)

    try:
        logger.info("Session opened for %s", config.store_url)
        await session.load()
        session.start()
        yield session
    finally:
        await session.close()
        logger.info("Session closed")
        package_logger.removeHandler(session.activity)
        package_logger.setLevel(previous_level)
