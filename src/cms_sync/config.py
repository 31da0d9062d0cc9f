"""Runtime configuration for the content sync engine.

Reads store connection settings from explicit arguments, environment
variables, .env files, and YAML config file fallbacks.

Precedence (highest to lowest):
    Explicit args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    CMS_STORE_URL: Remote store base URL (required)
    CMS_STORE_KEY: Remote store API key (required)
    CMS_DEBUG: Enable debug logging (optional, default: false)
    CMS_MAX_PARALLEL_REQUESTS: Max parallel store requests (optional, default: 5)
    CMS_BATCH_SIZE: Rows per batch for full resync writes (optional, default: 50)
"""

import logging
import os
from dataclasses import dataclass, field
from urllib.parse import urlparse

from .config_schema import TableNames

logger = logging.getLogger(__name__)


@dataclass
class Config:
    store_url: str
    api_key: str
    debug: bool = False
    timeout: float = 30.0
    max_parallel_requests: int = 5
    batch_size: int = 50
    draft_debounce: float = 0.8
    success_reset_delay: float = 2.0
    autosave_interval: float | None = None
    state_dir: str = ".cms_sync"
    fallback_path: str | None = None
    manifest_path: str | None = None
    tables: TableNames = field(default_factory=TableNames)


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Raises:
        ValueError: If the URL format is invalid, the key is empty, or a
            numeric setting is out of range.
    """
    config.store_url = config.store_url.strip()

    if not config.store_url.startswith(("http://", "https://")):
        raise ValueError(
            f"Invalid store URL '{config.store_url}': must start with http:// or https://"
        )

    parsed = urlparse(config.store_url)
    if not parsed.hostname:
        raise ValueError(
            f"Invalid store URL '{config.store_url}': URL must include a hostname"
        )

    config.store_url = config.store_url.removesuffix("/")

    if not config.api_key.strip():
        raise ValueError(
            "Store API key cannot be empty. Set CMS_STORE_KEY environment variable."
        )

    if not (1 <= config.max_parallel_requests <= 100):
        raise ValueError(
            f"Invalid max_parallel_requests {config.max_parallel_requests}: must be between 1 and 100"
        )

    if not (1 <= config.batch_size <= 1000):
        raise ValueError(
            f"Invalid batch_size {config.batch_size}: must be between 1 and 1000"
        )


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def _get_int_env(key: str, low: int, high: int) -> int | None:
    raw = os.getenv(key)
    if raw is None:
        return None
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(
            f"Invalid {key} '{raw}': must be a number between {low} and {high}"
        ) from None
    if not (low <= value <= high):
        raise ValueError(
            f"Invalid {key} '{raw}': must be a number between {low} and {high}"
        )
    return value


def load_config(
    url: str | None = None,
    api_key: str | None = None,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        url: Override store URL.
        api_key: Override API key.
        debug: Enable debug logging.
        yaml_fallbacks: Flat dict built from the YAML config
            (``store`` + ``sync`` sections).  Used when neither an explicit
            argument nor an env var is set.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If the URL or key is missing after checking all sources.
    """
    fb = yaml_fallbacks or {}

    store_url = url or os.getenv("CMS_STORE_URL") or fb.get("url")
    if not store_url:
        raise ValueError(
            "Store URL not found. Set CMS_STORE_URL environment variable, "
            "pass url explicitly, or add 'store.url' to config.yml."
        )

    store_key = api_key or os.getenv("CMS_STORE_KEY") or fb.get("api_key")
    if not store_key:
        raise ValueError(
            "Store API key not found. Set CMS_STORE_KEY environment variable, "
            "pass api_key explicitly, or add 'store.api_key' to config.yml."
        )

    if debug:
        final_debug = True
    else:
        env_debug = _get_bool_env("CMS_DEBUG")
        final_debug = (
            env_debug
            if env_debug is not None
            else bool(fb.get("debug", False))
        )

    max_parallel = _get_int_env("CMS_MAX_PARALLEL_REQUESTS", 1, 100)
    if max_parallel is None:
        max_parallel = int(fb.get("max_parallel_requests", 5))

    batch_size = _get_int_env("CMS_BATCH_SIZE", 1, 1000)
    if batch_size is None:
        batch_size = int(fb.get("batch_size", 50))

    tables = fb.get("tables") or TableNames()
    if isinstance(tables, dict):
        tables = TableNames(**tables)

    config = Config(
        store_url=store_url.strip(),
        api_key=store_key.strip(),
        debug=final_debug,
        timeout=float(fb.get("timeout", 30.0)),
        max_parallel_requests=max_parallel,
        batch_size=batch_size,
        draft_debounce=float(fb.get("draft_debounce", 0.8)),
        success_reset_delay=float(fb.get("success_reset_delay", 2.0)),
        autosave_interval=fb.get("autosave_interval"),
        state_dir=fb.get("state_dir", ".cms_sync"),
        fallback_path=fb.get("fallback_path"),
        manifest_path=fb.get("manifest_path"),
        tables=tables,
    )

    validate_config(config)

    return config
