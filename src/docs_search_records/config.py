"""Configuration for search record indexing, read from the environment."""

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

DEFAULT_OUTPUT_PATH = Path(".algolia/records.json")


class ConfigError(ValueError):
    """Raised when required configuration is missing or invalid."""


@dataclass(frozen=True)
class IndexerConfig:
    """Settings for building and synchronizing search records."""

    app_id: str = ""
    api_key: str = ""
    index_name: str = ""
    base_url: str = "/docs"
    output_path: Path = DEFAULT_OUTPUT_PATH
    concurrency: int = 4
    workers: int = 1
    timeout: float = 30.0

    @property
    def has_credentials(self) -> bool:
        return bool(self.app_id and self.api_key and self.index_name)


def _get_int(env: Mapping[str, str], name: str, default: int, minimum: int) -> int:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        msg = f"{name} must be an integer, got {raw!r}"
        raise ConfigError(msg) from None
    if value < minimum:
        msg = f"{name} must be at least {minimum}, got {value}"
        raise ConfigError(msg)
    return value


def _get_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        msg = f"{name} must be a number, got {raw!r}"
        raise ConfigError(msg) from None
    if value <= 0:
        msg = f"{name} must be positive, got {value}"
        raise ConfigError(msg)
    return value


def load_config(env: Mapping[str, str] | None = None, *, require_credentials: bool = False) -> IndexerConfig:
    """Load configuration from environment variables.

    When no mapping is given, a local ``.env`` file is loaded into the
    process environment first.

    Args:
        env: Environment mapping, defaults to ``os.environ``.
        require_credentials: Fail unless the Algolia app id, API key and
            index name are all set.

    Returns:
        IndexerConfig instance.

    Raises:
        ConfigError: If a value is invalid or required credentials are missing.
    """
    if env is None:
        load_dotenv()
        env = os.environ

    config = IndexerConfig(
        app_id=env.get("ALGOLIA_APP_ID", "").strip(),
        api_key=env.get("ALGOLIA_API_KEY", "").strip(),
        index_name=env.get("ALGOLIA_INDEX_NAME", "").strip(),
        base_url=env.get("DOCS_BASE_URL", "").strip() or "/docs",
        output_path=Path(env.get("SEARCH_RECORDS_OUTPUT", "").strip() or DEFAULT_OUTPUT_PATH),
        concurrency=_get_int(env, "SEARCH_SYNC_CONCURRENCY", 4, minimum=1),
        workers=_get_int(env, "SEARCH_INDEX_WORKERS", 1, minimum=1),
        timeout=_get_float(env, "SEARCH_INDEX_TIMEOUT", 30.0),
    )

    if require_credentials and not config.has_credentials:
        missing = [
            name
            for name, value in (
                ("ALGOLIA_APP_ID", config.app_id),
                ("ALGOLIA_API_KEY", config.api_key),
                ("ALGOLIA_INDEX_NAME", config.index_name),
            )
            if not value
        ]
        msg = f"Missing search index configuration: {', '.join(missing)}"
        raise ConfigError(msg)

    return config
