"""Runtime settings read from the environment.

Values come from process environment variables, optionally seeded from a
``.env`` file in the working directory.
"""

import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

try:
    load_dotenv()
except Exception:
    pass  # Python 3.14+ compat

STORAGE_BACKENDS = ("memory", "file", "redis")


def _int_env(name: str, default: int, minimum: int = 1) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"[Config] {name}={raw!r} is not an integer, using {default}")
        return default
    if value < minimum:
        logger.warning(f"[Config] {name}={value} is below {minimum}, using {default}")
        return default
    return value


@dataclass(frozen=True)
class Settings:
    """Application settings."""

    max_entries: int = 20
    most_viewed_limit: int = 10
    cache_key: str = "recent_toilet_cache"
    saved_key: str = "saved_toilets"
    searches_key: str = "recent_searches"
    preferences_key: str = "user_preferences"
    storage_backend: str = "memory"
    storage_file_path: str = "data/device_storage.json"
    redis_url: str = "redis://localhost:6379"
    redis_key_prefix: str = "toilet-finder:"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables."""
        backend = os.getenv("STORAGE_BACKEND", cls.storage_backend).strip().lower()
        if backend not in STORAGE_BACKENDS:
            logger.warning(
                f"[Config] Unknown STORAGE_BACKEND={backend!r}, using {cls.storage_backend!r}"
            )
            backend = cls.storage_backend

        log_level = os.getenv("LOG_LEVEL", cls.log_level).strip().upper()
        if not isinstance(logging.getLevelName(log_level), int):
            logger.warning(f"[Config] Unknown LOG_LEVEL={log_level!r}, using {cls.log_level}")
            log_level = cls.log_level

        return cls(
            max_entries=_int_env("RECENT_CACHE_MAX_ENTRIES", cls.max_entries),
            most_viewed_limit=_int_env(
                "RECENT_CACHE_MOST_VIEWED_LIMIT", cls.most_viewed_limit
            ),
            cache_key=os.getenv("RECENT_CACHE_KEY", cls.cache_key),
            saved_key=os.getenv("SAVED_POIS_KEY", cls.saved_key),
            searches_key=os.getenv("RECENT_SEARCHES_KEY", cls.searches_key),
            preferences_key=os.getenv("PREFERENCES_KEY", cls.preferences_key),
            storage_backend=backend,
            storage_file_path=os.getenv("STORAGE_FILE_PATH", cls.storage_file_path),
            redis_url=os.getenv("REDIS_URL", cls.redis_url),
            redis_key_prefix=os.getenv("REDIS_KEY_PREFIX", cls.redis_key_prefix),
            log_level=log_level,
        )
