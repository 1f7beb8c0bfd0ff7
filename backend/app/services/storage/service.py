"""Durable key-value storage.

This module provides an abstract durable store interface and concrete
implementations used to mirror device-local state (recent views, saved
places, recent searches).

Every backend stores named string values. Contract:
- ``read`` returns the stored string or None when the key is absent, and
  raises StorageError when the backend cannot be read.
- ``write`` and ``remove`` return True when the change was persisted and
  False on failure. Failures are logged here; callers keep their in-memory
  state authoritative.
"""

import asyncio
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path

import redis.asyncio as redis
from redis.exceptions import RedisError

from app.config import Settings
from app.exceptions import StorageError

logger = logging.getLogger(__name__)


class DurableStore(ABC):
    """Abstract base class for durable string stores."""

    backend = "abstract"

    @abstractmethod
    async def read(self, key: str) -> str | None:
        """Retrieve the stored value for a key.

        Args:
            key: The record key.

        Returns:
            The stored string, or None if nothing is stored under ``key``.

        Raises:
            StorageError: If the backend could not be read.
        """
        pass

    @abstractmethod
    async def write(self, key: str, value: str) -> bool:
        """Store a value under a key, replacing any previous value.

        Args:
            key: The record key.
            value: The serialized record.

        Returns:
            True if the value was persisted, False otherwise.
        """
        pass

    @abstractmethod
    async def remove(self, key: str) -> bool:
        """Delete a key.

        Removing an absent key counts as success.

        Args:
            key: The record key.

        Returns:
            True if the key is gone from the store, False if deletion failed.
        """
        pass

    async def close(self) -> None:
        """Release backend resources."""
        return None


class InMemoryDurableStore(DurableStore):
    """Process-local store backed by a dict.

    Used as the default backend and in tests. Nothing survives a restart.
    """

    backend = "memory"

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    async def read(self, key: str) -> str | None:
        return self._data.get(key)

    async def write(self, key: str, value: str) -> bool:
        self._data[key] = value
        return True

    async def remove(self, key: str) -> bool:
        self._data.pop(key, None)
        return True

    def dump(self) -> dict[str, str]:
        """Copy of everything currently stored."""
        return dict(self._data)


class FileDurableStore(DurableStore):
    """Store keeping every key in one JSON document on local disk.

    Writes go to a temporary file in the same directory which then replaces
    the document, so a crash mid-write leaves the previous version intact.
    File I/O runs in a worker thread to keep the event loop free.
    """

    backend = "file"

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _load_document(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        text = self._path.read_text(encoding="utf-8")
        if not text.strip():
            return {}
        document = json.loads(text)
        if not isinstance(document, dict):
            raise ValueError("storage document is not a JSON object")
        return document

    def _save_document(self, document: dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self._path.parent, prefix=f".{self._path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(document, handle, ensure_ascii=False)
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    async def read(self, key: str) -> str | None:
        async with self._lock:
            try:
                document = await asyncio.to_thread(self._load_document)
            except (OSError, ValueError) as e:
                raise StorageError(f"Cannot read {self._path}: {e}", key=key) from e
        value = document.get(key)
        if value is not None and not isinstance(value, str):
            raise StorageError(f"Value under {key!r} is not a string", key=key)
        return value

    async def _mutate(self, key: str, value: str | None) -> bool:
        async with self._lock:
            try:
                try:
                    document = await asyncio.to_thread(self._load_document)
                except ValueError:
                    logger.warning(f"[Storage] {self._path} is corrupt, rewriting it")
                    document = {}
                if value is None:
                    if key not in document:
                        return True
                    document.pop(key)
                else:
                    document[key] = value
                await asyncio.to_thread(self._save_document, document)
                return True
            except OSError as e:
                logger.warning(f"[Storage] Write to {self._path} failed for {key!r}: {e}")
                return False

    async def write(self, key: str, value: str) -> bool:
        return await self._mutate(key, value)

    async def remove(self, key: str) -> bool:
        return await self._mutate(key, None)


class RedisDurableStore(DurableStore):
    """Redis-based durable store.

    Keys are namespaced with a prefix so several stores can share a database.

    Attributes:
        _client: The Redis async client instance.
        _prefix: Prefix prepended to every key.
    """

    backend = "redis"

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379",
        key_prefix: str = "",
        client: redis.Redis | None = None,
    ) -> None:
        """Initialize the Redis store.

        Args:
            redis_url: Redis connection URL. Defaults to localhost:6379.
            key_prefix: Namespace prepended to every key.
            client: Pre-built client, mainly for tests.
        """
        self._redis_url = redis_url
        self._prefix = key_prefix
        self._client: redis.Redis | None = client

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def _ensure_client(self) -> redis.Redis:
        """Create the client lazily on first use."""
        if self._client is None:
            self._client = redis.from_url(
                self._redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
        return self._client

    async def ping(self) -> None:
        """Check connectivity.

        Raises:
            StorageError: If Redis cannot be reached.
        """
        try:
            await self._ensure_client().ping()
        except (RedisError, OSError) as e:
            raise StorageError(f"Redis unreachable at {self._redis_url}: {e}") from e

    async def read(self, key: str) -> str | None:
        try:
            value = await self._ensure_client().get(self._key(key))
        except (RedisError, OSError) as e:
            raise StorageError(f"Redis read failed: {e}", key=key) from e
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        return value

    async def write(self, key: str, value: str) -> bool:
        try:
            await self._ensure_client().set(self._key(key), value)
            return True
        except (RedisError, OSError) as e:
            logger.warning(f"[Storage] Redis write failed for {key!r}: {e}")
            return False

    async def remove(self, key: str) -> bool:
        try:
            await self._ensure_client().delete(self._key(key))
            return True
        except (RedisError, OSError) as e:
            logger.warning(f"[Storage] Redis delete failed for {key!r}: {e}")
            return False

    async def close(self) -> None:
        """Close the Redis connection."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None


async def create_durable_store(settings: Settings) -> DurableStore:
    """Create the configured durable store.

    Redis is checked with a ping; when it cannot be reached the in-memory
    store is used instead so the app still starts.
    """
    if settings.storage_backend == "redis":
        store = RedisDurableStore(
            redis_url=settings.redis_url, key_prefix=settings.redis_key_prefix
        )
        try:
            await store.ping()
            logger.info(f"[Storage] Redis ready: {settings.redis_url}")
            return store
        except StorageError as e:
            logger.warning(f"[Storage] {e}; falling back to in-memory storage")
            await store.close()
            return InMemoryDurableStore()

    if settings.storage_backend == "file":
        logger.info(f"[Storage] Using file storage at {settings.storage_file_path}")
        return FileDurableStore(settings.storage_file_path)

    return InMemoryDurableStore()
