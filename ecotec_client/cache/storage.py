"""
Durable key/value backends for the persistent cache.

The persistent cache only needs four operations, so any store that can
get, set, delete and list keys by prefix can back it. Backends raise
``StorageQuotaExceededError`` when a write does not fit and ``StorageError``
for any other failure; the cache layer absorbs both.
"""

import errno
import os
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import quote, unquote

import redis
from redis.exceptions import RedisError, ResponseError

from ..config import Settings, settings
from ..exceptions import StorageError, StorageQuotaExceededError
from ..logging_config import get_logger

logger = get_logger(__name__)


class KeyValueStore(ABC):
    """Minimal string key/value store interface."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored value or None when the key is absent."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store a value, replacing any previous one."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove a key. Removing a missing key is not an error."""

    @abstractmethod
    def keys_with_prefix(self, prefix: str) -> List[str]:
        """List every stored key starting with ``prefix``."""


class InMemoryStore(KeyValueStore):
    """
    Dictionary-backed store with an optional byte quota.

    Used by tests and by hosts that do not need the cache to survive a
    restart. The quota counts UTF-8 bytes of keys and values.
    """

    def __init__(self, quota_bytes: Optional[int] = None) -> None:
        self._data: Dict[str, str] = {}
        self.quota_bytes = quota_bytes

    def _usage(self, excluding: Optional[str] = None) -> int:
        return sum(
            len(key.encode()) + len(value.encode())
            for key, value in self._data.items()
            if key != excluding
        )

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if self.quota_bytes is not None:
            size = len(key.encode()) + len(value.encode())
            if self._usage(excluding=key) + size > self.quota_bytes:
                raise StorageQuotaExceededError(key, size, self.quota_bytes)
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys_with_prefix(self, prefix: str) -> List[str]:
        return [key for key in self._data if key.startswith(prefix)]


class FileStore(KeyValueStore):
    """
    One file per key inside a directory.

    Keys are percent-encoded into file names. Writes go to a temporary file
    first and are moved into place, so a crash never leaves half an entry.
    """

    SUFFIX = ".json"

    def __init__(self, directory: str, quota_bytes: Optional[int] = None) -> None:
        self.directory = Path(directory)
        self.quota_bytes = quota_bytes
        self._lock = threading.Lock()
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(
                f"Cannot create cache directory {self.directory}: {e}"
            ) from e

    def _path(self, key: str) -> Path:
        return self.directory / f"{quote(key, safe='')}{self.SUFFIX}"

    def _usage(self, excluding: Path) -> int:
        total = 0
        for path in self.directory.glob(f"*{self.SUFFIX}"):
            if path != excluding:
                total += path.stat().st_size
        return total

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            raise StorageError(f"Cannot read cache file {path}: {e}") from e

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        encoded = value.encode("utf-8")
        with self._lock:
            try:
                if self.quota_bytes is not None:
                    if self._usage(excluding=path) + len(encoded) > self.quota_bytes:
                        raise StorageQuotaExceededError(key, len(encoded), self.quota_bytes)
                tmp_path = path.with_suffix(".tmp")
                tmp_path.write_bytes(encoded)
                os.replace(tmp_path, path)
            except OSError as e:
                if e.errno == errno.ENOSPC:
                    raise StorageQuotaExceededError(key, len(encoded)) from e
                raise StorageError(f"Cannot write cache file {path}: {e}") from e

    def delete(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot delete cache key {key}: {e}") from e

    def keys_with_prefix(self, prefix: str) -> List[str]:
        keys = []
        for path in self.directory.glob(f"*{self.SUFFIX}"):
            key = unquote(path.name[: -len(self.SUFFIX)])
            if key.startswith(prefix):
                keys.append(key)
        return keys


class RedisStore(KeyValueStore):
    """
    Store backed by a synchronous redis-py client.

    Calls block the event loop while they run, including from inside async
    cache loads; ``from_url`` bounds each one with a 5 second socket timeout.
    ``KeyValueStore`` is synchronous, so ``redis.asyncio`` cannot sit behind
    it. Keep Redis close to the process, or use ``FileStore``.

    Redis answers ``OOM command not allowed`` when ``maxmemory`` is reached
    under a ``noeviction`` policy; that is reported as a quota error.
    """

    def __init__(self, client: redis.Redis) -> None:
        self.client = client

    @classmethod
    def from_url(cls, redis_url: str) -> "RedisStore":
        client = redis.Redis.from_url(
            redis_url,
            socket_timeout=5,
            socket_connect_timeout=5,
            decode_responses=True,
        )
        logger.info(
            "Redis cache store configured",
            extra={"extra_fields": {"redis_url": redis_url.split("@")[-1]}},
        )
        return cls(client)

    @staticmethod
    def _text(value: object) -> Optional[str]:
        if value is None:
            return None
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return str(value)

    def get(self, key: str) -> Optional[str]:
        try:
            return self._text(self.client.get(key))
        except RedisError as e:
            raise StorageError(f"Redis error on get: {e}") from e

    def set(self, key: str, value: str) -> None:
        try:
            self.client.set(key, value)
        except ResponseError as e:
            if str(e).startswith("OOM"):
                raise StorageQuotaExceededError(key, len(value.encode("utf-8"))) from e
            raise StorageError(f"Redis error on set: {e}") from e
        except RedisError as e:
            raise StorageError(f"Redis error on set: {e}") from e

    def delete(self, key: str) -> None:
        try:
            self.client.delete(key)
        except RedisError as e:
            raise StorageError(f"Redis error on delete: {e}") from e

    def keys_with_prefix(self, prefix: str) -> List[str]:
        try:
            return [
                self._text(key)
                for key in self.client.scan_iter(match=f"{prefix}*", count=100)
            ]
        except RedisError as e:
            raise StorageError(f"Redis error on scan: {e}") from e


def build_store(config: Optional[Settings] = None) -> KeyValueStore:
    """
    Create the backend selected by ``CACHE_BACKEND``.

    Args:
        config: Settings to read (defaults to the global settings)

    Returns:
        A ready-to-use key/value store
    """
    config = config or settings

    if config.CACHE_BACKEND == "redis":
        return RedisStore.from_url(config.REDIS_URL)
    if config.CACHE_BACKEND == "memory":
        return InMemoryStore(quota_bytes=config.CACHE_QUOTA_BYTES)
    return FileStore(config.CACHE_DIR, quota_bytes=config.CACHE_QUOTA_BYTES)
