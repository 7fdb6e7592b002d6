"""
Persistent, tenant-scoped cache of API collections.

Entries are stored as JSON envelopes ``{data, timestamp, shopId, version}``
in a durable key/value store so views can render instantly after a restart.
The cache is best-effort: corrupted entries heal themselves, full storage
triggers eviction, and no storage failure ever reaches the caller.
"""

import json
import time
from enum import Enum
from functools import lru_cache
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from ..config import settings
from ..exceptions import CacheCorruptionError, StorageError, StorageQuotaExceededError
from ..logging_config import get_logger
from ..metrics import (
    persistent_cache_dropped_writes_total,
    persistent_cache_evictions_total,
    persistent_cache_lookups_total,
)
from .storage import KeyValueStore

logger = get_logger(__name__)

Clock = Callable[[], float]

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS

# Entries older than this are dropped when storage runs out of space
QUOTA_EVICTION_AGE_MS = HOUR_MS


class CacheKey(str, Enum):
    """Entities with a persisted collection."""

    PRODUCTS = "products"
    CUSTOMERS = "customers"
    INVOICES = "invoices"
    CATEGORIES = "categories"
    BRANDS = "brands"
    SUPPLIERS = "suppliers"
    GRNS = "grns"
    SETTINGS = "settings"


# Time-to-live per entity in milliseconds
CACHE_TTL: Dict[CacheKey, int] = {
    CacheKey.PRODUCTS: 10 * MINUTE_MS,
    CacheKey.CUSTOMERS: 10 * MINUTE_MS,
    CacheKey.INVOICES: 5 * MINUTE_MS,
    CacheKey.CATEGORIES: 30 * MINUTE_MS,
    CacheKey.BRANDS: 30 * MINUTE_MS,
    CacheKey.SUPPLIERS: 15 * MINUTE_MS,
    CacheKey.GRNS: 5 * MINUTE_MS,
    CacheKey.SETTINGS: HOUR_MS,
}

KeyLike = Union[CacheKey, str]


class CacheEntry(BaseModel):
    """Envelope written for every persisted collection."""

    model_config = ConfigDict(populate_by_name=True)

    data: Any
    timestamp: int
    shop_id: Optional[str] = Field(default=None, alias="shopId")
    version: int


@lru_cache(maxsize=64)
def _adapter(as_type: Any) -> TypeAdapter:
    return TypeAdapter(as_type)


def epoch_ms(clock: Clock) -> int:
    return int(clock() * 1000)


class PersistentCache:
    """
    Versioned, TTL-bearing, tenant-scoped cache over a ``KeyValueStore``.

    Reading rules for ``get``:
    - version differs from the current data version: entry deleted, miss
    - shop id differs from the caller's: miss, entry kept (another shop
      may still use it)
    - older than the key's TTL: miss, entry kept for ``get_stale``

    Attributes:
        store: Durable key/value backend
        prefix: Namespace prefix for every key written by this cache
        version: Current data format version
        clock: Returns epoch seconds; injectable for tests
    """

    def __init__(
        self,
        store: KeyValueStore,
        prefix: Optional[str] = None,
        version: Optional[int] = None,
        clock: Clock = time.time,
        ttl: Optional[Dict[CacheKey, int]] = None,
    ) -> None:
        self.store = store
        self.prefix = prefix or settings.CACHE_PREFIX
        self.version = version if version is not None else settings.CACHE_DATA_VERSION
        self.clock = clock
        self.ttl = {**CACHE_TTL, **(ttl or {})}

        logger.debug(
            f"Initialized PersistentCache prefix={self.prefix} version={self.version}"
        )

    def _storage_key(self, key: KeyLike) -> str:
        return f"{self.prefix}{CacheKey(key).value}"

    def _decode(self, storage_key: str, raw: str) -> CacheEntry:
        try:
            return CacheEntry.model_validate_json(raw)
        except (ValidationError, ValueError) as e:
            raise CacheCorruptionError(storage_key, type(e).__name__) from e

    def _delete_quietly(self, storage_key: str, reason: str) -> None:
        try:
            self.store.delete(storage_key)
            persistent_cache_evictions_total.labels(reason=reason).inc()
        except StorageError as e:
            logger.warning(f"Could not delete cache entry {storage_key}: {e}")

    def _read(self, storage_key: str) -> Optional[CacheEntry]:
        """Load and decode one entry; corrupted entries are deleted."""
        try:
            raw = self.store.get(storage_key)
        except StorageError as e:
            logger.warning(f"Cache read failed for {storage_key}: {e}")
            return None

        if raw is None:
            return None

        try:
            return self._decode(storage_key, raw)
        except CacheCorruptionError as e:
            logger.warning(f"Removing corrupted cache entry: {e.message}")
            self._delete_quietly(storage_key, "corrupted")
            return None

    def _readable_entry(self, key: KeyLike, shop_id: Optional[str]) -> Optional[CacheEntry]:
        storage_key = self._storage_key(key)
        entry = self._read(storage_key)
        if entry is None:
            return None

        if entry.version != self.version:
            logger.debug(
                f"Cache version mismatch for {storage_key}: "
                f"{entry.version} != {self.version}"
            )
            self._delete_quietly(storage_key, "version")
            return None

        if entry.shop_id != shop_id:
            return None

        return entry

    def _typed(self, key: KeyLike, data: Any, as_type: Any) -> Any:
        if as_type is None:
            return data
        try:
            return _adapter(as_type).validate_python(data)
        except ValidationError as e:
            storage_key = self._storage_key(key)
            logger.warning(
                f"Removing corrupted cache entry: "
                f"{CacheCorruptionError(storage_key, 'schema mismatch').message}",
                extra={"extra_fields": {"errors": e.error_count()}},
            )
            self._delete_quietly(storage_key, "corrupted")
            return None

    def is_fresh(self, key: KeyLike, entry: CacheEntry) -> bool:
        age = epoch_ms(self.clock) - entry.timestamp
        return age < self.ttl[CacheKey(key)]

    def get_entry(self, key: KeyLike, shop_id: Optional[str]) -> Optional[CacheEntry]:
        """
        Return the fresh entry envelope for ``key``, including its timestamp.

        Args:
            key: Entity key
            shop_id: Caller's active shop (None for the user's own shop)

        Returns:
            The entry when it is a hit, None otherwise
        """
        entry = self._readable_entry(key, shop_id)
        if entry is None or not self.is_fresh(key, entry):
            persistent_cache_lookups_total.labels(key=CacheKey(key).value, result="miss").inc()
            return None
        persistent_cache_lookups_total.labels(key=CacheKey(key).value, result="hit").inc()
        return entry

    def get(self, key: KeyLike, shop_id: Optional[str], as_type: Any = None) -> Any:
        """
        Get cached data if it is current for this shop.

        Args:
            key: Entity key
            shop_id: Caller's active shop
            as_type: Optional type to validate the stored JSON into,
                e.g. ``List[Customer]``

        Returns:
            Cached data, or None on any kind of miss
        """
        entry = self.get_entry(key, shop_id)
        if entry is None:
            return None
        return self._typed(key, entry.data, as_type)

    def get_timestamped(
        self,
        key: KeyLike,
        shop_id: Optional[str],
        as_type: Any = None,
    ) -> Optional[Tuple[Any, int]]:
        """Like ``get`` but also returns the epoch-ms time the entry was written."""
        entry = self.get_entry(key, shop_id)
        if entry is None:
            return None
        data = self._typed(key, entry.data, as_type)
        if data is None:
            return None
        return data, entry.timestamp

    def get_stale(self, key: KeyLike, shop_id: Optional[str], as_type: Any = None) -> Any:
        """
        Get cached data ignoring TTL.

        Only meant as a display fallback while a fresh load is pending.
        Version and shop checks still apply.
        """
        entry = self._readable_entry(key, shop_id)
        if entry is None:
            persistent_cache_lookups_total.labels(key=CacheKey(key).value, result="miss").inc()
            return None
        persistent_cache_lookups_total.labels(key=CacheKey(key).value, result="stale").inc()
        return self._typed(key, entry.data, as_type)

    def _encode(self, data: Any, shop_id: Optional[str]) -> str:
        entry = CacheEntry(
            data=data,
            timestamp=epoch_ms(self.clock),
            shop_id=shop_id,
            version=self.version,
        )
        return entry.model_dump_json(by_alias=True)

    def set(self, key: KeyLike, data: Any, shop_id: Optional[str]) -> bool:
        """
        Store data for a shop.

        On a quota error, entries older than one hour are evicted and the
        write is retried once. A write that still fails is dropped.

        Returns:
            True if the entry was written
        """
        storage_key = self._storage_key(key)
        try:
            payload = self._encode(data, shop_id)
        except (ValueError, TypeError) as e:
            logger.warning(f"Cannot serialize cache value for {storage_key}: {e}")
            return False

        try:
            self.store.set(storage_key, payload)
            logger.debug(f"Cache SET: {storage_key} (shop: {shop_id or 'own'})")
            return True
        except StorageQuotaExceededError as e:
            logger.warning(
                "Cache storage full, evicting old entries",
                extra={"extra_fields": {"key": storage_key, "size": e.size}},
            )
        except StorageError as e:
            logger.warning(f"Cache write failed for {storage_key}: {e}")
            persistent_cache_dropped_writes_total.labels(key=CacheKey(key).value).inc()
            return False

        self.evict_older_than(QUOTA_EVICTION_AGE_MS)
        try:
            self.store.set(storage_key, self._encode(data, shop_id))
            return True
        except StorageError as e:
            logger.warning(f"Cache storage is full, cannot cache {storage_key}: {e}")
            persistent_cache_dropped_writes_total.labels(key=CacheKey(key).value).inc()
            return False

    def invalidate(self, key: KeyLike) -> None:
        """Delete one entity's entry regardless of shop."""
        self._delete_quietly(self._storage_key(key), "invalidated")

    def _stored_keys(self) -> List[str]:
        try:
            return self.store.keys_with_prefix(self.prefix)
        except StorageError as e:
            logger.warning(f"Cannot list cache keys: {e}")
            return []

    def invalidate_tenant(self, shop_id: str) -> int:
        """
        Delete every entry written for ``shop_id``.

        Unparseable entries met during the scan are deleted as well.

        Returns:
            Number of entries removed
        """
        removed = 0
        for storage_key in self._stored_keys():
            entry = self._read(storage_key)
            if entry is None:
                continue
            if entry.shop_id == shop_id:
                self._delete_quietly(storage_key, "tenant")
                removed += 1

        logger.info(f"Invalidated {removed} cache entries for shop {shop_id}")
        return removed

    def clear_all(self) -> int:
        """Delete every entry under this cache's prefix."""
        keys = self._stored_keys()
        for storage_key in keys:
            self._delete_quietly(storage_key, "cleared")
        logger.info(f"Cleared {len(keys)} persisted cache entries")
        return len(keys)

    def evict_older_than(self, age_ms: int) -> int:
        """Delete entries whose timestamp is more than ``age_ms`` old."""
        now = epoch_ms(self.clock)
        removed = 0
        for storage_key in self._stored_keys():
            entry = self._read(storage_key)
            if entry is None:
                continue
            if now - entry.timestamp > age_ms:
                self._delete_quietly(storage_key, "quota")
                removed += 1
        return removed

    def get_cache_stats(self) -> Dict[str, Dict[str, Any]]:
        """
        Describe every persisted entry, for debugging.

        Returns:
            Mapping of entity key to size in characters, human age and shop id
        """
        stats: Dict[str, Dict[str, Any]] = {}
        now = epoch_ms(self.clock)
        for storage_key in self._stored_keys():
            name = storage_key[len(self.prefix):]
            try:
                raw = self.store.get(storage_key)
            except StorageError:
                continue
            if raw is None:
                continue
            try:
                entry = self._decode(storage_key, raw)
            except CacheCorruptionError:
                stats[name] = {"size": len(raw), "age": "corrupted", "shop_id": None}
                continue
            age_min = round((now - entry.timestamp) / MINUTE_MS)
            age = f"{age_min}m ago" if age_min < 60 else f"{round(age_min / 60)}h ago"
            stats[name] = {"size": len(raw), "age": age, "shop_id": entry.shop_id}
        return stats


class SessionDataStore:
    """
    Short-lived auth artifacts under their own prefix.

    Values are valid for a fixed period (24 hours by default) and are not
    scoped to a shop. Like the collection cache, failures are absorbed.
    """

    def __init__(
        self,
        store: KeyValueStore,
        prefix: Optional[str] = None,
        ttl_seconds: Optional[int] = None,
        clock: Clock = time.time,
    ) -> None:
        self.store = store
        self.prefix = prefix or settings.SESSION_PREFIX
        self.ttl_ms = (ttl_seconds or settings.SESSION_TTL_SECONDS) * 1000
        self.clock = clock

    def _storage_key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def save(self, key: str, data: Any) -> None:
        payload = {"data": data, "timestamp": epoch_ms(self.clock)}
        try:
            self.store.set(self._storage_key(key), json.dumps(payload, default=str))
        except StorageError as e:
            logger.warning(f"Cannot save session data '{key}': {e}")

    def get(self, key: str) -> Any:
        storage_key = self._storage_key(key)
        try:
            raw = self.store.get(storage_key)
        except StorageError as e:
            logger.warning(f"Cannot read session data '{key}': {e}")
            return None
        if raw is None:
            return None

        try:
            entry = json.loads(raw)
            timestamp = int(entry["timestamp"])
            data = entry["data"]
        except (ValueError, TypeError, KeyError):
            logger.warning(f"Removing corrupted session data '{key}'")
            self.delete(key)
            return None

        if epoch_ms(self.clock) - timestamp > self.ttl_ms:
            return None
        return data

    def delete(self, key: str) -> None:
        try:
            self.store.delete(self._storage_key(key))
        except StorageError as e:
            logger.warning(f"Cannot delete session data '{key}': {e}")
