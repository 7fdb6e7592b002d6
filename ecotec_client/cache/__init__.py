"""Cache module initialization."""

from .memory_cache import CacheSlot, DataCache
from .persistent_cache import CACHE_TTL, CacheEntry, CacheKey, PersistentCache, SessionDataStore
from .storage import FileStore, InMemoryStore, KeyValueStore, RedisStore, build_store

__all__ = [
    "CACHE_TTL",
    "CacheEntry",
    "CacheKey",
    "CacheSlot",
    "DataCache",
    "FileStore",
    "InMemoryStore",
    "KeyValueStore",
    "PersistentCache",
    "RedisStore",
    "SessionDataStore",
    "build_store",
]
