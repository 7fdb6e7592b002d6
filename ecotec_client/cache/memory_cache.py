"""
In-memory cache of decoded domain collections.

Views ask ``DataCache`` for customers, products, invoices and so on. A
collection loaded within its TTL is returned without touching the network;
otherwise it is fetched through the entity's domain service and written
through to the persistent cache.

Layering:
- In-memory slots (this module): what the views render
- Persistent cache: survives restarts, scoped by shop id
- Backend API via the auth gateway
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..logging_config import get_logger
from ..metrics import memory_cache_loads_total
from .persistent_cache import CACHE_TTL, CacheKey, KeyLike, PersistentCache, epoch_ms

logger = get_logger(__name__)

Clock = Callable[[], float]
FetchFunc = Callable[[Optional[str]], Awaitable[List[Any]]]


@dataclass
class CacheSlot:
    """
    State of one entity's collection.

    ``generation`` is bumped by every reset; a load that started under an
    older generation must not write its result.
    """

    collection: List[Any] = field(default_factory=list)
    is_loading: bool = False
    is_loaded: bool = False
    last_updated: Optional[int] = None
    generation: int = 0

    def reset(self) -> None:
        self.collection = []
        self.is_loading = False
        self.is_loaded = False
        self.last_updated = None
        self.generation += 1


@dataclass
class EntitySource:
    """How to fetch one entity and how to treat its results."""

    fetch: FetchFunc
    ttl_ms: int
    keep_on_empty: bool = False
    item_type: Optional[type] = None


class DataCache:
    """
    Per-entity collections scoped to the active shop.

    Concurrent loads of the same entity share one in-flight fetch. A fetch
    that completes after the shop changed is discarded.

    Attributes:
        persistent_cache: Write-through target and hydration source
        clock: Returns epoch seconds; injectable for tests
        is_using_api: True once any collection was loaded from the backend
    """

    def __init__(
        self,
        persistent_cache: Optional[PersistentCache] = None,
        tenant_provider: Optional[Callable[[], Optional[str]]] = None,
        clock: Clock = time.time,
    ) -> None:
        self.persistent_cache = persistent_cache
        self.clock = clock
        self.is_using_api = False
        self._tenant_provider = tenant_provider or (lambda: None)
        self._sources: Dict[CacheKey, EntitySource] = {}
        self._slots: Dict[CacheKey, CacheSlot] = {}
        self._in_flight: Dict[CacheKey, "asyncio.Task[List[Any]]"] = {}

    @property
    def current_shop_id(self) -> Optional[str]:
        return self._tenant_provider()

    def register(
        self,
        entity: KeyLike,
        fetch: FetchFunc,
        keep_on_empty: bool = False,
        item_type: Optional[type] = None,
        ttl_ms: Optional[int] = None,
    ) -> None:
        """
        Declare an entity and create its empty slot.

        Args:
            entity: Entity key, also used as the persistent cache key
            fetch: ``await fetch(shop_id)`` returns the decoded collection
            keep_on_empty: Keep the previous collection when a non-forced
                load returns nothing
            item_type: Type of one item, used to re-validate persisted data
            ttl_ms: Override of the entity's TTL
        """
        key = CacheKey(entity)
        self._sources[key] = EntitySource(
            fetch=fetch,
            ttl_ms=ttl_ms if ttl_ms is not None else CACHE_TTL[key],
            keep_on_empty=keep_on_empty,
            item_type=item_type,
        )
        self._slots[key] = CacheSlot()

    def slot(self, entity: KeyLike) -> CacheSlot:
        return self._slots[CacheKey(entity)]

    def _is_valid(self, key: CacheKey, slot: CacheSlot) -> bool:
        if slot.last_updated is None:
            return False
        return epoch_ms(self.clock) - slot.last_updated < self._sources[key].ttl_ms

    async def load(self, entity: KeyLike, force_refresh: bool = False) -> List[Any]:
        """
        Return the entity's collection, fetching it when needed.

        Args:
            entity: Entity key
            force_refresh: Skip the in-memory fast path

        Returns:
            The current collection

        Raises:
            Whatever the domain service raised; the previous collection
            stays in place.
        """
        key = CacheKey(entity)
        slot = self._slots[key]

        if slot.is_loaded and self._is_valid(key, slot) and not force_refresh:
            memory_cache_loads_total.labels(entity=key.value, outcome="hit").inc()
            logger.debug(f"Using cached {key.value} for shop: {self.current_shop_id or 'own'}")
            return slot.collection

        # Forced loads always fetch their own result
        in_flight = self._in_flight.get(key)
        if in_flight is not None and not in_flight.done() and not force_refresh:
            memory_cache_loads_total.labels(entity=key.value, outcome="joined").inc()
            return await asyncio.shield(in_flight)

        task = asyncio.ensure_future(self._fetch_into_slot(key, force_refresh))
        self._in_flight[key] = task
        task.add_done_callback(lambda done: self._forget(key, done))
        return await asyncio.shield(task)

    def _forget(self, key: CacheKey, task: "asyncio.Task[List[Any]]") -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        if not task.cancelled():
            # Mark the exception retrieved; awaiting callers re-raise it
            task.exception()

    async def _fetch_into_slot(self, key: CacheKey, force_refresh: bool) -> List[Any]:
        source = self._sources[key]
        slot = self._slots[key]
        shop_id = self.current_shop_id
        generation = slot.generation
        started = epoch_ms(self.clock)

        slot.is_loading = True
        try:
            logger.info(f"Fetching {key.value} for shop: {shop_id or 'own'}")
            items = await source.fetch(shop_id)
        except Exception as error:
            memory_cache_loads_total.labels(entity=key.value, outcome="error").inc()
            logger.warning(
                f"Failed to load {key.value} from API",
                extra={"extra_fields": {"error_type": type(error).__name__, "error": str(error)}},
            )
            raise
        finally:
            if slot.generation == generation:
                slot.is_loading = False

        if slot.generation != generation or self.current_shop_id != shop_id:
            memory_cache_loads_total.labels(entity=key.value, outcome="discarded").inc()
            logger.info(f"{key.value} request outdated (shop changed), ignoring results")
            return slot.collection

        if not items and source.keep_on_empty and not force_refresh:
            memory_cache_loads_total.labels(entity=key.value, outcome="empty_kept").inc()
            logger.info(f"Empty {key.value} response, keeping previous collection")
            return slot.collection

        slot.collection = list(items)
        slot.is_loaded = True
        slot.last_updated = started
        self.is_using_api = True
        memory_cache_loads_total.labels(entity=key.value, outcome="loaded").inc()
        logger.info(
            f"Loaded {key.value} from API: {len(slot.collection)}",
            extra={"extra_fields": {"shop_id": shop_id or "own"}},
        )

        if self.persistent_cache is not None:
            self.persistent_cache.set(key, slot.collection, shop_id)

        return slot.collection

    def reset_all(self) -> None:
        """Empty every slot; in-flight loads will discard their results."""
        for slot in self._slots.values():
            slot.reset()
        self._in_flight.clear()
        logger.info("Cleared all in-memory collections")

    def set_collection(self, entity: KeyLike, items: List[Any]) -> None:
        """Replace a collection after a local edit (e.g. a new invoice)."""
        slot = self._slots[CacheKey(entity)]
        slot.collection = list(items)

    def hydrate(self) -> List[CacheKey]:
        """
        Fill unloaded slots from fresh persisted entries of the current shop.

        The entry's original timestamp is kept, so hydrated data expires
        when the persisted entry would have.

        Returns:
            Entities that were hydrated
        """
        if self.persistent_cache is None:
            return []

        shop_id = self.current_shop_id
        hydrated = []
        for key, source in self._sources.items():
            slot = self._slots[key]
            if slot.is_loaded:
                continue
            as_type = List[source.item_type] if source.item_type else None
            cached = self.persistent_cache.get_timestamped(key, shop_id, as_type)
            if cached is None:
                continue
            slot.collection, slot.last_updated = list(cached[0]), cached[1]
            slot.is_loaded = True
            hydrated.append(key)

        if hydrated:
            logger.info(f"Hydrated {', '.join(key.value for key in hydrated)} from persistent cache")
        return hydrated

    def get_fallback(self, entity: KeyLike) -> List[Any]:
        """
        Something to display while a load is pending.

        The in-memory collection if loaded, else the persisted value for the
        current shop even if expired. Never authoritative.
        """
        key = CacheKey(entity)
        slot = self._slots[key]
        if slot.is_loaded or self.persistent_cache is None:
            return slot.collection

        item_type = self._sources[key].item_type
        as_type = List[item_type] if item_type else None
        stale = self.persistent_cache.get_stale(key, self.current_shop_id, as_type)
        return list(stale) if stale else []

    def get_stats(self) -> Dict[str, Dict[str, Any]]:
        return {
            key.value: {
                "size": len(slot.collection),
                "is_loading": slot.is_loading,
                "is_loaded": slot.is_loaded,
                "last_updated": slot.last_updated,
            }
            for key, slot in self._slots.items()
        }

    # Entity shortcuts used by views

    async def load_customers(self, force_refresh: bool = False) -> List[Any]:
        return await self.load(CacheKey.CUSTOMERS, force_refresh)

    async def load_products(self, force_refresh: bool = False) -> List[Any]:
        return await self.load(CacheKey.PRODUCTS, force_refresh)

    async def load_invoices(self, force_refresh: bool = False) -> List[Any]:
        return await self.load(CacheKey.INVOICES, force_refresh)

    async def load_suppliers(self, force_refresh: bool = False) -> List[Any]:
        return await self.load(CacheKey.SUPPLIERS, force_refresh)

    def set_invoices(self, invoices: List[Any]) -> None:
        self.set_collection(CacheKey.INVOICES, invoices)

    @property
    def customers(self) -> List[Any]:
        return self.slot(CacheKey.CUSTOMERS).collection

    @property
    def products(self) -> List[Any]:
        return self.slot(CacheKey.PRODUCTS).collection

    @property
    def invoices(self) -> List[Any]:
        return self.slot(CacheKey.INVOICES).collection

    @property
    def customers_loaded(self) -> bool:
        return self.slot(CacheKey.CUSTOMERS).is_loaded

    @property
    def products_loaded(self) -> bool:
        return self.slot(CacheKey.PRODUCTS).is_loaded

    @property
    def invoices_loaded(self) -> bool:
        return self.slot(CacheKey.INVOICES).is_loaded
