"""
Query Cache

Keeps the results of read queries for a short time and drops them when
a write or a change notification says the underlying tables moved.
Consistency is "invalidate and reload": nothing is patched in place, the
next read simply goes back to the backend.

Query keys are tuples whose first element names the query family:
    ("orders",)                          active kitchen orders
    ("order-history", search, status, start, end)
    ("dashboard-stats",)
"""

import asyncio
import logging
import time
from functools import lru_cache
from typing import Any, Awaitable, Callable, Hashable, Optional

from pos_gateway.core.config import get_settings

logger = logging.getLogger(__name__)

QueryKey = tuple[Hashable, ...]


# Backend table -> query families that read it
TABLE_QUERY_KEYS: dict[str, tuple[str, ...]] = {
    "orders": (
        "orders",
        "order-history",
        "order-stats",
        "dashboard-stats",
        "daily-sales",
        "sales-analytics",
        "top-selling-items",
    ),
    "order_items": ("orders", "order-history", "top-selling-items", "sales-analytics"),
    "restaurant_tables": ("restaurant_tables", "dashboard-stats"),
    "inventory_items": (
        "inventory_items",
        "low-stock-alerts",
        "menu-items-stock",
    ),
    "inventory_transactions": ("inventory_transactions",),
    "recipes": ("menu-items-stock",),
    "menu_items": ("menu-items", "menu-items-stock"),
    "menu_categories": ("menu-categories",),
    "customers": ("customers", "customer_stats", "loyalty_balance"),
    "shifts": ("shifts",),
    "expenses": ("expenses",),
}


class QueryCache:
    """
    TTL cache of query results with prefix invalidation.

    A load that started before an invalidation of its family still
    answers its callers but is not stored.

    Attributes:
        ttl: Seconds an entry stays fresh
    """

    def __init__(self, ttl: float = 30.0, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[QueryKey, tuple[float, Any]] = {}
        self._loads: dict[QueryKey, asyncio.Future] = {}
        self._generations: dict[Hashable, int] = {}
        self._epoch = 0

    def __contains__(self, key: QueryKey) -> bool:
        entry = self._entries.get(key)
        return entry is not None and self._clock() - entry[0] < self.ttl

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def pending_loads(self) -> int:
        return len(self._loads)

    def get(self, key: QueryKey) -> Optional[Any]:
        if key in self:
            return self._entries[key][1]
        return None

    def set(self, key: QueryKey, value: Any) -> None:
        self._entries[key] = (self._clock(), value)

    def _generation(self, key: QueryKey) -> tuple[int, int]:
        family = key[0] if key else None
        return self._epoch, self._generations.get(family, 0)

    async def get_or_load(
        self,
        key: QueryKey,
        loader: Callable[[], Awaitable[Any]],
    ) -> Any:
        """
        Return the cached value for ``key`` or load and store it.

        Concurrent callers for the same key share a single load.
        """
        if key in self:
            return self._entries[key][1]

        pending = self._loads.get(key)
        if pending is not None:
            return await pending

        generation = self._generation(key)
        load = asyncio.ensure_future(loader())
        self._loads[key] = load
        try:
            value = await load
        finally:
            if self._loads.get(key) is load:
                del self._loads[key]

        if self._generation(key) == generation:
            self.set(key, value)
        else:
            logger.debug(f"Cache: {key[0]} changed during load, result not stored")
        return value

    def invalidate(self, *families: str) -> int:
        """
        Drop every entry whose key starts with one of ``families``.

        Loads of these families already in flight will not be stored.

        Returns:
            Number of entries removed
        """
        targets = set(families)
        for family in targets:
            self._generations[family] = self._generations.get(family, 0) + 1

        stale = [k for k in self._entries if k and k[0] in targets]
        for key in stale:
            del self._entries[key]
        if stale:
            logger.debug(f"Cache: invalidated {len(stale)} entries for {sorted(targets)}")
        return len(stale)

    def handle_change(self, table: str) -> int:
        """
        React to a row change notification for ``table``.

        Returns:
            Number of entries removed
        """
        families = TABLE_QUERY_KEYS.get(table, (table,))
        removed = self.invalidate(*families)
        logger.info(f"Change on {table}: {removed} cached queries dropped")
        return removed

    def clear(self) -> None:
        self._entries.clear()
        self._loads.clear()
        self._epoch += 1


@lru_cache()
def get_query_cache() -> QueryCache:
    """Get the process-wide query cache."""
    return QueryCache(ttl=get_settings().query_cache_ttl)
