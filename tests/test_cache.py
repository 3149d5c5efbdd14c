import asyncio

import pytest

from pos_gateway.cache import QueryCache


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_get_or_load_caches_until_ttl():
    clock = FakeClock()
    cache = QueryCache(ttl=30, clock=clock)
    calls = []

    async def loader():
        calls.append(1)
        return len(calls)

    assert asyncio.run(cache.get_or_load(("orders",), loader)) == 1
    assert asyncio.run(cache.get_or_load(("orders",), loader)) == 1

    clock.now = 31
    assert asyncio.run(cache.get_or_load(("orders",), loader)) == 2


def test_concurrent_loads_share_one_call():
    cache = QueryCache(ttl=30)
    calls = []

    async def loader():
        calls.append(1)
        await asyncio.sleep(0.01)
        return "rows"

    async def main():
        return await asyncio.gather(*[cache.get_or_load(("orders",), loader) for _ in range(5)])

    assert asyncio.run(main()) == ["rows"] * 5
    assert len(calls) == 1


def test_invalidate_drops_whole_family():
    cache = QueryCache(ttl=30)
    cache.set(("order-history", "", "all", None, None), [])
    cache.set(("order-history", "ORD", "paid", None, None), [])
    cache.set(("restaurant_tables",), [])

    assert cache.invalidate("order-history") == 2
    assert ("restaurant_tables",) in cache
    assert cache.invalidate("unknown") == 0


def test_change_notification_maps_table_to_queries():
    cache = QueryCache(ttl=30)
    cache.set(("orders",), [])
    cache.set(("dashboard-stats",), {})
    cache.set(("low-stock-alerts",), [])

    assert cache.handle_change("orders") == 2
    assert ("low-stock-alerts",) in cache

    assert cache.handle_change("inventory_items") == 1
    assert len(cache) == 0


def test_load_racing_a_write_is_not_stored():
    cache = QueryCache(ttl=30)
    state = {"orders": "before-write"}

    async def loader():
        snapshot = state["orders"]
        await asyncio.sleep(0.01)
        return snapshot

    async def writer():
        await asyncio.sleep(0)
        state["orders"] = "after-write"
        cache.invalidate("orders")

    async def main():
        first, _ = await asyncio.gather(cache.get_or_load(("orders",), loader), writer())
        second = await cache.get_or_load(("orders",), loader)
        return first, second

    assert asyncio.run(main()) == ("before-write", "after-write")
    assert cache.get(("orders",)) == "after-write"


def test_invalidating_another_family_keeps_the_load():
    cache = QueryCache(ttl=30)

    async def loader():
        await asyncio.sleep(0.01)
        return "rows"

    async def main():
        load = asyncio.ensure_future(cache.get_or_load(("orders",), loader))
        await asyncio.sleep(0)
        cache.invalidate("shifts")
        return await load

    assert asyncio.run(main()) == "rows"
    assert ("orders",) in cache


def test_finished_loads_are_forgotten():
    cache = QueryCache(ttl=30)

    async def loader():
        return []

    async def failing():
        raise RuntimeError("backend down")

    for search in ("", "ORD", "0002"):
        asyncio.run(cache.get_or_load(("order-history", search), loader))

    with pytest.raises(RuntimeError):
        asyncio.run(cache.get_or_load(("orders",), failing))

    assert cache.pending_loads == 0
    assert ("orders",) not in cache
