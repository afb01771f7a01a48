from __future__ import annotations

from warden.services.cache import TTLCache
from warden.testing.fakes import ManualClock


def test_entries_expire_after_ttl() -> None:
    clock = ManualClock()
    cache: TTLCache[int, str] = TTLCache(default_ttl_seconds=10, clock=clock)
    cache.set(1, "a")
    cache.set(2, "b", ttl_seconds=30)

    clock.advance(10)

    assert cache.get(1) is None
    assert cache.get(2) == "b"
    assert len(cache) == 1


def test_delete_and_clear() -> None:
    cache: TTLCache[int, str] = TTLCache()
    cache.set(1, "a")
    cache.set(2, "b")

    cache.delete(1)
    assert cache.get(1) is None
    cache.clear()
    assert len(cache) == 0
