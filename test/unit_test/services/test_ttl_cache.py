import pytest

from app.services import ttl_cache
from app.services.ttl_cache import TTLCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock(monkeypatch) -> FakeClock:
    fake = FakeClock()
    monkeypatch.setattr(ttl_cache.time, "monotonic", fake)
    return fake


def test_get_returns_value_until_expiry(clock):
    cache: TTLCache[str] = TTLCache(max_size=10, ttl_seconds=60)
    cache.set("a", "alpha")

    clock.now += 59
    assert cache.get("a") == "alpha"

    clock.now += 1
    assert cache.get("a") is None
    assert len(cache) == 0


def test_reset_refreshes_ttl_and_order(clock):
    cache: TTLCache[int] = TTLCache(max_size=2, ttl_seconds=60)
    cache.set("a", 1)
    cache.set("b", 2)
    clock.now += 30
    cache.set("a", 10)

    # "b" is now the oldest entry and is evicted first
    cache.set("c", 3)
    assert cache.get("b") is None
    assert cache.get("a") == 10
    assert cache.get("c") == 3


def test_full_cache_purges_expired_before_evicting(clock):
    cache: TTLCache[int] = TTLCache(max_size=2, ttl_seconds=10)
    cache.set("old", 1)
    clock.now += 5
    cache.set("fresh", 2)
    clock.now += 6

    cache.set("new", 3)
    assert "old" not in cache
    assert cache.get("fresh") == 2
    assert cache.get("new") == 3


def test_bulk_eviction_drops_oldest_entries(clock):
    cache: TTLCache[int] = TTLCache(max_size=4, ttl_seconds=100, eviction_count=2)
    for i in range(4):
        cache.set(i, i)

    cache.set("x", 99)
    assert cache.get(0) is None
    assert cache.get(1) is None
    assert cache.get(2) == 2
    assert len(cache) == 3


def test_get_many_and_set_many(clock):
    cache: TTLCache[str] = TTLCache()
    cache.set_many([("a", "1"), ("b", "2")])

    assert cache.get_many(["a", "b", "missing"]) == {"a": "1", "b": "2"}


def test_stats_and_clear():
    cache: TTLCache[int] = TTLCache(max_size=5, ttl_seconds=30)
    cache.set("a", 1)
    assert cache.stats == {"size": 1, "max_size": 5, "ttl_seconds": 30}

    cache.clear()
    assert cache.stats["size"] == 0


def test_rejects_zero_size():
    with pytest.raises(ValueError):
        TTLCache(max_size=0)
