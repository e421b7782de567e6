from app.services.stats_cache import StatsCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_get_returns_stored_rows():
    cache = StatsCache(max_entries=10, ttl_seconds=60, clock=FakeClock())
    cache.set(("u1", "call", 30), [{"call_id": "c1"}])

    assert cache.get(("u1", "call", 30)) == [{"call_id": "c1"}]
    assert cache.get(("u1", "call", 7)) is None


def test_entries_expire():
    clock = FakeClock()
    cache = StatsCache(max_entries=10, ttl_seconds=60, clock=clock)
    cache.set(("u1", "text", 30), [])

    clock.now += 59
    assert cache.get(("u1", "text", 30)) == []

    clock.now += 1
    assert cache.get(("u1", "text", 30)) is None
    assert len(cache) == 0


def test_least_recently_used_is_evicted():
    cache = StatsCache(max_entries=2, ttl_seconds=60, clock=FakeClock())
    cache.set(("u1", "call", 30), ["a"])
    cache.set(("u2", "call", 30), ["b"])

    cache.get(("u1", "call", 30))
    cache.set(("u3", "call", 30), ["c"])

    assert cache.get(("u2", "call", 30)) is None
    assert cache.get(("u1", "call", 30)) == ["a"]
    assert cache.get(("u3", "call", 30)) == ["c"]


def test_clear():
    cache = StatsCache(clock=FakeClock())
    cache.set(("u1", "call", 30), ["a"])

    cache.clear()

    assert len(cache) == 0
