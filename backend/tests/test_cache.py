from backend.booking.services.cache import TTLCache


def test_ttl_cache_expires_entries():
    now = [100.0]
    cache = TTLCache(15, clock=lambda: now[0])

    cache.set("key", "value")
    now[0] += 15
    assert cache.get("key") == "value"
    now[0] += 0.5
    assert cache.get("key") is None
    assert len(cache) == 0


def test_ttl_cache_invalidate_and_clear():
    cache = TTLCache(15)
    cache.set(("2025-06-10", "innen"), 1)
    cache.set(("2025-06-10", "aussen"), 2)

    cache.invalidate(("2025-06-10", "innen"))
    assert cache.get(("2025-06-10", "innen")) is None
    assert cache.get(("2025-06-10", "aussen")) == 2

    cache.clear()
    assert len(cache) == 0
