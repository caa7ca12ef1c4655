import threading

from aqiops.cache import TTLCache, make_key


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_get_returns_stored_value():
    cache = TTLCache()
    cache.set("a", {"x": 1})
    assert cache.get("a") == {"x": 1}


def test_missing_key_is_none():
    assert TTLCache().get("nope") is None


def test_entries_expire_lazily():
    clock = FakeClock()
    cache = TTLCache(default_ttl=300, time_func=clock)
    cache.set("a", 1)
    clock.now += 299
    assert cache.get("a") == 1
    clock.now += 1
    assert cache.get("a") is None
    assert cache.stats()["keyCount"] == 0


def test_default_ttl_is_five_minutes():
    assert TTLCache().default_ttl == 300


def test_keys_are_case_insensitive():
    cache = TTLCache()
    cache.set("Bangkok", "reading")
    assert cache.get("bangkok") == "reading"
    assert cache.get("  BANGKOK ") == "reading"


def test_make_key_normalizes_text_and_numbers():
    assert make_key("city", "New  York", None, "USA") == make_key("CITY", "new york", "", "usa")
    assert make_key("nearest", 13.75, 100.5) == "nearest:13.7500:100.5000"


def test_stats_count_hits_and_misses():
    cache = TTLCache()
    cache.get("a")
    cache.set("a", 1)
    cache.get("a")
    cache.get("A")
    assert cache.stats() == {"hits": 2, "misses": 1, "keyCount": 1}


def test_clear_empties_the_cache():
    cache = TTLCache()
    cache.set("a", 1)
    cache.clear()
    assert cache.get("a") is None
    assert cache.stats()["keyCount"] == 0


def test_concurrent_writers_do_not_lose_updates():
    cache = TTLCache()

    def writer(prefix: str) -> None:
        for i in range(200):
            cache.set(f"{prefix}-{i}", i)

    threads = [threading.Thread(target=writer, args=(f"t{n}",)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert cache.stats()["keyCount"] == 8 * 200
    assert cache.get("t3-150") == 150
