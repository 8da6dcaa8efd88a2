from db.memory import InMemoryCacheStore
from models.search import ResultMetadata, SearchResult
from tools.web.cache import InMemoryTTLCache, ResultCache, make_key


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def _result(url: str, score: float) -> SearchResult:
    return SearchResult(
        id=make_key(url)[:12],
        url=url,
        title="Title",
        description="Description",
        relevance_score=score,
        confidence_score=0.7,
        metadata=ResultMetadata(domain="example.com", content_type="article", load_status="loaded"),
    )


class TestResultCache:
    def test_round_trip_preserves_results(self):
        clock = FakeClock()
        cache = ResultCache(InMemoryCacheStore(clock=clock), clock=clock)
        results = [_result("https://example.com/a", 0.9), _result("https://example.com/b", 0.4)]

        cache.set("fp1", results, ttl_seconds=300)

        assert cache.get("fp1") == results
        assert cache.get("other") is None

    def test_stale_entry_is_evicted_on_read(self):
        clock = FakeClock()
        store = InMemoryCacheStore(clock=FakeClock())  # store never expires on its own
        cache = ResultCache(store, clock=clock)
        cache.set("fp1", [_result("https://example.com/a", 0.9)], ttl_seconds=60)

        clock.now += 61

        assert cache.get("fp1") is None
        assert len(store) == 0

    def test_unreadable_entry_is_discarded(self):
        store = InMemoryCacheStore()
        store.set("search_fp1", b"not json", 60_000)
        cache = ResultCache(store)

        assert cache.get("fp1") is None
        assert store.get("search_fp1") is None

    def test_clear(self):
        cache = ResultCache(InMemoryCacheStore())
        cache.set("fp1", [_result("https://example.com/a", 0.5)], ttl_seconds=60)

        cache.clear()

        assert cache.get("fp1") is None


class TestInMemoryTTLCache:
    def test_entries_expire(self):
        clock = FakeClock()
        cache = InMemoryTTLCache(ttl_seconds=10, clock=clock)
        cache.set("https://example.com:rust", "value")

        assert cache.get("https://example.com:rust") == "value"
        clock.now += 11
        assert cache.get("https://example.com:rust") is None

    def test_sweeps_expired_entries_when_full(self):
        clock = FakeClock()
        cache = InMemoryTTLCache(ttl_seconds=10, max_entries=2, clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)
        clock.now += 11
        cache.set("c", 3)

        assert len(cache) == 1
        assert cache.get("c") == 3

    def test_make_key_is_short_and_stable(self):
        assert make_key("rust") == make_key("rust")
        assert len(make_key("rust")) == 16
