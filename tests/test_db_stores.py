"""
Tests for the cache, history and credential stores.

Each contract test runs against the in-memory store and the SQLAlchemy store
backed by an in-memory SQLite engine.
"""

import pytest

from db.engine import create_db_engine
from db.memory import InMemoryCacheStore, InMemoryCredentialStore, InMemoryHistoryStore
from db.repository import SqlCacheStore, SqlCredentialStore, SqlHistoryStore


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def engine():
    return create_db_engine("sqlite://")


@pytest.fixture(params=["memory", "sql"])
def clocked_cache(request, engine):
    clock = FakeClock()
    if request.param == "memory":
        return InMemoryCacheStore(clock=clock), clock
    return SqlCacheStore(engine, clock=clock), clock


@pytest.fixture(params=["memory", "sql"])
def history_factory(request, engine):
    def build(limit):
        if request.param == "memory":
            return InMemoryHistoryStore(limit=limit)
        return SqlHistoryStore(engine, limit=limit)

    return build


@pytest.fixture(params=["memory", "sql"])
def credential_store(request, engine):
    if request.param == "memory":
        return InMemoryCredentialStore()
    return SqlCredentialStore(engine)


@pytest.mark.unit
def test_cache_set_get_and_expire(clocked_cache):
    store, clock = clocked_cache
    store.set("k", b"payload", ttl_ms=5000)

    assert store.get("k") == b"payload"
    clock.now += 6
    assert store.get("k") is None


@pytest.mark.unit
def test_cache_overwrite_delete_and_clear(clocked_cache):
    store, _clock = clocked_cache
    store.set("k", b"one", ttl_ms=5000)
    store.set("k", b"two", ttl_ms=5000)
    store.set("j", b"three", ttl_ms=5000)

    assert store.get("k") == b"two"
    store.delete("k")
    assert store.get("k") is None
    store.clear()
    assert store.get("j") is None


@pytest.mark.unit
def test_history_is_most_recent_first_and_deduplicated(history_factory):
    history = history_factory(limit=50)
    history.append("rust ownership")
    history.append("python asyncio")
    history.append("rust ownership")

    assert [e["query"] for e in history.list()] == ["rust ownership", "python asyncio"]
    assert all(e["timestamp"].endswith("Z") for e in history.list())


@pytest.mark.unit
def test_history_is_capped(history_factory):
    history = history_factory(limit=3)
    for i in range(5):
        history.append(f"query {i}")

    assert [e["query"] for e in history.list()] == ["query 4", "query 3", "query 2"]
    history.clear()
    assert history.list() == []


@pytest.mark.unit
def test_credentials_round_trip(credential_store):
    credential_store.set("api_key_openai", "sk-one")
    credential_store.set("api_key_openai", "sk-two")
    credential_store.set("api_key_anthropic", "sk-ant-x")

    assert credential_store.get("api_key_openai") == "sk-two"
    assert credential_store.keys() == ["api_key_anthropic", "api_key_openai"]
    credential_store.remove("api_key_openai")
    assert credential_store.get("api_key_openai") is None


@pytest.mark.unit
def test_sql_stores_share_one_in_memory_database(engine):
    SqlHistoryStore(engine).append("shared")

    assert [e["query"] for e in SqlHistoryStore(engine).list()] == ["shared"]
