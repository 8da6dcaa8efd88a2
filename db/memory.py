"""In-process store implementations (the default when DATABASE_URL is unset)."""

import threading
import time
from collections.abc import Callable

from db.interfaces import HISTORY_LIMIT, HistoryEntry
from models.search import utc_timestamp


class InMemoryCacheStore:
    def __init__(self, clock: Callable[[], float] = time.time):
        self._entries: dict[str, tuple[bytes, float]] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def get(self, key: str) -> bytes | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() > expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: bytes, ttl_ms: int) -> None:
        with self._lock:
            self._entries[key] = (value, self._clock() + ttl_ms / 1000)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class InMemoryHistoryStore:
    """Most recent first, one entry per query, capped at ``limit``."""

    def __init__(self, limit: int = HISTORY_LIMIT):
        self._entries: list[HistoryEntry] = []
        self._limit = limit
        self._lock = threading.Lock()

    def append(self, query: str) -> None:
        with self._lock:
            self._entries = [e for e in self._entries if e["query"] != query]
            self._entries.insert(0, {"query": query, "timestamp": utc_timestamp()})
            del self._entries[self._limit :]

    def list(self) -> list[HistoryEntry]:
        with self._lock:
            return [dict(e) for e in self._entries]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


class InMemoryCredentialStore:
    def __init__(self, initial: dict[str, str] | None = None):
        self._values: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def remove(self, key: str) -> None:
        self._values.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self._values)
