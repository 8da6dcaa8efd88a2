"""TTL caches for search result sets and analysis results."""

import hashlib
import json
import threading
import time
from collections.abc import Callable
from typing import Any

from db.interfaces import CacheStore
from models.search import SearchResult
from utils.logger import get_logger

logger = get_logger(__name__)

RESULT_KEY_PREFIX = "search_"


def make_key(text: str) -> str:
    """Generate cache key from text using sha256 hash."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:16]


class InMemoryTTLCache:
    """
    Thread-safe in-memory cache with TTL (Time To Live).

    Uses sha256 hash of text as key (first 16 chars) and threading.Lock
    for concurrent access safety. When the cache grows past
    ``max_entries``, expired entries are swept on the next write.
    """

    def __init__(
        self,
        ttl_seconds: float,
        *,
        max_entries: int = 1000,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize cache with TTL.

        Args:
            ttl_seconds: Time to live in seconds for cached entries
            max_entries: Size above which expired entries are swept
            clock: Source of the current time in seconds
        """
        self._cache: dict[str, tuple[Any, float]] = {}
        self._lock = threading.Lock()
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock

    def get(self, text: str) -> Any | None:
        """
        Get cached value if exists and not expired.

        Args:
            text: Text to use as cache key

        Returns:
            Cached value if exists and valid, None otherwise
        """
        key = make_key(text)
        with self._lock:
            if key in self._cache:
                value, expiry = self._cache[key]
                if self._clock() < expiry:
                    return value
                # Expired - remove it
                del self._cache[key]
            return None

    def set(self, text: str, value: Any):
        """
        Store value in cache with TTL.

        Args:
            text: Text to use as cache key
            value: Value to cache
        """
        key = make_key(text)
        with self._lock:
            self._cache[key] = (value, self._clock() + self._ttl)
            if len(self._cache) > self._max_entries:
                self._sweep_locked()

    def _sweep_locked(self) -> None:
        now = self._clock()
        expired = [k for k, (_, expiry) in self._cache.items() if now >= expiry]
        for key in expired:
            del self._cache[key]

    def clear(self):
        """Clear all cached entries."""
        with self._lock:
            self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)


class ResultCache:
    """
    Search result sets keyed by query fingerprint.

    Entries are JSON envelopes ``{"created_at", "ttl", "results"}`` in a
    CacheStore under ``search_<fingerprint>``. The envelope's own timestamp
    decides freshness, so a stale entry is evicted on read even if the store
    has no expiry of its own.
    """

    def __init__(self, store: CacheStore, *, clock: Callable[[], float] = time.time):
        self._store = store
        self._clock = clock

    @staticmethod
    def _key(fingerprint: str) -> str:
        return f"{RESULT_KEY_PREFIX}{fingerprint}"

    def get(self, fingerprint: str) -> list[SearchResult] | None:
        key = self._key(fingerprint)
        raw = self._store.get(key)
        if raw is None:
            return None

        try:
            envelope = json.loads(raw.decode("utf-8"))
            created_at = float(envelope["created_at"])
            ttl = float(envelope["ttl"])
            results = [SearchResult.from_dict(item) for item in envelope["results"]]
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(
                "Discarding unreadable cache entry",
                extra={"extra_fields": {"key": key, "error": str(e)}},
            )
            self._store.delete(key)
            return None

        if self._clock() - created_at > ttl:
            self._store.delete(key)
            return None
        return results

    def set(self, fingerprint: str, results: list[SearchResult], ttl_seconds: float) -> None:
        envelope = {
            "created_at": self._clock(),
            "ttl": ttl_seconds,
            "results": [r.to_dict() for r in results],
        }
        self._store.set(
            self._key(fingerprint),
            json.dumps(envelope).encode("utf-8"),
            int(ttl_seconds * 1000),
        )

    def clear(self) -> None:
        self._store.clear()
