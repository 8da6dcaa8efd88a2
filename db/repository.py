"""
Repository layer for the persistent stores.
Cache, history and credential stores using SQLAlchemy Core over the tables in db.tables.

Design principles:
- Each call runs in its own short transaction (engine.begin())
- Uses SQLAlchemy Core (insert/select/update/delete) not ORM
- Expired cache rows are removed lazily on read
"""

import time
from collections.abc import Callable

from sqlalchemy import Engine, delete, desc, insert, select, update

from db.interfaces import HISTORY_LIMIT, HistoryEntry
from db.tables import cache_entries, create_tables, credentials, search_history
from models.search import utc_timestamp

# Import logger
from utils.logger import get_logger

logger = get_logger(__name__)


# ============================================================================
# CACHE
# ============================================================================


class SqlCacheStore:
    def __init__(self, engine: Engine, clock: Callable[[], float] = time.time):
        self._engine = engine
        self._clock = clock
        create_tables(engine)

    def get(self, key: str) -> bytes | None:
        """
        Read a cache entry.

        Args:
            key: Cache key

        Returns:
            bytes | None: Stored payload, or None when missing or expired
        """
        with self._engine.begin() as conn:
            row = conn.execute(
                select(cache_entries.c.value, cache_entries.c.expires_at).where(
                    cache_entries.c.key == key
                )
            ).first()
            if row is None:
                return None
            if self._clock() > row.expires_at:
                conn.execute(delete(cache_entries).where(cache_entries.c.key == key))
                logger.debug("Evicted expired cache row", extra={"extra_fields": {"key": key}})
                return None
            return bytes(row.value)

    def set(self, key: str, value: bytes, ttl_ms: int) -> None:
        """Insert or overwrite a cache entry expiring ``ttl_ms`` from now."""
        expires_at = self._clock() + ttl_ms / 1000
        with self._engine.begin() as conn:
            updated = conn.execute(
                update(cache_entries)
                .where(cache_entries.c.key == key)
                .values(value=value, expires_at=expires_at)
            )
            if updated.rowcount == 0:
                conn.execute(
                    insert(cache_entries).values(key=key, value=value, expires_at=expires_at)
                )

    def delete(self, key: str) -> None:
        with self._engine.begin() as conn:
            conn.execute(delete(cache_entries).where(cache_entries.c.key == key))

    def clear(self) -> None:
        with self._engine.begin() as conn:
            conn.execute(delete(cache_entries))


# ============================================================================
# SEARCH HISTORY
# ============================================================================


class SqlHistoryStore:
    def __init__(self, engine: Engine, limit: int = HISTORY_LIMIT):
        self._engine = engine
        self._limit = limit
        create_tables(engine)

    def append(self, query: str) -> None:
        """
        Record a query as the most recent history entry.

        An existing entry for the same query is replaced, and rows beyond the
        retention limit are dropped.
        """
        with self._engine.begin() as conn:
            conn.execute(delete(search_history).where(search_history.c.query == query))
            conn.execute(insert(search_history).values(query=query, timestamp=utc_timestamp()))

            keep_ids = (
                select(search_history.c.id)
                .order_by(desc(search_history.c.id))
                .limit(self._limit)
                .scalar_subquery()
            )
            conn.execute(delete(search_history).where(search_history.c.id.not_in(keep_ids)))

    def list(self) -> list[HistoryEntry]:
        with self._engine.connect() as conn:
            rows = conn.execute(
                select(search_history.c.query, search_history.c.timestamp)
                .order_by(desc(search_history.c.id))
                .limit(self._limit)
            ).all()
        return [{"query": row.query, "timestamp": row.timestamp} for row in rows]

    def clear(self) -> None:
        with self._engine.begin() as conn:
            conn.execute(delete(search_history))


# ============================================================================
# CREDENTIALS
# ============================================================================


class SqlCredentialStore:
    def __init__(self, engine: Engine):
        self._engine = engine
        create_tables(engine)

    def get(self, key: str) -> str | None:
        with self._engine.connect() as conn:
            return conn.execute(
                select(credentials.c.value).where(credentials.c.key == key)
            ).scalar_one_or_none()

    def set(self, key: str, value: str) -> None:
        with self._engine.begin() as conn:
            updated = conn.execute(
                update(credentials).where(credentials.c.key == key).values(value=value)
            )
            if updated.rowcount == 0:
                conn.execute(insert(credentials).values(key=key, value=value))

    def remove(self, key: str) -> None:
        with self._engine.begin() as conn:
            conn.execute(delete(credentials).where(credentials.c.key == key))

    def keys(self) -> list[str]:
        with self._engine.connect() as conn:
            return sorted(conn.execute(select(credentials.c.key)).scalars().all())
