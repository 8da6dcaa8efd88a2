"""
Database package for the search pipeline.
Provides the store protocols, in-memory stores, and SQLAlchemy-backed stores.
"""

from db.engine import create_db_engine, get_database_url
from db.interfaces import HISTORY_LIMIT, CacheStore, CredentialStore, HistoryEntry, HistoryStore
from db.memory import InMemoryCacheStore, InMemoryCredentialStore, InMemoryHistoryStore
from db.repository import SqlCacheStore, SqlCredentialStore, SqlHistoryStore
from db.tables import create_tables, metadata

__all__ = [
    "HISTORY_LIMIT",
    "CacheStore",
    "CredentialStore",
    "HistoryEntry",
    "HistoryStore",
    "InMemoryCacheStore",
    "InMemoryCredentialStore",
    "InMemoryHistoryStore",
    "SqlCacheStore",
    "SqlCredentialStore",
    "SqlHistoryStore",
    "create_db_engine",
    "create_tables",
    "get_database_url",
    "metadata",
]
