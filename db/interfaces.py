"""
Storage contracts the pipeline depends on.

The orchestrator only talks to these protocols; ``db.memory`` and
``db.repository`` provide in-process and SQLAlchemy-backed implementations.
"""

from typing import Protocol, TypedDict

HISTORY_LIMIT = 50


class HistoryEntry(TypedDict):
    query: str
    timestamp: str


class CacheStore(Protocol):
    def get(self, key: str) -> bytes | None: ...

    def set(self, key: str, value: bytes, ttl_ms: int) -> None: ...

    def delete(self, key: str) -> None: ...

    def clear(self) -> None: ...


class HistoryStore(Protocol):
    def append(self, query: str) -> None: ...

    def list(self) -> list[HistoryEntry]: ...

    def clear(self) -> None: ...


class CredentialStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...

    def keys(self) -> list[str]: ...
