from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

Phase = Literal["discovering", "scraping", "ranking", "analyzing", "complete"]
LoadStatus = Literal["loaded", "error"]

PHASE_ORDER: dict[str, int] = {
    "discovering": 0,
    "scraping": 1,
    "ranking": 2,
    "analyzing": 3,
    "complete": 4,
}


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class SearchFilters:
    domains: tuple[str, ...] = ()
    content_types: tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "domains", tuple(self.domains or ()))
        object.__setattr__(self, "content_types", tuple(self.content_types or ()))

    @property
    def is_empty(self) -> bool:
        return not self.domains and not self.content_types

    def to_dict(self) -> dict[str, list[str]]:
        return {"domains": list(self.domains), "content_types": list(self.content_types)}


@dataclass(frozen=True)
class SearchQuery:
    prompt: str
    max_results: int = 10
    filters: SearchFilters | None = None

    def fingerprint_payload(self) -> dict[str, Any]:
        filters = self.filters.to_dict() if self.filters and not self.filters.is_empty else None
        return {
            "prompt": " ".join(self.prompt.split()),
            "max_results": self.max_results,
            "filters": filters,
        }


@dataclass(frozen=True)
class SearchOptions:
    use_cache: bool = True
    cache_ttl_seconds: float = 300
    fetch_timeout_s: float = 30.0
    max_concurrent_scrapes: int = 5
    include_metadata: bool = True
    auto_analyze: bool = False


@dataclass(frozen=True)
class ResultMetadata:
    domain: str
    content_type: str
    load_status: LoadStatus

    def to_dict(self) -> dict[str, str]:
        return {
            "domain": self.domain,
            "content_type": self.content_type,
            "load_status": self.load_status,
        }


@dataclass(frozen=True)
class SearchResult:
    id: str
    url: str
    title: str
    description: str
    relevance_score: float
    confidence_score: float
    metadata: ResultMetadata
    timestamp: str = field(default_factory=utc_timestamp)

    @property
    def is_error(self) -> bool:
        return self.metadata.load_status == "error"

    def with_scores(self, relevance_score: float, confidence_score: float) -> "SearchResult":
        return SearchResult(
            id=self.id,
            url=self.url,
            title=self.title,
            description=self.description,
            relevance_score=relevance_score,
            confidence_score=confidence_score,
            metadata=self.metadata,
            timestamp=self.timestamp,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "url": self.url,
            "title": self.title,
            "description": self.description,
            "relevance_score": self.relevance_score,
            "confidence_score": self.confidence_score,
            "metadata": self.metadata.to_dict(),
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SearchResult":
        md = data.get("metadata") or {}
        return cls(
            id=data["id"],
            url=data["url"],
            title=data.get("title", ""),
            description=data.get("description", ""),
            relevance_score=float(data.get("relevance_score", 0.0)),
            confidence_score=float(data.get("confidence_score", 0.0)),
            metadata=ResultMetadata(
                domain=md.get("domain", ""),
                content_type=md.get("content_type", "webpage"),
                load_status=md.get("load_status", "loaded"),
            ),
            timestamp=data.get("timestamp") or utc_timestamp(),
        )


@dataclass(frozen=True)
class SearchProgress:
    phase: Phase
    progress: int
    message: str
    current_url: str | None = None
    warning: Exception | None = None

    @property
    def order_key(self) -> tuple[int, int]:
        return (PHASE_ORDER[self.phase], self.progress)
