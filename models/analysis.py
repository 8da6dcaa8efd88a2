from dataclasses import dataclass, field
from typing import Any

from models.search import SearchResult

FALLBACK_RELEVANCE = 0.5
FALLBACK_CONFIDENCE = 0.3
FALLBACK_DESCRIPTION = "Analysis failed - using fallback scoring"


def clamp_score(value: Any, default: float = 0.5) -> float:
    try:
        score = float(value)
    except (TypeError, ValueError):
        return default
    if score != score:  # NaN
        return default
    return max(0.0, min(1.0, score))


@dataclass(frozen=True)
class AnalysisResult:
    relevance_score: float
    confidence_score: float
    description: str
    reasoning: str | None = None

    def __post_init__(self):
        object.__setattr__(self, "relevance_score", clamp_score(self.relevance_score))
        object.__setattr__(self, "confidence_score", clamp_score(self.confidence_score))

    @classmethod
    def fallback(cls, reasoning: str | None = None) -> "AnalysisResult":
        return cls(
            relevance_score=FALLBACK_RELEVANCE,
            confidence_score=FALLBACK_CONFIDENCE,
            description=FALLBACK_DESCRIPTION,
            reasoning=reasoning,
        )


@dataclass(frozen=True)
class AnalysisOptions:
    use_cache: bool = True
    include_reasoning: bool = True
    max_content_length: int = 4000
    temperature: float = 0.3
    provider: str | None = None

    @property
    def max_tokens(self) -> int:
        return 800 if self.include_reasoning else 400


@dataclass(frozen=True)
class BatchProgress:
    completed: int
    total: int
    current_url: str | None
    errors: int


@dataclass(frozen=True)
class BatchItem:
    """One slot of a batch analysis: either an analysis or the error it raised."""

    url: str
    analysis: AnalysisResult | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class EnhancementOutcome:
    results: list[SearchResult]
    failed_urls: list[str] = field(default_factory=list)

    @property
    def all_failed(self) -> bool:
        return bool(self.results) and len(self.failed_urls) == len(self.results)


@dataclass(frozen=True)
class AnalysisMetrics:
    total_analyzed: int
    cache_hits: int
    cache_hit_rate: float
    average_relevance: float
    average_confidence: float
    average_response_time_ms: float
    cache_size: int
