"""
Models package for search, analysis and unified provider response objects.
"""

from .analysis import AnalysisOptions, AnalysisResult, EnhancementOutcome
from .search import SearchFilters, SearchOptions, SearchProgress, SearchQuery, SearchResult
from .unified_response import ChatMessage, LLMRequest, NormalizedError, TokenUsage, UnifiedResponse

__all__ = [
    "AnalysisOptions",
    "AnalysisResult",
    "ChatMessage",
    "EnhancementOutcome",
    "LLMRequest",
    "NormalizedError",
    "SearchFilters",
    "SearchOptions",
    "SearchProgress",
    "SearchQuery",
    "SearchResult",
    "TokenUsage",
    "UnifiedResponse",
]
