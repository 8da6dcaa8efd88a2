"""Web discovery, fetching and extraction for the search pipeline."""

from .cache import InMemoryTTLCache, ResultCache
from .content_fetcher import ContentFetcher
from .contracts import ContentMetadata, FetchedContent, FetchOptions, Suggestion
from .discovery import BraveDiscovery, DiscoveryBackend, DuckDuckGoDiscovery, TavilyDiscovery

__all__ = [
    "BraveDiscovery",
    "ContentFetcher",
    "ContentMetadata",
    "DiscoveryBackend",
    "DuckDuckGoDiscovery",
    "FetchOptions",
    "FetchedContent",
    "InMemoryTTLCache",
    "ResultCache",
    "Suggestion",
    "TavilyDiscovery",
]
