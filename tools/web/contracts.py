"""Data contracts for website discovery and content fetching."""

from dataclasses import dataclass, field

from models.search import utc_timestamp


@dataclass(frozen=True)
class Suggestion:
    """A candidate website returned by a discovery backend."""

    url: str
    title: str
    snippet: str = ""
    domain: str = ""
    relevance_hint: float = 0.5
    source: str = ""


@dataclass(frozen=True)
class ContentMetadata:
    word_count: int = 0
    has_images: bool = False
    has_videos: bool = False
    author: str | None = None
    publish_date: str | None = None  # ISO 8601
    language: str | None = None


@dataclass(frozen=True)
class FetchedContent:
    """Extracted text and metadata for one page."""

    url: str
    title: str
    description: str
    body_text: str
    domain: str
    content_type: str = "webpage"
    metadata: ContentMetadata = field(default_factory=ContentMetadata)
    timestamp: str = field(default_factory=utc_timestamp)


@dataclass(frozen=True)
class FetchOptions:
    timeout_s: float = 30.0
    max_content_length: int = 50000
    include_metadata: bool = True
    max_concurrent: int = 5
