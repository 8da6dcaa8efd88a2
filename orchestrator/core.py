"""
SearchOrchestrator - the four-phase search pipeline.

discovering -> scraping -> ranking -> complete, with an optional analyzing
step between ranking and complete when auto-analysis is on.

Key guarantees:
- Invalid queries fail before any network activity
- A cached result set short-circuits the run with a single progress event
- Per-page failures become error results; only pipeline-level failures raise
- A cancelled run always ends in SearchCancelled and caches nothing
"""

import asyncio
import hashlib
import json
from collections.abc import Callable

from db.interfaces import HistoryEntry, HistoryStore
from models.errors import (
    AnalysisFailed,
    ContentError,
    DiscoveryFailed,
    InvalidQuery,
    PipelineError,
    SearchCancelled,
    SearchError,
)
from models.search import (
    ResultMetadata,
    SearchFilters,
    SearchOptions,
    SearchProgress,
    SearchQuery,
    SearchResult,
)
from orchestrator.analysis_engine import AnalysisEngine
from tools.web.cache import ResultCache, make_key
from tools.web.content_fetcher import ContentFetcher
from tools.web.contracts import FetchedContent, FetchOptions, Suggestion
from utils.cancellation import CancellationToken
from utils.error_handler import ErrorHandler
from utils.logger import bind, get_logger
from utils.retry import RetryPolicy, retry_async
from utils.validation import extract_domain, validate_query

logger = get_logger(__name__)

ProgressSink = Callable[[SearchProgress], None]

CONTENT_TYPE_KEYWORDS: dict[str, tuple[str, ...]] = {
    "article": ("article", "blog", "news"),
    "documentation": ("docs", "documentation", "wiki"),
    "tutorial": ("tutorial", "guide", "how-to"),
}

ERROR_CONFIDENCE = 0.3


# ============================================================================
# Pure helpers
# ============================================================================


def compute_fingerprint(query: SearchQuery) -> str:
    return make_key(json.dumps(query.fingerprint_payload(), sort_keys=True))


def result_id(url: str) -> str:
    return hashlib.sha256(url.encode("utf-8")).hexdigest()[:12]


def apply_filters(suggestions: list[Suggestion], filters: SearchFilters | None) -> list[Suggestion]:
    if filters is None or filters.is_empty:
        return list(suggestions)

    kept = []
    for suggestion in suggestions:
        domain = suggestion.domain or extract_domain(suggestion.url)
        if filters.domains and not any(d.lower() in domain.lower() for d in filters.domains):
            continue
        if filters.content_types:
            url = suggestion.url.lower()
            matched = False
            for content_type in filters.content_types:
                keywords = CONTENT_TYPE_KEYWORDS.get(content_type)
                # Unknown content types do not restrict anything
                if keywords is None or any(k in url for k in keywords):
                    matched = True
                    break
            if not matched:
                continue
        kept.append(suggestion)
    return kept


def text_relevance(prompt: str, text: str) -> float:
    """Fraction of query terms longer than two characters found in ``text``."""
    terms = [t for t in prompt.lower().split() if len(t) > 2]
    if not terms:
        return 0.0
    haystack = text.lower()
    return sum(1 for t in terms if t in haystack) / len(terms)


def content_quality(content: FetchedContent) -> float:
    score = 0.5
    body_length = len(content.body_text)
    if body_length > 500:
        score += 0.1
    if body_length > 1000:
        score += 0.1
    if content.metadata.word_count > 200:
        score += 0.1
    if len(content.title) > 5:
        score += 0.1
    if len(content.description) > 20:
        score += 0.1
    if content.metadata.author:
        score += 0.05
    if content.metadata.publish_date:
        score += 0.05
    return min(1.0, score)


def content_confidence(content: FetchedContent, hint: float) -> float:
    score = 0.5
    if len(content.title) > 10:
        score += 0.1
    if len(content.description) > 50:
        score += 0.1
    if len(content.body_text) > 200:
        score += 0.1
    if content.metadata.word_count > 100:
        score += 0.1
    score += hint * 0.2
    return min(1.0, score)


def build_result(
    suggestion: Suggestion, outcome: FetchedContent | ContentError, prompt: str
) -> SearchResult:
    domain = suggestion.domain or extract_domain(suggestion.url)

    if isinstance(outcome, ContentError):
        return SearchResult(
            id=result_id(suggestion.url),
            url=suggestion.url,
            title=suggestion.title,
            description=suggestion.snippet or f"Content could not be loaded ({outcome.reason})",
            relevance_score=suggestion.relevance_hint * 0.5,
            confidence_score=ERROR_CONFIDENCE,
            metadata=ResultMetadata(domain=domain, content_type="error", load_status="error"),
        )

    searchable = f"{outcome.title} {outcome.description} {outcome.body_text}"
    relevance = min(
        1.0,
        0.4 * text_relevance(prompt, searchable)
        + 0.4 * suggestion.relevance_hint
        + 0.2 * content_quality(outcome),
    )
    return SearchResult(
        id=result_id(suggestion.url),
        url=suggestion.url,
        title=outcome.title if outcome.title != "Untitled" else (suggestion.title or outcome.title),
        description=outcome.description or suggestion.snippet,
        relevance_score=relevance,
        confidence_score=content_confidence(outcome, suggestion.relevance_hint),
        metadata=ResultMetadata(domain=domain, content_type=outcome.content_type, load_status="loaded"),
    )


def sort_results(results: list[SearchResult]) -> list[SearchResult]:
    return sorted(results, key=lambda r: r.relevance_score, reverse=True)


class _ProgressReporter:
    """Forwards progress to the caller's sink in strictly increasing order."""

    def __init__(self, sink: ProgressSink | None, fingerprint: str):
        self._sink = sink
        self._fingerprint = fingerprint
        self._last: tuple[int, int] | None = None
        self.phase = "discovering"

    def emit(
        self,
        phase: str,
        progress: int,
        message: str,
        *,
        current_url: str | None = None,
        warning: Exception | None = None,
    ) -> None:
        event = SearchProgress(phase, progress, message, current_url=current_url, warning=warning)
        self.phase = phase
        if self._last is not None and event.order_key <= self._last:
            return
        self._last = event.order_key
        if self._sink is None:
            return
        try:
            self._sink(event)
        except Exception as e:
            logger.warning(
                "Progress listener raised",
                extra={"extra_fields": {"fingerprint": self._fingerprint, "phase": phase, "error": str(e)}},
            )


# ============================================================================
# Orchestrator
# ============================================================================


class SearchOrchestrator:
    def __init__(
        self,
        fetcher: ContentFetcher,
        *,
        result_cache: ResultCache,
        history: HistoryStore,
        analysis_engine: AnalysisEngine | None = None,
        error_handler: ErrorHandler | None = None,
        retry_policy: RetryPolicy | None = None,
        default_options: SearchOptions | None = None,
        max_content_length: int = 50000,
    ):
        self._fetcher = fetcher
        self._result_cache = result_cache
        self._history = history
        self._analysis_engine = analysis_engine
        self._error_handler = error_handler or ErrorHandler()
        self._retry_policy = retry_policy or RetryPolicy()
        self.default_options = default_options or SearchOptions()
        self._max_content_length = max_content_length

        # fingerprint -> token of the most recent run for that query
        self._active: dict[str, CancellationToken] = {}

        self._total_searches = 0
        self._cache_hits = 0
        self._cache_misses = 0
        self._completed_runs = 0
        self._total_results = 0

    async def run(
        self,
        query: SearchQuery,
        options: SearchOptions | None = None,
        on_progress: ProgressSink | None = None,
    ) -> list[SearchResult]:
        """
        Execute a search.

        Args:
            query: Prompt, result budget and optional filters
            options: Per-run options (defaults to ``default_options``)
            on_progress: Receives SearchProgress events; its exceptions are logged and ignored

        Returns:
            list[SearchResult]: Sorted by relevance_score, highest first

        Raises:
            InvalidQuery: Before any network activity
            SearchCancelled: The run was cancelled via ``cancel``
            DiscoveryFailed: No website could be discovered
            PipelineError: Any other pipeline-level failure
        """
        options = options or self.default_options
        errors = validate_query(query)
        if errors:
            raise InvalidQuery(errors)

        fingerprint = compute_fingerprint(query)
        run_log = bind(logger, fingerprint=fingerprint)
        reporter = _ProgressReporter(on_progress, fingerprint)
        self._total_searches += 1

        if options.use_cache:
            cached = await asyncio.to_thread(self._result_cache.get, fingerprint)
            if cached is not None:
                self._cache_hits += 1
                run_log.info("Search served from cache", extra={"extra_fields": {"results": len(cached)}})
                reporter.emit("complete", 100, "Results loaded from cache")
                return cached
            self._cache_misses += 1

        token = CancellationToken()
        self._active[fingerprint] = token
        run_log.info(
            "Search started",
            extra={"extra_fields": {"max_results": query.max_results, "auto_analyze": options.auto_analyze}},
        )

        try:
            return await self._execute(query, options, fingerprint, token, reporter)
        except SearchCancelled:
            run_log.info("Search cancelled")
            raise
        except SearchError as e:
            if token.cancelled:
                raise SearchCancelled() from e
            self._error_handler.handle(e, {"fingerprint": fingerprint, "phase": reporter.phase})
            raise
        except Exception as e:
            if token.cancelled:
                raise SearchCancelled() from e
            self._error_handler.handle(e, {"fingerprint": fingerprint, "phase": reporter.phase})
            raise PipelineError(f"Search failed: {e}") from e
        finally:
            if self._active.get(fingerprint) is token:
                del self._active[fingerprint]

    async def _execute(
        self,
        query: SearchQuery,
        options: SearchOptions,
        fingerprint: str,
        token: CancellationToken,
        reporter: _ProgressReporter,
    ) -> list[SearchResult]:
        # Phase 1: discovery
        token.raise_if_cancelled()
        reporter.emit("discovering", 0, f'Discovering websites for "{query.prompt}"')
        suggestions = await retry_async(
            lambda: self._fetcher.discover(query.prompt, query.max_results),
            policy=self._retry_policy,
            before_attempt=lambda _attempt: token.raise_if_cancelled(),
            label="Discovery",
        )
        token.raise_if_cancelled()
        if not suggestions:
            raise DiscoveryFailed("No websites discovered for this query")
        suggestions = apply_filters(suggestions, query.filters)

        # Phase 2: scraping
        fetch_options = FetchOptions(
            timeout_s=options.fetch_timeout_s,
            max_content_length=self._max_content_length,
            include_metadata=options.include_metadata,
            max_concurrent=options.max_concurrent_scrapes,
        )
        reporter.emit("scraping", 10, f"Fetching content from {len(suggestions)} websites")

        def on_batch(done: int, total: int) -> None:
            reporter.emit("scraping", 10 + int(60 * done / total), f"Fetched {done} of {total} websites")

        outcomes = await self._fetcher.fetch_many(
            [s.url for s in suggestions], fetch_options, cancel_token=token, on_batch=on_batch
        )
        token.raise_if_cancelled()

        # Phase 3: ranking
        reporter.emit("ranking", 70, "Analyzing and ranking results")
        results = sort_results(
            [build_result(s, o, query.prompt) for s, o in zip(suggestions, outcomes)]
        )

        warning = None
        if options.auto_analyze and self._analysis_engine is not None and results:
            reporter.emit("analyzing", 85, "Enhancing results with AI analysis")
            results, warning = await self._auto_analyze(results, query.prompt, fingerprint)
            token.raise_if_cancelled()

        # Phase 4: complete
        if options.use_cache and results:
            await asyncio.to_thread(self._result_cache.set, fingerprint, results, options.cache_ttl_seconds)
        await asyncio.to_thread(self._history.append, query.prompt)
        self._completed_runs += 1
        self._total_results += len(results)

        failed = sum(1 for r in results if r.is_error)
        bind(logger, fingerprint=fingerprint).info(
            "Search complete", extra={"extra_fields": {"results": len(results), "failed_pages": failed}}
        )
        reporter.emit("complete", 100, f"Found {len(results)} results", warning=warning)
        return results

    async def _auto_analyze(
        self, results: list[SearchResult], prompt: str, fingerprint: str
    ) -> tuple[list[SearchResult], AnalysisFailed | None]:
        """Enhance every result, including pages that failed to load (scored from their snippet)."""
        try:
            outcome = await self._analysis_engine.enhance(results, prompt)
        except Exception as e:
            warning = AnalysisFailed(f"Auto-analysis failed: {e}")
            self._error_handler.handle(warning, {"fingerprint": fingerprint, "cause": type(e).__name__})
            return results, warning

        if outcome.all_failed:
            warning = AnalysisFailed(
                "Auto-analysis failed for every result", failed_urls=outcome.failed_urls
            )
            self._error_handler.handle(warning, {"fingerprint": fingerprint})
            return results, warning

        return sort_results(outcome.results), None

    # ------------------------------------------------------------------
    # Run management
    # ------------------------------------------------------------------

    def cancel(self, query: SearchQuery) -> bool:
        """Signal the in-flight run for ``query``; False if none is running."""
        token = self._active.get(compute_fingerprint(query))
        if token is None:
            return False
        token.cancel()
        return True

    def is_active(self, query: SearchQuery) -> bool:
        return compute_fingerprint(query) in self._active

    def active_searches(self) -> list[str]:
        return list(self._active)

    # ------------------------------------------------------------------
    # Cache, history, statistics
    # ------------------------------------------------------------------

    def get_cached_results(self, query: SearchQuery) -> list[SearchResult] | None:
        return self._result_cache.get(compute_fingerprint(query))

    def clear_cache(self) -> None:
        self._result_cache.clear()

    def get_history(self) -> list[HistoryEntry]:
        return self._history.list()

    def clear_history(self) -> None:
        self._history.clear()

    def statistics(self) -> dict[str, float | int]:
        lookups = self._cache_hits + self._cache_misses
        return {
            "total_searches": self._total_searches,
            "cache_hits": self._cache_hits,
            "cache_misses": self._cache_misses,
            "cache_hit_rate": self._cache_hits / lookups if lookups else 0.0,
            "average_results": (
                self._total_results / self._completed_runs if self._completed_runs else 0.0
            ),
            "active_searches": len(self._active),
        }

    async def aclose(self) -> None:
        await self._fetcher.aclose()
        if self._analysis_engine is not None:
            await self._analysis_engine.aclose()
