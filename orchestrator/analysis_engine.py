"""
LLM-backed relevance analysis.

The engine asks the active provider to score a page against a query and
return a small JSON verdict. Parse failures degrade to a fixed fallback
verdict; provider errors (rate limits, outages) propagate to the caller.
"""

import asyncio
import re
import time
from collections import Counter, deque
from collections.abc import Callable

from models.analysis import (
    AnalysisMetrics,
    AnalysisOptions,
    AnalysisResult,
    BatchItem,
    BatchProgress,
    EnhancementOutcome,
)
from models.search import SearchResult
from models.unified_response import LLMRequest
from orchestrator.provider_gateway import ProviderGateway
from tools.web.cache import InMemoryTTLCache
from tools.web.contracts import ContentMetadata, FetchedContent
from utils.logger import get_logger
from utils.response_parser import parse_analysis
from utils.validation import sanitize_input

logger = get_logger(__name__)

METRIC_WINDOW = 100
CACHE_MAX_ENTRIES = 1000
SUMMARY_SOURCE_CHARS = 2000

SYSTEM_PROMPT = """
You are an expert content analyst specializing in web content relevance assessment. Your task is to analyze web content and determine how relevant it is to user search queries.

You should consider:
- Direct keyword matches between query and content
- Semantic similarity and related concepts
- Content quality and depth
- Authoritative sources and credible information
- User intent behind the search query

Always respond with valid JSON in the exact format requested.
""".strip()

SUMMARY_SYSTEM_PROMPT = (
    "You are a helpful assistant that creates concise, informative summaries of web content."
)
TOPICS_SYSTEM_PROMPT = (
    "You are a helpful assistant that identifies key topics and themes in web content."
)

_NON_WORD_RE = re.compile(r"[^\w\s]")
_BULLET_RE = re.compile(r"^[-*•]\s*")


def truncate_content(content: str, max_length: int) -> str:
    """Cut at a sentence end in the last fifth of the budget, else hard-cut with '...'."""
    if len(content) <= max_length:
        return content
    truncated = content[:max_length]
    last_sentence = truncated.rfind(".")
    if last_sentence > max_length * 0.8:
        return truncated[: last_sentence + 1]
    return truncated + "..."


def build_analysis_prompt(
    query: str, title: str, description: str, content: str, include_reasoning: bool
) -> str:
    fields = [
        '  "relevanceScore": <number between 0 and 1>,',
        '  "confidenceScore": <number between 0 and 1>,',
        '  "description": "<brief description of why this content is relevant>"'
        + ("," if include_reasoning else ""),
    ]
    guidelines = [
        "- relevanceScore: How well the content matches the search query "
        "(0 = not relevant, 1 = highly relevant)",
        "- confidenceScore: How confident you are in your relevance assessment "
        "(0 = low confidence, 1 = high confidence)",
        "- description: A brief, helpful description of the content's relevance to the query",
    ]
    if include_reasoning:
        fields.append('  "reasoning": "<detailed explanation of your analysis>"')
        guidelines.append("- reasoning: Detailed explanation of your scoring and analysis process")

    return "\n".join(
        [
            f'Analyze the relevance of this web content to the search query: "{sanitize_input(query)}"',
            "",
            f"Title: {sanitize_input(title)}",
            f"Description: {sanitize_input(description)}",
            f"Content: {sanitize_input(content)}",
            "",
            "Please provide your analysis in the following JSON format:",
            "{",
            *fields,
            "}",
            "",
            "Guidelines:",
            *guidelines,
            "",
            "Respond only with valid JSON.",
        ]
    )


def extract_keywords(text: str, max_keywords: int) -> list[str]:
    words = [w for w in _NON_WORD_RE.sub(" ", text.lower()).split() if len(w) > 3]
    return [word for word, _ in Counter(words).most_common(max_keywords)]


class AnalysisEngine:
    def __init__(
        self,
        gateway: ProviderGateway,
        *,
        cache: InMemoryTTLCache | None = None,
        cache_ttl_seconds: float = 3600,
        batch_delay_s: float = 0.1,
        timer: Callable[[], float] = time.perf_counter,
    ):
        self._gateway = gateway
        self._cache = cache or InMemoryTTLCache(
            ttl_seconds=cache_ttl_seconds, max_entries=CACHE_MAX_ENTRIES
        )
        self._batch_delay_s = batch_delay_s
        self._timer = timer
        self.reset_metrics()

    # ------------------------------------------------------------------
    # Single item
    # ------------------------------------------------------------------

    @staticmethod
    def _cache_key(url: str, query: str) -> str:
        return f"{url}:{query}"

    async def analyze(
        self, content: FetchedContent, query: str, options: AnalysisOptions | None = None
    ) -> AnalysisResult:
        """
        Score ``content`` against ``query``.

        Malformed model output yields the fallback verdict and never raises;
        provider failures (APIError subclasses) do.
        """
        options = options or AnalysisOptions()
        cache_key = self._cache_key(content.url, query)

        if options.use_cache:
            cached = self._cache.get(cache_key)
            if cached is not None:
                self._cache_hits += 1
                return cached

        started = self._timer()
        request = LLMRequest.from_prompt(
            build_analysis_prompt(
                query,
                content.title,
                content.description,
                truncate_content(content.body_text, options.max_content_length),
                options.include_reasoning,
            ),
            system=SYSTEM_PROMPT,
            temperature=options.temperature,
            max_tokens=options.max_tokens,
        )
        response = await self._gateway.request(request, provider_name=options.provider)
        result = parse_analysis(response.text)

        if options.use_cache:
            self._cache.set(cache_key, result)

        elapsed_ms = (self._timer() - started) * 1000
        self._total_analyzed += 1
        self._relevance.append(result.relevance_score)
        self._confidence.append(result.confidence_score)
        self._response_times.append(elapsed_ms)

        logger.debug(
            "Content analyzed",
            extra={
                "extra_fields": {
                    "url": content.url,
                    "relevance": result.relevance_score,
                    "confidence": result.confidence_score,
                    "provider": response.provider,
                    "latency_ms": round(elapsed_ms, 1),
                }
            },
        )
        return result

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    async def analyze_batch(
        self,
        contents: list[FetchedContent],
        query: str,
        options: AnalysisOptions | None = None,
        on_progress: Callable[[BatchProgress], None] | None = None,
    ) -> list[BatchItem]:
        """Analyze sequentially; each slot holds the analysis or the error it raised."""
        items: list[BatchItem] = []
        errors = 0
        total = len(contents)

        for index, content in enumerate(contents):
            if on_progress is not None:
                on_progress(BatchProgress(index, total, content.url, errors))
            try:
                analysis = await self.analyze(content, query, options)
                items.append(BatchItem(url=content.url, analysis=analysis))
            except Exception as e:
                errors += 1
                logger.warning(
                    "Batch item analysis failed",
                    extra={"extra_fields": {"url": content.url, "error_type": type(e).__name__, "error": str(e)}},
                )
                items.append(BatchItem(url=content.url, error=e))

            if index + 1 < total and self._batch_delay_s > 0:
                await asyncio.sleep(self._batch_delay_s)

        if on_progress is not None:
            on_progress(BatchProgress(total, total, None, errors))
        return items

    @staticmethod
    def _as_content(result: SearchResult) -> FetchedContent:
        return FetchedContent(
            url=result.url,
            title=result.title,
            description=result.description,
            body_text=result.description,
            domain=result.metadata.domain,
            content_type=result.metadata.content_type,
            metadata=ContentMetadata(word_count=len(result.description.split())),
            timestamp=result.timestamp,
        )

    async def enhance(
        self, results: list[SearchResult], query: str, options: AnalysisOptions | None = None
    ) -> EnhancementOutcome:
        """
        Merge LLM verdicts into ranked results.

        relevance becomes max(original, analysed), confidence the analysed
        value. A result whose analysis fails is kept unchanged.
        """
        enhanced: list[SearchResult] = []
        failed: list[str] = []

        for result in results:
            try:
                analysis = await self.analyze(self._as_content(result), query, options)
            except Exception as e:
                failed.append(result.url)
                logger.warning(
                    "Result enhancement failed",
                    extra={"extra_fields": {"url": result.url, "error_type": type(e).__name__, "error": str(e)}},
                )
                enhanced.append(result)
                continue
            enhanced.append(
                result.with_scores(
                    max(result.relevance_score, analysis.relevance_score),
                    analysis.confidence_score,
                )
            )

        enhanced.sort(key=lambda r: r.relevance_score, reverse=True)
        return EnhancementOutcome(results=enhanced, failed_urls=failed)

    # ------------------------------------------------------------------
    # Summaries and topics
    # ------------------------------------------------------------------

    async def generate_summary(self, content: FetchedContent, max_length: int = 200) -> str:
        prompt = "\n".join(
            [
                "Please create a concise summary of the following web content "
                f"in approximately {max_length} characters:",
                "",
                f"Title: {sanitize_input(content.title)}",
                f"Content: {sanitize_input(content.body_text[:SUMMARY_SOURCE_CHARS])}",
                "",
                "The summary should capture the main points, be well-written, "
                f"and stay within the {max_length} character limit.",
            ]
        )
        request = LLMRequest.from_prompt(
            prompt,
            system=SUMMARY_SYSTEM_PROMPT,
            temperature=0.3,
            max_tokens=int(max_length * 1.5) + 1,
        )
        try:
            response = await self._gateway.request(request)
        except Exception as e:
            logger.warning(
                "Summary generation failed, using page description",
                extra={"extra_fields": {"url": content.url, "error": str(e)}},
            )
            return content.description or content.body_text[:max_length] + "..."
        return response.text.strip()

    async def extract_topics(self, content: FetchedContent, max_topics: int = 5) -> list[str]:
        prompt = "\n".join(
            [
                f"Please identify the {max_topics} most important topics or themes from this web content:",
                "",
                f"Title: {sanitize_input(content.title)}",
                f"Content: {sanitize_input(content.body_text[:SUMMARY_SOURCE_CHARS])}",
                "",
                "Format your response as a simple list with one topic per line.",
            ]
        )
        request = LLMRequest.from_prompt(
            prompt, system=TOPICS_SYSTEM_PROMPT, temperature=0.2, max_tokens=200
        )
        try:
            response = await self._gateway.request(request)
        except Exception as e:
            logger.warning(
                "Topic extraction failed, using keyword counts",
                extra={"extra_fields": {"url": content.url, "error": str(e)}},
            )
            return extract_keywords(content.body_text, max_topics)

        topics = [_BULLET_RE.sub("", line).strip() for line in response.text.splitlines()]
        return [t for t in topics if t][:max_topics]

    # ------------------------------------------------------------------
    # Metrics and housekeeping
    # ------------------------------------------------------------------

    def metrics(self) -> AnalysisMetrics:
        lookups = self._cache_hits + self._total_analyzed

        def mean(values: deque) -> float:
            return sum(values) / len(values) if values else 0.0

        return AnalysisMetrics(
            total_analyzed=self._total_analyzed,
            cache_hits=self._cache_hits,
            cache_hit_rate=self._cache_hits / lookups if lookups else 0.0,
            average_relevance=mean(self._relevance),
            average_confidence=mean(self._confidence),
            average_response_time_ms=mean(self._response_times),
            cache_size=len(self._cache),
        )

    def reset_metrics(self) -> None:
        self._total_analyzed = 0
        self._cache_hits = 0
        self._relevance: deque[float] = deque(maxlen=METRIC_WINDOW)
        self._confidence: deque[float] = deque(maxlen=METRIC_WINDOW)
        self._response_times: deque[float] = deque(maxlen=METRIC_WINDOW)

    def clear_cache(self) -> None:
        self._cache.clear()

    async def aclose(self) -> None:
        await self._gateway.clear_cache()
