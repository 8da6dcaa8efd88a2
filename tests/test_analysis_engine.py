import pytest
from conftest import make_response

from models.analysis import AnalysisOptions
from models.errors import RateLimited
from models.search import ResultMetadata, SearchResult
from orchestrator.analysis_engine import (
    AnalysisEngine,
    build_analysis_prompt,
    extract_keywords,
    truncate_content,
)
from tools.web.contracts import FetchedContent

VERDICT = '{"relevanceScore": 0.9, "confidenceScore": 0.75, "description": "On topic"}'


class FakeGateway:
    """Returns queued texts (or raises queued errors) in order."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.requests = []
        self.cleared = False

    async def request(self, request, provider_name=None):
        self.requests.append((request, provider_name))
        outcome = self.outcomes.pop(0) if self.outcomes else VERDICT
        if isinstance(outcome, Exception):
            raise outcome
        return make_response(outcome)

    async def clear_cache(self):
        self.cleared = True


def _content(url="https://example.com/rust", body="Ownership moves values. " * 10):
    return FetchedContent(
        url=url,
        title="Rust ownership",
        description="How ownership works",
        body_text=body,
        domain="example.com",
    )


def _result(url, relevance, confidence=0.5):
    return SearchResult(
        id=url[-12:],
        url=url,
        title="Result",
        description="Ownership and borrowing explained",
        relevance_score=relevance,
        confidence_score=confidence,
        metadata=ResultMetadata(domain="example.com", content_type="article", load_status="loaded"),
    )


def _engine(gateway):
    return AnalysisEngine(gateway, batch_delay_s=0)


class TestAnalyze:
    @pytest.mark.asyncio
    async def test_returns_parsed_verdict(self):
        gateway = FakeGateway(VERDICT)

        result = await _engine(gateway).analyze(_content(), "rust ownership")

        assert result.relevance_score == 0.9
        assert result.confidence_score == 0.75
        request, provider = gateway.requests[0]
        assert request.messages[0].role == "system"
        assert request.max_tokens == 800
        assert request.temperature == 0.3
        assert provider is None

    @pytest.mark.asyncio
    async def test_malformed_reply_returns_fallback(self):
        result = await _engine(FakeGateway("I think it is quite relevant!")).analyze(_content(), "rust")

        assert (result.relevance_score, result.confidence_score) == (0.5, 0.3)
        assert result.description == "Analysis failed - using fallback scoring"

    @pytest.mark.asyncio
    async def test_second_call_is_cached(self):
        gateway = FakeGateway(VERDICT)
        engine = _engine(gateway)

        await engine.analyze(_content(), "rust")
        await engine.analyze(_content(), "rust")

        assert len(gateway.requests) == 1
        metrics = engine.metrics()
        assert metrics.cache_hits == 1
        assert metrics.total_analyzed == 1
        assert metrics.cache_hit_rate == 0.5
        assert metrics.cache_size == 1

    @pytest.mark.asyncio
    async def test_cache_can_be_bypassed(self):
        gateway = FakeGateway()
        engine = _engine(gateway)
        options = AnalysisOptions(use_cache=False, include_reasoning=False, provider="openai")

        await engine.analyze(_content(), "rust", options)
        await engine.analyze(_content(), "rust", options)

        assert len(gateway.requests) == 2
        assert gateway.requests[0][0].max_tokens == 400
        assert gateway.requests[0][1] == "openai"

    @pytest.mark.asyncio
    async def test_provider_errors_propagate(self):
        engine = _engine(FakeGateway(RateLimited("slow down", provider="anthropic")))

        with pytest.raises(RateLimited):
            await engine.analyze(_content(), "rust")


class TestBatchAndEnhance:
    @pytest.mark.asyncio
    async def test_batch_keeps_going_after_a_failure(self):
        gateway = FakeGateway(VERDICT, RateLimited("slow", provider="anthropic"), VERDICT)
        progress = []
        contents = [_content(f"https://example.com/{i}") for i in range(3)]

        items = await _engine(gateway).analyze_batch(contents, "rust", on_progress=progress.append)

        assert [item.ok for item in items] == [True, False, True]
        assert isinstance(items[1].error, RateLimited)
        assert [(p.completed, p.errors) for p in progress] == [(0, 0), (1, 0), (2, 1), (3, 1)]
        assert progress[-1].current_url is None

    @pytest.mark.asyncio
    async def test_enhance_takes_max_relevance_and_analysed_confidence(self):
        gateway = FakeGateway(
            '{"relevanceScore": 0.2, "confidenceScore": 0.9}',
            '{"relevanceScore": 0.95, "confidenceScore": 0.8}',
        )
        results = [_result("https://example.com/a", 0.7), _result("https://example.com/b", 0.4)]

        outcome = await _engine(gateway).enhance(results, "rust")

        assert [r.url for r in outcome.results] == ["https://example.com/b", "https://example.com/a"]
        assert outcome.results[0].relevance_score == 0.95
        assert outcome.results[1].relevance_score == 0.7
        assert outcome.results[1].confidence_score == 0.9
        assert outcome.results[1].description == "Ownership and borrowing explained"
        assert outcome.failed_urls == []

    @pytest.mark.asyncio
    async def test_enhance_reports_all_failed(self):
        error = RateLimited("slow", provider="anthropic")
        results = [_result("https://example.com/a", 0.7)]

        outcome = await _engine(FakeGateway(error)).enhance(results, "rust")

        assert outcome.all_failed
        assert outcome.results == results


class TestSummariesAndTopics:
    @pytest.mark.asyncio
    async def test_summary(self):
        summary = await _engine(FakeGateway("  A short summary.  ")).generate_summary(_content())
        assert summary == "A short summary."

    @pytest.mark.asyncio
    async def test_summary_falls_back_to_description(self):
        engine = _engine(FakeGateway(RateLimited("slow", provider="anthropic")))
        assert await engine.generate_summary(_content()) == "How ownership works"

    @pytest.mark.asyncio
    async def test_topics_strip_bullets(self):
        engine = _engine(FakeGateway("- Ownership\n* Borrowing\n• Lifetimes\n\n2024 edition"))
        topics = await engine.extract_topics(_content(), max_topics=5)
        assert topics == ["Ownership", "Borrowing", "Lifetimes", "2024 edition"]

    @pytest.mark.asyncio
    async def test_topics_fall_back_to_keywords(self):
        engine = _engine(FakeGateway(RateLimited("slow", provider="anthropic")))
        topics = await engine.extract_topics(_content(body="borrow borrow borrow lifetime lifetime move"), 2)
        assert topics == ["borrow", "lifetime"]

    @pytest.mark.asyncio
    async def test_aclose_clears_gateway_clients(self):
        gateway = FakeGateway()
        await _engine(gateway).aclose()
        assert gateway.cleared


def test_truncate_prefers_sentence_boundary():
    text = "a" * 90 + ". " + "b" * 50
    assert truncate_content(text, 100) == "a" * 90 + "."
    assert truncate_content("x" * 200, 100) == "x" * 100 + "..."
    assert truncate_content("short", 100) == "short"


def test_prompt_mentions_reasoning_only_when_requested():
    with_reasoning = build_analysis_prompt("rust", "T", "D", "C", include_reasoning=True)
    without = build_analysis_prompt("rust", "T", "D", "C", include_reasoning=False)

    assert '"reasoning"' in with_reasoning
    assert '"reasoning"' not in without
    assert 'search query: "rust"' in with_reasoning


def test_extract_keywords_counts_long_words():
    assert extract_keywords("The rust, the RUST! ownership of rust", 2) == ["rust", "ownership"]
