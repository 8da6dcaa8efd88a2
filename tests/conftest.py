import asyncio

import httpx
import pytest
from dotenv import load_dotenv

from models.unified_response import NormalizedError, TokenUsage, UnifiedResponse
from tools.web.contracts import Suggestion
from tools.web.discovery import DiscoveryBackend
from utils.validation import extract_domain

# Load environment variables from .env file for tests
load_dotenv()


class StaticDiscovery(DiscoveryBackend):
    """Discovery stub: returns fixed suggestions, optionally waiting on a gate first."""

    name = "static"

    def __init__(self, suggestions=None, *, error=None, gate: asyncio.Event | None = None):
        self.suggestions = list(suggestions or [])
        self.error = error
        self.gate = gate
        self.calls = 0
        self.started = asyncio.Event()

    async def search(self, query, max_results):
        self.calls += 1
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.suggestions[:max_results]


class FakeLLMClient:
    """Provider client stub returning queued UnifiedResponses."""

    def __init__(self, provider: str, responses=None):
        self.provider = provider
        self.responses = list(responses or [])
        self.requests = []
        self.closed = False

    async def get_completion(self, request):
        self.requests.append(request)
        if self.responses:
            return self.responses.pop(0)
        return make_response('{"relevanceScore": 0.9, "confidenceScore": 0.8}', provider=self.provider)

    async def aclose(self):
        self.closed = True


def make_suggestion(url: str, hint: float = 0.8, title: str | None = None) -> Suggestion:
    return Suggestion(
        url=url,
        title=title or f"Result for {url}",
        snippet="A snippet from the discovery backend",
        domain=extract_domain(url),
        relevance_hint=hint,
        source="static",
    )


def make_response(text: str, provider: str = "anthropic", model: str = "test-model", tokens: int = 10):
    return UnifiedResponse(
        request_id="req_1",
        text=text,
        provider=provider,
        model=model,
        latency_ms=1,
        token_usage=TokenUsage(prompt_tokens=tokens // 2, completion_tokens=tokens - tokens // 2),
        finish_reason="stop",
    )


def make_error_response(code: str, status_code: int | None, provider: str = "anthropic"):
    return UnifiedResponse(
        request_id="req_err",
        text="",
        provider=provider,
        model="test-model",
        latency_ms=1,
        token_usage=TokenUsage(),
        finish_reason="error",
        error=NormalizedError(code, f"{code} error", provider, details={"status_code": status_code}),
    )


def article_html(title: str, body: str, description: str = "") -> str:
    meta = f'<meta name="description" content="{description}">' if description else ""
    return (
        f"<html lang='en'><head><title>{title}</title>{meta}</head>"
        f"<body><nav>Home | About</nav><article><h1>{title}</h1><p>{body}</p></article>"
        "<footer>Copyright</footer></body></html>"
    )


@pytest.fixture
def pages():
    """URL -> HTML (or an exception to raise) served by the mock transport."""
    return {}


@pytest.fixture
def http_client(pages):
    def handler(request: httpx.Request) -> httpx.Response:
        outcome = pages.get(str(request.url))
        if outcome is None:
            return httpx.Response(404, text="not found")
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, httpx.Response):
            return outcome
        return httpx.Response(200, text=outcome, headers={"content-type": "text/html"})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))
