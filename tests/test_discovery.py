import httpx
import pytest

from tools.web.discovery import (
    BRAVE_SEARCH_URL,
    BraveDiscovery,
    DuckDuckGoDiscovery,
    TavilyDiscovery,
    rank_hint,
)

DDG_PAGE = """
<html><body>
<div class="result">
  <a class="result__a" href="//duckduckgo.com/l/?uddg=https%3A%2F%2Fdoc.rust-lang.org%2Fbook%2F&rut=abc">The Rust Book</a>
  <a class="result__snippet">Learn <b>ownership</b> and borrowing.</a>
</div>
<div class="result">
  <a class="result__a" href="https://duckduckgo.com/y.js?ad=1">Sponsored</a>
</div>
<div class="result">
  <a class="result__a" href="https://www.example.com/rust">Rust at Example</a>
</div>
</body></html>
"""


class FakeTavily:
    def __init__(self, payload):
        self.payload = payload
        self.kwargs = None

    async def search(self, **kwargs):
        self.kwargs = kwargs
        return self.payload


@pytest.mark.asyncio
async def test_tavily_uses_score_as_hint():
    client = FakeTavily(
        {
            "results": [
                {"url": "https://doc.rust-lang.org/book/", "title": "The Book", "content": "Ownership", "score": 0.93},
                {"url": "not-a-url", "title": "Broken"},
                {"url": "https://example.com", "title": "", "content": "x" * 400, "score": 7},
            ]
        }
    )
    backend = TavilyDiscovery("tvly-key", client=client)

    suggestions = await backend.search("rust ownership", 5)

    assert [s.url for s in suggestions] == ["https://doc.rust-lang.org/book/", "https://example.com"]
    assert suggestions[0].relevance_hint == 0.93
    assert suggestions[1].relevance_hint == 1.0
    assert suggestions[1].title == "https://example.com"
    assert len(suggestions[1].snippet) == 300
    assert client.kwargs["max_results"] == 5


def test_tavily_requires_key_or_client():
    with pytest.raises(ValueError):
        TavilyDiscovery("")


@pytest.mark.asyncio
async def test_brave_parses_web_results():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = f"{request.url.scheme}://{request.url.host}{request.url.path}"
        seen["token"] = request.headers.get("X-Subscription-Token")
        seen["count"] = request.url.params.get("count")
        return httpx.Response(
            200,
            json={
                "web": {
                    "results": [
                        {"url": "https://doc.rust-lang.org/", "title": "<strong>Rust</strong> docs", "description": "Official"},
                        {"url": "https://example.com/rust", "title": "Example", "description": "<em>Guide</em>"},
                    ]
                }
            },
        )

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    backend = BraveDiscovery("brave-key", client)

    suggestions = await backend.search("rust", 50)

    assert seen == {"url": BRAVE_SEARCH_URL, "token": "brave-key", "count": "20"}
    assert suggestions[0].title == "Rust docs"
    assert suggestions[1].snippet == "Guide"
    assert [s.relevance_hint for s in suggestions] == [1.0, 0.95]
    assert all(s.source == "brave" for s in suggestions)


@pytest.mark.asyncio
async def test_brave_http_error_raises():
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(401)))

    with pytest.raises(httpx.HTTPStatusError):
        await BraveDiscovery("bad-key", client).search("rust", 5)


@pytest.mark.asyncio
async def test_duckduckgo_decodes_redirect_links_and_skips_ads():
    def handler(request: httpx.Request) -> httpx.Response:
        assert str(request.url).startswith("https://html.duckduckgo.com/html")
        return httpx.Response(200, text=DDG_PAGE)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))

    suggestions = await DuckDuckGoDiscovery(client).search("rust ownership", 10)

    assert [s.url for s in suggestions] == ["https://doc.rust-lang.org/book/", "https://www.example.com/rust"]
    assert suggestions[0].snippet == "Learn ownership and borrowing."
    assert suggestions[1].domain == "example.com"
    assert suggestions[0].relevance_hint > suggestions[1].relevance_hint


def test_rank_hint_has_floor():
    assert rank_hint(0) == 1.0
    assert rank_hint(2) == pytest.approx(0.8)
    assert rank_hint(50) == 0.3
