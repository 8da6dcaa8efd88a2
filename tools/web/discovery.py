"""Website discovery backends.

Each backend turns a query into a ranked list of Suggestion objects. The
ContentFetcher queries every configured backend at once and merges the
results; a backend that fails is logged and skipped.
"""

import re
from abc import ABC, abstractmethod
from typing import Any
from urllib.parse import parse_qs, urljoin, urlparse

import httpx
from bs4 import BeautifulSoup

from models.analysis import clamp_score
from utils.logger import get_logger
from utils.validation import extract_domain, is_valid_url

from .contracts import Suggestion

logger = get_logger(__name__)

BRAVE_SEARCH_URL = "https://api.search.brave.com/res/v1/web/search"
DUCKDUCKGO_HTML_URL = "https://html.duckduckgo.com/html/"
BRAVE_MAX_COUNT = 20
MAX_SNIPPET_CHARS = 300

_TAG_RE = re.compile(r"<[^>]+>")


def _trim_text(text: Any, limit: int = MAX_SNIPPET_CHARS) -> str:
    raw = str(text or "").strip()
    if len(raw) <= limit:
        return raw
    return raw[: limit - 3].rstrip() + "..."


def rank_hint(index: int, step: float = 0.1, floor: float = 0.3) -> float:
    """Relevance hint for the ``index``-th (0-based) result of a ranked list."""
    return max(floor, 1.0 - index * step)


class DiscoveryBackend(ABC):
    name = "base"

    @abstractmethod
    async def search(self, query: str, max_results: int) -> list[Suggestion]:
        """Return up to ``max_results`` suggestions; may raise on failure."""


class TavilyDiscovery(DiscoveryBackend):
    """Tavily search API; its per-result ``score`` becomes the relevance hint."""

    name = "tavily"

    def __init__(self, api_key: str, *, client: Any = None, search_depth: str = "basic"):
        if not api_key and client is None:
            raise ValueError("TAVILY_API_KEY not found in environment")

        if client is None:
            # Lazy import so the module loads without tavily installed until Tavily is configured
            try:
                from tavily import AsyncTavilyClient
            except ModuleNotFoundError as e:
                raise ModuleNotFoundError(
                    "Optional dependency 'tavily' is not installed. "
                    "Install it to enable Tavily discovery: pip install tavily-python"
                ) from e
            client = AsyncTavilyClient(api_key=api_key)

        self.client = client
        self.search_depth = search_depth

    async def search(self, query: str, max_results: int) -> list[Suggestion]:
        response = await self.client.search(
            query=query,
            max_results=max_results,
            search_depth=self.search_depth,
            include_answer=False,
            include_raw_content=False,
        )

        suggestions = []
        for item in (response.get("results") or [])[:max_results]:
            url = str(item.get("url") or "").strip()
            if not is_valid_url(url):
                continue
            suggestions.append(
                Suggestion(
                    url=url,
                    title=str(item.get("title") or "").strip() or url,
                    snippet=_trim_text(item.get("content")),
                    domain=extract_domain(url),
                    relevance_hint=clamp_score(item.get("score"), default=0.5),
                    source=self.name,
                )
            )
        return suggestions


class BraveDiscovery(DiscoveryBackend):
    name = "brave"

    def __init__(self, api_key: str, http_client: httpx.AsyncClient):
        if not api_key:
            raise ValueError("BRAVE_API_KEY not found in environment")
        self.api_key = api_key
        self.http_client = http_client

    async def search(self, query: str, max_results: int) -> list[Suggestion]:
        response = await self.http_client.get(
            BRAVE_SEARCH_URL,
            params={"q": query, "count": min(max_results, BRAVE_MAX_COUNT)},
            headers={"Accept": "application/json", "X-Subscription-Token": self.api_key},
        )
        response.raise_for_status()
        payload = response.json()

        suggestions = []
        for item in ((payload.get("web") or {}).get("results") or [])[:max_results]:
            url = str(item.get("url") or "").strip()
            if not is_valid_url(url):
                continue
            suggestions.append(
                Suggestion(
                    url=url,
                    title=_TAG_RE.sub("", str(item.get("title") or "")).strip() or url,
                    snippet=_trim_text(_TAG_RE.sub("", str(item.get("description") or ""))),
                    domain=extract_domain(url),
                    relevance_hint=rank_hint(len(suggestions), step=0.05),
                    source=self.name,
                )
            )
        return suggestions


class DuckDuckGoDiscovery(DiscoveryBackend):
    """Scrapes the DuckDuckGo HTML endpoint; needs no API key."""

    name = "duckduckgo"

    def __init__(self, http_client: httpx.AsyncClient):
        self.http_client = http_client

    @staticmethod
    def _resolve_link(href: str) -> str:
        # Result links are redirects of the form //duckduckgo.com/l/?uddg=<target>
        absolute = urljoin("https://duckduckgo.com", href)
        parsed = urlparse(absolute)
        if parsed.path.startswith("/l/"):
            target = parse_qs(parsed.query).get("uddg")
            if target:
                return target[0]
        return absolute

    async def search(self, query: str, max_results: int) -> list[Suggestion]:
        response = await self.http_client.post(DUCKDUCKGO_HTML_URL, data={"q": query})
        response.raise_for_status()

        soup = BeautifulSoup(response.text, "html.parser")
        suggestions = []
        for block in soup.select(".result"):
            link = block.select_one("a.result__a")
            if link is None or not link.get("href"):
                continue
            url = self._resolve_link(link["href"])
            if not is_valid_url(url) or "duckduckgo.com" in extract_domain(url):
                continue
            snippet = block.select_one(".result__snippet")
            suggestions.append(
                Suggestion(
                    url=url,
                    title=link.get_text(" ", strip=True) or url,
                    snippet=_trim_text(snippet.get_text(" ", strip=True) if snippet else ""),
                    domain=extract_domain(url),
                    relevance_hint=rank_hint(len(suggestions)),
                    source=self.name,
                )
            )
            if len(suggestions) >= max_results:
                break
        return suggestions
