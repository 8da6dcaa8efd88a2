"""Discovery fan-out and page fetching with proxy fallback."""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from urllib.parse import quote

import httpx

from models.errors import AllProxiesFailed, ContentError, DiscoveryFailed, NetworkError
from utils.cancellation import CancellationToken
from utils.logger import get_logger
from utils.validation import is_valid_url, sanitize_input

from .contracts import FetchedContent, FetchOptions, Suggestion
from .discovery import DiscoveryBackend
from .extractor import extract_content

logger = get_logger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)
ACCESSIBILITY_TIMEOUT_S = 5.0
BLOCKED_STATUSES = {403, 451}


@dataclass(frozen=True)
class ProxyEndpoint:
    prefix: str
    json_envelope: bool = False  # response is {"contents": "<html>"}

    def build(self, url: str) -> str:
        return self.prefix + quote(url, safe="")


DEFAULT_PROXIES = [
    ProxyEndpoint("https://api.allorigins.win/get?url=", json_envelope=True),
    ProxyEndpoint("https://corsproxy.io/?"),
    ProxyEndpoint("https://cors-anywhere.herokuapp.com/"),
]


def classify_failure(error: BaseException) -> str:
    """Map a fetch failure onto a ContentError reason."""
    if isinstance(error, (httpx.TimeoutException, asyncio.TimeoutError)):
        return "timeout"

    status = None
    if isinstance(error, NetworkError):
        status = error.status
    elif isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
    if status in BLOCKED_STATUSES:
        return "blocked"

    message = str(error).lower()
    if "timeout" in message or "aborted" in message:
        return "timeout"
    if "cors" in message or "cross-origin" in message:
        return "cors"
    if "blocked" in message or "forbidden" in message:
        return "blocked"
    return "invalid"


def _classify_attempts(errors: list[BaseException]) -> str:
    reasons = {classify_failure(e) for e in errors}
    for reason in ("blocked", "timeout", "cors"):
        if reason in reasons:
            return reason
    return "invalid"


class ContentFetcher:
    def __init__(
        self,
        backends: list[DiscoveryBackend],
        *,
        http_client: httpx.AsyncClient | None = None,
        proxies: list[ProxyEndpoint] | None = None,
        user_agent: str = DEFAULT_USER_AGENT,
        default_options: FetchOptions | None = None,
        owns_client: bool | None = None,
    ):
        self._backends = list(backends)
        self._owns_client = http_client is None if owns_client is None else owns_client
        self._http = http_client or httpx.AsyncClient(follow_redirects=True)
        self._proxies = list(DEFAULT_PROXIES if proxies is None else proxies)
        self._proxy_index = 0
        self._user_agent = user_agent
        self.default_options = default_options or FetchOptions()

    @property
    def backends(self) -> list[DiscoveryBackend]:
        return list(self._backends)

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    async def discover(self, prompt: str, max_results: int) -> list[Suggestion]:
        """
        Query every backend concurrently and merge their suggestions.

        Raises:
            ContentError: If the prompt is empty after sanitisation
            DiscoveryFailed: If no backend is configured or every backend failed
        """
        query = sanitize_input(prompt)
        if not query:
            raise ContentError("Search query is empty after sanitization", url="", reason="invalid")
        if not self._backends:
            raise DiscoveryFailed("No discovery backends configured")

        outcomes = await asyncio.gather(
            *(backend.search(query, max_results) for backend in self._backends),
            return_exceptions=True,
        )

        merged: dict[str, Suggestion] = {}
        failures: list[str] = []
        for backend, outcome in zip(self._backends, outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                failures.append(backend.name)
                logger.warning(
                    f"Discovery backend {backend.name} failed",
                    extra={
                        "extra_fields": {
                            "backend": backend.name,
                            "error_type": type(outcome).__name__,
                            "error": str(outcome),
                        }
                    },
                )
                continue
            for suggestion in outcome:
                current = merged.get(suggestion.url)
                if current is None or suggestion.relevance_hint > current.relevance_hint:
                    merged[suggestion.url] = suggestion

        if len(failures) == len(self._backends):
            raise DiscoveryFailed(f"All discovery backends failed: {', '.join(failures)}")

        ranked = sorted(merged.values(), key=lambda s: s.relevance_hint, reverse=True)[:max_results]
        logger.info(
            "Discovery complete",
            extra={
                "extra_fields": {
                    "query": query,
                    "suggestions": len(ranked),
                    "failed_backends": failures,
                }
            },
        )
        return ranked

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    async def _get(self, url: str, timeout_s: float) -> httpx.Response:
        return await self._http.get(
            url,
            headers={
                "User-Agent": self._user_agent,
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            },
            timeout=timeout_s,
        )

    async def _fetch_html(self, url: str, timeout_s: float) -> str:
        """Direct GET first, then each proxy starting from the last one that worked."""
        errors: list[BaseException] = []

        try:
            response = await self._get(url, timeout_s)
            if response.is_success:
                return response.text
            errors.append(
                NetworkError(f"HTTP {response.status_code}", status=response.status_code, url=url)
            )
        except httpx.HTTPError as e:
            errors.append(e)

        for offset in range(len(self._proxies)):
            index = (self._proxy_index + offset) % len(self._proxies)
            proxy = self._proxies[index]
            try:
                response = await self._get(proxy.build(url), timeout_s)
                if not response.is_success:
                    errors.append(
                        NetworkError(
                            f"Proxy HTTP {response.status_code}", status=response.status_code, url=url
                        )
                    )
                    continue
                if proxy.json_envelope:
                    payload = response.json()
                    html = payload.get("contents") if isinstance(payload, dict) else None
                else:
                    html = response.text
                if not html:
                    errors.append(NetworkError("Proxy returned empty body", url=url))
                    continue
                self._proxy_index = index
                return html
            except (httpx.HTTPError, ValueError) as e:
                logger.debug(
                    f"Proxy {proxy.prefix} failed",
                    extra={"extra_fields": {"url": url, "error": str(e)}},
                )
                errors.append(e)

        raise AllProxiesFailed(
            f"All proxy attempts failed for {url}", url=url, reason=_classify_attempts(errors)
        )

    async def fetch(self, url: str, options: FetchOptions | None = None) -> FetchedContent:
        """
        Fetch and extract one page.

        Raises:
            ContentError: reason is one of timeout, cors, blocked, invalid
        """
        options = options or self.default_options
        if not is_valid_url(url):
            raise ContentError(f"Invalid URL: {url}", url=url, reason="invalid")

        try:
            html = await asyncio.wait_for(
                self._fetch_html(url, options.timeout_s), timeout=options.timeout_s
            )
        except asyncio.TimeoutError as e:
            raise ContentError(
                f"Timed out after {options.timeout_s}s fetching {url}", url=url, reason="timeout"
            ) from e

        try:
            return extract_content(
                html,
                url,
                max_content_length=options.max_content_length,
                include_metadata=options.include_metadata,
            )
        except Exception as e:
            raise ContentError(f"Failed to extract content from {url}: {e}", url=url) from e

    async def _fetch_captured(self, url: str, options: FetchOptions) -> FetchedContent | ContentError:
        try:
            return await self.fetch(url, options)
        except ContentError as e:
            logger.warning(
                "Failed to fetch content",
                extra={"extra_fields": {"url": url, "reason": e.reason, "error": e.message}},
            )
            return e
        except Exception as e:
            error = ContentError(str(e), url=url, reason=classify_failure(e))
            logger.warning(
                "Unexpected error fetching content",
                extra={"extra_fields": {"url": url, "reason": error.reason, "error_type": type(e).__name__}},
            )
            return error

    async def fetch_many(
        self,
        urls: list[str],
        options: FetchOptions | None = None,
        *,
        cancel_token: CancellationToken | None = None,
        on_batch: Callable[[int, int], None] | None = None,
    ) -> list[FetchedContent | ContentError]:
        """
        Fetch URLs in batches of ``options.max_concurrent``.

        Returns:
            One entry per input URL, in input order: the content or the ContentError
        """
        options = options or self.default_options
        batch_size = max(1, options.max_concurrent)
        total = len(urls)
        results: list[FetchedContent | ContentError] = []

        for start in range(0, total, batch_size):
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            batch = urls[start : start + batch_size]
            results.extend(await asyncio.gather(*(self._fetch_captured(u, options) for u in batch)))
            if on_batch is not None:
                on_batch(len(results), total)

        return results

    async def check_accessibility(self, url: str) -> bool:
        """True if the page can be fetched directly or through a proxy."""
        if not is_valid_url(url):
            return False
        try:
            await asyncio.wait_for(
                self._fetch_html(url, ACCESSIBILITY_TIMEOUT_S), timeout=ACCESSIBILITY_TIMEOUT_S
            )
        except (AllProxiesFailed, asyncio.TimeoutError) as e:
            logger.debug("URL not accessible", extra={"extra_fields": {"url": url, "error": str(e)}})
            return False
        return True

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()
