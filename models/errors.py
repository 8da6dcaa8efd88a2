"""
Exception hierarchy for the search pipeline.

Every error carries a ``kind`` (network, api, content, configuration,
validation, cancelled, pipeline, analysis) so callers can branch without
isinstance chains, and ``should_retry`` / ``user_friendly_message`` give the
retry policy and display text for each kind.
"""

from typing import Any

CONTENT_REASONS = {"timeout", "cors", "blocked", "invalid"}


class SearchError(Exception):
    """Base class for all pipeline errors."""

    kind = "unknown"

    def __init__(self, message: str, *, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": self.message, "details": self.details}


class InvalidQuery(SearchError):
    kind = "validation"

    def __init__(self, errors: list[str]):
        super().__init__("Invalid search query: " + "; ".join(errors), details={"errors": errors})
        self.errors = list(errors)


class NetworkError(SearchError):
    kind = "network"

    def __init__(self, message: str, *, status: int | None = None, url: str | None = None):
        super().__init__(message, details={"status": status, "url": url})
        self.status = status
        self.url = url


class DiscoveryFailed(NetworkError):
    """No discovery backend produced any suggestion."""


class APIError(SearchError):
    kind = "api"

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        status_code: int | None = None,
        rate_limited: bool = False,
    ):
        super().__init__(
            message,
            details={"provider": provider, "status_code": status_code, "rate_limited": rate_limited},
        )
        self.provider = provider
        self.status_code = status_code
        self.rate_limited = rate_limited


class RateLimited(APIError):
    def __init__(self, message: str, *, provider: str, status_code: int | None = 429):
        super().__init__(message, provider=provider, status_code=status_code, rate_limited=True)


class ProviderUnavailable(APIError):
    pass


class ProviderTimeout(APIError):
    pass


class ContentError(SearchError):
    kind = "content"

    def __init__(self, message: str, *, url: str, reason: str = "invalid"):
        if reason not in CONTENT_REASONS:
            reason = "invalid"
        super().__init__(message, details={"url": url, "reason": reason})
        self.url = url
        self.reason = reason


class AllProxiesFailed(ContentError):
    """Direct fetch and every proxy attempt failed for a URL."""


class ConfigurationError(SearchError):
    kind = "configuration"

    def __init__(self, message: str, *, field: str, reason: str = ""):
        super().__init__(message, details={"field": field, "reason": reason or message})
        self.field = field
        self.reason = reason or message


class SearchCancelled(SearchError):
    kind = "cancelled"

    def __init__(self, message: str = "Search was cancelled"):
        super().__init__(message)


class PipelineError(SearchError):
    kind = "pipeline"


class AnalysisFailed(SearchError):
    """Non-fatal: auto-analysis could not enhance a result set."""

    kind = "analysis"

    def __init__(self, message: str, *, failed_urls: list[str] | None = None):
        super().__init__(message, details={"failed_urls": failed_urls or []})
        self.failed_urls = list(failed_urls or [])


def should_retry(error: BaseException) -> bool:
    if isinstance(error, NetworkError):
        return error.status is None or error.status >= 500
    if isinstance(error, APIError):
        if error.rate_limited:
            return False
        return error.status_code is None or error.status_code >= 500
    if isinstance(error, ContentError):
        return error.reason == "timeout"
    if isinstance(error, SearchError):
        return False
    return True


def user_friendly_message(error: BaseException) -> str:
    """Render an error as a message suitable for end users."""
    if isinstance(error, DiscoveryFailed):
        return "No websites could be found for this search. Please try different keywords."
    if isinstance(error, NetworkError):
        if error.status == 404:
            return "The requested resource was not found."
        if error.status is not None and error.status >= 500:
            return "Server error occurred. Please try again later."
        return "Network connection failed. Please check your internet connection."
    if isinstance(error, APIError):
        if error.rate_limited:
            return f"Rate limit exceeded for {error.provider}. Please wait a moment and try again."
        if error.status_code == 401:
            return f"Invalid API key for {error.provider}. Please check your credentials."
        if error.status_code == 403:
            return f"Access denied for {error.provider}. Please check your API permissions."
        if isinstance(error, ProviderTimeout):
            return f"{error.provider} did not respond in time. Please try again."
        return f"API error from {error.provider}. Please try again later."
    if isinstance(error, ContentError):
        messages = {
            "timeout": "Website took too long to load.",
            "cors": "Website blocks external access.",
            "blocked": "Website blocked the request.",
            "invalid": "Website content could not be processed.",
        }
        return messages[error.reason]
    if isinstance(error, ConfigurationError):
        return f"Configuration error: {error.reason}"
    if isinstance(error, InvalidQuery):
        return "Please check your search: " + "; ".join(error.errors)
    if isinstance(error, SearchCancelled):
        return "Search was cancelled."
    if isinstance(error, SearchError):
        return error.message
    return "An unexpected error occurred. Please try again."
