"""Input validation helpers for queries, URLs, domains and credentials."""

import re
from urllib.parse import urlparse

from models.search import SearchQuery

MAX_PROMPT_LENGTH = 1000
MIN_RESULTS = 1
MAX_RESULTS = 50

_DOMAIN_RE = re.compile(
    r"^[a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?(\.[a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$"
)
_UNSAFE_PATTERNS = (
    re.compile(r"[<>]"),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"data:", re.IGNORECASE),
)


def validate_query(query: SearchQuery) -> list[str]:
    """
    Validate a search query.

    Returns:
        List of human-readable problems (empty when the query is valid)
    """
    errors: list[str] = []

    prompt = query.prompt if isinstance(query.prompt, str) else ""
    if not prompt.strip():
        errors.append("Search prompt is required and cannot be empty")
    elif len(prompt) > MAX_PROMPT_LENGTH:
        errors.append(f"Search prompt must be less than {MAX_PROMPT_LENGTH} characters")

    if not isinstance(query.max_results, int) or isinstance(query.max_results, bool):
        errors.append("max_results must be an integer")
    elif not MIN_RESULTS <= query.max_results <= MAX_RESULTS:
        errors.append(f"max_results must be between {MIN_RESULTS} and {MAX_RESULTS}")

    if query.filters is not None:
        for domain in query.filters.domains:
            if not is_valid_domain(domain):
                errors.append(f"Invalid domain: {domain}")

    return errors


def is_valid_domain(domain: str) -> bool:
    return bool(domain) and bool(_DOMAIN_RE.match(domain))


def is_valid_url(url: str) -> bool:
    if not url or not isinstance(url, str):
        return False
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def extract_domain(url: str) -> str:
    try:
        host = urlparse(url).hostname or ""
    except ValueError:
        return ""
    return host[4:] if host.startswith("www.") else host


def sanitize_input(text: str) -> str:
    cleaned = (text or "").strip()
    for pattern in _UNSAFE_PATTERNS:
        cleaned = pattern.sub("", cleaned)
    return cleaned.strip()


def is_valid_api_key(provider: str, api_key: str | None) -> bool:
    """Check the credential shape for a provider (no network call)."""
    if not api_key or not api_key.strip():
        return False

    key = api_key.strip()
    if provider == "anthropic":
        return key.startswith("sk-ant-")
    if provider == "openai":
        return key.startswith("sk-")
    if provider == "gemini":
        return len(key) > 20
    if provider == "xai":
        return key.startswith("xai-")
    return len(key) > 10
