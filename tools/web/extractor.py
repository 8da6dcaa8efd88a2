"""HTML to FetchedContent extraction with BeautifulSoup."""

import re
from datetime import datetime
from email.utils import parsedate_to_datetime

from bs4 import BeautifulSoup, Tag

from utils.validation import extract_domain

from .contracts import ContentMetadata, FetchedContent

TITLE_SELECTORS = [
    "title",
    "h1",
    'meta[property="og:title"]',
    'meta[name="twitter:title"]',
    ".title",
    ".headline",
]
DESCRIPTION_SELECTORS = [
    'meta[name="description"]',
    'meta[property="og:description"]',
    'meta[name="twitter:description"]',
    ".description",
    ".summary",
    "p",
]
UNWANTED_SELECTORS = [
    "script",
    "style",
    "nav",
    "header",
    "footer",
    ".advertisement",
    ".ads",
    ".sidebar",
    ".menu",
    '[role="navigation"]',
    '[role="banner"]',
    '[role="contentinfo"]',
]
CONTENT_SELECTORS = [
    "main",
    '[role="main"]',
    ".content",
    ".main-content",
    ".post-content",
    ".article-content",
    "article",
    ".entry-content",
]
AUTHOR_SELECTORS = ['meta[name="author"]', 'meta[property="article:author"]', ".author", ".byline"]
DATE_SELECTORS = [
    'meta[property="article:published_time"]',
    'meta[name="publish_date"]',
    "time[datetime]",
    ".publish-date",
    ".date",
]

MIN_DESCRIPTION_LENGTH = 20
MAX_DESCRIPTION_LENGTH = 300

_WHITESPACE_RE = re.compile(r"\s+")


def _clean(text: str | None) -> str:
    return _WHITESPACE_RE.sub(" ", text or "").strip()


def _element_value(element: Tag) -> str:
    """Meta tags carry their value in ``content``, time tags in ``datetime``."""
    if element.name == "meta":
        return _clean(element.get("content"))
    if element.name == "time" and element.get("datetime"):
        return _clean(element.get("datetime"))
    return _clean(element.get_text(" "))


def _first_value(soup: BeautifulSoup, selectors: list[str], min_length: int = 0) -> str | None:
    for selector in selectors:
        element = soup.select_one(selector)
        if element is None:
            continue
        value = _element_value(element)
        if value and len(value) > min_length:
            return value
    return None


def _parse_date(value: str) -> str | None:
    candidate = value.strip()
    try:
        return datetime.fromisoformat(candidate.replace("Z", "+00:00")).isoformat()
    except ValueError:
        pass
    try:
        return parsedate_to_datetime(candidate).isoformat()
    except (TypeError, ValueError):
        return None


def extract_title(soup: BeautifulSoup) -> str:
    return _first_value(soup, TITLE_SELECTORS) or "Untitled"


def extract_description(soup: BeautifulSoup) -> str:
    value = _first_value(soup, DESCRIPTION_SELECTORS, min_length=MIN_DESCRIPTION_LENGTH)
    return value[:MAX_DESCRIPTION_LENGTH] if value else ""


def extract_publish_date(soup: BeautifulSoup) -> str | None:
    for selector in DATE_SELECTORS:
        for element in soup.select(selector):
            parsed = _parse_date(_element_value(element))
            if parsed:
                return parsed
    return None


def extract_language(soup: BeautifulSoup) -> str | None:
    html = soup.find("html")
    if isinstance(html, Tag) and html.get("lang"):
        return _clean(html.get("lang"))
    locale = soup.select_one('meta[property="og:locale"]')
    if locale is not None and locale.get("content"):
        return _clean(locale.get("content"))
    return None


def _has_videos(soup: BeautifulSoup) -> bool:
    if soup.find("video") is not None:
        return True
    for iframe in soup.find_all("iframe"):
        src = (iframe.get("src") or "").lower()
        if "youtube" in src or "vimeo" in src:
            return True
    return False


def _detect_content_type(soup: BeautifulSoup) -> str:
    og_type = soup.select_one('meta[property="og:type"]')
    if og_type is not None and _clean(og_type.get("content")).lower() == "article":
        return "article"
    if soup.find("article") is not None:
        return "article"
    return "webpage"


def extract_main_text(soup: BeautifulSoup) -> str:
    """Strip page chrome and return the main region's collapsed text."""
    for selector in UNWANTED_SELECTORS:
        for element in soup.select(selector):
            element.decompose()

    region = None
    for selector in CONTENT_SELECTORS:
        region = soup.select_one(selector)
        if region is not None:
            break
    if region is None:
        region = soup.body or soup
    return _clean(region.get_text(" "))


def extract_content(
    html: str, url: str, *, max_content_length: int = 50000, include_metadata: bool = True
) -> FetchedContent:
    soup = BeautifulSoup(html, "html.parser")

    title = extract_title(soup)
    description = extract_description(soup)
    content_type = _detect_content_type(soup)

    # Read metadata before page chrome (header, nav) is stripped
    details = {}
    if include_metadata:
        details = {
            "has_images": soup.find("img") is not None,
            "has_videos": _has_videos(soup),
            "author": _first_value(soup, AUTHOR_SELECTORS),
            "publish_date": extract_publish_date(soup),
            "language": extract_language(soup),
        }

    body_text = extract_main_text(soup)
    word_count = len(body_text.split())
    if len(body_text) > max_content_length:
        body_text = body_text[:max_content_length] + "..."

    metadata = ContentMetadata(word_count=word_count, **details)

    return FetchedContent(
        url=url,
        title=title,
        description=description,
        body_text=body_text,
        domain=extract_domain(url),
        content_type=content_type,
        metadata=metadata,
    )
