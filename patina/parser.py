"""Feed fetching, RSS/Atom parsing and feed discovery for Patina."""

import calendar
import logging
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import urljoin

import feedparser
import requests
from bs4 import BeautifulSoup

from .models import DiscoveredFeed, ParsedArticle, ParsedFeed

logger = logging.getLogger(__name__)

USER_AGENT = "Patina RSS Reader/1.0"
DEFAULT_TIMEOUT = 30

FEED_LINK_TYPES = (
    "application/rss+xml",
    "application/atom+xml",
    "text/xml",
)

FEED_HREF_HINTS = ("rss", "feed", "atom")

COMMON_FEED_PATHS = (
    "/feed",
    "/feed/",
    "/rss",
    "/rss.xml",
    "/atom.xml",
    "/feed.xml",
    "/index.xml",
)


class FeedParseError(Exception):
    """Raised when a feed cannot be fetched or parsed."""

    pass


def fetch(url: str, timeout: int = DEFAULT_TIMEOUT) -> bytes:
    """Fetch the raw body of a URL.

    Raises:
        FeedParseError: If the request fails or returns an error status
    """
    try:
        response = requests.get(url, timeout=timeout, headers={"User-Agent": USER_AGENT})
        response.raise_for_status()
    except requests.RequestException as e:
        raise FeedParseError(f"Failed to fetch {url}: {e}") from e

    return response.content


def fetch_feed(url: str, timeout: int = DEFAULT_TIMEOUT) -> ParsedFeed:
    """Fetch a feed from a URL and parse it.

    Raises:
        FeedParseError: If the feed cannot be fetched or parsed
    """
    logger.debug("Fetching feed %s", url)
    return parse_feed_content(fetch(url, timeout=timeout), url)


def parse_feed_content(content: bytes | str, url: str) -> ParsedFeed:
    """Parse RSS/Atom content into feed metadata and articles.

    Entries without a link are skipped. Summaries are stripped of HTML.

    Args:
        content: Raw feed document
        url: The URL the feed was fetched from

    Returns:
        ParsedFeed with its articles

    Raises:
        FeedParseError: If the content is not a usable feed
    """
    parsed = feedparser.parse(content)

    if parsed.bozo and not parsed.entries and not parsed.feed.get("title"):
        raise FeedParseError(f"Failed to parse feed: {parsed.bozo_exception}")

    title = (parsed.feed.get("title") or "").strip() or "Untitled Feed"
    site_url = parsed.feed.get("link") or None

    articles = []
    for entry in parsed.entries:
        link = (entry.get("link") or "").strip()
        if not link:
            continue

        summary = entry.get("summary")
        if not summary and entry.get("content"):
            summary = entry["content"][0].get("value")

        articles.append(
            ParsedArticle(
                title=(entry.get("title") or "").strip() or "Untitled",
                url=link,
                summary=clean_html(summary) if summary else None,
                published_at=_parse_entry_date(entry),
            )
        )

    return ParsedFeed(title=title, url=url, site_url=site_url, articles=articles)


def clean_html(html: str) -> str:
    """Strip tags, decode entities and collapse whitespace."""
    text = BeautifulSoup(html, "html.parser").get_text(" ")
    return " ".join(text.split())


def discover(html: str, base_url: str) -> list[DiscoveredFeed]:
    """Find candidate feed URLs in an HTML page.

    Alternate <link> tags and anchors that look like feed links are returned
    in document order, followed by common feed paths on the same site. The
    common paths are not checked for existence.

    Args:
        html: HTML of the page
        base_url: URL the page was loaded from, for resolving relative links

    Returns:
        List of DiscoveredFeed candidates without duplicates
    """
    soup = BeautifulSoup(html, "html.parser")

    feeds = []
    seen_urls: set[str] = set()

    for element in soup.find_all(["link", "a"], href=True):
        if not _looks_like_feed_link(element):
            continue

        feed_url = urljoin(base_url, element["href"].strip())
        if feed_url in seen_urls:
            continue
        seen_urls.add(feed_url)

        title = (element.get("title") or "").strip() or element.get_text(strip=True) or None
        feeds.append(DiscoveredFeed(url=feed_url, title=title))

    for path in COMMON_FEED_PATHS:
        feed_url = urljoin(base_url, path)
        if feed_url not in seen_urls:
            seen_urls.add(feed_url)
            feeds.append(DiscoveredFeed(url=feed_url))

    return feeds


def discover_feeds(website_url: str, timeout: int = DEFAULT_TIMEOUT) -> list[DiscoveredFeed]:
    """Fetch a website and discover its feeds.

    Raises:
        FeedParseError: If the page cannot be fetched
    """
    content = fetch(website_url, timeout=timeout)
    html = content.decode("utf-8", errors="replace")
    return discover(html, website_url)


def _looks_like_feed_link(element) -> bool:
    href = element["href"]
    if element.name == "link":
        rel = element.get("rel") or []
        return rel == ["alternate"] and element.get("type") in FEED_LINK_TYPES
    return any(hint in href for hint in FEED_HREF_HINTS)


def _parse_entry_date(entry: dict) -> Optional[datetime]:
    """Parse publication date from a feed entry.

    feedparser normalizes dates to UTC struct_time values.

    Args:
        entry: feedparser entry dict

    Returns:
        Aware UTC datetime if a date was found, None otherwise
    """
    for field in ("published_parsed", "updated_parsed"):
        parsed_time = entry.get(field)
        if parsed_time:
            try:
                return datetime.fromtimestamp(calendar.timegm(parsed_time), tz=timezone.utc)
            except (ValueError, OverflowError, OSError):
                continue

    return None
