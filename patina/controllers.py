"""Business logic controllers for Patina."""

import logging
import sqlite3
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

from .db import Database
from .models import (
    PATTERN_TYPES,
    SOURCE_MANUAL,
    Article,
    Feed,
    OpmlImportResult,
    ParsedFeed,
    ReadingPattern,
)
from .opml import parse_opml
from .parser import FeedParseError, fetch_feed
from .serendipity import record_reading

logger = logging.getLogger(__name__)


class FeedNotFoundError(Exception):
    """Raised when a feed is not found."""

    def __init__(self, feed_id: int):
        self.feed_id = feed_id
        super().__init__(f"Feed {feed_id} not found")


class FeedAlreadyExistsError(Exception):
    """Raised when trying to add a feed whose URL is already subscribed."""

    def __init__(self, url: str, title: Optional[str] = None):
        self.url = url
        self.title = title
        label = f"'{title}' ({url})" if title else f"'{url}'"
        super().__init__(f"Feed {label} already exists")


class InvalidFeedURLError(Exception):
    """Raised when a feed URL is not an absolute http(s) URL."""

    def __init__(self, url: str):
        self.url = url
        super().__init__(f"Invalid feed URL '{url}'")


class InvalidPatternError(Exception):
    """Raised when a reading pattern has an unknown kind or an empty value."""

    def __init__(self, pattern_type: str, value: str):
        self.pattern_type = pattern_type
        self.value = value
        super().__init__(
            f"Invalid reading pattern {pattern_type}='{value}' "
            f"(kind must be one of: {', '.join(PATTERN_TYPES)})"
        )


@dataclass
class RefreshResult:
    """Result of refreshing a single feed."""

    feed: Feed
    new_articles: int
    total_found: int
    error: Optional[str] = None


def validate_feed_url(url: str) -> str:
    """Check that url is an absolute http(s) URL.

    Returns:
        The URL with surrounding whitespace removed

    Raises:
        InvalidFeedURLError: If the URL is not usable
    """
    url = url.strip()
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise InvalidFeedURLError(url)
    return url


def add_feed(db: Database, url: str) -> Feed:
    """Subscribe to a feed and store its current articles.

    Args:
        db: Database instance
        url: Feed URL

    Returns:
        The created Feed with its unread count

    Raises:
        InvalidFeedURLError: If the URL is not an http(s) URL
        FeedAlreadyExistsError: If the URL is already subscribed
        FeedParseError: If the feed cannot be fetched or parsed
    """
    url = validate_feed_url(url)

    existing = db.get_feed_by_url(url)
    if existing:
        raise FeedAlreadyExistsError(url, existing.title)

    data = fetch_feed(url)

    try:
        feed = db.insert_feed(Feed(id=None, title=data.title, url=url, site_url=data.site_url))
    except sqlite3.IntegrityError as e:
        # Another caller subscribed between the check and the insert.
        raise FeedAlreadyExistsError(url) from e

    _store_articles(db, feed.id, data)
    logger.info("Added feed '%s' with %d article(s)", feed.title, len(data.articles))

    return db.get_feed(feed.id) or feed


def remove_feed(db: Database, feed_id: int) -> bool:
    """Unsubscribe from a feed, deleting its articles.

    Returns:
        True if the feed existed
    """
    removed = db.delete_feed(feed_id)
    if removed:
        logger.info("Removed feed %d", feed_id)
    return removed


def refresh_feed(db: Database, feed_id: int) -> RefreshResult:
    """Fetch a feed again and store any articles not seen before.

    Args:
        db: Database instance
        feed_id: Feed to refresh

    Returns:
        RefreshResult with the updated feed

    Raises:
        FeedNotFoundError: If the feed does not exist
        FeedParseError: If the feed cannot be fetched or parsed
    """
    feed = db.get_feed(feed_id)
    if not feed:
        raise FeedNotFoundError(feed_id)

    data = fetch_feed(feed.url)
    db.update_feed_metadata(feed_id, data)
    new_count, total_found = _store_articles(db, feed_id, data)

    updated = db.get_feed(feed_id)
    if not updated:
        raise FeedNotFoundError(feed_id)

    return RefreshResult(feed=updated, new_articles=new_count, total_found=total_found)


def refresh_all_feeds(db: Database) -> list[RefreshResult]:
    """Refresh every feed in turn.

    A feed that fails keeps its previous record and the error is reported in
    its result; the remaining feeds are still refreshed.

    Args:
        db: Database instance

    Returns:
        List of RefreshResult, one per feed
    """
    results = []

    for feed in db.get_all_feeds():
        try:
            results.append(refresh_feed(db, feed.id))
        except (FeedParseError, FeedNotFoundError, sqlite3.Error) as e:
            logger.warning("Failed to refresh feed '%s': %s", feed.title, e)
            results.append(RefreshResult(feed=feed, new_articles=0, total_found=0, error=str(e)))

    return results


def _store_articles(db: Database, feed_id: int, data: ParsedFeed) -> tuple[int, int]:
    """Insert parsed articles, ignoring ones already stored.

    An article that fails to insert is logged and skipped.

    Returns:
        Tuple of (new article count, distinct URLs found)
    """
    seen_urls: set[str] = set()
    unique_articles = []
    for article in data.articles:
        if article.url in seen_urls:
            continue
        seen_urls.add(article.url)
        unique_articles.append(article)

    existing_urls = db.get_existing_article_urls(feed_id, seen_urls)

    new_count = 0
    for article in unique_articles:
        try:
            db.insert_article(feed_id, article)
        except sqlite3.Error as e:
            logger.warning("Skipping article %s: %s", article.url, e)
            continue
        if article.url not in existing_urls:
            new_count += 1

    return new_count, len(seen_urls)


def get_articles(
    db: Database,
    feed_id: Optional[int] = None,
    show_all: bool = False,
    limit: Optional[int] = None,
) -> list[Article]:
    """Get articles with optional filters.

    Args:
        db: Database instance
        feed_id: Only return articles from this feed
        show_all: If True, include read articles
        limit: Maximum number of articles

    Raises:
        FeedNotFoundError: If feed_id provided but not found
    """
    if feed_id is not None:
        if not db.get_feed(feed_id):
            raise FeedNotFoundError(feed_id)
        articles = db.get_articles_for_feed(feed_id)
        if not show_all:
            articles = [a for a in articles if not a.is_read]
    elif show_all:
        return db.get_recent_articles(limit if limit is not None else -1)
    else:
        articles = db.get_all_unread_articles()

    return articles[:limit] if limit is not None else articles


def mark_article_read(db: Database, article_id: int) -> Optional[Article]:
    """Mark an article as read and learn from its topics.

    Args:
        db: Database instance
        article_id: Article ID to mark

    Returns:
        The article after marking, or None if it does not exist
    """
    if not db.mark_article_read(article_id):
        return None

    article = db.get_article(article_id)
    if article:
        try:
            topics = record_reading(db, article)
        except sqlite3.Error as e:
            logger.warning("Could not record topics for article %d: %s", article_id, e)
        else:
            logger.debug("Article %d read; topics: %s", article_id, [t for t, _ in topics])
    return article


def mark_article_unread(db: Database, article_id: int) -> Optional[Article]:
    """Mark an article as unread.

    Returns:
        The article after marking, or None if it does not exist
    """
    if not db.mark_article_unread(article_id):
        return None
    return db.get_article(article_id)


def add_reading_pattern(db: Database, pattern_type: str, value: str) -> ReadingPattern:
    """Add a manual reading pattern, strengthening it if already present.

    Raises:
        InvalidPatternError: If the kind is unknown or the value is blank
    """
    value = value.strip()
    if pattern_type not in PATTERN_TYPES or not value:
        raise InvalidPatternError(pattern_type, value)
    return db.add_reading_pattern(pattern_type, value, SOURCE_MANUAL)


def import_opml(db: Database, content: str) -> OpmlImportResult:
    """Subscribe to every feed listed in an OPML document.

    Each feed is added independently; failures are counted and described in
    the result without stopping the import.

    Raises:
        OpmlParseError: If the document itself cannot be parsed
    """
    opml_feeds = parse_opml(content)
    imported = 0
    errors = []

    for opml_feed in opml_feeds:
        try:
            add_feed(db, opml_feed.url)
            imported += 1
        except (
            FeedAlreadyExistsError,
            FeedParseError,
            InvalidFeedURLError,
            sqlite3.Error,
        ) as e:
            logger.warning("OPML import of %s failed: %s", opml_feed.url, e)
            errors.append(f"{opml_feed.url}: {e}")

    return OpmlImportResult(
        total_feeds=len(opml_feeds),
        imported_feeds=imported,
        failed_feeds=len(errors),
        errors=errors,
    )
