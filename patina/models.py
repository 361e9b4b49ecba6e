"""Data models for Patina."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

PATTERN_TOPIC = "topic"
PATTERN_KEYWORD = "keyword"
PATTERN_EXCLUDED = "excluded"
PATTERN_TYPES = (PATTERN_TOPIC, PATTERN_KEYWORD, PATTERN_EXCLUDED)

SOURCE_MANUAL = "manual"
SOURCE_AUTO = "auto"


@dataclass
class Feed:
    """Represents a feed subscription.

    unread_count is computed from article state whenever the feed is loaded.
    """

    id: Optional[int]
    title: str
    url: str
    site_url: Optional[str] = None
    last_fetched_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    unread_count: int = 0


@dataclass
class Article:
    """Represents an article belonging to a feed."""

    id: Optional[int]
    feed_id: int
    title: str
    url: str
    summary: Optional[str] = None
    published_at: Optional[datetime] = None
    fetched_at: Optional[datetime] = None
    is_read: bool = False
    read_at: Optional[datetime] = None
    feed_title: Optional[str] = None


@dataclass
class ReadingPattern:
    """A signal used to rank unread articles."""

    id: Optional[int]
    pattern_type: str
    value: str
    source: str = SOURCE_MANUAL
    weight: float = 1.0
    created_at: Optional[datetime] = None


@dataclass
class ArticleTopic:
    """Relevance of a topic to an article."""

    article_id: int
    topic: str
    score: float


@dataclass
class ParsedArticle:
    """Article data as produced by the feed parser."""

    title: str
    url: str
    summary: Optional[str] = None
    published_at: Optional[datetime] = None


@dataclass
class ParsedFeed:
    """Feed metadata and entries as produced by the feed parser."""

    title: str
    url: str
    site_url: Optional[str] = None
    articles: list[ParsedArticle] = field(default_factory=list)


@dataclass
class DiscoveredFeed:
    """A candidate feed URL found on a website."""

    url: str
    title: Optional[str] = None


@dataclass
class OpmlFeed:
    """A feed entry from an OPML outline."""

    url: str
    title: Optional[str] = None


@dataclass
class OpmlImportResult:
    """Summary of an OPML import."""

    total_feeds: int
    imported_feeds: int
    failed_feeds: int
    errors: list[str] = field(default_factory=list)
