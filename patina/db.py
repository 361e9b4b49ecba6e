"""SQLite storage engine for Patina."""

import sqlite3
import threading
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .models import Article, ArticleTopic, Feed, ParsedArticle, ParsedFeed, ReadingPattern

DEFAULT_DB_PATH = Path.home() / ".patina" / "patina.db"

PATTERN_WEIGHT_STEP = 0.1

_FEED_SELECT = """
    SELECT f.id, f.title, f.url, f.site_url, f.last_fetched_at, f.created_at,
           (SELECT COUNT(*) FROM articles a
            WHERE a.feed_id = f.id AND a.is_read = 0) AS unread_count
    FROM feeds f
"""

_ARTICLE_SELECT = """
    SELECT a.id, a.feed_id, a.title, a.url, a.summary, a.published_at, a.fetched_at,
           a.is_read, a.read_at, f.title AS feed_title
    FROM articles a
    JOIN feeds f ON f.id = a.feed_id
"""

_SCHEMA = """
    CREATE TABLE IF NOT EXISTS feeds (
        id INTEGER PRIMARY KEY,
        title TEXT NOT NULL,
        url TEXT NOT NULL UNIQUE,
        site_url TEXT,
        last_fetched_at INTEGER,
        created_at INTEGER NOT NULL
    );

    CREATE TABLE IF NOT EXISTS articles (
        id INTEGER PRIMARY KEY,
        feed_id INTEGER NOT NULL REFERENCES feeds(id) ON DELETE CASCADE,
        title TEXT NOT NULL,
        url TEXT NOT NULL,
        summary TEXT,
        published_at INTEGER,
        fetched_at INTEGER NOT NULL,
        is_read INTEGER DEFAULT 0,
        read_at INTEGER,
        UNIQUE(feed_id, url)
    );

    CREATE TABLE IF NOT EXISTS reading_patterns (
        id INTEGER PRIMARY KEY,
        pattern_type TEXT NOT NULL,
        value TEXT NOT NULL,
        source TEXT NOT NULL,
        weight REAL DEFAULT 1.0,
        created_at INTEGER NOT NULL,
        UNIQUE(pattern_type, value)
    );

    CREATE TABLE IF NOT EXISTS article_topics (
        article_id INTEGER REFERENCES articles(id) ON DELETE CASCADE,
        topic TEXT NOT NULL,
        score REAL,
        PRIMARY KEY(article_id, topic)
    );

    CREATE INDEX IF NOT EXISTS idx_articles_feed_id ON articles(feed_id);
    CREATE INDEX IF NOT EXISTS idx_articles_is_read ON articles(is_read);
    CREATE INDEX IF NOT EXISTS idx_articles_published_at ON articles(published_at);
    CREATE INDEX IF NOT EXISTS idx_article_topics_topic ON article_topics(topic);
    CREATE INDEX IF NOT EXISTS idx_articles_feed_unread
        ON articles(feed_id, is_read) WHERE is_read = 0;
"""


class Database:
    """SQLite database interface for Patina.

    A single connection is shared by every caller and guarded by a lock that
    is held for exactly one operation. Each operation commits on its own;
    sequences of operations are not atomic.
    """

    def __init__(self, db_path: Optional[Path] = None):
        """Initialize database connection and schema.

        Args:
            db_path: Path to the SQLite database file. Defaults to ~/.patina/patina.db
        """
        self.db_path = Path(db_path) if db_path else DEFAULT_DB_PATH
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        """Get or create database connection. Caller must hold the lock."""
        if self._conn is None:
            conn = sqlite3.connect(self.db_path, check_same_thread=False)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")
            conn.execute("PRAGMA cache_size = -8000")
            conn.execute("PRAGMA mmap_size = 67108864")
            conn.execute("PRAGMA foreign_keys = ON")
            self._conn = conn
        return self._conn

    def _init_db(self) -> None:
        """Create tables and indexes if they don't exist."""
        with self._lock:
            conn = self._get_conn()
            conn.executescript(_SCHEMA)
            conn.commit()

    def close(self) -> None:
        """Close database connection."""
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None

    # Feed operations

    def insert_feed(self, feed: Feed) -> Feed:
        """Add a new feed subscription.

        Args:
            feed: Feed object to add (id and unread_count are ignored)

        Returns:
            Feed object with assigned id and an unread count of zero

        Raises:
            sqlite3.IntegrityError: If a feed with the same URL already exists
        """
        now = datetime.now(timezone.utc)
        feed.created_at = feed.created_at or now
        feed.last_fetched_at = feed.last_fetched_at or now

        with self._lock:
            conn = self._get_conn()
            with conn:
                cursor = conn.execute(
                    """
                    INSERT INTO feeds (title, url, site_url, last_fetched_at, created_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        feed.title,
                        feed.url,
                        feed.site_url,
                        _to_timestamp(feed.last_fetched_at),
                        _to_timestamp(feed.created_at),
                    ),
                )

        feed.id = cursor.lastrowid
        feed.unread_count = 0
        return feed

    def get_feed(self, feed_id: int) -> Optional[Feed]:
        """Get a feed by id.

        Returns:
            Feed with its current unread count, or None if not found
        """
        with self._lock:
            row = self._get_conn().execute(
                _FEED_SELECT + " WHERE f.id = ?", (feed_id,)
            ).fetchone()
        return self._row_to_feed(row) if row else None

    def get_feed_by_url(self, url: str) -> Optional[Feed]:
        """Get a feed by its feed URL.

        Returns:
            Feed with its current unread count, or None if not found
        """
        with self._lock:
            row = self._get_conn().execute(
                _FEED_SELECT + " WHERE f.url = ?", (url,)
            ).fetchone()
        return self._row_to_feed(row) if row else None

    def get_all_feeds(self) -> list[Feed]:
        """List all feeds ordered case-insensitively by title."""
        with self._lock:
            rows = self._get_conn().execute(
                _FEED_SELECT + " ORDER BY f.title COLLATE NOCASE"
            ).fetchall()
        return [self._row_to_feed(row) for row in rows]

    def update_feed_metadata(
        self,
        feed_id: int,
        data: ParsedFeed,
        last_fetched_at: Optional[datetime] = None,
    ) -> bool:
        """Update title, site URL and last fetch time of a feed.

        Articles are left untouched.

        Returns:
            True if the feed was updated, False if not found
        """
        fetched = last_fetched_at or datetime.now(timezone.utc)
        with self._lock:
            conn = self._get_conn()
            with conn:
                cursor = conn.execute(
                    "UPDATE feeds SET title = ?, site_url = ?, last_fetched_at = ? WHERE id = ?",
                    (data.title, data.site_url, _to_timestamp(fetched), feed_id),
                )
        return cursor.rowcount > 0

    def delete_feed(self, feed_id: int) -> bool:
        """Delete a feed together with its articles and their topics.

        Returns:
            True if the feed was removed, False if not found
        """
        with self._lock:
            conn = self._get_conn()
            with conn:
                cursor = conn.execute("DELETE FROM feeds WHERE id = ?", (feed_id,))
        return cursor.rowcount > 0

    def _row_to_feed(self, row: sqlite3.Row) -> Feed:
        """Convert a database row to a Feed object."""
        return Feed(
            id=row["id"],
            title=row["title"],
            url=row["url"],
            site_url=row["site_url"],
            last_fetched_at=_parse_timestamp(row["last_fetched_at"]),
            created_at=_parse_timestamp(row["created_at"]),
            unread_count=row["unread_count"],
        )

    # Article operations

    def insert_article(self, feed_id: int, article: ParsedArticle) -> Article:
        """Insert an article unless the feed already has one with the same URL.

        A duplicate is not an error: the stored article is returned unchanged,
        so callers must not assume the returned id is new.

        Raises:
            sqlite3.IntegrityError: If the owning feed does not exist
        """
        fetched_at = _to_timestamp(datetime.now(timezone.utc))

        with self._lock:
            conn = self._get_conn()
            try:
                with conn:
                    cursor = conn.execute(
                        """
                        INSERT INTO articles
                            (feed_id, title, url, summary, published_at, fetched_at, is_read)
                        VALUES (?, ?, ?, ?, ?, ?, 0)
                        """,
                        (
                            feed_id,
                            article.title,
                            article.url,
                            article.summary,
                            _to_timestamp(article.published_at),
                            fetched_at,
                        ),
                    )
                    article_id = cursor.lastrowid
            except sqlite3.IntegrityError:
                row = conn.execute(
                    _ARTICLE_SELECT + " WHERE a.feed_id = ? AND a.url = ?",
                    (feed_id, article.url),
                ).fetchone()
                if row is None:
                    raise
                return self._row_to_article(row)

            row = conn.execute(_ARTICLE_SELECT + " WHERE a.id = ?", (article_id,)).fetchone()
        return self._row_to_article(row)

    def get_existing_article_urls(self, feed_id: int, urls: Iterable[str]) -> set[str]:
        """Return the subset of urls already stored for a feed."""
        urls = list(urls)
        if not urls:
            return set()

        placeholders = ", ".join("?" for _ in urls)
        with self._lock:
            rows = self._get_conn().execute(
                f"SELECT url FROM articles WHERE feed_id = ? AND url IN ({placeholders})",
                [feed_id, *urls],
            ).fetchall()
        return {row["url"] for row in rows}

    def get_article(self, article_id: int) -> Optional[Article]:
        """Get an article by id, with its feed title.

        Returns:
            Article object or None if not found
        """
        with self._lock:
            row = self._get_conn().execute(
                _ARTICLE_SELECT + " WHERE a.id = ?", (article_id,)
            ).fetchone()
        return self._row_to_article(row) if row else None

    def get_articles_for_feed(self, feed_id: int) -> list[Article]:
        """List a feed's articles, newest first.

        Articles without a publication time are placed by their fetch time.
        """
        with self._lock:
            rows = self._get_conn().execute(
                _ARTICLE_SELECT
                + " WHERE a.feed_id = ? ORDER BY COALESCE(a.published_at, a.fetched_at) DESC",
                (feed_id,),
            ).fetchall()
        return [self._row_to_article(row) for row in rows]

    def get_all_unread_articles(self) -> list[Article]:
        """List unread articles across all feeds.

        Dated articles come first, newest first; undated ones follow.
        """
        with self._lock:
            rows = self._get_conn().execute(
                _ARTICLE_SELECT
                + " WHERE a.is_read = 0 ORDER BY a.published_at IS NULL, a.published_at DESC"
            ).fetchall()
        return [self._row_to_article(row) for row in rows]

    def get_recent_articles(self, limit: int) -> list[Article]:
        """List read and unread articles in the same order as get_all_unread_articles."""
        with self._lock:
            rows = self._get_conn().execute(
                _ARTICLE_SELECT
                + " ORDER BY a.published_at IS NULL, a.published_at DESC LIMIT ?",
                (limit,),
            ).fetchall()
        return [self._row_to_article(row) for row in rows]

    def mark_article_read(self, article_id: int) -> bool:
        """Mark an article as read and stamp the read time.

        Returns:
            True if article was updated, False if not found
        """
        now = _to_timestamp(datetime.now(timezone.utc))
        with self._lock:
            conn = self._get_conn()
            with conn:
                cursor = conn.execute(
                    "UPDATE articles SET is_read = 1, read_at = ? WHERE id = ?",
                    (now, article_id),
                )
        return cursor.rowcount > 0

    def mark_article_unread(self, article_id: int) -> bool:
        """Mark an article as unread and clear the read time.

        Returns:
            True if article was updated, False if not found
        """
        with self._lock:
            conn = self._get_conn()
            with conn:
                cursor = conn.execute(
                    "UPDATE articles SET is_read = 0, read_at = NULL WHERE id = ?",
                    (article_id,),
                )
        return cursor.rowcount > 0

    def _row_to_article(self, row: sqlite3.Row) -> Article:
        """Convert a database row to an Article object."""
        return Article(
            id=row["id"],
            feed_id=row["feed_id"],
            title=row["title"],
            url=row["url"],
            summary=row["summary"],
            published_at=_parse_timestamp(row["published_at"]),
            fetched_at=_parse_timestamp(row["fetched_at"]),
            is_read=bool(row["is_read"]),
            read_at=_parse_timestamp(row["read_at"]),
            feed_title=row["feed_title"],
        )

    # Reading patterns

    def get_reading_patterns(self) -> list[ReadingPattern]:
        """List reading patterns, strongest first."""
        with self._lock:
            rows = self._get_conn().execute(
                """
                SELECT id, pattern_type, value, source, weight, created_at
                FROM reading_patterns
                ORDER BY weight DESC
                """
            ).fetchall()
        return [self._row_to_pattern(row) for row in rows]

    def add_reading_pattern(self, pattern_type: str, value: str, source: str) -> ReadingPattern:
        """Add a reading pattern, or strengthen it if it already exists.

        A repeated (pattern_type, value) pair gains PATTERN_WEIGHT_STEP of
        weight; its source and creation time are kept.

        Returns:
            The stored pattern after the write
        """
        now = _to_timestamp(datetime.now(timezone.utc))
        with self._lock:
            conn = self._get_conn()
            try:
                with conn:
                    conn.execute(
                        """
                        INSERT INTO reading_patterns (pattern_type, value, source, weight, created_at)
                        VALUES (?, ?, ?, 1.0, ?)
                        """,
                        (pattern_type, value, source, now),
                    )
            except sqlite3.IntegrityError:
                with conn:
                    conn.execute(
                        """
                        UPDATE reading_patterns SET weight = weight + ?
                        WHERE pattern_type = ? AND value = ?
                        """,
                        (PATTERN_WEIGHT_STEP, pattern_type, value),
                    )

            row = conn.execute(
                """
                SELECT id, pattern_type, value, source, weight, created_at
                FROM reading_patterns
                WHERE pattern_type = ? AND value = ?
                """,
                (pattern_type, value),
            ).fetchone()
        return self._row_to_pattern(row)

    def delete_reading_pattern(self, pattern_id: int) -> bool:
        """Delete a reading pattern.

        Returns:
            True if the pattern was removed, False if not found
        """
        with self._lock:
            conn = self._get_conn()
            with conn:
                cursor = conn.execute("DELETE FROM reading_patterns WHERE id = ?", (pattern_id,))
        return cursor.rowcount > 0

    def reset_reading_patterns(self) -> None:
        """Delete all reading patterns."""
        with self._lock:
            conn = self._get_conn()
            with conn:
                conn.execute("DELETE FROM reading_patterns")

    def _row_to_pattern(self, row: sqlite3.Row) -> ReadingPattern:
        """Convert a database row to a ReadingPattern object."""
        return ReadingPattern(
            id=row["id"],
            pattern_type=row["pattern_type"],
            value=row["value"],
            source=row["source"],
            weight=row["weight"],
            created_at=_parse_timestamp(row["created_at"]),
        )

    # Article topics

    def record_article_topic(self, article_id: int, topic: str, score: float) -> None:
        """Store the score of a topic for an article, replacing any previous score.

        Raises:
            sqlite3.IntegrityError: If the article does not exist
        """
        with self._lock:
            conn = self._get_conn()
            with conn:
                cursor = conn.execute(
                    "UPDATE article_topics SET score = ? WHERE article_id = ? AND topic = ?",
                    (score, article_id, topic),
                )
                if cursor.rowcount == 0:
                    conn.execute(
                        "INSERT INTO article_topics (article_id, topic, score) VALUES (?, ?, ?)",
                        (article_id, topic, score),
                    )

    def get_article_topics(self, article_id: int) -> list[ArticleTopic]:
        """List the topics recorded for an article, highest score first."""
        with self._lock:
            rows = self._get_conn().execute(
                """
                SELECT article_id, topic, score FROM article_topics
                WHERE article_id = ?
                ORDER BY score DESC
                """,
                (article_id,),
            ).fetchall()
        return [
            ArticleTopic(article_id=row["article_id"], topic=row["topic"], score=row["score"])
            for row in rows
        ]

    def get_unread_articles_with_topics(self, topics: list[str], limit: int) -> list[Article]:
        """Rank unread articles by their summed score over the given topics.

        Articles with no matching topic score 0 and still qualify. Ties are
        broken randomly, so repeated calls may order equal scores differently.
        With no topics, a uniformly random sample of unread articles is
        returned instead.
        """
        with self._lock:
            conn = self._get_conn()
            if not topics:
                rows = conn.execute(
                    _ARTICLE_SELECT + " WHERE a.is_read = 0 ORDER BY RANDOM() LIMIT ?",
                    (limit,),
                ).fetchall()
                return [self._row_to_article(row) for row in rows]

            placeholders = ", ".join("?" for _ in topics)
            rows = conn.execute(
                f"""
                SELECT a.id, a.feed_id, a.title, a.url, a.summary, a.published_at,
                       a.fetched_at, a.is_read, a.read_at, f.title AS feed_title,
                       COALESCE(topic_scores.total_score, 0) AS topic_score
                FROM articles a
                JOIN feeds f ON f.id = a.feed_id
                LEFT JOIN (
                    SELECT article_id, SUM(score) AS total_score
                    FROM article_topics
                    WHERE topic IN ({placeholders})
                    GROUP BY article_id
                ) topic_scores ON topic_scores.article_id = a.id
                WHERE a.is_read = 0
                ORDER BY topic_score DESC, RANDOM()
                LIMIT ?
                """,
                [*topics, limit],
            ).fetchall()
        return [self._row_to_article(row) for row in rows]

    def get_top_read_topics(self, limit: int) -> list[tuple[str, float]]:
        """Sum topic scores over read articles, highest total first."""
        with self._lock:
            rows = self._get_conn().execute(
                """
                SELECT at.topic, SUM(at.score) AS total_score
                FROM article_topics at
                JOIN articles a ON a.id = at.article_id
                WHERE a.is_read = 1
                GROUP BY at.topic
                ORDER BY total_score DESC
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
        return [(row["topic"], row["total_score"]) for row in rows]


def _to_timestamp(value: Optional[datetime]) -> Optional[int]:
    """Convert a datetime to Unix seconds for storage."""
    if value is None:
        return None
    return int(value.timestamp())


def _parse_timestamp(value: Optional[int]) -> Optional[datetime]:
    """Parse Unix seconds from the database into an aware UTC datetime."""
    if value is None:
        return None
    try:
        return datetime.fromtimestamp(value, tz=timezone.utc)
    except (ValueError, TypeError, OverflowError, OSError):
        return None
