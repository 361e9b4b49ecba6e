"""Serendipity: surfacing unread articles from reading patterns."""

import logging

from .db import Database
from .models import (
    PATTERN_EXCLUDED,
    PATTERN_KEYWORD,
    PATTERN_TOPIC,
    SOURCE_AUTO,
    Article,
)
from .topics import extract_topics

logger = logging.getLogger(__name__)

AUTO_PATTERN_THRESHOLD = 2.0
AUTO_PATTERN_CANDIDATES = 20


def get_serendipity_articles(db: Database, limit: int) -> list[Article]:
    """Select unread articles likely to interest the reader.

    Topic and keyword patterns rank the candidates; excluded patterns remove
    any article whose title or summary contains them (case-insensitive).
    Without any topic or keyword pattern, a random sample of unread articles
    is returned.

    Args:
        db: Database instance
        limit: Maximum number of articles to return

    Returns:
        Up to limit articles, in ranked (or random) order
    """
    if limit <= 0:
        return []

    patterns = db.get_reading_patterns()
    topics = [p.value for p in patterns if p.pattern_type in (PATTERN_TOPIC, PATTERN_KEYWORD)]
    excluded = [p.value.lower() for p in patterns if p.pattern_type == PATTERN_EXCLUDED]

    # Over-fetch so exclusions still leave enough articles.
    candidates = db.get_unread_articles_with_topics(topics, limit * 2)

    if excluded:
        candidates = [a for a in candidates if not _is_excluded(a, excluded)]

    logger.debug(
        "Serendipity: %d topic(s), %d exclusion(s), %d candidate(s)",
        len(topics),
        len(excluded),
        len(candidates),
    )
    return candidates[:limit]


def _is_excluded(article: Article, excluded: list[str]) -> bool:
    title = article.title.lower()
    summary = (article.summary or "").lower()
    return any(value in title or value in summary for value in excluded)


def record_reading(db: Database, article: Article) -> list[tuple[str, float]]:
    """Record the topics of a read article and refresh auto patterns.

    Args:
        db: Database instance
        article: The article that was read

    Returns:
        The topics recorded for the article
    """
    topics = extract_topics(article.title, article.summary)
    for topic, score in topics:
        db.record_article_topic(article.id, topic, score)

    update_auto_patterns(db)
    return topics


def update_auto_patterns(db: Database) -> None:
    """Promote frequently read topics to automatic reading patterns.

    Every topic whose summed score over read articles reaches
    AUTO_PATTERN_THRESHOLD is added as a topic pattern; topics that are
    already patterns gain weight.
    """
    for topic, score in db.get_top_read_topics(AUTO_PATTERN_CANDIDATES):
        if score >= AUTO_PATTERN_THRESHOLD:
            pattern = db.add_reading_pattern(PATTERN_TOPIC, topic, SOURCE_AUTO)
            logger.debug("Auto pattern %r now has weight %.1f", topic, pattern.weight)
