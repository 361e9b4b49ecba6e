"""Tests for serendipity surfacing and auto pattern promotion."""

import tempfile
from pathlib import Path

import pytest

from patina.db import Database
from patina.models import Article, Feed, ParsedArticle
from patina.serendipity import get_serendipity_articles, record_reading, update_auto_patterns


@pytest.fixture
def db():
    """Create a temporary database for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "test.db"
        database = Database(db_path)
        yield database
        database.close()


@pytest.fixture
def feed(db: Database) -> Feed:
    """Create a test feed in the database."""
    return db.insert_feed(Feed(id=None, title="Test Feed", url="https://example.com/feed.xml"))


def _add(db: Database, feed: Feed, slug: str, title: str, summary=None) -> Article:
    return db.insert_article(
        feed.id, ParsedArticle(title=title, url=f"https://example.com/{slug}", summary=summary)
    )


class TestGetSerendipityArticles:
    """Tests for get_serendipity_articles."""

    def test_ranks_by_topic_patterns(self, db: Database, feed: Feed):
        best = _add(db, feed, "best", "Best")
        good = _add(db, feed, "good", "Good")
        _add(db, feed, "other", "Other")
        db.record_article_topic(best.id, "rust", 0.6)
        db.record_article_topic(good.id, "rust", 0.3)
        db.add_reading_pattern("topic", "rust", "manual")

        articles = get_serendipity_articles(db, 2)

        assert [a.id for a in articles] == [best.id, good.id]

    def test_keyword_patterns_rank_too(self, db: Database, feed: Feed):
        _add(db, feed, "plain", "Plain")
        match = _add(db, feed, "match", "Match")
        db.record_article_topic(match.id, "python", 0.4)
        db.add_reading_pattern("keyword", "python", "manual")

        assert get_serendipity_articles(db, 1)[0].id == match.id

    def test_excluded_patterns_filter_title_and_summary(self, db: Database, feed: Feed):
        _add(db, feed, "t", "All About CATS", "fluffy")
        _add(db, feed, "s", "Pets", "A story about my cats")
        keep = _add(db, feed, "k", "Dogs", "Good boys")
        db.add_reading_pattern("topic", "pets", "manual")
        db.add_reading_pattern("excluded", "Cats", "manual")

        articles = get_serendipity_articles(db, 10)

        assert [a.id for a in articles] == [keep.id]
        for article in articles:
            assert "cats" not in article.title.lower()
            assert "cats" not in (article.summary or "").lower()

    def test_fallback_without_inclusion_patterns(self, db: Database, feed: Feed):
        """Test that a reader with no patterns still gets exactly limit articles."""
        for i in range(6):
            _add(db, feed, str(i), f"Article {i}")

        articles = get_serendipity_articles(db, 4)

        assert len(articles) == 4
        assert len({a.id for a in articles}) == 4

    def test_fallback_still_applies_exclusions(self, db: Database, feed: Feed):
        for i in range(3):
            _add(db, feed, f"cat{i}", f"Cats {i}")
        dog = _add(db, feed, "dog", "Dogs")
        db.add_reading_pattern("excluded", "cats", "manual")

        assert [a.id for a in get_serendipity_articles(db, 5)] == [dog.id]

    def test_only_unread_articles(self, db: Database, feed: Feed):
        read = _add(db, feed, "read", "Read")
        unread = _add(db, feed, "unread", "Unread")
        db.mark_article_read(read.id)

        assert [a.id for a in get_serendipity_articles(db, 5)] == [unread.id]

    def test_non_positive_limit(self, db: Database, feed: Feed):
        _add(db, feed, "a", "A")

        assert get_serendipity_articles(db, 0) == []


class TestRecordReading:
    """Tests for recording a read article."""

    def test_records_extracted_topics(self, db: Database, feed: Feed):
        article = _add(db, feed, "rust", "Rust Programming", "Systems programming in Rust")
        db.mark_article_read(article.id)

        topics = record_reading(db, db.get_article(article.id))

        stored = {t.topic: t.score for t in db.get_article_topics(article.id)}
        assert set(stored) == {topic for topic, _ in topics}
        assert "rust" in stored
        assert "programming" in stored

    def test_promotes_topics_read_often(self, db: Database, feed: Feed):
        """Test that a topic is promoted once its read score reaches 2.0."""
        for i in range(3):
            article = _add(db, feed, f"rust{i}", "Rust")
            db.mark_article_read(article.id)
            record_reading(db, db.get_article(article.id))

            patterns = db.get_reading_patterns()
            if i == 0:
                assert patterns == []

        assert len(patterns) == 1
        pattern = patterns[0]
        assert (pattern.pattern_type, pattern.value, pattern.source) == ("topic", "rust", "auto")
        assert pattern.weight == pytest.approx(1.1)


class TestUpdateAutoPatterns:
    """Tests for update_auto_patterns."""

    def test_below_threshold_not_promoted(self, db: Database, feed: Feed):
        article = _add(db, feed, "a", "A")
        db.record_article_topic(article.id, "niche", 1.5)
        db.mark_article_read(article.id)

        update_auto_patterns(db)

        assert db.get_reading_patterns() == []

    def test_unread_topics_ignored(self, db: Database, feed: Feed):
        article = _add(db, feed, "a", "A")
        db.record_article_topic(article.id, "popular", 5.0)

        update_auto_patterns(db)

        assert db.get_reading_patterns() == []

    def test_strengthens_manual_pattern(self, db: Database, feed: Feed):
        db.add_reading_pattern("topic", "rust", "manual")
        article = _add(db, feed, "a", "A")
        db.record_article_topic(article.id, "rust", 2.0)
        db.mark_article_read(article.id)

        update_auto_patterns(db)

        patterns = db.get_reading_patterns()
        assert len(patterns) == 1
        assert patterns[0].source == "manual"
        assert patterns[0].weight == pytest.approx(1.1)
