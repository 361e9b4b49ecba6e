"""Keyword-based topic extraction for Patina."""

import re
from typing import Optional

TITLE_WEIGHT = 3
SUMMARY_WEIGHT = 1
MIN_WORD_LENGTH = 3
MIN_TOPIC_SCORE = 0.05
MAX_TOPICS = 10

STOP_WORDS = frozenset(
    [
        "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by",
        "from", "as", "is", "was", "are", "were", "been", "be", "have", "has", "had", "do", "does",
        "did", "will", "would", "could", "should", "may", "might", "must", "shall", "can", "need",
        "dare", "ought", "used", "it", "its", "this", "that", "these", "those", "i", "you", "he",
        "she", "we", "they", "what", "which", "who", "whom", "where", "when", "why", "how", "all",
        "each", "every", "both", "few", "more", "most", "other", "some", "such", "no", "nor", "not",
        "only", "own", "same", "so", "than", "too", "very", "just", "also", "now", "new", "one",
        "two", "first", "last", "many", "much", "get", "got", "go", "going", "make", "made", "take",
        "use", "using", "via", "about", "into", "over", "after", "before", "between", "through",
    ]
)

# Anything that is not a letter or digit separates tokens; \W alone keeps "_".
_TOKEN_SEPARATOR = re.compile(r"[\W_]+")
_ALL_DIGITS = re.compile(r"[0-9]+")


def tokenize(text: str) -> list[str]:
    """Split text into lowercase alphanumeric words."""
    return [token.lower() for token in _TOKEN_SEPARATOR.split(text) if token]


def is_valid_topic_word(word: str) -> bool:
    """Check whether a token can be a topic.

    Topic words are at least three bytes long in UTF-8, so "né" qualifies
    while "ab" does not. Stop words and plain numbers are rejected.
    """
    if len(word.encode("utf-8")) < MIN_WORD_LENGTH:
        return False
    if word in STOP_WORDS:
        return False
    if _ALL_DIGITS.fullmatch(word):
        return False
    return True


def extract_topics(title: str, summary: Optional[str] = None) -> list[tuple[str, float]]:
    """Extract weighted topics from an article's title and summary.

    Words in the title count three times as much as words in the summary.
    Each word's score is its share of the total count; words scoring below
    0.05 are dropped and at most ten topics are returned, best first.

    Args:
        title: Article title
        summary: Optional cleaned article summary

    Returns:
        List of (topic, score) tuples, empty when no topic words are found
    """
    counts: dict[str, int] = {}

    for word in tokenize(title):
        if is_valid_topic_word(word):
            counts[word] = counts.get(word, 0) + TITLE_WEIGHT

    if summary:
        for word in tokenize(summary):
            if is_valid_topic_word(word):
                counts[word] = counts.get(word, 0) + SUMMARY_WEIGHT

    total = sum(counts.values())
    if total == 0:
        return []

    topics = [
        (word, count / total)
        for word, count in counts.items()
        if count / total >= MIN_TOPIC_SCORE
    ]
    topics.sort(key=lambda item: item[1], reverse=True)
    return topics[:MAX_TOPICS]
