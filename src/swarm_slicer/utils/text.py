"""Text heuristics shared by the analyzer, chunker and injector."""

import math
import re
from collections import Counter
from typing import Iterable, List

_SENTENCE_TERMINATORS = re.compile(r"[.!?]+")
_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")
_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")
_TOPIC_WORD = re.compile(r"\b[a-z]{4,}\b")

STOPWORDS = {
    "this", "that", "with", "from", "have", "will", "would", "could", "should",
    "there", "their", "them", "then", "than", "they", "what", "when", "where",
    "which", "while", "about", "into", "over", "also", "each", "such", "some",
    "more", "most", "make", "made", "must", "only", "other", "very", "just",
    "your", "been", "were", "being", "these", "those", "after", "before",
    "using", "used", "need", "needs", "like", "include", "including", "within",
    "does", "done", "first", "next", "finally", "please", "based",
}


def estimate_tokens(text: str) -> int:
    """
    Estimate token count.

    PATTERN: Rough estimation (1 token ~ 4 characters), rounded up

    Args:
        text: Text to estimate

    Returns:
        Estimated token count (0 for empty text)
    """
    return math.ceil(len(text) / 4)


def split_sentences(text: str) -> List[str]:
    """Split on runs of terminal punctuation, dropping empty fragments."""
    return [s.strip() for s in _SENTENCE_TERMINATORS.split(text) if s.strip()]


def split_sentences_keep_punctuation(text: str) -> List[str]:
    """Split into sentences that keep their terminators, for re-joining."""
    return [s.strip() for s in _SENTENCE_BOUNDARY.split(text) if s.strip()]


def split_paragraphs(text: str) -> List[str]:
    return [p.strip() for p in _PARAGRAPH_BREAK.split(text) if p.strip()]


def count_keyword(text: str, keyword: str) -> int:
    """Count whole-word, case-insensitive occurrences of a keyword."""
    return len(re.findall(rf"\b{re.escape(keyword)}\b", text.lower()))


def count_keywords(text: str, keywords: Iterable[str]) -> int:
    lowered = text.lower()
    return sum(
        len(re.findall(rf"\b{re.escape(keyword)}\b", lowered)) for keyword in keywords
    )


def has_any_keyword(text: str, keywords: Iterable[str]) -> bool:
    return count_keywords(text, keywords) > 0


def extract_topics(text: str, limit: int = 10) -> List[str]:
    """
    Extract the most frequent content words.

    Args:
        text: Source text
        limit: Maximum topics returned

    Returns:
        Topic words ordered by frequency, ties broken by first appearance
    """
    words = [w for w in _TOPIC_WORD.findall(text.lower()) if w not in STOPWORDS]
    return [word for word, _ in Counter(words).most_common(limit)]
