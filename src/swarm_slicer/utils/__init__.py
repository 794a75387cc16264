"""Utility functions and helpers."""

from .events import EventBus
from .text import (
    estimate_tokens,
    split_sentences,
    split_sentences_keep_punctuation,
    split_paragraphs,
    count_keyword,
    count_keywords,
    has_any_keyword,
    extract_topics,
)

__all__ = [
    "EventBus",
    "estimate_tokens",
    "split_sentences",
    "split_sentences_keep_punctuation",
    "split_paragraphs",
    "count_keyword",
    "count_keywords",
    "has_any_keyword",
    "extract_topics",
]
