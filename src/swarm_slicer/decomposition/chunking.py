"""Chunking strategies for prompts too large to slice in one pass."""

import logging
import math
import re
from typing import List

from ..models.subtask_models import TextChunk
from ..utils.text import (
    split_sentences_keep_punctuation,
    count_keywords,
    extract_topics,
)

logger = logging.getLogger(__name__)

ACTION_WORDS = [
    "create", "build", "implement", "analyze", "research", "test",
    "validate", "design", "develop", "write",
]
TECHNICAL_WORDS = [
    "algorithm", "system", "architecture", "integration", "framework",
    "protocol", "optimization", "scalability", "performance", "api",
]

# Blank lines, or the line break just before a markdown heading
_SECTION_BOUNDARY = re.compile(r"\n\s*\n|\n(?=[ \t]*#{1,6}\s)")
_CLAUSE_BOUNDARY = re.compile(r"(?<=[,;:])\s+|\n")

STRATEGIES = ("semantic", "structural", "balanced")


class PromptChunker:
    """
    Split oversized prompts into token-bounded chunks.

    PATTERN: Strategy selection (semantic, structural, balanced)
    CRITICAL: Never cut mid-word, units that cannot fit stay whole
    GOTCHA: Token counts use the len/4 estimate so chunks stay comparable
    """

    def __init__(self, topics_per_sentence: int = 3, balanced_ratio: float = 0.8):
        """
        Initialize chunker.

        Args:
            topics_per_sentence: Topic words taken from each sentence
            balanced_ratio: Budget fraction used by the balanced strategy
        """
        self.topics_per_sentence = topics_per_sentence
        self.balanced_ratio = balanced_ratio
        self.logger = logger

    def chunk(self, text: str, strategy: str, max_tokens: int) -> List[TextChunk]:
        """
        Chunk text with the named strategy.

        Args:
            text: Prompt text
            strategy: semantic, structural or balanced
            max_tokens: Token budget per chunk

        Returns:
            Chunks in document order
        """
        if not text or not text.strip():
            return []

        if strategy == "structural":
            chunks = self.structural_chunk(text, max_tokens)
        elif strategy == "balanced":
            budget = max(1, int(max_tokens * self.balanced_ratio))
            chunks = self.semantic_chunk(text, budget, strategy="balanced")
        else:
            if strategy != "semantic":
                self.logger.warning(
                    f"Unknown chunking strategy '{strategy}', using semantic"
                )
            chunks = self.semantic_chunk(text, max_tokens)

        self.logger.info(f"Chunked prompt into {len(chunks)} chunks ({strategy})")
        return chunks

    def semantic_chunk(
        self,
        text: str,
        max_tokens: int,
        base_offset: int = 0,
        strategy: str = "semantic",
    ) -> List[TextChunk]:
        """
        Accumulate sentences until the token budget would be exceeded.

        Args:
            text: Text to chunk
            max_tokens: Token budget per chunk
            base_offset: Offset of text inside the full prompt
            strategy: Strategy label recorded on each chunk

        Returns:
            List of chunks
        """
        return self._accumulate(
            split_sentences_keep_punctuation(text), text, max_tokens, base_offset, strategy
        )

    def clause_chunk(
        self,
        text: str,
        max_tokens: int,
        base_offset: int = 0,
        strategy: str = "semantic",
    ) -> List[TextChunk]:
        """Finer split on clause punctuation and line breaks, for oversized sentences."""
        units = [u.strip() for u in _CLAUSE_BOUNDARY.split(text) if u.strip()]
        return self._accumulate(units, text, max_tokens, base_offset, strategy)

    def _accumulate(
        self,
        units: List[str],
        text: str,
        max_tokens: int,
        base_offset: int,
        strategy: str,
    ) -> List[TextChunk]:
        chunks: List[TextChunk] = []

        current: List[str] = []
        current_chars = 0
        chunk_start = 0
        cursor = 0

        for unit in units:
            position = text.find(unit, cursor)
            if position < 0:
                position = cursor
            cursor = position + len(unit)

            candidate_chars = current_chars + len(unit) + (1 if current else 0)
            if current and math.ceil(candidate_chars / 4) > max_tokens:
                chunks.append(
                    self._build_chunk(current, base_offset + chunk_start, strategy)
                )
                current = []
                current_chars = 0
                candidate_chars = len(unit)

            if not current:
                chunk_start = position
            current.append(unit)
            current_chars = candidate_chars

        if current:
            chunks.append(self._build_chunk(current, base_offset + chunk_start, strategy))

        return chunks

    def structural_chunk(self, text: str, max_tokens: int) -> List[TextChunk]:
        """
        Split on headings and blank lines, re-chunking oversized sections.

        Args:
            text: Text to chunk
            max_tokens: Token budget per chunk

        Returns:
            List of chunks
        """
        chunks: List[TextChunk] = []
        cursor = 0

        for raw_section in _SECTION_BOUNDARY.split(text):
            section = raw_section.strip()
            if not section:
                continue

            position = text.find(section, cursor)
            if position < 0:
                position = cursor
            cursor = position + len(section)

            if math.ceil(len(section) / 4) > max_tokens:
                chunks.extend(
                    self.semantic_chunk(
                        section, max_tokens, base_offset=position, strategy="structural"
                    )
                )
            else:
                chunks.append(self._build_chunk([section], position, "structural"))

        return chunks

    def _build_chunk(self, sentences: List[str], start: int, strategy: str) -> TextChunk:
        content = " ".join(sentences)

        topics: List[str] = []
        for sentence in sentences:
            for topic in extract_topics(sentence, limit=self.topics_per_sentence):
                if topic not in topics:
                    topics.append(topic)

        return TextChunk(
            content=content,
            token_count=math.ceil(len(content) / 4),
            start_index=start,
            end_index=start + len(content),
            topics=topics,
            importance=self.score_importance(content),
            strategy=strategy,
        )

    def score_importance(self, content: str) -> float:
        """Score how action-heavy a chunk is, between 0.5 and 1.0."""
        score = (
            0.5
            + 0.1 * count_keywords(content, ACTION_WORDS)
            + 0.05 * count_keywords(content, TECHNICAL_WORDS)
        )
        return min(1.0, round(score, 4))
