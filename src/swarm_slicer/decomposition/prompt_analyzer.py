"""Heuristic prompt analysis for slicing decisions."""

import logging
import math
import re
from typing import Optional

from ..models.subtask_models import PromptAnalysis, SlicingConfig
from ..utils.text import (
    estimate_tokens,
    split_sentences,
    split_paragraphs,
    count_keywords,
    has_any_keyword,
    extract_topics,
)


logger = logging.getLogger(__name__)

RESEARCH_KEYWORDS = [
    "research", "find", "investigate", "explore", "discover", "study", "examine",
]
ANALYSIS_KEYWORDS = [
    "analyze", "evaluate", "compare", "assess", "review", "critique", "interpret",
]
CREATION_KEYWORDS = [
    "create", "build", "write", "generate", "develop", "design", "implement",
    "construct",
]
VALIDATION_KEYWORDS = [
    "test", "validate", "verify", "check", "confirm", "ensure", "review",
]

TECHNICAL_KEYWORDS = [
    "implement", "algorithm", "system", "architecture", "integration",
    "framework", "protocol", "optimization", "scalability", "performance",
]
SEQUENCING_KEYWORDS = [
    "first", "then", "finally", "after", "next", "step", "phase",
    "subsequently", "following", "preceding",
]

_BULLET_LINE = re.compile(r"^\s*[-*•]\s+", re.MULTILINE)
_NUMBERED_LINE = re.compile(r"^\s*\d+[.)]\s+", re.MULTILINE)
_STRUCTURE_PATTERNS = [
    _BULLET_LINE,
    _NUMBERED_LINE,
    re.compile(r"^#{1,6}\s", re.MULTILINE),  # Markdown headers
    re.compile(r"^\s*[A-Za-z][\w ]{0,30}:\s+\S", re.MULTILINE),  # key: value
    re.compile(r"\|.*\|"),  # Tables
]

MIN_SLICES = 2
MAX_SLICES = 20


class PromptAnalyzer:
    """
    Computes statistics and a complexity score for a raw prompt.

    PATTERN: Multi-factor heuristic scoring capped to the 0-1 range
    CRITICAL: Must never raise, empty prompts yield a minimal analysis
    GOTCHA: Token counts are estimates (len/4), not tokenizer output
    """

    def __init__(self, config: Optional[SlicingConfig] = None):
        """
        Initialize analyzer.

        Args:
            config: Slicing config holding the large-prompt thresholds
        """
        self.config = config or SlicingConfig()
        self.logger = logging.getLogger(__name__)

    def analyze(self, prompt: str, config: Optional[SlicingConfig] = None) -> PromptAnalysis:
        """
        Analyze a prompt.

        Args:
            prompt: Raw user prompt
            config: Optional override for thresholds

        Returns:
            PromptAnalysis with counts, flags and suggested slice count
        """
        config = config or self.config
        text = prompt or ""

        token_count = estimate_tokens(text)
        word_count = len(text.split())
        sentence_count = len(split_sentences(text))
        paragraph_count = len(split_paragraphs(text))

        complexity = self.calculate_complexity(text, word_count)
        suggested = self.suggest_slice_count(token_count, sentence_count, complexity)

        requires_large = (
            token_count > config.large_token_threshold
            or sentence_count > config.large_sentence_threshold
            or paragraph_count > config.large_paragraph_threshold
            or complexity > config.large_complexity_threshold
        )

        analysis = PromptAnalysis(
            token_count=token_count,
            word_count=word_count,
            sentence_count=sentence_count,
            paragraph_count=paragraph_count,
            complexity=complexity,
            has_research_keywords=has_any_keyword(text, RESEARCH_KEYWORDS),
            has_analysis_keywords=has_any_keyword(text, ANALYSIS_KEYWORDS),
            has_creation_keywords=has_any_keyword(text, CREATION_KEYWORDS),
            has_validation_keywords=has_any_keyword(text, VALIDATION_KEYWORDS),
            has_structured_content=self.detect_structured_content(text),
            key_topics=extract_topics(text, limit=10),
            suggested_slice_count=suggested,
            requires_large_prompt_slicing=requires_large,
        )

        self.logger.debug(
            f"Analyzed prompt: {token_count} tokens, {sentence_count} sentences, "
            f"complexity {complexity:.2f}, suggested {suggested} slices"
        )

        return analysis

    def calculate_complexity(self, text: str, word_count: Optional[int] = None) -> float:
        """
        Score prompt complexity on a 0-1 scale.

        PATTERN: Length + technical density + sequencing density + list density

        Args:
            text: Prompt text
            word_count: Precomputed word count

        Returns:
            Complexity score capped at 1.0
        """
        if word_count is None:
            word_count = len(text.split())

        score = 0.2

        if word_count > 1500:
            score += 0.25
        elif word_count > 800:
            score += 0.2
        elif word_count > 300:
            score += 0.15
        elif word_count > 100:
            score += 0.1

        score += min(0.3, count_keywords(text, TECHNICAL_KEYWORDS) * 0.05)
        score += min(0.2, count_keywords(text, SEQUENCING_KEYWORDS) * 0.03)

        list_items = len(_BULLET_LINE.findall(text)) + len(_NUMBERED_LINE.findall(text))
        score += min(0.15, list_items * 0.02)

        return round(min(1.0, score), 4)

    def suggest_slice_count(
        self,
        token_count: int,
        sentence_count: int,
        complexity: float,
    ) -> int:
        """
        Suggest how many subtasks a prompt should become.

        Args:
            token_count: Estimated tokens
            sentence_count: Sentence count
            complexity: Complexity score

        Returns:
            Slice count clamped to [2, 20]
        """
        base = math.ceil(token_count / 1000)
        if sentence_count > 20:
            base += math.ceil(sentence_count / 20)

        scaled = math.ceil(base * (1 + complexity))
        return max(MIN_SLICES, min(MAX_SLICES, scaled))

    def detect_structured_content(self, text: str) -> bool:
        return any(pattern.search(text) for pattern in _STRUCTURE_PATTERNS)
