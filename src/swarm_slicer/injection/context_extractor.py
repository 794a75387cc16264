"""Pattern-based extraction of contextual metadata from the original prompt."""

import logging
import math
import re
from typing import Dict, List, Optional, Pattern

from ..models.subtask_models import SubtaskType
from ..models.todo_models import ContextualMetadata
from ..utils.text import count_keywords, split_sentences_keep_punctuation

logger = logging.getLogger(__name__)

UNSPECIFIED = "unspecified"

_LABEL_VALUE = r"\s*:\s*([^\n]+)"

TONE_PATTERNS = [
    re.compile(r"\btone" + _LABEL_VALUE, re.IGNORECASE),
    re.compile(
        r"\b(formal|informal|professional|casual|friendly|authoritative|conversational)\b",
        re.IGNORECASE,
    ),
    re.compile(r"\bstyle(?!\s+guide)" + _LABEL_VALUE, re.IGNORECASE),
]

FORMAT_PATTERNS = [
    re.compile(r"\bformat" + _LABEL_VALUE, re.IGNORECASE),
    re.compile(
        r"\b(markdown|html|json|csv|pdf|docx|plain text|bullet points|numbered list)\b",
        re.IGNORECASE,
    ),
    re.compile(r"\bstructure" + _LABEL_VALUE, re.IGNORECASE),
]

STYLE_GUIDE_PATTERNS = [
    re.compile(r"\bstyle guide" + _LABEL_VALUE, re.IGNORECASE),
    re.compile(r"\bguidelines?" + _LABEL_VALUE, re.IGNORECASE),
    re.compile(r"\bstandards?" + _LABEL_VALUE, re.IGNORECASE),
]

DOMAIN_PATTERNS = [
    re.compile(r"\bdomain" + _LABEL_VALUE, re.IGNORECASE),
    re.compile(r"\bsubject" + _LABEL_VALUE, re.IGNORECASE),
    re.compile(r"\bfield" + _LABEL_VALUE, re.IGNORECASE),
    re.compile(
        r"\b(technology|healthcare|finance|education|marketing|legal|scientific)\b",
        re.IGNORECASE,
    ),
]

AUDIENCE_PATTERNS = [
    re.compile(r"\baudience" + _LABEL_VALUE, re.IGNORECASE),
    re.compile(r"\btarget" + _LABEL_VALUE, re.IGNORECASE),
    re.compile(
        r"\bfor\s+((?:[\w-]+\s+){0,4}(?:users?|customers?|clients?|students?|professionals?))\b",
        re.IGNORECASE,
    ),
]

CONSTRAINT_PATTERNS = [
    re.compile(r"\bconstraints?" + _LABEL_VALUE, re.IGNORECASE),
    re.compile(r"\blimitations?" + _LABEL_VALUE, re.IGNORECASE),
    re.compile(r"\brequirements?" + _LABEL_VALUE, re.IGNORECASE),
    re.compile(r"\bmust not\b\s*:?\s*([^\n]+)", re.IGNORECASE),
    re.compile(r"\bavoid\b\s*:?\s*([^\n]+)", re.IGNORECASE),
]

EXAMPLE_PATTERNS = [
    re.compile(r"\bexamples?\s*:\s*(.+?)(?=\n\s*\n|\Z)", re.IGNORECASE | re.DOTALL),
    re.compile(r"\bfor instance\b\s*:?\s*([^\n]+)", re.IGNORECASE),
    re.compile(r"\bsuch as\b\s*:?\s*([^\n]+)", re.IGNORECASE),
]

MIN_EXAMPLE_LENGTH = 10
RELEVANT_FRACTION = 0.6

TASK_KEYWORDS: Dict[SubtaskType, List[str]] = {
    SubtaskType.RESEARCH: [
        "research", "find", "investigate", "explore", "discover", "study", "examine",
        "source", "data", "information", "evidence", "facts", "statistics",
    ],
    SubtaskType.ANALYSIS: [
        "analyze", "evaluate", "compare", "assess", "review", "critique", "interpret",
        "examine", "breakdown", "dissect", "understand", "explain", "reasoning",
    ],
    SubtaskType.CREATION: [
        "create", "build", "write", "generate", "develop", "design", "implement",
        "construct", "produce", "compose", "craft", "make", "draft",
    ],
    SubtaskType.VALIDATION: [
        "test", "validate", "verify", "check", "confirm", "ensure", "review",
        "quality", "accuracy", "correctness", "compliance", "standards",
    ],
}


class ContextExtractor:
    """
    Extracts tone, format, style, domain, audience, constraints and examples.

    PATTERN: Ordered regex matchers, first match wins
    CRITICAL: Each extractor degrades to "unspecified" (or empty) instead of failing
    """

    def extract_all(self, text: str) -> ContextualMetadata:
        """
        Run every extractor over the original prompt.

        Args:
            text: Original user prompt

        Returns:
            ContextualMetadata
        """
        text = text or ""
        return ContextualMetadata(
            tone=self.extract_tone(text),
            format=self.extract_format(text),
            style_guide=self.extract_style_guide(text),
            domain=self.extract_domain(text),
            audience=self.extract_audience(text),
            constraints=self.extract_constraints(text),
            examples=self.extract_examples(text),
        )

    def extract_tone(self, text: str) -> str:
        return self._first_match(text, TONE_PATTERNS)

    def extract_format(self, text: str) -> str:
        return self._first_match(text, FORMAT_PATTERNS)

    def extract_style_guide(self, text: str) -> str:
        return self._first_match(text, STYLE_GUIDE_PATTERNS)

    def extract_domain(self, text: str) -> str:
        return self._first_match(text, DOMAIN_PATTERNS)

    def extract_audience(self, text: str) -> str:
        return self._first_match(text, AUDIENCE_PATTERNS)

    def extract_constraints(self, text: str) -> List[str]:
        return self._all_matches(text, CONSTRAINT_PATTERNS)

    def extract_examples(self, text: str) -> List[str]:
        return [
            example
            for example in self._all_matches(text, EXAMPLE_PATTERNS)
            if len(example) > MIN_EXAMPLE_LENGTH
        ]

    def extract_relevant_context(self, original: str, task_type: SubtaskType) -> str:
        """
        Keep the sentences of the original prompt most relevant to a task type.

        PATTERN: Keyword-overlap scoring, top 60% kept, original order preserved
        GOTCHA: Sentences scoring zero are dropped even inside the top 60%

        Args:
            original: Original user prompt
            task_type: Subtask type to score against

        Returns:
            Relevant sentences joined by spaces (may be empty)
        """
        sentences = split_sentences_keep_punctuation(original or "")
        if not sentences:
            return ""

        keywords = TASK_KEYWORDS.get(task_type, [])
        scored = [
            (index, count_keywords(sentence, keywords))
            for index, sentence in enumerate(sentences)
        ]

        keep_count = math.ceil(len(sentences) * RELEVANT_FRACTION)
        ranked = sorted(scored, key=lambda item: item[1], reverse=True)[:keep_count]
        kept = sorted(index for index, score in ranked if score > 0)

        return " ".join(sentences[index] for index in kept)

    def _first_match(self, text: str, patterns: List[Pattern]) -> str:
        for pattern in patterns:
            match = pattern.search(text)
            if match:
                value = self._clean(match.group(1) if match.groups() else match.group(0))
                if value:
                    return value
        return UNSPECIFIED

    def _all_matches(self, text: str, patterns: List[Pattern]) -> List[str]:
        found: List[str] = []
        for pattern in patterns:
            for match in pattern.finditer(text):
                value = self._clean(match.group(1))
                if value and value not in found:
                    found.append(value)
        return found

    def _clean(self, value: Optional[str]) -> str:
        return " ".join((value or "").split()).strip(" ,;")
