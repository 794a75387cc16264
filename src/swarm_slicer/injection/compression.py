"""Length-budget compression for injected context."""

import logging
import re
from typing import List, Tuple

logger = logging.getLogger(__name__)

IMPORTANT_SECTIONS = ("Your Specific Task", "Original Context")
IMPORTANT_BUDGET_FRACTION = 0.8
BULLET_KEEP = 3

_EXAMPLES_SECTION = re.compile(r"^# Examples\n.*?(?=^# |\Z)", re.MULTILINE | re.DOTALL)
_EXCESS_NEWLINES = re.compile(r"\n{3,}")
_LONG_BULLET_RUN = re.compile(r"(?:^- [^\n]*(?:\n|$)){%d,}" % (BULLET_KEEP + 1), re.MULTILINE)
_SENTENCE_END = re.compile(r"[.!?](?=\s|$)")


class ContextCompressor:
    """
    Shrinks a rendered prompt to a character budget.

    PATTERN: Cheapest loss first (examples, verbose lists, whole sections, tail)
    CRITICAL: Truncation prefers sentence boundaries over hard cuts
    """

    def compress(self, text: str, max_length: int) -> Tuple[str, float]:
        """
        Compress text to at most max_length characters.

        Args:
            text: Rendered context
            max_length: Character budget

        Returns:
            (compressed text, compressed length / original length)
        """
        if len(text) <= max_length or not text:
            return text, 1.0

        original_length = len(text)

        compressed = self.remove_examples(text)
        if len(compressed) > max_length:
            compressed = self.compress_verbose_sections(compressed)
        if len(compressed) > max_length:
            compressed = self.intelligent_truncate(compressed, max_length)

        ratio = len(compressed) / original_length
        logger.debug(
            f"Compressed context from {original_length} to {len(compressed)} chars "
            f"(ratio {ratio:.2f})"
        )
        return compressed, ratio

    def remove_examples(self, text: str) -> str:
        return _EXAMPLES_SECTION.sub("", text)

    def compress_verbose_sections(self, text: str) -> str:
        """Collapse blank-line runs and summarise long bullet lists."""
        text = _EXCESS_NEWLINES.sub("\n\n", text)

        def summarise(match: "re.Match") -> str:
            items = match.group(0).strip("\n").split("\n")
            kept = "\n".join(items[:BULLET_KEEP])
            return f"{kept}\n- (and {len(items) - BULLET_KEEP} more items)\n"

        return _LONG_BULLET_RUN.sub(summarise, text)

    def intelligent_truncate(self, text: str, max_length: int) -> str:
        """
        Drop whole sections, important ones last, then cut at a sentence end.

        Args:
            text: Text made of "# " sections
            max_length: Character budget

        Returns:
            Text no longer than max_length
        """
        parts = re.split(r"\n(?=# )", text)
        if parts[0].startswith("# "):
            head, sections = "", parts
        else:
            head, sections = parts[0], parts[1:]

        keep: List[bool] = [False] * len(sections)
        length = len(head)

        def grown(section: str) -> int:
            return length + (1 if length else 0) + len(section)

        # Important sections first, within a reduced budget
        for index, section in enumerate(sections):
            if self._is_important(section):
                candidate = grown(section)
                if candidate <= max_length * IMPORTANT_BUDGET_FRACTION:
                    keep[index] = True
                    length = candidate

        for index, section in enumerate(sections):
            if keep[index] or self._is_important(section):
                continue
            candidate = grown(section)
            if candidate > max_length:
                break
            keep[index] = True
            length = candidate

        pieces = [head] if head else []
        pieces.extend(s for s, k in zip(sections, keep) if k)
        result = "\n".join(pieces)
        if not result:
            result = text

        if len(result) > max_length:
            result = self.truncate_at_sentence(result, max_length)

        return result

    def truncate_at_sentence(self, text: str, max_length: int) -> str:
        """Cut at the last sentence end inside the budget, else hard cut with '...'."""
        if len(text) <= max_length:
            return text

        window = text[:max_length]
        boundary = -1
        for match in _SENTENCE_END.finditer(window):
            boundary = match.end()

        if boundary >= max_length // 2:
            return window[:boundary]

        return text[: max(0, max_length - 3)] + "..."

    def _is_important(self, section: str) -> bool:
        title = section.split("\n", 1)[0]
        return any(name in title for name in IMPORTANT_SECTIONS)
