"""Unit tests for context compression."""

import pytest

from swarm_slicer.injection.compression import ContextCompressor


@pytest.fixture
def compressor():
    """Create compressor."""
    return ContextCompressor()


class TestContextCompressor:
    """Test suite for ContextCompressor."""

    def test_within_budget_untouched(self, compressor):
        """Test text within budget is returned as-is."""
        assert compressor.compress("short text", 100) == ("short text", 1.0)

    def test_remove_examples(self, compressor):
        """Test the Examples section is dropped."""
        text = "# Task\nDo it\n# Examples\nfoo\nbar\n# Constraints\n- x"
        assert compressor.remove_examples(text) == "# Task\nDo it\n# Constraints\n- x"

    def test_long_bullet_lists_summarised(self, compressor):
        """Test bullet runs keep the first three items."""
        result = compressor.compress_verbose_sections("- a\n- b\n- c\n- d\n- e")

        assert "- c" in result
        assert "- d" not in result
        assert "(and 2 more items)" in result

    def test_excess_newlines_collapsed(self, compressor):
        """Test runs of blank lines collapse to one."""
        assert compressor.compress_verbose_sections("a\n\n\n\nb") == "a\n\nb"

    def test_truncate_at_sentence(self, compressor):
        """Test truncation stops at the last sentence end in the window."""
        text = "First sentence here. Second sentence is longer text."
        assert compressor.truncate_at_sentence(text, 30) == "First sentence here."

    def test_hard_truncate(self, compressor):
        """Test hard cut with ellipsis when no sentence boundary fits."""
        result = compressor.truncate_at_sentence("abcdefghijklmnopqrstuvwxyz", 10)
        assert result == "abcdefg..."

    def test_important_sections_survive(self, compressor):
        """Test the task section is kept while filler sections are dropped."""
        task = "# Your Specific Task (analysis)\nDo the thing."
        text = "# Domain Context\n" + "d" * 300 + "\n" + task

        result, ratio = compressor.compress(text, 100)

        assert result == task
        assert ratio == pytest.approx(len(task) / len(text))

    def test_result_within_budget(self, compressor):
        """Test compressed output never exceeds the budget."""
        text = "# Original Context\n" + "Sentence of filler words. " * 100
        result, ratio = compressor.compress(text, 250)

        assert len(result) <= 250
        assert ratio < 1.0
