"""Unit tests for contextual metadata extraction."""

import pytest

from swarm_slicer.injection.context_extractor import UNSPECIFIED, ContextExtractor
from swarm_slicer.models.subtask_models import SubtaskType


PROMPT = (
    "Write a blog post in a formal tone.\n"
    "Format: markdown\n"
    "Domain: finance\n"
    "Audience: small business owners\n"
    "Constraints: under 500 words\n"
    "Avoid jargon"
)


@pytest.fixture
def extractor():
    """Create extractor."""
    return ContextExtractor()


class TestContextExtractor:
    """Test suite for ContextExtractor."""

    def test_extract_all(self, extractor):
        """Test each field is extracted from labelled lines."""
        metadata = extractor.extract_all(PROMPT)

        assert metadata.tone == "formal"
        assert metadata.format == "markdown"
        assert metadata.domain == "finance"
        assert metadata.audience == "small business owners"
        assert metadata.style_guide == UNSPECIFIED
        assert metadata.constraints == ["under 500 words", "jargon"]
        assert metadata.examples == []

    def test_empty_prompt(self, extractor):
        """Test empty prompt degrades to unspecified values."""
        metadata = extractor.extract_all("")

        assert metadata.tone == UNSPECIFIED
        assert metadata.format == UNSPECIFIED
        assert metadata.constraints == []

    def test_audience_from_phrase(self, extractor):
        """Test audience detection from a 'for ... users' phrase."""
        assert extractor.extract_audience("A guide for first time users") == "first time users"

    def test_examples(self, extractor):
        """Test examples block runs until a blank line."""
        text = "Examples: first sample text here\n\nNext paragraph"
        assert extractor.extract_examples(text) == ["first sample text here"]

    def test_relevant_context_keeps_scored_sentences(self, extractor):
        """Test top-scoring sentences are kept in original order."""
        text = "Research the market data. Write a catchy slogan. Find three sources."
        relevant = extractor.extract_relevant_context(text, SubtaskType.RESEARCH)
        assert relevant == "Research the market data. Find three sources."

    def test_relevant_context_drops_zero_scores(self, extractor):
        """Test sentences without keywords are never kept."""
        assert extractor.extract_relevant_context("Hello there. Nice day.", SubtaskType.RESEARCH) == ""
        assert extractor.extract_relevant_context("", SubtaskType.RESEARCH) == ""
