"""Unit tests for heuristic prompt analysis."""

import pytest

from swarm_slicer.decomposition.prompt_analyzer import PromptAnalyzer
from swarm_slicer.models.subtask_models import SlicingConfig


@pytest.fixture
def analyzer():
    """Create analyzer with default thresholds."""
    return PromptAnalyzer()


class TestPromptAnalyzer:
    """Test suite for PromptAnalyzer."""

    def test_empty_prompt(self, analyzer):
        """Test empty prompt yields a minimal analysis without raising."""
        analysis = analyzer.analyze("")

        assert analysis.token_count == 0
        assert analysis.word_count == 0
        assert analysis.sentence_count == 0
        assert analysis.suggested_slice_count == 2
        assert analysis.requires_large_prompt_slicing is False

    def test_counts(self, analyzer):
        """Test token, word, sentence and paragraph counts."""
        prompt = "Research competitors. Then analyze pricing!\n\nWrite a report?"
        analysis = analyzer.analyze(prompt)

        assert analysis.token_count == -(-len(prompt) // 4)
        assert analysis.word_count == 8
        assert analysis.sentence_count == 3
        assert analysis.paragraph_count == 2

    def test_keyword_flags(self, analyzer):
        """Test keyword category detection."""
        analysis = analyzer.analyze(
            "Research competitors. Then analyze pricing. Then write a report. "
            "Then validate findings."
        )

        assert analysis.has_research_keywords
        assert analysis.has_analysis_keywords
        assert analysis.has_creation_keywords
        assert analysis.has_validation_keywords

    def test_keyword_flags_match_whole_words(self, analyzer):
        """Test keywords inside longer words are not counted."""
        analysis = analyzer.analyze("The researcher's notebook was checked in.")
        assert analysis.has_research_keywords is False

    def test_complexity_baseline(self, analyzer):
        """Test short plain prompts score the baseline."""
        assert analyzer.calculate_complexity("hello world") == pytest.approx(0.2)

    def test_complexity_capped(self, analyzer):
        """Test complexity never exceeds 1.0."""
        text = " ".join(
            ["implement algorithm system architecture then first next step"] * 400
        )
        text += "\n" + "\n".join(f"- item {i}" for i in range(20))
        assert analyzer.calculate_complexity(text) == 1.0

    def test_sequencing_words_raise_complexity(self, analyzer):
        """Test sequencing keywords add to the score."""
        plain = analyzer.calculate_complexity("Do the work.")
        sequenced = analyzer.calculate_complexity("First do this, then that, finally stop.")
        assert sequenced > plain

    def test_suggest_slice_count_bounds(self, analyzer):
        """Test suggested count is clamped to [2, 20]."""
        assert analyzer.suggest_slice_count(0, 0, 0.0) == 2
        assert analyzer.suggest_slice_count(100000, 500, 1.0) == 20

    def test_suggest_slice_count_formula(self, analyzer):
        """Test ceil(tokens/1000) plus sentence bonus, scaled by complexity."""
        # base = 3, + ceil(41/20) = 3 -> 6, * 1.5 = 9
        assert analyzer.suggest_slice_count(2500, 41, 0.5) == 9

    def test_structured_content(self, analyzer):
        """Test structural markers are detected."""
        assert analyzer.detect_structured_content("- one\n- two")
        assert analyzer.detect_structured_content("1. first\n2. second")
        assert analyzer.detect_structured_content("# Heading\ntext")
        assert analyzer.detect_structured_content("| a | b |")
        assert not analyzer.detect_structured_content("Just a plain sentence here.")

    def test_large_prompt_by_sentences(self):
        """Test sentence threshold triggers large-prompt slicing."""
        analyzer = PromptAnalyzer(SlicingConfig(large_sentence_threshold=3))
        analysis = analyzer.analyze("One. Two. Three. Four.")
        assert analysis.requires_large_prompt_slicing

    def test_large_prompt_by_tokens(self, analyzer):
        """Test token threshold triggers large-prompt slicing."""
        analysis = analyzer.analyze("word " * 4000)
        assert analysis.token_count > 4000
        assert analysis.requires_large_prompt_slicing

    def test_key_topics(self, analyzer):
        """Test topic extraction skips stopwords and short words."""
        analysis = analyzer.analyze("Pricing pricing pricing. Competitors and their pricing.")
        assert analysis.key_topics[0] == "pricing"
        assert "their" not in analysis.key_topics
        assert "and" not in analysis.key_topics
