"""Unit tests for prompt slicing and chunking."""

import pytest

from swarm_slicer.decomposition.chunking import PromptChunker
from swarm_slicer.decomposition.slicer import TaskSlicer
from swarm_slicer.models.subtask_models import (
    DependencyKind,
    Priority,
    SlicingConfig,
    SubtaskType,
)


SEQUENTIAL_PROMPT = (
    "Research competitors. Then analyze pricing. Then write a report. "
    "Then validate findings."
)


@pytest.fixture
def slicer():
    """Create slicer with default config."""
    return TaskSlicer()


@pytest.fixture
def large_prompt():
    """Create a prompt that exceeds the sentence threshold."""
    sentences = []
    for i in range(30):
        sentences.append(f"Research the pricing market segment {i}.")
        sentences.append(f"Implement the billing service component {i}.")
    return " ".join(sentences)


class TestSequentialSlicing:
    """Test suite for TaskSlicer.slice."""

    def test_reference_prompt(self, slicer):
        """Test the four-step prompt yields a typed blocking chain."""
        subtasks = slicer.slice(SEQUENTIAL_PROMPT)

        assert len(subtasks) >= 4
        types = [s.type for s in subtasks]
        assert types[0] == SubtaskType.RESEARCH
        assert types[-1] == SubtaskType.VALIDATION
        assert all(
            t in (SubtaskType.ANALYSIS, SubtaskType.CREATION) for t in types[1:-1]
        )

        for previous, current in zip(subtasks, subtasks[1:]):
            assert current.dependencies[0].subtask_id == previous.id
            assert current.dependencies[0].kind == DependencyKind.BLOCKING

    def test_reference_prompt_exact_shape(self, slicer):
        """Test fine granularity doubles the suggested count of two."""
        subtasks = slicer.slice(SEQUENTIAL_PROMPT)

        assert [s.type for s in subtasks] == [
            SubtaskType.RESEARCH,
            SubtaskType.CREATION,
            SubtaskType.CREATION,
            SubtaskType.VALIDATION,
        ]
        assert subtasks[0].dependencies == []

    def test_coarse_granularity(self, slicer):
        """Test coarse granularity uses the suggested count directly."""
        subtasks = slicer.slice(SEQUENTIAL_PROMPT, SlicingConfig(granularity="coarse"))
        assert len(subtasks) == 2

    def test_max_subtasks_cap(self, slicer):
        """Test max_subtasks caps the slice count."""
        subtasks = slicer.slice(SEQUENTIAL_PROMPT, SlicingConfig(max_subtasks=3))
        assert len(subtasks) == 3

    def test_edge_priorities(self, slicer):
        """Test first and last subtasks are high priority."""
        subtasks = slicer.slice(SEQUENTIAL_PROMPT)
        assert subtasks[0].priority == Priority.HIGH
        assert subtasks[-1].priority == Priority.HIGH
        assert subtasks[1].priority == Priority.MEDIUM

    def test_durations_follow_granularity(self, slicer):
        """Test fine granularity shortens base durations."""
        subtasks = slicer.slice(SEQUENTIAL_PROMPT)
        # research 15 * 0.7 = 10.5 -> 11
        assert subtasks[0].estimated_duration == 11
        # creation 20 * 0.7 = 14
        assert subtasks[1].estimated_duration == 14

    def test_workflow_id_recorded(self, slicer):
        """Test parent workflow ID is stamped on each subtask."""
        subtasks = slicer.slice(SEQUENTIAL_PROMPT, workflow_id="wf-1")
        assert {s.parent_workflow_id for s in subtasks} == {"wf-1"}

    def test_without_keywords_defaults_to_analysis(self, slicer):
        """Test prompts with no category keywords produce analysis subtasks."""
        subtasks = slicer.slice("Tell me about the weather")
        assert {s.type for s in subtasks} == {SubtaskType.ANALYSIS}

    def test_empty_prompt(self, slicer):
        """Test empty prompt still produces subtasks."""
        subtasks = slicer.slice("")
        assert len(subtasks) == 4
        assert "(empty prompt)" in subtasks[0].description


class TestLargePromptSlicing:
    """Test suite for chunk-based slicing."""

    def test_slice_advanced_selects_large_path(self, slicer, large_prompt):
        """Test slice_advanced routes oversized prompts to chunk slicing."""
        result = slicer.slice_advanced(large_prompt, SlicingConfig(max_tokens_per_subtask=100))

        assert result.used_large_prompt_slicing
        assert len(result.subtasks) > 1
        kinds = {d.kind for s in result.subtasks for d in s.dependencies}
        assert kinds <= {DependencyKind.SOFT}

    def test_chunks_respect_budget(self, slicer, large_prompt):
        """Test every subtask chunk fits the token budget."""
        result = slicer.slice_large_prompt(
            large_prompt, SlicingConfig(max_tokens_per_subtask=100)
        )

        assert result.oversized_segments == []
        assert all(s.metadata["token_count"] <= 100 for s in result.subtasks)
        assert result.statistics.chunk_count == len(result.subtasks)

    def test_chunk_types(self, slicer):
        """Test chunk types follow research, creation, validation keywords."""
        prompt = (
            "Research the history of payment systems in depth. "
            "Validate every claim against primary sources."
        )
        result = slicer.slice_large_prompt(
            prompt, SlicingConfig(max_tokens_per_subtask=15)
        )

        assert result.subtasks[0].type == SubtaskType.RESEARCH
        assert result.subtasks[-1].type == SubtaskType.VALIDATION

    def test_contextual_links_are_soft(self, slicer, large_prompt):
        """Test shared topics become SOFT dependencies, never BLOCKING."""
        result = slicer.slice_large_prompt(
            large_prompt, SlicingConfig(max_tokens_per_subtask=100)
        )

        assert result.contextual_links
        for subtask in result.subtasks:
            assert subtask.blocking_dependency_ids() == []
        assert result.statistics.context_preservation_score > 0

    def test_preserve_context_disabled(self, slicer, large_prompt):
        """Test no links when preserve_context is off."""
        result = slicer.slice_large_prompt(
            large_prompt,
            SlicingConfig(max_tokens_per_subtask=100, preserve_context=False),
        )
        assert result.contextual_links == []

    def test_irreducible_segment_reported(self, slicer):
        """Test a segment with no split points is reported as oversized."""
        prompt = "x" * 400
        result = slicer.slice_large_prompt(prompt, SlicingConfig(max_tokens_per_subtask=10))

        assert len(result.oversized_segments) == 1
        assert result.oversized_segments[0].token_count == 100

    def test_small_prompt_uses_sequential_path(self, slicer):
        """Test slice_advanced keeps normal prompts sequential."""
        result = slicer.slice_advanced(SEQUENTIAL_PROMPT)

        assert not result.used_large_prompt_slicing
        assert len(result.subtasks) == 4
        assert result.statistics.compression_ratio == 1.0


class TestPromptChunker:
    """Test suite for PromptChunker strategies."""

    def test_semantic_accumulates_sentences(self):
        """Test sentences are packed until the budget would be exceeded."""
        chunker = PromptChunker()
        chunks = chunker.chunk("Alpha beta. Gamma delta. Epsilon zeta.", "semantic", 6)

        assert [c.content for c in chunks] == ["Alpha beta. Gamma delta.", "Epsilon zeta."]
        assert chunks[0].start_index == 0
        assert chunks[1].start_index == 25

    def test_structural_splits_on_headings(self):
        """Test structural strategy keeps sections whole."""
        chunker = PromptChunker()
        text = "# Intro\nSome words.\n# Details\nMore words here."
        chunks = chunker.chunk(text, "structural", 100)

        assert [c.content for c in chunks] == [
            "# Intro\nSome words.",
            "# Details\nMore words here.",
        ]
        assert all(c.strategy == "structural" for c in chunks)

    def test_balanced_uses_smaller_budget(self):
        """Test balanced strategy chunks below the full budget."""
        chunker = PromptChunker()
        text = " ".join(f"Sentence number {i} is here." for i in range(20))

        semantic = chunker.chunk(text, "semantic", 50)
        balanced = chunker.chunk(text, "balanced", 50)
        assert len(balanced) >= len(semantic)
        assert all(c.token_count <= 40 for c in balanced)

    def test_empty_text(self):
        """Test empty input yields no chunks."""
        assert PromptChunker().chunk("   ", "semantic", 10) == []

    def test_importance_scoring(self):
        """Test action and technical words raise importance."""
        chunker = PromptChunker()
        assert chunker.score_importance("nothing relevant") == 0.5
        assert chunker.score_importance("implement the api") == pytest.approx(0.65)
