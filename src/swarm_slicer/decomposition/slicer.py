"""Prompt slicing into dependency-ordered subtasks."""

import logging
import math
from typing import Dict, List, Optional

from .chunking import PromptChunker
from .prompt_analyzer import PromptAnalyzer
from ..models.subtask_models import (
    ContextualLink,
    DependencyKind,
    Priority,
    PromptAnalysis,
    SliceResult,
    SliceStatistics,
    SlicingConfig,
    Subtask,
    SubtaskDependency,
    SubtaskType,
    TextChunk,
)
from ..utils.text import has_any_keyword


logger = logging.getLogger(__name__)

# Base durations in minutes per subtask type
BASE_DURATIONS: Dict[SubtaskType, int] = {
    SubtaskType.RESEARCH: 15,
    SubtaskType.ANALYSIS: 10,
    SubtaskType.CREATION: 20,
    SubtaskType.VALIDATION: 10,
}

GRANULARITY_FACTORS = {"fine": 0.7, "coarse": 1.3}

DESCRIPTION_TEMPLATES: Dict[SubtaskType, str] = {
    SubtaskType.RESEARCH: (
        "Research and gather the background information needed for: {snippet}"
    ),
    SubtaskType.ANALYSIS: (
        "Analyze the requirements and available information for: {snippet}"
    ),
    SubtaskType.CREATION: "Produce the content required by: {snippet}",
    SubtaskType.VALIDATION: (
        "Review and validate the work produced so far against: {snippet}"
    ),
}

# Checked in this order when typing a chunk of a large prompt
CHUNK_TYPE_KEYWORDS = [
    (SubtaskType.RESEARCH, ["research", "find", "investigate"]),
    (SubtaskType.CREATION, ["create", "build", "implement"]),
    (SubtaskType.VALIDATION, ["test", "validate", "verify"]),
]

SNIPPET_LENGTH = 100


class TaskSlicer:
    """
    Turns a prompt into an ordered list of subtasks.

    PATTERN: Fixed-count sequential slicing for normal prompts,
             chunk-per-subtask slicing for oversized prompts
    CRITICAL: Never raises on empty or degenerate input
    GOTCHA: Sequential slices form a pure BLOCKING chain (no parallelism),
            chunk slices are independent apart from SOFT context links
    """

    def __init__(
        self,
        analyzer: Optional[PromptAnalyzer] = None,
        chunker: Optional[PromptChunker] = None,
        config: Optional[SlicingConfig] = None,
    ):
        """
        Initialize slicer.

        Args:
            analyzer: Prompt analyzer (creates default if None)
            chunker: Prompt chunker (creates default if None)
            config: Default slicing configuration
        """
        self.config = config or SlicingConfig()
        self.analyzer = analyzer or PromptAnalyzer(self.config)
        self.chunker = chunker or PromptChunker()
        self.logger = logging.getLogger(__name__)

    def analyze(self, prompt: str, config: Optional[SlicingConfig] = None) -> PromptAnalysis:
        return self.analyzer.analyze(prompt, config or self.config)

    def slice(
        self,
        prompt: str,
        config: Optional[SlicingConfig] = None,
        workflow_id: Optional[str] = None,
    ) -> List[Subtask]:
        """
        Decompose a prompt into a fixed number of sequential subtasks.

        PATTERN: index 0 researches, last index validates, middle creates/analyzes
        CRITICAL: Each subtask after the first BLOCKS on its predecessor

        Args:
            prompt: User prompt
            config: Slicing configuration
            workflow_id: Parent workflow ID recorded on each subtask

        Returns:
            Ordered subtasks
        """
        config = config or self.config
        analysis = self.analyze(prompt, config)

        if config.granularity == "fine":
            target_count = min(analysis.suggested_slice_count * 2, config.max_subtasks)
        else:
            target_count = min(analysis.suggested_slice_count, config.max_subtasks)
        target_count = max(1, target_count)

        snippet = self._snippet(prompt)
        subtasks: List[Subtask] = []

        for index in range(target_count):
            subtask_type = self._determine_type(index, target_count, analysis)
            is_edge = index == 0 or index == target_count - 1

            dependencies = []
            if subtasks:
                dependencies.append(
                    SubtaskDependency(
                        subtask_id=subtasks[-1].id,
                        kind=DependencyKind.BLOCKING,
                        description="Sequential dependency on previous subtask",
                    )
                )

            subtasks.append(
                Subtask(
                    title=f"{subtask_type.value.title()} Phase {index + 1}",
                    description=(
                        f"Phase {index + 1} of {target_count}. "
                        + DESCRIPTION_TEMPLATES[subtask_type].format(snippet=snippet)
                    ),
                    type=subtask_type,
                    priority=Priority.HIGH if is_edge else Priority.MEDIUM,
                    dependencies=dependencies,
                    estimated_duration=self._estimate_duration(subtask_type, config),
                    parent_workflow_id=workflow_id,
                    metadata={"phase": index + 1, "total_phases": target_count},
                )
            )

        self.logger.info(
            f"Sliced prompt into {len(subtasks)} sequential subtasks "
            f"(suggested {analysis.suggested_slice_count}, granularity {config.granularity})"
        )

        return subtasks

    def slice_large_prompt(
        self,
        prompt: str,
        config: Optional[SlicingConfig] = None,
        analysis: Optional[PromptAnalysis] = None,
        workflow_id: Optional[str] = None,
    ) -> SliceResult:
        """
        Slice an oversized prompt chunk by chunk.

        PATTERN: Chunk -> re-chunk oversized -> one subtask per chunk -> link by topic
        CRITICAL: Irreducible segments are reported, never silently truncated

        Args:
            prompt: User prompt
            config: Slicing configuration
            analysis: Precomputed analysis (computed if None)
            workflow_id: Parent workflow ID

        Returns:
            SliceResult with subtasks, oversized segments, links and statistics
        """
        config = config or self.config
        analysis = analysis or self.analyze(prompt, config)
        budget = config.max_tokens_per_subtask

        chunks = self.chunker.chunk(prompt, config.slicing_strategy, budget)
        if not chunks:
            subtasks = self.slice(prompt, config, workflow_id)
            return SliceResult(
                subtasks=subtasks,
                statistics=self._sequential_statistics(analysis, subtasks),
                used_large_prompt_slicing=True,
            )

        usable: List[TextChunk] = []
        oversized: List[TextChunk] = []
        for chunk in chunks:
            fitted, rejected = self._reduce_chunk(chunk, budget)
            usable.extend(fitted)
            oversized.extend(rejected)

        if oversized:
            self.logger.warning(
                f"{len(oversized)} segment(s) exceed {budget} tokens and could not be reduced"
            )

        subtasks: List[Subtask] = []
        for index, chunk in enumerate(usable):
            subtask_type = self._chunk_type(chunk.content)
            subtasks.append(
                Subtask(
                    title=f"{subtask_type.value.title()} - Segment {index + 1}",
                    description=chunk.content,
                    type=subtask_type,
                    priority=Priority.HIGH if chunk.importance > 0.7 else Priority.MEDIUM,
                    estimated_duration=self._estimate_duration(subtask_type, config),
                    parent_workflow_id=workflow_id,
                    metadata={
                        "segment_index": index,
                        "start_index": chunk.start_index,
                        "end_index": chunk.end_index,
                        "token_count": chunk.token_count,
                        "topics": list(chunk.topics),
                        "importance": chunk.importance,
                        "strategy": chunk.strategy,
                    },
                )
            )

        links: List[ContextualLink] = []
        if config.preserve_context:
            links = self.find_contextual_links(usable)
            for link in links:
                target = subtasks[link.target_index]
                target.dependencies.append(
                    SubtaskDependency(
                        subtask_id=subtasks[link.source_index].id,
                        kind=DependencyKind.SOFT,
                        description=(
                            f"Shares context with segment {link.source_index + 1}: "
                            + ", ".join(link.shared_topics)
                        ),
                    )
                )

        if len(subtasks) > config.max_subtasks:
            self.logger.warning(
                f"Large prompt produced {len(subtasks)} subtasks, "
                f"above max_subtasks={config.max_subtasks}"
            )

        statistics = self._chunk_statistics(analysis, usable, links)

        self.logger.info(
            f"Sliced large prompt into {len(subtasks)} subtasks "
            f"({len(links)} contextual links, compression {statistics.compression_ratio:.2f})"
        )

        return SliceResult(
            subtasks=subtasks,
            oversized_segments=oversized,
            contextual_links=links,
            statistics=statistics,
            used_large_prompt_slicing=True,
        )

    def slice_advanced(
        self,
        prompt: str,
        config: Optional[SlicingConfig] = None,
        workflow_id: Optional[str] = None,
    ) -> SliceResult:
        """
        Slice with automatic large-prompt detection.

        Args:
            prompt: User prompt
            config: Slicing configuration
            workflow_id: Parent workflow ID

        Returns:
            SliceResult from whichever path the analysis selects
        """
        config = config or self.config
        analysis = self.analyze(prompt, config)

        if analysis.requires_large_prompt_slicing:
            self.logger.info("Prompt requires large-prompt slicing")
            return self.slice_large_prompt(prompt, config, analysis, workflow_id)

        subtasks = self.slice(prompt, config, workflow_id)
        return SliceResult(
            subtasks=subtasks,
            statistics=self._sequential_statistics(analysis, subtasks),
            used_large_prompt_slicing=False,
        )

    def find_contextual_links(self, chunks: List[TextChunk]) -> List[ContextualLink]:
        """
        Link every pair of chunks that share topics.

        Args:
            chunks: Chunks in document order

        Returns:
            Links from earlier chunk (source) to later chunk (target)
        """
        links: List[ContextualLink] = []

        for i, source in enumerate(chunks):
            for j in range(i + 1, len(chunks)):
                target = chunks[j]
                shared = [topic for topic in source.topics if topic in target.topics]
                if not shared:
                    continue

                union = set(source.topics) | set(target.topics)
                links.append(
                    ContextualLink(
                        source_index=i,
                        target_index=j,
                        shared_topics=shared,
                        strength=len(shared) / len(union),
                    )
                )

        return links

    def merge(self, subtasks: List[Subtask], results: Dict[str, str]) -> str:
        """
        Compile subtask outputs into one document.

        Args:
            subtasks: Subtasks in the order they should appear
            results: subtask_id -> agent output

        Returns:
            Markdown document
        """
        sections = ["# Compiled Results", ""]

        for subtask in subtasks:
            content = results.get(subtask.id)
            sections.append(f"## {subtask.title}")
            sections.append("")
            sections.append(content.strip() if content else "_No result available._")
            sections.append("")

        return "\n".join(sections).rstrip() + "\n"

    def _reduce_chunk(self, chunk: TextChunk, budget: int):
        """Re-chunk an oversized chunk by sentence, then by clause."""
        if chunk.token_count <= budget:
            return [chunk], []

        fitted: List[TextChunk] = []
        rejected: List[TextChunk] = []

        for piece in self.chunker.semantic_chunk(
            chunk.content, budget, base_offset=chunk.start_index, strategy=chunk.strategy
        ):
            if piece.token_count <= budget:
                fitted.append(piece)
                continue

            for clause in self.chunker.clause_chunk(
                piece.content, budget, base_offset=piece.start_index, strategy=piece.strategy
            ):
                if clause.token_count <= budget:
                    fitted.append(clause)
                else:
                    rejected.append(clause)

        return fitted, rejected

    def _determine_type(
        self,
        index: int,
        total: int,
        analysis: PromptAnalysis,
    ) -> SubtaskType:
        if index == 0 and analysis.has_research_keywords:
            return SubtaskType.RESEARCH
        if index == total - 1 and analysis.has_validation_keywords:
            return SubtaskType.VALIDATION
        if analysis.has_creation_keywords:
            return SubtaskType.CREATION
        return SubtaskType.ANALYSIS

    def _chunk_type(self, content: str) -> SubtaskType:
        for subtask_type, keywords in CHUNK_TYPE_KEYWORDS:
            if has_any_keyword(content, keywords):
                return subtask_type
        return SubtaskType.ANALYSIS

    def _estimate_duration(self, subtask_type: SubtaskType, config: SlicingConfig) -> int:
        factor = GRANULARITY_FACTORS.get(config.granularity, 1.0)
        # Round half up
        return int(math.floor(BASE_DURATIONS[subtask_type] * factor + 0.5))

    def _snippet(self, prompt: str) -> str:
        text = " ".join(prompt.split())
        if len(text) > SNIPPET_LENGTH:
            return text[: SNIPPET_LENGTH - 3] + "..."
        return text or "(empty prompt)"

    def _sequential_statistics(
        self,
        analysis: PromptAnalysis,
        subtasks: List[Subtask],
    ) -> SliceStatistics:
        count = len(subtasks)
        return SliceStatistics(
            original_tokens=analysis.token_count,
            retained_tokens=analysis.token_count,
            compression_ratio=1.0,
            context_preservation_score=0.9,
            chunk_count=count,
            average_tokens=analysis.token_count / count if count else 0.0,
            max_tokens=analysis.token_count,
        )

    def _chunk_statistics(
        self,
        analysis: PromptAnalysis,
        chunks: List[TextChunk],
        links: List[ContextualLink],
    ) -> SliceStatistics:
        count = len(chunks)
        retained = sum(c.token_count for c in chunks)
        original = analysis.token_count

        return SliceStatistics(
            original_tokens=original,
            retained_tokens=retained,
            compression_ratio=retained / original if original else 1.0,
            context_preservation_score=min(1.0, len(links) / (2 * count)) if count else 0.0,
            chunk_count=count,
            average_tokens=retained / count if count else 0.0,
            max_tokens=max((c.token_count for c in chunks), default=0),
        )
