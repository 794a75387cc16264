"""Data models for prompt slicing and batch grouping."""

from pydantic import BaseModel, Field
from typing import Dict, List, Any, Optional, Literal
from enum import Enum
from datetime import datetime
from uuid import uuid4


class SubtaskType(str, Enum):
    """Kinds of work a subtask can represent."""

    RESEARCH = "research"
    ANALYSIS = "analysis"
    CREATION = "creation"
    VALIDATION = "validation"


class Priority(str, Enum):
    """Subtask priority."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class SubtaskStatus(str, Enum):
    """Lifecycle status of a subtask."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class DependencyKind(str, Enum):
    """How strongly a subtask depends on another one."""

    BLOCKING = "blocking"  # Ordering constraint
    SOFT = "soft"  # Shared context hint only
    REFERENCE = "reference"


class SubtaskDependency(BaseModel):
    """Edge from a subtask to one of its prerequisites."""

    subtask_id: str = Field(description="Subtask this one depends on")
    kind: DependencyKind = Field(default=DependencyKind.BLOCKING)
    description: str = Field(default="", description="Why the dependency exists")


class Subtask(BaseModel):
    """One atomic unit of work derived from a user prompt."""

    id: str = Field(
        default_factory=lambda: f"subtask_{uuid4().hex[:12]}",
        description="Unique subtask ID",
    )
    title: str = Field(description="Short subtask title")
    description: str = Field(description="What the agent must do")
    type: SubtaskType = Field(default=SubtaskType.ANALYSIS)
    priority: Priority = Field(default=Priority.MEDIUM)
    status: SubtaskStatus = Field(default=SubtaskStatus.PENDING)
    dependencies: List[SubtaskDependency] = Field(default_factory=list)
    estimated_duration: float = Field(
        default=15.0, ge=0, description="Estimated duration in minutes"
    )
    parent_workflow_id: Optional[str] = Field(default=None)
    assigned_agent_id: Optional[str] = Field(default=None)

    # Batch metadata, filled in by the batcher
    batch_group_id: Optional[str] = Field(default=None)
    is_batchable: bool = Field(default=False)
    injected_context: Optional[str] = Field(
        default=None, description="Isolated prompt rendered for this subtask"
    )

    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    class Config:
        """Pydantic configuration."""

        json_encoders = {datetime: lambda v: v.isoformat() if v else None}

    def blocking_dependency_ids(self) -> List[str]:
        """Return IDs of subtasks that must finish before this one starts."""
        return [
            dep.subtask_id
            for dep in self.dependencies
            if dep.kind == DependencyKind.BLOCKING
        ]


class BatchGroup(BaseModel):
    """Subtasks that may run concurrently."""

    group_id: str = Field(default_factory=lambda: f"group_{uuid4().hex[:8]}")
    subtasks: List[Subtask] = Field(default_factory=list)
    estimated_execution_time: float = Field(
        default=0.0, description="Estimated wall-clock minutes for the group"
    )
    level: int = Field(default=0, description="Topological layer index")
    created_at: datetime = Field(default_factory=datetime.now)

    @property
    def subtask_ids(self) -> List[str]:
        return [s.id for s in self.subtasks]


class PromptAnalysis(BaseModel):
    """Heuristic statistics about a raw prompt."""

    token_count: int = Field(default=0, description="Estimated tokens (len/4)")
    word_count: int = Field(default=0)
    sentence_count: int = Field(default=0)
    paragraph_count: int = Field(default=0)
    complexity: float = Field(default=0.0, ge=0, le=1)

    has_research_keywords: bool = Field(default=False)
    has_analysis_keywords: bool = Field(default=False)
    has_creation_keywords: bool = Field(default=False)
    has_validation_keywords: bool = Field(default=False)

    has_structured_content: bool = Field(default=False)
    key_topics: List[str] = Field(default_factory=list)

    suggested_slice_count: int = Field(default=2, ge=2, le=20)
    requires_large_prompt_slicing: bool = Field(default=False)


class SlicingConfig(BaseModel):
    """Configuration for slicing a prompt into subtasks."""

    granularity: Literal["fine", "coarse"] = Field(
        default="fine", description="Fine doubles the suggested subtask count"
    )
    max_subtasks: int = Field(default=10, ge=1)
    max_tokens_per_subtask: int = Field(default=2000, ge=1)
    slicing_strategy: Literal["semantic", "structural", "balanced"] = Field(
        default="semantic"
    )
    preserve_context: bool = Field(
        default=True, description="Link chunks that share topics"
    )

    # Large-prompt thresholds
    large_token_threshold: int = Field(default=4000)
    large_sentence_threshold: int = Field(default=50)
    large_paragraph_threshold: int = Field(default=10)
    large_complexity_threshold: float = Field(default=0.8)


class TextChunk(BaseModel):
    """A contiguous piece of an oversized prompt."""

    content: str
    token_count: int = Field(default=0)
    start_index: int = Field(default=0)
    end_index: int = Field(default=0)
    topics: List[str] = Field(default_factory=list)
    importance: float = Field(default=0.5, ge=0, le=1)
    strategy: str = Field(default="semantic")


class ContextualLink(BaseModel):
    """Shared-topic relationship between two chunks."""

    source_index: int
    target_index: int
    shared_topics: List[str] = Field(default_factory=list)
    strength: float = Field(default=0.0, ge=0, le=1)


class SliceStatistics(BaseModel):
    """Quality figures for a slicing run."""

    original_tokens: int = Field(default=0)
    retained_tokens: int = Field(default=0)
    compression_ratio: float = Field(default=1.0)
    context_preservation_score: float = Field(default=0.0, ge=0, le=1)
    chunk_count: int = Field(default=0)
    average_tokens: float = Field(default=0.0)
    max_tokens: int = Field(default=0)


class SliceResult(BaseModel):
    """Output of advanced or large-prompt slicing."""

    subtasks: List[Subtask] = Field(default_factory=list)
    oversized_segments: List[TextChunk] = Field(
        default_factory=list,
        description="Segments that could not be reduced below the token budget",
    )
    contextual_links: List[ContextualLink] = Field(default_factory=list)
    statistics: SliceStatistics = Field(default_factory=SliceStatistics)
    used_large_prompt_slicing: bool = Field(default=False)


class DependencyValidation(BaseModel):
    """Result of validating a subtask dependency graph."""

    is_valid: bool
    has_cycles: bool = Field(default=False)
    cycles: List[List[str]] = Field(default_factory=list)
    missing_dependencies: List[str] = Field(default_factory=list)
    execution_order: List[str] = Field(default_factory=list)


class WorkflowScaffold(BaseModel):
    """The workflow a subtask belongs to, as seen by context injection."""

    workflow_id: str = Field(default_factory=lambda: f"workflow_{uuid4().hex[:8]}")
    title: str = Field(default="")
    original_prompt: str = Field(default="")
    subtasks: List[Subtask] = Field(default_factory=list)
    agent_id: Optional[str] = Field(default=None)
