"""Data models for context injection and per-subtask todo checklists."""

from pydantic import BaseModel, Field, model_validator
from typing import Dict, List, Any, Optional
from enum import Enum
from datetime import datetime


class TodoStatus(str, Enum):
    """Status of a single checklist item."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


TERMINAL_TODO_STATUSES = {TodoStatus.COMPLETED, TodoStatus.FAILED}


class TodoItem(BaseModel):
    """A fine-grained, agent-tracked step within one subtask."""

    id: str = Field(description="Todo ID, unique within its list")
    title: str
    description: str = Field(default="")
    estimated_duration_ms: int = Field(default=60000, ge=0)
    status: TodoStatus = Field(default=TodoStatus.PENDING)
    dependencies: List[str] = Field(
        default_factory=list, description="IDs of todos in the same list"
    )
    start_time: Optional[datetime] = Field(default=None)
    completion_time: Optional[datetime] = Field(default=None)
    error_message: Optional[str] = Field(default=None)
    progress_percentage: float = Field(default=0.0, ge=0, le=100)

    class Config:
        """Pydantic configuration."""

        json_encoders = {datetime: lambda v: v.isoformat() if v else None}


class SubtaskTodoList(BaseModel):
    """
    Ordered checklist owned by exactly one subtask.

    CRITICAL: Only the progress parser mutates a registered list
    GOTCHA: completed_items and actual_duration are derived, call refresh()
    """

    subtask_id: str
    agent_id: str = Field(default="unassigned")
    todos: List[TodoItem] = Field(default_factory=list)
    total_items: int = Field(default=0)
    completed_items: int = Field(default=0)
    estimated_total_duration: int = Field(
        default=0, description="Sum of item estimates in ms"
    )
    actual_duration: Optional[int] = Field(
        default=None, description="Measured ms across completed items"
    )
    created_at: datetime = Field(default_factory=datetime.now)
    last_updated: datetime = Field(default_factory=datetime.now)

    @model_validator(mode="after")
    def _derive_totals(self) -> "SubtaskTodoList":
        self.total_items = len(self.todos)
        self.estimated_total_duration = sum(
            t.estimated_duration_ms for t in self.todos
        )
        self.completed_items = sum(
            1 for t in self.todos if t.status == TodoStatus.COMPLETED
        )
        return self

    def get_todo(self, todo_id: str) -> Optional[TodoItem]:
        for todo in self.todos:
            if todo.id == todo_id:
                return todo
        return None

    def refresh(self) -> None:
        """Recompute derived counters after an item changed."""
        self.total_items = len(self.todos)
        self.completed_items = sum(
            1 for t in self.todos if t.status == TodoStatus.COMPLETED
        )

        durations = []
        for todo in self.todos:
            if todo.status != TodoStatus.COMPLETED or not todo.completion_time:
                continue
            started = todo.start_time or self.created_at
            if started < self.created_at:
                started = self.created_at
            elapsed_ms = (todo.completion_time - started).total_seconds() * 1000
            durations.append(max(0, int(elapsed_ms)))

        if durations:
            self.actual_duration = sum(durations)


class ComplexityLevel(str, Enum):
    """Coarse difficulty bucket used for todo duration estimates."""

    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"
    EXPERT = "expert"


class TaskComplexityProfile(BaseModel):
    """Complexity analysis of one subtask's text."""

    level: ComplexityLevel = Field(default=ComplexityLevel.SIMPLE)
    operation_count: int = Field(default=0)
    estimated_duration: int = Field(default=300000, description="Total ms")
    requires_external_data: bool = Field(default=False)
    has_iterative_steps: bool = Field(default=False)
    risk_factors: List[str] = Field(default_factory=list)
    explicit_steps: List[str] = Field(
        default_factory=list, description="Numbered or bulleted steps found in text"
    )


class ContextualMetadata(BaseModel):
    """Context extracted from the original prompt."""

    tone: str = Field(default="unspecified")
    format: str = Field(default="unspecified")
    style_guide: str = Field(default="unspecified")
    domain: str = Field(default="unspecified")
    audience: str = Field(default="unspecified")
    constraints: List[str] = Field(default_factory=list)
    examples: List[str] = Field(default_factory=list)


class InjectionConfig(BaseModel):
    """Controls what context is embedded into a subtask prompt."""

    include_tone: bool = Field(default=True)
    include_format: bool = Field(default=True)
    include_original_prompt: bool = Field(default=True)
    include_style_guide: bool = Field(default=True)
    custom_prefix: Optional[str] = Field(default=None)
    custom_suffix: Optional[str] = Field(default=None)
    max_context_length: int = Field(default=4000, description="Characters")


class InjectionMetadata(BaseModel):
    """Size bookkeeping for an injected prompt."""

    original_length: int = Field(default=0)
    injected_length: int = Field(default=0)
    compression_ratio: float = Field(default=1.0)
    compressed: bool = Field(default=False)


class EnhancedInjectedPrompt(BaseModel):
    """Isolated prompt plus checklist and tracking instructions for one agent."""

    subtask_id: str
    agent_id: str = Field(default="unassigned")
    injected_prompt: str
    contextual_metadata: ContextualMetadata = Field(
        default_factory=ContextualMetadata
    )
    todo_list: SubtaskTodoList
    progress_instructions: str = Field(default="")
    checkpoint_markers: List[str] = Field(default_factory=list)
    complexity: TaskComplexityProfile = Field(default_factory=TaskComplexityProfile)
    metadata: InjectionMetadata = Field(default_factory=InjectionMetadata)
    extra: Dict[str, Any] = Field(default_factory=dict)
