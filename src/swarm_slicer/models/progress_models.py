"""Data models for checkpoint parsing and progress delivery."""

from pydantic import BaseModel, Field
from typing import Dict, List, Optional
from enum import Enum
from datetime import datetime

from .todo_models import SubtaskTodoList, TodoStatus


class ProgressActionType(str, Enum):
    """What a checkpoint marker reports."""

    COMPLETION = "completion"
    PROGRESS = "progress"
    ERROR = "error"
    HELP = "help"


class ParsedCheckpoint(BaseModel):
    """One marker recognised in agent output."""

    todo_id: str
    action_type: ProgressActionType
    value: Optional[float] = Field(default=None, description="Percentage if any")
    message: Optional[str] = Field(default=None, description="Issue or help text")
    timestamp: datetime = Field(default_factory=datetime.now)
    raw_match: str = Field(default="")


class UpdateMetadata(BaseModel):
    """State of the todo item before an update was applied."""

    raw_match: str = Field(default="")
    previous_status: TodoStatus = Field(default=TodoStatus.PENDING)
    previous_progress: float = Field(default=0.0)


class ProgressUpdateData(BaseModel):
    percentage: Optional[float] = Field(default=None)
    error_message: Optional[str] = Field(default=None)
    help_request: Optional[str] = Field(default=None)
    metadata: UpdateMetadata = Field(default_factory=UpdateMetadata)


class ProgressUpdate(BaseModel):
    """An accepted state transition on a todo item."""

    type: ProgressActionType
    subtask_id: str
    todo_id: str
    timestamp: datetime = Field(default_factory=datetime.now)
    data: ProgressUpdateData = Field(default_factory=ProgressUpdateData)

    class Config:
        """Pydantic configuration."""

        json_encoders = {datetime: lambda v: v.isoformat()}


class ProgressEvent(BaseModel):
    """Payload of a todo-updated event."""

    subtask_id: str
    todo_id: str
    update: ProgressUpdate
    todo_list: SubtaskTodoList


class BatchProgressEvent(BaseModel):
    """Payload of a progress-batch-update event."""

    subtask_id: str
    updates: List[ProgressUpdate] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=datetime.now)


class ProgressSummary(BaseModel):
    """Point-in-time counts for one subtask's checklist."""

    subtask_id: str
    total_items: int = Field(default=0)
    completed: int = Field(default=0)
    in_progress: int = Field(default=0)
    pending: int = Field(default=0)
    failed: int = Field(default=0)
    skipped: int = Field(default=0)
    overall_progress: float = Field(default=0.0, description="Mean percentage")
    estimated_time_remaining: int = Field(default=0, description="Milliseconds")


class ParserConfig(BaseModel):
    """Progress parser behaviour."""

    enable_real_time_updates: bool = Field(
        default=True, description="Buffer updates and flush on a timer"
    )
    batch_update_interval_ms: int = Field(default=1000, ge=1)
    enable_progress_validation: bool = Field(default=True)


class ParsingStats(BaseModel):
    """Counters describing parser activity."""

    markers_recognized: int = Field(default=0)
    updates_applied: int = Field(default=0)
    updates_rejected: int = Field(default=0)
    unknown_targets: int = Field(default=0)
    by_action: Dict[str, int] = Field(default_factory=dict)
    active_todo_lists: int = Field(default=0)
    pending_buffered_updates: int = Field(default=0)
    batches_flushed: int = Field(default=0)
