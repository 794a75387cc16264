"""Execution tracking models for batch dispatch."""

import uuid
from pydantic import BaseModel, Field
from typing import Dict, List, Any, Optional, Set
from enum import Enum
from datetime import datetime


class ErrorType(str, Enum):
    """Error taxonomy for dispatch failures."""

    API_ERROR = "API_ERROR"  # Agent backend failure, retryable
    VALIDATION_ERROR = "VALIDATION_ERROR"
    SYSTEM_ERROR = "SYSTEM_ERROR"
    TIMEOUT_ERROR = "TIMEOUT_ERROR"  # Retryable
    RECOVERY = "RECOVERY"  # Informational, retry or fallback succeeded


class ExecutionError(BaseModel):
    """A recorded failure (or recovery) during execution."""

    type: ErrorType
    message: str
    subtask_id: Optional[str] = Field(default=None)
    agent_id: Optional[str] = Field(default=None)
    timestamp: datetime = Field(default_factory=datetime.now)
    retryable: bool = Field(default=False)


class SubtaskExecutionStatus(str, Enum):
    """Per-subtask execution state machine."""

    QUEUED = "queued"
    RUNNING = "running"
    RETRYING = "retrying"
    COMPLETED = "completed"
    FAILED = "failed"
    HALTED = "halted"
    SKIPPED = "skipped"


TERMINAL_EXECUTION_STATUSES = {
    SubtaskExecutionStatus.COMPLETED,
    SubtaskExecutionStatus.FAILED,
    SubtaskExecutionStatus.HALTED,
    SubtaskExecutionStatus.SKIPPED,
}


class WorkflowStatus(str, Enum):
    """Status of a workflow run."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    HALTED = "halted"
    PAUSED = "paused"


class AgentResponse(BaseModel):
    """Outcome of dispatching one subtask to an agent."""

    subtask_id: str
    agent_id: str
    content: str = Field(default="")
    success: bool = Field(default=False)
    error: Optional[str] = Field(default=None)
    status: SubtaskExecutionStatus = Field(default=SubtaskExecutionStatus.COMPLETED)
    execution_time_ms: int = Field(default=0)
    retry_count: int = Field(default=0)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class BatchExecutionResult(BaseModel):
    """Fan-in result of one batch group."""

    batch_id: str = Field(default_factory=lambda: f"batch_{uuid.uuid4().hex[:8]}")
    group_id: str
    subtask_ids: List[str] = Field(default_factory=list)
    results: List[AgentResponse] = Field(default_factory=list)
    success: bool = Field(default=False)
    execution_time_ms: int = Field(default=0)
    errors: List[ExecutionError] = Field(default_factory=list)

    @property
    def failed_subtask_ids(self) -> List[str]:
        return [r.subtask_id for r in self.results if not r.success]


class ExecutionProgress(BaseModel):
    total: int = Field(default=0)
    completed: int = Field(default=0)
    failed: int = Field(default=0)
    in_progress: int = Field(default=0)
    queued: int = Field(default=0)
    halted: int = Field(default=0)


class ExecutionState(BaseModel):
    """Aggregate view of a workflow run, read by observers."""

    workflow_id: str
    status: WorkflowStatus = Field(default=WorkflowStatus.RUNNING)
    start_time: datetime = Field(default_factory=datetime.now)
    end_time: Optional[datetime] = Field(default=None)

    running_subtasks: Set[str] = Field(default_factory=set)
    completed_subtasks: Set[str] = Field(default_factory=set)
    failed_subtasks: Set[str] = Field(default_factory=set)
    halted_subtasks: Set[str] = Field(default_factory=set)
    queued_subtasks: Set[str] = Field(default_factory=set)
    skipped_subtasks: Set[str] = Field(default_factory=set)

    subtask_statuses: Dict[str, SubtaskExecutionStatus] = Field(default_factory=dict)
    retry_count: Dict[str, int] = Field(default_factory=dict)
    errors: List[ExecutionError] = Field(default_factory=list)
    progress: ExecutionProgress = Field(default_factory=ExecutionProgress)

    current_batch: Optional[str] = Field(default=None)
    halt_reason: Optional[str] = Field(default=None)

    class Config:
        """Pydantic configuration."""

        json_encoders = {datetime: lambda v: v.isoformat() if v else None}


class WorkflowExecutionResult(BaseModel):
    """Result of running every batch group of a workflow."""

    workflow_id: str
    status: WorkflowStatus
    batch_results: List[BatchExecutionResult] = Field(default_factory=list)
    halted_subtask_ids: List[str] = Field(default_factory=list)
    skipped_subtask_ids: List[str] = Field(default_factory=list)
    halt_reason: Optional[str] = Field(default=None)
    execution_time_ms: int = Field(default=0)
    final_state: Optional[ExecutionState] = Field(default=None)

    @property
    def results(self) -> List[AgentResponse]:
        return [r for batch in self.batch_results for r in batch.results]


class DispatcherStats(BaseModel):
    """Counters collected by the dispatcher."""

    batches_dispatched: int = Field(default=0)
    subtasks_dispatched: int = Field(default=0)
    subtasks_succeeded: int = Field(default=0)
    subtasks_failed: int = Field(default=0)
    total_retries: int = Field(default=0)
    fallback_attempts: int = Field(default=0)
    recoveries: int = Field(default=0)
    cancelled: int = Field(default=0)
    active_subtasks: int = Field(default=0)
    average_execution_time_ms: float = Field(default=0.0)
