"""Persistence models for subtask results and reintegration."""

from pydantic import BaseModel, Field
from typing import Dict, List, Optional, Literal
from enum import Enum
from datetime import datetime

from .execution_models import AgentResponse, ExecutionState, SubtaskExecutionStatus


class StoredSubtaskResult(AgentResponse):
    """Agent response annotated with batch and dependency metadata."""

    workflow_id: str
    batch_id: Optional[str] = Field(default=None)
    batch_index: int = Field(default=0)
    execution_order: int = Field(default=0, description="Monotonic per workflow")
    dependency_chain: List[str] = Field(
        default_factory=list, description="All ancestor subtask IDs"
    )
    parent_subtask_ids: List[str] = Field(default_factory=list)
    child_subtask_ids: List[str] = Field(default_factory=list)
    execution_level: int = Field(default=0, description="Topological depth")
    storage_timestamp: Optional[datetime] = Field(default=None)
    checksum: str = Field(default="")


class BatchStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"


class BatchMetadata(BaseModel):
    """Bookkeeping for one dispatched batch."""

    batch_id: str
    workflow_id: str
    group_id: Optional[str] = Field(default=None)
    batch_index: int = Field(default=0)
    strategy: Literal["parallel", "serial"] = Field(default="parallel")
    start_time: datetime = Field(default_factory=datetime.now)
    end_time: Optional[datetime] = Field(default=None)
    subtask_ids: List[str] = Field(default_factory=list)
    assigned_agent_id: Optional[str] = Field(default=None)
    status: BatchStatus = Field(default=BatchStatus.PENDING)


class ResultQuery(BaseModel):
    """Filters for querying stored results."""

    workflow_id: Optional[str] = Field(default=None)
    subtask_ids: Optional[List[str]] = Field(default=None)
    batch_id: Optional[str] = Field(default=None)
    status: Optional[SubtaskExecutionStatus] = Field(default=None)
    agent_id: Optional[str] = Field(default=None)
    since: Optional[datetime] = Field(default=None)
    until: Optional[datetime] = Field(default=None)
    limit: Optional[int] = Field(default=None, ge=0)
    offset: int = Field(default=0, ge=0)


class WorkflowResults(BaseModel):
    """Everything stored for one workflow."""

    workflow_id: str
    results: List[StoredSubtaskResult] = Field(default_factory=list)
    batches: List[BatchMetadata] = Field(default_factory=list)
    execution_state: Optional[ExecutionState] = Field(default=None)
    total_subtasks: int = Field(default=0)
    successful_subtasks: int = Field(default=0)
    failed_subtasks: int = Field(default=0)


class DependencyNode(BaseModel):
    subtask_id: str
    dependencies: List[str] = Field(default_factory=list)
    dependents: List[str] = Field(default_factory=list)
    level: int = Field(default=0)
    status: SubtaskExecutionStatus = Field(default=SubtaskExecutionStatus.COMPLETED)


class ExecutionSummary(BaseModel):
    total_execution_time_ms: int = Field(default=0)
    success_rate: float = Field(default=0.0)
    average_execution_time_ms: float = Field(default=0.0)
    levels: int = Field(default=0)
    retries: int = Field(default=0)


class ReintegrationData(BaseModel):
    """Dependency-annotated result set used to reassemble a final answer."""

    workflow_id: str
    ordered_results: List[StoredSubtaskResult] = Field(
        default_factory=list, description="Sorted by level then execution order"
    )
    dependency_graph: Dict[str, DependencyNode] = Field(default_factory=dict)
    results_by_level: Dict[int, List[str]] = Field(default_factory=dict)
    execution_summary: ExecutionSummary = Field(default_factory=ExecutionSummary)


class IntegrityReport(BaseModel):
    """Outcome of validating stored results."""

    workflow_id: str
    is_valid: bool = Field(default=True)
    checked: int = Field(default=0)
    checksum_mismatches: List[str] = Field(default_factory=list)
    missing_dependencies: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
