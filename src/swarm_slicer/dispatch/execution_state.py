"""Single-writer owner of a workflow's ExecutionState."""

import asyncio
import logging
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Set

from ..models.execution_models import (
    ExecutionError,
    ExecutionState,
    SubtaskExecutionStatus,
    WorkflowStatus,
)
from ..utils.events import (
    EventBus,
    SUBTASK_STATUS_CHANGED,
    WORKFLOW_COMPLETED,
    WORKFLOW_HALTED,
)

logger = logging.getLogger(__name__)

Status = SubtaskExecutionStatus

ALLOWED_TRANSITIONS: Dict[SubtaskExecutionStatus, Set[SubtaskExecutionStatus]] = {
    Status.QUEUED: {Status.RUNNING, Status.SKIPPED, Status.HALTED, Status.FAILED},
    Status.RUNNING: {Status.COMPLETED, Status.RETRYING, Status.FAILED},
    Status.RETRYING: {Status.RUNNING, Status.FAILED, Status.HALTED},
    Status.COMPLETED: set(),
    Status.FAILED: set(),
    Status.HALTED: set(),
    Status.SKIPPED: set(),
}


class ExecutionStateManager:
    """
    Owns the ExecutionState aggregate of one workflow run.

    PATTERN: All writes go through one asyncio.Lock, observers read snapshots
    CRITICAL: QUEUED -> RUNNING -> {COMPLETED | RETRYING -> RUNNING | FAILED}
    GOTCHA: halt() only touches work that has not started, in-flight calls drain
    """

    def __init__(self, workflow_id: str, event_bus: Optional[EventBus] = None):
        """
        Initialize state manager.

        Args:
            workflow_id: Workflow being tracked
            event_bus: Bus for status-change events
        """
        self.state = ExecutionState(workflow_id=workflow_id)
        self.events = event_bus or EventBus()
        self._lock = asyncio.Lock()
        self.logger = logging.getLogger(__name__)

    @property
    def workflow_id(self) -> str:
        return self.state.workflow_id

    @property
    def is_halted(self) -> bool:
        return self.state.status == WorkflowStatus.HALTED

    def status_of(self, subtask_id: str) -> Optional[SubtaskExecutionStatus]:
        return self.state.subtask_statuses.get(subtask_id)

    def snapshot(self) -> ExecutionState:
        """Deep copy of the current state, safe to hand to observers."""
        return self.state.model_copy(deep=True)

    def subscribe(self, event_type: str, callback: Callable) -> Callable[[], None]:
        return self.events.subscribe(event_type, callback)

    async def register_subtasks(self, subtask_ids: Iterable[str]) -> None:
        """Queue subtasks that are not tracked yet."""
        async with self._lock:
            for subtask_id in subtask_ids:
                if subtask_id not in self.state.subtask_statuses:
                    self.state.subtask_statuses[subtask_id] = Status.QUEUED
            self._recompute()

    async def set_current_batch(self, batch_id: Optional[str]) -> None:
        async with self._lock:
            self.state.current_batch = batch_id

    async def transition(
        self,
        subtask_id: str,
        new_status: SubtaskExecutionStatus,
    ) -> bool:
        """
        Move a subtask to a new status.

        Args:
            subtask_id: Subtask to move
            new_status: Target status

        Returns:
            True if the transition was allowed and applied
        """
        async with self._lock:
            return self._apply(subtask_id, new_status)

    async def mark_running(self, subtask_id: str) -> bool:
        return await self.transition(subtask_id, Status.RUNNING)

    async def mark_retrying(self, subtask_id: str) -> bool:
        async with self._lock:
            applied = self._apply(subtask_id, Status.RETRYING)
            if applied:
                self.state.retry_count[subtask_id] = (
                    self.state.retry_count.get(subtask_id, 0) + 1
                )
            return applied

    async def mark_completed(self, subtask_id: str) -> bool:
        return await self.transition(subtask_id, Status.COMPLETED)

    async def mark_failed(
        self,
        subtask_id: str,
        error: Optional[ExecutionError] = None,
    ) -> bool:
        async with self._lock:
            if error:
                self.state.errors.append(error)
            return self._apply(subtask_id, Status.FAILED)

    async def mark_skipped(self, subtask_id: str) -> bool:
        return await self.transition(subtask_id, Status.SKIPPED)

    async def record_error(self, error: ExecutionError) -> None:
        async with self._lock:
            self.state.errors.append(error)

    async def halt(self, reason: str) -> List[str]:
        """
        Stop the workflow from starting any further work.

        Args:
            reason: Human-readable halt reason

        Returns:
            IDs of subtasks moved to halted by this call
        """
        async with self._lock:
            if self.is_halted:
                return []

            self.state.status = WorkflowStatus.HALTED
            self.state.halt_reason = reason

            halted = [
                subtask_id
                for subtask_id, status in self.state.subtask_statuses.items()
                if status in (Status.QUEUED, Status.RETRYING)
            ]
            for subtask_id in halted:
                self._apply(subtask_id, Status.HALTED)

            self.logger.error(
                f"Workflow {self.workflow_id} halted: {reason} "
                f"({len(halted)} subtasks halted)"
            )
            self.events.emit(
                WORKFLOW_HALTED,
                {
                    "workflow_id": self.workflow_id,
                    "reason": reason,
                    "halted_subtask_ids": sorted(self.state.halted_subtasks),
                },
            )
            return halted

    async def finish(self, status: Optional[WorkflowStatus] = None) -> WorkflowStatus:
        """
        Close the run and emit workflow-completed.

        Args:
            status: Final status, derived from the subtask sets when omitted

        Returns:
            Final workflow status
        """
        async with self._lock:
            if status is None:
                if self.is_halted:
                    status = WorkflowStatus.HALTED
                elif self.state.failed_subtasks or self.state.skipped_subtasks:
                    status = WorkflowStatus.FAILED
                else:
                    status = WorkflowStatus.COMPLETED

            self.state.status = status
            self.state.end_time = datetime.now()
            self.state.current_batch = None

            self.events.emit(
                WORKFLOW_COMPLETED,
                {"workflow_id": self.workflow_id, "status": status.value},
            )
            return status

    def _apply(self, subtask_id: str, new_status: SubtaskExecutionStatus) -> bool:
        previous = self.state.subtask_statuses.get(subtask_id, Status.QUEUED)
        if new_status not in ALLOWED_TRANSITIONS[previous]:
            self.logger.warning(
                f"Ignoring transition {previous.value} -> {new_status.value} "
                f"for subtask {subtask_id}"
            )
            return False

        self.state.subtask_statuses[subtask_id] = new_status
        self._recompute()

        self.logger.debug(f"Subtask {subtask_id}: {previous.value} -> {new_status.value}")
        self.events.emit(
            SUBTASK_STATUS_CHANGED,
            {
                "workflow_id": self.workflow_id,
                "subtask_id": subtask_id,
                "previous_status": previous.value,
                "status": new_status.value,
            },
        )
        return True

    def _recompute(self) -> None:
        buckets: Dict[SubtaskExecutionStatus, Set[str]] = {status: set() for status in Status}
        for subtask_id, status in self.state.subtask_statuses.items():
            buckets[status].add(subtask_id)

        self.state.queued_subtasks = buckets[Status.QUEUED]
        self.state.running_subtasks = buckets[Status.RUNNING] | buckets[Status.RETRYING]
        self.state.completed_subtasks = buckets[Status.COMPLETED]
        self.state.failed_subtasks = buckets[Status.FAILED]
        self.state.halted_subtasks = buckets[Status.HALTED]
        self.state.skipped_subtasks = buckets[Status.SKIPPED]

        progress = self.state.progress
        progress.total = len(self.state.subtask_statuses)
        progress.completed = len(buckets[Status.COMPLETED])
        progress.failed = len(buckets[Status.FAILED])
        progress.in_progress = len(self.state.running_subtasks)
        progress.queued = len(buckets[Status.QUEUED])
        progress.halted = len(buckets[Status.HALTED])
