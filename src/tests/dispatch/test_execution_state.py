"""Tests for the execution state machine."""

import pytest

from swarm_slicer.dispatch.execution_state import ExecutionStateManager
from swarm_slicer.models.execution_models import (
    ErrorType,
    ExecutionError,
    SubtaskExecutionStatus as Status,
    WorkflowStatus,
)
from swarm_slicer.utils.events import (
    EventBus,
    SUBTASK_STATUS_CHANGED,
    WORKFLOW_COMPLETED,
)


class TestExecutionStateManager:
    """Test suite for ExecutionStateManager."""

    def setup_method(self):
        """Set up manager with a recording event bus."""
        self.events = EventBus()
        self.changes = []
        self.events.subscribe(SUBTASK_STATUS_CHANGED, self.changes.append)
        self.manager = ExecutionStateManager("wf", self.events)

    @pytest.mark.asyncio
    async def test_register_queues_subtasks(self):
        """Test registered subtasks start queued."""
        await self.manager.register_subtasks(["a", "b"])

        state = self.manager.snapshot()
        assert state.queued_subtasks == {"a", "b"}
        assert state.progress.total == 2
        assert state.progress.queued == 2

    @pytest.mark.asyncio
    async def test_happy_path(self):
        """Test queued -> running -> completed."""
        await self.manager.register_subtasks(["a"])

        assert await self.manager.mark_running("a")
        assert self.manager.snapshot().running_subtasks == {"a"}
        assert await self.manager.mark_completed("a")

        state = self.manager.snapshot()
        assert state.completed_subtasks == {"a"}
        assert state.running_subtasks == set()
        assert [c["status"] for c in self.changes] == ["running", "completed"]

    @pytest.mark.asyncio
    async def test_retry_cycle(self):
        """Test running -> retrying -> running counts retries."""
        await self.manager.register_subtasks(["a"])
        await self.manager.mark_running("a")

        assert await self.manager.mark_retrying("a")
        assert self.manager.snapshot().running_subtasks == {"a"}
        assert await self.manager.mark_running("a")
        assert self.manager.snapshot().retry_count == {"a": 1}

    @pytest.mark.asyncio
    async def test_illegal_transitions_ignored(self):
        """Test transitions outside the state machine are refused."""
        await self.manager.register_subtasks(["a"])

        assert not await self.manager.mark_completed("a")
        await self.manager.mark_running("a")
        await self.manager.mark_completed("a")
        assert not await self.manager.mark_failed("a")
        assert self.manager.status_of("a") == Status.COMPLETED

    @pytest.mark.asyncio
    async def test_failure_records_error(self):
        """Test mark_failed stores the error."""
        await self.manager.register_subtasks(["a"])
        await self.manager.mark_running("a")
        error = ExecutionError(type=ErrorType.API_ERROR, message="boom", subtask_id="a")

        assert await self.manager.mark_failed("a", error)

        state = self.manager.snapshot()
        assert state.failed_subtasks == {"a"}
        assert state.errors[0].message == "boom"

    @pytest.mark.asyncio
    async def test_halt_only_touches_unstarted_work(self):
        """Test halt moves queued work to halted and leaves running work alone."""
        await self.manager.register_subtasks(["a", "b", "c"])
        await self.manager.mark_running("a")

        halted = await self.manager.halt("budget exceeded")

        assert sorted(halted) == ["b", "c"]
        assert self.manager.is_halted
        assert self.manager.status_of("a") == Status.RUNNING
        assert self.manager.snapshot().halt_reason == "budget exceeded"
        assert await self.manager.halt("again") == []

    @pytest.mark.asyncio
    async def test_finish_derives_status(self):
        """Test finish reports failed when anything failed or was skipped."""
        completed = []
        self.events.subscribe(WORKFLOW_COMPLETED, completed.append)
        await self.manager.register_subtasks(["a", "b"])
        await self.manager.mark_running("a")
        await self.manager.mark_completed("a")
        await self.manager.mark_skipped("b")

        status = await self.manager.finish()

        assert status == WorkflowStatus.FAILED
        assert completed == [{"workflow_id": "wf", "status": "failed"}]
        assert self.manager.snapshot().end_time is not None

    @pytest.mark.asyncio
    async def test_snapshot_is_detached(self):
        """Test mutating a snapshot leaves the manager state alone."""
        await self.manager.register_subtasks(["a"])
        snapshot = self.manager.snapshot()
        snapshot.queued_subtasks.clear()

        assert self.manager.snapshot().queued_subtasks == {"a"}
