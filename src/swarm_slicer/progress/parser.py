"""Checkpoint marker recognition and todo-list progress tracking."""

import asyncio
import logging
import re
from datetime import datetime
from typing import Callable, Dict, List, Optional

from ..models.progress_models import (
    BatchProgressEvent,
    ParsedCheckpoint,
    ParserConfig,
    ParsingStats,
    ProgressActionType,
    ProgressEvent,
    ProgressSummary,
    ProgressUpdate,
    ProgressUpdateData,
    UpdateMetadata,
)
from ..models.todo_models import SubtaskTodoList, TodoItem, TodoStatus
from ..utils.events import (
    EventBus,
    HELP_REQUESTED,
    PROGRESS_BATCH_UPDATE,
    TODO_LIST_REGISTERED,
    TODO_LIST_UNREGISTERED,
    TODO_UPDATED,
)

logger = logging.getLogger(__name__)

IN_PROGRESS_DEFAULT_PERCENTAGE = 50.0
DEFAULT_FAILURE_MESSAGE = "Task failed"

# Alternatives are tried left to right at each position, matches come back in text order
MARKER_PATTERN = re.compile(
    r"\[CHECKPOINT:(?P<checkpoint_id>[^:\]]+):COMPLETED\]"
    r"|\[PROGRESS:(?P<progress_id>[^:\]]+):(?P<progress_value>\d+)\]"
    r"|\[ISSUE:(?P<issue_id>[^:\]]+):(?P<issue_text>[^\]]+)\]"
    r"|\[HELP:(?P<help_id>[^:\]]+):(?P<help_text>[^\]]+)\]"
    r"|✓\s*\[(?P<done_id>[^\]]+)\]\s*(?i:completed)"
    r"|❌\s*\[(?P<failed_id>[^\]]+)\]\s*(?i:failed):?[ \t]*(?P<failed_text>[^\n]*)"
    r"|⚠️?\s*\[(?P<percent_id>[^\]]+)\]\s*(?P<percent_value>\d+)%"
    r"|🔄\s*\[(?P<working_id>[^\]]+)\]\s*(?i:in progress)"
)

PARSER_PRESETS: Dict[str, ParserConfig] = {
    "development": ParserConfig(
        enable_real_time_updates=True,
        batch_update_interval_ms=500,
        enable_progress_validation=False,
    ),
    "production": ParserConfig(
        enable_real_time_updates=True,
        batch_update_interval_ms=1000,
        enable_progress_validation=True,
    ),
    "testing": ParserConfig(
        enable_real_time_updates=False,
        batch_update_interval_ms=100,
        enable_progress_validation=True,
    ),
}


def recognize_markers(
    text: str,
    timestamp: Optional[datetime] = None,
) -> List[ParsedCheckpoint]:
    """
    Find every checkpoint marker in agent output.

    Args:
        text: Free-text agent output
        timestamp: Time attached to every marker, defaults to now

    Returns:
        ParsedCheckpoint list in the order the markers appear
    """
    timestamp = timestamp or datetime.now()
    checkpoints = []

    for match in MARKER_PATTERN.finditer(text or ""):
        groups = match.groupdict()
        raw = match.group(0)

        if groups["checkpoint_id"] or groups["done_id"]:
            todo_id = groups["checkpoint_id"] or groups["done_id"]
            action, value, message = ProgressActionType.COMPLETION, None, None
        elif groups["progress_id"] or groups["percent_id"]:
            todo_id = groups["progress_id"] or groups["percent_id"]
            action = ProgressActionType.PROGRESS
            value = float(groups["progress_value"] or groups["percent_value"])
            message = None
        elif groups["working_id"]:
            todo_id = groups["working_id"]
            action, value, message = (
                ProgressActionType.PROGRESS, IN_PROGRESS_DEFAULT_PERCENTAGE, None
            )
        elif groups["issue_id"] or groups["failed_id"]:
            todo_id = groups["issue_id"] or groups["failed_id"]
            action, value = ProgressActionType.ERROR, None
            message = (groups["issue_text"] or groups["failed_text"] or "").strip()
            message = message or DEFAULT_FAILURE_MESSAGE
        else:
            todo_id = groups["help_id"]
            action, value = ProgressActionType.HELP, None
            message = groups["help_text"].strip()

        checkpoints.append(
            ParsedCheckpoint(
                todo_id=todo_id.strip(),
                action_type=action,
                value=value,
                message=message,
                timestamp=timestamp,
                raw_match=raw,
            )
        )

    return checkpoints


class ProgressParser:
    """
    Turns checkpoint markers in agent output into todo-list state transitions.

    PATTERN: Registry of todo lists keyed by subtask ID, one lock per subtask
    CRITICAL: progress == 100 if and only if status == completed
    CRITICAL: Completed and failed items never change percentage again
    GOTCHA: Rejected and unknown-target markers are logged and dropped, never raised
    """

    def __init__(
        self,
        config: Optional[ParserConfig] = None,
        event_bus: Optional[EventBus] = None,
    ):
        """
        Initialize progress parser.

        Args:
            config: Parser behaviour
            event_bus: Bus for todo and batch events
        """
        self.config = config or ParserConfig()
        self.events = event_bus or EventBus()

        self._todo_lists: Dict[str, SubtaskTodoList] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._buffers: Dict[str, List[ProgressUpdate]] = {}
        self._flush_task: Optional[asyncio.Task] = None
        self.stats = ParsingStats()
        self.logger = logging.getLogger(__name__)

    def subscribe(self, event_type: str, callback: Callable) -> Callable[[], None]:
        return self.events.subscribe(event_type, callback)

    def register_todo_list(self, subtask_id: str, todo_list: SubtaskTodoList) -> None:
        """
        Start tracking a subtask's checklist.

        Args:
            subtask_id: Owning subtask
            todo_list: Checklist, copied so callers keep no live reference
        """
        self._todo_lists[subtask_id] = todo_list.model_copy(deep=True)
        self._locks.setdefault(subtask_id, asyncio.Lock())
        self.logger.debug(f"Registered {todo_list.total_items} todos for {subtask_id}")
        self.events.emit(
            TODO_LIST_REGISTERED,
            {"subtask_id": subtask_id, "todo_list": self.get_todo_list(subtask_id)},
        )

    def unregister_todo_list(self, subtask_id: str) -> Optional[SubtaskTodoList]:
        """
        Stop tracking a subtask, flushing its pending updates first.

        Returns:
            Final snapshot of the checklist, None if it was not registered
        """
        if subtask_id not in self._todo_lists:
            return None

        self.flush_updates(subtask_id)
        final = self._todo_lists.pop(subtask_id)
        self._buffers.pop(subtask_id, None)
        self._locks.pop(subtask_id, None)

        self.events.emit(TODO_LIST_UNREGISTERED, {"subtask_id": subtask_id})
        return final

    def get_todo_list(self, subtask_id: str) -> Optional[SubtaskTodoList]:
        todo_list = self._todo_lists.get(subtask_id)
        return todo_list.model_copy(deep=True) if todo_list else None

    async def parse_agent_response(
        self,
        subtask_id: str,
        text: str,
        timestamp: Optional[datetime] = None,
    ) -> List[ParsedCheckpoint]:
        """
        Recognize markers in agent output and apply them to the subtask's todos.

        Args:
            subtask_id: Subtask that produced the output
            text: Agent output
            timestamp: Time the output was produced

        Returns:
            Every recognized marker, in text order
        """
        checkpoints = recognize_markers(text, timestamp)
        if not checkpoints:
            return checkpoints

        self.stats.markers_recognized += len(checkpoints)
        for checkpoint in checkpoints:
            action = checkpoint.action_type.value
            self.stats.by_action[action] = self.stats.by_action.get(action, 0) + 1

        if subtask_id not in self._todo_lists:
            self.logger.warning(f"No todo list registered for subtask {subtask_id}")
            self.stats.unknown_targets += len(checkpoints)
            return checkpoints

        lock = self._locks.setdefault(subtask_id, asyncio.Lock())
        applied: List[ProgressUpdate] = []
        async with lock:
            todo_list = self._todo_lists.get(subtask_id)
            if todo_list is None:
                return checkpoints
            for checkpoint in checkpoints:
                update = self._apply_checkpoint(subtask_id, todo_list, checkpoint)
                if update:
                    applied.append(update)

        if applied:
            self._buffer_updates(subtask_id, applied)

        return checkpoints

    def flush_updates(self, subtask_id: Optional[str] = None) -> int:
        """
        Emit buffered updates as progress-batch-update events.

        Args:
            subtask_id: Flush one subtask only, all when omitted

        Returns:
            Number of batch events emitted
        """
        subtask_ids = [subtask_id] if subtask_id else list(self._buffers)
        flushed = 0

        for sid in subtask_ids:
            updates = self._buffers.get(sid)
            if not updates:
                continue
            self._buffers[sid] = []
            self.events.emit(
                PROGRESS_BATCH_UPDATE,
                BatchProgressEvent(subtask_id=sid, updates=updates),
            )
            flushed += 1

        self.stats.batches_flushed += flushed
        return flushed

    def get_progress_summary(self, subtask_id: str) -> Optional[ProgressSummary]:
        """
        Status counts and remaining-time estimate for one subtask.

        GOTCHA: In-progress items contribute max(0, estimate - elapsed)

        Returns:
            ProgressSummary, None for unknown subtasks
        """
        todo_list = self._todo_lists.get(subtask_id)
        if todo_list is None:
            return None

        counts = {status: 0 for status in TodoStatus}
        remaining_ms = 0
        now = datetime.now()

        for todo in todo_list.todos:
            counts[todo.status] += 1
            if todo.status == TodoStatus.PENDING:
                remaining_ms += todo.estimated_duration_ms
            elif todo.status == TodoStatus.IN_PROGRESS:
                started = todo.start_time or todo_list.created_at
                elapsed_ms = int((now - started).total_seconds() * 1000)
                remaining_ms += max(0, todo.estimated_duration_ms - elapsed_ms)

        total = len(todo_list.todos)
        overall = (
            sum(t.progress_percentage for t in todo_list.todos) / total if total else 0.0
        )

        return ProgressSummary(
            subtask_id=subtask_id,
            total_items=total,
            completed=counts[TodoStatus.COMPLETED],
            in_progress=counts[TodoStatus.IN_PROGRESS],
            pending=counts[TodoStatus.PENDING],
            failed=counts[TodoStatus.FAILED],
            skipped=counts[TodoStatus.SKIPPED],
            overall_progress=round(overall, 2),
            estimated_time_remaining=remaining_ms,
        )

    def get_parsing_stats(self) -> ParsingStats:
        stats = self.stats.model_copy(deep=True)
        stats.active_todo_lists = len(self._todo_lists)
        stats.pending_buffered_updates = sum(len(b) for b in self._buffers.values())
        return stats

    async def destroy(self) -> None:
        """Stop the flush task, deliver what is buffered, drop all state."""
        if self._flush_task:
            self._flush_task.cancel()
            try:
                await self._flush_task
            except asyncio.CancelledError:
                pass
            self._flush_task = None

        self.flush_updates()
        self._todo_lists.clear()
        self._buffers.clear()
        self._locks.clear()
        self.events.clear()

    def _apply_checkpoint(
        self,
        subtask_id: str,
        todo_list: SubtaskTodoList,
        checkpoint: ParsedCheckpoint,
    ) -> Optional[ProgressUpdate]:
        todo = todo_list.get_todo(checkpoint.todo_id)
        if todo is None:
            self.logger.warning(
                f"Todo item not found: {checkpoint.todo_id} in subtask {subtask_id}"
            )
            self.stats.unknown_targets += 1
            return None

        update = self._build_update(subtask_id, todo, checkpoint)
        if update is None:
            self.stats.updates_rejected += 1
            return None

        self._transition(todo, update, checkpoint.timestamp)
        todo_list.last_updated = datetime.now()
        todo_list.refresh()
        self.stats.updates_applied += 1

        self.logger.debug(
            f"{subtask_id}/{todo.id}: {update.type.value} -> {todo.status.value} "
            f"({todo.progress_percentage:.0f}%)"
        )
        self.events.emit(
            TODO_UPDATED,
            ProgressEvent(
                subtask_id=subtask_id,
                todo_id=todo.id,
                update=update,
                todo_list=todo_list.model_copy(deep=True),
            ),
        )
        if update.type == ProgressActionType.HELP:
            self.events.emit(
                HELP_REQUESTED,
                {
                    "subtask_id": subtask_id,
                    "todo_id": todo.id,
                    "help_request": update.data.help_request,
                    "timestamp": update.timestamp,
                },
            )
        return update

    def _build_update(
        self,
        subtask_id: str,
        todo: TodoItem,
        checkpoint: ParsedCheckpoint,
    ) -> Optional[ProgressUpdate]:
        """
        Validate a marker against the item's current state.

        Returns:
            ProgressUpdate to apply, None when the marker is rejected
        """
        action = checkpoint.action_type
        data = ProgressUpdateData(
            metadata=UpdateMetadata(
                raw_match=checkpoint.raw_match,
                previous_status=todo.status,
                previous_progress=todo.progress_percentage,
            )
        )
        terminal = todo.status in (TodoStatus.COMPLETED, TodoStatus.FAILED)

        if action == ProgressActionType.COMPLETION:
            if todo.status == TodoStatus.FAILED:
                self.logger.warning(f"Ignoring completion of failed todo {todo.id}")
                return None
            data.percentage = 100.0

        elif action == ProgressActionType.PROGRESS:
            percentage = checkpoint.value if checkpoint.value is not None else 0.0
            if self.config.enable_progress_validation:
                if not self._is_valid_progress(todo, percentage):
                    self.logger.warning(
                        f"Invalid progress update: {percentage:.0f}% for todo {todo.id}"
                    )
                    return None
            else:
                percentage = min(100.0, max(0.0, percentage))
                if terminal and percentage != todo.progress_percentage:
                    self.logger.warning(f"Ignoring progress on finished todo {todo.id}")
                    return None
            data.percentage = percentage
            if percentage >= 100.0 and not terminal:
                # 100% is only reachable through completion
                action = ProgressActionType.COMPLETION

        elif action == ProgressActionType.ERROR:
            if terminal:
                self.logger.warning(f"Ignoring issue reported on finished todo {todo.id}")
                return None
            data.error_message = checkpoint.message or DEFAULT_FAILURE_MESSAGE

        else:
            data.help_request = checkpoint.message or "Help requested"

        return ProgressUpdate(
            type=action,
            subtask_id=subtask_id,
            todo_id=todo.id,
            timestamp=checkpoint.timestamp,
            data=data,
        )

    def _is_valid_progress(self, todo: TodoItem, percentage: float) -> bool:
        if percentage < 0 or percentage > 100:
            return False
        if todo.status in (TodoStatus.COMPLETED, TodoStatus.FAILED):
            return percentage == todo.progress_percentage
        return percentage >= todo.progress_percentage

    def _transition(self, todo: TodoItem, update: ProgressUpdate, when: datetime) -> None:
        if update.type == ProgressActionType.COMPLETION:
            if todo.status != TodoStatus.COMPLETED:
                todo.status = TodoStatus.COMPLETED
                todo.progress_percentage = 100.0
                todo.completion_time = when

        elif update.type == ProgressActionType.PROGRESS:
            if todo.status in (TodoStatus.COMPLETED, TodoStatus.FAILED):
                return
            todo.progress_percentage = update.data.percentage
            if todo.status == TodoStatus.PENDING:
                todo.status = TodoStatus.IN_PROGRESS
                todo.start_time = when

        elif update.type == ProgressActionType.ERROR:
            todo.status = TodoStatus.FAILED
            todo.error_message = update.data.error_message

    def _buffer_updates(self, subtask_id: str, updates: List[ProgressUpdate]) -> None:
        self._buffers.setdefault(subtask_id, []).extend(updates)

        if not self.config.enable_real_time_updates:
            self.flush_updates(subtask_id)
            return

        if self._flush_task is None or self._flush_task.done():
            self._flush_task = asyncio.create_task(self._flush_loop())

    async def _flush_loop(self) -> None:
        interval = self.config.batch_update_interval_ms / 1000
        while True:
            await asyncio.sleep(interval)
            self.flush_updates()
            if not any(self._buffers.values()):
                break


def create_progress_parser(
    mode: str = "production",
    event_bus: Optional[EventBus] = None,
) -> ProgressParser:
    """
    Build a parser with a named configuration.

    Args:
        mode: development, production or testing

    Returns:
        Configured ProgressParser
    """
    if mode not in PARSER_PRESETS:
        logger.warning(f"Unknown parser mode '{mode}', using production")
        mode = "production"
    return ProgressParser(PARSER_PRESETS[mode].model_copy(), event_bus)
