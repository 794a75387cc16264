"""In-process result store."""

import asyncio
import logging
from datetime import datetime
from typing import Dict, List, Optional

from ..models.execution_models import ExecutionState, SubtaskExecutionStatus
from ..models.result_models import (
    BatchMetadata,
    BatchStatus,
    ResultQuery,
    StoredSubtaskResult,
    WorkflowResults,
)
from .base import ResultStore

logger = logging.getLogger(__name__)

FINISHED_BATCH_STATUSES = {BatchStatus.COMPLETED, BatchStatus.FAILED, BatchStatus.PARTIAL}


class InMemoryResultStore(ResultStore):
    """
    Dictionary-backed result store for single-process runs and tests.

    PATTERN: Tables keyed by stable IDs, one lock for all writes
    CRITICAL: Stores and returns deep copies only
    """

    def __init__(self):
        self._results: Dict[str, StoredSubtaskResult] = {}
        self._states: Dict[str, ExecutionState] = {}
        self._batches: Dict[str, BatchMetadata] = {}
        self._workflow_index: Dict[str, List[str]] = {}
        self._order_counters: Dict[str, int] = {}
        self._lock = asyncio.Lock()
        self.logger = logging.getLogger(__name__)

    async def save_subtask_result(self, result: StoredSubtaskResult) -> StoredSubtaskResult:
        stamped = self.stamp(result)
        async with self._lock:
            self._results[stamped.subtask_id] = stamped
            index = self._workflow_index.setdefault(stamped.workflow_id, [])
            if stamped.subtask_id not in index:
                index.append(stamped.subtask_id)

        self.logger.debug(f"Stored result for {stamped.subtask_id} ({stamped.status.value})")
        return stamped.model_copy(deep=True)

    async def update_subtask_status(
        self, subtask_id: str, status: SubtaskExecutionStatus
    ) -> bool:
        async with self._lock:
            existing = self._results.get(subtask_id)
            if existing is None:
                self.logger.warning(f"Cannot update status of unknown result {subtask_id}")
                return False
            updated = existing.model_copy(update={"status": status})
            self._results[subtask_id] = self.stamp(updated)
            return True

    async def get_subtask_result(self, subtask_id: str) -> Optional[StoredSubtaskResult]:
        result = self._results.get(subtask_id)
        return result.model_copy(deep=True) if result else None

    async def save_execution_state(self, state: ExecutionState) -> None:
        async with self._lock:
            self._states[state.workflow_id] = state.model_copy(deep=True)

    async def load_execution_state(self, workflow_id: str) -> Optional[ExecutionState]:
        state = self._states.get(workflow_id)
        return state.model_copy(deep=True) if state else None

    async def get_workflow_results(self, workflow_id: str) -> WorkflowResults:
        results = [
            self._results[subtask_id].model_copy(deep=True)
            for subtask_id in self._workflow_index.get(workflow_id, [])
            if subtask_id in self._results
        ]
        batches = [
            batch.model_copy(deep=True)
            for batch in self._batches.values()
            if batch.workflow_id == workflow_id
        ]
        return self.summarize(
            workflow_id, results, batches, await self.load_execution_state(workflow_id)
        )

    async def save_batch_metadata(self, metadata: BatchMetadata) -> None:
        async with self._lock:
            self._batches[metadata.batch_id] = metadata.model_copy(deep=True)

    async def update_batch_status(self, batch_id: str, status: BatchStatus) -> bool:
        async with self._lock:
            metadata = self._batches.get(batch_id)
            if metadata is None:
                return False
            metadata.status = status
            if status in FINISHED_BATCH_STATUSES:
                metadata.end_time = datetime.now()
            return True

    async def get_batch_metadata(self, batch_id: str) -> Optional[BatchMetadata]:
        metadata = self._batches.get(batch_id)
        return metadata.model_copy(deep=True) if metadata else None

    async def get_batch_results(self, batch_id: str) -> List[StoredSubtaskResult]:
        results = [r for r in self._results.values() if r.batch_id == batch_id]
        return [
            r.model_copy(deep=True)
            for r in sorted(results, key=lambda r: r.execution_order)
        ]

    async def query_results(self, query: ResultQuery) -> List[StoredSubtaskResult]:
        return [
            r.model_copy(deep=True)
            for r in self.filter_results(list(self._results.values()), query)
        ]

    async def cleanup(self, older_than: datetime) -> int:
        async with self._lock:
            stale_results = [
                subtask_id
                for subtask_id, result in self._results.items()
                if result.storage_timestamp and result.storage_timestamp < older_than
            ]
            stale_states = [
                workflow_id
                for workflow_id, state in self._states.items()
                if state.start_time < older_than
            ]
            stale_batches = [
                batch_id
                for batch_id, batch in self._batches.items()
                if batch.start_time < older_than
            ]

            for subtask_id in stale_results:
                del self._results[subtask_id]
            for workflow_id in stale_states:
                del self._states[workflow_id]
            for batch_id in stale_batches:
                del self._batches[batch_id]

            self._rebuild_workflow_index()

        removed = len(stale_results) + len(stale_states) + len(stale_batches)
        self.logger.info(f"Cleaned up {removed} stored records older than {older_than}")
        return removed

    async def next_execution_order(self, workflow_id: str) -> int:
        async with self._lock:
            self._order_counters[workflow_id] = self._order_counters.get(workflow_id, 0) + 1
            return self._order_counters[workflow_id]

    def _rebuild_workflow_index(self) -> None:
        self._workflow_index = {}
        for result in sorted(self._results.values(), key=lambda r: r.execution_order):
            self._workflow_index.setdefault(result.workflow_id, []).append(result.subtask_id)
