"""Abstract base class for result store implementations."""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional

from ..models.execution_models import (
    AgentResponse,
    ExecutionState,
    SubtaskExecutionStatus,
)
from ..models.result_models import (
    BatchMetadata,
    BatchStatus,
    DependencyNode,
    ExecutionSummary,
    IntegrityReport,
    ReintegrationData,
    ResultQuery,
    StoredSubtaskResult,
    WorkflowResults,
)
from .checksum import compute_checksum

logger = logging.getLogger(__name__)


class ResultStore(ABC):
    """
    Abstract base class defining the result persistence interface.

    CRITICAL: Every returned object is a snapshot, mutating it never changes the store
    GOTCHA: Checksums are recomputed on every write
    """

    @abstractmethod
    async def save_subtask_result(self, result: StoredSubtaskResult) -> StoredSubtaskResult:
        """
        Persist a result, stamping storage time and checksum.

        Args:
            result: Result to store

        Returns:
            Snapshot of the stored result
        """
        pass

    @abstractmethod
    async def update_subtask_status(
        self, subtask_id: str, status: SubtaskExecutionStatus
    ) -> bool:
        """
        Change the status of a stored result.

        Returns:
            True if the result exists
        """
        pass

    @abstractmethod
    async def get_subtask_result(self, subtask_id: str) -> Optional[StoredSubtaskResult]:
        pass

    @abstractmethod
    async def save_execution_state(self, state: ExecutionState) -> None:
        pass

    @abstractmethod
    async def load_execution_state(self, workflow_id: str) -> Optional[ExecutionState]:
        pass

    @abstractmethod
    async def get_workflow_results(self, workflow_id: str) -> WorkflowResults:
        """
        Everything stored for a workflow.

        Args:
            workflow_id: Workflow identifier

        Returns:
            WorkflowResults with results sorted by execution order
        """
        pass

    @abstractmethod
    async def save_batch_metadata(self, metadata: BatchMetadata) -> None:
        pass

    @abstractmethod
    async def update_batch_status(self, batch_id: str, status: BatchStatus) -> bool:
        pass

    @abstractmethod
    async def get_batch_metadata(self, batch_id: str) -> Optional[BatchMetadata]:
        pass

    @abstractmethod
    async def get_batch_results(self, batch_id: str) -> List[StoredSubtaskResult]:
        pass

    @abstractmethod
    async def query_results(self, query: ResultQuery) -> List[StoredSubtaskResult]:
        pass

    @abstractmethod
    async def cleanup(self, older_than: datetime) -> int:
        """
        Delete results, states and batches older than a cutoff.

        Args:
            older_than: Cutoff time

        Returns:
            Number of records removed
        """
        pass

    @abstractmethod
    async def next_execution_order(self, workflow_id: str) -> int:
        """Next value of the per-workflow monotonic execution counter."""
        pass

    async def close(self) -> None:
        """Release store resources."""
        pass

    async def create_stored_result(
        self,
        response: AgentResponse,
        workflow_id: str,
        batch_id: Optional[str] = None,
        batch_index: int = 0,
        dependency_chain: Optional[List[str]] = None,
        parent_subtask_ids: Optional[List[str]] = None,
        child_subtask_ids: Optional[List[str]] = None,
        execution_level: int = 0,
    ) -> StoredSubtaskResult:
        """
        Wrap an agent response with batch and dependency metadata.

        GOTCHA: Consumes one execution order value even if never saved
        """
        return StoredSubtaskResult(
            **response.model_dump(include=set(AgentResponse.model_fields)),
            workflow_id=workflow_id,
            batch_id=batch_id,
            batch_index=batch_index,
            execution_order=await self.next_execution_order(workflow_id),
            dependency_chain=list(dependency_chain or []),
            parent_subtask_ids=list(parent_subtask_ids or []),
            child_subtask_ids=list(child_subtask_ids or []),
            execution_level=execution_level,
        )

    async def get_reintegration_data(self, workflow_id: str) -> ReintegrationData:
        """
        Results ordered for reassembly, with their dependency graph.

        Args:
            workflow_id: Workflow identifier

        Returns:
            ReintegrationData
        """
        workflow_results = await self.get_workflow_results(workflow_id)
        results = sorted(
            workflow_results.results,
            key=lambda r: (r.execution_level, r.execution_order),
        )

        graph: Dict[str, DependencyNode] = {}
        by_level: Dict[int, List[str]] = {}
        for result in results:
            graph[result.subtask_id] = DependencyNode(
                subtask_id=result.subtask_id,
                dependencies=list(result.parent_subtask_ids),
                dependents=list(result.child_subtask_ids),
                level=result.execution_level,
                status=result.status,
            )
            by_level.setdefault(result.execution_level, []).append(result.subtask_id)

        total_time = sum(r.execution_time_ms for r in results)
        succeeded = sum(1 for r in results if r.success)

        summary = ExecutionSummary(
            total_execution_time_ms=total_time,
            success_rate=succeeded / len(results) if results else 0.0,
            average_execution_time_ms=total_time / len(results) if results else 0.0,
            levels=len(by_level),
            retries=sum(r.retry_count for r in results),
        )

        return ReintegrationData(
            workflow_id=workflow_id,
            ordered_results=results,
            dependency_graph=graph,
            results_by_level=by_level,
            execution_summary=summary,
        )

    async def validate_integrity(self, workflow_id: str) -> IntegrityReport:
        """
        Check every stored result of a workflow against its checksum.

        Args:
            workflow_id: Workflow identifier

        Returns:
            IntegrityReport, is_valid is False on any mismatch or dangling dependency
        """
        report = IntegrityReport(workflow_id=workflow_id)
        workflow_results = await self.get_workflow_results(workflow_id)

        for result in workflow_results.results:
            report.checked += 1
            if result.checksum != compute_checksum(result):
                report.checksum_mismatches.append(result.subtask_id)

            for dependency_id in result.dependency_chain:
                if await self.get_subtask_result(dependency_id) is None:
                    report.missing_dependencies.append(dependency_id)

        report.missing_dependencies = sorted(set(report.missing_dependencies))
        report.is_valid = not report.checksum_mismatches and not report.missing_dependencies

        if not report.is_valid:
            logger.warning(
                f"Integrity check failed for {workflow_id}: "
                f"{len(report.checksum_mismatches)} checksum mismatches, "
                f"{len(report.missing_dependencies)} missing dependencies"
            )
        return report

    @staticmethod
    def stamp(result: StoredSubtaskResult) -> StoredSubtaskResult:
        """Copy of a result with fresh storage time and checksum."""
        stamped = result.model_copy(deep=True)
        stamped.storage_timestamp = datetime.now()
        stamped.checksum = compute_checksum(stamped)
        return stamped

    @staticmethod
    def filter_results(
        results: List[StoredSubtaskResult],
        query: ResultQuery,
    ) -> List[StoredSubtaskResult]:
        """Apply query filters, execution-order sort and pagination."""
        if query.workflow_id:
            results = [r for r in results if r.workflow_id == query.workflow_id]
        if query.subtask_ids is not None:
            wanted = set(query.subtask_ids)
            results = [r for r in results if r.subtask_id in wanted]
        if query.batch_id:
            results = [r for r in results if r.batch_id == query.batch_id]
        if query.status:
            results = [r for r in results if r.status == query.status]
        if query.agent_id:
            results = [r for r in results if r.agent_id == query.agent_id]
        if query.since:
            results = [
                r for r in results
                if r.storage_timestamp and r.storage_timestamp >= query.since
            ]
        if query.until:
            results = [
                r for r in results
                if r.storage_timestamp and r.storage_timestamp <= query.until
            ]

        results = sorted(results, key=lambda r: (r.workflow_id, r.execution_order))
        results = results[query.offset:]
        if query.limit is not None:
            results = results[: query.limit]
        return results

    @staticmethod
    def summarize(
        workflow_id: str,
        results: List[StoredSubtaskResult],
        batches: List[BatchMetadata],
        state: Optional[ExecutionState],
    ) -> WorkflowResults:
        ordered = sorted(results, key=lambda r: r.execution_order)
        return WorkflowResults(
            workflow_id=workflow_id,
            results=ordered,
            batches=sorted(batches, key=lambda b: b.batch_index),
            execution_state=state,
            total_subtasks=len(ordered),
            successful_subtasks=sum(1 for r in ordered if r.success),
            failed_subtasks=sum(1 for r in ordered if not r.success),
        )
