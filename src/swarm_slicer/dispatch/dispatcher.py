"""Concurrent dispatch of batch groups to agent backends."""

import asyncio
import logging
import time
import uuid
from itertools import groupby
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Set, Tuple, Union

from ..config.dispatch_config import DispatchConfig
from ..exceptions import AgentError, AgentTimeoutError, WorkflowHaltedError
from ..models.execution_models import (
    AgentResponse,
    BatchExecutionResult,
    DispatcherStats,
    ErrorType,
    ExecutionError,
    ExecutionState,
    SubtaskExecutionStatus,
    WorkflowExecutionResult,
)
from ..models.result_models import BatchMetadata, BatchStatus
from ..models.subtask_models import BatchGroup, Subtask
from ..models.validation_models import OutputValidationConfig, OutputValidationResult
from ..storage.base import ResultStore
from ..storage.memory_store import InMemoryResultStore
from ..utils.events import EventBus
from .agents import BaseAgent
from .execution_state import ExecutionStateManager
from .matcher import AgentMatcher
from .retry import RetryPolicy
from .validator import OutputValidator

logger = logging.getLogger(__name__)

ResponseHandler = Callable[[Subtask, AgentResponse], Awaitable[None]]

# subtask_id -> (ancestor chain, blocking parents, blocking children)
Lineage = Dict[str, Tuple[List[str], List[str], List[str]]]

RETRYABLE_ERROR_TYPES = {ErrorType.API_ERROR, ErrorType.TIMEOUT_ERROR}


class Dispatcher:
    """
    Executes batch groups against agent backends.

    PATTERN: Semaphore-bounded fan-out, gather-style fan-in with partial failures
    CRITICAL: Once a workflow is halted no new dispatch or retry is started
    GOTCHA: A failed subtask never fails its siblings, only its dependents.
            Errors from persistence or the response handler turn into a failed
            response for that subtask and never escape execute_batch
    """

    def __init__(
        self,
        agents: Union[Dict[str, BaseAgent], Sequence[BaseAgent]],
        config: Optional[DispatchConfig] = None,
        result_store: Optional[ResultStore] = None,
        event_bus: Optional[EventBus] = None,
        response_handler: Optional[ResponseHandler] = None,
        default_agent_id: Optional[str] = None,
        validator: Optional[OutputValidator] = None,
        matcher: Optional[AgentMatcher] = None,
    ):
        """
        Initialize dispatcher.

        Args:
            agents: Agent backends, keyed by agent ID or as a list
            config: Default dispatch config
            result_store: Where results and batch metadata are persisted
            event_bus: Bus for execution events
            response_handler: Awaited with every final subtask response
            default_agent_id: Agent used for unassigned subtasks
            validator: Scores agent output (its check functions are used
                       with the run config's validation rules)
            matcher: Chooses agents for unassigned subtasks by capability
        """
        if isinstance(agents, dict):
            self.agents: Dict[str, BaseAgent] = dict(agents)
        else:
            self.agents = {agent.agent_id: agent for agent in agents}
        if not self.agents:
            raise ValueError("Dispatcher needs at least one agent")

        self.config = config or DispatchConfig()
        self.result_store = result_store or InMemoryResultStore()
        self.events = event_bus or EventBus()
        self.response_handler = response_handler
        self.default_agent_id = default_agent_id or next(iter(self.agents))
        self.validator = validator or OutputValidator(self.config.validation)
        self.matcher = matcher or AgentMatcher(self.config.matching)

        self._states: Dict[str, ExecutionStateManager] = {}
        self._active_tasks: Dict[str, asyncio.Task] = {}
        self._cancel_reasons: Dict[str, ErrorType] = {}
        self._execution_times: List[int] = []
        self.stats = DispatcherStats()
        self.logger = logging.getLogger(__name__)

    def get_state_manager(self, workflow_id: str) -> ExecutionStateManager:
        if workflow_id not in self._states:
            self._states[workflow_id] = ExecutionStateManager(workflow_id, self.events)
        return self._states[workflow_id]

    def get_execution_state(self, workflow_id: str) -> Optional[ExecutionState]:
        manager = self._states.get(workflow_id)
        return manager.snapshot() if manager else None

    async def halt_workflow(self, workflow_id: str, reason: str) -> List[str]:
        """
        Stop a workflow from dispatching anything new.

        Args:
            workflow_id: Workflow to halt
            reason: Human-readable halt reason

        Returns:
            IDs of subtasks halted by this call
        """
        return await self.get_state_manager(workflow_id).halt(reason)

    async def execute_batch(
        self,
        group: BatchGroup,
        config: Optional[DispatchConfig] = None,
        workflow_id: Optional[str] = None,
        batch_index: int = 0,
        lineage: Optional[Lineage] = None,
    ) -> BatchExecutionResult:
        """
        Run every member of a batch group concurrently.

        PATTERN: Bounded parallel execution with partial-failure tolerance
        CRITICAL: Results are returned in group order whatever the completion order

        Args:
            group: Batch group to run
            config: Overrides the dispatcher's default config
            workflow_id: Owning workflow
            batch_index: Position of the batch within the workflow
            lineage: Dependency metadata persisted with each result

        Returns:
            BatchExecutionResult

        Raises:
            WorkflowHaltedError: If the workflow is already halted
        """
        config = config or self.config
        workflow_id = workflow_id or self._infer_workflow_id(group)
        state = self.get_state_manager(workflow_id)

        if state.is_halted:
            raise WorkflowHaltedError(
                f"Workflow {workflow_id} is halted: {state.state.halt_reason}"
            )

        subtasks = list(group.subtasks)
        lineage = lineage or self._build_lineage(subtasks)
        batch_id = f"batch_{uuid.uuid4().hex[:8]}"
        concurrency = config.effective_concurrency

        await state.register_subtasks(s.id for s in subtasks)
        await state.set_current_batch(batch_id)
        await self.result_store.save_batch_metadata(
            BatchMetadata(
                batch_id=batch_id,
                workflow_id=workflow_id,
                group_id=group.group_id,
                batch_index=batch_index,
                strategy="parallel" if concurrency > 1 else "serial",
                subtask_ids=[s.id for s in subtasks],
                status=BatchStatus.RUNNING,
            )
        )

        self.logger.info(
            f"Dispatching batch {batch_id} ({len(subtasks)} subtasks, "
            f"concurrency={concurrency}) for workflow {workflow_id}"
        )
        self.stats.batches_dispatched += 1

        semaphore = asyncio.Semaphore(concurrency)
        errors: List[ExecutionError] = []
        start = time.monotonic()

        tasks: Dict[str, asyncio.Task] = {}
        for subtask in subtasks:
            task = asyncio.create_task(
                self._run_subtask(
                    subtask, config, state, batch_id, batch_index,
                    group.level, lineage, semaphore, errors,
                )
            )
            tasks[subtask.id] = task
            self._active_tasks[subtask.id] = task

        try:
            _, pending = await asyncio.wait(
                tasks.values(), timeout=config.timeout.batch_timeout_ms / 1000
            )
            if pending:
                self.logger.warning(
                    f"Batch {batch_id} timed out, cancelling {len(pending)} subtasks"
                )
                for subtask_id, task in tasks.items():
                    if task in pending:
                        self._cancel_reasons[subtask_id] = ErrorType.TIMEOUT_ERROR
                        task.cancel()
                await asyncio.wait(pending)
        except asyncio.CancelledError:
            for task in tasks.values():
                task.cancel()
            raise
        finally:
            for subtask_id in tasks:
                self._active_tasks.pop(subtask_id, None)
                self._cancel_reasons.pop(subtask_id, None)

        results = [await self._collect(tasks[s.id], s, state, errors) for s in subtasks]
        execution_time_ms = int((time.monotonic() - start) * 1000)

        succeeded = sum(1 for r in results if r.success)
        if config.require_all_success:
            success = succeeded == len(results)
        else:
            success = succeeded > 0

        if succeeded == len(results):
            batch_status = BatchStatus.COMPLETED
        elif succeeded:
            batch_status = BatchStatus.PARTIAL
        else:
            batch_status = BatchStatus.FAILED
        await self.result_store.update_batch_status(batch_id, batch_status)
        await state.set_current_batch(None)

        self.logger.info(
            f"Batch {batch_id} complete: {succeeded} succeeded, "
            f"{len(results) - succeeded} failed in {execution_time_ms}ms"
        )

        return BatchExecutionResult(
            batch_id=batch_id,
            group_id=group.group_id,
            subtask_ids=[s.id for s in subtasks],
            results=results,
            success=success,
            execution_time_ms=execution_time_ms,
            errors=errors,
        )

    async def execute_workflow(
        self,
        groups: List[BatchGroup],
        workflow_id: Optional[str] = None,
        config: Optional[DispatchConfig] = None,
    ) -> WorkflowExecutionResult:
        """
        Run batch groups in order, honouring failures and halts.

        PATTERN: Level-by-level staged execution
        CRITICAL: Dependents of failed subtasks are skipped, never dispatched
        GOTCHA: Groups sharing a level may run concurrently up to max_concurrent_batches

        Args:
            groups: Batch groups in execution order
            workflow_id: Workflow identifier
            config: Overrides the dispatcher's default config

        Returns:
            WorkflowExecutionResult
        """
        # Copied because sequential fallback lowers concurrency mid-run
        run_config = (config or self.config).model_copy(deep=True)
        all_subtasks = [s for group in groups for s in group.subtasks]
        workflow_id = workflow_id or self._infer_workflow_id_from(all_subtasks)
        state = self.get_state_manager(workflow_id)
        lineage = self._build_lineage(all_subtasks)

        await state.register_subtasks(s.id for s in all_subtasks)
        assignments = self._assign_agents(all_subtasks, run_config)

        start = time.monotonic()
        batch_results: List[BatchExecutionResult] = []
        unusable: Set[str] = set()
        batch_index = 0
        batch_limit = asyncio.Semaphore(max(1, run_config.concurrency.max_concurrent_batches))

        self.logger.info(
            f"Executing workflow {workflow_id}: {len(groups)} groups, "
            f"{len(all_subtasks)} subtasks"
        )

        for _, level_groups in groupby(groups, key=lambda g: g.level):
            if state.is_halted:
                break

            runnable_groups: List[Tuple[int, BatchGroup]] = []
            for group in level_groups:
                runnable = []
                for subtask in group.subtasks:
                    blocked_by = [d for d in subtask.blocking_dependency_ids() if d in unusable]
                    if blocked_by:
                        self.logger.warning(
                            f"Skipping {subtask.id}, prerequisites failed: {blocked_by}"
                        )
                        await state.mark_skipped(subtask.id)
                        unusable.add(subtask.id)
                    elif subtask.id in assignments:
                        runnable.append(
                            subtask.model_copy(
                                update={"assigned_agent_id": assignments[subtask.id]}
                            )
                        )
                    else:
                        runnable.append(subtask)
                if runnable:
                    runnable_groups.append(
                        (batch_index, group.model_copy(update={"subtasks": runnable}))
                    )
                    batch_index += 1

            async def run_group(index: int, group: BatchGroup) -> Optional[BatchExecutionResult]:
                async with batch_limit:
                    if state.is_halted:
                        return None
                    return await self.execute_batch(
                        group, run_config, workflow_id, index, lineage
                    )

            level_results = await asyncio.gather(
                *[run_group(index, group) for index, group in runnable_groups]
            )

            level_failed: List[str] = []
            for result in level_results:
                if result is None:
                    continue
                batch_results.append(result)
                level_failed.extend(result.failed_subtask_ids)
            unusable.update(level_failed)

            await self.result_store.save_execution_state(state.snapshot())

            if level_failed:
                await self._handle_failures(level_failed, run_config, state)

        status = await state.finish()
        final_state = state.snapshot()
        await self.result_store.save_execution_state(final_state)

        self.logger.info(f"Workflow {workflow_id} finished with status {status.value}")

        return WorkflowExecutionResult(
            workflow_id=workflow_id,
            status=status,
            batch_results=batch_results,
            halted_subtask_ids=sorted(final_state.halted_subtasks),
            skipped_subtask_ids=sorted(final_state.skipped_subtasks),
            halt_reason=final_state.halt_reason,
            execution_time_ms=int((time.monotonic() - start) * 1000),
            final_state=final_state,
        )

    def cancel_subtask(self, subtask_id: str) -> bool:
        """
        Cancel an in-flight or queued subtask.

        Returns:
            True if a running task was cancelled
        """
        task = self._active_tasks.get(subtask_id)
        if task is None or task.done():
            return False
        self._cancel_reasons.setdefault(subtask_id, ErrorType.SYSTEM_ERROR)
        task.cancel()
        self.stats.cancelled += 1
        self.logger.info(f"Cancelled subtask {subtask_id}")
        return True

    def cancel_all(self) -> int:
        return sum(1 for subtask_id in list(self._active_tasks) if self.cancel_subtask(subtask_id))

    def get_stats(self) -> DispatcherStats:
        stats = self.stats.model_copy()
        stats.active_subtasks = sum(1 for t in self._active_tasks.values() if not t.done())
        if self._execution_times:
            stats.average_execution_time_ms = sum(self._execution_times) / len(
                self._execution_times
            )
        return stats

    async def close(self) -> None:
        for agent in self.agents.values():
            await agent.close()

    async def _run_subtask(
        self,
        subtask: Subtask,
        config: DispatchConfig,
        state: ExecutionStateManager,
        batch_id: str,
        batch_index: int,
        level: int,
        lineage: Lineage,
        semaphore: asyncio.Semaphore,
        errors: List[ExecutionError],
    ) -> AgentResponse:
        agent = self._select_agent(subtask, config)
        start = time.monotonic()

        try:
            async with semaphore:
                if state.is_halted:
                    return AgentResponse(
                        subtask_id=subtask.id,
                        agent_id=agent.agent_id,
                        success=False,
                        error=f"Workflow halted: {state.state.halt_reason}",
                        status=SubtaskExecutionStatus.HALTED,
                    )

                self.stats.subtasks_dispatched += 1
                await state.mark_running(subtask.id)
                response = await self._attempt_with_retries(
                    subtask, agent, config, state, errors
                )
                if not response.success and self._may_fall_back(response, config, state):
                    response = await self._attempt_fallbacks(
                        subtask, agent, response, config, state, errors
                    )
        except asyncio.CancelledError:
            error_type = self._cancel_reasons.get(subtask.id, ErrorType.SYSTEM_ERROR)
            message = (
                "Batch timeout exceeded"
                if error_type == ErrorType.TIMEOUT_ERROR
                else "Subtask cancelled"
            )
            errors.append(self._error(error_type, message, subtask.id, agent.agent_id))
            response = AgentResponse(
                subtask_id=subtask.id,
                agent_id=agent.agent_id,
                success=False,
                error=message,
                status=SubtaskExecutionStatus.FAILED,
                metadata={"error_type": error_type.value},
            )
        except Exception as e:
            message = f"Unhandled error: {e}"
            self.logger.error(f"Subtask {subtask.id} crashed: {e}")
            errors.append(self._error(ErrorType.SYSTEM_ERROR, message, subtask.id, agent.agent_id))
            response = AgentResponse(
                subtask_id=subtask.id,
                agent_id=agent.agent_id,
                success=False,
                error=message,
                status=SubtaskExecutionStatus.FAILED,
                metadata={"error_type": ErrorType.SYSTEM_ERROR.value},
            )

        response.execution_time_ms = int((time.monotonic() - start) * 1000)
        self._execution_times.append(response.execution_time_ms)

        if not response.success:
            halted = state.status_of(subtask.id) == SubtaskExecutionStatus.HALTED
            response.status = (
                SubtaskExecutionStatus.HALTED if halted else SubtaskExecutionStatus.FAILED
            )

        response = await self._notify_handler(subtask, response, errors)
        response = await self._persist(
            response, state, batch_id, batch_index, level, lineage, errors
        )

        if response.success:
            self.stats.subtasks_succeeded += 1
            await state.mark_completed(subtask.id)
        elif response.status != SubtaskExecutionStatus.HALTED:
            self.stats.subtasks_failed += 1
            self.logger.error(f"Subtask {subtask.id} exhausted: {response.error}")
            await state.mark_failed(
                subtask.id,
                self._error(
                    ErrorType(response.metadata.get("error_type", ErrorType.SYSTEM_ERROR)),
                    response.error or "Subtask failed",
                    subtask.id,
                    response.agent_id,
                ),
            )

        return response

    async def _notify_handler(
        self,
        subtask: Subtask,
        response: AgentResponse,
        errors: List[ExecutionError],
    ) -> AgentResponse:
        if not self.response_handler:
            return response
        try:
            await self.response_handler(subtask, response)
        except Exception as e:
            message = f"Response handler failed: {e}"
            self.logger.error(f"{message} ({subtask.id})")
            errors.append(
                self._error(ErrorType.SYSTEM_ERROR, message, subtask.id, response.agent_id)
            )
            if response.success:
                return self._as_failure(response, message)
        return response

    async def _persist(
        self,
        response: AgentResponse,
        state: ExecutionStateManager,
        batch_id: str,
        batch_index: int,
        level: int,
        lineage: Lineage,
        errors: List[ExecutionError],
    ) -> AgentResponse:
        """
        Store the final response with its lineage.

        GOTCHA: The response handler has already seen the response when a
                store failure turns it into a failure
        """
        chain, parents, children = lineage.get(response.subtask_id, ([], [], []))
        try:
            stored = await self.result_store.create_stored_result(
                response,
                state.workflow_id,
                batch_id=batch_id,
                batch_index=batch_index,
                dependency_chain=chain,
                parent_subtask_ids=parents,
                child_subtask_ids=children,
                execution_level=level,
            )
            await self.result_store.save_subtask_result(stored)
        except Exception as e:
            message = f"Result persistence failed: {e}"
            self.logger.error(f"{message} ({response.subtask_id})")
            errors.append(
                self._error(ErrorType.SYSTEM_ERROR, message, response.subtask_id, response.agent_id)
            )
            if response.success:
                return self._as_failure(response, message)
        return response

    async def _collect(
        self,
        task: asyncio.Task,
        subtask: Subtask,
        state: ExecutionStateManager,
        errors: List[ExecutionError],
    ) -> AgentResponse:
        """Result of a subtask task, or a failed response if the task never produced one."""
        if not task.cancelled() and task.exception() is None:
            return task.result()

        if task.cancelled():
            message = "Subtask cancelled"
        else:
            message = f"Unhandled error: {task.exception()}"
        self.logger.error(f"Subtask {subtask.id} produced no response: {message}")
        error = self._error(
            ErrorType.SYSTEM_ERROR, message, subtask.id, subtask.assigned_agent_id
        )
        errors.append(error)
        self.stats.subtasks_failed += 1
        await state.mark_failed(subtask.id, error)
        return AgentResponse(
            subtask_id=subtask.id,
            agent_id=subtask.assigned_agent_id or self.default_agent_id,
            success=False,
            error=message,
            status=SubtaskExecutionStatus.FAILED,
            metadata={"error_type": ErrorType.SYSTEM_ERROR.value},
        )

    async def _attempt_with_retries(
        self,
        subtask: Subtask,
        agent: BaseAgent,
        config: DispatchConfig,
        state: ExecutionStateManager,
        errors: List[ExecutionError],
    ) -> AgentResponse:
        """
        Call the agent, retrying retryable failures with backoff.

        CRITICAL: No retry is scheduled once the workflow is halted
        GOTCHA: Rejected output is retried only when validation advises it,
                and halts the workflow when validation says so
        """
        policy = RetryPolicy(config.retry, config.effective_max_retries)
        prompt = subtask.injected_context or subtask.description
        attempt = 0

        while True:
            content = ""
            metadata: Dict[str, object] = {}
            try:
                content, verdict = await self._produce(agent, subtask, prompt, config)
            except (AgentError, asyncio.TimeoutError, ValueError) as e:
                error_type = self._classify(e)
                message = str(e) or type(e).__name__
                retry = error_type in RETRYABLE_ERROR_TYPES and policy.should_retry(e, attempt)
            except Exception as e:
                self.logger.error(f"Unexpected error running {subtask.id}: {e}")
                error_type = ErrorType.SYSTEM_ERROR
                message = str(e) or type(e).__name__
                retry = False
            else:
                metadata["confidence"] = verdict.confidence
                if verdict.passed:
                    if attempt > 0:
                        self._record_recovery(
                            errors, subtask.id, agent.agent_id,
                            f"Succeeded after {attempt} retries",
                        )
                    return AgentResponse(
                        subtask_id=subtask.id,
                        agent_id=agent.agent_id,
                        content=content,
                        success=True,
                        retry_count=attempt,
                        metadata=metadata,
                    )

                error_type = ErrorType.VALIDATION_ERROR
                message = self._rejection_message(verdict)
                retry = verdict.should_retry and attempt < policy.max_retries
                if verdict.should_halt:
                    await state.halt(f"Output of {subtask.id} failed validation: {message}")

            metadata["error_type"] = error_type.value
            errors.append(
                self._error(error_type, message, subtask.id, agent.agent_id, retryable=retry)
            )

            if state.is_halted or not retry:
                return AgentResponse(
                    subtask_id=subtask.id,
                    agent_id=agent.agent_id,
                    content=content,
                    success=False,
                    error=message,
                    status=SubtaskExecutionStatus.FAILED,
                    retry_count=attempt,
                    metadata=metadata,
                )

            self.logger.warning(
                f"Attempt {attempt + 1}/{policy.max_attempts} for {subtask.id} failed: "
                f"{message}. Retrying in {policy.calculate_delay(attempt):.0f}ms"
            )
            self.stats.total_retries += 1
            await state.mark_retrying(subtask.id)
            await policy.wait(attempt)

            if state.is_halted:
                return AgentResponse(
                    subtask_id=subtask.id,
                    agent_id=agent.agent_id,
                    success=False,
                    error=f"Workflow halted during retry: {state.state.halt_reason}",
                    status=SubtaskExecutionStatus.HALTED,
                    retry_count=attempt + 1,
                    metadata={"error_type": error_type.value},
                )

            await state.mark_running(subtask.id)
            attempt += 1

    async def _attempt_fallbacks(
        self,
        subtask: Subtask,
        primary: BaseAgent,
        failed: AgentResponse,
        config: DispatchConfig,
        state: ExecutionStateManager,
        errors: List[ExecutionError],
    ) -> AgentResponse:
        """
        Try the configured fallback agents in order.

        GOTCHA: Any exception from a fallback agent moves on to the next one
        """
        prompt = subtask.injected_context or subtask.description

        for agent_id in config.fallback.agent_ids:
            if agent_id == primary.agent_id:
                continue
            agent = self.agents.get(agent_id)
            if agent is None:
                self.logger.warning(f"Fallback agent {agent_id} is not registered")
                continue
            if state.is_halted:
                break

            self.stats.fallback_attempts += 1
            self.logger.warning(f"Trying fallback agent {agent_id} for {subtask.id}")
            try:
                content, verdict = await self._produce(agent, subtask, prompt, config)
            except (AgentError, asyncio.TimeoutError, ValueError) as e:
                errors.append(self._error(self._classify(e), str(e), subtask.id, agent_id))
                continue
            except Exception as e:
                self.logger.error(f"Fallback agent {agent_id} crashed on {subtask.id}: {e!r}")
                errors.append(
                    self._error(ErrorType.SYSTEM_ERROR, repr(e), subtask.id, agent_id)
                )
                continue

            if not verdict.passed:
                errors.append(
                    self._error(
                        ErrorType.VALIDATION_ERROR,
                        self._rejection_message(verdict),
                        subtask.id,
                        agent_id,
                    )
                )
                continue

            self._record_recovery(
                errors, subtask.id, agent_id,
                f"Fallback agent {agent_id} succeeded after {primary.agent_id} failed",
            )
            return AgentResponse(
                subtask_id=subtask.id,
                agent_id=agent_id,
                content=content,
                success=True,
                retry_count=failed.retry_count,
                metadata={"fallback_from": primary.agent_id, "confidence": verdict.confidence},
            )

        return failed

    async def _produce(
        self,
        agent: BaseAgent,
        subtask: Subtask,
        prompt: str,
        config: DispatchConfig,
    ) -> Tuple[str, OutputValidationResult]:
        """
        Invoke an agent and validate its output, over several passes when asked.

        PATTERN: Keep the highest-confidence pass
        CRITICAL: Passes stop once output validates, at max_passes, or when a
                  later pass improves on the best by less than improvement_threshold
        """
        multipass = config.multipass
        passes = (
            max(1, multipass.max_passes)
            if multipass.enabled and subtask.metadata.get("multipass") is True
            else 1
        )

        best: Optional[Tuple[str, OutputValidationResult]] = None
        for pass_number in range(1, passes + 1):
            content = await self._invoke(agent, subtask, prompt, config)
            verdict = self.validator.validate_output(
                subtask, content, self._validation_config(subtask, config)
            )
            if verdict.passed:
                return content, verdict

            improvement = verdict.confidence - best[1].confidence if best else None
            if best is None or verdict.confidence > best[1].confidence:
                best = (content, verdict)

            if improvement is not None and improvement < multipass.improvement_threshold:
                self.logger.info(
                    f"Stopping passes for {subtask.id} after pass {pass_number}: "
                    f"improvement {improvement:.2f} below threshold"
                )
                break
            if pass_number < passes:
                self.logger.info(
                    f"Pass {pass_number}/{passes} for {subtask.id} scored "
                    f"{verdict.confidence:.2f}, running another pass"
                )

        return best

    def _validation_config(
        self, subtask: Subtask, config: DispatchConfig
    ) -> Optional[OutputValidationConfig]:
        # None lets the validator read metadata["validation"]
        if "validation" in subtask.metadata:
            return None
        return config.validation

    def _rejection_message(self, verdict: OutputValidationResult) -> str:
        reasons = "; ".join(verdict.errors + verdict.warnings) or "no details"
        return f"Output validation failed (confidence {verdict.confidence:.2f}): {reasons}"

    def _as_failure(self, response: AgentResponse, message: str) -> AgentResponse:
        return response.model_copy(
            update={
                "success": False,
                "error": message,
                "status": SubtaskExecutionStatus.FAILED,
                "metadata": {**response.metadata, "error_type": ErrorType.SYSTEM_ERROR.value},
            }
        )

    async def _invoke(
        self,
        agent: BaseAgent,
        subtask: Subtask,
        prompt: str,
        config: DispatchConfig,
    ) -> str:
        try:
            return await asyncio.wait_for(
                agent.invoke(subtask, prompt),
                timeout=config.timeout.subtask_timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            raise AgentTimeoutError(
                f"Subtask {subtask.id} exceeded {config.timeout.subtask_timeout_ms}ms",
                agent.agent_id,
            )

    async def _handle_failures(
        self,
        failed_ids: List[str],
        config: DispatchConfig,
        state: ExecutionStateManager,
    ) -> None:
        handling = config.error_handling
        if handling.halt_on_critical_failure:
            await state.halt(f"Critical failure in subtasks: {', '.join(failed_ids)}")
        elif (
            handling.fallback_to_sequential
            and config.auto_fallback_to_sequential
            and config.effective_concurrency > 1
        ):
            self.logger.warning(
                f"Falling back to sequential execution after {len(failed_ids)} failures"
            )
            config.concurrency.max_concurrent_subtasks = 1
            config.concurrency.max_concurrent_batches = 1

    def _may_fall_back(
        self,
        response: AgentResponse,
        config: DispatchConfig,
        state: ExecutionStateManager,
    ) -> bool:
        return (
            config.fallback.enabled
            and bool(config.fallback.agent_ids)
            and not state.is_halted
            and response.status != SubtaskExecutionStatus.HALTED
        )

    def _select_agent(self, subtask: Subtask, config: DispatchConfig) -> BaseAgent:
        """Assigned agent, else the best capability match, else the default agent."""
        if subtask.assigned_agent_id and subtask.assigned_agent_id in self.agents:
            return self.agents[subtask.assigned_agent_id]
        if subtask.assigned_agent_id:
            self.logger.warning(
                f"Agent {subtask.assigned_agent_id} not registered for {subtask.id}"
            )

        if config.matching.enabled:
            agent_id = self.matcher.best_agent(subtask, self._profiles(), config.matching)
            if agent_id:
                self.logger.debug(f"Matched {subtask.id} to {agent_id} by capability")
                return self.agents[agent_id]
        return self.agents[self.default_agent_id]

    def _assign_agents(self, subtasks: List[Subtask], config: DispatchConfig) -> Dict[str, str]:
        """Spread unassigned subtasks over capable agents for a whole workflow."""
        profiles = self._profiles()
        if not config.matching.enabled or not any(p.capabilities for p in profiles):
            return {}
        unassigned = [
            s for s in subtasks
            if not s.assigned_agent_id or s.assigned_agent_id not in self.agents
        ]
        return self.matcher.assign(unassigned, profiles, config.matching)

    def _profiles(self):
        return [
            agent.profile.model_copy(update={"agent_id": agent_id})
            for agent_id, agent in self.agents.items()
        ]

    def _classify(self, error: BaseException) -> ErrorType:
        if isinstance(error, (AgentTimeoutError, asyncio.TimeoutError)):
            return ErrorType.TIMEOUT_ERROR
        if isinstance(error, AgentError):
            return ErrorType.API_ERROR
        if isinstance(error, ValueError):
            return ErrorType.VALIDATION_ERROR
        return ErrorType.SYSTEM_ERROR

    def _record_recovery(
        self,
        errors: List[ExecutionError],
        subtask_id: str,
        agent_id: str,
        message: str,
    ) -> None:
        self.stats.recoveries += 1
        self.logger.info(f"Recovered {subtask_id}: {message}")
        errors.append(self._error(ErrorType.RECOVERY, message, subtask_id, agent_id))

    def _error(
        self,
        error_type: ErrorType,
        message: str,
        subtask_id: str,
        agent_id: Optional[str],
        retryable: bool = False,
    ) -> ExecutionError:
        return ExecutionError(
            type=error_type,
            message=message,
            subtask_id=subtask_id,
            agent_id=agent_id,
            retryable=retryable,
        )

    def _build_lineage(self, subtasks: List[Subtask]) -> Lineage:
        known = {s.id for s in subtasks}
        parents = {
            s.id: [d for d in s.blocking_dependency_ids() if d in known] for s in subtasks
        }
        children: Dict[str, List[str]] = {s.id: [] for s in subtasks}
        for subtask_id, subtask_parents in parents.items():
            for parent_id in subtask_parents:
                children[parent_id].append(subtask_id)

        def ancestors(subtask_id: str, seen: Set[str]) -> List[str]:
            chain: List[str] = []
            for parent_id in parents.get(subtask_id, []):
                if parent_id in seen:
                    continue
                seen.add(parent_id)
                chain.extend(ancestors(parent_id, seen))
                chain.append(parent_id)
            return chain

        return {
            s.id: (ancestors(s.id, set()), parents[s.id], children[s.id]) for s in subtasks
        }

    def _infer_workflow_id(self, group: BatchGroup) -> str:
        return self._infer_workflow_id_from(group.subtasks)

    def _infer_workflow_id_from(self, subtasks: List[Subtask]) -> str:
        for subtask in subtasks:
            if subtask.parent_workflow_id:
                return subtask.parent_workflow_id
        return f"workflow_{uuid.uuid4().hex[:8]}"
