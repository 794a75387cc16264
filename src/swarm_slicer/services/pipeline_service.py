"""High-level slicing pipeline orchestration service."""

import logging
import uuid
from typing import Dict, Optional, Sequence, Union

from ..config.dispatch_config import ensure_valid_config
from ..config.settings import SwarmSlicerSettings, get_settings
from ..decomposition.batcher import Batcher
from ..decomposition.slicer import TaskSlicer
from ..dispatch.agents import BaseAgent
from ..dispatch.dispatcher import Dispatcher
from ..injection.context_injector import ContextInjector
from ..models.execution_models import AgentResponse
from ..models.subtask_models import Subtask, WorkflowScaffold
from ..models.workflow_models import PipelineRunResult, WorkflowPlan
from ..progress.parser import ProgressParser
from ..storage.base import ResultStore
from ..storage.memory_store import InMemoryResultStore
from ..storage.redis_store import RedisResultStore
from ..utils.events import EventBus

logger = logging.getLogger(__name__)


class SlicingPipeline:
    """
    Single entry point from raw prompt to stored, reintegration-ready results.

    PATTERN: Facade coordinating slicer, batcher, injector, dispatcher and parser
    CRITICAL: Agent output is fed to the progress parser before results are stored
    GOTCHA: Uses Redis for results when settings.redis_url is set
    """

    def __init__(
        self,
        agents: Union[Dict[str, BaseAgent], Sequence[BaseAgent]],
        settings: Optional[SwarmSlicerSettings] = None,
        result_store: Optional[ResultStore] = None,
        parser: Optional[ProgressParser] = None,
        event_bus: Optional[EventBus] = None,
    ):
        """
        Initialize slicing pipeline.

        Args:
            agents: Agent backends available to the dispatcher
            settings: Pipeline settings (loaded from environment if None)
            result_store: Result persistence (chosen from settings if None)
            parser: Progress parser (created from settings if None)
            event_bus: Shared bus for progress and execution events

        Raises:
            ConfigurationError: If dispatch or injection settings are invalid
        """
        self.settings = settings or get_settings()
        ensure_valid_config(self.settings.dispatch)
        ensure_valid_config(self.settings.injection)

        self.events = event_bus or (parser.events if parser else EventBus())
        self.logger = logging.getLogger(__name__)

        self.slicer = TaskSlicer(config=self.settings.slicing)
        self.injector = ContextInjector(config=self.settings.injection)
        self.batcher = Batcher(self.injector)

        if result_store is None:
            if self.settings.redis_url:
                result_store = RedisResultStore(self.settings.redis_url)
            else:
                result_store = InMemoryResultStore()
        self.result_store = result_store

        self.parser = parser or ProgressParser(self.settings.parser, self.events)
        self.dispatcher = Dispatcher(
            agents,
            config=self.settings.dispatch,
            result_store=self.result_store,
            event_bus=self.events,
            response_handler=self._on_response,
        )

        self.logger.info(
            f"Slicing pipeline initialized with {len(self.dispatcher.agents)} agents "
            f"({type(self.result_store).__name__})"
        )

    def plan(self, prompt: str, workflow_id: Optional[str] = None) -> WorkflowPlan:
        """
        Slice, batch and inject context without calling any agent.

        PATTERN: Analyze -> Slice -> Batch -> Inject

        Args:
            prompt: User prompt
            workflow_id: Workflow identifier (generated if None)

        Returns:
            WorkflowPlan whose group members carry tracked prompts

        Raises:
            DependencyCycleError: If the sliced subtasks form a cycle
        """
        workflow_id = workflow_id or f"workflow_{uuid.uuid4().hex[:8]}"
        self.logger.info(f"Planning workflow {workflow_id}: '{prompt[:50]}...'")

        analysis = self.slicer.analyze(prompt)
        slice_result = self.slicer.slice_advanced(prompt, workflow_id=workflow_id)
        groups = self.batcher.identify_batchable_subtasks(slice_result.subtasks, prompt)

        scaffold = WorkflowScaffold(
            workflow_id=workflow_id,
            title=prompt[:80],
            original_prompt=prompt,
            subtasks=slice_result.subtasks,
        )

        injected = {}
        for group in groups:
            for member in group.subtasks:
                enhanced = self.injector.inject_context_to_subtask_prompt(
                    member, scaffold, prompt
                )
                member.injected_context = enhanced.injected_prompt
                injected[member.id] = enhanced

        self.logger.info(
            f"Planned {len(slice_result.subtasks)} subtasks in {len(groups)} batch groups"
        )

        return WorkflowPlan(
            workflow_id=workflow_id,
            original_prompt=prompt,
            analysis=analysis,
            slice_result=slice_result,
            batch_groups=groups,
            injected_prompts=injected,
        )

    async def run(self, prompt: str, workflow_id: Optional[str] = None) -> PipelineRunResult:
        """
        Plan a prompt and execute it against the agents.

        PATTERN: Plan -> Register todos -> Dispatch -> Unregister -> Reintegrate

        Args:
            prompt: User prompt
            workflow_id: Workflow identifier

        Returns:
            PipelineRunResult with execution outcome and reintegration data
        """
        plan = self.plan(prompt, workflow_id)
        return await self.execute_plan(plan)

    async def execute_plan(self, plan: WorkflowPlan) -> PipelineRunResult:
        """
        Execute a previously computed plan.

        Args:
            plan: Output of plan()

        Returns:
            PipelineRunResult
        """
        for subtask_id, enhanced in plan.injected_prompts.items():
            self.parser.register_todo_list(subtask_id, enhanced.todo_list)

        try:
            execution = await self.dispatcher.execute_workflow(
                plan.batch_groups, workflow_id=plan.workflow_id
            )
        finally:
            todo_lists = {}
            for subtask_id in plan.injected_prompts:
                final = self.parser.unregister_todo_list(subtask_id)
                if final:
                    todo_lists[subtask_id] = final

        reintegration = await self.result_store.get_reintegration_data(plan.workflow_id)
        integrity = await self.result_store.validate_integrity(plan.workflow_id)

        self.logger.info(
            f"Workflow {plan.workflow_id} {execution.status.value}: "
            f"{len(reintegration.ordered_results)} results stored"
        )

        return PipelineRunResult(
            plan=plan,
            execution=execution,
            todo_lists=todo_lists,
            reintegration=reintegration,
            integrity=integrity,
        )

    def merge_results(self, result: PipelineRunResult) -> str:
        """Join successful outputs in reintegration order."""
        subtasks = {s.id: s for s in result.plan.slice_result.subtasks}
        stored = result.reintegration.ordered_results if result.reintegration else []

        ordered = [subtasks[r.subtask_id] for r in stored if r.subtask_id in subtasks]
        contents = {r.subtask_id: r.content for r in stored if r.success}
        return self.slicer.merge(ordered, contents)

    async def close(self) -> None:
        """Release agents, store and parser."""
        await self.dispatcher.close()
        await self.result_store.close()
        await self.parser.destroy()

    async def _on_response(self, subtask: Subtask, response: AgentResponse) -> None:
        if response.content:
            await self.parser.parse_agent_response(subtask.id, response.content)
