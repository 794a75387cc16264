"""Models tying a full slice, inject and dispatch run together."""

from pydantic import BaseModel, Field
from typing import Dict, List, Optional
from datetime import datetime

from .execution_models import WorkflowExecutionResult
from .result_models import IntegrityReport, ReintegrationData
from .subtask_models import BatchGroup, PromptAnalysis, SliceResult
from .todo_models import EnhancedInjectedPrompt, SubtaskTodoList


class WorkflowPlan(BaseModel):
    """Everything computed before any agent is called."""

    workflow_id: str
    original_prompt: str = Field(default="")
    analysis: PromptAnalysis
    slice_result: SliceResult
    batch_groups: List[BatchGroup] = Field(default_factory=list)
    injected_prompts: Dict[str, EnhancedInjectedPrompt] = Field(
        default_factory=dict, description="Keyed by subtask ID"
    )
    created_at: datetime = Field(default_factory=datetime.now)

    @property
    def subtask_count(self) -> int:
        return sum(len(g.subtasks) for g in self.batch_groups)


class PipelineRunResult(BaseModel):
    """Outcome of running a plan end to end."""

    plan: WorkflowPlan
    execution: WorkflowExecutionResult
    todo_lists: Dict[str, SubtaskTodoList] = Field(
        default_factory=dict, description="Final checklist snapshots by subtask ID"
    )
    reintegration: Optional[ReintegrationData] = Field(default=None)
    integrity: Optional[IntegrityReport] = Field(default=None)
