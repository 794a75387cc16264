"""Models package for the prompt slicing system."""

from .subtask_models import (
    SubtaskType,
    Priority,
    SubtaskStatus,
    DependencyKind,
    SubtaskDependency,
    Subtask,
    BatchGroup,
    PromptAnalysis,
    SlicingConfig,
    TextChunk,
    ContextualLink,
    SliceStatistics,
    SliceResult,
    DependencyValidation,
    WorkflowScaffold,
)
from .todo_models import (
    TodoStatus,
    TodoItem,
    SubtaskTodoList,
    ComplexityLevel,
    TaskComplexityProfile,
    ContextualMetadata,
    InjectionConfig,
    InjectionMetadata,
    EnhancedInjectedPrompt,
)
from .progress_models import (
    ProgressActionType,
    ParsedCheckpoint,
    UpdateMetadata,
    ProgressUpdateData,
    ProgressUpdate,
    ProgressEvent,
    BatchProgressEvent,
    ProgressSummary,
    ParserConfig,
    ParsingStats,
)
from .execution_models import (
    ErrorType,
    ExecutionError,
    SubtaskExecutionStatus,
    WorkflowStatus,
    AgentResponse,
    BatchExecutionResult,
    ExecutionProgress,
    ExecutionState,
    WorkflowExecutionResult,
    DispatcherStats,
)
from .result_models import (
    StoredSubtaskResult,
    BatchStatus,
    BatchMetadata,
    ResultQuery,
    WorkflowResults,
    DependencyNode,
    ExecutionSummary,
    ReintegrationData,
    IntegrityReport,
)
from .validation_models import (
    RuleType,
    ValidationRule,
    OutputValidationConfig,
    RuleResult,
    OutputValidationResult,
)
from .agent_models import ProficiencyLevel, AgentCapability, AgentProfile, AgentMatch
from .workflow_models import WorkflowPlan, PipelineRunResult

__all__ = [
    # Subtask models
    "SubtaskType",
    "Priority",
    "SubtaskStatus",
    "DependencyKind",
    "SubtaskDependency",
    "Subtask",
    "BatchGroup",
    "PromptAnalysis",
    "SlicingConfig",
    "TextChunk",
    "ContextualLink",
    "SliceStatistics",
    "SliceResult",
    "DependencyValidation",
    "WorkflowScaffold",
    # Todo models
    "TodoStatus",
    "TodoItem",
    "SubtaskTodoList",
    "ComplexityLevel",
    "TaskComplexityProfile",
    "ContextualMetadata",
    "InjectionConfig",
    "InjectionMetadata",
    "EnhancedInjectedPrompt",
    # Progress models
    "ProgressActionType",
    "ParsedCheckpoint",
    "UpdateMetadata",
    "ProgressUpdateData",
    "ProgressUpdate",
    "ProgressEvent",
    "BatchProgressEvent",
    "ProgressSummary",
    "ParserConfig",
    "ParsingStats",
    # Execution models
    "ErrorType",
    "ExecutionError",
    "SubtaskExecutionStatus",
    "WorkflowStatus",
    "AgentResponse",
    "BatchExecutionResult",
    "ExecutionProgress",
    "ExecutionState",
    "WorkflowExecutionResult",
    "DispatcherStats",
    # Result models
    "StoredSubtaskResult",
    "BatchStatus",
    "BatchMetadata",
    "ResultQuery",
    "WorkflowResults",
    "DependencyNode",
    "ExecutionSummary",
    "ReintegrationData",
    "IntegrityReport",
    # Validation models
    "RuleType",
    "ValidationRule",
    "OutputValidationConfig",
    "RuleResult",
    "OutputValidationResult",
    # Agent models
    "ProficiencyLevel",
    "AgentCapability",
    "AgentProfile",
    "AgentMatch",
    # Workflow models
    "WorkflowPlan",
    "PipelineRunResult",
]
