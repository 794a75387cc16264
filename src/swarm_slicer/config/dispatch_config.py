"""Dispatch configuration, named presets and validation."""

import logging
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field

from ..exceptions import ConfigurationError
from ..models.todo_models import InjectionConfig
from ..models.validation_models import OutputValidationConfig

logger = logging.getLogger(__name__)


class ConcurrencyConfig(BaseModel):
    """How much work may be in flight at once."""

    max_concurrent_batches: int = Field(default=2, description="Batch groups in flight")
    max_concurrent_subtasks: int = Field(
        default=5, description="Agent calls in flight within one batch"
    )


class RetryConfig(BaseModel):
    """Exponential backoff for failed agent calls."""

    max_retries: int = Field(default=3, description="Retries after the first attempt")
    backoff_multiplier: float = Field(default=2.0)
    initial_delay_ms: int = Field(default=1000)
    max_delay_ms: int = Field(default=30000)


class TimeoutConfig(BaseModel):
    """Independent time budgets for subtasks and batches."""

    subtask_timeout_ms: int = Field(default=300000, description="5 minutes")
    batch_timeout_ms: int = Field(default=1800000, description="30 minutes")


class FallbackConfig(BaseModel):
    """Agents tried in order once the primary agent is exhausted."""

    enabled: bool = Field(default=True)
    agent_ids: List[str] = Field(default_factory=list)


class MultipassConfig(BaseModel):
    """
    Repeated passes for subtasks with metadata["multipass"] set.

    GOTCHA: Passes stop early once output validates or stops improving
    """

    enabled: bool = Field(default=True)
    max_passes: int = Field(default=3)
    improvement_threshold: float = Field(
        default=0.1, description="Confidence gain needed to keep going"
    )


class PriorityWeights(BaseModel):
    """Relative weight of each agent matching factor."""

    capability: float = Field(default=0.4)
    proficiency: float = Field(default=0.3)
    cost: float = Field(default=0.2)
    availability: float = Field(default=0.1)


class MatchingConfig(BaseModel):
    """Capability-based choice of agents for unassigned subtasks."""

    enabled: bool = Field(default=True)
    require_availability: bool = Field(default=True)
    cost_ceiling: Optional[float] = Field(
        default=None, description="Skip agents whose estimated cost exceeds this"
    )
    assign_best_available: bool = Field(
        default=True, description="Fall back to any available agent when nothing matches"
    )
    weights: PriorityWeights = Field(default_factory=PriorityWeights)


class ErrorHandlingConfig(BaseModel):
    """Workflow-level reaction to exhausted subtasks."""

    max_retries: int = Field(default=3, description="Caps retry.max_retries")
    fallback_to_sequential: bool = Field(default=True)
    halt_on_critical_failure: bool = Field(default=False)


class DispatchConfig(BaseModel):
    """
    Configuration consumed by the dispatcher.

    GOTCHA: Effective in-batch concurrency is
            min(max_concurrent_requests, concurrency.max_concurrent_subtasks)
    """

    max_concurrent_requests: int = Field(default=10)
    prefer_batching: bool = Field(
        default=True, description="Run batch members concurrently"
    )
    auto_fallback_to_sequential: bool = Field(default=True)
    require_all_success: bool = Field(
        default=True, description="A batch succeeds only if every member succeeds"
    )
    concurrency: ConcurrencyConfig = Field(default_factory=ConcurrencyConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    timeout: TimeoutConfig = Field(default_factory=TimeoutConfig)
    fallback: FallbackConfig = Field(default_factory=FallbackConfig)
    error_handling: ErrorHandlingConfig = Field(default_factory=ErrorHandlingConfig)
    multipass: MultipassConfig = Field(default_factory=MultipassConfig)
    validation: OutputValidationConfig = Field(
        default_factory=OutputValidationConfig,
        description="Default output validation, overridden by metadata[\"validation\"]",
    )
    matching: MatchingConfig = Field(default_factory=MatchingConfig)

    @property
    def effective_concurrency(self) -> int:
        if not self.prefer_batching:
            return 1
        return max(
            1, min(self.max_concurrent_requests, self.concurrency.max_concurrent_subtasks)
        )

    @property
    def effective_max_retries(self) -> int:
        return max(0, min(self.retry.max_retries, self.error_handling.max_retries))


DISPATCH_PRESETS: Dict[str, Dict] = {
    "development": {
        "prefer_batching": False,
        "concurrency": {"max_concurrent_batches": 1, "max_concurrent_subtasks": 1},
        "retry": {"max_retries": 1},
        "error_handling": {"max_retries": 1, "halt_on_critical_failure": True},
    },
    "production": {
        "concurrency": {"max_concurrent_batches": 5, "max_concurrent_subtasks": 8},
        "retry": {"max_retries": 5},
        "error_handling": {
            "max_retries": 5,
            "fallback_to_sequential": True,
            "halt_on_critical_failure": False,
        },
    },
    "high_throughput": {
        "max_concurrent_requests": 20,
        "concurrency": {"max_concurrent_batches": 10, "max_concurrent_subtasks": 10},
        "timeout": {"batch_timeout_ms": 3600000},
    },
    "cost_optimized": {
        "prefer_batching": False,
        "concurrency": {"max_concurrent_batches": 1, "max_concurrent_subtasks": 1},
        "timeout": {"batch_timeout_ms": 7200000},
    },
    "quality_focused": {
        "retry": {"max_retries": 5},
        "error_handling": {"max_retries": 5},
    },
}

# Context budgets that go with the dispatch presets
PRESET_CONTEXT_LENGTHS = {
    "high_throughput": 2000,
    "quality_focused": 8000,
}


def get_dispatch_preset(name: str) -> DispatchConfig:
    """
    Get a named dispatch preset.

    Args:
        name: development, production, high_throughput, cost_optimized
              or quality_focused

    Returns:
        DispatchConfig

    Raises:
        ConfigurationError: If the preset is unknown
    """
    if name not in DISPATCH_PRESETS:
        raise ConfigurationError(
            [f"Unknown dispatch preset '{name}', expected one of {sorted(DISPATCH_PRESETS)}"]
        )
    return DispatchConfig.model_validate(DISPATCH_PRESETS[name])


def validate_dispatch_config(config: DispatchConfig) -> List[str]:
    """
    List human-readable problems with a dispatch config.

    Args:
        config: Config to check

    Returns:
        Problems, empty when the config is usable
    """
    problems: List[str] = []

    if config.max_concurrent_requests < 1:
        problems.append("max_concurrent_requests must be at least 1")
    if config.concurrency.max_concurrent_subtasks < 1:
        problems.append("max_concurrent_subtasks must be at least 1")
    if config.concurrency.max_concurrent_batches < 1:
        problems.append("max_concurrent_batches must be at least 1")

    if config.retry.max_retries < 0:
        problems.append("max_retries cannot be negative")
    if config.error_handling.max_retries < 0:
        problems.append("error_handling.max_retries cannot be negative")
    if config.retry.backoff_multiplier < 1:
        problems.append("backoff_multiplier must be at least 1")
    if config.retry.initial_delay_ms < 0:
        problems.append("initial_delay_ms cannot be negative")
    if config.retry.max_delay_ms < config.retry.initial_delay_ms:
        problems.append("max_delay_ms cannot be lower than initial_delay_ms")

    if config.timeout.subtask_timeout_ms < 1000:
        problems.append("subtask_timeout_ms must be at least 1000ms")
    if config.timeout.batch_timeout_ms < 1000:
        problems.append("batch_timeout_ms must be at least 1000ms")

    if config.multipass.max_passes < 1:
        problems.append("multipass.max_passes must be at least 1")
    if not 0 <= config.multipass.improvement_threshold <= 1:
        problems.append("multipass.improvement_threshold must be between 0 and 1")

    if config.validation.halt_threshold > config.validation.min_confidence:
        problems.append("validation.halt_threshold cannot exceed min_confidence")

    weights = config.matching.weights
    if min(weights.capability, weights.proficiency, weights.cost, weights.availability) < 0:
        problems.append("matching weights cannot be negative")
    elif weights.capability + weights.proficiency + weights.cost + weights.availability <= 0:
        problems.append("matching weights must not all be zero")

    return problems


def validate_injection_config(config: InjectionConfig) -> List[str]:
    """
    List human-readable problems with an injection config.

    Args:
        config: Config to check

    Returns:
        Problems, empty when the config is usable
    """
    problems: List[str] = []

    if config.max_context_length < 100:
        problems.append("max_context_length must be at least 100 characters")
    if config.custom_prefix is not None and len(config.custom_prefix) > 1000:
        problems.append("custom_prefix cannot exceed 1000 characters")
    if config.custom_suffix is not None and len(config.custom_suffix) > 1000:
        problems.append("custom_suffix cannot exceed 1000 characters")

    return problems


def ensure_valid_config(config: Union[DispatchConfig, InjectionConfig]) -> None:
    """
    Raise if a config has problems.

    Raises:
        ConfigurationError: Listing every problem found
    """
    if isinstance(config, DispatchConfig):
        problems = validate_dispatch_config(config)
    else:
        problems = validate_injection_config(config)

    if problems:
        logger.error(f"Rejected {type(config).__name__}: {problems}")
        raise ConfigurationError(problems)
