"""Exception hierarchy for the prompt slicing system."""

from typing import List, Optional


class SwarmSlicerError(Exception):
    """Base class for all swarm-slicer errors."""

    pass


class ConfigurationError(SwarmSlicerError):
    """Raised when a configuration object fails validation."""

    def __init__(self, problems: List[str]):
        self.problems = problems
        super().__init__("Invalid configuration: " + "; ".join(problems))


class DependencyCycleError(SwarmSlicerError):
    """Raised when subtasks cannot be layered because of a cycle."""

    def __init__(self, cycles: List[List[str]]):
        self.cycles = cycles
        rendered = [" -> ".join(cycle) for cycle in cycles]
        super().__init__(f"Circular blocking dependencies: {rendered}")


class AgentError(SwarmSlicerError):
    """Raised by an agent backend when a call fails. Retryable."""

    def __init__(self, message: str, agent_id: Optional[str] = None):
        self.agent_id = agent_id
        super().__init__(message)


class AgentTimeoutError(AgentError):
    """Raised when an agent call exceeds its time budget."""

    pass


class WorkflowHaltedError(SwarmSlicerError):
    """Raised when work is dispatched on a halted workflow."""

    pass


class ResultStoreError(SwarmSlicerError):
    """Raised on result persistence failures."""

    pass
