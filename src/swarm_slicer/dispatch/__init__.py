"""Batch dispatch subsystem.

This module runs batch groups against agent backends with bounded
concurrency, retry with backoff, fallback agents, output validation,
capability matching, and workflow halting.
"""

from .agents import BaseAgent, CallableAgent, OpenAIAgent
from .dispatcher import Dispatcher
from .execution_state import ExecutionStateManager, ALLOWED_TRANSITIONS
from .matcher import AgentMatcher
from .retry import RetryPolicy
from .validator import OutputValidator, default_validation_config

__all__ = [
    "BaseAgent",
    "CallableAgent",
    "OpenAIAgent",
    "Dispatcher",
    "ExecutionStateManager",
    "ALLOWED_TRANSITIONS",
    "AgentMatcher",
    "RetryPolicy",
    "OutputValidator",
    "default_validation_config",
]
