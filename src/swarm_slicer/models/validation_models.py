"""Data models for agent output validation."""

from pydantic import BaseModel, Field
from typing import Any, Dict, List
from enum import Enum


class RuleType(str, Enum):
    """How a validation rule inspects agent output."""

    SCHEMA = "schema"  # JSON with expected type and required keys
    REGEX = "regex"
    SEMANTIC = "semantic"  # Word overlap with expected topics
    CUSTOM = "custom"  # Named check function


class ValidationRule(BaseModel):
    """One weighted check applied to agent output."""

    name: str = Field(description="Rule name used in messages")
    type: RuleType
    params: Dict[str, Any] = Field(
        default_factory=dict,
        description="schema / pattern, flags / expected_topics, threshold / function + args",
    )
    weight: float = Field(default=1.0, gt=0, description="Share of the overall confidence")
    required: bool = Field(default=False, description="Failure fails the output outright")


class OutputValidationConfig(BaseModel):
    """
    Validation applied to a subtask's output.

    GOTCHA: A subtask may override this through metadata["validation"]
    """

    enabled: bool = Field(default=False)
    rules: List[ValidationRule] = Field(default_factory=list)
    min_confidence: float = Field(
        default=0.7, ge=0, le=1, description="Confidence needed to pass"
    )
    halt_threshold: float = Field(
        default=0.3, ge=0, le=1, description="Confidence below which the workflow halts"
    )
    retry_on_failure: bool = Field(default=True)


class RuleResult(BaseModel):
    """Outcome of one rule."""

    rule_name: str
    passed: bool = Field(default=False)
    score: float = Field(default=0.0, ge=0, le=1)
    message: str = Field(default="")
    details: Dict[str, Any] = Field(default_factory=dict)


class OutputValidationResult(BaseModel):
    """Combined verdict on one agent output."""

    passed: bool = Field(default=True)
    confidence: float = Field(default=1.0, ge=0, le=1)
    rule_results: List[RuleResult] = Field(default_factory=list)
    should_halt: bool = Field(default=False)
    should_retry: bool = Field(default=False)
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
