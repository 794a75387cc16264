"""Weighted rule validation of agent output."""

import json
import logging
import re
from typing import Any, Callable, Dict, Optional, Tuple

from pydantic import ValidationError

from ..models.subtask_models import Subtask, SubtaskType
from ..models.validation_models import (
    OutputValidationConfig,
    OutputValidationResult,
    RuleResult,
    RuleType,
    ValidationRule,
)

logger = logging.getLogger(__name__)

# (output, args) -> (passed, score, message)
CheckFunction = Callable[[str, Dict[str, Any]], Tuple[bool, float, str]]

_CODE_BLOCK = re.compile(r"```[\s\S]*?```")
_URL = re.compile(r"https?://\S+")
_WORD = re.compile(r"\W+")


def check_word_count(output: str, args: Dict[str, Any]) -> Tuple[bool, float, str]:
    """Word count within [min, max]. Score shrinks with the distance outside the range."""
    count = len(output.split())
    minimum = args.get("min", 0)
    maximum = args.get("max")

    if count < minimum:
        score = count / minimum
    elif maximum is not None and count > maximum:
        score = maximum / count
    else:
        score = 1.0

    passed = score == 1.0
    upper = "inf" if maximum is None else maximum
    return passed, score, f"Word count: {count} (range: {minimum}-{upper})"


def check_keywords(output: str, args: Dict[str, Any]) -> Tuple[bool, float, str]:
    keywords = args.get("keywords", [])
    if not keywords:
        return False, 0.0, "No keywords provided"

    case_sensitive = args.get("case_sensitive", False)
    text = output if case_sensitive else output.lower()
    found = [k for k in keywords if (k if case_sensitive else k.lower()) in text]
    required = args.get("required_count", len(keywords))

    return (
        len(found) >= required,
        len(found) / len(keywords),
        f"Found {len(found)}/{len(keywords)} required keywords",
    )


def check_code_blocks(output: str, args: Dict[str, Any]) -> Tuple[bool, float, str]:
    required = args.get("required_count", 1)
    language = args.get("language")
    if language:
        blocks = re.findall(rf"```{re.escape(language)}[\s\S]*?```", output)
    else:
        blocks = _CODE_BLOCK.findall(output)

    return (
        len(blocks) >= required,
        min(1.0, len(blocks) / required),
        f"Found {len(blocks)} code blocks (required: {required})",
    )


def check_urls(output: str, args: Dict[str, Any]) -> Tuple[bool, float, str]:
    required = args.get("required_count", 1)
    urls = _URL.findall(output)
    return (
        len(urls) >= required,
        min(1.0, len(urls) / required),
        f"Found {len(urls)} URLs (required: {required})",
    )


BUILTIN_CHECKS: Dict[str, CheckFunction] = {
    "word_count": check_word_count,
    "has_keywords": check_keywords,
    "code_blocks": check_code_blocks,
    "urls_present": check_urls,
}


def topic_similarity(text: str, topic: str) -> float:
    """Doubled share of words the text has in common with a topic, capped at 1."""
    text_words = [w for w in _WORD.split(text.lower()) if len(w) > 2]
    topic_words = {w for w in _WORD.split(topic.lower()) if len(w) > 2}
    if not text_words or not topic_words:
        return 0.0

    common = [w for w in text_words if w in topic_words]
    return min(1.0, 2 * len(common) / max(len(text_words), len(topic_words)))


def default_validation_config(task_type: SubtaskType) -> OutputValidationConfig:
    """
    Starter validation for a subtask type.

    Args:
        task_type: Subtask type

    Returns:
        Enabled config with one type-specific rule (none for analysis)
    """
    rules = {
        SubtaskType.RESEARCH: ValidationRule(
            name="word_count", type=RuleType.CUSTOM, weight=0.3,
            params={"function": "word_count", "args": {"min": 100, "max": 2000}},
        ),
        SubtaskType.CREATION: ValidationRule(
            name="min_word_count", type=RuleType.CUSTOM, weight=0.4, required=True,
            params={"function": "word_count", "args": {"min": 50}},
        ),
        SubtaskType.VALIDATION: ValidationRule(
            name="has_keywords", type=RuleType.CUSTOM, weight=0.5,
            params={
                "function": "has_keywords",
                "args": {
                    "keywords": ["valid", "correct", "verified", "confirmed"],
                    "required_count": 1,
                },
            },
        ),
    }
    rule = rules.get(task_type)
    return OutputValidationConfig(enabled=True, rules=[rule] if rule else [])


class OutputValidator:
    """
    Scores agent output against weighted rules.

    PATTERN: Weighted average of rule scores compared against two thresholds
    CRITICAL: A failed required rule fails the output and asks for a halt
    GOTCHA: Rules that raise count as failed with score 0, they never propagate
    """

    def __init__(self, default_config: Optional[OutputValidationConfig] = None):
        """
        Initialize validator.

        Args:
            default_config: Used for subtasks without metadata["validation"]
        """
        self.default_config = default_config or OutputValidationConfig()
        self.checks: Dict[str, CheckFunction] = dict(BUILTIN_CHECKS)
        self.logger = logging.getLogger(__name__)

    def register_check(self, name: str, check: CheckFunction) -> None:
        """Make a check function available to custom rules."""
        self.checks[name] = check

    def get_config(self, subtask: Subtask) -> OutputValidationConfig:
        """
        Resolve the validation config for a subtask.

        Raises:
            pydantic.ValidationError: If metadata["validation"] is malformed
        """
        override = subtask.metadata.get("validation")
        if override is None:
            return self.default_config
        if isinstance(override, OutputValidationConfig):
            return override
        return OutputValidationConfig.model_validate(override)

    def validate_output(
        self,
        subtask: Subtask,
        output: str,
        config: Optional[OutputValidationConfig] = None,
    ) -> OutputValidationResult:
        """
        Validate one agent output.

        Args:
            subtask: Subtask that produced the output
            output: Agent output text
            config: Overrides the resolved config

        Returns:
            OutputValidationResult with retry and halt advice
        """
        if config is None:
            try:
                config = self.get_config(subtask)
            except ValidationError as e:
                self.logger.error(f"Invalid validation config on {subtask.id}: {e}")
                return OutputValidationResult(
                    passed=False,
                    confidence=0.0,
                    errors=[f"Invalid validation config: {e}"],
                )

        if not config.enabled or not config.rules:
            return OutputValidationResult()

        results = []
        errors = []
        warnings = []
        weighted = 0.0
        total_weight = 0.0
        required_failed = False

        for rule in config.rules:
            try:
                result = self.execute_rule(rule, output)
            except Exception as e:
                self.logger.warning(f"Rule {rule.name} raised on {subtask.id}: {e}")
                result = RuleResult(rule_name=rule.name, message=f"Rule execution error: {e}")
                errors.append(f"Error executing rule '{rule.name}': {e}")

            results.append(result)
            weighted += result.score * rule.weight
            total_weight += rule.weight

            if not result.passed:
                if rule.required:
                    required_failed = True
                    errors.append(
                        f"Required validation rule '{rule.name}' failed: {result.message}"
                    )
                else:
                    warnings.append(f"Validation rule '{rule.name}' failed: {result.message}")

        confidence = weighted / total_weight
        passed = not required_failed and confidence >= config.min_confidence
        should_halt = required_failed or confidence < config.halt_threshold

        verdict = OutputValidationResult(
            passed=passed,
            confidence=confidence,
            rule_results=results,
            should_halt=should_halt,
            should_retry=config.retry_on_failure and not passed and not should_halt,
            errors=errors,
            warnings=warnings,
        )

        self.logger.debug(
            f"Validated {subtask.id}: passed={passed}, confidence={confidence:.2f}"
        )
        return verdict

    def execute_rule(self, rule: ValidationRule, output: str) -> RuleResult:
        """
        Apply one rule.

        Raises:
            ValueError: For unknown custom functions or invalid regex patterns
        """
        params = rule.params

        if rule.type == RuleType.SCHEMA:
            passed, score, message = self._check_schema(output, params.get("schema"))
        elif rule.type == RuleType.REGEX:
            pattern = params.get("pattern")
            if not pattern:
                passed, score, message = False, 0.0, "No pattern provided"
            else:
                try:
                    matches = re.findall(pattern, output, self._regex_flags(params))
                except re.error as e:
                    raise ValueError(f"Invalid regex pattern: {e}")
                passed = bool(matches)
                score = 1.0 if passed else 0.0
                message = (
                    f"Pattern matched: found {len(matches)} matches"
                    if passed else "Pattern did not match"
                )
        elif rule.type == RuleType.SEMANTIC:
            topics = params.get("expected_topics") or []
            if not topics:
                passed, score, message = False, 0.0, "No expected topics provided"
            else:
                threshold = params.get("threshold", 0.5)
                score = max(topic_similarity(output, topic) for topic in topics)
                passed = score >= threshold
                message = f"Topic similarity {score:.0%} (threshold {threshold:.0%})"
        else:
            name = params.get("function")
            check = self.checks.get(name)
            if check is None:
                raise ValueError(f"Unknown check function: {name}")
            passed, score, message = check(output, params.get("args", {}))

        return RuleResult(
            rule_name=rule.name,
            passed=passed,
            score=max(0.0, min(1.0, score)),
            message=message,
        )

    def _check_schema(self, output: str, schema: Optional[Dict[str, Any]]):
        if not schema:
            return False, 0.0, "No schema provided"
        try:
            data = json.loads(output)
        except json.JSONDecodeError as e:
            return False, 0.0, f"Output is not JSON: {e}"

        json_types = {"object": dict, "array": list, "string": str, "number": (int, float)}
        expected = json_types.get(schema.get("type"))
        if expected and not isinstance(data, expected):
            return False, 0.0, f"Expected JSON {schema['type']}"

        missing = [
            key for key in schema.get("required", [])
            if not isinstance(data, dict) or key not in data
        ]
        if missing:
            return False, 0.0, f"Missing required keys: {missing}"
        return True, 1.0, "Schema validation passed"

    def _regex_flags(self, params: Dict[str, Any]) -> int:
        flags = 0
        for letter in params.get("flags", ""):
            flags |= {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL}.get(letter, 0)
        return flags
