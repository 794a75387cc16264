"""Tests for agent output validation."""

import json

import pytest

from swarm_slicer.dispatch.validator import (
    OutputValidator,
    check_keywords,
    check_word_count,
    default_validation_config,
    topic_similarity,
)
from swarm_slicer.models.subtask_models import Subtask, SubtaskType
from swarm_slicer.models.validation_models import (
    OutputValidationConfig,
    RuleType,
    ValidationRule,
)


@pytest.fixture
def subtask():
    return Subtask(id="a", title="Task", description="Do it")


@pytest.fixture
def validator():
    return OutputValidator()


def rule(name, rule_type, weight=1.0, required=False, **params):
    return ValidationRule(
        name=name, type=rule_type, weight=weight, required=required, params=params
    )


def enabled(*rules, **kwargs):
    return OutputValidationConfig(enabled=True, rules=list(rules), **kwargs)


class TestCheckFunctions:
    """Test suite for the built-in check functions."""

    def test_word_count_within_range(self):
        passed, score, message = check_word_count("one two three", {"min": 2, "max": 5})
        assert passed
        assert score == 1.0
        assert "Word count: 3" in message

    def test_word_count_too_short(self):
        passed, score, _ = check_word_count("one two", {"min": 8})
        assert not passed
        assert score == 0.25

    def test_word_count_too_long(self):
        passed, score, _ = check_word_count("a b c d", {"max": 2})
        assert not passed
        assert score == 0.5

    def test_keywords_case_insensitive(self):
        passed, score, _ = check_keywords(
            "The claim is Verified.", {"keywords": ["verified", "correct"], "required_count": 1}
        )
        assert passed
        assert score == 0.5

    def test_keywords_missing_list(self):
        assert check_keywords("anything", {})[0] is False

    def test_topic_similarity(self):
        assert topic_similarity("market trends in retail", "retail market") == 1.0
        assert topic_similarity("completely unrelated words", "retail market") == 0.0


class TestValidateOutput:
    """Test suite for OutputValidator.validate_output."""

    def test_disabled_config_passes(self, validator, subtask):
        result = validator.validate_output(subtask, "anything")
        assert result.passed
        assert result.confidence == 1.0

    def test_weighted_confidence(self, validator, subtask):
        """Test confidence is the weight-averaged rule score."""
        config = enabled(
            rule("json", RuleType.SCHEMA, weight=3.0, schema={"type": "object"}),
            rule("has_id", RuleType.REGEX, weight=1.0, pattern=r"ID-\d+"),
        )

        result = validator.validate_output(subtask, json.dumps({"ok": True}), config)

        assert result.confidence == pytest.approx(0.75)
        assert result.passed
        assert len(result.warnings) == 1

    def test_required_failure_halts(self, validator, subtask):
        config = enabled(
            rule("json", RuleType.SCHEMA, required=True, schema={"type": "object"}),
            rule("anything", RuleType.REGEX, weight=9.0, pattern="."),
        )

        result = validator.validate_output(subtask, "not json", config)

        assert not result.passed
        assert result.should_halt
        assert not result.should_retry
        assert "Required validation rule 'json' failed" in result.errors[0]

    def test_low_confidence_retries(self, validator, subtask):
        """Test confidence between the two thresholds asks for a retry."""
        config = enabled(
            rule("a", RuleType.REGEX, pattern="alpha"),
            rule("b", RuleType.REGEX, pattern="beta"),
        )

        result = validator.validate_output(subtask, "alpha only", config)

        assert result.confidence == 0.5
        assert not result.passed
        assert not result.should_halt
        assert result.should_retry

    def test_confidence_below_halt_threshold(self, validator, subtask):
        config = enabled(rule("a", RuleType.REGEX, pattern="alpha"))
        result = validator.validate_output(subtask, "nothing here", config)

        assert result.confidence == 0.0
        assert result.should_halt

    def test_schema_required_keys(self, validator, subtask):
        config = enabled(
            rule("shape", RuleType.SCHEMA, schema={"type": "object", "required": ["title"]})
        )

        assert validator.validate_output(subtask, '{"title": "x"}', config).passed
        missing = validator.validate_output(subtask, '{"body": "x"}', config)
        assert "Missing required keys" in missing.rule_results[0].message

    def test_regex_flags(self, validator, subtask):
        config = enabled(rule("summary", RuleType.REGEX, pattern="^summary", flags="im"))
        assert validator.validate_output(subtask, "intro\nSUMMARY: done", config).passed

    def test_semantic_rule(self, validator, subtask):
        config = enabled(
            rule("topic", RuleType.SEMANTIC, expected_topics=["quarterly revenue growth"])
        )
        result = validator.validate_output(subtask, "Revenue growth was strong", config)
        assert result.passed

    def test_invalid_regex_counts_as_failure(self, validator, subtask):
        """Test a rule that raises fails with score 0 instead of propagating."""
        config = enabled(rule("broken", RuleType.REGEX, pattern="(unclosed"))

        result = validator.validate_output(subtask, "text", config)

        assert not result.passed
        assert result.rule_results[0].score == 0.0
        assert "Invalid regex pattern" in result.errors[0]

    def test_unknown_custom_function(self, validator, subtask):
        config = enabled(rule("custom", RuleType.CUSTOM, function="no_such_check"))
        result = validator.validate_output(subtask, "text", config)
        assert "Unknown check function" in result.errors[0]

    def test_registered_check(self, validator, subtask):
        def shouting(output, args):
            return output.isupper(), float(output.isupper()), "all caps"

        validator.register_check("shouting", shouting)
        config = enabled(rule("loud", RuleType.CUSTOM, function="shouting"))

        assert validator.validate_output(subtask, "HELLO", config).passed
        assert not validator.validate_output(subtask, "hello", config).passed


class TestConfigResolution:
    """Test suite for per-subtask validation configs."""

    def test_metadata_dict_override(self, validator):
        subtask = Subtask(
            id="a",
            title="Task",
            description="Do it",
            metadata={"validation": enabled(rule("x", RuleType.REGEX, pattern="x")).model_dump()},
        )

        config = validator.get_config(subtask)

        assert config.enabled
        assert config.rules[0].type == RuleType.REGEX

    def test_malformed_metadata_fails_output(self, validator):
        subtask = Subtask(
            id="a", title="Task", description="Do it",
            metadata={"validation": {"min_confidence": 7}},
        )

        result = validator.validate_output(subtask, "anything")

        assert not result.passed
        assert result.confidence == 0.0
        assert "Invalid validation config" in result.errors[0]

    def test_default_configs_per_type(self):
        creation = default_validation_config(SubtaskType.CREATION)
        assert creation.enabled
        assert creation.rules[0].required
        assert default_validation_config(SubtaskType.ANALYSIS).rules == []
