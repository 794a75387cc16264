"""Tests for the swarm-slicer command line."""

import json

import pytest
from click.testing import CliRunner

from swarm_slicer.cli import main


PROMPT = (
    "Research competitors. Then analyze pricing. Then write a report. "
    "Then validate findings."
)


@pytest.fixture
def runner(monkeypatch):
    """Create CLI runner with no Redis or OpenAI configured."""
    monkeypatch.delenv("SWARM_SLICER_REDIS_URL", raising=False)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    return CliRunner()


class TestAnalyzeCommand:
    """Tests for the analyze command."""

    def test_json_output(self, runner):
        """Test analysis statistics are printed as JSON."""
        result = runner.invoke(main, ["analyze", PROMPT, "--json"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["has_research_keywords"] is True
        assert data["has_validation_keywords"] is True
        assert data["word_count"] == 12

    def test_table_output(self, runner):
        """Test the default output is a table."""
        result = runner.invoke(main, ["analyze", PROMPT])

        assert result.exit_code == 0
        assert "Prompt Analysis" in result.stdout

    def test_prompt_from_stdin(self, runner):
        """Test '-' reads the prompt from stdin."""
        result = runner.invoke(main, ["analyze", "-", "--json"], input=PROMPT)

        assert result.exit_code == 0
        assert json.loads(result.stdout)["sentence_count"] == 4


class TestSliceCommand:
    """Tests for the slice command."""

    def test_json_groups(self, runner):
        """Test batch groups are printed without injected prompts."""
        result = runner.invoke(main, ["slice", PROMPT, "--json"])

        assert result.exit_code == 0
        groups = json.loads(result.stdout)
        assert [g["level"] for g in groups] == [0, 1, 2, 3]
        assert all("injected_context" not in s for g in groups for s in g["subtasks"])

    def test_preset_accepted(self, runner):
        """Test a dispatch preset can be selected."""
        result = runner.invoke(main, ["--preset", "development", "slice", PROMPT])

        assert result.exit_code == 0


class TestInjectCommand:
    """Tests for the inject command."""

    def test_prints_tracked_prompt(self, runner):
        """Test the isolated prompt carries the checklist."""
        result = runner.invoke(main, ["inject", PROMPT, "--index", "1"])

        assert result.exit_code == 0
        assert "todo-0" in result.stdout

    def test_index_out_of_range(self, runner):
        """Test an invalid index is a usage error."""
        result = runner.invoke(main, ["inject", PROMPT, "--index", "9"])

        assert result.exit_code == 2


class TestRunCommand:
    """Tests for the run command."""

    def test_requires_api_key(self, runner):
        """Test running without an API key fails before any work."""
        result = runner.invoke(main, ["run", PROMPT])

        assert result.exit_code == 2
        assert "OPENAI_API_KEY" in result.output
