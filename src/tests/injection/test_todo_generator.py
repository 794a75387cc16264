"""Unit tests for todo checklist generation."""

import pytest

from swarm_slicer.injection.todo_generator import TodoGenerator
from swarm_slicer.models.subtask_models import Subtask, SubtaskType
from swarm_slicer.models.todo_models import ComplexityLevel


@pytest.fixture
def generator():
    """Create todo generator."""
    return TodoGenerator()


@pytest.fixture
def research_subtask():
    """Create a research subtask without explicit steps."""
    return Subtask(
        id="subtask-research",
        title="Research",
        description="Research competitors",
        type=SubtaskType.RESEARCH,
    )


class TestComplexityAnalysis:
    """Test suite for analyze_task_complexity."""

    def test_short_text_is_simple(self, generator):
        """Test short text without indicators is SIMPLE."""
        profile = generator.analyze_task_complexity("Summarize the notes", SubtaskType.ANALYSIS)

        assert profile.level == ComplexityLevel.SIMPLE
        assert profile.estimated_duration == 300000
        assert profile.operation_count == 6

    def test_indicators_raise_level(self, generator):
        """Test three indicator keywords make a task COMPLEX."""
        profile = generator.analyze_task_complexity(
            "Implement and integrate the module, then optimize it", SubtaskType.CREATION
        )

        assert profile.level == ComplexityLevel.COMPLEX
        assert profile.estimated_duration == 900000
        assert "integration_complexity" in profile.risk_factors

    def test_external_and_iterative_flags(self, generator):
        """Test external data and iteration flags."""
        profile = generator.analyze_task_complexity(
            "Call the external API and refine the output", SubtaskType.CREATION
        )

        assert profile.requires_external_data
        assert profile.has_iterative_steps
        assert "external_dependencies" in profile.risk_factors


class TestExplicitSteps:
    """Test suite for explicit step parsing."""

    def test_numbered_bulleted_and_step_lines(self, generator):
        """Test all supported step formats are recognised."""
        text = "1. Collect the sales data\n- Build the chart\nStep 3: Write the summary"
        assert generator.parse_explicit_steps(text) == [
            "Collect the sales data",
            "Build the chart",
            "Write the summary",
        ]

    def test_duplicates_and_short_steps_dropped(self, generator):
        """Test case-insensitive duplicates and tiny steps are ignored."""
        text = "- Write the draft\n- write the draft\n- ok"
        assert generator.parse_explicit_steps(text) == ["Write the draft"]

    def test_linear_chain_without_ordering_words(self, generator):
        """Test explicit steps form a chain when no ordering words appear."""
        subtask = Subtask(
            title="Report",
            description="1. Collect the sales data\n2. Build the chart\n3. Write the summary",
            type=SubtaskType.CREATION,
        )
        todo_list = generator.generate_todo_list(subtask)

        assert [t.id for t in todo_list.todos] == ["todo-0", "todo-1", "todo-2"]
        assert todo_list.todos[0].title == "Collect the sales data"
        assert todo_list.todos[0].description == "Complete the step: Collect the sales data"
        assert todo_list.todos[1].dependencies == ["todo-0"]
        assert todo_list.todos[2].dependencies == ["todo-1"]

    def test_ordering_words_decide_edges(self, generator):
        """Test then links to the previous step and finally links to all."""
        subtask = Subtask(
            title="Publish",
            description=(
                "- Gather inputs\n- Then draft outline\n- Review spelling\n"
                "- Finally publish everything"
            ),
            type=SubtaskType.CREATION,
        )
        todos = generator.generate_todo_list(subtask).todos

        assert todos[1].dependencies == ["todo-0"]
        assert todos[2].dependencies == []
        assert todos[3].dependencies == ["todo-0", "todo-1", "todo-2"]


class TestPatternOperations:
    """Test suite for per-type operation patterns."""

    def test_research_pattern(self, generator, research_subtask):
        """Test research subtasks use the research operation pattern."""
        todo_list = generator.generate_todo_list(research_subtask, agent_id="agent-1")

        assert todo_list.subtask_id == "subtask-research"
        assert todo_list.agent_id == "agent-1"
        assert todo_list.total_items == 6
        assert [t.title for t in todo_list.todos][:2] == ["Define Scope", "Identify Sources"]

    def test_pattern_dependencies(self, generator, research_subtask):
        """Test mapped dependencies win and unmapped operations chain."""
        todos = generator.generate_todo_list(research_subtask).todos

        assert todos[0].dependencies == []
        assert todos[1].dependencies == ["todo-0"]
        assert todos[2].dependencies == ["todo-0", "todo-1"]
        assert todos[5].dependencies == ["todo-4"]

    def test_todo_ids_unique(self, generator, research_subtask):
        """Test todo IDs are unique within the list."""
        ids = [t.id for t in generator.generate_todo_list(research_subtask).todos]
        assert len(ids) == len(set(ids))

    def test_durations(self, generator, research_subtask):
        """Test durations scale with level and operation keywords."""
        todos = generator.generate_todo_list(research_subtask).todos

        # 180000 * 0.75 for a simple research subtask
        assert todos[0].estimated_duration_ms == 135000
        # analyze_findings carries the 1.2 analysis multiplier
        assert todos[3].estimated_duration_ms == 162000
        assert generator.generate_todo_list(research_subtask).estimated_total_duration == (
            135000 * 5 + 162000
        )

    def test_operation_duration_keywords(self, generator):
        """Test create and review keywords adjust durations."""
        base = generator.estimate_operation_duration("draft", SubtaskType.CREATION)
        create = generator.estimate_operation_duration("create_draft", SubtaskType.CREATION)
        review = generator.estimate_operation_duration("final_review", SubtaskType.CREATION)

        assert base == 150000
        assert create == 225000
        assert review == 105000


class TestInstructions:
    """Test suite for progress instructions and markers."""

    def test_instructions_contain_syntax_and_checklist(self, generator, research_subtask):
        """Test instruction block lists marker syntax and every todo."""
        todo_list = generator.generate_todo_list(research_subtask)
        instructions = generator.generate_progress_instructions(todo_list)

        assert "[CHECKPOINT:{todoId}:COMPLETED]" in instructions
        assert "[PROGRESS:{todoId}:{percentage}]" in instructions
        assert "TODO CHECKLIST:" in instructions
        assert "- [todo-0] Define Scope:" in instructions
        assert "(Est: 2min)" in instructions

    def test_checkpoint_markers(self, generator, research_subtask):
        """Test one completion marker per todo."""
        todo_list = generator.generate_todo_list(research_subtask)
        markers = generator.create_checkpoint_markers(todo_list)

        assert len(markers) == todo_list.total_items
        assert markers[0] == "[CHECKPOINT:todo-0:COMPLETED]"
