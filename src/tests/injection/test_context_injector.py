"""Unit tests for context injection."""

import pytest

from swarm_slicer.injection.context_injector import (
    TRACKING_FOOTER,
    TRACKING_HEADER,
    ContextInjector,
    get_injection_preset,
)
from swarm_slicer.models.subtask_models import (
    Subtask,
    SubtaskDependency,
    SubtaskType,
    WorkflowScaffold,
)
from swarm_slicer.models.todo_models import InjectionConfig


ORIGINAL_PROMPT = (
    "Write a launch announcement in a formal tone.\n"
    "Audience: enterprise customers"
)


@pytest.fixture
def injector():
    """Create injector with default components."""
    return ContextInjector()


@pytest.fixture
def subtask():
    """Create a creation subtask depending on a research step."""
    return Subtask(
        id="s2",
        title="Announce",
        description="Write the launch announcement",
        type=SubtaskType.CREATION,
        dependencies=[SubtaskDependency(subtask_id="s1")],
    )


@pytest.fixture
def scaffold(subtask):
    """Create workflow scaffold containing the subtask and its prerequisite."""
    prerequisite = Subtask(id="s1", title="Gather facts", description="Research the launch")
    return WorkflowScaffold(
        workflow_id="wf-launch",
        original_prompt=ORIGINAL_PROMPT,
        subtasks=[prerequisite, subtask],
        agent_id="writer",
    )


class TestContextInjector:
    """Test suite for ContextInjector."""

    def test_injected_prompt_structure(self, injector, subtask, scaffold):
        """Test context, task and tracking sections are rendered."""
        result = injector.inject_context_to_subtask_prompt(subtask, scaffold, ORIGINAL_PROMPT)
        prompt = result.injected_prompt

        assert "# Original Context\nWrite a launch announcement in a formal tone." in prompt
        assert "# Tone & Style\nformal" in prompt
        assert "# Target Audience\nenterprise customers" in prompt
        assert "# Your Specific Task (creation)" in prompt
        assert "# Creation Instructions" in prompt
        assert TRACKING_HEADER in prompt
        assert prompt.endswith(f"{TRACKING_FOOTER}\n\n")

    def test_dependencies_named(self, injector, subtask, scaffold):
        """Test prerequisites are rendered with their titles."""
        result = injector.inject_context_to_subtask_prompt(subtask, scaffold, ORIGINAL_PROMPT)
        assert "This task depends on: s1 (Gather facts)" in result.injected_prompt

    def test_todo_list_and_markers(self, injector, subtask, scaffold):
        """Test the checklist belongs to the subtask and has one marker per item."""
        result = injector.inject_context_to_subtask_prompt(subtask, scaffold, ORIGINAL_PROMPT)

        assert result.subtask_id == "s2"
        assert result.todo_list.subtask_id == "s2"
        assert result.todo_list.total_items > 0
        assert len(result.checkpoint_markers) == result.todo_list.total_items
        assert result.progress_instructions in result.injected_prompt

    def test_agent_and_workflow_recorded(self, injector, subtask, scaffold):
        """Test the scaffold agent and workflow ID are recorded."""
        result = injector.inject_context_to_subtask_prompt(subtask, scaffold, ORIGINAL_PROMPT)

        assert result.agent_id == "writer"
        assert result.todo_list.agent_id == "writer"
        assert result.extra["workflow_id"] == "wf-launch"

    def test_original_prompt_from_scaffold(self, injector, subtask, scaffold):
        """Test the scaffold prompt is used when none is passed."""
        result = injector.inject_context_to_subtask_prompt(subtask, scaffold, "")
        assert "# Tone & Style\nformal" in result.injected_prompt

    def test_empty_prompt_without_scaffold(self, injector):
        """Test injection never raises on empty input or unassigned agents."""
        subtask = Subtask(title="Anything", description="Do anything")
        result = injector.inject_context_to_subtask_prompt(subtask, None, "")

        assert result.agent_id == "unassigned"
        assert "# Original Context" not in result.injected_prompt
        assert "# Your Specific Task (analysis)" in result.injected_prompt
        assert result.extra["workflow_id"] is None

    def test_minimal_preset_hides_optional_sections(self, subtask, scaffold):
        """Test the minimal preset drops tone and format sections."""
        injector = ContextInjector(config=get_injection_preset("minimal"))
        result = injector.inject_context_to_subtask_prompt(subtask, scaffold, ORIGINAL_PROMPT)

        assert "# Tone & Style" not in result.injected_prompt
        assert "# Target Audience" in result.injected_prompt

    def test_custom_prefix_and_suffix(self, injector, subtask):
        """Test custom prefix and suffix wrap the rendered context."""
        config = InjectionConfig(custom_prefix="BEGIN", custom_suffix="END")
        result = injector.inject_context_to_subtask_prompt(subtask, None, "", config)

        assert result.injected_prompt.startswith("BEGIN")
        assert "END\n\n" + TRACKING_HEADER in result.injected_prompt

    def test_compression_keeps_tracking_intact(self, injector, subtask):
        """Test oversized context is compressed but tracking is appended whole."""
        original = "Write about the product launch. " * 50
        config = InjectionConfig(max_context_length=200)

        result = injector.inject_context_to_subtask_prompt(subtask, None, original, config)

        assert result.metadata.compressed
        assert result.metadata.injected_length <= 200
        assert result.metadata.compression_ratio < 1.0
        assert result.injected_prompt.endswith(
            f"{TRACKING_HEADER}\n{result.progress_instructions}\n{TRACKING_FOOTER}\n\n"
        )

    def test_unknown_preset_falls_back(self):
        """Test unknown preset names return the standard preset."""
        assert get_injection_preset("nope").max_context_length == 4000
        assert get_injection_preset("comprehensive").max_context_length == 8000


class TestChecklistFromUserSteps:
    """Test suite for checklists built from the user's own steps."""

    STEPS = [
        "Research market trends",
        "Analyze competitor data",
        "Create visualizations",
        "Write executive summary",
        "Present findings",
        "Collect feedback",
        "Revise recommendations",
    ]

    def test_numbered_steps_become_todos(self, injector):
        """Test every numbered step of the original prompt is on the checklist."""
        original = "\n".join(
            f"        {number}. {step}" for number, step in enumerate(self.STEPS, start=1)
        )
        subtask = Subtask(title="Report", description="Produce the market report")

        result = injector.inject_context_to_subtask_prompt(subtask, None, original)
        titles = [todo.title for todo in result.todo_list.todos]

        assert len(titles) >= 5
        assert all(step in titles for step in self.STEPS)
        assert len(result.complexity.explicit_steps) >= 7
        assert "[todo-6]" in result.injected_prompt

    def test_steps_shared_by_sliced_subtasks(self, injector):
        """Test steps are found whatever the subtask description says."""
        original = "Plan the launch:\n- Draft the press release\n- Brief the sales team"
        subtask = Subtask(
            title="Draft",
            description="Write the launch plan",
            type=SubtaskType.CREATION,
        )

        result = injector.inject_context_to_subtask_prompt(subtask, None, original)
        titles = [todo.title for todo in result.todo_list.todos]

        assert "Draft the press release" in titles
        assert "Brief the sales team" in titles

    def test_template_used_without_steps(self, injector, subtask, scaffold):
        """Test prompts without explicit steps keep the per-type template."""
        result = injector.inject_context_to_subtask_prompt(subtask, scaffold, ORIGINAL_PROMPT)
        assert result.complexity.explicit_steps == []
        assert result.todo_list.todos[0].title == "Understand Brief"
