"""Unit tests for dependency-layered batch grouping."""

import pytest

from swarm_slicer.decomposition.batcher import Batcher
from swarm_slicer.decomposition.slicer import TaskSlicer
from swarm_slicer.exceptions import DependencyCycleError
from swarm_slicer.models.subtask_models import (
    DependencyKind,
    Subtask,
    SubtaskDependency,
    SubtaskType,
)


def make_subtask(subtask_id, blocking=(), soft=(), duration=10.0):
    """Create a subtask with the given dependency edges."""
    dependencies = [SubtaskDependency(subtask_id=d) for d in blocking]
    dependencies += [
        SubtaskDependency(subtask_id=d, kind=DependencyKind.SOFT) for d in soft
    ]
    return Subtask(
        id=subtask_id,
        title=f"Task {subtask_id}",
        description=f"Do {subtask_id}",
        type=SubtaskType.ANALYSIS,
        dependencies=dependencies,
        estimated_duration=duration,
    )


@pytest.fixture
def batcher():
    """Create batcher with default injector."""
    return Batcher()


@pytest.fixture
def diamond():
    """Create a diamond graph a -> (b, c) -> d."""
    return [
        make_subtask("a"),
        make_subtask("b", blocking=["a"]),
        make_subtask("c", blocking=["a"]),
        make_subtask("d", blocking=["b", "c"]),
    ]


class TestBatcher:
    """Test suite for Batcher."""

    def test_empty(self, batcher):
        """Test no subtasks yields no groups."""
        assert batcher.identify_batchable_subtasks([]) == []

    def test_diamond_layers(self, batcher, diamond):
        """Test diamond graph is layered a | b, c | d."""
        groups = batcher.identify_batchable_subtasks(diamond, "original")

        assert [g.subtask_ids for g in groups] == [["a"], ["b", "c"], ["d"]]
        assert [g.level for g in groups] == [0, 1, 2]

    def test_layering_is_topological(self, batcher, diamond):
        """Test no subtask lands before any of its blocking prerequisites."""
        groups = batcher.identify_batchable_subtasks(diamond)
        level_of = {s.id: g.level for g in groups for s in g.subtasks}

        for subtask in diamond:
            for dependency_id in subtask.blocking_dependency_ids():
                assert level_of[dependency_id] < level_of[subtask.id]

    def test_members_are_tagged_copies(self, batcher, diamond):
        """Test members carry group metadata while inputs stay untouched."""
        groups = batcher.identify_batchable_subtasks(diamond, "Write a formal report.")
        middle = groups[1]

        for member in middle.subtasks:
            assert member.batch_group_id == middle.group_id
            assert member.is_batchable is True
            assert "# Your Specific Task" in member.injected_context

        assert groups[0].subtasks[0].is_batchable is False
        assert diamond[1].batch_group_id is None
        assert diamond[1].injected_context is None

    def test_soft_dependencies_do_not_layer(self, batcher):
        """Test SOFT edges leave subtasks in the same layer."""
        subtasks = [make_subtask("a"), make_subtask("b", soft=["a"])]
        groups = batcher.identify_batchable_subtasks(subtasks)

        assert len(groups) == 1
        assert groups[0].subtask_ids == ["a", "b"]

    def test_unknown_dependency_ignored(self, batcher):
        """Test dangling blocking edges do not block layering."""
        groups = batcher.identify_batchable_subtasks([make_subtask("a", blocking=["ghost"])])
        assert groups[0].subtask_ids == ["a"]

    def test_cycle_raises(self, batcher):
        """Test cyclic blocking dependencies raise DependencyCycleError."""
        subtasks = [make_subtask("a", blocking=["b"]), make_subtask("b", blocking=["a"])]

        with pytest.raises(DependencyCycleError) as exc_info:
            batcher.identify_batchable_subtasks(subtasks)
        assert exc_info.value.cycles

    def test_validate_dependencies(self, batcher, diamond):
        """Test validation reports order and missing prerequisites."""
        validation = batcher.validate_dependencies(diamond)
        assert validation.is_valid
        assert validation.execution_order.index("a") < validation.execution_order.index("d")

        missing = batcher.validate_dependencies([make_subtask("x", blocking=["y"])])
        assert not missing.is_valid
        assert missing.missing_dependencies == ["y"]

    def test_validate_dependencies_cycle(self, batcher):
        """Test validation reports cycles without raising."""
        subtasks = [
            make_subtask("a", blocking=["c"]),
            make_subtask("b", blocking=["a"]),
            make_subtask("c", blocking=["b"]),
        ]
        validation = batcher.validate_dependencies(subtasks)

        assert validation.has_cycles
        assert not validation.is_valid
        assert set(validation.cycles[0]) == {"a", "b", "c"}

    def test_max_group_size_splits_layers(self, diamond):
        """Test large layers are split but keep their level."""
        batcher = Batcher(max_group_size=1)
        groups = batcher.identify_batchable_subtasks(diamond)

        assert [g.subtask_ids for g in groups] == [["a"], ["b"], ["c"], ["d"]]
        assert [g.level for g in groups] == [0, 1, 1, 2]

    def test_estimated_execution_time(self, batcher):
        """Test group estimate is the longest member plus overhead."""
        subtasks = [make_subtask("a", duration=10), make_subtask("b", duration=25)]
        assert batcher.estimate_batch_execution_time(subtasks) == 26.0

    def test_get_ready_subtasks(self, batcher, diamond):
        """Test readiness follows completed prerequisites."""
        ready = batcher.get_ready_subtasks(diamond, completed={"a"})
        assert [s.id for s in ready] == ["b", "c"]

        ready = batcher.get_ready_subtasks(diamond, completed={"a", "b", "c"})
        assert [s.id for s in ready] == ["d"]

    def test_sliced_chain_is_sequential(self, batcher):
        """Test a sequential slice becomes one group per subtask."""
        subtasks = TaskSlicer().slice(
            "Research competitors. Then analyze pricing. Then write a report. "
            "Then validate findings."
        )
        groups = batcher.identify_batchable_subtasks(subtasks)

        assert len(groups) == len(subtasks)
        assert all(len(g.subtasks) == 1 for g in groups)
