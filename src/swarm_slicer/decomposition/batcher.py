"""Batch grouping of subtasks by blocking-dependency layers."""

import logging
from graphlib import TopologicalSorter, CycleError
from typing import Dict, List, Optional, Set

from ..exceptions import DependencyCycleError
from ..injection.context_injector import ContextInjector
from ..models.subtask_models import (
    BatchGroup,
    DependencyValidation,
    Subtask,
)


logger = logging.getLogger(__name__)

DEFAULT_GROUP_DURATION = 15.0
PER_MEMBER_OVERHEAD = 0.5
MAX_OVERHEAD = 5.0


class Batcher:
    """
    Partitions subtasks into groups that can run concurrently.

    PATTERN: Use Python's built-in graphlib for level-by-level layering
    CRITICAL: A subtask never lands in a group before any of its BLOCKING prerequisites
    GOTCHA: SOFT and REFERENCE dependencies do not affect layering
    """

    def __init__(
        self,
        injector: Optional[ContextInjector] = None,
        max_group_size: Optional[int] = None,
    ):
        """
        Initialize batcher.

        Args:
            injector: Renders the isolated prompt attached to each member
            max_group_size: Split layers larger than this into several groups
        """
        self.injector = injector or ContextInjector()
        self.max_group_size = max_group_size
        self.logger = logging.getLogger(__name__)

    def build_graph(self, subtasks: List[Subtask]) -> Dict[str, Set[str]]:
        """
        Build the blocking-dependency graph.

        Args:
            subtasks: Subtasks to layer

        Returns:
            subtask_id -> set of blocking prerequisite IDs
        """
        known = {s.id for s in subtasks}
        graph: Dict[str, Set[str]] = {}

        for subtask in subtasks:
            graph[subtask.id] = set()
            for dependency_id in subtask.blocking_dependency_ids():
                if dependency_id not in known:
                    self.logger.warning(
                        f"Subtask {subtask.id} depends on unknown subtask {dependency_id}, ignoring"
                    )
                    continue
                graph[subtask.id].add(dependency_id)
                self.logger.debug(f"Added dependency: {subtask.id} depends on {dependency_id}")

        return graph

    def validate_dependencies(self, subtasks: List[Subtask]) -> DependencyValidation:
        """
        Validate the blocking graph and detect cycles.

        Args:
            subtasks: Subtasks to validate

        Returns:
            DependencyValidation with results
        """
        known = {s.id for s in subtasks}
        missing = sorted(
            {
                dep
                for s in subtasks
                for dep in s.blocking_dependency_ids()
                if dep not in known
            }
        )
        graph = self.build_graph(subtasks)

        try:
            execution_order = list(TopologicalSorter(graph).static_order())
        except CycleError as e:
            self.logger.error(f"Circular dependencies detected: {e}")
            return DependencyValidation(
                is_valid=False,
                has_cycles=True,
                cycles=self._find_all_cycles(graph),
                missing_dependencies=missing,
            )

        return DependencyValidation(
            is_valid=not missing,
            has_cycles=False,
            missing_dependencies=missing,
            execution_order=execution_order,
        )

    def get_execution_layers(self, subtasks: List[Subtask]) -> List[List[str]]:
        """
        Layer subtasks so that each layer only depends on earlier ones.

        Args:
            subtasks: Subtasks to layer

        Returns:
            List of layers, each a list of subtask IDs in input order

        Raises:
            DependencyCycleError: If blocking dependencies form a cycle
        """
        graph = self.build_graph(subtasks)
        position = {s.id: index for index, s in enumerate(subtasks)}

        sorter = TopologicalSorter(graph)
        try:
            sorter.prepare()
        except CycleError:
            raise DependencyCycleError(self._find_all_cycles(graph))

        layers: List[List[str]] = []
        while sorter.is_active():
            ready = sorted(sorter.get_ready(), key=lambda sid: position[sid])
            if not ready:
                break
            layers.append(ready)
            for subtask_id in ready:
                sorter.done(subtask_id)

        return layers

    def identify_batchable_subtasks(
        self,
        subtasks: List[Subtask],
        original_prompt: str = "",
    ) -> List[BatchGroup]:
        """
        Partition subtasks into concurrency-safe batch groups.

        PATTERN: Classic level-by-level topological layering
        CRITICAL: Members are copies tagged with group ID and isolated prompt,
                  the input subtasks are not modified

        Args:
            subtasks: Subtasks to group
            original_prompt: Prompt the subtasks were sliced from

        Returns:
            Batch groups in execution order

        Raises:
            DependencyCycleError: If blocking dependencies form a cycle
        """
        if not subtasks:
            return []

        by_id = {s.id: s for s in subtasks}
        groups: List[BatchGroup] = []

        for level, layer in enumerate(self.get_execution_layers(subtasks)):
            for member_ids in self._split_layer(layer):
                group = BatchGroup(level=level)
                batchable = len(member_ids) > 1

                for subtask_id in member_ids:
                    source = by_id[subtask_id]
                    isolated_prompt = self.injector.build_isolated_prompt(
                        source, original_prompt, by_id
                    )
                    member = source.model_copy(deep=True)
                    member.batch_group_id = group.group_id
                    member.is_batchable = batchable
                    member.injected_context = isolated_prompt
                    group.subtasks.append(member)

                group.estimated_execution_time = self.estimate_batch_execution_time(
                    group.subtasks
                )
                groups.append(group)

        self.logger.info(
            f"Generated {len(groups)} batch groups "
            f"with {sum(len(g.subtasks) for g in groups)} subtasks"
        )

        return groups

    def estimate_batch_execution_time(self, subtasks: List[Subtask]) -> float:
        """
        Estimate wall-clock minutes for a group whose members run concurrently.

        Args:
            subtasks: Group members

        Returns:
            Longest member estimate plus a small coordination overhead
        """
        longest = max(
            (s.estimated_duration for s in subtasks), default=DEFAULT_GROUP_DURATION
        )
        overhead = min(MAX_OVERHEAD, len(subtasks) * PER_MEMBER_OVERHEAD)
        return longest + overhead

    def get_ready_subtasks(
        self,
        subtasks: List[Subtask],
        completed: Set[str],
    ) -> List[Subtask]:
        """
        Get subtasks whose blocking prerequisites are all completed.

        Args:
            subtasks: Candidate subtasks
            completed: IDs of completed subtasks

        Returns:
            Ready subtasks not already completed
        """
        known = {s.id for s in subtasks}
        ready = []
        for subtask in subtasks:
            if subtask.id in completed:
                continue
            prerequisites = {d for d in subtask.blocking_dependency_ids() if d in known}
            if prerequisites.issubset(completed):
                ready.append(subtask)
        return ready

    def _split_layer(self, layer: List[str]) -> List[List[str]]:
        if not self.max_group_size or len(layer) <= self.max_group_size:
            return [layer]
        size = self.max_group_size
        return [layer[i : i + size] for i in range(0, len(layer), size)]

    def _find_all_cycles(self, graph: Dict[str, Set[str]]) -> List[List[str]]:
        """
        Find circular dependency chains using DFS.

        GOTCHA: May not find all cycles in complex graphs

        Args:
            graph: Dependency graph

        Returns:
            List of cycle chains
        """
        cycles: List[List[str]] = []
        visited: Set[str] = set()
        rec_stack: Set[str] = set()

        def dfs(node: str, path: List[str]) -> None:
            visited.add(node)
            rec_stack.add(node)
            path.append(node)

            for neighbor in sorted(graph.get(node, set())):
                if neighbor not in visited:
                    dfs(neighbor, path.copy())
                elif neighbor in rec_stack:
                    cycle_start = path.index(neighbor)
                    cycles.append(path[cycle_start:] + [neighbor])

            rec_stack.remove(node)

        for node in graph:
            if node not in visited:
                dfs(node, [])

        return cycles
