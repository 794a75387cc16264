"""Capability-based matching of agents to subtasks."""

import logging
from typing import Dict, List, Optional, Sequence

from ..config.dispatch_config import MatchingConfig
from ..models.agent_models import AgentMatch, AgentProfile, ProficiencyLevel
from ..models.subtask_models import Priority, Subtask, SubtaskType

logger = logging.getLogger(__name__)

PROFICIENCY_SCORES = {
    ProficiencyLevel.EXPERT: 100,
    ProficiencyLevel.ADVANCED: 80,
    ProficiencyLevel.INTERMEDIATE: 60,
    ProficiencyLevel.BEGINNER: 40,
}

# Minutes, used when a subtask carries no estimate
DEFAULT_DURATIONS = {
    SubtaskType.RESEARCH: 20,
    SubtaskType.ANALYSIS: 15,
    SubtaskType.CREATION: 30,
    SubtaskType.VALIDATION: 10,
}

PRIORITY_ORDER = {Priority.HIGH: 3, Priority.MEDIUM: 2, Priority.LOW: 1}

CAPABILITY_POINTS = 25
DIRECT_MATCH_BONUS = 20
MAX_REASONABLE_COST = 50.0
FALLBACK_MATCH_SCORE = 30


class AgentMatcher:
    """
    Scores registered agents against subtasks.

    PATTERN: Filter by availability and cost, weighted scoring, sort descending
    CRITICAL: Scores are normalized to 0-100 whatever the weights add up to
    GOTCHA: best_agent() returns None when no agent declares a capability for the
            subtask type, so callers keep their own default
    """

    def __init__(self, config: Optional[MatchingConfig] = None):
        """
        Initialize agent matcher.

        Args:
            config: Default matching config
        """
        self.config = config or MatchingConfig()
        self.logger = logging.getLogger(__name__)

    def match(
        self,
        subtask: Subtask,
        profiles: Sequence[AgentProfile],
        config: Optional[MatchingConfig] = None,
    ) -> List[AgentMatch]:
        """
        Rank agents for one subtask.

        Args:
            subtask: Subtask to place
            profiles: Candidate agents
            config: Overrides the default matching config

        Returns:
            Matches sorted by score, best first
        """
        config = config or self.config
        candidates = (
            [p for p in profiles if p.available] if config.require_availability else list(profiles)
        )

        matches: List[AgentMatch] = []
        for profile in candidates:
            cost = self.estimate_cost(profile, subtask)
            if config.cost_ceiling is not None and cost > config.cost_ceiling:
                self.logger.debug(
                    f"Skipping {profile.agent_id} for {subtask.id}: cost {cost:.2f} over ceiling"
                )
                continue

            score = self.calculate_match_score(profile, subtask, config)
            matches.append(
                AgentMatch(
                    agent_id=profile.agent_id,
                    match_score=score,
                    notes=self._notes(profile, subtask, score),
                    estimated_cost=cost,
                    estimated_duration=self.estimate_duration(profile, subtask),
                )
            )

        matches.sort(key=lambda m: m.match_score, reverse=True)

        if not matches and config.assign_best_available:
            available = next((p for p in profiles if p.available), None)
            if available:
                self.logger.warning(
                    f"No agent matched {subtask.id}, falling back to {available.agent_id}"
                )
                matches.append(
                    AgentMatch(
                        agent_id=available.agent_id,
                        match_score=FALLBACK_MATCH_SCORE,
                        notes="Fallback assignment - no ideal matches found",
                        estimated_cost=self.estimate_cost(available, subtask),
                        estimated_duration=self.estimate_duration(available, subtask),
                    )
                )

        return matches

    def best_agent(
        self,
        subtask: Subtask,
        profiles: Sequence[AgentProfile],
        config: Optional[MatchingConfig] = None,
    ) -> Optional[str]:
        """Highest-scoring agent with a capability for the subtask type, if any."""
        capable = {p.agent_id for p in profiles if self._relevant(p, subtask.type)}
        if not capable:
            return None

        for match in self.match(subtask, profiles, config):
            if match.agent_id in capable:
                return match.agent_id
        return None

    def assign(
        self,
        subtasks: Sequence[Subtask],
        profiles: Sequence[AgentProfile],
        config: Optional[MatchingConfig] = None,
    ) -> Dict[str, str]:
        """
        Spread subtasks over agents, highest priority first.

        PATTERN: Prefer agents not yet used, reuse them once every capable agent is busy

        Args:
            subtasks: Subtasks to place
            profiles: Candidate agents
            config: Overrides the default matching config

        Returns:
            Agent ID by subtask ID, only for subtasks some agent is capable of
        """
        assignments: Dict[str, str] = {}
        used = set()

        ordered = sorted(
            subtasks, key=lambda s: PRIORITY_ORDER.get(s.priority, 0), reverse=True
        )
        for subtask in ordered:
            fresh = [p for p in profiles if p.agent_id not in used]
            agent_id = self.best_agent(subtask, fresh, config) if fresh else None
            if agent_id is None:
                agent_id = self.best_agent(subtask, profiles, config)
            if agent_id:
                assignments[subtask.id] = agent_id
                used.add(agent_id)

        self.logger.info(f"Assigned {len(assignments)}/{len(subtasks)} subtasks by capability")
        return assignments

    def calculate_match_score(
        self,
        profile: AgentProfile,
        subtask: Subtask,
        config: Optional[MatchingConfig] = None,
    ) -> int:
        weights = (config or self.config).weights
        total_weight = (
            weights.capability + weights.proficiency + weights.cost + weights.availability
        )
        if total_weight <= 0:
            return 0

        total = (
            self._capability_score(profile, subtask.type) * weights.capability
            + self._proficiency_score(profile, subtask.type) * weights.proficiency
            + self._cost_score(profile, subtask) * weights.cost
            + (100 if profile.available else 0) * weights.availability
        )
        return max(0, min(100, round(total / total_weight)))

    def estimate_duration(self, profile: AgentProfile, subtask: Subtask) -> float:
        """Minutes, shortened for agents with good quality and success history."""
        duration = subtask.estimated_duration or DEFAULT_DURATIONS.get(subtask.type, 20)
        if profile.quality_score is not None and profile.success_rate is not None:
            multiplier = max(
                0.5,
                1.5 - (profile.quality_score / 100 * 0.3 + profile.success_rate / 100 * 0.2),
            )
            duration *= multiplier
        return round(duration, 2)

    def estimate_cost(self, profile: AgentProfile, subtask: Subtask) -> float:
        if not profile.cost_per_minute:
            return 0.0
        return self.estimate_duration(profile, subtask) * profile.cost_per_minute

    def _relevant(self, profile: AgentProfile, task_type: SubtaskType) -> bool:
        return any(c.category == task_type for c in profile.capabilities)

    def _capability_score(self, profile: AgentProfile, task_type: SubtaskType) -> float:
        relevant = [c for c in profile.capabilities if c.category == task_type]
        if not relevant:
            return 0
        return min(100, CAPABILITY_POINTS * len(relevant) + DIRECT_MATCH_BONUS)

    def _proficiency_score(self, profile: AgentProfile, task_type: SubtaskType) -> float:
        scores = [
            PROFICIENCY_SCORES[c.proficiency]
            for c in profile.capabilities
            if c.category == task_type
        ]
        return sum(scores) / len(scores) if scores else 0

    def _cost_score(self, profile: AgentProfile, subtask: Subtask) -> float:
        if not profile.cost_per_minute:
            return 100
        cost = self.estimate_cost(profile, subtask)
        return max(0, round(100 - cost / MAX_REASONABLE_COST * 100))

    def _notes(self, profile: AgentProfile, subtask: Subtask, score: int) -> str:
        relevant = [c for c in profile.capabilities if c.category == subtask.type]
        names = ", ".join(c.name for c in relevant) or "none"
        levels = ", ".join(c.proficiency.value for c in relevant)
        availability = "Available" if profile.available else "Unavailable"
        return (
            f"Score: {score}/100. Relevant capabilities: {names} ({levels}). "
            f"Availability: {availability}."
        )
