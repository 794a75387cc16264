"""Data models describing agent capabilities and match results."""

from pydantic import BaseModel, Field
from typing import List, Optional
from enum import Enum

from .subtask_models import SubtaskType


class ProficiencyLevel(str, Enum):
    """How well an agent performs a kind of work."""

    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    EXPERT = "expert"


class AgentCapability(BaseModel):
    """One kind of work an agent can take on."""

    name: str = Field(description="Capability name, e.g. web_research")
    category: SubtaskType = Field(description="Subtask type the capability serves")
    proficiency: ProficiencyLevel = Field(default=ProficiencyLevel.INTERMEDIATE)


class AgentProfile(BaseModel):
    """What the matcher knows about an agent."""

    agent_id: str
    capabilities: List[AgentCapability] = Field(default_factory=list)
    available: bool = Field(default=True)
    cost_per_minute: Optional[float] = Field(default=None, ge=0)
    quality_score: Optional[float] = Field(default=None, ge=0, le=100)
    success_rate: Optional[float] = Field(default=None, ge=0, le=100)


class AgentMatch(BaseModel):
    """Score of one agent for one subtask."""

    agent_id: str
    match_score: int = Field(default=0, ge=0, le=100)
    notes: str = Field(default="")
    estimated_cost: float = Field(default=0.0)
    estimated_duration: float = Field(default=0.0, description="Minutes")
