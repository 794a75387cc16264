"""Top-level settings with environment variable loading."""

import os
from typing import Optional

from pydantic import BaseModel, Field
from dotenv import load_dotenv

from ..models.progress_models import ParserConfig
from ..models.subtask_models import SlicingConfig
from ..models.todo_models import InjectionConfig
from .dispatch_config import (
    ConcurrencyConfig,
    DispatchConfig,
    RetryConfig,
    PRESET_CONTEXT_LENGTHS,
    get_dispatch_preset,
)

# Load environment variables from .env file
load_dotenv()


def _dispatch_from_env() -> DispatchConfig:
    return DispatchConfig(
        max_concurrent_requests=int(os.getenv("SWARM_SLICER_MAX_CONCURRENT_REQUESTS", "10")),
        concurrency=ConcurrencyConfig(
            max_concurrent_batches=int(os.getenv("SWARM_SLICER_MAX_CONCURRENT_BATCHES", "5")),
        ),
        retry=RetryConfig(
            max_retries=int(os.getenv("SWARM_SLICER_MAX_RETRIES", "3")),
        ),
    )


def _injection_from_env() -> InjectionConfig:
    return InjectionConfig(
        max_context_length=int(os.getenv("SWARM_SLICER_MAX_CONTEXT_LENGTH", "4000")),
    )


class SwarmSlicerSettings(BaseModel):
    """Configuration for the whole slicing pipeline."""

    slicing: SlicingConfig = Field(default_factory=SlicingConfig)
    injection: InjectionConfig = Field(default_factory=_injection_from_env)
    dispatch: DispatchConfig = Field(default_factory=_dispatch_from_env)
    parser: ParserConfig = Field(default_factory=ParserConfig)

    # Result store
    redis_url: Optional[str] = Field(
        default_factory=lambda: os.getenv("SWARM_SLICER_REDIS_URL"),
        description="Redis URL, in-memory store when unset",
    )

    # OpenAI agent backend
    openai_api_key: Optional[str] = Field(
        default_factory=lambda: os.getenv("OPENAI_API_KEY"),
        description="OpenAI API key",
    )
    openai_model: str = Field(
        default_factory=lambda: os.getenv("SWARM_SLICER_OPENAI_MODEL", "gpt-4o-mini"),
        description="Model used by OpenAIAgent",
    )

    @classmethod
    def from_preset(cls, name: str) -> "SwarmSlicerSettings":
        """
        Build settings around a named dispatch preset.

        Args:
            name: Dispatch preset name

        Returns:
            Settings with matching dispatch and context budget
        """
        settings = cls(dispatch=get_dispatch_preset(name))
        if name in PRESET_CONTEXT_LENGTHS:
            settings.injection = settings.injection.model_copy(
                update={"max_context_length": PRESET_CONTEXT_LENGTHS[name]}
            )
        return settings


def get_settings() -> SwarmSlicerSettings:
    """Get settings for the current environment."""
    return SwarmSlicerSettings()
