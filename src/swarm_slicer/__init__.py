"""Prompt slicing, batched agent dispatch and checkpoint progress tracking."""

from .config.settings import SwarmSlicerSettings, get_settings
from .decomposition import Batcher, PromptAnalyzer, TaskSlicer
from .dispatch import CallableAgent, Dispatcher, OpenAIAgent
from .injection import ContextInjector, TodoGenerator
from .progress import ProgressParser, create_progress_parser
from .services import SlicingPipeline
from .storage import InMemoryResultStore, RedisResultStore

__version__ = "0.1.0"

__all__ = [
    "SwarmSlicerSettings",
    "get_settings",
    "PromptAnalyzer",
    "TaskSlicer",
    "Batcher",
    "ContextInjector",
    "TodoGenerator",
    "Dispatcher",
    "CallableAgent",
    "OpenAIAgent",
    "ProgressParser",
    "create_progress_parser",
    "InMemoryResultStore",
    "RedisResultStore",
    "SlicingPipeline",
]
