"""Prompt decomposition subsystem.

This module provides prompt analysis, chunking of oversized prompts,
subtask slicing, and dependency-layered batch grouping.
"""

from .prompt_analyzer import PromptAnalyzer
from .chunking import PromptChunker
from .slicer import TaskSlicer
from .batcher import Batcher

__all__ = [
    "PromptAnalyzer",
    "PromptChunker",
    "TaskSlicer",
    "Batcher",
]
