"""Context injection subsystem.

This module extracts context from the original prompt, compresses it to a
length budget, and attaches a progress-tracked todo checklist to each subtask.
"""

from .compression import ContextCompressor
from .context_extractor import ContextExtractor
from .context_injector import ContextInjector, get_injection_preset
from .todo_generator import TodoGenerator

__all__ = [
    "ContextCompressor",
    "ContextExtractor",
    "ContextInjector",
    "TodoGenerator",
    "get_injection_preset",
]
