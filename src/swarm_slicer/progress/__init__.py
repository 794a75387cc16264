"""Progress tracking package."""

from .parser import (
    MARKER_PATTERN,
    PARSER_PRESETS,
    ProgressParser,
    create_progress_parser,
    recognize_markers,
)

__all__ = [
    "MARKER_PATTERN",
    "PARSER_PRESETS",
    "ProgressParser",
    "create_progress_parser",
    "recognize_markers",
]
