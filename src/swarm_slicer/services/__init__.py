"""Services layer for the prompt slicing system."""

from .pipeline_service import SlicingPipeline

__all__ = [
    "SlicingPipeline",
]
