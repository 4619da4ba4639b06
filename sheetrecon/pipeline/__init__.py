"""Chunked processing, progress and validation components."""

from .chunked_processor import ProcessingContext, iter_chunks, process_in_chunks
from .progress import ProgressTracker
from .validators import MappingValidator, ValidationReport, ValidationIssue

__all__ = [
    "ProcessingContext",
    "iter_chunks",
    "process_in_chunks",
    "ProgressTracker",
    "MappingValidator",
    "ValidationReport",
    "ValidationIssue",
]
