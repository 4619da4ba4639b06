"""Utility functions and helpers."""

from .logger import get_logger, configure_logger, StructuredLogger
from .converters import is_null, coerce_to_text, to_cell_value

__all__ = [
    "get_logger",
    "configure_logger",
    "StructuredLogger",
    "is_null",
    "coerce_to_text",
    "to_cell_value",
]
