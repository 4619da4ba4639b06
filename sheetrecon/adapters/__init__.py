"""File adapters."""

from .file_reader import SpreadsheetReader

__all__ = ["SpreadsheetReader"]
