"""Workbook export."""

from .exporter import ResultExporter, ExportArtifact, ExportResult
from .splitter import ExportSplitter

__all__ = ["ResultExporter", "ExportArtifact", "ExportResult", "ExportSplitter"]
