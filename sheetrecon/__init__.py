"""
Sheet Recon - reconcile two spreadsheets into matched, unmatched and duplicate rows.
"""

__version__ = "1.0.0"

from .core.models import (
    ColumnMapping,
    DuplicateGroup,
    MatchedPair,
    ReconciliationResult,
    ReconciliationSummary,
    ResultCategory,
)
from .core.errors import (
    DataShapeError,
    OperationFailure,
    ReconciliationError,
    ResourceLimitError,
    TransientItemError,
    ValidationError,
)
from .core.orchestrator import ReconciliationEngine, ReconciliationOutcome
from .config.manager import ConfigManager, ReconciliationConfig, ExportPolicy
from .export.exporter import ResultExporter, ExportResult
from .export.splitter import ExportSplitter
from .adapters.file_reader import SpreadsheetReader
from .pipeline.chunked_processor import ProcessingContext
from .utils.logger import get_logger

__all__ = [
    "ColumnMapping",
    "DuplicateGroup",
    "MatchedPair",
    "ReconciliationResult",
    "ReconciliationSummary",
    "ResultCategory",
    "DataShapeError",
    "OperationFailure",
    "ReconciliationError",
    "ResourceLimitError",
    "TransientItemError",
    "ValidationError",
    "ReconciliationEngine",
    "ReconciliationOutcome",
    "ConfigManager",
    "ReconciliationConfig",
    "ExportPolicy",
    "ResultExporter",
    "ExportResult",
    "ExportSplitter",
    "SpreadsheetReader",
    "ProcessingContext",
    "get_logger",
]
