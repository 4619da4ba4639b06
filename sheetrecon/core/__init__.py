"""Core reconciliation logic."""

from .models import ColumnMapping, DuplicateGroup, MatchedPair, ReconciliationResult
from .key_builder import KeyPolicy, build_key, build_duplicate_key, build_match_key
from .duplicate_detector import DuplicateDetector, DuplicateScanResult, DuplicateStream
from .matcher import CrossDatasetMatcher, MatchResult
from .orchestrator import ReconciliationEngine, ReconciliationStage, ReconciliationOutcome

__all__ = [
    "ColumnMapping",
    "DuplicateGroup",
    "MatchedPair",
    "ReconciliationResult",
    "KeyPolicy",
    "build_key",
    "build_duplicate_key",
    "build_match_key",
    "DuplicateDetector",
    "DuplicateScanResult",
    "DuplicateStream",
    "CrossDatasetMatcher",
    "MatchResult",
    "ReconciliationEngine",
    "ReconciliationStage",
    "ReconciliationOutcome",
]
