"""
Mapping validation.
Single responsibility: check column mappings against dataset headers before any row work.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from ..core.errors import ValidationError
from ..core.models import ColumnMapping
from ..utils.logger import get_logger


logger = get_logger()


@dataclass
class ValidationIssue:
    """Single validation issue."""
    
    severity: str  # ERROR, WARNING, INFO
    category: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ValidationReport:
    """Complete validation report."""
    
    is_valid: bool
    issues: List[ValidationIssue] = field(default_factory=list)
    stats: Dict[str, Any] = field(default_factory=dict)
    
    def add_issue(self, severity: str, category: str, 
                  message: str, **details):
        """Add an issue to the report."""
        issue = ValidationIssue(severity, category, message, details)
        self.issues.append(issue)
        
        if severity == "ERROR":
            self.is_valid = False
    
    def get_errors(self) -> List[ValidationIssue]:
        """Get only error-level issues."""
        return [i for i in self.issues if i.severity == "ERROR"]
    
    def get_warnings(self) -> List[ValidationIssue]:
        """Get only warning-level issues."""
        return [i for i in self.issues if i.severity == "WARNING"]


def coerce_mappings(mappings: Any) -> List[ColumnMapping]:
    """
    Normalize mapping input to ``ColumnMapping`` objects.
    
    Accepts ``ColumnMapping`` instances and dict payloads in either key style.
    
    Raises:
        ValidationError: If the input is not a sequence or an entry is malformed
    """
    if mappings is None:
        return []
    if isinstance(mappings, (str, bytes, Mapping)) or not isinstance(mappings, Sequence):
        raise ValidationError(
            f"Column mappings must be a list, got {type(mappings).__name__}"
        )
    
    result = []
    for position, entry in enumerate(mappings):
        if isinstance(entry, ColumnMapping):
            result.append(entry)
        elif isinstance(entry, Mapping):
            result.append(ColumnMapping.from_dict(entry))
        else:
            raise ValidationError(
                f"Column mapping #{position + 1} is not a mapping",
                details={"entry": repr(entry)}
            )
    return result


class MappingValidator:
    """Validate column mappings against the two header sets."""
    
    def validate(self, mappings: Sequence[ColumnMapping],
                 headers1: Optional[Sequence[str]] = None,
                 headers2: Optional[Sequence[str]] = None) -> ValidationReport:
        """
        Validate mappings.
        
        Header checks are skipped for a side whose headers are None.
        
        Args:
            mappings: Column mappings
            headers1: File 1 column names
            headers2: File 2 column names
            
        Returns:
            Validation report
        """
        report = ValidationReport(is_valid=True)
        
        logger.debug("validator.mappings.checking",
                     mappings=len(mappings or []),
                     headers1=len(headers1) if headers1 is not None else None,
                     headers2=len(headers2) if headers2 is not None else None)
        
        if not mappings:
            report.add_issue("ERROR", "mapping", "At least one column mapping is required")
            return report
        
        for label, headers in (("File 1", headers1), ("File 2", headers2)):
            if headers is not None and len(headers) == 0:
                report.add_issue("ERROR", "headers", f"{label} has no columns",
                                 dataset=label)
            elif headers is not None:
                names = [str(h) for h in headers]
                repeated = sorted({h for h in names if names.count(h) > 1})
                if repeated:
                    report.add_issue("WARNING", "headers",
                                     f"{label} has repeated column names",
                                     dataset=label, columns=repeated)
        
        known1 = set(headers1) if headers1 is not None else None
        known2 = set(headers2) if headers2 is not None else None
        seen_pairs = set()
        
        for position, mapping in enumerate(mappings, start=1):
            if known1 is not None and mapping.file1_column not in known1:
                report.add_issue(
                    "ERROR", "mapping",
                    f"Column '{mapping.file1_column}' not found in File 1",
                    mapping=position, column=mapping.file1_column
                )
            if known2 is not None and mapping.file2_column not in known2:
                report.add_issue(
                    "ERROR", "mapping",
                    f"Column '{mapping.file2_column}' not found in File 2",
                    mapping=position, column=mapping.file2_column
                )
            
            pair = (mapping.file1_column, mapping.file2_column)
            if pair in seen_pairs:
                report.add_issue(
                    "WARNING", "mapping",
                    f"Mapping {mapping.file1_column} -> {mapping.file2_column} is repeated",
                    mapping=position
                )
            seen_pairs.add(pair)
        
        report.stats["mapping_count"] = len(mappings)
        report.stats["exact_mappings"] = sum(1 for m in mappings if m.is_exact_match)
        
        return report
    
    def validate_or_raise(self, mappings: Sequence[ColumnMapping],
                          headers1: Optional[Sequence[str]] = None,
                          headers2: Optional[Sequence[str]] = None) -> ValidationReport:
        """
        Validate mappings and fail fast on any error.
        
        Raises:
            ValidationError: Carrying every error message of the report
        """
        report = self.validate(mappings, headers1, headers2)
        
        for warning in report.get_warnings():
            logger.warning("validator.mappings.warning",
                           issue=warning.message, **warning.details)
        
        if not report.is_valid:
            errors = report.get_errors()
            logger.error("validator.mappings.failed",
                         errors=[e.message for e in errors])
            raise ValidationError(
                "; ".join(e.message for e in errors),
                details=[{"message": e.message, **e.details} for e in errors]
            )
        
        return report
