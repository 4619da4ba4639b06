"""
Reconciliation error taxonomy.
Single responsibility: typed failures and the structured failure payload.
"""

import traceback
from dataclasses import dataclass
from typing import Any, Optional


class ReconciliationError(Exception):
    """Base class for all engine failures."""
    
    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(ReconciliationError):
    """Missing or invalid column mapping, or a mapped column absent from headers."""
    pass


class DataShapeError(ReconciliationError):
    """Empty sheet, or a non-collection where a collection was expected."""
    pass


class ResourceLimitError(ReconciliationError):
    """Estimated or actual export output exceeds a row or byte ceiling."""
    pass


class TransientItemError(ReconciliationError):
    """A single record failed to transform; recovered by skipping it."""
    pass


class StreamStateError(ReconciliationError):
    """Deferred stream results were read before the stream was exhausted."""
    pass


@dataclass
class OperationFailure:
    """Structured failure returned from public operations."""
    
    message: str
    error_type: str
    details: Optional[str] = None
    
    @classmethod
    def from_exception(cls, error: BaseException) -> "OperationFailure":
        """
        Build a failure payload from a caught exception.
        
        Args:
            error: The exception that ended the operation
            
        Returns:
            Failure with message, type name and formatted traceback
        """
        message = getattr(error, "message", None) or str(error) or type(error).__name__
        details = "".join(
            traceback.format_exception(type(error), error, error.__traceback__)
        )
        return cls(message=message, error_type=type(error).__name__, details=details)
