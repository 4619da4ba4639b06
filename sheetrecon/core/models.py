"""
Reconciliation data model.
Single responsibility: describe mappings, groups, pairs and run results.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from .errors import ValidationError


# A row record: column name -> scalar value (str, number, date string or None)
RowRecord = Dict[str, Any]

# Text spellings accepted for boolean flags in config and UI payloads
FLAG_VALUES = {"true": True, "false": False, "yes": True, "no": False}


def parse_flag(value: Any, name: str) -> bool:
    """
    Read a boolean option.
    
    Accepts real booleans and the strings ``true``/``false``/``yes``/``no``
    in any case.
    
    Raises:
        ValidationError: For anything else, including numbers and other strings
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in FLAG_VALUES:
        return FLAG_VALUES[value.strip().lower()]
    raise ValidationError(f"{name} must be true or false, got {value!r}")


@dataclass(frozen=True)
class ColumnMapping:
    """Pairs a File 1 column with a File 2 column for matching."""
    
    file1_column: str
    file2_column: str
    is_exact_match: bool = False
    
    def __post_init__(self):
        object.__setattr__(self, "is_exact_match",
                           parse_flag(self.is_exact_match, "exact_match"))
    
    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ColumnMapping":
        """
        Build a mapping from config or UI payloads.
        
        Accepts snake_case keys (``file1_column``, ``exact_match``) and the
        camelCase keys used by browser clients (``file1Column``, ``isExactMatch``).
        
        Raises:
            ValidationError: If either column name is missing or blank, or the
                exact-match flag is not a boolean
        """
        if not isinstance(data, Mapping):
            raise ValidationError(f"Column mapping must be a mapping, got {type(data).__name__}")
        
        file1_column = data.get("file1_column", data.get("file1Column"))
        file2_column = data.get("file2_column", data.get("file2Column"))
        exact = data.get("exact_match",
                         data.get("is_exact_match", data.get("isExactMatch", False)))
        
        for label, value in (("file1_column", file1_column), ("file2_column", file2_column)):
            if not isinstance(value, str) or not value.strip():
                raise ValidationError(f"Column mapping is missing {label}: {dict(data)}")
        
        return cls(file1_column=file1_column, file2_column=file2_column,
                   is_exact_match=exact)
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "file1_column": self.file1_column,
            "file2_column": self.file2_column,
            "exact_match": self.is_exact_match,
        }


@dataclass
class DuplicateGroup:
    """All records sharing one composite key; ``items[0]`` is the original."""
    
    key: str
    items: List[RowRecord] = field(default_factory=list)
    
    def __len__(self) -> int:
        return len(self.items)


@dataclass
class MatchedPair:
    """A File 1 record and the File 2 record it was paired with."""
    
    file1_record: RowRecord
    file2_record: RowRecord


class ResultCategory(str, Enum):
    """Named result partitions that can be exported independently."""
    
    MATCHED = "matched"
    IN_FILE1_ONLY = "in_file1_only"
    IN_FILE2_ONLY = "in_file2_only"
    DUPLICATES_IN_FILE1 = "duplicates_in_file1"
    DUPLICATES_IN_FILE2 = "duplicates_in_file2"
    FULL = "full"


@dataclass
class ReconciliationSummary:
    """Counts for one reconciliation run."""
    
    total_in_file1: int = 0
    total_in_file2: int = 0
    matched: int = 0
    in_file1_only: int = 0
    in_file2_only: int = 0
    duplicates_in_file1: int = 0
    duplicates_in_file2: int = 0
    duplicate_groups_in_file1: int = 0
    duplicate_groups_in_file2: int = 0
    skipped_in_file1: int = 0
    skipped_in_file2: int = 0
    
    @property
    def match_rate(self) -> float:
        """Matched pairs as a share of all distinct unique records."""
        total_unique = (self.matched + self.in_file1_only + self.in_file2_only)
        if total_unique == 0:
            return 0.0
        return round(100 * self.matched / total_unique, 2)
    
    @property
    def file1_coverage(self) -> float:
        if self.total_in_file1 == 0:
            return 0.0
        return round(100 * self.matched / self.total_in_file1, 2)
    
    @property
    def file2_coverage(self) -> float:
        if self.total_in_file2 == 0:
            return 0.0
        return round(100 * self.matched / self.total_in_file2, 2)
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_in_file1": self.total_in_file1,
            "total_in_file2": self.total_in_file2,
            "matched": self.matched,
            "in_file1_only": self.in_file1_only,
            "in_file2_only": self.in_file2_only,
            "duplicates_in_file1": self.duplicates_in_file1,
            "duplicates_in_file2": self.duplicates_in_file2,
            "duplicate_groups_in_file1": self.duplicate_groups_in_file1,
            "duplicate_groups_in_file2": self.duplicate_groups_in_file2,
            "skipped_in_file1": self.skipped_in_file1,
            "skipped_in_file2": self.skipped_in_file2,
            "match_rate": self.match_rate,
            "file1_coverage": self.file1_coverage,
            "file2_coverage": self.file2_coverage,
        }


@dataclass
class ReconciliationResult:
    """Classified output of one run. Built once, not mutated afterwards."""
    
    matched: List[MatchedPair] = field(default_factory=list)
    in_file1_only: List[RowRecord] = field(default_factory=list)
    in_file2_only: List[RowRecord] = field(default_factory=list)
    duplicates_in_file1: List[RowRecord] = field(default_factory=list)
    duplicates_in_file2: List[RowRecord] = field(default_factory=list)
    duplicate_groups_in_file1: List[DuplicateGroup] = field(default_factory=list)
    duplicate_groups_in_file2: List[DuplicateGroup] = field(default_factory=list)
    column_mappings: List[ColumnMapping] = field(default_factory=list)
    summary: ReconciliationSummary = field(default_factory=ReconciliationSummary)
    file1_sheet_name: Optional[str] = None
    file2_sheet_name: Optional[str] = None
    metrics: Dict[str, Any] = field(default_factory=dict)
    
    def get_category(self, category: ResultCategory) -> list:
        """
        Return the rows of one exportable category.
        
        Raises:
            ValueError: For ``ResultCategory.FULL``, which is not a single partition
        """
        category = ResultCategory(category)
        lookup = {
            ResultCategory.MATCHED: self.matched,
            ResultCategory.IN_FILE1_ONLY: self.in_file1_only,
            ResultCategory.IN_FILE2_ONLY: self.in_file2_only,
            ResultCategory.DUPLICATES_IN_FILE1: self.duplicates_in_file1,
            ResultCategory.DUPLICATES_IN_FILE2: self.duplicates_in_file2,
        }
        if category not in lookup:
            raise ValueError(f"{category.value} is not a single result category")
        return lookup[category]
