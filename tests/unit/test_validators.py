"""
Unit tests for column mapping validation.
"""

import pytest
from pathlib import Path
import sys

# Add project root to path for imports
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from sheetrecon.core.errors import ValidationError
from sheetrecon.core.models import ColumnMapping
from sheetrecon.pipeline.validators import MappingValidator, coerce_mappings


class TestMappingValidator:
    """Tests for MappingValidator."""
    
    def setup_method(self):
        self.validator = MappingValidator()
        self.headers1 = ["id", "amount", "date"]
        self.headers2 = ["ref", "value", "posted"]
    
    def test_valid_mappings(self):
        mappings = [ColumnMapping("id", "ref", True), ColumnMapping("amount", "value")]
        report = self.validator.validate(mappings, self.headers1, self.headers2)
        
        assert report.is_valid
        assert report.get_errors() == []
        assert report.stats["mapping_count"] == 2
        assert report.stats["exact_mappings"] == 1
    
    def test_empty_mappings_are_an_error(self):
        report = self.validator.validate([], self.headers1, self.headers2)
        assert not report.is_valid
        assert "At least one column mapping" in report.get_errors()[0].message
    
    def test_missing_column_named_in_message(self):
        mappings = [ColumnMapping("X", "ref")]
        report = self.validator.validate(mappings, self.headers1, self.headers2)
        
        assert not report.is_valid
        messages = [e.message for e in report.get_errors()]
        assert "Column 'X' not found in File 1" in messages
    
    def test_missing_file2_column(self):
        mappings = [ColumnMapping("id", "nope")]
        report = self.validator.validate(mappings, self.headers1, self.headers2)
        assert [e.message for e in report.get_errors()] == ["Column 'nope' not found in File 2"]
    
    def test_header_checks_skipped_when_unknown(self):
        mappings = [ColumnMapping("anything", "else")]
        assert self.validator.validate(mappings).is_valid
    
    def test_empty_header_list_is_an_error(self):
        report = self.validator.validate([ColumnMapping("id", "ref")], [], self.headers2)
        assert not report.is_valid
    
    def test_repeated_mapping_is_a_warning(self):
        mappings = [ColumnMapping("id", "ref"), ColumnMapping("id", "ref")]
        report = self.validator.validate(mappings, self.headers1, self.headers2)
        
        assert report.is_valid
        assert len(report.get_warnings()) == 1
    
    def test_repeated_headers_are_a_warning(self):
        report = self.validator.validate([ColumnMapping("id", "ref")],
                                         ["id", "id"], self.headers2)
        assert report.is_valid
        assert report.get_warnings()[0].details["columns"] == ["id"]
    
    def test_validate_or_raise_joins_errors(self):
        mappings = [ColumnMapping("X", "Y")]
        with pytest.raises(ValidationError) as exc_info:
            self.validator.validate_or_raise(mappings, self.headers1, self.headers2)
        
        assert "Column 'X' not found in File 1" in exc_info.value.message
        assert "Column 'Y' not found in File 2" in exc_info.value.message
        assert len(exc_info.value.details) == 2
    
    def test_validate_or_raise_returns_report(self):
        report = self.validator.validate_or_raise([ColumnMapping("id", "ref")],
                                                  self.headers1, self.headers2)
        assert report.is_valid


class TestCoerceMappings:
    """Tests for coerce_mappings."""
    
    def test_accepts_objects_and_dicts(self):
        mappings = coerce_mappings([
            ColumnMapping("a", "b"),
            {"file1_column": "c", "file2_column": "d", "exact_match": True},
            {"file1Column": "e", "file2Column": "f", "isExactMatch": False},
        ])
        
        assert mappings[0] == ColumnMapping("a", "b")
        assert mappings[1] == ColumnMapping("c", "d", True)
        assert mappings[2] == ColumnMapping("e", "f", False)
    
    def test_none_is_empty(self):
        assert coerce_mappings(None) == []
    
    def test_rejects_non_list(self):
        with pytest.raises(ValidationError):
            coerce_mappings("id=ref")
        with pytest.raises(ValidationError):
            coerce_mappings({"file1_column": "a", "file2_column": "b"})
    
    def test_rejects_bad_entries(self):
        with pytest.raises(ValidationError):
            coerce_mappings([42])
        with pytest.raises(ValidationError):
            coerce_mappings([{"file1_column": "a"}])
        with pytest.raises(ValidationError):
            coerce_mappings([{"file1_column": " ", "file2_column": "b"}])
    
    def test_text_exact_match_flags(self):
        mappings = coerce_mappings([
            {"file1Column": "a", "file2Column": "b", "isExactMatch": "false"},
            {"file1Column": "a", "file2Column": "b", "isExactMatch": "True"},
            {"file1_column": "a", "file2_column": "b", "exact_match": "no"},
        ])
        
        assert [m.is_exact_match for m in mappings] == [False, True, False]
    
    def test_rejects_unreadable_exact_match_flags(self):
        for flag in ("maybe", 1, None):
            with pytest.raises(ValidationError, match="exact_match"):
                coerce_mappings([{"file1Column": "a", "file2Column": "b", "isExactMatch": flag}])
        with pytest.raises(ValidationError):
            ColumnMapping("a", "b", "maybe")
