"""
Unit tests for composite key derivation.
"""

import pytest
from pathlib import Path
import sys

# Add project root to path for imports
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from sheetrecon.core.errors import ValidationError
from sheetrecon.core.key_builder import (
    FILE1,
    FILE2,
    KeyPolicy,
    build_duplicate_key,
    build_key,
    build_match_key,
    data_columns,
)
from sheetrecon.core.models import ColumnMapping


class TestBuildKey:
    """Tests for build_key."""
    
    def test_default_policy_lowercases_and_trims(self):
        assert build_key({"A": "  Foo "}) == "A:foo"
    
    def test_null_values_skipped_when_ignoring_empties(self):
        assert build_key({"a": "1", "b": None}) == "a:1"
    
    def test_null_values_kept_as_empty_string_when_configured(self):
        policy = KeyPolicy(ignore_empty_values=False)
        assert build_key({"a": "1", "b": None}, policy=policy) == "a:1|b:"
    
    def test_record_without_contributing_columns_yields_empty_key(self):
        assert build_key({"a": None, "b": float("nan")}) == ""
        assert build_key({}) == ""
    
    def test_non_mapping_yields_empty_key(self):
        assert build_key("not a record") == ""
        assert build_key(None) == ""
    
    def test_explicit_columns_keep_given_order(self):
        record = {"a": "1", "b": "2", "c": "3"}
        assert build_key(record, ["c", "a"]) == "c:3|a:1"
        assert build_key(record, ["c", "a"], sort_columns=True) == "a:1|c:3"
    
    def test_internal_columns_never_contribute(self):
        record = {"_matchedWith": {"id": "9"}, "id": "1"}
        assert build_key(record) == "id:1"
        assert data_columns(record) == ["id"]
    
    def test_case_sensitive_policy(self):
        policy = KeyPolicy(case_sensitive=True)
        assert build_key({"a": "Foo"}, policy=policy) == "a:Foo"
    
    def test_separator_in_values_cannot_forge_extra_columns(self):
        forged = {"a": "x|b:y"}
        genuine = {"a": "x", "b": "y"}
        assert build_key(forged) != build_key(genuine)
    
    def test_numbers_use_spreadsheet_text_form(self):
        assert build_key({"amt": 10.0}) == build_key({"amt": "10"})
        assert build_key({"amt": 10.5}) == "amt:10.5"


class TestDuplicateKey:
    """Tests for all-columns duplicate keys."""
    
    def test_independent_of_field_order(self):
        first = {"b": "2", "a": "1", "c": "x"}
        second = {"c": "x", "a": "1", "b": "2"}
        assert build_duplicate_key(first) == build_duplicate_key(second)
    
    def test_repeated_calls_are_identical(self):
        record = {"id": "7", "name": "Alpha"}
        assert build_duplicate_key(record) == build_duplicate_key(dict(record))
    
    def test_exact_policy_distinguishes_case_but_not_padding(self):
        policy = KeyPolicy.exact()
        assert build_duplicate_key({"a": "X"}, policy) != build_duplicate_key({"a": "x"}, policy)
        assert build_duplicate_key({"a": " x "}, policy) == build_duplicate_key({"a": "x"}, policy)
    
    def test_policy_reads_text_flags(self):
        policy = KeyPolicy(case_sensitive="false", trim_whitespace="yes")
        assert policy.case_sensitive is False
        assert policy.trim_whitespace is True
    
    def test_policy_rejects_unreadable_flags(self):
        with pytest.raises(ValidationError, match="case_sensitive"):
            KeyPolicy(case_sensitive="maybe")
        with pytest.raises(ValidationError):
            KeyPolicy(ignore_empty_values=0)


class TestMatchKey:
    """Tests for mapping-driven match keys."""
    
    def setup_method(self):
        self.fuzzy = [ColumnMapping("A", "A", is_exact_match=False)]
        self.exact = [ColumnMapping("A", "A", is_exact_match=True)]
    
    def test_non_exact_mapping_ignores_case_and_whitespace(self):
        assert build_match_key({"A": "Foo "}, self.fuzzy, FILE1) == \
            build_match_key({"A": "foo"}, self.fuzzy, FILE2)
    
    def test_exact_mapping_compares_raw_text(self):
        assert build_match_key({"A": "Foo "}, self.exact, FILE1) != \
            build_match_key({"A": "foo"}, self.exact, FILE2)
    
    def test_uses_side_specific_column_names(self):
        mappings = [ColumnMapping("Reference", "Ref", True), ColumnMapping("Amount", "Value")]
        left = {"Reference": "R-1", "Amount": "10.00 "}
        right = {"Ref": "R-1", "Value": "10.00"}
        assert build_match_key(left, mappings, FILE1) == build_match_key(right, mappings, FILE2)
    
    def test_all_mapped_columns_empty_yields_empty_key(self):
        mappings = [ColumnMapping("a", "a"), ColumnMapping("b", "b")]
        assert build_match_key({"a": None, "b": ""}, mappings, FILE1) == ""
    
    def test_partially_empty_record_still_has_key(self):
        mappings = [ColumnMapping("a", "a"), ColumnMapping("b", "b")]
        assert build_match_key({"a": "1", "b": None}, mappings, FILE1) == "1|"
    
    def test_invalid_side_rejected(self):
        with pytest.raises(ValueError):
            build_match_key({"A": "1"}, self.exact, 3)
