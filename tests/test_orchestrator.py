"""
Test suite for the reconciliation engine.
"""

import pytest
from pathlib import Path
from unittest.mock import Mock
import sys

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from sheetrecon.core.errors import DataShapeError, ValidationError
from sheetrecon.core.key_builder import KeyPolicy
from sheetrecon.core.models import ColumnMapping
from sheetrecon.core.orchestrator import ReconciliationEngine, ReconciliationStage
from sheetrecon.pipeline.chunked_processor import ProcessingContext


BY_ID = [{"file1Column": "id", "file2Column": "id", "isExactMatch": True}]


class TestReconcile:
    """Tests for in-memory reconciliation."""
    
    def setup_method(self):
        self.engine = ReconciliationEngine()
    
    def test_exact_match_scenario(self):
        result = self.engine.reconcile([{"id": "1", "amt": "10"}],
                                       [{"id": "1", "amt": "10"}], BY_ID)
        
        assert len(result.matched) == 1
        assert result.in_file1_only == []
        assert result.in_file2_only == []
        assert result.summary.match_rate == 100.0
    
    def test_unmatched_remainder_scenario(self):
        result = self.engine.reconcile([{"id": "1"}], [{"id": "1"}, {"id": "2"}], BY_ID)
        
        assert len(result.matched) == 1
        assert result.in_file1_only == []
        assert result.in_file2_only == [{"id": "2"}]
    
    def test_duplicates_removed_before_matching(self):
        file1 = [{"id": "1", "amt": "5"}, {"id": "1", "amt": "5"}, {"id": "2", "amt": "7"}]
        file2 = [{"id": "1", "amt": "5"}]
        result = self.engine.reconcile(file1, file2, BY_ID)
        
        assert result.duplicates_in_file1 == [file1[1]]
        assert len(result.duplicate_groups_in_file1) == 1
        assert len(result.matched) == 1
        assert result.matched[0].file1_record is file1[0]
        assert result.in_file1_only == [file1[2]]
        
        summary = result.summary
        assert summary.total_in_file1 == 3
        assert summary.duplicates_in_file1 == 1
        assert summary.matched + summary.in_file1_only + summary.duplicates_in_file1 == 3
    
    def test_exact_duplicate_policy_by_default(self):
        result = self.engine.reconcile([{"id": "A"}, {"id": "a"}], [{"id": "A"}], BY_ID)
        assert result.duplicates_in_file1 == []
    
    def test_custom_duplicate_policy(self):
        engine = ReconciliationEngine(duplicate_policy=KeyPolicy())
        result = engine.reconcile([{"id": "A"}, {"id": "a"}], [{"id": "A"}], BY_ID)
        assert len(result.duplicates_in_file1) == 1
    
    def test_accepts_column_mapping_objects(self):
        mappings = [ColumnMapping("ref", "id")]
        result = self.engine.reconcile([{"ref": "X "}], [{"id": "x"}], mappings)
        assert len(result.matched) == 1
    
    def test_sheet_names_and_mappings_carried(self):
        result = self.engine.reconcile([{"id": "1"}], [{"id": "1"}], BY_ID,
                                       file1_sheet_name="Ledger", file2_sheet_name="Bank")
        
        assert result.file1_sheet_name == "Ledger"
        assert result.file2_sheet_name == "Bank"
        assert result.column_mappings == [ColumnMapping("id", "id", True)]
    
    def test_generator_of_chunks(self):
        def chunks():
            yield [{"id": "1"}, {"id": "2"}]
            yield [{"id": "3"}]
        
        result = self.engine.reconcile(chunks(), [{"id": "3"}], BY_ID)
        
        assert result.summary.total_in_file1 == 3
        assert len(result.matched) == 1
        assert [r["id"] for r in result.in_file1_only] == ["1", "2"]
    
    def test_unknown_mapping_column(self):
        with pytest.raises(ValidationError, match="Column 'X' not found in File 1"):
            self.engine.reconcile([{"id": "1"}], [{"id": "1"}],
                                  [{"file1Column": "X", "file2Column": "id"}])
        assert self.engine.stage == ReconciliationStage.FAILED
    
    def test_explicit_headers(self):
        with pytest.raises(ValidationError):
            self.engine.reconcile([{"id": "1"}], [{"id": "1"}], BY_ID,
                                  headers1=["other"], headers2=["id"])
    
    def test_no_mappings(self):
        with pytest.raises(ValidationError, match="At least one column mapping"):
            self.engine.reconcile([{"id": "1"}], [{"id": "1"}], [])
    
    def test_empty_dataset(self):
        with pytest.raises(DataShapeError, match="File 1 contains no rows"):
            self.engine.reconcile([], [{"id": "1"}], BY_ID)
        with pytest.raises(DataShapeError, match="File 2 contains no rows"):
            self.engine.reconcile([{"id": "1"}], [], BY_ID)
    
    def test_non_collection_input(self):
        with pytest.raises(DataShapeError):
            self.engine.reconcile("not rows", [{"id": "1"}], BY_ID)
    
    def test_stage_history(self):
        self.engine.reconcile([{"id": "1"}], [{"id": "1"}], BY_ID)
        
        assert self.engine.stage == ReconciliationStage.DONE
        assert self.engine.stage_history == [
            ReconciliationStage.INIT,
            ReconciliationStage.VALIDATE_MAPPINGS,
            ReconciliationStage.STREAM_FILE1,
            ReconciliationStage.STREAM_FILE2,
            ReconciliationStage.DEDUPE_FILE1,
            ReconciliationStage.DEDUPE_FILE2,
            ReconciliationStage.MATCH_UNIQUES,
            ReconciliationStage.SUMMARIZE,
            ReconciliationStage.DONE,
        ]
    
    def test_progress_is_monotonic_and_completes(self):
        updates = []
        file1 = [{"id": str(i)} for i in range(50)]
        file2 = [{"id": str(i)} for i in range(25, 75)]
        
        engine = ReconciliationEngine(context=ProcessingContext(chunk_size=7))
        engine.reconcile(file1, file2, BY_ID,
                         on_progress=lambda stage, pct: updates.append((stage, pct)))
        
        percents = [pct for _stage, pct in updates]
        assert percents == sorted(percents)
        assert percents[-1] == 100
        assert updates[0][0] == "Initializing"
    
    def test_yields_between_chunks(self):
        context = ProcessingContext(chunk_size=2, yield_hook=lambda: None)
        engine = ReconciliationEngine(context=context)
        engine.reconcile([{"id": str(i)} for i in range(4)],
                         [{"id": str(i)} for i in range(4)], BY_ID)
        
        # loading, deduplication and matching each cross one chunk boundary per file
        assert context.checkpoints == 6
    
    def test_metrics_attached(self):
        result = self.engine.reconcile([{"id": "1"}], [{"id": "1"}], BY_ID)
        
        stages = [stage["name"] for stage in result.metrics["stages"]]
        assert stages == ["Init", "ValidateMappings", "StreamFile1", "StreamFile2",
                          "DedupeFile1", "DedupeFile2", "MatchUniques", "Summarize"]
        assert result.metrics["summary"]["datasets_processed"] == 2
    
    def test_metrics_can_be_disabled(self):
        engine = ReconciliationEngine(collect_metrics=False)
        result = engine.reconcile([{"id": "1"}], [{"id": "1"}], BY_ID)
        assert result.metrics == {}


class TestOutcomes:
    """Tests for the non-raising entry points."""
    
    def setup_method(self):
        self.engine = ReconciliationEngine()
    
    def test_run_records_success(self):
        outcome = self.engine.run_records([{"id": "1"}], [{"id": "1"}], BY_ID)
        
        assert outcome.success
        assert outcome.failure is None
        assert outcome.stage == ReconciliationStage.DONE
        assert len(outcome.result.matched) == 1
    
    def test_text_exact_match_flag_is_parsed(self):
        mappings = [{"file1Column": "a", "file2Column": "a", "isExactMatch": "false"}]
        outcome = self.engine.run_records([{"a": "Foo"}], [{"a": "foo "}], mappings)
        
        assert outcome.success
        assert len(outcome.result.matched) == 1
    
    def test_unreadable_exact_match_flag_fails(self):
        mappings = [{"file1Column": "a", "file2Column": "a", "isExactMatch": "maybe"}]
        outcome = self.engine.run_records([{"a": "Foo"}], [{"a": "Foo"}], mappings)
        
        assert not outcome.success
        assert outcome.failure.error_type == "ValidationError"
    
    def test_run_records_failure(self):
        outcome = self.engine.run_records([{"id": "1"}], [{"id": "1"}],
                                          [{"file1Column": "nope", "file2Column": "id"}])
        
        assert not outcome.success
        assert outcome.result is None
        assert outcome.stage == ReconciliationStage.FAILED
        assert outcome.failure.error_type == "ValidationError"
        assert "Column 'nope' not found in File 1" in outcome.failure.message
        assert "Traceback" in outcome.failure.details
    
    def test_run_without_loader(self):
        outcome = self.engine.run("a.xlsx", "b.xlsx", BY_ID)
        
        assert not outcome.success
        assert outcome.failure.error_type == "ValueError"


class TestProcessFiles:
    """Tests for reconciliation through a loader."""
    
    def setup_method(self):
        self.loader = Mock()
        self.loader.load_headers.side_effect = lambda file, sheet: ["id", "amount"]
        self.loader.load_rows.side_effect = lambda file, sheet, progress: iter([
            [{"id": "1", "amount": "10"}, {"id": f"{file}-only", "amount": "0"}],
        ])
        self.engine = ReconciliationEngine(loader=self.loader)
    
    def test_requires_loader(self):
        with pytest.raises(ValueError):
            ReconciliationEngine().process_files("a.xlsx", "b.xlsx", BY_ID)
    
    def test_reconciles_loader_rows(self):
        result = self.engine.process_files("left", "right", BY_ID,
                                           sheet1="S1", sheet2="S2")
        
        assert len(result.matched) == 1
        assert [r["id"] for r in result.in_file1_only] == ["left-only"]
        assert [r["id"] for r in result.in_file2_only] == ["right-only"]
        assert result.file1_sheet_name == "S1"
        self.loader.load_headers.assert_any_call("left", "S1")
        self.loader.load_headers.assert_any_call("right", "S2")
    
    def test_mappings_validated_before_rows_are_read(self):
        with pytest.raises(ValidationError):
            self.engine.process_files("left", "right",
                                      [{"file1Column": "missing", "file2Column": "id"}])
        
        self.loader.load_rows.assert_not_called()
    
    def test_empty_sheet_from_loader(self):
        self.loader.load_rows.side_effect = lambda file, sheet, progress: iter([])
        
        outcome = self.engine.run("left", "right", BY_ID)
        
        assert not outcome.success
        assert outcome.failure.error_type == "DataShapeError"
    
    def test_loader_progress_is_not_overridden_by_chunks(self):
        def load_rows(file, sheet, progress):
            for n in range(1, 5):
                progress(n, 4)
                yield [{"id": f"{file}-{n}", "amount": "1"}]
        
        self.loader.load_rows.side_effect = load_rows
        updates = []
        
        self.engine.process_files("left", "right", BY_ID,
                                  on_progress=lambda stage, pct: updates.append((stage, pct)))
        
        reading = [pct for stage, pct in updates if stage == "Reading File 1"]
        assert reading == [5.0, 8.75, 12.5, 16.25, 20.0, 20.0]
