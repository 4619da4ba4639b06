"""
Unit tests for chunked processing and the processing context.
"""

import pytest
from pathlib import Path
import sys

# Add project root to path for imports
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from sheetrecon.core.errors import DataShapeError
from sheetrecon.pipeline.chunked_processor import (
    FALLBACK_RECORD_SIZE,
    ProcessingContext,
    adaptive_chunk_size,
    as_chunk_stream,
    estimate_record_size,
    iter_chunks,
    process_in_chunks,
)


class TestProcessingContext:
    """Tests for the caller-owned processing context."""
    
    def test_rejects_invalid_chunk_size(self):
        with pytest.raises(ValueError):
            ProcessingContext(chunk_size=0)
    
    def test_checkpoint_calls_hook(self):
        calls = []
        context = ProcessingContext(yield_hook=lambda: calls.append(1))
        context.checkpoint()
        context.checkpoint()
        assert calls == [1, 1]
        assert context.checkpoints == 2
    
    def test_closed_context_refuses_checkpoints(self):
        with ProcessingContext() as context:
            context.checkpoint()
        assert context.closed
        with pytest.raises(RuntimeError):
            context.checkpoint()


class TestIterChunks:
    """Tests for iter_chunks."""
    
    def test_splits_list_into_contiguous_slices(self):
        assert list(iter_chunks([1, 2, 3, 4, 5], 2)) == [[1, 2], [3, 4], [5]]
    
    def test_accepts_iterators(self):
        assert list(iter_chunks(iter(range(4)), 3)) == [[0, 1, 2], [3]]
    
    def test_empty_input_yields_nothing(self):
        assert list(iter_chunks([], 10)) == []
    
    def test_rejects_invalid_chunk_size(self):
        with pytest.raises(ValueError):
            list(iter_chunks([1], 0))


class TestAsChunkStream:
    """Tests for loader output normalization."""
    
    def test_list_of_records_is_chunked(self):
        records = [{"a": i} for i in range(5)]
        chunks = list(as_chunk_stream(records, 2))
        assert [len(c) for c in chunks] == [2, 2, 1]
    
    def test_chunk_stream_passes_through_without_empty_chunks(self):
        def stream():
            yield [{"a": 1}]
            yield []
            yield [{"a": 2}, {"a": 3}]
        
        assert list(as_chunk_stream(stream())) == [[{"a": 1}], [{"a": 2}, {"a": 3}]]
    
    def test_rejects_non_collections(self):
        with pytest.raises(DataShapeError):
            as_chunk_stream("abc")
        with pytest.raises(DataShapeError):
            as_chunk_stream({"a": 1})
        with pytest.raises(DataShapeError):
            as_chunk_stream(42)
    
    def test_rejects_malformed_chunk_lazily(self):
        stream = as_chunk_stream(iter([[{"a": 1}], "oops"]))
        assert next(stream) == [{"a": 1}]
        with pytest.raises(DataShapeError):
            next(stream)


class TestProcessInChunks:
    """Tests for process_in_chunks."""
    
    def test_flattens_results_in_order(self):
        result = process_in_chunks(list(range(7)), 3,
                                   lambda chunk, index: [x * 10 for x in chunk])
        assert result == [0, 10, 20, 30, 40, 50, 60]
    
    def test_reports_progress_after_each_slice(self):
        progress = []
        process_in_chunks(list(range(5)), 2, lambda chunk, index: chunk,
                          on_progress=lambda done, total: progress.append((done, total)))
        assert progress == [(2, 5), (4, 5), (5, 5)]
    
    def test_passes_chunk_index(self):
        seen = []
        process_in_chunks(list(range(5)), 2, lambda chunk, index: seen.append(index))
        assert seen == [0, 1, 2]
    
    def test_suspends_only_between_slices(self):
        context = ProcessingContext(yield_hook=lambda: None)
        process_in_chunks(list(range(5)), 2, lambda chunk, index: None, context=context)
        assert context.checkpoints == 2
    
    def test_empty_collection(self):
        assert process_in_chunks([], 10, lambda chunk, index: chunk) == []
    
    def test_rejects_non_list_input(self):
        with pytest.raises(DataShapeError):
            process_in_chunks("abc", 2, lambda chunk, index: chunk)
        with pytest.raises(DataShapeError):
            process_in_chunks(None, 2, lambda chunk, index: chunk)
    
    def test_rejects_invalid_chunk_size(self):
        with pytest.raises(ValueError):
            process_in_chunks([1, 2], 0, lambda chunk, index: chunk)


class TestAdaptiveChunkSize:
    """Tests for exporter chunk sizing."""
    
    def test_small_records_hit_the_maximum(self):
        assert adaptive_chunk_size({"a": "1"}) == 2000
    
    def test_huge_records_hit_the_minimum(self):
        assert adaptive_chunk_size({"blob": "x" * 6_000_000}) == 1
    
    def test_size_scales_with_record_size(self):
        record = {"text": "x" * 4990}
        size = estimate_record_size(record)
        assert adaptive_chunk_size(record) == 5_000_000 // size
    
    def test_unserializable_record_uses_fallback_size(self):
        record = {}
        record["self"] = record
        assert estimate_record_size(record) == FALLBACK_RECORD_SIZE
