"""
Cross-dataset matching.
Single responsibility: pair unique File 1 records with unique File 2 records by mapped columns.
"""

from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, Iterable, List, Optional, Sequence

from ..pipeline.chunked_processor import (
    DEFAULT_CHUNK_SIZE,
    ProcessingContext,
    as_chunk_stream,
    is_record_collection,
    iter_chunks,
)
from ..utils.logger import get_logger
from .errors import DataShapeError
from .key_builder import FILE1, FILE2, build_match_key
from .models import ColumnMapping, MatchedPair, RowRecord


logger = get_logger()


@dataclass
class MatchResult:
    """Partition of two unique-item sets."""
    
    matched: List[MatchedPair] = field(default_factory=list)
    in_file1_only: List[RowRecord] = field(default_factory=list)
    in_file2_only: List[RowRecord] = field(default_factory=list)


class _File2Index:
    """
    Match-key index over File 2's unique items.
    
    Each key holds a FIFO of positions; a popped position is claimed and
    can never be matched again.
    """
    
    def __init__(self):
        self.records: List[RowRecord] = []
        self.claimed: List[bool] = []
        self.positions: Dict[str, Deque[int]] = {}
        self.unkeyed = 0
    
    def add(self, record: RowRecord, key: str):
        position = len(self.records)
        self.records.append(record)
        self.claimed.append(False)
        if not key:
            self.unkeyed += 1
            return
        queue = self.positions.get(key)
        if queue is None:
            queue = self.positions[key] = deque()
        queue.append(position)
    
    def claim(self, key: str) -> Optional[RowRecord]:
        if not key:
            return None
        queue = self.positions.get(key)
        if not queue:
            return None
        position = queue.popleft()
        self.claimed[position] = True
        return self.records[position]
    
    def unclaimed(self) -> List[RowRecord]:
        return [record for record, claimed in zip(self.records, self.claimed) if not claimed]


def _require_mapping(record: RowRecord, position: int, label: str):
    if not isinstance(record, Mapping):
        raise DataShapeError(
            f"Record {position} of {label} is not a mapping (got {type(record).__name__})"
        )


class CrossDatasetMatcher:
    """
    Match two de-duplicated datasets on a list of column mappings.
    
    File 2 is indexed in full before File 1 is streamed, so peak memory is
    proportional to File 2's unique items. When several File 2 records
    share a key they are handed out first-in first-out.
    """
    
    def __init__(self, context: Optional[ProcessingContext] = None):
        """
        Initialize matcher.
        
        Args:
            context: Processing context supplying chunk size and yield points
        """
        self.context = context
    
    @property
    def chunk_size(self) -> int:
        return self.context.chunk_size if self.context else DEFAULT_CHUNK_SIZE
    
    def _checkpoint(self):
        if self.context is not None:
            self.context.checkpoint()
    
    def _index_file2(self, unique_stream2: Iterable[Sequence[RowRecord]],
                     mappings: List[ColumnMapping]) -> _File2Index:
        index = _File2Index()
        
        for chunk_number, chunk in enumerate(as_chunk_stream(unique_stream2, self.chunk_size)):
            if chunk_number > 0:
                self._checkpoint()
            for record in chunk:
                _require_mapping(record, len(index.records) + 1, "File 2")
                index.add(record, build_match_key(record, mappings, FILE2))
        
        logger.debug("matcher.index.complete",
                     records=len(index.records),
                     keys=len(index.positions),
                     unkeyed=index.unkeyed)
        return index
    
    def compare_streams(self, unique_stream1: Iterable[Sequence[RowRecord]],
                        unique_stream2: Iterable[Sequence[RowRecord]],
                        mappings: Sequence[ColumnMapping],
                        on_progress: Optional[Callable[[int, Optional[int]], None]] = None,
                        total_hint: Optional[int] = None) -> MatchResult:
        """
        Match two streams of unique-item chunks.
        
        Stream 2 is drained into an index first, then stream 1 is walked
        once. Records whose mapped columns are all empty never match.
        
        Args:
            unique_stream1: File 1 unique items (list or iterable of chunks)
            unique_stream2: File 2 unique items (list or iterable of chunks)
            mappings: Non-empty ordered column mappings
            on_progress: ``fn(file1_records_seen, total_hint)`` after each File 1 chunk
            total_hint: File 1 record count when known
            
        Returns:
            Matched pairs, File 1 leftovers in arrival order, and unclaimed
            File 2 records in their original order
            
        Raises:
            ValueError: If ``mappings`` is empty
            DataShapeError: If a stream is not a collection of records, or
                holds a record that is not a mapping
        """
        mappings = list(mappings or [])
        if not mappings:
            raise ValueError("At least one column mapping is required")
        
        logger.info("matcher.compare.start", mappings=len(mappings))
        
        index = self._index_file2(unique_stream2, mappings)
        result = MatchResult()
        processed = 0
        
        for chunk_number, chunk in enumerate(as_chunk_stream(unique_stream1, self.chunk_size)):
            if chunk_number > 0:
                self._checkpoint()
            
            for record in chunk:
                processed += 1
                _require_mapping(record, processed, "File 1")
                partner = index.claim(build_match_key(record, mappings, FILE1))
                if partner is None:
                    result.in_file1_only.append(record)
                else:
                    result.matched.append(MatchedPair(file1_record=record, file2_record=partner))
            
            if on_progress:
                on_progress(processed, total_hint)
        
        result.in_file2_only = index.unclaimed()
        
        logger.info("matcher.compare.complete",
                    matched=len(result.matched),
                    in_file1_only=len(result.in_file1_only),
                    in_file2_only=len(result.in_file2_only))
        
        return result
    
    def compare_arrays(self, data1: Sequence[RowRecord], data2: Sequence[RowRecord],
                       mappings: Sequence[ColumnMapping],
                       on_progress: Optional[Callable[[int, Optional[int]], None]] = None
                       ) -> MatchResult:
        """
        Array form of ``compare_streams`` for in-memory inputs.
        
        Raises:
            DataShapeError: If either input is not a list of records, or
                holds a record that is not a mapping
        """
        for label, data in (("data1", data1), ("data2", data2)):
            if not is_record_collection(data):
                raise DataShapeError(
                    f"{label} must be a list of records, got {type(data).__name__}"
                )
        
        return self.compare_streams(iter_chunks(data1, self.chunk_size),
                                    iter_chunks(data2, self.chunk_size),
                                    mappings,
                                    on_progress=on_progress,
                                    total_hint=len(data1))
