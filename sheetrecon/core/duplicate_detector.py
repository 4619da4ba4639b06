"""
Exact-duplicate detection within one dataset.
Single responsibility: split records into unique items, duplicates and duplicate groups.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence

from ..pipeline.chunked_processor import (
    DEFAULT_CHUNK_SIZE,
    ProcessingContext,
    is_record_collection,
    process_in_chunks,
)
from ..utils.logger import get_logger
from .errors import DataShapeError, StreamStateError
from .key_builder import KeyPolicy, build_duplicate_key, build_key
from .models import DuplicateGroup, RowRecord


logger = get_logger()


@dataclass
class DuplicateScanResult:
    """Outcome of scanning a whole dataset for duplicates."""
    
    duplicates: List[RowRecord] = field(default_factory=list)
    duplicate_groups: List[DuplicateGroup] = field(default_factory=list)
    unique_items: List[RowRecord] = field(default_factory=list)
    total_count: int = 0
    skipped_count: int = 0


class DuplicateScanner:
    """
    Running duplicate state fed one chunk at a time.
    
    The first record seen for a key is unique; later ones are duplicates
    and join that key's group, which starts as ``[original, duplicate]``.
    """
    
    def __init__(self, key_fn: Callable[[RowRecord], str]):
        self.key_fn = key_fn
        self.seen: Dict[str, RowRecord] = {}
        self.groups: Dict[str, DuplicateGroup] = {}
        self.duplicates: List[RowRecord] = []
        self.total_count = 0
        self.skipped_count = 0
        self.unique_count = 0
    
    def scan_chunk(self, chunk: Sequence[RowRecord]) -> List[RowRecord]:
        """Record a chunk and return its unique items in arrival order."""
        unique: List[RowRecord] = []
        
        for record in chunk:
            self.total_count += 1
            
            if not isinstance(record, Mapping):
                self.skipped_count += 1
                continue
            
            key = self.key_fn(record)
            if not key:
                # No contributing columns: cannot be deduplicated
                self.skipped_count += 1
                continue
            
            original = self.seen.get(key)
            if original is None:
                self.seen[key] = record
                unique.append(record)
                continue
            
            self.duplicates.append(record)
            group = self.groups.get(key)
            if group is None:
                self.groups[key] = DuplicateGroup(key=key, items=[original, record])
            else:
                group.items.append(record)
        
        self.unique_count += len(unique)
        return unique
    
    def finish(self):
        # Lookup map is only needed while scanning
        self.seen = {}
        
        logger.info("duplicates.scan.complete",
                    total=self.total_count,
                    unique=self.unique_count,
                    duplicates=len(self.duplicates),
                    groups=len(self.groups),
                    skipped=self.skipped_count)


class DuplicateStream:
    """
    Lazy duplicate scan over a stream of record chunks.
    
    Iterating yields chunks of unique items as input arrives. The
    duplicate list, the groups and the counts are final only once the
    stream is exhausted; reading them earlier raises ``StreamStateError``.
    A stream can be iterated once.
    """
    
    def __init__(self, record_chunks: Iterable[Sequence[RowRecord]],
                 key_fn: Callable[[RowRecord], str],
                 context: Optional[ProcessingContext] = None,
                 on_progress: Optional[Callable[[int, Optional[int]], None]] = None,
                 total_hint: Optional[int] = None):
        self._source = record_chunks
        self._scanner = DuplicateScanner(key_fn)
        self._context = context
        self._on_progress = on_progress
        self._total_hint = total_hint
        self._started = False
        self.exhausted = False
    
    def __iter__(self) -> Iterator[List[RowRecord]]:
        if self._started:
            raise StreamStateError("Duplicate stream can only be consumed once")
        self._started = True
        return self._generate()
    
    def _generate(self) -> Iterator[List[RowRecord]]:
        for index, chunk in enumerate(self._source):
            if index > 0 and self._context is not None:
                self._context.checkpoint()
            
            if not is_record_collection(chunk):
                raise DataShapeError(
                    f"Chunk {index} is not a list of records (got {type(chunk).__name__})"
                )
            
            unique = self._scanner.scan_chunk(chunk)
            
            if self._on_progress:
                self._on_progress(self._scanner.total_count, self._total_hint)
            
            if unique:
                yield unique
        
        self.exhausted = True
        self._scanner.finish()
    
    def _require_exhausted(self, name: str):
        if not self.exhausted:
            raise StreamStateError(
                f"'{name}' is only available after the unique-item stream is fully consumed"
            )
    
    @property
    def duplicates(self) -> List[RowRecord]:
        self._require_exhausted("duplicates")
        return self._scanner.duplicates
    
    @property
    def duplicate_groups(self) -> List[DuplicateGroup]:
        self._require_exhausted("duplicate_groups")
        return list(self._scanner.groups.values())
    
    @property
    def total_count(self) -> int:
        self._require_exhausted("total_count")
        return self._scanner.total_count
    
    @property
    def skipped_count(self) -> int:
        self._require_exhausted("skipped_count")
        return self._scanner.skipped_count
    
    @property
    def unique_count(self) -> int:
        self._require_exhausted("unique_count")
        return self._scanner.unique_count

class DuplicateDetector:
    """
    Find exact duplicates using composite keys.
    
    With no ``columns`` every data column takes part in the key, sorted by
    name so field order never matters.
    """
    
    def __init__(self, policy: Optional[KeyPolicy] = None,
                 columns: Optional[Sequence[str]] = None,
                 context: Optional[ProcessingContext] = None):
        """
        Initialize duplicate detector.
        
        Args:
            policy: Key normalization policy
            columns: Restrict the key to these columns
            context: Processing context supplying chunk size and yield points
        """
        self.policy = policy or KeyPolicy()
        self.columns = list(columns) if columns else None
        self.context = context
    
    @property
    def chunk_size(self) -> int:
        return self.context.chunk_size if self.context else DEFAULT_CHUNK_SIZE
    
    def key_for(self, record: RowRecord) -> str:
        """Composite key of a record under this detector's policy."""
        if self.columns:
            return build_key(record, self.columns, self.policy, sort_columns=True)
        return build_duplicate_key(record, self.policy)
    
    def find_duplicates_stream(self, record_chunks: Iterable[Sequence[RowRecord]],
                               on_progress: Optional[Callable[[int, Optional[int]], None]] = None,
                               total_hint: Optional[int] = None) -> DuplicateStream:
        """
        Start a lazy duplicate scan.
        
        Args:
            record_chunks: Iterable of record lists
            on_progress: ``fn(records_seen, total_hint)`` after each chunk
            total_hint: Total record count when known
            
        Returns:
            Stream yielding unique-item chunks
        """
        if isinstance(record_chunks, (str, bytes, Mapping)):
            raise DataShapeError(
                f"Expected a stream of record chunks, got {type(record_chunks).__name__}"
            )
        return DuplicateStream(record_chunks, self.key_for, self.context,
                               on_progress, total_hint)
    
    def find_duplicates(self, records: Sequence[RowRecord],
                        on_progress: Optional[Callable[[int, Optional[int]], None]] = None
                        ) -> DuplicateScanResult:
        """
        Scan a whole dataset for duplicates.
        
        Results are identical to draining ``find_duplicates_stream`` over the
        same records, whatever the chunk size.
        
        Args:
            records: List of row records
            on_progress: ``fn(records_seen, total)`` after each chunk
            
        Returns:
            Duplicates, groups (each of size >= 2) and unique items in arrival order
            
        Raises:
            DataShapeError: If ``records`` is not a list-like collection
        """
        if not is_record_collection(records):
            raise DataShapeError(
                f"Expected a list of records, got {type(records).__name__}"
            )
        
        scanner = DuplicateScanner(self.key_for)
        unique_items = process_in_chunks(
            records,
            self.chunk_size,
            lambda chunk, index: scanner.scan_chunk(chunk),
            on_progress=on_progress,
            context=self.context,
        )
        scanner.finish()
        
        return DuplicateScanResult(
            duplicates=scanner.duplicates,
            duplicate_groups=list(scanner.groups.values()),
            unique_items=unique_items,
            total_count=scanner.total_count,
            skipped_count=scanner.skipped_count,
        )
