"""
Chunked data processing for responsiveness and bounded memory.
Single responsibility: walk large collections in bounded slices.

All cooperative suspension points of the engine live at chunk boundaries:
``ProcessingContext.checkpoint()`` is called between slices, never inside one.
"""

import json
import time
from collections.abc import Iterable, Mapping, Sequence
from typing import Any, Callable, Iterator, List, Optional

from ..core.errors import DataShapeError
from ..utils.logger import get_logger


logger = get_logger()


DEFAULT_CHUNK_SIZE = 1000

# Exporter sizing: aim for ~5MB of serialized rows per chunk
TARGET_CHUNK_BYTES = 5_000_000
MIN_CHUNK_SIZE = 1
MAX_CHUNK_SIZE = 2000

# Size assumed for a record that cannot be serialized
FALLBACK_RECORD_SIZE = 1000


class ProcessingContext:
    """
    Caller-owned state for one or more engine calls.
    
    Holds the chunk size and the hook used to hand control back to the
    host between chunks. The caller creates and closes it; nothing in the
    engine keeps one at module level.
    """
    
    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE,
                 yield_hook: Optional[Callable[[], None]] = None):
        """
        Initialize processing context.
        
        Args:
            chunk_size: Records per chunk (must be >= 1)
            yield_hook: Called at every suspension point; defaults to
                ``time.sleep(0)`` which lets other threads run
        """
        if not isinstance(chunk_size, int) or chunk_size < 1:
            raise ValueError(f"chunk_size must be a positive integer, got {chunk_size!r}")
        
        self.chunk_size = chunk_size
        self.yield_hook = yield_hook
        self.checkpoints = 0
        self.closed = False
    
    def checkpoint(self):
        """Suspension point between chunks."""
        if self.closed:
            raise RuntimeError("Processing context is closed")
        
        self.checkpoints += 1
        if self.yield_hook is not None:
            self.yield_hook()
        else:
            time.sleep(0)
    
    def close(self):
        self.closed = True
    
    def __enter__(self) -> "ProcessingContext":
        return self
    
    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


def _require_chunk_size(chunk_size: int):
    if not isinstance(chunk_size, int) or chunk_size < 1:
        raise ValueError(f"chunk_size must be a positive integer, got {chunk_size!r}")


def is_record_collection(value: Any) -> bool:
    """True for list-like collections (not strings, bytes or mappings)."""
    return (isinstance(value, Sequence)
            and not isinstance(value, (str, bytes, bytearray))
            and not isinstance(value, Mapping))


def iter_chunks(items: Iterable, chunk_size: int) -> Iterator[List[Any]]:
    """
    Split any iterable into contiguous lists of at most ``chunk_size`` items.
    
    Args:
        items: Sequence or iterator
        chunk_size: Maximum items per chunk
        
    Yields:
        Non-empty lists, in input order
    """
    _require_chunk_size(chunk_size)
    
    if is_record_collection(items):
        for start in range(0, len(items), chunk_size):
            yield list(items[start:start + chunk_size])
        return
    
    chunk: List[Any] = []
    for item in items:
        chunk.append(item)
        if len(chunk) >= chunk_size:
            yield chunk
            chunk = []
    if chunk:
        yield chunk


def as_chunk_stream(source: Any, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[List[Any]]:
    """
    Normalize loader output into a stream of record chunks.
    
    A list of records is sliced into chunks; any other iterable is taken
    to already be a stream of chunks and is passed through lazily.
    
    Args:
        source: ``RowRecord[]`` or iterable of ``RowRecord[]``
        chunk_size: Chunk size for list input
        
    Raises:
        DataShapeError: If the source (or one of its chunks) is not a collection
    """
    if is_record_collection(source):
        return iter_chunks(source, chunk_size)
    
    if isinstance(source, (str, bytes, bytearray, Mapping)) or not isinstance(source, Iterable):
        raise DataShapeError(
            f"Expected a list of records or a stream of record chunks, got {type(source).__name__}"
        )
    
    def _validated() -> Iterator[List[Any]]:
        for index, chunk in enumerate(source):
            if not is_record_collection(chunk):
                raise DataShapeError(
                    f"Chunk {index} is not a list of records (got {type(chunk).__name__})"
                )
            if chunk:
                yield list(chunk)
    
    return _validated()


def process_in_chunks(collection: Sequence,
                      chunk_size: int,
                      per_chunk_fn: Callable[[List[Any], int], Optional[Iterable]],
                      on_progress: Optional[Callable[[int, int], None]] = None,
                      context: Optional[ProcessingContext] = None) -> List[Any]:
    """
    Process a collection slice by slice and flatten the partial results.
    
    Args:
        collection: List-like input
        chunk_size: Maximum items per slice (>= 1)
        per_chunk_fn: ``fn(chunk, chunk_index)`` returning an iterable of results (or None)
        on_progress: ``fn(items_processed, total)`` after every slice
        context: Supplies the suspension point between slices
        
    Returns:
        Concatenation of every slice's results, in order
        
    Raises:
        DataShapeError: If ``collection`` is not list-like
        ValueError: If ``chunk_size`` < 1
    """
    if not is_record_collection(collection):
        raise DataShapeError(
            f"Input must be a list-like collection, got {type(collection).__name__}"
        )
    _require_chunk_size(chunk_size)
    
    results: List[Any] = []
    total = len(collection)
    total_chunks = (total + chunk_size - 1) // chunk_size
    
    for index in range(total_chunks):
        start = index * chunk_size
        end = min(start + chunk_size, total)
        partial = per_chunk_fn(collection[start:end], index)
        if partial is not None:
            results.extend(partial)
        
        if on_progress:
            on_progress(end, total)
        
        if index < total_chunks - 1:
            if context is not None:
                context.checkpoint()
            else:
                time.sleep(0)
    
    logger.debug("chunked_processor.complete",
                 items=total,
                 chunks=total_chunks,
                 chunk_size=chunk_size)
    
    return results


def estimate_record_size(record: Any) -> int:
    """
    Rough serialized size of a record in bytes (JSON length).
    
    Falls back to a fixed guess when the record cannot be serialized.
    """
    try:
        return len(json.dumps(record, default=str))
    except (TypeError, ValueError, OverflowError, RecursionError):
        return FALLBACK_RECORD_SIZE


def adaptive_chunk_size(sample_record: Any,
                        target_bytes: int = TARGET_CHUNK_BYTES,
                        min_size: int = MIN_CHUNK_SIZE,
                        max_size: int = MAX_CHUNK_SIZE) -> int:
    """
    Pick a chunk size so a chunk serializes to roughly ``target_bytes``.
    
    Args:
        sample_record: Representative record (usually the first)
        target_bytes: Desired serialized bytes per chunk
        min_size: Lower bound
        max_size: Upper bound
        
    Returns:
        Chunk size clamped to ``[min_size, max_size]``
    """
    record_size = max(1, estimate_record_size(sample_record))
    return max(min_size, min(max_size, target_bytes // record_size))
