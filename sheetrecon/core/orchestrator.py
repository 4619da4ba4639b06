"""
Reconciliation orchestrator.
Single responsibility: sequence validation, deduplication and matching into one run.

A run walks these stages strictly in order, reporting one monotonic 0-100
progress stream::

    Init -> ValidateMappings -> StreamFile1 -> StreamFile2
         -> DedupeFile1 -> DedupeFile2 -> MatchUniques -> Summarize -> Done

Any error moves the run to ``Failed``; no partial result is returned.
"""

import itertools
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, Iterator, List, Optional, Sequence, Tuple

from ..pipeline.chunked_processor import ProcessingContext, as_chunk_stream, is_record_collection
from ..pipeline.progress import ProgressCallback, ProgressTracker
from ..pipeline.validators import MappingValidator, coerce_mappings
from ..utils.logger import get_logger
from ..utils.metrics import MetricsCollector
from .duplicate_detector import DuplicateDetector
from .errors import DataShapeError, OperationFailure
from .key_builder import KeyPolicy, data_columns
from .matcher import CrossDatasetMatcher
from .models import ColumnMapping, ReconciliationResult, ReconciliationSummary, RowRecord


logger = get_logger()


class ReconciliationStage(str, Enum):
    """Orchestrator states."""
    
    INIT = "Init"
    VALIDATE_MAPPINGS = "ValidateMappings"
    STREAM_FILE1 = "StreamFile1"
    STREAM_FILE2 = "StreamFile2"
    DEDUPE_FILE1 = "DedupeFile1"
    DEDUPE_FILE2 = "DedupeFile2"
    MATCH_UNIQUES = "MatchUniques"
    SUMMARIZE = "Summarize"
    DONE = "Done"
    FAILED = "Failed"


# Overall progress window and label of each working stage
STAGE_PLAN = {
    ReconciliationStage.INIT: (0, 1, "Initializing"),
    ReconciliationStage.VALIDATE_MAPPINGS: (1, 5, "Validating column mappings"),
    ReconciliationStage.STREAM_FILE1: (5, 20, "Reading File 1"),
    ReconciliationStage.STREAM_FILE2: (20, 35, "Reading File 2"),
    ReconciliationStage.DEDUPE_FILE1: (35, 50, "Finding duplicates in File 1"),
    ReconciliationStage.DEDUPE_FILE2: (50, 65, "Finding duplicates in File 2"),
    ReconciliationStage.MATCH_UNIQUES: (65, 95, "Matching records"),
    ReconciliationStage.SUMMARIZE: (95, 100, "Summarizing"),
}


@dataclass
class ReconciliationOutcome:
    """Either a result or a structured failure; never both."""
    
    success: bool
    result: Optional[ReconciliationResult] = None
    failure: Optional[OperationFailure] = None
    stage: ReconciliationStage = ReconciliationStage.DONE


def _peek_headers(stream: Iterator[List[RowRecord]], label: str) -> Tuple[List[str], Iterator[List[RowRecord]]]:
    """Derive headers from the first chunk and hand back an equivalent stream."""
    first = next(stream, None)
    if first is None:
        raise DataShapeError(f"{label} contains no rows")
    
    headers: List[str] = []
    seen = set()
    for record in first:
        if not isinstance(record, Mapping):
            continue
        for column in data_columns(record):
            if column not in seen:
                seen.add(column)
                headers.append(column)
    
    return headers, itertools.chain([first], stream)


class ReconciliationEngine:
    """
    Run a two-dataset reconciliation.
    
    One engine handles one run at a time; concurrent runs need their own
    engines. Every lookup map lives only for the duration of a run.
    """
    
    def __init__(self, loader: Any = None,
                 context: Optional[ProcessingContext] = None,
                 duplicate_policy: Optional[KeyPolicy] = None,
                 collect_metrics: bool = True):
        """
        Initialize engine.
        
        Args:
            loader: Row/header collaborator with ``load_headers(file, sheet)``
                and ``load_rows(file, sheet, on_progress)``; required for
                ``process_files``
            context: Caller-owned processing context; a fresh one is used
                per run when omitted
            duplicate_policy: Normalization for duplicate keys (exact by default)
            collect_metrics: Attach per-stage timing/memory to results
        """
        self.loader = loader
        self.context = context
        self.duplicate_policy = duplicate_policy or KeyPolicy.exact()
        self.collect_metrics = collect_metrics
        self.validator = MappingValidator()
        self.stage = ReconciliationStage.INIT
        self.stage_history: List[ReconciliationStage] = []
        
        self._tracker: Optional[ProgressTracker] = None
        self._metrics: Optional[MetricsCollector] = None
    
    # ------------------------------------------------------------------
    # Stage bookkeeping
    # ------------------------------------------------------------------
    
    def _enter(self, stage: ReconciliationStage):
        previous = self.stage
        if self._metrics and previous.value in self._metrics.current_operations:
            self._metrics.end_operation(previous.value)
        
        self.stage = stage
        self.stage_history.append(stage)
        logger.debug("orchestrator.stage", stage=stage.value)
        
        if stage in STAGE_PLAN:
            start, _end, label = STAGE_PLAN[stage]
            self._tracker.report(label, start)
            if self._metrics:
                self._metrics.start_operation(stage.value)
    
    def _counter(self, stage: ReconciliationStage) -> Callable[[int, Optional[int]], None]:
        start, end, label = STAGE_PLAN[stage]
        return self._tracker.counter(label, start, end)
    
    def _end_stage_rows(self, stage: ReconciliationStage, rows: int):
        if self._metrics and stage.value in self._metrics.current_operations:
            self._metrics.end_operation(stage.value, rows_processed=rows)
    
    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------
    
    def _materialize(self, source: Iterable, label: str, context: ProcessingContext,
                     on_progress: Callable[[int, Optional[int]], None],
                     total_hint: Optional[int]) -> Tuple[List[List[RowRecord]], int]:
        chunks: List[List[RowRecord]] = []
        count = 0
        for index, chunk in enumerate(as_chunk_stream(source, context.chunk_size)):
            if index > 0:
                context.checkpoint()
            chunks.append(chunk)
            count += len(chunk)
            if total_hint is not None:
                on_progress(count, total_hint)
        
        if count == 0:
            raise DataShapeError(f"{label} contains no rows")
        on_progress(count, count)
        return chunks, count
    
    def _execute(self, mappings: Any,
                 load_headers: Callable[[], Tuple[Optional[Sequence[str]], Optional[Sequence[str]]]],
                 open_rows1: Callable[[Callable[[int, Optional[int]], None]], Any],
                 open_rows2: Callable[[Callable[[int, Optional[int]], None]], Any],
                 context: ProcessingContext,
                 file1_sheet_name: Optional[str],
                 file2_sheet_name: Optional[str],
                 on_progress: Optional[ProgressCallback],
                 total_hints: Tuple[Optional[int], Optional[int]] = (None, None)) -> ReconciliationResult:
        self.stage = ReconciliationStage.INIT
        self.stage_history = []
        self._tracker = ProgressTracker(on_progress)
        self._metrics = MetricsCollector() if self.collect_metrics else None
        
        try:
            self._enter(ReconciliationStage.INIT)
            column_mappings: List[ColumnMapping] = coerce_mappings(mappings)
            logger.info("orchestrator.start",
                        mappings=len(column_mappings),
                        chunk_size=context.chunk_size,
                        file1_sheet=file1_sheet_name,
                        file2_sheet=file2_sheet_name)
            
            self._enter(ReconciliationStage.VALIDATE_MAPPINGS)
            if not column_mappings:
                self.validator.validate_or_raise(column_mappings)
            headers1, headers2 = load_headers()
            self.validator.validate_or_raise(column_mappings, headers1, headers2)
            
            self._enter(ReconciliationStage.STREAM_FILE1)
            progress1 = self._counter(ReconciliationStage.STREAM_FILE1)
            chunks1, total1 = self._materialize(open_rows1(progress1), "File 1", context,
                                                progress1, total_hints[0])
            if self._metrics:
                self._metrics.record_dataset("file1", total1)
            self._end_stage_rows(ReconciliationStage.STREAM_FILE1, total1)
            
            self._enter(ReconciliationStage.STREAM_FILE2)
            progress2 = self._counter(ReconciliationStage.STREAM_FILE2)
            chunks2, total2 = self._materialize(open_rows2(progress2), "File 2", context,
                                                progress2, total_hints[1])
            if self._metrics:
                self._metrics.record_dataset("file2", total2)
            self._end_stage_rows(ReconciliationStage.STREAM_FILE2, total2)
            
            detector = DuplicateDetector(policy=self.duplicate_policy, context=context)
            
            self._enter(ReconciliationStage.DEDUPE_FILE1)
            stream1 = detector.find_duplicates_stream(
                chunks1, on_progress=self._counter(ReconciliationStage.DEDUPE_FILE1),
                total_hint=total1)
            unique1 = list(stream1)
            chunks1 = None
            self._end_stage_rows(ReconciliationStage.DEDUPE_FILE1, total1)
            
            self._enter(ReconciliationStage.DEDUPE_FILE2)
            stream2 = detector.find_duplicates_stream(
                chunks2, on_progress=self._counter(ReconciliationStage.DEDUPE_FILE2),
                total_hint=total2)
            unique2 = list(stream2)
            chunks2 = None
            self._end_stage_rows(ReconciliationStage.DEDUPE_FILE2, total2)
            
            self._enter(ReconciliationStage.MATCH_UNIQUES)
            matcher = CrossDatasetMatcher(context=context)
            match = matcher.compare_streams(
                iter(unique1), iter(unique2), column_mappings,
                on_progress=self._counter(ReconciliationStage.MATCH_UNIQUES),
                total_hint=stream1.unique_count)
            self._end_stage_rows(ReconciliationStage.MATCH_UNIQUES,
                                 stream1.unique_count + stream2.unique_count)
            
            self._enter(ReconciliationStage.SUMMARIZE)
            summary = ReconciliationSummary(
                total_in_file1=total1,
                total_in_file2=total2,
                matched=len(match.matched),
                in_file1_only=len(match.in_file1_only),
                in_file2_only=len(match.in_file2_only),
                duplicates_in_file1=len(stream1.duplicates),
                duplicates_in_file2=len(stream2.duplicates),
                duplicate_groups_in_file1=len(stream1.duplicate_groups),
                duplicate_groups_in_file2=len(stream2.duplicate_groups),
                skipped_in_file1=stream1.skipped_count,
                skipped_in_file2=stream2.skipped_count,
            )
            result = ReconciliationResult(
                matched=match.matched,
                in_file1_only=match.in_file1_only,
                in_file2_only=match.in_file2_only,
                duplicates_in_file1=stream1.duplicates,
                duplicates_in_file2=stream2.duplicates,
                duplicate_groups_in_file1=stream1.duplicate_groups,
                duplicate_groups_in_file2=stream2.duplicate_groups,
                column_mappings=column_mappings,
                summary=summary,
                file1_sheet_name=file1_sheet_name,
                file2_sheet_name=file2_sheet_name,
            )
            self._end_stage_rows(ReconciliationStage.SUMMARIZE, 0)
            
            if self._metrics:
                result.metrics = self._metrics.generate_report()
            
            self.stage = ReconciliationStage.DONE
            self.stage_history.append(ReconciliationStage.DONE)
            self._tracker.complete()
            
            logger.info("orchestrator.complete", **summary.to_dict())
            return result
        
        except Exception as e:
            failed_stage = self.stage
            self.stage = ReconciliationStage.FAILED
            self.stage_history.append(ReconciliationStage.FAILED)
            if self._metrics:
                self._metrics.fail_open_operations(str(e))
            logger.error("orchestrator.failed",
                         stage=failed_stage.value,
                         error_type=type(e).__name__,
                         error=str(e))
            raise
    
    def _run_context(self) -> ProcessingContext:
        return self.context if self.context is not None else ProcessingContext()
    
    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------
    
    def reconcile(self, rows1: Any, rows2: Any,
                  mappings: Sequence[Any],
                  headers1: Optional[Sequence[str]] = None,
                  headers2: Optional[Sequence[str]] = None,
                  file1_sheet_name: Optional[str] = None,
                  file2_sheet_name: Optional[str] = None,
                  on_progress: Optional[ProgressCallback] = None) -> ReconciliationResult:
        """
        Reconcile two in-memory datasets.
        
        Each dataset is a list of records or an iterable of record chunks.
        Without explicit headers, the columns of each dataset's first chunk
        are used to validate the mappings.
        
        Args:
            rows1: File 1 records
            rows2: File 2 records
            mappings: ``ColumnMapping`` objects or mapping dicts
            headers1: File 1 column names
            headers2: File 2 column names
            file1_sheet_name: Label carried into the result
            file2_sheet_name: Label carried into the result
            on_progress: ``fn(stage_label, percent)``
            
        Returns:
            Reconciliation result
            
        Raises:
            ValidationError: Invalid or unknown column mappings
            DataShapeError: Empty dataset or non-collection input
        """
        context = self._run_context()
        streams = {}
        
        def load_headers():
            stream1 = as_chunk_stream(rows1, context.chunk_size)
            stream2 = as_chunk_stream(rows2, context.chunk_size)
            h1, h2 = headers1, headers2
            if h1 is None:
                h1, stream1 = _peek_headers(stream1, "File 1")
            if h2 is None:
                h2, stream2 = _peek_headers(stream2, "File 2")
            streams[1], streams[2] = stream1, stream2
            return h1, h2
        
        hints = (len(rows1) if is_record_collection(rows1) else None,
                 len(rows2) if is_record_collection(rows2) else None)
        
        return self._execute(mappings, load_headers,
                             lambda progress: streams[1],
                             lambda progress: streams[2],
                             context, file1_sheet_name, file2_sheet_name,
                             on_progress, total_hints=hints)
    
    def process_files(self, file1: Any, file2: Any,
                      mappings: Sequence[Any],
                      sheet1: Optional[str] = None,
                      sheet2: Optional[str] = None,
                      on_progress: Optional[ProgressCallback] = None) -> ReconciliationResult:
        """
        Reconcile two files through the loader collaborator.
        
        Headers are loaded and validated before any rows are read.
        
        Raises:
            ValueError: If the engine has no loader
            ValidationError: Invalid or unknown column mappings
            DataShapeError: Missing or empty sheet
        """
        if self.loader is None:
            raise ValueError("process_files requires a loader")
        
        context = self._run_context()
        
        def load_headers():
            return (self.loader.load_headers(file1, sheet1),
                    self.loader.load_headers(file2, sheet2))
        
        return self._execute(mappings, load_headers,
                             lambda progress: self.loader.load_rows(file1, sheet1, progress),
                             lambda progress: self.loader.load_rows(file2, sheet2, progress),
                             context, sheet1, sheet2, on_progress)
    
    def _guard(self, operation: Callable[..., ReconciliationResult], *args, **kwargs) -> ReconciliationOutcome:
        try:
            result = operation(*args, **kwargs)
        except Exception as e:
            failure = OperationFailure.from_exception(e)
            return ReconciliationOutcome(success=False, failure=failure,
                                         stage=ReconciliationStage.FAILED)
        return ReconciliationOutcome(success=True, result=result)
    
    def run(self, file1: Any, file2: Any, mappings: Sequence[Any],
            sheet1: Optional[str] = None, sheet2: Optional[str] = None,
            on_progress: Optional[ProgressCallback] = None) -> ReconciliationOutcome:
        """``process_files`` that returns a structured outcome instead of raising."""
        return self._guard(self.process_files, file1, file2, mappings,
                           sheet1=sheet1, sheet2=sheet2, on_progress=on_progress)
    
    def run_records(self, rows1: Any, rows2: Any, mappings: Sequence[Any],
                    **kwargs) -> ReconciliationOutcome:
        """``reconcile`` that returns a structured outcome instead of raising."""
        return self._guard(self.reconcile, rows1, rows2, mappings, **kwargs)
