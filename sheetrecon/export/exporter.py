"""
Result exporter.
Single responsibility: serialize reconciliation results into xlsx workbooks within safety ceilings.
"""

from dataclasses import dataclass, field
from datetime import datetime
from io import BytesIO
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import pandas as pd

from ..config.manager import ExportPolicy
from ..core.errors import (
    DataShapeError,
    OperationFailure,
    ResourceLimitError,
    TransientItemError,
)
from ..core.models import ReconciliationResult, ResultCategory
from ..pipeline.chunked_processor import (
    FALLBACK_RECORD_SIZE,
    MIN_CHUNK_SIZE,
    ProcessingContext,
    adaptive_chunk_size,
    estimate_record_size,
    process_in_chunks,
)
from ..pipeline.progress import ProgressCallback, ProgressTracker
from ..utils.logger import get_logger
from .sheets import (
    CATEGORY_FILE_NAMES,
    DUPLICATE_GROUP_SHEETS,
    NO_DATA_MESSAGE,
    PLACEHOLDER_HEADER,
    SHEET_NAMES,
    SUMMARY_SHEET,
    category_summary_rows,
    collect_headers,
    export_file_name,
    flatten_row,
    group_rows,
    row_cells,
    sanitize_sheet_name,
    summary_rows,
    truncation_note,
)


logger = get_logger()


# Serialized workbooks run larger than their JSON estimate
SIZE_OVERHEAD_FACTOR = 1.5

# Overall progress at the end of the summary sheet and of the data sheets
FULL_LAYOUT = (5.0, 92.0)
CATEGORY_LAYOUT = (10.0, 90.0)


@dataclass
class SheetPlan:
    """One data sheet to write."""
    
    name: str
    items: Sequence[Any]


@dataclass
class ExportArtifact:
    """One generated workbook."""
    
    file_name: str
    content: bytes
    sheet_row_counts: Dict[str, int] = field(default_factory=dict)
    truncated_sheets: Dict[str, int] = field(default_factory=dict)
    skipped_items: int = 0
    
    @property
    def size(self) -> int:
        return len(self.content)
    
    def save(self, directory) -> Path:
        """Write the workbook into ``directory`` and return its path."""
        output_dir = Path(directory)
        output_dir.mkdir(parents=True, exist_ok=True)
        path = output_dir / self.file_name
        path.write_bytes(self.content)
        logger.info("exporter.artifact.saved", file=str(path), bytes=self.size)
        return path


@dataclass
class ExportResult:
    """Outcome of an export call: artifacts on success, a failure otherwise."""
    
    success: bool
    artifacts: List[ExportArtifact] = field(default_factory=list)
    failure: Optional[OperationFailure] = None
    
    @property
    def error(self) -> Optional[str]:
        return self.failure.message if self.failure else None


class ResultExporter:
    """
    Write reconciliation results to xlsx workbooks.
    
    A Summary sheet always comes first and every category gets a sheet,
    with a placeholder row when it is empty. Rows beyond the per-sheet
    ceiling are dropped behind a leading note row; output above the byte
    ceiling is refused rather than written.
    """
    
    def __init__(self, policy: Optional[ExportPolicy] = None,
                 context: Optional[ProcessingContext] = None):
        """
        Initialize exporter.
        
        Args:
            policy: Row/byte ceilings and naming
            context: Supplies yield points between written chunks
        """
        self.policy = policy or ExportPolicy()
        self.context = context or ProcessingContext()
    
    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------
    
    def plan_full(self, result: ReconciliationResult) -> List[SheetPlan]:
        """Data sheets of a full report, in workbook order."""
        plans = [SheetPlan(SHEET_NAMES[category], result.get_category(category))
                 for category in SHEET_NAMES]
        
        if self.policy.include_duplicate_groups:
            for category, groups in (
                (ResultCategory.DUPLICATES_IN_FILE1, result.duplicate_groups_in_file1),
                (ResultCategory.DUPLICATES_IN_FILE2, result.duplicate_groups_in_file2),
            ):
                if groups:
                    plans.append(SheetPlan(DUPLICATE_GROUP_SHEETS[category], group_rows(groups)))
        return plans
    
    def plan_category(self, result: ReconciliationResult,
                      category: ResultCategory) -> List[SheetPlan]:
        """Data sheets of a single-category export."""
        category = ResultCategory(category)
        plans = [SheetPlan(SHEET_NAMES[category], result.get_category(category))]
        
        groups = {
            ResultCategory.DUPLICATES_IN_FILE1: result.duplicate_groups_in_file1,
            ResultCategory.DUPLICATES_IN_FILE2: result.duplicate_groups_in_file2,
        }.get(category)
        if groups and self.policy.include_duplicate_groups:
            plans.append(SheetPlan("Duplicate Groups", group_rows(groups)))
        return plans
    
    def estimate_size(self, sheets: Sequence[SheetPlan],
                      row_limit: Optional[int] = None) -> int:
        """
        Estimate serialized output bytes for the rows that would be written.
        
        Returns:
            JSON size of the rows times the workbook overhead factor
        """
        limit = row_limit or self.policy.max_rows_per_sheet
        total = 0
        for sheet in sheets:
            for item in sheet.items[:limit]:
                try:
                    total += estimate_record_size(flatten_row(item))
                except TransientItemError:
                    total += FALLBACK_RECORD_SIZE
        return int(total * SIZE_OVERHEAD_FACTOR)
    
    def _check_estimate(self, sheets: Sequence[SheetPlan], row_limit: Optional[int] = None):
        estimated = self.estimate_size(sheets, row_limit)
        if estimated > self.policy.max_output_bytes:
            logger.error("exporter.size.estimate_exceeded",
                         estimated_bytes=estimated,
                         limit_bytes=self.policy.max_output_bytes)
            raise ResourceLimitError(
                f"Estimated export size ({estimated / (1024 * 1024):.1f} MB) exceeds the "
                f"{self.policy.max_output_bytes / (1024 * 1024):.0f} MB limit. "
                "Try exporting individual categories instead.",
                details={"estimated_bytes": estimated}
            )
    
    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------
    
    def _formats(self, workbook) -> Dict[str, Any]:
        return {
            "title": workbook.add_format({"bold": True, "font_size": 14}),
            "header": workbook.add_format({"bold": True, "bg_color": "#D9E1F2"}),
            "note": workbook.add_format({"italic": True, "font_color": "#9C5700"}),
        }
    
    def _write_summary(self, writer: pd.ExcelWriter, rows: List[List[Any]],
                       formats: Dict[str, Any]):
        pd.DataFrame(rows).to_excel(writer, sheet_name=SUMMARY_SHEET,
                                    header=False, index=False)
        worksheet = writer.sheets[SUMMARY_SHEET]
        worksheet.set_column(0, 0, 34)
        worksheet.set_column(1, 2, 18)
        if rows and rows[0]:
            worksheet.write(0, 0, rows[0][0], formats["title"])
    
    def _record_item_error(self, sheet_name: str, errors: int, error: TransientItemError):
        logger.warning("exporter.item.skipped",
                       sheet=sheet_name,
                       error=error.message,
                       errors=errors)
        if errors > self.policy.max_item_errors:
            raise DataShapeError(
                f"Too many invalid records in sheet '{sheet_name}' "
                f"({errors} > {self.policy.max_item_errors}); the data appears malformed",
                details={"sheet": sheet_name, "errors": errors}
            )
    
    def _write_placeholder(self, writer: pd.ExcelWriter, name: str):
        pd.DataFrame({PLACEHOLDER_HEADER: [NO_DATA_MESSAGE]}).to_excel(
            writer, sheet_name=name, index=False)
        writer.sheets[name].set_column(0, 0, 40)
    
    def _write_sheet(self, writer: pd.ExcelWriter, sheet: SheetPlan, row_limit: int,
                     formats: Dict[str, Any],
                     report: ProgressCallback) -> Tuple[int, int, Optional[int]]:
        """
        Write one data sheet.
        
        A sheet that ends up with no data rows, because it had no items or
        every item was unwritable, gets the "no data" placeholder instead.
        
        Returns:
            ``(data_rows_written, items_skipped, original_total_if_truncated)``
        """
        name = sheet.name
        label = f"Writing {name}"
        total = len(sheet.items)
        shown = min(total, row_limit)
        truncated = total > shown
        
        errors = 0
        rows = []
        for item in sheet.items[:shown]:
            try:
                rows.append(flatten_row(item))
            except TransientItemError as e:
                errors += 1
                self._record_item_error(name, errors, e)
        
        headers = collect_headers(rows)
        cells = []
        for row in rows:
            try:
                cells.append(row_cells(row, headers))
            except TransientItemError as e:
                errors += 1
                self._record_item_error(name, errors, e)
        
        if not cells or not headers:
            self._write_placeholder(writer, name)
            report(label, 100)
            if errors:
                logger.warning("exporter.sheet.no_writable_rows",
                               sheet=name, skipped=errors)
            return 0, errors, None
        
        if truncated:
            logger.warning("exporter.sheet.truncated",
                           sheet=name, total=total, shown=shown)
        
        header_row = 0
        if truncated:
            pd.DataFrame([[truncation_note(shown, total)]]).to_excel(
                writer, sheet_name=name, startrow=0, header=False, index=False)
            header_row = 1
        pd.DataFrame([headers]).to_excel(
            writer, sheet_name=name, startrow=header_row, header=False, index=False)
        
        worksheet = writer.sheets[name]
        worksheet.set_row(header_row, None, formats["header"])
        if truncated:
            worksheet.set_row(0, None, formats["note"])
        
        chunk_size = adaptive_chunk_size(rows[0],
                                         target_bytes=self.policy.target_chunk_bytes,
                                         min_size=MIN_CHUNK_SIZE,
                                         max_size=self.policy.max_chunk_size)
        
        def write_chunk(chunk: List[List[Any]], index: int):
            pd.DataFrame(chunk, columns=headers).to_excel(
                writer, sheet_name=name, startrow=header_row + 1 + index * chunk_size,
                header=False, index=False)
        
        process_in_chunks(cells, chunk_size, write_chunk,
                          on_progress=lambda done, count: report(label, 100 * done / count),
                          context=self.context)
        written = len(cells)
        
        worksheet.freeze_panes(header_row + 1, 0)
        worksheet.autofilter(header_row, 0, header_row + written, len(headers) - 1)
        report(label, 100)
        
        logger.debug("exporter.sheet.written",
                     sheet=name, rows=written, skipped=errors, chunk_size=chunk_size)
        
        return written, errors, total if truncated else None
    
    def build_workbook(self, sheets: Sequence[SheetPlan],
                       summary: Optional[List[List[Any]]] = None,
                       file_name: str = "export.xlsx",
                       row_limit: Optional[int] = None,
                       on_progress: Optional[ProgressCallback] = None,
                       layout: Tuple[float, float] = FULL_LAYOUT) -> ExportArtifact:
        """
        Build one workbook in memory.
        
        Args:
            sheets: Data sheets in order
            summary: Rows of a leading Summary sheet (omitted when None)
            file_name: Name given to the artifact
            row_limit: Per-sheet data-row ceiling (policy value when None)
            on_progress: ``fn(stage, percent)``
            layout: Overall percent at the end of the summary and of the data sheets
            
        Returns:
            Generated artifact
            
        Raises:
            ResourceLimitError: If the serialized workbook exceeds the byte ceiling
            DataShapeError: If a sheet has more invalid records than allowed
        """
        tracker = ProgressTracker(on_progress)
        limit = row_limit or self.policy.max_rows_per_sheet
        summary_end, sheets_end = layout
        
        artifact = ExportArtifact(file_name=file_name, content=b"")
        buffer = BytesIO()
        
        with pd.ExcelWriter(buffer, engine="xlsxwriter",
                            engine_kwargs={"options": {"nan_inf_to_errors": True,
                                                       "strings_to_formulas": False,
                                                       "strings_to_urls": False}}) as writer:
            formats = self._formats(writer.book)
            
            if summary is not None:
                tracker.report("Creating summary", 0)
                self._write_summary(writer, summary, formats)
            tracker.report("Summary complete", summary_end)
            
            names = []
            for sheet in sheets:
                sheet.name = sanitize_sheet_name(sheet.name)
                names.append(sheet.name)
            
            weights = [max(1, min(len(sheet.items), limit)) for sheet in sheets]
            total_weight = sum(weights) or 1
            position = summary_end
            
            for sheet, weight in zip(sheets, weights):
                width = (sheets_end - summary_end) * weight / total_weight
                written, skipped, original_total = self._write_sheet(
                    writer, sheet, limit, formats, tracker.span(position, position + width))
                artifact.sheet_row_counts[sheet.name] = written
                artifact.skipped_items += skipped
                if original_total is not None:
                    artifact.truncated_sheets[sheet.name] = original_total
                position += width
            
            tracker.report("Generating Excel file", sheets_end)
        
        artifact.content = buffer.getvalue()
        
        if artifact.size > self.policy.max_output_bytes:
            logger.error("exporter.size.exceeded",
                         bytes=artifact.size,
                         limit_bytes=self.policy.max_output_bytes)
            raise ResourceLimitError(
                f"Generated file is too large ({artifact.size / (1024 * 1024):.1f} MB). "
                "Try exporting individual categories instead.",
                details={"bytes": artifact.size}
            )
        
        tracker.complete("Export complete")
        return artifact
    
    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------
    
    def build_full(self, result: ReconciliationResult, base_name: Optional[str] = None,
                   on_progress: Optional[ProgressCallback] = None,
                   now: Optional[datetime] = None) -> ExportArtifact:
        """Full report workbook; raises on failure."""
        base_name = base_name or self.policy.base_name
        sheets = self.plan_full(result)
        
        logger.info("exporter.full.start",
                    sheets=len(sheets) + 1,
                    rows=sum(len(s.items) for s in sheets))
        
        self._check_estimate(sheets)
        artifact = self.build_workbook(
            sheets,
            summary=summary_rows(result, now),
            file_name=export_file_name(base_name, ResultCategory.FULL, now),
            on_progress=on_progress,
            layout=FULL_LAYOUT,
        )
        
        logger.info("exporter.full.complete",
                    file=artifact.file_name,
                    bytes=artifact.size,
                    truncated=len(artifact.truncated_sheets),
                    skipped=artifact.skipped_items)
        return artifact
    
    def build_category(self, result: ReconciliationResult, category: ResultCategory,
                       base_name: Optional[str] = None,
                       on_progress: Optional[ProgressCallback] = None,
                       now: Optional[datetime] = None) -> ExportArtifact:
        """Single-category workbook; raises on failure."""
        category = ResultCategory(category)
        if category == ResultCategory.FULL:
            return self.build_full(result, base_name, on_progress, now)
        
        base_name = base_name or self.policy.base_name
        sheets = self.plan_category(result, category)
        
        logger.info("exporter.category.start",
                    category=category.value,
                    rows=sum(len(s.items) for s in sheets))
        
        self._check_estimate(sheets)
        artifact = self.build_workbook(
            sheets,
            summary=category_summary_rows(result, category, now),
            file_name=export_file_name(base_name, category, now),
            on_progress=on_progress,
            layout=CATEGORY_LAYOUT,
        )
        
        logger.info("exporter.category.complete",
                    category=category.value,
                    file=artifact.file_name,
                    bytes=artifact.size)
        return artifact
    
    def _guard(self, operation: Callable[..., ExportArtifact], label: str,
               *args, **kwargs) -> ExportResult:
        try:
            artifact = operation(*args, **kwargs)
        except Exception as e:
            logger.error("exporter.failed",
                         export=label,
                         error_type=type(e).__name__,
                         error=str(e))
            return ExportResult(success=False, failure=OperationFailure.from_exception(e))
        return ExportResult(success=True, artifacts=[artifact])
    
    def export_full(self, result: ReconciliationResult, base_name: Optional[str] = None,
                    on_progress: Optional[ProgressCallback] = None,
                    now: Optional[datetime] = None) -> ExportResult:
        """
        Export every category into one workbook.
        
        Never raises: failures come back as ``ExportResult(success=False)``.
        """
        return self._guard(self.build_full, CATEGORY_FILE_NAMES[ResultCategory.FULL],
                           result, base_name, on_progress, now)
    
    def export_category(self, result: ReconciliationResult, category: ResultCategory,
                        base_name: Optional[str] = None,
                        on_progress: Optional[ProgressCallback] = None,
                        now: Optional[datetime] = None) -> ExportResult:
        """
        Export one category (Summary plus its data sheets).
        
        Never raises: failures come back as ``ExportResult(success=False)``.
        """
        return self._guard(self.build_category, getattr(category, "value", str(category)),
                           result, category, base_name, on_progress, now)
