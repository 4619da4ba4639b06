"""
Export splitting.
Single responsibility: spread an oversized export across several workbooks.
"""

from typing import List, Optional, Sequence

from ..core.errors import OperationFailure
from ..core.models import ReconciliationResult
from ..pipeline.progress import ProgressCallback, ProgressTracker
from ..utils.logger import get_logger
from .exporter import ExportArtifact, ExportResult, ResultExporter, SheetPlan
from .sheets import FILE_EXTENSION, MAX_SHEET_NAME_LENGTH, sanitize_sheet_name


logger = get_logger()


def _part_name(name: str, index: int, parts: int) -> str:
    suffix = f" ({index} of {parts})"
    return sanitize_sheet_name(name)[:MAX_SHEET_NAME_LENGTH - len(suffix)] + suffix


class ExportSplitter:
    """
    Partition data sheets into several workbooks.
    
    Sheets longer than ``split_max_rows_per_sheet`` become numbered parts
    (``Matched (1 of 3)``), and a new ``<base>_partN.xlsx`` is started whenever
    the current one holds ``split_max_sheets_per_workbook`` sheets. Empty
    sheets are left out.
    """
    
    def __init__(self, exporter: Optional[ResultExporter] = None):
        self.exporter = exporter or ResultExporter()
        self.policy = self.exporter.policy
    
    def needs_split(self, sheets: Sequence[SheetPlan]) -> bool:
        """True when the sheets exceed the split row or sheet caps."""
        total_rows = sum(len(sheet.items) for sheet in sheets)
        return (total_rows > self.policy.split_max_rows_per_sheet
                or len(sheets) > self.policy.split_max_sheets_per_workbook)
    
    def partition(self, sheets: Sequence[SheetPlan]) -> List[List[SheetPlan]]:
        """
        Group sheet parts into workbooks.
        
        Returns:
            One list of sheet parts per output workbook
        """
        row_cap = self.policy.split_max_rows_per_sheet
        sheet_cap = self.policy.split_max_sheets_per_workbook
        
        workbooks: List[List[SheetPlan]] = []
        current: List[SheetPlan] = []
        
        for sheet in sheets:
            if not sheet.items:
                continue
            
            if len(sheet.items) > row_cap:
                parts = (len(sheet.items) + row_cap - 1) // row_cap
                pieces = [
                    SheetPlan(_part_name(sheet.name, i + 1, parts),
                              sheet.items[i * row_cap:(i + 1) * row_cap])
                    for i in range(parts)
                ]
            else:
                pieces = [SheetPlan(sheet.name, sheet.items)]
            
            for piece in pieces:
                if len(current) >= sheet_cap:
                    workbooks.append(current)
                    current = []
                current.append(piece)
        
        if current:
            workbooks.append(current)
        return workbooks
    
    def split_sheets(self, sheets: Sequence[SheetPlan], base_name: str,
                     on_progress: Optional[ProgressCallback] = None) -> List[ExportArtifact]:
        """
        Write sheets into split workbooks.
        
        Returns:
            Artifacts named ``<base>_partN.xlsx``; empty when no split is needed
            
        Raises:
            ResourceLimitError: If one part still exceeds the byte ceiling
        """
        if not self.needs_split(sheets):
            logger.debug("splitter.not_needed", sheets=len(sheets))
            return []
        
        tracker = ProgressTracker(on_progress)
        tracker.report("Preparing to split large dataset", 0)
        
        workbooks = self.partition(sheets)
        artifacts = []
        
        for number, parts in enumerate(workbooks, start=1):
            start = 100 * (number - 1) / len(workbooks)
            end = 100 * number / len(workbooks)
            artifact = self.exporter.build_workbook(
                parts,
                summary=None,
                file_name=f"{base_name}_part{number}{FILE_EXTENSION}",
                row_limit=self.policy.split_max_rows_per_sheet,
                on_progress=tracker.span(start, end),
                layout=(0.0, 95.0),
            )
            artifacts.append(artifact)
            logger.info("splitter.part.complete",
                        file=artifact.file_name,
                        sheets=len(parts),
                        bytes=artifact.size)
        
        tracker.complete("Split complete")
        return artifacts
    
    def split(self, result: ReconciliationResult, base_name: Optional[str] = None,
              on_progress: Optional[ProgressCallback] = None) -> List[ExportArtifact]:
        """Split a full report's data sheets; raises on failure."""
        return self.split_sheets(self.exporter.plan_full(result),
                                 base_name or self.policy.base_name,
                                 on_progress)
    
    def export_split(self, result: ReconciliationResult, base_name: Optional[str] = None,
                     on_progress: Optional[ProgressCallback] = None) -> ExportResult:
        """``split`` that never raises; an empty artifact list means no split was needed."""
        try:
            artifacts = self.split(result, base_name, on_progress)
        except Exception as e:
            logger.error("splitter.failed", error_type=type(e).__name__, error=str(e))
            return ExportResult(success=False, failure=OperationFailure.from_exception(e))
        return ExportResult(success=True, artifacts=artifacts)
