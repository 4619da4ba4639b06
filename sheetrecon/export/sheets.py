"""
Workbook sheet content.
Single responsibility: names, summary rows and flattened data rows for exported sheets.
"""

from collections.abc import Mapping
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from ..core.errors import TransientItemError
from ..core.key_builder import is_internal_column
from ..core.models import DuplicateGroup, MatchedPair, ReconciliationResult, ResultCategory
from ..utils.converters import to_cell_value


SUMMARY_SHEET = "Summary"

SHEET_NAMES = {
    ResultCategory.MATCHED: "Matched",
    ResultCategory.IN_FILE1_ONLY: "In File 1 Only",
    ResultCategory.IN_FILE2_ONLY: "In File 2 Only",
    ResultCategory.DUPLICATES_IN_FILE1: "Duplicates in File 1",
    ResultCategory.DUPLICATES_IN_FILE2: "Duplicates in File 2",
}

DUPLICATE_GROUP_SHEETS = {
    ResultCategory.DUPLICATES_IN_FILE1: "Duplicate Groups File 1",
    ResultCategory.DUPLICATES_IN_FILE2: "Duplicate Groups File 2",
}

# Used in file names
CATEGORY_FILE_NAMES = {
    ResultCategory.MATCHED: "Matched_Transactions",
    ResultCategory.IN_FILE1_ONLY: "File1_Only_Transactions",
    ResultCategory.IN_FILE2_ONLY: "File2_Only_Transactions",
    ResultCategory.DUPLICATES_IN_FILE1: "File1_Duplicates",
    ResultCategory.DUPLICATES_IN_FILE2: "File2_Duplicates",
    ResultCategory.FULL: "Full_Report",
}

CATEGORY_TITLES = {
    ResultCategory.MATCHED: "Matched Transactions",
    ResultCategory.IN_FILE1_ONLY: "File 1 Only Transactions",
    ResultCategory.IN_FILE2_ONLY: "File 2 Only Transactions",
    ResultCategory.DUPLICATES_IN_FILE1: "File 1 Duplicates",
    ResultCategory.DUPLICATES_IN_FILE2: "File 2 Duplicates",
    ResultCategory.FULL: "Full Report",
}

NO_DATA_MESSAGE = "No data available for this category"
PLACEHOLDER_HEADER = "Message"
GROUP_COLUMN = "Duplicate Group"
MATCHED_PREFIX = "File2_"

FILE_EXTENSION = ".xlsx"
MAX_SHEET_NAME_LENGTH = 31
INVALID_SHEET_CHARS = "[]:*?/\\"


def format_timestamp(now: Optional[datetime] = None) -> str:
    """Timestamp used in file names: ``YYYY-MM-DD_HH-MM``."""
    return (now or datetime.now()).strftime("%Y-%m-%d_%H-%M")


def export_file_name(base_name: str, category: ResultCategory,
                     now: Optional[datetime] = None) -> str:
    """``<base>_<CategoryName>_<timestamp>.xlsx``"""
    category = ResultCategory(category)
    return f"{base_name}_{CATEGORY_FILE_NAMES[category]}_{format_timestamp(now)}{FILE_EXTENSION}"


def sanitize_sheet_name(name: str) -> str:
    """Strip characters worksheets reject and cut to the 31-character limit."""
    cleaned = "".join("_" if ch in INVALID_SHEET_CHARS else ch for ch in str(name)).strip("'")
    return (cleaned or "Sheet")[:MAX_SHEET_NAME_LENGTH]


def _data_fields(record: Mapping) -> Dict[str, Any]:
    return {key: value for key, value in record.items() if not is_internal_column(key)}


def flatten_matched(pair: MatchedPair) -> Dict[str, Any]:
    """
    Merge a matched pair into one row.
    
    File 2 fields are added as ``File2_<column>``; when that exact name is
    already present the File 2 value is dropped.
    """
    row = _data_fields(pair.file1_record)
    for key, value in _data_fields(pair.file2_record).items():
        prefixed = f"{MATCHED_PREFIX}{key}"
        if prefixed not in row:
            row[prefixed] = value
    return row


def flatten_row(item: Any) -> Dict[str, Any]:
    """
    Turn a result item into a flat column -> value row.
    
    Raises:
        TransientItemError: If the item is neither a record nor a matched pair
    """
    if isinstance(item, MatchedPair):
        if not isinstance(item.file1_record, Mapping) or not isinstance(item.file2_record, Mapping):
            raise TransientItemError("Matched pair holds a non-record value")
        return flatten_matched(item)
    if isinstance(item, Mapping):
        return _data_fields(item)
    raise TransientItemError(f"Cannot export item of type {type(item).__name__}")


def group_rows(groups: Iterable[DuplicateGroup]) -> List[Dict[str, Any]]:
    """Flatten duplicate groups into rows led by a 1-based group number."""
    rows = []
    for number, group in enumerate(groups, start=1):
        for item in group.items:
            row = {GROUP_COLUMN: number}
            if isinstance(item, Mapping):
                for key, value in _data_fields(item).items():
                    row.setdefault(key, value)
            rows.append(row)
    return rows


def collect_headers(rows: Iterable[Mapping]) -> List[str]:
    """Ordered union of row keys."""
    headers: List[str] = []
    seen = set()
    for row in rows:
        for key in row:
            if key not in seen:
                seen.add(key)
                headers.append(key)
    return headers


def row_cells(row: Mapping, headers: List[str]) -> List[Any]:
    """
    Coerce a flat row into writable cells in header order.
    
    Raises:
        TransientItemError: If a value cannot be written to a cell
    """
    try:
        return [to_cell_value(row.get(header)) for header in headers]
    except (TypeError, ValueError) as e:
        raise TransientItemError(f"Cannot write row: {e}") from e


def _percent(part: int, whole: int) -> str:
    if whole <= 0:
        return "0.00%"
    return f"{100 * part / whole:.2f}%"


def _mapping_rows(result: ReconciliationResult) -> List[List[Any]]:
    rows: List[List[Any]] = [[""], ["Column Mappings"],
                             ["File 1 Column", "File 2 Column", "Exact Match"]]
    if not result.column_mappings:
        rows.append(["No column mappings available"])
    for mapping in result.column_mappings:
        rows.append([mapping.file1_column, mapping.file2_column,
                     "Yes" if mapping.is_exact_match else "No"])
    return rows


def summary_rows(result: ReconciliationResult, now: Optional[datetime] = None) -> List[List[Any]]:
    """Rows of the Summary sheet for a full report."""
    summary = result.summary
    rows: List[List[Any]] = [
        ["Reconciliation Summary"],
        [""],
        ["Generated on", format_timestamp(now)],
        [""],
        ["File 1 Sheet", result.file1_sheet_name or "Unknown"],
        ["File 2 Sheet", result.file2_sheet_name or "Unknown"],
        [""],
        ["Total transactions in File 1", summary.total_in_file1],
        ["Total transactions in File 2", summary.total_in_file2],
        ["Matched transactions", summary.matched],
        ["Transactions in File 1 only", summary.in_file1_only],
        ["Transactions in File 2 only", summary.in_file2_only],
        ["Duplicates in File 1", summary.duplicates_in_file1],
        ["Duplicates in File 2", summary.duplicates_in_file2],
        ["Duplicate groups in File 1", summary.duplicate_groups_in_file1],
        ["Duplicate groups in File 2", summary.duplicate_groups_in_file2],
        ["Match rate", f"{summary.match_rate:.2f}%"],
    ]
    if summary.skipped_in_file1 or summary.skipped_in_file2:
        rows.append(["Rows without a key in File 1", summary.skipped_in_file1])
        rows.append(["Rows without a key in File 2", summary.skipped_in_file2])
    rows.extend(_mapping_rows(result))
    return rows


def category_summary_rows(result: ReconciliationResult, category: ResultCategory,
                          now: Optional[datetime] = None) -> List[List[Any]]:
    """Rows of the Summary sheet for a single-category export."""
    category = ResultCategory(category)
    summary = result.summary
    total1, total2 = summary.total_in_file1, summary.total_in_file2
    
    rows: List[List[Any]] = [
        [f"Reconciliation Report - {CATEGORY_TITLES[category]}"],
        [""],
        ["Generated on", format_timestamp(now)],
        [""],
        ["File 1 Sheet", result.file1_sheet_name or "Unknown"],
        ["File 2 Sheet", result.file2_sheet_name or "Unknown"],
        [""],
    ]
    
    if category == ResultCategory.MATCHED:
        rows += [["Matched transactions", summary.matched],
                 ["Percentage of File 1", _percent(summary.matched, total1)],
                 ["Percentage of File 2", _percent(summary.matched, total2)]]
    elif category == ResultCategory.IN_FILE1_ONLY:
        rows += [["Transactions in File 1 only", summary.in_file1_only],
                 ["Percentage of File 1", _percent(summary.in_file1_only, total1)]]
    elif category == ResultCategory.IN_FILE2_ONLY:
        rows += [["Transactions in File 2 only", summary.in_file2_only],
                 ["Percentage of File 2", _percent(summary.in_file2_only, total2)]]
    elif category == ResultCategory.DUPLICATES_IN_FILE1:
        rows += [["Duplicates in File 1", summary.duplicates_in_file1],
                 ["Percentage of File 1", _percent(summary.duplicates_in_file1, total1)],
                 ["Number of duplicate groups", summary.duplicate_groups_in_file1]]
    elif category == ResultCategory.DUPLICATES_IN_FILE2:
        rows += [["Duplicates in File 2", summary.duplicates_in_file2],
                 ["Percentage of File 2", _percent(summary.duplicates_in_file2, total2)],
                 ["Number of duplicate groups", summary.duplicate_groups_in_file2]]
    
    rows.extend(_mapping_rows(result))
    return rows


def truncation_note(shown: int, total: int) -> str:
    return (f"Note: This sheet has been limited to {shown:,} rows "
            f"out of {total:,} total rows.")
