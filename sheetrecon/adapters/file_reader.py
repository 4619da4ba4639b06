"""
Spreadsheet reader.
Single responsibility: turn a workbook sheet or CSV file into chunks of row records.
"""

from datetime import date, datetime, time
from pathlib import Path
from typing import Any, Callable, Iterator, List, Optional

import pandas as pd

from ..core.errors import DataShapeError
from ..core.models import RowRecord
from ..pipeline.chunked_processor import DEFAULT_CHUNK_SIZE, iter_chunks
from ..utils.converters import is_null
from ..utils.logger import get_logger


logger = get_logger()


EXCEL_SUFFIXES = {".xlsx", ".xlsm", ".xls"}
CSV_SUFFIXES = {".csv", ".txt"}

# Tried in order of likelihood
CSV_ENCODINGS = ["utf-8", "utf-8-sig", "latin-1", "cp1252"]


def to_record_value(val: Any) -> Any:
    """
    Convert a pandas cell to a row-record scalar.
    
    Nulls become None, timestamps become ISO strings (date only at
    midnight) and numpy scalars become plain Python numbers.
    """
    if is_null(val):
        return None
    if isinstance(val, datetime):
        if val.time() == time(0, 0) and val.tzinfo is None:
            return val.date().isoformat()
        return val.isoformat()
    if isinstance(val, (date, time)):
        return val.isoformat()
    if hasattr(val, "item") and not isinstance(val, (str, bytes)):
        return val.item()
    return val


class SpreadsheetReader:
    """
    Default row loader for the reconciliation engine.
    
    Reads ``.xlsx/.xls`` through pandas (openpyxl engine for modern
    workbooks) and CSV files with encoding fallbacks.
    """
    
    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE):
        """
        Initialize reader.
        
        Args:
            chunk_size: Records per yielded chunk
        """
        self.chunk_size = chunk_size
    
    def _resolve(self, file_path) -> Path:
        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {path}")
        suffix = path.suffix.lower()
        if suffix not in EXCEL_SUFFIXES and suffix not in CSV_SUFFIXES:
            raise ValueError(f"Unsupported file type: {suffix}")
        return path
    
    def list_sheets(self, file_path) -> List[str]:
        """
        List sheet names in a workbook (a CSV has one sheet named after the file).
        
        Args:
            file_path: Path to file
            
        Returns:
            Sheet names in workbook order
        """
        path = self._resolve(file_path)
        if path.suffix.lower() in CSV_SUFFIXES:
            return [path.stem]
        
        with pd.ExcelFile(path) as workbook:
            return [str(name) for name in workbook.sheet_names]
    
    def _check_sheet(self, path: Path, sheet_name: Optional[str]) -> Any:
        """Return the pandas sheet selector, raising if the sheet is missing."""
        if sheet_name is None:
            return 0
        sheets = self.list_sheets(path)
        if sheet_name not in sheets:
            raise DataShapeError(
                f"Sheet '{sheet_name}' not found in {path.name}",
                details={"available": sheets}
            )
        return sheet_name
    
    def _read_csv(self, path: Path, **kwargs) -> pd.DataFrame:
        for encoding in CSV_ENCODINGS:
            try:
                return pd.read_csv(path, encoding=encoding, dtype=str,
                                   on_bad_lines="skip", **kwargs)
            except (UnicodeDecodeError, UnicodeError):
                continue
        
        logger.warning("file_reader.csv.encoding_fallback", file=str(path))
        return pd.read_csv(path, encoding="utf-8", encoding_errors="replace",
                           dtype=str, on_bad_lines="skip", **kwargs)
    
    def read_frame(self, file_path, sheet_name: Optional[str] = None,
                   nrows: Optional[int] = None) -> pd.DataFrame:
        """
        Read a sheet into a DataFrame with string column names.
        
        Args:
            file_path: Path to file
            sheet_name: Sheet to read (first sheet when None; ignored for CSV)
            nrows: Limit on data rows
            
        Returns:
            DataFrame
        """
        path = self._resolve(file_path)
        
        if path.suffix.lower() in CSV_SUFFIXES:
            df = self._read_csv(path, nrows=nrows)
        else:
            sheet = self._check_sheet(path, sheet_name)
            # Cells come back as written; to_record_value converts numbers and dates
            df = pd.read_excel(path, sheet_name=sheet, nrows=nrows, dtype=object)
        
        df.columns = [str(column) for column in df.columns]
        return df
    
    def load_headers(self, file_path, sheet_name: Optional[str] = None) -> List[str]:
        """
        Read only the header row of a sheet.
        
        Raises:
            DataShapeError: If the sheet is missing or has no columns
        """
        headers = list(self.read_frame(file_path, sheet_name, nrows=0).columns)
        if not headers:
            raise DataShapeError(f"Sheet '{sheet_name or 0}' in {Path(file_path).name} has no columns")
        
        logger.debug("file_reader.headers.loaded",
                     file=str(file_path), sheet=sheet_name, columns=len(headers))
        return headers
    
    def load_rows(self, file_path, sheet_name: Optional[str] = None,
                  on_progress: Optional[Callable[[int, int], None]] = None
                  ) -> Iterator[List[RowRecord]]:
        """
        Load a sheet as a stream of row-record chunks.
        
        The sheet is read immediately; conversion to records happens
        lazily, one chunk at a time.
        
        Args:
            file_path: Path to file
            sheet_name: Sheet to read
            on_progress: ``fn(rows_converted, total_rows)`` after each chunk
            
        Returns:
            Iterator of record lists
            
        Raises:
            DataShapeError: If the sheet is missing or has no data rows
        """
        logger.info("file_reader.sheet.reading", file=str(file_path), sheet=sheet_name)
        
        df = self.read_frame(file_path, sheet_name)
        if df.empty:
            raise DataShapeError(
                f"Sheet '{sheet_name or 0}' in {Path(file_path).name} contains no data rows"
            )
        
        logger.info("file_reader.sheet.loaded",
                    rows=len(df),
                    columns=len(df.columns))
        
        return self._records(df, on_progress)
    
    def _records(self, df: pd.DataFrame,
                 on_progress: Optional[Callable[[int, int], None]]) -> Iterator[List[RowRecord]]:
        columns = list(df.columns)
        total = len(df)
        processed = 0
        
        for chunk in iter_chunks(df.itertuples(index=False, name=None), self.chunk_size):
            records = [
                {column: to_record_value(value) for column, value in zip(columns, row)}
                for row in chunk
            ]
            processed += len(records)
            if on_progress:
                on_progress(processed, total)
            yield records
