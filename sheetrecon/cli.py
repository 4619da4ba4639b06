"""
Command-line front end.
Single responsibility: wire configuration, engine, exporter and progress display together.
"""

import argparse
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from . import __version__
from .adapters.file_reader import SpreadsheetReader
from .config.manager import ConfigManager, DatasetSource, ReconciliationConfig
from .core.errors import ReconciliationError, ValidationError
from .core.models import ColumnMapping, ResultCategory
from .core.orchestrator import ReconciliationEngine
from .export.exporter import ResultExporter
from .export.splitter import ExportSplitter
from .pipeline.chunked_processor import ProcessingContext
from .ui.progress import get_progress_monitor
from .utils.logger import configure_logger, get_logger


logger = get_logger()


EXPORT_CHOICES = ["full", "split", "none"] + [
    c.value for c in ResultCategory if c != ResultCategory.FULL
]

SAMPLE_CONFIG = """# Sheet reconciliation configuration
file1:
  path: data/bank_statement.xlsx
  sheet: Sheet1
file2:
  path: data/ledger_export.csv
mappings:
  - {file1_column: Reference, file2_column: Ref, exact_match: true}
  - {file1_column: Amount, file2_column: Value, exact_match: false}
duplicates:
  case_sensitive: true
  trim_whitespace: true
  ignore_empty_values: false
processing:
  chunk_size: 1000
export:
  output_dir: reports
  base_name: reconciliation
  max_rows_per_sheet: 50000
  include_duplicate_groups: true
"""


def parse_mapping(value: str) -> ColumnMapping:
    """
    Parse a ``--map`` option: ``file1col=file2col`` or ``file1col=file2col:exact``.
    
    Raises:
        argparse.ArgumentTypeError: On malformed input
    """
    exact = False
    spec = value
    if spec.lower().endswith(":exact"):
        exact = True
        spec = spec[:-len(":exact")]
    
    left, sep, right = spec.partition("=")
    if not sep or not left.strip() or not right.strip():
        raise argparse.ArgumentTypeError(
            f"invalid mapping '{value}' (expected file1col=file2col[:exact])"
        )
    return ColumnMapping(left.strip(), right.strip(), exact)


def create_sample_config(output_path: Path):
    """Write a sample configuration file."""
    output_path.write_text(SAMPLE_CONFIG, encoding="utf-8")
    print(f"Sample configuration created: {output_path}")


def build_config(args: argparse.Namespace) -> ReconciliationConfig:
    """
    Merge the optional config file with command-line overrides.
    
    Raises:
        ValidationError: If a file or the mappings are missing
    """
    if args.config:
        config = ConfigManager(Path(args.config)).load()
    else:
        config = ReconciliationConfig()
    
    if args.file1:
        config.file1 = DatasetSource(args.file1, args.sheet1)
    elif args.sheet1 and config.file1:
        config.file1 = DatasetSource(config.file1.path, args.sheet1)
    
    if args.file2:
        config.file2 = DatasetSource(args.file2, args.sheet2)
    elif args.sheet2 and config.file2:
        config.file2 = DatasetSource(config.file2.path, args.sheet2)
    
    if args.mappings:
        config.mappings = list(args.mappings)
    
    if args.output_dir:
        config.export = replace(config.export, output_dir=args.output_dir)
    if args.base_name:
        config.export = replace(config.export, base_name=args.base_name)
    
    if config.file1 is None or config.file2 is None:
        raise ValidationError("Both --file1 and --file2 (or a config file) are required")
    if not config.mappings:
        raise ValidationError("At least one --map file1col=file2col is required")
    
    return config


class ReconciliationRunner:
    """
    Run one reconciliation and its export from the command line.
    """
    
    def __init__(self, config: ReconciliationConfig,
                 verbose: bool = False,
                 use_rich: bool = True):
        """
        Initialize runner.
        
        Args:
            config: Resolved configuration
            verbose: Show tracebacks and stage timings
            use_rich: Use Rich for progress bars
        """
        self.config = config
        self.verbose = verbose
        self.progress = get_progress_monitor(use_rich, verbose=verbose)
    
    def run(self, export: str = "full") -> bool:
        """
        Reconcile, print the summary and export.
        
        Returns:
            True if successful, False otherwise
        """
        config = self.config
        
        with ProcessingContext(chunk_size=config.processing.chunk_size) as context:
            engine = ReconciliationEngine(
                loader=SpreadsheetReader(chunk_size=config.processing.chunk_size),
                context=context,
                duplicate_policy=config.duplicates,
            )
            
            with self.progress.track("Reconciling") as on_progress:
                outcome = engine.run(config.file1.path, config.file2.path,
                                     config.mappings,
                                     sheet1=config.file1.sheet,
                                     sheet2=config.file2.sheet,
                                     on_progress=on_progress)
            
            if not outcome.success:
                self.progress.error(f"Reconciliation failed: {outcome.failure.message}",
                                    outcome.failure.details)
                return False
            
            result = outcome.result
            self.progress.show_summary(result.summary)
            if self.verbose and hasattr(self.progress, "show_metrics"):
                self.progress.show_metrics(result.metrics)
            
            if export == "none":
                return True
            
            return self._export(result, export, context)
    
    def _export(self, result, export: str, context: ProcessingContext) -> bool:
        policy = self.config.export
        exporter = ResultExporter(policy, context=context)
        
        with self.progress.track("Exporting") as on_progress:
            if export == "split":
                export_result = ExportSplitter(exporter).export_split(result, on_progress=on_progress)
                if export_result.success and not export_result.artifacts:
                    logger.info("cli.split.not_needed")
                    export_result = exporter.export_full(result, on_progress=on_progress)
            elif export == "full":
                export_result = exporter.export_full(result, on_progress=on_progress)
            else:
                export_result = exporter.export_category(result, ResultCategory(export),
                                                         on_progress=on_progress)
        
        if not export_result.success:
            self.progress.error(f"Export failed: {export_result.error}",
                                export_result.failure.details)
            return False
        
        paths = [artifact.save(policy.output_dir) for artifact in export_result.artifacts]
        self.progress.show_artifacts(paths)
        for artifact in export_result.artifacts:
            for sheet, total in artifact.truncated_sheets.items():
                self.progress.warning(
                    f"Sheet '{sheet}' was limited to {artifact.sheet_row_counts[sheet]:,} "
                    f"of {total:,} rows"
                )
        return True


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sheetrecon",
        description="Reconcile two spreadsheets: duplicates, matches and leftovers"
    )
    
    parser.add_argument(
        "config",
        nargs="?",
        help="YAML configuration file"
    )
    parser.add_argument("--file1", help="First spreadsheet (.xlsx, .xls or .csv)")
    parser.add_argument("--file2", help="Second spreadsheet")
    parser.add_argument("--sheet1", help="Sheet to read from the first file")
    parser.add_argument("--sheet2", help="Sheet to read from the second file")
    parser.add_argument(
        "--map",
        dest="mappings",
        action="append",
        type=parse_mapping,
        metavar="COL1=COL2[:exact]",
        help="Column mapping; repeat for several columns"
    )
    parser.add_argument(
        "--export",
        choices=EXPORT_CHOICES,
        default="full",
        help="What to export (default: full)"
    )
    parser.add_argument("--output-dir", help="Directory for exported workbooks")
    parser.add_argument("--base-name", help="Base name for exported workbooks")
    parser.add_argument(
        "--list-sheets",
        metavar="FILE",
        help="List the sheets of a workbook and exit"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output"
    )
    parser.add_argument("--log-file", help="Append JSON log lines to this file")
    parser.add_argument(
        "--no-rich",
        action="store_true",
        help="Disable Rich progress bars"
    )
    parser.add_argument(
        "--create-sample",
        action="store_true",
        help="Create sample configuration file"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"sheetrecon v{__version__}"
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    
    configure_logger("DEBUG" if args.verbose else "INFO", args.log_file)
    
    if args.create_sample:
        create_sample_config(Path("reconcile_sample.yaml"))
        return 0
    
    if args.list_sheets:
        try:
            for name in SpreadsheetReader().list_sheets(args.list_sheets):
                print(name)
        except (OSError, ValueError) as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
        return 0
    
    try:
        config = build_config(args)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        print("Use --create-sample to create a sample configuration", file=sys.stderr)
        return 1
    except ReconciliationError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    
    runner = ReconciliationRunner(config, verbose=args.verbose, use_rich=not args.no_rich)
    return 0 if runner.run(args.export) else 1
