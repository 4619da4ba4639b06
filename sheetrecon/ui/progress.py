"""
Progress monitoring and console output.
Single responsibility: render engine progress and run summaries for the CLI.
"""

import sys
import time
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table
from rich.text import Text

from ..core.models import ReconciliationSummary
from ..pipeline.progress import ProgressCallback


def summary_table_rows(summary: ReconciliationSummary) -> List[tuple]:
    """``(label, count, percentage or None)`` rows for a run summary."""
    return [
        ("Total in File 1", summary.total_in_file1, None),
        ("Total in File 2", summary.total_in_file2, None),
        ("Matched", summary.matched, summary.match_rate),
        ("In File 1 only", summary.in_file1_only,
         100 * summary.in_file1_only / summary.total_in_file1 if summary.total_in_file1 else 0),
        ("In File 2 only", summary.in_file2_only,
         100 * summary.in_file2_only / summary.total_in_file2 if summary.total_in_file2 else 0),
        ("Duplicates in File 1", summary.duplicates_in_file1, None),
        ("Duplicates in File 2", summary.duplicates_in_file2, None),
        ("Duplicate groups in File 1", summary.duplicate_groups_in_file1, None),
        ("Duplicate groups in File 2", summary.duplicate_groups_in_file2, None),
    ]


class ProgressMonitor:
    """
    Simple progress monitoring for console output.
    """
    
    def __init__(self, verbose: bool = True):
        """
        Initialize progress monitor.
        
        Args:
            verbose: Whether to show detailed progress
        """
        self.verbose = verbose
        self.current_task = None
        self.start_time = None
        self.last_stage = None
    
    def start(self, title: str):
        self.current_task = title
        self.start_time = time.time()
        self.last_stage = None
        if self.verbose:
            print(f"\n[START] {title}")
    
    def update(self, stage: str, percent: float):
        """Progress callback: ``(stage, percent)``."""
        if not self.verbose:
            return
        elapsed = time.time() - (self.start_time or time.time())
        status = f"  [{percent:5.1f}%] {stage} - Elapsed: {self._format_time(elapsed)}"
        # Use carriage return to update same line
        print(f"\r{status:<90}", end="", flush=True)
        self.last_stage = stage
    
    def stop(self, message: Optional[str] = None):
        if self.verbose and self.current_task:
            elapsed = time.time() - (self.start_time or time.time())
            print()
            status = f"[DONE] {self.current_task} - Time: {self._format_time(elapsed)}"
            if message:
                status += f" - {message}"
            print(status)
        self.current_task = None
        self.start_time = None
    
    @contextmanager
    def track(self, title: str) -> Iterator[ProgressCallback]:
        """
        Context manager yielding a progress callback.
        
        Example:
            with monitor.track("Reconciling") as on_progress:
                engine.reconcile(rows1, rows2, mappings, on_progress=on_progress)
        """
        self.start(title)
        try:
            yield self.update
        finally:
            self.stop()
    
    def show_summary(self, summary: ReconciliationSummary):
        print("\nReconciliation Summary")
        for label, value, percentage in summary_table_rows(summary):
            line = f"  {label:<28} {value:>10,}"
            if percentage is not None:
                line += f"  ({percentage:.1f}%)"
            print(line)
    
    def show_artifacts(self, paths: List[Any]):
        for path in paths:
            print(f"[SAVED] {path}")
    
    def error(self, message: str, details: Optional[str] = None):
        print(f"\n[ERROR] {message}", file=sys.stderr)
        if details and self.verbose:
            print(details, file=sys.stderr)
    
    def warning(self, message: str):
        if self.verbose:
            print(f"\n[WARNING] {message}", file=sys.stderr)
    
    def info(self, message: str):
        if self.verbose:
            print(f"[INFO] {message}")
    
    def _format_time(self, seconds: float) -> str:
        """
        Format time duration.
        
        Args:
            seconds: Time in seconds
            
        Returns:
            Formatted time string
        """
        if seconds < 60:
            return f"{seconds:.1f}s"
        elif seconds < 3600:
            minutes = seconds / 60
            return f"{minutes:.1f}m"
        else:
            hours = seconds / 3600
            return f"{hours:.1f}h"


class RichProgressMonitor:
    """
    Progress monitoring using Rich progress bars and tables.
    """
    
    def __init__(self, console: Optional[Console] = None, verbose: bool = True):
        """Initialize Rich progress monitor."""
        self.console = console or Console()
        self.verbose = verbose
        self.progress = None
        self.task_id = None
        self.start_time = None
    
    def start(self, title: str):
        self.start_time = datetime.now()
        self.console.print(Panel(Text(title, justify="center", style="bold cyan"),
                                 box=box.DOUBLE, style="cyan"))
        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            TimeElapsedColumn(),
            console=self.console,
            refresh_per_second=10
        )
        self.progress.start()
        self.task_id = self.progress.add_task(title, total=100)
    
    def update(self, stage: str, percent: float):
        """Progress callback: ``(stage, percent)``."""
        if self.progress is not None:
            self.progress.update(self.task_id, completed=percent, description=stage)
    
    def stop(self, message: Optional[str] = None):
        if self.progress:
            self.progress.stop()
            self.progress = None
            self.task_id = None
        
        if self.start_time and message:
            elapsed = datetime.now() - self.start_time
            self.console.print(f"✓ {message} ({elapsed.total_seconds():.1f}s)", style="green")
        self.start_time = None
    
    @contextmanager
    def track(self, title: str) -> Iterator[ProgressCallback]:
        """Context manager yielding a progress callback."""
        self.start(title)
        try:
            yield self.update
        finally:
            self.stop()
    
    def show_summary(self, summary: ReconciliationSummary):
        """
        Display a run summary in a formatted table.
        
        Args:
            summary: Reconciliation summary
        """
        table = Table(title="Reconciliation Summary", box=box.ROUNDED)
        
        table.add_column("Metric", style="cyan", no_wrap=True)
        table.add_column("Value", style="magenta", justify="right")
        table.add_column("Percentage", style="green", justify="right")
        
        for label, value, percentage in summary_table_rows(summary):
            table.add_row(label, f"{value:,}",
                          f"{percentage:.1f}%" if percentage is not None else "-")
        
        self.console.print()
        self.console.print(table)
    
    def show_artifacts(self, paths: List[Any]):
        for path in paths:
            self.console.print(f"✓ Saved {path}", style="green")
    
    def error(self, message: str, details: Optional[str] = None):
        self.console.print(Panel(Text(f"✗ {message}", style="bold red"),
                                 title="Error", border_style="red", expand=False))
        if details and self.verbose:
            self.console.print(details, style="dim", markup=False, highlight=False)
    
    def warning(self, message: str):
        self.console.print(f"⚠ {message}", style="yellow")
    
    def info(self, message: str):
        if self.verbose:
            self.console.print(message)
    
    def show_metrics(self, metrics: Dict[str, Any]):
        """
        Display per-stage timings.
        
        Args:
            metrics: Report from ``MetricsCollector.generate_report``
        """
        table = Table(title="Stage Timings", box=box.SIMPLE)
        table.add_column("Stage", style="cyan")
        table.add_column("Seconds", style="magenta", justify="right")
        table.add_column("Rows", style="blue", justify="right")
        
        for stage in metrics.get("stages", []):
            table.add_row(stage["name"], f"{stage['duration_seconds']:.2f}", f"{stage['rows']:,}")
        
        self.console.print(table)


def get_progress_monitor(use_rich: bool = True, verbose: bool = True) -> Any:
    """
    Get appropriate progress monitor.
    
    Args:
        use_rich: Use Rich progress bars instead of plain console lines
        verbose: Show detailed output
        
    Returns:
        Progress monitor instance
    """
    if use_rich:
        return RichProgressMonitor(verbose=verbose)
    return ProgressMonitor(verbose=verbose)
