"""User interface and progress monitoring."""

from .progress import ProgressMonitor, RichProgressMonitor, get_progress_monitor

__all__ = ["ProgressMonitor", "RichProgressMonitor", "get_progress_monitor"]
