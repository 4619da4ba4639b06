"""
Progress composition.
Single responsibility: fold weighted sub-stage progress into one 0-100 stream.
"""

from typing import Callable, Optional


ProgressCallback = Callable[[str, float], None]


class ProgressTracker:
    """
    Monotonic 0-100 progress reporter.
    
    Sub-stages report on their own 0-100 scale through ``span`` and are
    mapped into a slice of the overall range. Values never go backwards and
    never leave ``[0, 100]``.
    """
    
    def __init__(self, callback: Optional[ProgressCallback] = None):
        self.callback = callback
        self.percent = 0.0
        self.stage = ""
    
    def report(self, stage: str, percent: float):
        """Report overall progress for a stage."""
        percent = min(100.0, max(0.0, float(percent)))
        self.percent = max(self.percent, percent)
        self.stage = stage
        if self.callback:
            self.callback(stage, round(self.percent, 2))
    
    def span(self, start: float, end: float) -> ProgressCallback:
        """
        Callback mapping a sub-stage's 0-100 progress onto ``[start, end]``.
        
        Args:
            start: Overall percent when the sub-stage begins
            end: Overall percent when the sub-stage ends
        """
        width = end - start
        
        def _report(stage: str, percent: float):
            fraction = min(100.0, max(0.0, float(percent))) / 100.0
            self.report(stage, start + width * fraction)
        
        return _report
    
    def counter(self, stage: str, start: float, end: float) -> Callable[[int, Optional[int]], None]:
        """Callback taking ``(processed, total)`` counts for a sub-stage."""
        report = self.span(start, end)
        
        def _report(processed: int, total: Optional[int]):
            report(stage, 100.0 if not total or total <= 0 else 100.0 * processed / total)
        
        return _report
    
    def complete(self, stage: str = "Complete"):
        self.report(stage, 100.0)
