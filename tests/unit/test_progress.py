"""
Unit tests for progress composition.
"""

from pathlib import Path
import sys

# Add project root to path for imports
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from sheetrecon.pipeline.progress import ProgressTracker


class TestProgressTracker:
    """Tests for ProgressTracker."""
    
    def setup_method(self):
        self.events = []
        self.tracker = ProgressTracker(lambda stage, percent: self.events.append((stage, percent)))
    
    def test_never_goes_backwards(self):
        self.tracker.report("a", 40)
        self.tracker.report("b", 10)
        assert self.events == [("a", 40.0), ("b", 40.0)]
    
    def test_clamps_to_range(self):
        self.tracker.report("a", 150)
        assert self.tracker.percent == 100.0
        tracker = ProgressTracker()
        tracker.report("a", -5)
        assert tracker.percent == 0.0
    
    def test_span_maps_sub_stage_progress(self):
        report = self.tracker.span(20, 40)
        report("sub", 50)
        assert self.events[-1] == ("sub", 30.0)
        report("sub", 100)
        assert self.events[-1] == ("sub", 40.0)
    
    def test_counter_uses_processed_over_total(self):
        report = self.tracker.counter("rows", 0, 50)
        report(25, 100)
        assert self.events[-1] == ("rows", 12.5)
        report(0, 0)
        assert self.events[-1] == ("rows", 50.0)
    
    def test_counter_with_unknown_total_jumps_to_slice_end(self):
        report = self.tracker.counter("rows", 10, 20)
        report(5, None)
        assert self.events[-1] == ("rows", 20.0)
    
    def test_complete(self):
        self.tracker.complete()
        assert self.events[-1] == ("Complete", 100.0)
