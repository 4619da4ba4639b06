"""
Randomized checks of reconciliation invariants.

Each case builds two overlapping datasets from a seeded generator so
failures are reproducible.
"""

import random
from collections import Counter
from pathlib import Path
import sys

import pytest

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from sheetrecon.core.key_builder import FILE1, FILE2, build_match_key
from sheetrecon.core.models import ColumnMapping
from sheetrecon.core.orchestrator import ReconciliationEngine
from sheetrecon.pipeline.chunked_processor import ProcessingContext


MAPPINGS = [ColumnMapping("ref", "reference", is_exact_match=True),
            ColumnMapping("amount", "value", is_exact_match=False)]

SEEDS = [0, 1, 7, 42, 2024]


def make_datasets(seed: int):
    rng = random.Random(seed)
    refs = [f"R{n:03d}" for n in range(rng.randint(5, 40))]
    amounts = ["10", "20", "30", " 20", None]
    
    file1, file2 = [], []
    for _ in range(rng.randint(1, 120)):
        file1.append({"ref": rng.choice(refs), "amount": rng.choice(amounts),
                      "memo": rng.choice(["a", "b"])})
    for _ in range(rng.randint(1, 120)):
        file2.append({"reference": rng.choice(refs), "value": rng.choice(amounts),
                      "note": rng.choice(["x", "y", ""])})
    return file1, file2


def identities(records):
    return [id(r) for r in records]


@pytest.mark.parametrize("seed", SEEDS)
class TestReconciliationInvariants:
    """Invariants that must hold for any input."""
    
    def test_every_record_lands_in_exactly_one_bucket(self, seed):
        file1, file2 = make_datasets(seed)
        result = ReconciliationEngine().reconcile(file1, file2, MAPPINGS)
        
        bucket1 = (identities(p.file1_record for p in result.matched)
                   + identities(result.in_file1_only)
                   + identities(result.duplicates_in_file1))
        bucket2 = (identities(p.file2_record for p in result.matched)
                   + identities(result.in_file2_only)
                   + identities(result.duplicates_in_file2))
        
        assert sorted(bucket1) == sorted(identities(file1))
        assert sorted(bucket2) == sorted(identities(file2))
    
    def test_matched_pairs_share_a_key(self, seed):
        file1, file2 = make_datasets(seed)
        result = ReconciliationEngine().reconcile(file1, file2, MAPPINGS)
        
        for pair in result.matched:
            key1 = build_match_key(pair.file1_record, MAPPINGS, FILE1)
            key2 = build_match_key(pair.file2_record, MAPPINGS, FILE2)
            assert key1 and key1 == key2
    
    def test_no_leftover_pair_could_have_matched(self, seed):
        file1, file2 = make_datasets(seed)
        result = ReconciliationEngine().reconcile(file1, file2, MAPPINGS)
        
        left = {build_match_key(r, MAPPINGS, FILE1) for r in result.in_file1_only}
        right = {build_match_key(r, MAPPINGS, FILE2) for r in result.in_file2_only}
        left.discard("")
        assert left.isdisjoint(right)
    
    def test_duplicate_groups_are_consistent(self, seed):
        file1, file2 = make_datasets(seed)
        result = ReconciliationEngine().reconcile(file1, file2, MAPPINGS)
        
        for groups, duplicates in ((result.duplicate_groups_in_file1, result.duplicates_in_file1),
                                   (result.duplicate_groups_in_file2, result.duplicates_in_file2)):
            assert all(len(group) >= 2 for group in groups)
            assert sum(len(group) - 1 for group in groups) == len(duplicates)
            grouped = Counter(id(item) for group in groups for item in group.items[1:])
            assert grouped == Counter(identities(duplicates))
    
    def test_summary_matches_partitions(self, seed):
        file1, file2 = make_datasets(seed)
        result = ReconciliationEngine().reconcile(file1, file2, MAPPINGS)
        summary = result.summary
        
        assert summary.total_in_file1 == len(file1)
        assert summary.total_in_file2 == len(file2)
        assert summary.matched == len(result.matched)
        assert summary.in_file1_only == len(result.in_file1_only)
        assert summary.in_file2_only == len(result.in_file2_only)
        assert summary.duplicate_groups_in_file1 == len(result.duplicate_groups_in_file1)
    
    def test_chunk_size_does_not_change_results(self, seed):
        file1, file2 = make_datasets(seed)
        baseline = ReconciliationEngine().reconcile(file1, file2, MAPPINGS)
        
        for chunk_size in (1, 3, 17):
            engine = ReconciliationEngine(context=ProcessingContext(chunk_size=chunk_size))
            result = engine.reconcile(file1, file2, MAPPINGS)
            
            assert [(id(p.file1_record), id(p.file2_record)) for p in result.matched] == \
                [(id(p.file1_record), id(p.file2_record)) for p in baseline.matched]
            assert identities(result.in_file1_only) == identities(baseline.in_file1_only)
            assert identities(result.in_file2_only) == identities(baseline.in_file2_only)
            assert identities(result.duplicates_in_file1) == identities(baseline.duplicates_in_file1)
