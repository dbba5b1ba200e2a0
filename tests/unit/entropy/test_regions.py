import numpy as np
import pytest

from modentropy.entropy.calculation import (
    InsufficientCoverage,
    MethylationEntropy,
    WindowEntropy,
    ZeroCoverage,
)
from modentropy.entropy.regions import DescriptiveStats, aggregate_region


def _ok(entropy, reads):
    return MethylationEntropy(entropy, reads, (0, 10))


def test_region_stats_summarize_successful_windows():
    entropies = [
        WindowEntropy(0, _ok(0.2, 5), None),
        WindowEntropy(0, _ok(0.4, 7), None),
        WindowEntropy(0, InsufficientCoverage(0, 20, 30), None),
        WindowEntropy(0, _ok(0.9, 3), None),
    ]
    region = aggregate_region(entropies, 0, (0, 40), "promoter")
    stats = region.pos_entropy_stats
    assert isinstance(stats, DescriptiveStats)
    assert stats.mean_entropy == pytest.approx(np.mean([0.2, 0.4, 0.9]))
    assert stats.median_entropy == pytest.approx(0.4)
    assert (stats.min_entropy, stats.max_entropy) == (0.2, 0.9)
    assert stats.mean_num_reads == pytest.approx(5.0)
    assert (stats.min_num_reads, stats.max_num_reads) == (3, 7)
    assert stats.successful_window_count + stats.failed_window_count == len(entropies)
    assert region.neg_entropy_stats is None
    assert region.region_name == "promoter"
    assert region.window_entropies == entropies


def test_median_interpolates_for_even_counts():
    stats = DescriptiveStats.from_measurements([(0.1, 1), (0.3, 1)], 0, 0, (0, 1))
    assert stats.median_entropy == pytest.approx(0.2)


def test_side_with_only_failures_is_zero_coverage_over_region():
    entropies = [
        WindowEntropy(3, None, ZeroCoverage(3, 5, 9)),
        WindowEntropy(3, None, InsufficientCoverage(3, 9, 12)),
    ]
    region = aggregate_region(entropies, 3, (5, 12), "r")
    assert region.pos_entropy_stats is None
    assert region.neg_entropy_stats == ZeroCoverage(3, 5, 12)
