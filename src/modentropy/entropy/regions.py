"""Fold the window results of one region into summary statistics per strand."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np

from modentropy.entropy.calculation import (
    CoverageFailure,
    MethylationEntropy,
    WindowEntropy,
    ZeroCoverage,
)


@dataclass(frozen=True)
class DescriptiveStats:
    mean_entropy: float
    median_entropy: float
    min_entropy: float
    max_entropy: float
    mean_num_reads: float
    min_num_reads: int
    max_num_reads: int
    successful_window_count: int
    failed_window_count: int

    @classmethod
    def from_measurements(
        cls,
        measurements: Sequence[Tuple[float, int]],
        failed_count: int,
        chrom_id: int,
        interval: Tuple[int, int],
    ) -> Union["DescriptiveStats", CoverageFailure]:
        """
        Summarize ``(entropy, num_reads)`` measurements of a region side.

        Returns a ``ZeroCoverage`` failure over ``interval`` when nothing succeeded.
        """
        if not measurements:
            return ZeroCoverage(chrom_id, interval[0], interval[1])
        entropies = np.array([m[0] for m in measurements], dtype=float)
        num_reads = np.array([m[1] for m in measurements], dtype=np.int64)
        return cls(
            mean_entropy=float(entropies.mean()),
            median_entropy=float(np.percentile(entropies, 50)),
            min_entropy=float(entropies.min()),
            max_entropy=float(entropies.max()),
            mean_num_reads=float(num_reads.mean()),
            min_num_reads=int(num_reads.min()),
            max_num_reads=int(num_reads.max()),
            successful_window_count=len(measurements),
            failed_window_count=failed_count,
        )


RegionSide = Union[DescriptiveStats, CoverageFailure]


@dataclass
class RegionEntropy:
    chrom_id: int
    interval: Tuple[int, int]
    region_name: str
    pos_entropy_stats: Optional[RegionSide] = None
    neg_entropy_stats: Optional[RegionSide] = None
    window_entropies: List[WindowEntropy] = field(default_factory=list, repr=False)


def _collect_side(
    outcomes: Sequence[Optional[object]],
) -> Tuple[List[Tuple[float, int]], int]:
    successes: List[Tuple[float, int]] = []
    failures = 0
    for outcome in outcomes:
        if outcome is None:
            continue
        if isinstance(outcome, MethylationEntropy):
            successes.append((outcome.me_entropy, outcome.num_reads))
        elif isinstance(outcome, CoverageFailure):
            failures += 1
        else:
            raise TypeError(f"Unknown entropy outcome: {type(outcome).__name__}")
    return successes, failures


def aggregate_region(
    window_entropies: List[WindowEntropy],
    chrom_id: int,
    interval: Tuple[int, int],
    region_name: str,
) -> RegionEntropy:
    """
    Build the ``RegionEntropy`` of a region from its window results.

    A side is left as ``None`` when no window ever populated it.
    """
    sides = []
    for attr in ("pos_me_entropy", "neg_me_entropy"):
        successes, failures = _collect_side([getattr(we, attr) for we in window_entropies])
        if not successes and not failures:
            sides.append(None)
        else:
            sides.append(DescriptiveStats.from_measurements(successes, failures, chrom_id, interval))
    return RegionEntropy(chrom_id, interval, region_name, sides[0], sides[1], window_entropies)
