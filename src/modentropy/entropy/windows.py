"""
Genome windows: fixed numbers of motif positions that reads contribute patterns to.

A window has one of two shapes, ``CombinedWindow`` (a + strand site and its
mirrored - strand site are one logical position) or ``StrandedWindow`` (independent
+ and - sides). The shapes share no state; code consuming a ``GenomeWindow``
dispatches on the concrete type and rejects anything else.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Tuple, Union

import numpy as np

from modentropy.constants import NEGATIVE_STRAND, POSITIVE_STRAND
from modentropy.informatics.modcall import FILTERED_CALL, BaseModCall

BaseAndPosition = Tuple[str, int]
Pattern = List[BaseModCall]


def _interval_of(positions: List[BaseAndPosition]) -> Tuple[int, int]:
    coords = [pos for _, pos in positions]
    start, end = min(coords), max(coords)
    if start == end:
        return start, start + 1
    return start, end


def _check_sorted(positions: List[BaseAndPosition]) -> None:
    for (_, last), (_, nxt) in zip(positions, positions[1:]):
        assert last < nxt, f"window positions need to be sorted, got {positions}"


def _covers(
    reference_start: Optional[int],
    reference_end: Optional[int],
    window_start: Optional[int],
    window_end: Optional[int],
) -> bool:
    """True when the read's reference span fully contains the window interval."""
    if reference_start is None or reference_start < 0:
        return False
    if reference_end is None or reference_end <= reference_start:
        return False
    if window_start is None or window_end is None:
        return False
    return reference_start <= window_start and reference_end >= window_end


def _lookup_pattern(
    mod_calls: Mapping[BaseAndPosition, BaseModCall], positions: List[BaseAndPosition]
) -> Pattern:
    return [mod_calls.get(p, FILTERED_CALL) for p in positions]


def _accept_pattern(
    pattern: Pattern,
    coverages: np.ndarray,
    patterns: List[Pattern],
    max_filtered_positions: int,
) -> bool:
    if sum(1 for call in pattern if call.is_filtered) > max_filtered_positions:
        return False
    assert len(pattern) == len(coverages), "pattern is larger than the window size?"
    for i, call in enumerate(pattern):
        if not call.is_filtered:
            coverages[i] += 1
    patterns.append(pattern)
    return True


@dataclass(eq=False)
class CombinedWindow:
    """A window whose - strand calls are projected onto the + strand coordinates."""

    interval: Tuple[int, int]
    neg_to_pos_positions: Dict[BaseAndPosition, BaseAndPosition]
    num_positions: int
    read_patterns: List[Pattern] = field(default_factory=list)
    position_valid_coverages: np.ndarray = field(init=False, repr=False)

    def __post_init__(self) -> None:
        assert len(self.neg_to_pos_positions) == self.num_positions, "wrong number of positions"
        self.position_valid_coverages = np.zeros(self.num_positions, dtype=np.int64)

    @property
    def size(self) -> int:
        return self.num_positions

    def start(self, strand: str) -> Optional[int]:
        return self.interval[0]

    def end(self, strand: str) -> Optional[int]:
        return self.interval[1]

    def leftmost(self) -> int:
        return self.interval[0]

    def rightmost(self) -> int:
        return self.interval[1]

    def lookup_positions(self, strand: str) -> List[BaseAndPosition]:
        """Keys to look a read's calls up with, in canonical (+ strand) coordinate order."""
        pairs = sorted(self.neg_to_pos_positions.items(), key=lambda item: item[1][1])
        if strand == POSITIVE_STRAND:
            return [pos for _, pos in pairs]
        return [neg for neg, _ in pairs]

    def add_read_to_patterns(
        self,
        mod_calls: Mapping[BaseAndPosition, BaseModCall],
        reference_start: Optional[int],
        reference_end: Optional[int],
        strand: str,
        max_filtered_positions: int,
    ) -> bool:
        if not _covers(reference_start, reference_end, self.interval[0], self.interval[1]):
            return False
        pattern = _lookup_pattern(mod_calls, self.lookup_positions(strand))
        return _accept_pattern(
            pattern, self.position_valid_coverages, self.read_patterns, max_filtered_positions
        )

    def iter_patterns(self):
        yield from self.read_patterns


@dataclass(eq=False)
class StrandedWindow:
    """A window with independent + and - sides, either of which may be absent."""

    pos_positions: Optional[List[BaseAndPosition]]
    neg_positions: Optional[List[BaseAndPosition]]
    num_positions: int
    pos_read_patterns: List[Pattern] = field(default_factory=list)
    neg_read_patterns: List[Pattern] = field(default_factory=list)
    pos_interval: Optional[Tuple[int, int]] = field(init=False)
    neg_interval: Optional[Tuple[int, int]] = field(init=False)
    pos_position_valid_coverages: np.ndarray = field(init=False, repr=False)
    neg_position_valid_coverages: np.ndarray = field(init=False, repr=False)

    def __post_init__(self) -> None:
        assert (
            self.pos_positions is not None or self.neg_positions is not None
        ), "should always have either a positive or negative side"
        for positions in (self.pos_positions, self.neg_positions):
            if positions is not None:
                assert len(positions) == self.num_positions, "wrong number of positions"
                _check_sorted(positions)
        self.pos_interval = _interval_of(self.pos_positions) if self.pos_positions else None
        self.neg_interval = _interval_of(self.neg_positions) if self.neg_positions else None
        self.pos_position_valid_coverages = np.zeros(self.num_positions, dtype=np.int64)
        self.neg_position_valid_coverages = np.zeros(self.num_positions, dtype=np.int64)

    @property
    def size(self) -> int:
        return self.num_positions

    def _interval(self, strand: str) -> Optional[Tuple[int, int]]:
        return self.pos_interval if strand == POSITIVE_STRAND else self.neg_interval

    def start(self, strand: str) -> Optional[int]:
        interval = self._interval(strand)
        return None if interval is None else interval[0]

    def end(self, strand: str) -> Optional[int]:
        interval = self._interval(strand)
        return None if interval is None else interval[1]

    def leftmost(self) -> int:
        return min(x for x in (self.start(POSITIVE_STRAND), self.start(NEGATIVE_STRAND)) if x is not None)

    def rightmost(self) -> int:
        return max(x for x in (self.end(POSITIVE_STRAND), self.end(NEGATIVE_STRAND)) if x is not None)

    def add_read_to_patterns(
        self,
        mod_calls: Mapping[BaseAndPosition, BaseModCall],
        reference_start: Optional[int],
        reference_end: Optional[int],
        strand: str,
        max_filtered_positions: int,
    ) -> bool:
        if strand == POSITIVE_STRAND:
            positions = self.pos_positions
            coverages, patterns = self.pos_position_valid_coverages, self.pos_read_patterns
        else:
            positions = self.neg_positions
            coverages, patterns = self.neg_position_valid_coverages, self.neg_read_patterns
        if positions is None:
            return False
        if not _covers(reference_start, reference_end, self.start(strand), self.end(strand)):
            return False
        pattern = _lookup_pattern(mod_calls, positions)
        return _accept_pattern(pattern, coverages, patterns, max_filtered_positions)

    def iter_patterns(self):
        yield from self.pos_read_patterns
        yield from self.neg_read_patterns


GenomeWindow = Union[CombinedWindow, StrandedWindow]


@dataclass
class GenomeWindows:
    """Ordered windows of one contig (or one named region) handed to the processing stage."""

    chrom_id: int
    chrom: str
    windows: List[GenomeWindow]
    region_name: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.windows:
            raise ValueError("GenomeWindows requires at least one window")

    def __len__(self) -> int:
        return len(self.windows)

    def get_range(self) -> Tuple[int, int]:
        """Interval from the leftmost coordinate of the first window to the rightmost of the last."""
        return self.windows[0].leftmost(), self.windows[-1].rightmost()
