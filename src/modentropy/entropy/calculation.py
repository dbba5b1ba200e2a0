"""Pattern encoding and methylation entropy for genome windows."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import ClassVar, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np

from modentropy.constants import CANONICAL_SYMBOL, FILTERED_SYMBOL, NEGATIVE_STRAND, POSITIVE_STRAND
from modentropy.entropy.windows import CombinedWindow, GenomeWindow, Pattern, StrandedWindow


@dataclass(frozen=True)
class CoverageFailure:
    """A window (or region) side that could not produce an entropy value."""

    chrom_id: int
    start: int
    end: int

    reason: ClassVar[str] = "coverage failure"

    def __str__(self) -> str:
        return f"{self.chrom_id}:{self.start}-{self.end}: {self.reason}"


class ZeroCoverage(CoverageFailure):
    """No read contributed a valid call at any position."""

    reason: ClassVar[str] = "zero valid coverage"


class InsufficientCoverage(CoverageFailure):
    """Reads were present but some position is below the minimum valid coverage."""

    reason: ClassVar[str] = "insufficient valid coverage"


@dataclass(frozen=True)
class MethylationEntropy:
    me_entropy: float
    num_reads: int
    interval: Tuple[int, int]


EntropyOutcome = Union[MethylationEntropy, CoverageFailure]


@dataclass(frozen=True)
class WindowEntropy:
    """Per-window result, ``None`` for a side the window does not have."""

    chrom_id: int
    pos_me_entropy: Optional[EntropyOutcome] = None
    neg_me_entropy: Optional[EntropyOutcome] = None

    def outcomes(self) -> Iterable[Tuple[str, EntropyOutcome]]:
        if self.pos_me_entropy is not None:
            yield POSITIVE_STRAND, self.pos_me_entropy
        if self.neg_me_entropy is not None:
            yield NEGATIVE_STRAND, self.neg_me_entropy


def calc_me_entropy(patterns: Sequence[str], window_size: int, constant: Optional[float] = None) -> float:
    """
    Methylation entropy of a set of encoded read patterns.

    ME = constant * sum_i -(n_i / N) * log2(n_i / N), where ``n_i`` counts reads
    sharing the i-th distinct pattern and ``constant`` defaults to ``1 / window_size``.
    """
    if not patterns:
        return 0.0
    if constant is None:
        constant = 1.0 / window_size
    counts = np.fromiter(Counter(patterns).values(), dtype=float)
    probs = counts / counts.sum()
    entropy = float(constant * np.sum(-probs * np.log2(probs)))
    if entropy <= 0.0:
        return 0.0
    return entropy


def get_mod_code_lookup(patterns: Iterable[Pattern]) -> Dict[str, str]:
    """Assign ``"1"``, ``"2"``, ... to the sorted modification codes seen in ``patterns``."""
    codes = sorted(
        {call.mod_code for pattern in patterns for call in pattern if call.is_modified}
    )
    return {code: str(i) for i, code in enumerate(codes, start=1)}


def decode_mod_code_lookup(mod_code_lookup: Dict[str, str]) -> Dict[str, str]:
    """Symbol -> modification code, the inverse of ``get_mod_code_lookup``."""
    return {symbol: code for code, symbol in mod_code_lookup.items()}


def encode_pattern(pattern: Pattern, mod_code_lookup: Dict[str, str]) -> str:
    symbols = []
    for call in pattern:
        if call.is_filtered:
            symbols.append(FILTERED_SYMBOL)
        elif call.is_modified:
            symbols.append(mod_code_lookup[call.mod_code])
        else:
            symbols.append(CANONICAL_SYMBOL)
    return "".join(symbols)


def encode_patterns(
    chrom_id: int,
    interval: Tuple[int, int],
    patterns: List[Pattern],
    mod_code_lookup: Dict[str, str],
    position_valid_coverages: np.ndarray,
    min_coverage: int,
) -> Union[List[str], CoverageFailure]:
    """Encode one window side, or classify it as a coverage failure."""
    if np.all(position_valid_coverages >= min_coverage):
        encoded = [encode_pattern(pattern, mod_code_lookup) for pattern in patterns]
        assert all(
            len(p) == len(position_valid_coverages) for p in encoded
        ), f"patterns are the wrong size {encoded}"
        return encoded
    start, end = interval
    if np.all(position_valid_coverages == 0):
        return ZeroCoverage(chrom_id, start, end)
    return InsufficientCoverage(chrom_id, start, end)


def _side_entropy(
    chrom_id: int,
    interval: Tuple[int, int],
    patterns: List[Pattern],
    mod_code_lookup: Dict[str, str],
    coverages: np.ndarray,
    min_coverage: int,
    window_size: int,
) -> EntropyOutcome:
    encoded = encode_patterns(chrom_id, interval, patterns, mod_code_lookup, coverages, min_coverage)
    if isinstance(encoded, CoverageFailure):
        return encoded
    me_entropy = calc_me_entropy(encoded, window_size, 1.0 / window_size)
    return MethylationEntropy(me_entropy, len(encoded), (interval[0], interval[1] + 1))


def into_entropy(window: GenomeWindow, chrom_id: int, min_coverage: int) -> WindowEntropy:
    """
    Compute the entropy (or coverage failure) of every populated side of a window.

    Combined windows report a single + side; stranded windows report each side
    they carry, independently of one another. Result intervals are half-open.
    """
    if not isinstance(window, (CombinedWindow, StrandedWindow)):
        raise TypeError(f"Unknown genome window type: {type(window).__name__}")
    window_size = window.size
    mod_code_lookup = get_mod_code_lookup(window.iter_patterns())

    if isinstance(window, CombinedWindow):
        pos = _side_entropy(
            chrom_id,
            window.interval,
            window.read_patterns,
            mod_code_lookup,
            window.position_valid_coverages,
            min_coverage,
            window_size,
        )
        return WindowEntropy(chrom_id, pos, None)

    pos = neg = None
    if window.pos_interval is not None:
        pos = _side_entropy(
            chrom_id,
            window.pos_interval,
            window.pos_read_patterns,
            mod_code_lookup,
            window.pos_position_valid_coverages,
            min_coverage,
            window_size,
        )
    if window.neg_interval is not None:
        neg = _side_entropy(
            chrom_id,
            window.neg_interval,
            window.neg_read_patterns,
            mod_code_lookup,
            window.neg_position_valid_coverages,
            min_coverage,
            window_size,
        )
    return WindowEntropy(chrom_id, pos, neg)
