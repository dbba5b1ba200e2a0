"""Per-site modification calling from base modification probabilities."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Sequence

import numpy as np

from modentropy.logging_utils import get_logger

logger = get_logger(__name__)

CANONICAL = "canonical"
MODIFIED = "modified"
FILTERED = "filtered"


@dataclass(frozen=True)
class BaseModCall:
    """Outcome of calling one read position: canonical, modified (with a code) or filtered."""

    state: str
    mod_code: Optional[str] = None

    @classmethod
    def modified(cls, mod_code) -> "BaseModCall":
        return cls(MODIFIED, str(mod_code))

    @property
    def is_filtered(self) -> bool:
        return self.state == FILTERED

    @property
    def is_modified(self) -> bool:
        return self.state == MODIFIED

    @property
    def is_canonical(self) -> bool:
        return self.state == CANONICAL


CANONICAL_CALL = BaseModCall(CANONICAL)
FILTERED_CALL = BaseModCall(FILTERED)


class ThresholdModCaller:
    """
    Turn a canonical base and its modification probabilities into a BaseModCall.

    The most probable outcome wins, where the canonical probability is one minus the
    summed modification probabilities. The call is filtered when the winning
    probability falls below the threshold for the winning modification code (if one
    is configured) or for the canonical base, falling back to ``default_threshold``.

    Example
    -------
    caller = ThresholdModCaller({"C": 0.7}, {"h": 0.9})
    caller.call("C", {"m": 0.8, "h": 0.05})  # -> modified 'm'
    """

    def __init__(
        self,
        base_thresholds: Optional[Mapping[str, float]] = None,
        mod_thresholds: Optional[Mapping[str, float]] = None,
        default_threshold: float = 0.0,
    ):
        self.base_thresholds: Dict[str, float] = {
            str(k).upper(): float(v) for k, v in (base_thresholds or {}).items()
        }
        self.mod_thresholds: Dict[str, float] = {
            str(k): float(v) for k, v in (mod_thresholds or {}).items()
        }
        self.default_threshold = float(default_threshold)

    @classmethod
    def pass_all(cls) -> "ThresholdModCaller":
        """A caller that never filters."""
        return cls(default_threshold=0.0)

    def threshold_for(self, canonical_base: str, mod_code: Optional[str] = None) -> float:
        if mod_code is not None and mod_code in self.mod_thresholds:
            return self.mod_thresholds[mod_code]
        return self.base_thresholds.get(canonical_base.upper(), self.default_threshold)

    def call(self, canonical_base: str, mod_probs: Mapping[str, float]) -> BaseModCall:
        canonical_prob = max(0.0, 1.0 - sum(mod_probs.values()))
        best_code: Optional[str] = None
        best_prob = canonical_prob
        for code in sorted(mod_probs):
            if mod_probs[code] > best_prob:
                best_code, best_prob = code, mod_probs[code]

        if best_prob < self.threshold_for(canonical_base, best_code):
            return FILTERED_CALL
        if best_code is None:
            return CANONICAL_CALL
        return BaseModCall.modified(best_code)

    def __repr__(self) -> str:
        return (
            f"<ThresholdModCaller base_thresholds={self.base_thresholds} "
            f"mod_thresholds={self.mod_thresholds} default={self.default_threshold}>"
        )


def max_call_probability(mod_probs: Mapping[str, float]) -> float:
    """Probability of the most likely outcome (canonical or any modification)."""
    canonical_prob = max(0.0, 1.0 - sum(mod_probs.values()))
    return max([canonical_prob, *mod_probs.values()])


def estimate_pass_thresholds(
    sampled_probabilities: Mapping[str, Sequence[float]],
    filter_percentile: float = 0.1,
) -> Dict[str, float]:
    """
    Estimate per-base pass thresholds from sampled max call probabilities.

    The threshold for each canonical base is the ``filter_percentile`` quantile
    (linear interpolation) of the sampled probabilities, so roughly that fraction of
    the lowest confidence calls gets filtered.

    Parameters:
        sampled_probabilities: Canonical base -> max call probability of each sampled call.
        filter_percentile: Fraction of calls to filter, in [0, 1].

    Returns:
        dict: Canonical base -> threshold. Bases without samples are omitted.
    """
    if not 0.0 <= filter_percentile <= 1.0:
        raise ValueError(f"filter_percentile must be in [0, 1], got {filter_percentile}")
    thresholds: Dict[str, float] = {}
    for base, probs in sampled_probabilities.items():
        if len(probs) == 0:
            logger.debug(f"No sampled calls for base {base}, no threshold estimated")
            continue
        thresholds[base.upper()] = float(np.percentile(np.asarray(probs, dtype=float), filter_percentile * 100))
        logger.info(
            f"Estimated pass threshold {thresholds[base.upper()]:.4f} for {base} "
            f"from {len(probs)} calls"
        )
    return thresholds
