from __future__ import annotations
from typing import Final, Mapping, Any, Dict, Tuple
from types import MappingProxyType


## Helpers ##
def _deep_freeze(obj: Any) -> Any:
    """Recursively freeze common containers. Use for constant exports."""
    if isinstance(obj, dict):
        return MappingProxyType({k: _deep_freeze(v) for k, v in obj.items()})
    if isinstance(obj, (list, tuple)):
        return tuple(_deep_freeze(v) for v in obj)
    if isinstance(obj, set):
        return frozenset(_deep_freeze(v) for v in obj)
    return obj  # ints/strs/tuples (already immutable)


## Constants ##
# Strand labels as written to the output tables
POSITIVE_STRAND: Final[str] = "+"
NEGATIVE_STRAND: Final[str] = "-"

# Pattern encoding symbols, modification codes are assigned "1", "2", ...
CANONICAL_SYMBOL: Final[str] = "0"
FILTERED_SYMBOL: Final[str] = "*"

_private_complement: Dict[str, str] = {"A": "T", "C": "G", "G": "C", "T": "A", "N": "N"}
DNA_COMPLEMENT: Final[Mapping[str, str]] = _deep_freeze(_private_complement)

_private_cpg_motif: Tuple[str, int] = ("CG", 0)
CPG_MOTIF: Final[Tuple[str, int]] = _deep_freeze(_private_cpg_motif)

# Scanning / entropy defaults, mirrored in config/default.yaml
DEFAULT_NUM_POSITIONS: Final[int] = 4
DEFAULT_WINDOW_SIZE: Final[int] = 50
DEFAULT_MIN_COVERAGE: Final[int] = 3
DEFAULT_MAX_FILTERED_POSITIONS: Final[int] = 1
DEFAULT_BATCH_SIZE: Final[int] = 200
DEFAULT_FILTER_PERCENTILE: Final[float] = 0.1
DEFAULT_SAMPLE_NUM_READS: Final[int] = 10_042

# ML tag values are 0-255 bins of probability space
ML_PROB_BINS: Final[int] = 256

# Output tables
WINDOWS_COLUMNS: Final[Tuple[str, ...]] = (
    "chrom",
    "start",
    "end",
    "entropy",
    "strand",
    "num_reads",
)
REGIONS_COLUMNS: Final[Tuple[str, ...]] = (
    "chrom",
    "start",
    "end",
    "region_name",
    "mean_entropy",
    "strand",
    "median_entropy",
    "min_entropy",
    "max_entropy",
    "mean_num_reads",
    "min_num_reads",
    "max_num_reads",
    "successful_window_count",
    "failed_window_count",
)
REGIONS_BED_NAME: Final[str] = "regions.bed"
WINDOWS_BEDGRAPH_NAME: Final[str] = "windows.bedgraph"
