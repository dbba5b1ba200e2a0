from .calculation import (
    InsufficientCoverage,
    MethylationEntropy,
    WindowEntropy,
    ZeroCoverage,
    calc_me_entropy,
    decode_mod_code_lookup,
    get_mod_code_lookup,
    into_entropy,
)
from .pipeline import run_entropy
from .processing import process_window_set
from .regions import DescriptiveStats, RegionEntropy, aggregate_region
from .scanner import SlidingWindows
from .windows import CombinedWindow, GenomeWindows, StrandedWindow
from .writers import RegionsWriter, WindowsWriter

__all__ = [
    "CombinedWindow",
    "DescriptiveStats",
    "GenomeWindows",
    "InsufficientCoverage",
    "MethylationEntropy",
    "RegionEntropy",
    "RegionsWriter",
    "SlidingWindows",
    "StrandedWindow",
    "WindowEntropy",
    "WindowsWriter",
    "ZeroCoverage",
    "aggregate_region",
    "calc_me_entropy",
    "decode_mod_code_lookup",
    "get_mod_code_lookup",
    "into_entropy",
    "process_window_set",
    "run_entropy",
]
