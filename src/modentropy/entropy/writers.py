"""Tab-separated output for window and region entropy results."""

from __future__ import annotations

import sys
from collections import Counter
from pathlib import Path
from typing import IO, Dict, List, Mapping, Optional, Union

import pandas as pd

from modentropy.constants import (
    NEGATIVE_STRAND,
    POSITIVE_STRAND,
    REGIONS_BED_NAME,
    REGIONS_COLUMNS,
    WINDOWS_BEDGRAPH_NAME,
    WINDOWS_COLUMNS,
)
from modentropy.entropy.calculation import CoverageFailure, MethylationEntropy, WindowEntropy
from modentropy.entropy.regions import DescriptiveStats, RegionEntropy
from modentropy.logging_utils import get_logger

logger = get_logger(__name__)


def _write_rows(handle: IO[str], rows: List[list], columns) -> None:
    if not rows:
        return
    pd.DataFrame(rows, columns=list(columns)).to_csv(
        handle, sep="\t", header=False, index=False, lineterminator="\n"
    )


class _TallyMixin:
    """Counters shared by the writers: rows written, failures and failure reasons."""

    def _init_tallies(self) -> None:
        self.rows_written = 0
        self.failure_count = 0
        self.failure_reasons: Counter = Counter()

    def _record_failure(self, failure: CoverageFailure, chrom: str) -> None:
        if self.verbose:
            logger.debug(f"{chrom}:{failure.start}-{failure.end}: {failure.reason}")
        self.failure_count += 1
        self.failure_reasons[failure.reason] += 1

    def _window_rows(
        self,
        window_entropies: List[WindowEntropy],
        chrom_id_to_name: Mapping[int, str],
        drop_zeros: bool,
    ) -> List[list]:
        rows = []
        for entropy in window_entropies:
            chrom = chrom_id_to_name.get(entropy.chrom_id)
            if chrom is None:
                raise KeyError(f"missing chrom name for {entropy.chrom_id}")
            for strand, outcome in entropy.outcomes():
                if isinstance(outcome, MethylationEntropy):
                    if drop_zeros and outcome.me_entropy == 0.0:
                        continue
                    start, end = outcome.interval
                    rows.append([chrom, start, end, outcome.me_entropy, strand, outcome.num_reads])
                else:
                    self._record_failure(outcome, chrom)
        self.rows_written += len(rows)
        return rows

    def failure_summary(self) -> pd.DataFrame:
        """Failure reasons and their counts, most frequent first."""
        summary = pd.DataFrame(
            sorted(self.failure_reasons.items(), key=lambda item: item[1], reverse=True),
            columns=["reason", "count"],
        )
        return summary


class WindowsWriter(_TallyMixin):
    """Window rows (``#chrom start end entropy strand num_reads``) to a file or stdout."""

    def __init__(self, out_path: Optional[Union[str, Path]] = None, header: bool = False, verbose: bool = False):
        self.verbose = verbose
        self.out_path = Path(out_path) if out_path is not None else None
        if self.out_path is not None:
            self.out_path.parent.mkdir(parents=True, exist_ok=True)
            self._handle: IO[str] = self.out_path.open("w")
        else:
            self._handle = sys.stdout
        if header:
            self._handle.write("#" + "\t".join(WINDOWS_COLUMNS) + "\n")
        self._init_tallies()

    def write(
        self,
        result: Union[List[WindowEntropy], RegionEntropy],
        chrom_id_to_name: Mapping[int, str],
        drop_zeros: bool = False,
    ) -> None:
        if isinstance(result, RegionEntropy):
            raise TypeError("windows writer received a region result")
        _write_rows(self._handle, self._window_rows(result, chrom_id_to_name, drop_zeros), WINDOWS_COLUMNS)

    def close(self) -> None:
        if self.out_path is not None:
            self._handle.close()
        else:
            self._handle.flush()

    def __enter__(self) -> "WindowsWriter":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def _stats_row(
    stats: DescriptiveStats, chrom: str, start: int, end: int, strand: str, region_name: str
) -> list:
    return [
        chrom,
        start,
        end,
        region_name,
        stats.mean_entropy,
        strand,
        stats.median_entropy,
        stats.min_entropy,
        stats.max_entropy,
        stats.mean_num_reads,
        stats.min_num_reads,
        stats.max_num_reads,
        stats.successful_window_count,
        stats.failed_window_count,
    ]


class RegionsWriter(_TallyMixin):
    """
    Region summaries to ``<out_dir>/[prefix_]regions.bed`` and their windows to
    ``<out_dir>/[prefix_]windows.bedgraph``.
    """

    def __init__(
        self,
        out_dir: Union[str, Path],
        prefix: Optional[str] = None,
        header: bool = False,
        verbose: bool = False,
    ):
        self.verbose = verbose
        out_dir = Path(out_dir)
        if out_dir.is_file():
            raise ValueError("regions output location must be a directory")
        out_dir.mkdir(parents=True, exist_ok=True)
        self.out_dir = out_dir
        self.regions_path = out_dir / (f"{prefix}_{REGIONS_BED_NAME}" if prefix else REGIONS_BED_NAME)
        self.windows_path = out_dir / (
            f"{prefix}_{WINDOWS_BEDGRAPH_NAME}" if prefix else WINDOWS_BEDGRAPH_NAME
        )
        self._regions_handle: IO[str] = self.regions_path.open("w")
        self._windows_handle: IO[str] = self.windows_path.open("w")
        if header:
            self._windows_handle.write("#" + "\t".join(WINDOWS_COLUMNS) + "\n")
            self._regions_handle.write("\t".join(REGIONS_COLUMNS) + "\n")
        self._init_tallies()

    def write(
        self,
        result: Union[List[WindowEntropy], RegionEntropy],
        chrom_id_to_name: Mapping[int, str],
        drop_zeros: bool = False,
    ) -> None:
        if not isinstance(result, RegionEntropy):
            raise TypeError("regions writer received window results without a region")
        chrom = chrom_id_to_name.get(result.chrom_id)
        if chrom is None:
            raise KeyError(f"missing chrom name for {result.chrom_id}")
        start, end = result.interval

        rows = []
        for strand, side in ((POSITIVE_STRAND, result.pos_entropy_stats), (NEGATIVE_STRAND, result.neg_entropy_stats)):
            if side is None:
                continue
            if isinstance(side, DescriptiveStats):
                rows.append(_stats_row(side, chrom, start, end, strand, result.region_name))
            else:
                self._record_failure(side, chrom)
        self.rows_written += len(rows)
        _write_rows(self._regions_handle, rows, REGIONS_COLUMNS)

        window_rows = self._window_rows(result.window_entropies, chrom_id_to_name, drop_zeros)
        _write_rows(self._windows_handle, window_rows, WINDOWS_COLUMNS)

    def close(self) -> None:
        self._regions_handle.close()
        self._windows_handle.close()

    def __enter__(self) -> "RegionsWriter":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


EntropyWriter = Union[WindowsWriter, RegionsWriter]


def open_writer(
    out_bed: Optional[Union[str, Path]],
    regions_mode: bool,
    prefix: Optional[str] = None,
    header: bool = False,
    force: bool = False,
    verbose: bool = False,
) -> EntropyWriter:
    """Pick the writer for the run mode, refusing to overwrite outputs unless ``force``."""
    if regions_mode:
        if out_bed is None:
            raise ValueError("region mode requires an output directory")
        writer_paths: Dict[str, Path] = {
            "regions": Path(out_bed) / (f"{prefix}_{REGIONS_BED_NAME}" if prefix else REGIONS_BED_NAME),
            "windows": Path(out_bed) / (f"{prefix}_{WINDOWS_BEDGRAPH_NAME}" if prefix else WINDOWS_BEDGRAPH_NAME),
        }
        existing = [str(p) for p in writer_paths.values() if p.exists()]
        if existing and not force:
            raise FileExistsError(f"refusing to overwrite {', '.join(existing)}, use force")
        return RegionsWriter(out_bed, prefix=prefix, header=header, verbose=verbose)
    if out_bed is not None and Path(out_bed).exists() and not force:
        raise FileExistsError(f"refusing to overwrite {out_bed}, use force")
    return WindowsWriter(out_bed, header=header, verbose=verbose)
