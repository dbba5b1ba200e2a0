"""Per-window-set driver: fetch reads, fill window patterns, compute entropy."""

from __future__ import annotations

from concurrent.futures import Executor, as_completed
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

from modentropy.entropy.calculation import WindowEntropy, into_entropy
from modentropy.entropy.regions import RegionEntropy, aggregate_region
from modentropy.entropy.windows import GenomeWindow, GenomeWindows
from modentropy.informatics.bam_functions import (
    AlignmentFetchError,
    ReadModCalls,
    fetch_read_mod_calls,
)
from modentropy.informatics.modcall import ThresholdModCaller
from modentropy.logging_utils import get_logger

logger = get_logger(__name__)

Fetcher = Callable[..., List[ReadModCalls]]
ProcessedSet = Union[List[WindowEntropy], RegionEntropy]


def chunk_indices(n_items: int, n_chunks: int) -> List[range]:
    """Split ``range(n_items)`` into at most ``n_chunks`` contiguous, disjoint ranges."""
    if n_items <= 0:
        return []
    n_chunks = max(1, min(n_chunks, n_items))
    size, extra = divmod(n_items, n_chunks)
    chunks = []
    start = 0
    for i in range(n_chunks):
        stop = start + size + (1 if i < extra else 0)
        chunks.append(range(start, stop))
        start = stop
    return chunks


def _apply_reads(
    windows: List[GenomeWindow],
    indices: range,
    reads: Sequence[ReadModCalls],
    max_filtered_positions: int,
) -> int:
    added = 0
    for i in indices:
        window = windows[i]
        for read in reads:
            if window.add_read_to_patterns(
                read.mod_calls,
                read.reference_start,
                read.reference_end,
                read.strand,
                max_filtered_positions,
            ):
                added += 1
    return added


def fetch_reads_for_set(
    genome_windows: GenomeWindows,
    bam_paths: Sequence[Union[str, Path]],
    caller: ThresholdModCaller,
    executor: Executor,
    io_threads: int = 1,
    fetcher: Optional[Fetcher] = None,
) -> List[ReadModCalls]:
    """
    Fetch the reads covering a window set from every BAM, one task per BAM.

    A BAM that fails is logged and skipped. Raises ``AlignmentFetchError`` when all fail.
    """
    fetcher = fetcher or fetch_read_mod_calls
    start, end = genome_windows.get_range()
    futures = {
        executor.submit(
            fetcher, bam_path, genome_windows.chrom, start, end, caller, io_threads
        ): bam_path
        for bam_path in bam_paths
    }
    reads: List[ReadModCalls] = []
    failed = 0
    for future in as_completed(futures):
        bam_path = futures[future]
        try:
            reads.extend(future.result())
        except (OSError, ValueError, KeyError) as e:
            failed += 1
            logger.warning(
                f"failed to fetch reads from {bam_path} for "
                f"{genome_windows.chrom}:{start}-{end}, {e}"
            )
    if bam_paths and failed == len(bam_paths):
        raise AlignmentFetchError(
            f"failed to fetch reads from every alignment file for {genome_windows.chrom}:{start}-{end}"
        )
    return reads


def process_window_set(
    genome_windows: GenomeWindows,
    bam_paths: Sequence[Union[str, Path]],
    caller: ThresholdModCaller,
    executor: Executor,
    min_coverage: int,
    max_filtered_positions: int,
    io_threads: int = 1,
    n_chunks: int = 1,
    fetcher: Optional[Fetcher] = None,
) -> ProcessedSet:
    """
    Compute the entropy of every window of a ``GenomeWindows`` set.

    Parameters:
        genome_windows: Windows of one contig stretch or one region.
        bam_paths: Indexed modBAMs; reads from all of them are pooled.
        caller: Mod-call service applied to every read position.
        executor: Shared pool used for fetches, pattern updates and entropy.
        min_coverage: Minimum valid reads per window position.
        max_filtered_positions: Reads with more filtered positions are rejected.
        io_threads: htslib threads for each BAM handle.
        n_chunks: Number of disjoint window chunks updated in parallel, usually the pool size.
        fetcher: Read source, ``fetch_read_mod_calls`` unless overridden.

    Returns:
        list[WindowEntropy] in window order, or a RegionEntropy for a named region.
    """
    reads = fetch_reads_for_set(genome_windows, bam_paths, caller, executor, io_threads, fetcher)

    windows = genome_windows.windows
    if reads:
        chunks = chunk_indices(len(windows), n_chunks)
        added = sum(
            executor.map(
                lambda idx: _apply_reads(windows, idx, reads, max_filtered_positions), chunks
            )
        )
        logger.debug(
            f"{genome_windows.chrom}: {len(reads)} reads gave {added} patterns over {len(windows)} windows"
        )

    chrom_id = genome_windows.chrom_id
    window_entropies = list(
        executor.map(lambda window: into_entropy(window, chrom_id, min_coverage), windows)
    )

    if genome_windows.region_name is None:
        return window_entropies
    return aggregate_region(
        window_entropies, chrom_id, genome_windows.get_range(), genome_windows.region_name
    )
