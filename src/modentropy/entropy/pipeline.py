"""End-to-end entropy run driven by an ``EntropyConfig``."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Optional

from tqdm import tqdm

from modentropy.entropy.processing import process_window_set
from modentropy.entropy.scanner import SlidingWindows
from modentropy.entropy.writers import open_writer
from modentropy.informatics.bam_functions import (
    AlignmentFetchError,
    ensure_bam_index,
    sample_call_probabilities,
)
from modentropy.informatics.fasta_functions import ReferenceSequences
from modentropy.informatics.modcall import ThresholdModCaller, estimate_pass_thresholds
from modentropy.informatics.motifs import Motif, resolve_motifs
from modentropy.logging_utils import get_logger, resolve_log_level

if TYPE_CHECKING:
    from modentropy.config import EntropyConfig

logger = get_logger(__name__)

STDOUT_NAMES = {"-", "stdout"}


@dataclass
class EntropyRunSummary:
    rows_written: int = 0
    failure_count: int = 0
    failure_reasons: Dict[str, int] = field(default_factory=dict)
    window_sets: int = 0
    dropped_sets: int = 0


def build_caller(cfg: "EntropyConfig") -> ThresholdModCaller:
    """
    Mod-call service for the run.

    ``no_filtering`` passes every call, an explicit ``filter_threshold`` applies to all
    canonical bases, otherwise per-base thresholds are estimated from sampled reads.
    """
    mod_thresholds = cfg.mod_thresholds or {}
    if cfg.no_filtering:
        logger.info("not filtering modification calls")
        return ThresholdModCaller.pass_all()
    if cfg.filter_threshold is not None:
        logger.info(f"using filter threshold {cfg.filter_threshold}")
        return ThresholdModCaller(mod_thresholds=mod_thresholds, default_threshold=cfg.filter_threshold)

    logger.info(
        f"estimating pass thresholds from {cfg.sample_num_reads} reads "
        f"at the {cfg.filter_percentile} quantile"
    )
    sampled = sample_call_probabilities(
        cfg.in_bams, cfg.sample_num_reads, seed=cfg.seed, io_threads=cfg.io_threads
    )
    base_thresholds = estimate_pass_thresholds(sampled, cfg.filter_percentile)
    return ThresholdModCaller(base_thresholds, mod_thresholds)


def build_scanner(
    cfg: "EntropyConfig", reference: ReferenceSequences, motifs: List[Motif]
) -> SlidingWindows:
    kwargs = dict(
        combine_strands=cfg.combine_strands,
        num_positions=cfg.num_positions,
        window_size=cfg.window_size,
        batch_size=cfg.batch_size,
    )
    if cfg.regions_bed:
        return SlidingWindows.from_regions(cfg.regions_bed, reference, motifs, **kwargs)
    return SlidingWindows(reference, motifs, **kwargs)


def _output_target(out_bed: Optional[str]) -> Optional[Path]:
    if out_bed is None or str(out_bed).strip().lower() in STDOUT_NAMES:
        return None
    return Path(out_bed)


def run_entropy(
    cfg: "EntropyConfig",
    reference: Optional[ReferenceSequences] = None,
    caller: Optional[ThresholdModCaller] = None,
) -> EntropyRunSummary:
    """
    Compute methylation entropy for every window (or region) of a reference.

    Parameters:
        cfg: Validated run configuration.
        reference: Reference lookup, opened from ``cfg.reference_fasta`` when omitted.
        caller: Mod-call service, built with ``build_caller`` when omitted.

    Returns:
        EntropyRunSummary: Rows written and failure tallies.
    """
    motifs = resolve_motifs(cfg.motifs, cpg=cfg.cpg, combine_strands=cfg.combine_strands)
    regions_mode = bool(cfg.regions_bed)
    out_target = _output_target(cfg.out_bed)

    for bam in cfg.in_bams:
        ensure_bam_index(bam, threads=cfg.io_threads)

    owns_reference = reference is None
    if reference is None:
        reference = ReferenceSequences.from_fasta(cfg.reference_fasta, bam_path=cfg.in_bams[0])
    if caller is None:
        caller = build_caller(cfg)
    logger.debug(f"using mod caller {caller!r}")

    writer = open_writer(
        out_target,
        regions_mode,
        prefix=cfg.prefix,
        header=cfg.header,
        force=cfg.force,
        verbose=resolve_log_level(cfg.log_level) <= logging.DEBUG,
    )

    summary = EntropyRunSummary()
    chrom_id_to_name = reference.chrom_id_to_name
    try:
        scanner = build_scanner(cfg, reference, motifs)
        logger.info(f"scanning {scanner.total_length()} bases with {len(motifs)} motifs")
        progress = tqdm(
            desc="Computing entropy",
            unit="windows",
            disable=cfg.suppress_progress,
        )
        workers = max(1, cfg.threads)
        with ThreadPoolExecutor(max_workers=workers) as executor:
            for batch in scanner:
                for genome_windows in batch:
                    summary.window_sets += 1
                    try:
                        result = process_window_set(
                            genome_windows,
                            cfg.in_bams,
                            caller,
                            executor,
                            cfg.min_coverage,
                            cfg.max_filtered_positions,
                            io_threads=cfg.io_threads,
                            n_chunks=workers,
                        )
                    except AlignmentFetchError as e:
                        summary.dropped_sets += 1
                        logger.error(f"dropping {len(genome_windows)} windows, {e}")
                        continue
                    writer.write(result, chrom_id_to_name, drop_zeros=cfg.drop_zeros)
                    progress.update(len(genome_windows))
                    progress.set_postfix(rows=writer.rows_written, failed=writer.failure_count)
        progress.close()
    finally:
        writer.close()
        if owns_reference:
            reference.close()

    summary.rows_written = writer.rows_written
    summary.failure_count = writer.failure_count
    summary.failure_reasons = dict(writer.failure_reasons)
    logger.info(f"finished, wrote {summary.rows_written} rows")
    if summary.failure_count:
        logger.info(f"{summary.failure_count} windows or regions failed")
        logger.info("failure reasons:\n" + writer.failure_summary().to_string(index=False))
    if summary.dropped_sets:
        logger.warning(f"{summary.dropped_sets} window sets dropped after alignment fetch failures")
    return summary
