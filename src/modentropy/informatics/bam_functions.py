from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from math import ceil
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from modentropy.constants import DNA_COMPLEMENT, ML_PROB_BINS, NEGATIVE_STRAND, POSITIVE_STRAND
from modentropy.informatics.modcall import BaseModCall, ThresholdModCaller, max_call_probability
from modentropy.logging_utils import get_logger
from modentropy.optional_imports import require

if TYPE_CHECKING:
    import pysam as pysam_types

try:
    import pysam
except Exception:
    pysam = None  # type: ignore

logger = get_logger(__name__)

# canonical base -> query position -> mod code -> probability
CallProbabilities = Dict[str, Dict[int, Dict[str, float]]]


class AlignmentFetchError(RuntimeError):
    """Every alignment source failed for a fetch."""


@dataclass
class ReadModCalls:
    """Modification calls of one read keyed by ``(canonical base, reference position)``."""

    mod_calls: Dict[Tuple[str, int], BaseModCall]
    reference_start: int
    reference_end: int
    strand: str
    name: str = ""


def _require_pysam() -> "pysam_types":
    """Return the pysam module or raise if unavailable."""
    if pysam is not None:
        return pysam
    return require("pysam", extra="pysam", purpose="reading modBAM alignments")


def _has_bam_index(bam_path: Path) -> bool:
    """Return True if the BAM index exists alongside the BAM."""
    return (
        bam_path.with_suffix(bam_path.suffix + ".bai").exists()
        or Path(str(bam_path) + ".bai").exists()
        or bam_path.with_suffix(bam_path.suffix + ".csi").exists()
    )


def ensure_bam_index(bam_path: Union[str, Path], threads: Optional[int] = None) -> None:
    """Ensure a BAM index exists, creating one with pysam if needed."""
    bam_path = Path(bam_path)
    if not bam_path.exists():
        raise FileNotFoundError(f"Alignment file not found: {bam_path}")
    if _has_bam_index(bam_path):
        return
    logger.info(f"Indexing {bam_path}")
    pysam_mod = _require_pysam()
    if threads:
        pysam_mod.index(str(bam_path), "-@", str(threads))
    else:
        pysam_mod.index(str(bam_path))


def _parse_mm_modes(read) -> Dict[Tuple[str, int, str], bool]:
    """
    Read the MM tag headers into ``(canonical base, strand, code) -> implicit``.

    ``C+m?`` marks explicit mode (unlisted bases carry no call), ``C+m.`` or ``C+m``
    implicit mode (unlisted bases are canonical). Strand 0 is ``+``, 1 is ``-``.
    """
    tag = next((t for t in ("MM", "Mm") if read.has_tag(t)), None)
    if tag is None:
        return {}
    modes: Dict[Tuple[str, int, str], bool] = {}
    for entry in str(read.get_tag(tag)).split(";"):
        header = entry.split(",")[0].strip()
        if len(header) < 3:
            continue
        base, strand = header[0].upper(), 0 if header[1] == "+" else 1
        codes = header[2:]
        implicit = True
        if codes.endswith("?"):
            implicit, codes = False, codes[:-1]
        elif codes.endswith("."):
            codes = codes[:-1]
        for code in [codes] if codes.isdigit() else list(codes):
            modes[(base, strand, code)] = implicit
    return modes


def read_call_probabilities(read, include_inferred: bool = True) -> Optional[CallProbabilities]:
    """
    Collect modification probabilities per canonical base and query position.

    Probabilities come from ``read.modified_bases`` (``(ML + 0.5) / 256``). In implicit
    mode every unlisted occurrence of the canonical base is an inferred canonical call
    (empty probability mapping) unless ``include_inferred`` is False.

    Returns:
        dict or None: None when the read has no usable modification tags or carries
        calls on both strands (duplex).
    """
    mods = read.modified_bases
    if not mods:
        return None
    strands = {strand for (_, strand, _) in mods}
    if len(strands) > 1:
        logger.debug(f"read {read.query_name}, duplex not yet supported")
        return None

    modes = _parse_mm_modes(read)
    probs: CallProbabilities = defaultdict(lambda: defaultdict(dict))
    implicit_bases: Dict[str, bool] = {}
    for (base, strand, code), calls in mods.items():
        base = base.upper()
        code = str(code)
        implicit_bases[base] = implicit_bases.get(base, True) and modes.get((base, strand, code), True)
        for query_position, qual in calls:
            if qual < 0:
                continue
            probs[base][query_position][code] = (qual + 0.5) / ML_PROB_BINS

    if include_inferred:
        sequence = read.query_sequence or ""
        for base, implicit in implicit_bases.items():
            if not implicit:
                continue
            target = DNA_COMPLEMENT.get(base, base) if read.is_reverse else base
            base_probs = probs[base]
            for query_position, read_base in enumerate(sequence):
                if read_base == target and query_position not in base_probs:
                    base_probs[query_position] = {}
    return probs


def _is_usable_record(read) -> bool:
    if read.is_unmapped or read.is_secondary or read.is_supplementary:
        return False
    return bool(read.query_sequence)


def read_to_mod_calls(read, caller: ThresholdModCaller) -> Optional[ReadModCalls]:
    """Call every modification-annotated position of a read on the reference."""
    try:
        probs = read_call_probabilities(read)
    except (ValueError, KeyError) as e:
        logger.debug(f"read {read.query_name}, failed to parse modbase info, {e}")
        return None
    if probs is None:
        return None

    query_to_ref = dict(read.get_aligned_pairs(matches_only=True))
    mod_calls: Dict[Tuple[str, int], BaseModCall] = {}
    for base, positions in probs.items():
        for query_position, mod_probs in positions.items():
            ref_position = query_to_ref.get(query_position)
            if ref_position is None:
                continue
            mod_calls[(base, ref_position)] = caller.call(base, mod_probs)

    return ReadModCalls(
        mod_calls=mod_calls,
        reference_start=read.reference_start,
        reference_end=read.reference_end,
        strand=NEGATIVE_STRAND if read.is_reverse else POSITIVE_STRAND,
        name=read.query_name,
    )


def fetch_read_mod_calls(
    bam_path: Union[str, Path],
    chrom: str,
    start: int,
    end: int,
    caller: ThresholdModCaller,
    io_threads: int = 1,
) -> List[ReadModCalls]:
    """
    Fetch primary, mapped reads overlapping ``chrom:start-end`` and call their modifications.

    Parameters:
        bam_path: Indexed, aligned modBAM.
        chrom: Contig name.
        start: 0-based start of the fetch interval.
        end: End of the fetch interval.
        caller: Mod-call service used for every position.
        io_threads: htslib decompression threads.

    Returns:
        list[ReadModCalls]: One entry per usable read.
    """
    pysam_mod = _require_pysam()
    reads: List[ReadModCalls] = []
    with pysam_mod.AlignmentFile(str(bam_path), "rb", threads=max(1, io_threads)) as bam:
        for read in bam.fetch(chrom, start, end):
            if not _is_usable_record(read):
                continue
            read_calls = read_to_mod_calls(read, caller)
            if read_calls is not None:
                reads.append(read_calls)
    return reads


def sample_call_probabilities(
    bam_paths: Sequence[Union[str, Path]],
    num_reads: int,
    seed: Optional[int] = None,
    io_threads: int = 1,
) -> Dict[str, List[float]]:
    """
    Sample max call probabilities per canonical base for threshold estimation.

    Reads are drawn uniformly at a rate targeting ``num_reads`` reads over all BAMs.
    Inferred canonical calls are excluded.

    Returns:
        dict: Canonical base -> list of max call probabilities.
    """
    pysam_mod = _require_pysam()
    rng = np.random.default_rng(seed)
    per_bam_target = ceil(num_reads / max(1, len(bam_paths)))
    sampled: Dict[str, List[float]] = defaultdict(list)
    for bam_path in bam_paths:
        taken = 0
        with pysam_mod.AlignmentFile(str(bam_path), "rb", threads=max(1, io_threads)) as bam:
            mapped = bam.mapped if bam.has_index() else 0
            frac = 1.0 if mapped <= per_bam_target else per_bam_target / mapped
            for read in bam.fetch(until_eof=True):
                if taken >= per_bam_target:
                    break
                if not _is_usable_record(read):
                    continue
                if frac < 1.0 and rng.random() >= frac:
                    continue
                try:
                    probs = read_call_probabilities(read, include_inferred=False)
                except (ValueError, KeyError) as e:
                    logger.debug(f"read {read.query_name}, failed to parse modbase info, {e}")
                    continue
                if probs is None:
                    continue
                taken += 1
                for base, positions in probs.items():
                    sampled[base].extend(max_call_probability(p) for p in positions.values())
        logger.debug(f"Sampled {taken} reads from {bam_path}")
    return dict(sampled)
