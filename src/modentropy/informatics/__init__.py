from .bam_functions import (
    AlignmentFetchError,
    ReadModCalls,
    ensure_bam_index,
    fetch_read_mod_calls,
    sample_call_probabilities,
)
from .bed_functions import BedParseError, BedRegion, read_bed_regions
from .fasta_functions import ReferenceRecord, ReferenceSequences
from .modcall import BaseModCall, ThresholdModCaller, estimate_pass_thresholds
from .motifs import Motif, MotifHit, resolve_motifs

__all__ = [
    "AlignmentFetchError",
    "BaseModCall",
    "BedParseError",
    "BedRegion",
    "Motif",
    "MotifHit",
    "ReadModCalls",
    "ReferenceRecord",
    "ReferenceSequences",
    "ThresholdModCaller",
    "ensure_bam_index",
    "estimate_pass_thresholds",
    "fetch_read_mod_calls",
    "read_bed_regions",
    "resolve_motifs",
    "sample_call_probabilities",
]
