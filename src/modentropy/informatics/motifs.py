"""Sequence motifs and the hits they produce while scanning a reference."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple

from Bio.Data.IUPACData import ambiguous_dna_letters, ambiguous_dna_values
from Bio.Seq import reverse_complement

from modentropy.constants import CPG_MOTIF, NEGATIVE_STRAND, POSITIVE_STRAND
from modentropy.logging_utils import get_logger

logger = get_logger(__name__)


def _iupac_to_regex(sequence: str) -> str:
    """Translate an IUPAC DNA sequence into a regular expression body."""
    parts = []
    for base in sequence:
        if base not in ambiguous_dna_letters:
            raise ValueError(f"Invalid IUPAC base '{base}' in motif {sequence}")
        options = ambiguous_dna_values[base]
        parts.append(options if len(options) == 1 else f"[{options}]")
    return "".join(parts)


@dataclass(frozen=True)
class Motif:
    """A sequence motif with the 0-based offset of the modified base within it.

    Hits are reported at the modified base on both strands: forward matches at
    ``match_start + offset`` and reverse-complement matches at
    ``match_start + rc_offset``. Matching is overlapping, so ``CGCG`` yields two
    CpG hits per strand.
    """

    sequence: str
    offset: int
    _forward: "re.Pattern[str]" = field(init=False, repr=False, compare=False)
    _reverse: "re.Pattern[str]" = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        sequence = str(self.sequence).strip().upper()
        if not sequence:
            raise ValueError("Motif sequence must not be empty")
        offset = int(self.offset)
        if not 0 <= offset < len(sequence):
            raise ValueError(
                f"Motif offset {offset} is outside of motif {sequence} (length {len(sequence)})"
            )
        object.__setattr__(self, "sequence", sequence)
        object.__setattr__(self, "offset", offset)
        object.__setattr__(self, "_forward", re.compile(f"(?=({_iupac_to_regex(sequence)}))"))
        rc = reverse_complement(sequence)
        object.__setattr__(self, "_reverse", re.compile(f"(?=({_iupac_to_regex(rc)}))"))

    @property
    def length(self) -> int:
        return len(self.sequence)

    @property
    def rc_offset(self) -> int:
        """Offset of the modified base within the reverse complement of the motif."""
        return self.length - 1 - self.offset

    @property
    def is_palindrome(self) -> bool:
        return reverse_complement(self.sequence) == self.sequence

    def negative_strand_position(self, position: int) -> Optional[int]:
        """Mirrored (-) strand coordinate for a (+) strand hit at ``position``.

        Only palindromic motifs have a mirrored site, e.g. the G of a CpG is one
        base to the right of the C.
        """
        if not self.is_palindrome:
            return None
        return position + self.rc_offset - self.offset

    def find_hits(self, sequence: str) -> List[Tuple[int, str]]:
        """All ``(position, strand)`` hits of the modified base in ``sequence``."""
        hits = [(m.start() + self.offset, POSITIVE_STRAND) for m in self._forward.finditer(sequence)]
        hits.extend(
            (m.start() + self.rc_offset, NEGATIVE_STRAND) for m in self._reverse.finditer(sequence)
        )
        return hits

    def first_hit(self, sequence: str) -> Optional[int]:
        """Leftmost hit position on either strand, or None when the motif is absent."""
        candidates = []
        forward = self._forward.search(sequence)
        if forward is not None:
            candidates.append(forward.start() + self.offset)
        reverse = self._reverse.search(sequence)
        if reverse is not None:
            candidates.append(reverse.start() + self.rc_offset)
        return min(candidates) if candidates else None

    def __str__(self) -> str:
        return f"{self.sequence}:{self.offset}"


@dataclass(frozen=True)
class MotifHit:
    """A motif hit in genome coordinates, consumed immediately into a window."""

    position: int
    neg_position: Optional[int]
    strand: str
    base: str


def motif_search_adjustment(motifs: Iterable[Motif]) -> int:
    """Longest multi-base motif length, used to catch hits straddling a scan cursor."""
    return max((motif.length for motif in motifs if motif.length > 1), default=0)


def find_start_position(sequence: str, motifs: Sequence[Motif]) -> Optional[int]:
    """First position in ``sequence`` hit by any motif."""
    hits = [hit for hit in (motif.first_hit(sequence) for motif in motifs) if hit is not None]
    return min(hits) if hits else None


def resolve_motifs(
    motif_specs: Optional[Iterable[Sequence]] = None,
    cpg: bool = False,
    combine_strands: bool = False,
) -> List[Motif]:
    """Build motifs from ``[sequence, offset]`` pairs (and the CpG shortcut).

    Parameters:
        motif_specs: Iterable of ``(sequence, offset)`` pairs or ``"SEQ:offset"`` strings.
        cpg: Add the CpG motif (``CG``, offset 0).
        combine_strands: Require every motif to be palindromic.

    Returns:
        list[Motif]: De-duplicated motifs in the order given.
    """
    motifs: List[Motif] = []
    for spec in motif_specs or []:
        if isinstance(spec, str):
            sequence, _, offset = spec.partition(":")
            if not offset:
                raise ValueError(f"Motif '{spec}' must be given as SEQUENCE:OFFSET")
            motif = Motif(sequence, int(offset))
        else:
            if len(spec) != 2:
                raise ValueError(f"Motif {spec!r} must be a [sequence, offset] pair")
            motif = Motif(spec[0], int(spec[1]))
        if motif not in motifs:
            motifs.append(motif)
    if cpg:
        motif = Motif(*CPG_MOTIF)
        if motif not in motifs:
            motifs.append(motif)
    if not motifs:
        raise ValueError("At least one motif is required (set motifs or cpg)")
    if combine_strands:
        not_palindromic = [str(m) for m in motifs if not m.is_palindrome]
        if not_palindromic:
            raise ValueError(
                f"Combining strands requires palindromic motifs, got {', '.join(not_palindromic)}"
            )
    logger.debug(f"Using motifs {', '.join(str(m) for m in motifs)}")
    return motifs
