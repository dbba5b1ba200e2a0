"""
Genome scanner: walks reference sequences and emits batches of motif windows.

``SlidingWindows`` moves a cursor along each sequence. At every step it searches
``window_size`` bases ahead for motif hits, builds a window from the first
``num_positions`` hits (per strand, or mirrored pairs when strands are combined)
and advances to one base past the window's leftmost coordinate. Hit coordinates
are genome coordinates; the cursor is relative to the sequence being scanned,
which differs from the genome only when scanning BED regions.
"""

from __future__ import annotations

from collections import Counter, deque
from pathlib import Path
from typing import Deque, Dict, Iterator, List, Optional, Sequence, Tuple, Union

from modentropy.constants import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_NUM_POSITIONS,
    DEFAULT_WINDOW_SIZE,
    DNA_COMPLEMENT,
    NEGATIVE_STRAND,
    POSITIVE_STRAND,
)
from modentropy.entropy.windows import (
    BaseAndPosition,
    CombinedWindow,
    GenomeWindow,
    GenomeWindows,
    StrandedWindow,
)
from modentropy.informatics.bed_functions import BedRegion, log_failure_reasons, read_bed_regions
from modentropy.informatics.fasta_functions import ReferenceRecord, ReferenceSequences
from modentropy.informatics.motifs import (
    Motif,
    MotifHit,
    find_start_position,
    motif_search_adjustment,
)
from modentropy.logging_utils import get_logger

logger = get_logger(__name__)


class SlidingWindows:
    """
    Iterator over batches of ``GenomeWindows``.

    Each call to ``next_batch`` (or ``next``) returns up to ``batch_size`` window
    sets. Whole-contig scanning splits a contig into sets of at most
    ``batch_size + 1`` windows; region scanning keeps each region in a single set
    tagged with the region name. The scanner is single-use and not thread-safe.
    """

    def __init__(
        self,
        reference: ReferenceSequences,
        motifs: Sequence[Motif],
        combine_strands: bool = False,
        num_positions: int = DEFAULT_NUM_POSITIONS,
        window_size: int = DEFAULT_WINDOW_SIZE,
        batch_size: int = DEFAULT_BATCH_SIZE,
        records: Optional[Sequence[ReferenceRecord]] = None,
        region_names: Optional[Sequence[str]] = None,
    ):
        if num_positions < 1:
            raise ValueError("num_positions must be at least 1")
        if window_size < 1:
            raise ValueError("window_size must be at least 1")
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if not motifs:
            raise ValueError("at least one motif is required")

        self.reference = reference
        self.motifs: List[Motif] = list(motifs)
        self.combine_strands = combine_strands
        self.num_positions = num_positions
        self.window_size = window_size
        self.batch_size = batch_size
        self.motif_search_adj = motif_search_adjustment(self.motifs)

        self._work_queue: Deque[ReferenceRecord] = deque(
            reference.records() if records is None else records
        )
        self._region_names: Deque[str] = deque(region_names or [])
        if self._region_names and len(self._region_names) != len(self._work_queue):
            raise ValueError("every region record needs a region name")

        self.curr_contig: Optional[ReferenceRecord] = None
        self.curr_seq: str = ""
        self.curr_position: int = 0
        self.curr_region_name: Optional[str] = None
        self.done = False

        if not self._advance_to_next_sequence(initial=True):
            raise ValueError("didn't find at least 1 sequence with a valid start position")

    @classmethod
    def from_regions(
        cls,
        regions_bed: Union[str, Path],
        reference: ReferenceSequences,
        motifs: Sequence[Motif],
        combine_strands: bool = False,
        num_positions: int = DEFAULT_NUM_POSITIONS,
        window_size: int = DEFAULT_WINDOW_SIZE,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> "SlidingWindows":
        """
        Scan only the intervals of a BED file, one window set per region.

        Lines that do not parse, or that name a contig or interval the reference
        does not have, are skipped and tallied by reason.
        """
        regions, _ = read_bed_regions(regions_bed)

        records: List[ReferenceRecord] = []
        names: List[str] = []
        failures: Counter = Counter()
        for region in regions:
            try:
                records.append(_region_record(reference, region))
            except ValueError as e:
                failures[str(e)] += 1
                continue
            names.append(region.name)
        log_failure_reasons(failures, "matching regions to the reference")

        if not records:
            raise ValueError("no valid regions parsed")
        logger.debug(f"parsed {len(records)} regions from {regions_bed}")
        return cls(
            reference,
            motifs,
            combine_strands=combine_strands,
            num_positions=num_positions,
            window_size=window_size,
            batch_size=batch_size,
            records=records,
            region_names=names,
        )

    def total_length(self) -> int:
        """Bases left to scan, including the whole current sequence."""
        return sum(record.length for record in self._work_queue) + len(self.curr_seq)

    def at_end_of_contig(self) -> bool:
        return self.curr_contig is None or self.curr_position >= self.curr_contig.length

    def _advance_to_next_sequence(self, initial: bool = False) -> bool:
        """Rotate to the next queued sequence that has a motif hit, False when none is left."""
        while self._work_queue:
            record = self._work_queue.popleft()
            region_name = self._region_names.popleft() if self._region_names else None
            sequence = self.reference.get_sequence(record)
            start_position = find_start_position(sequence, self.motifs)
            if start_position is None:
                if region_name is not None:
                    logger.debug(f"skipping region {region_name}, no valid positions for motifs")
                else:
                    logger.debug(f"skipping {record.name}, no valid positions for motifs")
                continue
            if initial:
                label = f"region {region_name}" if region_name is not None else f"contig {record.name}"
                logger.info(
                    f"starting with {label} at 0-based position {start_position + record.start}"
                )
            self.curr_contig = record
            self.curr_seq = sequence
            self.curr_position = start_position
            self.curr_region_name = region_name
            return True
        return False

    def _update_current_contig(self) -> None:
        if not self._advance_to_next_sequence():
            self.done = True

    def _motif_hits(self, end: int) -> Tuple[List[MotifHit], List[MotifHit]]:
        """(+) and (-) hits between the cursor and ``end``, in genome coordinates."""
        cursor = self.curr_position
        contig_start = self.curr_contig.start
        subseq_start = max(cursor - self.motif_search_adj, 0)
        offset = cursor - subseq_start
        subseq = self.curr_seq[subseq_start:end]

        hits: Dict[Tuple[int, str], MotifHit] = {}
        for motif in self.motifs:
            for position, strand in motif.find_hits(subseq):
                if position < offset:
                    continue
                relative = position - offset
                genome_position = relative + cursor + contig_start
                if (genome_position, strand) in hits:
                    continue
                base = self.curr_seq[relative + cursor]
                if strand == NEGATIVE_STRAND:
                    base = DNA_COMPLEMENT.get(base, base)
                hits[(genome_position, strand)] = MotifHit(
                    genome_position,
                    motif.negative_strand_position(genome_position),
                    strand,
                    base,
                )

        ordered = sorted(hits.values(), key=lambda hit: hit.position)
        pos_hits = [hit for hit in ordered if hit.strand == POSITIVE_STRAND]
        neg_hits = [hit for hit in ordered if hit.strand == NEGATIVE_STRAND]
        return pos_hits, neg_hits

    def _take_hits_if_enough(self, motif_hits: List[MotifHit]) -> Optional[List[BaseAndPosition]]:
        positions = sorted(
            ((hit.base, hit.position) for hit in motif_hits[: self.num_positions]),
            key=lambda bp: bp[1],
        )
        if len(positions) == self.num_positions:
            return positions
        return None

    def _enough_hits_for_window(
        self, pos_hits: List[MotifHit], neg_hits: List[MotifHit]
    ) -> Optional[GenomeWindow]:
        if self.combine_strands:
            neg_to_pos: Dict[BaseAndPosition, BaseAndPosition] = {}
            for hit in pos_hits[: self.num_positions]:
                if hit.neg_position is not None:
                    neg_to_pos[(hit.base, hit.neg_position)] = (hit.base, hit.position)
            if len(neg_to_pos) < self.num_positions:
                return None
            coords = [pos for _, pos in neg_to_pos] + [pos for _, pos in neg_to_pos.values()]
            start, end = min(coords), max(coords)
            if start == end:
                end = start + 1
            return CombinedWindow((start, end), neg_to_pos, self.num_positions)

        if len(pos_hits) < self.num_positions and len(neg_hits) < self.num_positions:
            return None
        pos_positions = self._take_hits_if_enough(pos_hits)
        neg_positions = self._take_hits_if_enough(neg_hits)
        if pos_positions is not None and neg_positions is not None:
            leftmost_pos = pos_positions[0][1]
            leftmost_neg = neg_positions[0][1]
            if leftmost_pos < leftmost_neg:
                return StrandedWindow(pos_positions, None, self.num_positions)
            if leftmost_neg < leftmost_pos:
                return StrandedWindow(None, neg_positions, self.num_positions)
            return StrandedWindow(pos_positions, neg_positions, self.num_positions)
        if pos_positions is not None:
            return StrandedWindow(pos_positions, None, self.num_positions)
        if neg_positions is not None:
            return StrandedWindow(None, neg_positions, self.num_positions)
        return None

    def next_window(self) -> Optional[GenomeWindow]:
        """Advance the cursor until a window forms or the sequence ends."""
        while not self.at_end_of_contig():
            end = min(self.curr_position + self.window_size, len(self.curr_seq))
            pos_hits, neg_hits = self._motif_hits(end)
            window = self._enough_hits_for_window(pos_hits, neg_hits)
            if window is not None:
                self.curr_position = window.leftmost() + 1 - self.curr_contig.start
                return window

            contig_start = self.curr_contig.start
            hits = sorted({hit.position - contig_start for hit in pos_hits + neg_hits})
            if not hits:
                self.curr_position = end
            elif hits[0] == self.curr_position:
                self.curr_position = hits[1] if len(hits) > 1 else end
            else:
                self.curr_position = hits[0]
        return None

    def _wrap(self, windows: List[GenomeWindow], region_name: Optional[str]) -> GenomeWindows:
        return GenomeWindows(self.curr_contig.tid, self.curr_contig.name, windows, region_name)

    def next_batch(self) -> Optional[List[GenomeWindows]]:
        """The next batch of window sets, or None once every sequence is scanned."""
        batch: List[GenomeWindows] = []
        windows: List[GenomeWindow] = []
        while not self.done and len(batch) < self.batch_size:
            window = self.next_window()
            if window is not None:
                windows.append(window)

            if self.at_end_of_contig():
                if windows:
                    batch.append(self._wrap(windows, self.curr_region_name))
                windows = []
                self.curr_region_name = None
                self._update_current_contig()
                continue

            # whole-contig scanning can split a contig, a region is never split
            if self.curr_region_name is None and len(windows) > self.batch_size:
                assert not self._region_names, "region names should be empty here"
                batch.append(self._wrap(windows, None))
                windows = []

        if windows:
            assert not self._region_names, "region names should be empty here also"
            batch.append(self._wrap(windows, None))

        return batch or None

    def __iter__(self) -> Iterator[List[GenomeWindows]]:
        return self

    def __next__(self) -> List[GenomeWindows]:
        batch = self.next_batch()
        if batch is None:
            raise StopIteration
        return batch


def _region_record(reference: ReferenceSequences, region: BedRegion) -> ReferenceRecord:
    tid = reference.name_to_chrom_id(region.chrom)
    if tid is None:
        raise ValueError(f"contig {region.chrom} not found in reference")
    contig_length = reference.contig_length(region.chrom)
    if region.end > contig_length:
        raise ValueError(
            f"invalid interval {region.start}-{region.end} for contig {region.chrom} "
            f"of length {contig_length}"
        )
    return ReferenceRecord(tid, region.start, region.length, region.chrom)
