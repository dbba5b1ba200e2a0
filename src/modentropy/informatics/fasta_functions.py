from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from modentropy.logging_utils import get_logger

logger = get_logger(__name__)

try:
    import pysam
except Exception:
    pysam = None  # type: ignore

try:
    import shutil
    import subprocess
except Exception:  # pragma: no cover - stdlib
    shutil = None  # type: ignore
    subprocess = None  # type: ignore


def _resolve_fasta_backend(backend: str | None = "auto") -> str:
    """Resolve the backend to use for FASTA access.

    Random access happens once per contig or region, so pysam is preferred and
    ``samtools faidx`` is the fallback.
    """
    choice = (backend or "auto").strip().lower()
    if choice not in {"auto", "python", "cli"}:
        raise ValueError("fasta_backend must be one of: auto, python, cli")
    have_samtools = shutil is not None and shutil.which("samtools") is not None
    if choice == "python":
        if pysam is None:
            raise RuntimeError("fasta_backend=python requires pysam to be installed.")
        return "python"
    if choice == "cli":
        if not have_samtools:
            raise RuntimeError("fasta_backend=cli requires samtools in PATH.")
        return "cli"
    if pysam is not None:
        return "python"
    if have_samtools:
        return "cli"
    raise RuntimeError("FASTA access requires pysam or samtools in PATH.")


def _ensure_fasta_index(fasta: Path) -> Path:
    fai = fasta.with_suffix(fasta.suffix + ".fai")
    if fai.exists():
        return fai
    if subprocess is None or shutil is None or not shutil.which("samtools"):
        if pysam is not None:
            pysam.faidx(str(fasta))
            return fai
        raise RuntimeError("FASTA indexing requires pysam or samtools in PATH.")
    cp = subprocess.run(
        ["samtools", "faidx", str(fasta)],
        stdout=subprocess.DEVNULL,
        stderr=subprocess.PIPE,
        text=True,
    )
    if cp.returncode != 0:
        raise RuntimeError(f"samtools faidx failed (exit {cp.returncode}):\n{cp.stderr}")
    return fai


def _read_fai_lengths(fai: Path) -> Dict[str, int]:
    lengths: Dict[str, int] = {}
    with fai.open() as f:
        for line in f:
            if not line.strip():
                continue
            chrom, size = line.split("\t")[:2]
            lengths[chrom] = int(size)
    return lengths


def _bed_to_faidx_region(chrom: str, start: int, end: int) -> str:
    """Convert 0-based half-open BED coords to samtools faidx region."""
    start1 = start + 1
    end1 = end
    if start1 > end1:
        start1, end1 = end1, start1
    return f"{chrom}:{start1}-{end1}"


def _fetch_sequence_with_samtools(fasta: Path, chrom: str, start: int, end: int) -> str:
    if subprocess is None or shutil is None:
        raise RuntimeError("samtools backend is unavailable.")
    if not shutil.which("samtools"):
        raise RuntimeError("samtools is required but not available in PATH.")
    region = _bed_to_faidx_region(chrom, start, end)
    cp = subprocess.run(
        ["samtools", "faidx", str(fasta), region],
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
    )
    if cp.returncode != 0:
        raise RuntimeError(f"samtools faidx failed (exit {cp.returncode}):\n{cp.stderr}")
    lines = [line.strip() for line in cp.stdout.splitlines() if line and not line.startswith(">")]
    return "".join(lines)


def _bam_reference_lengths(bam_path: Path) -> List[Tuple[str, int]]:
    if pysam is None:
        raise RuntimeError("Reading the BAM header requires pysam.")
    with pysam.AlignmentFile(str(bam_path), "rb") as bam:
        return list(zip(bam.references, bam.lengths))


@dataclass(frozen=True)
class ReferenceRecord:
    """A contig, or a slice of one, to be scanned. ``start`` is the genome offset of the slice."""

    tid: int
    start: int
    length: int
    name: str

    @property
    def end(self) -> int:
        return self.start + self.length


class ReferenceSequences:
    """
    Reference contigs keyed by chromosome id, with lazy sequence access.

    Chromosome ids follow the order of the alignment header so that results can be
    reported against it. Sequences are upper-cased on access.
    """

    def __init__(
        self,
        contig_lengths: Mapping[str, int],
        fetch: Callable[[str, int, int], str],
        close: Optional[Callable[[], None]] = None,
        chrom_ids: Optional[Mapping[str, int]] = None,
    ):
        self._lengths: Dict[str, int] = dict(contig_lengths)
        if chrom_ids is None:
            chrom_ids = {name: tid for tid, name in enumerate(self._lengths)}
        self._name_to_tid: Dict[str, int] = {name: chrom_ids[name] for name in self._lengths}
        self._fetch = fetch
        self._close = close

    @classmethod
    def from_mapping(cls, sequences: Mapping[str, str]) -> "ReferenceSequences":
        """In-memory reference, contig ids follow insertion order."""
        seqs = {name: str(seq).upper() for name, seq in sequences.items()}
        return cls(
            {name: len(seq) for name, seq in seqs.items()},
            lambda name, start, end: seqs[name][start:end],
        )

    @classmethod
    def from_fasta(
        cls,
        fasta: str | Path,
        bam_path: str | Path | None = None,
        backend: str | None = "auto",
    ) -> "ReferenceSequences":
        """
        Open an indexed FASTA, restricted to (and ordered by) the contigs of a BAM header.

        Parameters:
            fasta: Reference FASTA, indexed on the fly if no ``.fai`` exists.
            bam_path: Alignment file whose header defines contig order and ids.
            backend: ``auto``, ``python`` (pysam) or ``cli`` (samtools faidx).

        Returns:
            ReferenceSequences
        """
        fasta = Path(fasta)
        if not fasta.exists():
            raise FileNotFoundError(f"Reference FASTA not found: {fasta}")
        backend_choice = _resolve_fasta_backend(backend)
        fai = _ensure_fasta_index(fasta)
        fasta_lengths = _read_fai_lengths(fai)

        chrom_ids: Optional[Dict[str, int]] = None
        if bam_path is not None:
            contig_lengths: Dict[str, int] = {}
            chrom_ids = {}
            for tid, (name, length) in enumerate(_bam_reference_lengths(Path(bam_path))):
                if name not in fasta_lengths:
                    logger.debug(f"Contig {name} is in the alignment header but not in {fasta}, skipping")
                    continue
                if fasta_lengths[name] != length:
                    logger.warning(
                        f"Contig {name} has length {fasta_lengths[name]} in {fasta} "
                        f"but {length} in the alignment header"
                    )
                contig_lengths[name] = fasta_lengths[name]
                chrom_ids[name] = tid
        else:
            contig_lengths = fasta_lengths

        if not contig_lengths:
            raise ValueError(f"No contigs shared between {fasta} and the alignment header")

        if backend_choice == "python":
            handle = pysam.FastaFile(str(fasta))
            return cls(
                contig_lengths,
                lambda name, start, end: handle.fetch(name, start, end),
                handle.close,
                chrom_ids=chrom_ids,
            )
        return cls(
            contig_lengths,
            lambda name, start, end: _fetch_sequence_with_samtools(fasta, name, start, end),
            chrom_ids=chrom_ids,
        )

    def __contains__(self, name: str) -> bool:
        return name in self._lengths

    def __len__(self) -> int:
        return len(self._lengths)

    def name_to_chrom_id(self, name: str) -> Optional[int]:
        return self._name_to_tid.get(name)

    @property
    def chrom_id_to_name(self) -> Dict[int, str]:
        return {tid: name for name, tid in self._name_to_tid.items()}

    def contig_length(self, name: str) -> int:
        return self._lengths[name]

    def records(self) -> List[ReferenceRecord]:
        """Whole-contig records in chromosome id order."""
        return [
            ReferenceRecord(self._name_to_tid[name], 0, length, name)
            for name, length in self._lengths.items()
        ]

    def get_subsequence(self, name: str, start: int, end: int) -> str:
        if name not in self._lengths:
            raise ValueError(f"contig {name} not found in reference")
        if start < 0 or end <= start or end > self._lengths[name]:
            raise ValueError(
                f"invalid interval {start}-{end} for contig {name} of length {self._lengths[name]}"
            )
        return self._fetch(name, start, end).upper()

    def get_sequence(self, record: ReferenceRecord) -> str:
        return self.get_subsequence(record.name, record.start, record.end)

    def total_length(self) -> int:
        return sum(self._lengths.values())

    def close(self) -> None:
        if self._close is not None:
            self._close()
            self._close = None
