from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Tuple, Union

from modentropy.logging_utils import get_logger

logger = get_logger(__name__)


class BedParseError(ValueError):
    """A BED line that cannot be used as a region."""


@dataclass(frozen=True)
class BedRegion:
    chrom: str
    start: int
    end: int
    name: str

    @property
    def length(self) -> int:
        return self.end - self.start

    @classmethod
    def parse_line(cls, line: str) -> "BedRegion":
        """
        Parse one tab-separated BED line.

        Three columns synthesize the name as ``chrom:start-end``; with four or more the
        fourth field is kept verbatim (it may contain spaces).
        """
        raw = line.rstrip("\r\n")
        fields = raw.split("\t") if "\t" in raw else raw.split()
        if len(fields) < 3:
            raise BedParseError(f"failed to parse {raw!r} into BED3 line, expected at least 3 fields")
        chrom = fields[0].strip()
        if not chrom:
            raise BedParseError(f"failed to parse {raw!r} into BED3 line, missing chrom")
        try:
            start = int(fields[1])
            end = int(fields[2])
        except ValueError as e:
            raise BedParseError(f"failed to parse {raw!r} into BED3 line, {e}") from e
        if start < 0:
            raise BedParseError("start must be non-negative")
        if end <= start:
            raise BedParseError("end must be after start")
        if len(fields) == 3:
            name = f"{chrom}:{start}-{end}"
        else:
            name = fields[3].strip()
            if not name:
                raise BedParseError(f"failed to parse {raw!r}, empty name field")
        return cls(chrom, start, end, name)


def iter_bed_lines(bed: Union[str, Path]) -> Iterator[str]:
    """Yield non-empty, non-header lines from a BED file."""
    with Path(bed).open() as f:
        for line in f:
            if not line.strip():
                continue
            if line.startswith(("#", "track", "browser")):
                continue
            yield line


def read_bed_regions(bed: Union[str, Path]) -> Tuple[List[BedRegion], Counter]:
    """
    Parse every line of a regions BED file.

    Parameters:
        bed: Path to the BED file.

    Returns:
        list[BedRegion]: Regions in file order.
        Counter: Failure reason -> number of lines rejected for it.
    """
    bed = Path(bed)
    if not bed.exists():
        raise FileNotFoundError(f"failed to load regions at {bed}")
    regions: List[BedRegion] = []
    failures: Counter = Counter()
    for line in iter_bed_lines(bed):
        try:
            regions.append(BedRegion.parse_line(line))
        except BedParseError as e:
            failures[str(e)] += 1
    log_failure_reasons(failures, f"parsing regions BED file {bed}")
    return regions, failures


def log_failure_reasons(failures: Counter, context: str) -> None:
    if not failures:
        return
    logger.debug(f"failure reasons while {context}")
    for cause, count in sorted(failures.items(), key=lambda item: item[1]):
        logger.debug(f"\t {cause}: {count}")
