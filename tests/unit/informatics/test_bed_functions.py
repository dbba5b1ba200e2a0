from collections import Counter

import pytest

from modentropy.informatics.bed_functions import BedParseError, BedRegion, read_bed_regions


def test_parse_bed3_synthesizes_name():
    region = BedRegion.parse_line("chr1\t100\t200\n")
    assert region == BedRegion("chr1", 100, 200, "chr1:100-200")
    assert region.length == 100


def test_parse_bed_keeps_fourth_field():
    assert BedRegion.parse_line("chr1\t100\t101\tfoo\t400\t.\tmore\n").name == "foo"
    assert BedRegion.parse_line("chr20\t279148\t279507\tCpG: 39").name == "CpG: 39"


@pytest.mark.parametrize(
    "line, message",
    [
        ("chr1\t100", "expected at least 3 fields"),
        ("chr1\tabc\t200", "BED3"),
        ("chr1\t200\t200", "end must be after start"),
        ("chr1\t-5\t10", "non-negative"),
    ],
)
def test_parse_bed_errors(line, message):
    with pytest.raises(BedParseError, match=message):
        BedRegion.parse_line(line)


def test_read_bed_regions_counts_failures(tmp_path):
    bed = tmp_path / "regions.bed"
    bed.write_text(
        "track name=test\n"
        "chr1\t0\t10\tgood\n"
        "\n"
        "chr1\t10\t5\tbad\n"
        "chr1\t20\t15\tbad2\n"
        "chr2\t5\t8\n"
    )
    regions, failures = read_bed_regions(bed)
    assert [r.name for r in regions] == ["good", "chr2:5-8"]
    assert failures == Counter({"end must be after start": 2})


def test_read_bed_regions_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        read_bed_regions(tmp_path / "missing.bed")
