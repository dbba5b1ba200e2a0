import pytest

from modentropy.entropy.calculation import (
    InsufficientCoverage,
    MethylationEntropy,
    WindowEntropy,
    ZeroCoverage,
)
from modentropy.entropy.regions import DescriptiveStats, RegionEntropy
from modentropy.entropy.writers import RegionsWriter, WindowsWriter, open_writer

NAMES = {0: "chr1", 1: "chr2"}


def _window_results():
    return [
        WindowEntropy(0, MethylationEntropy(0.5, 4, (10, 21)), None),
        WindowEntropy(0, None, MethylationEntropy(0.0, 6, (11, 22))),
        WindowEntropy(1, ZeroCoverage(1, 3, 9), InsufficientCoverage(1, 4, 10)),
    ]


def _stats(mean):
    return DescriptiveStats(mean, mean, mean, mean, 5.0, 5, 5, 2, 1)


def test_windows_writer_rows_and_tallies(tmp_path):
    out = tmp_path / "windows.bed"
    with WindowsWriter(out, header=True) as writer:
        writer.write(_window_results(), NAMES)

    lines = out.read_text().splitlines()
    assert lines[0] == "#chrom\tstart\tend\tentropy\tstrand\tnum_reads"
    assert lines[1:] == ["chr1\t10\t21\t0.5\t+\t4", "chr1\t11\t22\t0.0\t-\t6"]
    assert writer.rows_written == 2
    assert writer.failure_count == 2
    assert writer.failure_reasons == {"zero valid coverage": 1, "insufficient valid coverage": 1}
    summary = writer.failure_summary()
    assert list(summary.columns) == ["reason", "count"]
    assert summary["count"].sum() == 2


def test_windows_writer_drop_zeros(tmp_path):
    out = tmp_path / "windows.bed"
    with WindowsWriter(out) as writer:
        writer.write(_window_results(), NAMES, drop_zeros=True)
    assert out.read_text().splitlines() == ["chr1\t10\t21\t0.5\t+\t4"]
    assert writer.rows_written == 1


def test_windows_writer_writes_to_stdout(capsys):
    writer = WindowsWriter(None)
    writer.write(_window_results()[:1], NAMES)
    writer.close()
    assert capsys.readouterr().out == "chr1\t10\t21\t0.5\t+\t4\n"


def test_windows_writer_rejects_regions_and_unknown_chroms(tmp_path):
    with WindowsWriter(tmp_path / "w.bed") as writer:
        with pytest.raises(TypeError):
            writer.write(RegionEntropy(0, (0, 5), "r"), NAMES)
        with pytest.raises(KeyError):
            writer.write([WindowEntropy(7, MethylationEntropy(0.1, 3, (0, 2)))], NAMES)


def test_regions_writer_files_and_rows(tmp_path):
    region = RegionEntropy(
        0,
        (10, 40),
        "promoter",
        _stats(0.25),
        ZeroCoverage(0, 10, 40),
        _window_results()[:2],
    )
    with RegionsWriter(tmp_path, prefix="sample", header=True) as writer:
        writer.write(region, NAMES)
        with pytest.raises(TypeError):
            writer.write(_window_results(), NAMES)

    assert writer.regions_path == tmp_path / "sample_regions.bed"
    assert writer.windows_path == tmp_path / "sample_windows.bedgraph"
    region_lines = writer.regions_path.read_text().splitlines()
    assert region_lines[0].startswith("chrom\tstart\tend\tregion_name")
    assert region_lines[1].split("\t")[:6] == ["chr1", "10", "40", "promoter", "0.25", "+"]
    assert len(region_lines) == 2
    window_lines = writer.windows_path.read_text().splitlines()
    assert window_lines[0].startswith("#chrom")
    assert len(window_lines) == 3
    assert writer.rows_written == 3
    assert writer.failure_reasons == {"zero valid coverage": 1}


def test_regions_writer_needs_a_directory(tmp_path):
    target = tmp_path / "file.bed"
    target.write_text("")
    with pytest.raises(ValueError):
        RegionsWriter(target)


def test_open_writer_refuses_to_overwrite(tmp_path):
    out = tmp_path / "out.bed"
    out.write_text("old\n")
    with pytest.raises(FileExistsError):
        open_writer(out, regions_mode=False)
    writer = open_writer(out, regions_mode=False, force=True)
    writer.close()
    assert out.read_text() == ""

    (tmp_path / "regions.bed").write_text("old\n")
    with pytest.raises(FileExistsError):
        open_writer(tmp_path, regions_mode=True)
    writer = open_writer(tmp_path, regions_mode=True, prefix="new")
    assert isinstance(writer, RegionsWriter)
    writer.close()

    with pytest.raises(ValueError):
        open_writer(None, regions_mode=True)
