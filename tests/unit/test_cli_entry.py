import pytest
from click.testing import CliRunner

from modentropy import cli_entry
from modentropy.entropy.pipeline import EntropyRunSummary


@pytest.fixture
def run_config(tmp_path, monkeypatch):
    monkeypatch.setattr(cli_entry, "setup_logging", lambda **kwargs: None)
    bam = tmp_path / "sample.bam"
    bam.write_text("stub")
    fasta = tmp_path / "ref.fa"
    fasta.write_text(">chr1\nACGT\n")
    path = tmp_path / "run.yaml"
    path.write_text(
        f"in_bams: [{bam}]\nreference_fasta: {fasta}\ncpg: true\nforce: true\nsuppress_progress: true\n"
    )
    return path


def test_entropy_command_applies_overrides(run_config, tmp_path, monkeypatch):
    seen = []

    def fake_run(cfg):
        seen.append(cfg)
        return EntropyRunSummary(rows_written=5, failure_count=2)

    monkeypatch.setattr(cli_entry, "run_entropy", fake_run)
    out = tmp_path / "entropy.bed"
    result = CliRunner().invoke(cli_entry.cli, ["entropy", str(run_config), "-o", str(out), "-t", "3"])

    assert result.exit_code == 0, result.output
    assert "Wrote 5 rows, 2 windows or regions failed" in result.output
    (cfg,) = seen
    assert cfg.out_bed == str(out)
    assert cfg.threads == 3
    assert cfg.force is True


def test_entropy_command_reports_invalid_config(tmp_path, monkeypatch):
    monkeypatch.setattr(cli_entry, "run_entropy", lambda cfg: pytest.fail("should not run"))
    path = tmp_path / "bad.yaml"
    path.write_text("cpg: true\n")
    result = CliRunner().invoke(cli_entry.cli, ["entropy", str(path)])
    assert result.exit_code == 1
    assert "validation failed" in result.output


def test_batch_runs_each_listed_config(run_config, tmp_path, monkeypatch):
    calls = []

    def fake_entropy(path):
        calls.append(path)
        if path.endswith("broken.yaml"):
            raise ValueError("boom")

    monkeypatch.setattr(cli_entry, "entropy_from_config", fake_entropy)
    broken = tmp_path / "broken.yaml"
    broken.write_text("")
    listing = tmp_path / "configs.txt"
    listing.write_text(f"{run_config}\n{tmp_path / 'missing.yaml'}\n{broken}\n")

    result = CliRunner().invoke(cli_entry.cli, ["batch", str(listing)])

    assert result.exit_code == 0, result.output
    assert calls == [str(run_config), str(broken)]
    assert "SKIP (missing)" in result.output
    assert "ERROR on" in result.output
    assert "Batch processing complete (1 failed)." in result.output


def test_batch_reads_config_column(run_config, tmp_path, monkeypatch):
    calls = []
    monkeypatch.setattr(cli_entry, "entropy_from_config", calls.append)
    table = tmp_path / "configs.csv"
    table.write_text(f"sample,config_path\ns1,{run_config}\n")

    result = CliRunner().invoke(cli_entry.cli, ["batch", str(table)])

    assert result.exit_code == 0, result.output
    assert calls == [str(run_config)]
