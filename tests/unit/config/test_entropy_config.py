import pandas as pd
import pytest

from modentropy.config import EntropyConfig, LoadEntropyConfig, deep_merge, load_defaults
from modentropy.config.entropy_config import _parse_motifs, _parse_thresholds


def _inputs(tmp_path):
    bam = tmp_path / "sample.bam"
    bam.write_text("stub")
    fasta = tmp_path / "ref.fa"
    fasta.write_text(">chr1\nACGT\n")
    return bam, fasta


def test_csv_values_are_typed_and_merged_with_defaults(tmp_path):
    bam, fasta = _inputs(tmp_path)
    cfg_df = pd.DataFrame(
        [
            {"variable": "in_bams", "value": str(bam)},
            {"variable": "reference_fasta", "value": str(fasta)},
            {"variable": "motifs", "value": "CG:0,GATC:1", "type": "list"},
            {"variable": "num_positions", "value": "3"},
            {"variable": "combine_strands", "value": "True"},
            {"variable": "mod_thresholds", "value": '{"h": 0.9}'},
        ]
    )
    cfg, report = EntropyConfig.from_csv(cfg_df)

    assert cfg.in_bams == [str(bam)]
    assert cfg.motifs == [["CG", 0], ["GATC", 1]]
    assert cfg.num_positions == 3
    assert cfg.combine_strands is True
    assert cfg.mod_thresholds == {"h": 0.9}
    assert cfg.window_size == 50
    assert cfg.min_coverage == 3
    assert report["defaults_loaded"]["batch_size"] == 200


def test_csv_file_sets_config_source(tmp_path):
    bam, fasta = _inputs(tmp_path)
    csv = tmp_path / "run.csv"
    csv.write_text(f"variable,value,type\nin_bams,{bam},\nreference_fasta,{fasta},\ncpg,yes,bool\n")
    cfg, _ = EntropyConfig.from_path(csv)
    assert cfg.config_source == str(csv)
    assert cfg.cpg is True
    assert cfg.validate() == []


def test_unknown_variables_warn(tmp_path):
    with pytest.warns(UserWarning, match="bogus_setting"):
        cfg, _ = EntropyConfig.from_var_dict({"bogus_setting": 1, "cpg": True})
    assert cfg.cpg is True


def test_null_values_keep_defaults():
    cfg, _ = EntropyConfig.from_var_dict({"window_size": None, "log_level": "debug"})
    assert cfg.window_size == 50
    assert cfg.log_level == "DEBUG"


def test_validate_collects_errors(tmp_path):
    cfg = EntropyConfig(
        in_bams=[str(tmp_path / "missing.bam")],
        reference_fasta=str(tmp_path / "missing.fa"),
        regions_bed=str(tmp_path / "regions.bed"),
        num_positions=5,
        window_size=4,
        filter_threshold=1.5,
    )
    errors = cfg.validate(raise_on_error=False)
    joined = "\n".join(errors)
    assert "in_bams entry does not exist" in joined
    assert "reference_fasta does not exist" in joined
    assert "window_size must be at least num_positions" in joined
    assert "threshold value 1.5" in joined
    assert "At least one motif is required" in joined
    assert "regions_bed requires out_bed" in joined
    with pytest.raises(ValueError, match="validation failed"):
        cfg.validate()


def test_combined_strands_need_palindromes():
    cfg = EntropyConfig(in_bams=["a.bam"], reference_fasta="ref.fa", motifs=[["GATCA", 1]], combine_strands=True)
    errors = cfg.validate(require_paths=False, raise_on_error=False)
    assert any("palindromic" in e for e in errors)


def test_yaml_round_trip(tmp_path):
    bam, fasta = _inputs(tmp_path)
    cfg, _ = EntropyConfig.from_var_dict(
        {"in_bams": [str(bam)], "reference_fasta": str(fasta), "motifs": [["CG", 0]], "seed": 7}
    )
    path = tmp_path / "run.yaml"
    cfg.save(path)
    loaded, _ = EntropyConfig.from_path(path)
    assert loaded.motifs == [["CG", 0]]
    assert loaded.seed == 7
    assert loaded.in_bams == [str(bam)]


def test_motif_and_threshold_parsing():
    assert _parse_motifs(["CG", 0, "GATC", 1]) == [["CG", 0], ["GATC", 1]]
    assert _parse_motifs('[["CHG", 0]]') == [["CHG", 0]]
    assert _parse_motifs(["CG", "0"]) == [["CG", 0]]
    with pytest.raises(ValueError):
        _parse_motifs(["CG", 0, "GATC"])
    assert _parse_thresholds("h:0.8,m:0.7") == {"h": 0.8, "m": 0.7}
    assert _parse_thresholds(None) == {}


def test_loader_requires_variable_column():
    with pytest.raises(ValueError):
        LoadEntropyConfig(pd.DataFrame([{"name": "cpg", "value": "true"}]))


def test_deep_merge_and_defaults():
    assert deep_merge({"a": {"x": 1, "y": 2}, "b": 1}, {"a": {"y": 3}}) == {"a": {"x": 1, "y": 3}, "b": 1}
    assert load_defaults()["num_positions"] == 4
