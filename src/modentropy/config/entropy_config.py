# entropy_config.py
from __future__ import annotations

import ast
import json
import warnings
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import IO, Any, Dict, List, Optional, Tuple, Union

import pandas as pd
import yaml

from modentropy.constants import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_FILTER_PERCENTILE,
    DEFAULT_MAX_FILTERED_POSITIONS,
    DEFAULT_MIN_COVERAGE,
    DEFAULT_NUM_POSITIONS,
    DEFAULT_SAMPLE_NUM_READS,
    DEFAULT_WINDOW_SIZE,
)
from modentropy.informatics.motifs import resolve_motifs

DEFAULTS_PATH = Path(__file__).with_name("default.yaml")


# -------------------------
# Utility parsing functions
# -------------------------
def _parse_bool(v: Any) -> bool:
    if isinstance(v, bool):
        return v
    if v is None:
        return False
    s = str(v).strip().lower()
    if s in ("1", "true", "t", "yes", "y", "on"):
        return True
    if s in ("0", "false", "f", "no", "n", "off", ""):
        return False
    try:
        return float(s) != 0.0
    except ValueError:
        return False


def _parse_list(v: Any) -> List:
    if v is None:
        return []
    if isinstance(v, (list, tuple)):
        return list(v)
    s = str(v).strip()
    if s == "" or s.lower() == "none":
        return []
    # try JSON
    try:
        parsed = json.loads(s)
        if isinstance(parsed, list):
            return parsed
    except ValueError:
        pass
    # try python literal eval
    try:
        lit = ast.literal_eval(s)
        if isinstance(lit, (list, tuple)):
            return list(lit)
    except (ValueError, SyntaxError):
        pass
    # fallback comma separated
    s2 = s.strip("[]() ")
    return [p.strip() for p in s2.split(",") if p.strip() != ""]


def _parse_numeric(v: Any, fallback: Any = None) -> Any:
    if v is None:
        return fallback
    if isinstance(v, bool):
        return int(v)
    if isinstance(v, (int, float)):
        return v
    s = str(v).strip()
    if s == "" or s.lower() == "none":
        return fallback
    try:
        return int(s)
    except ValueError:
        try:
            return float(s)
        except ValueError:
            return fallback


def _try_json_or_literal(s: Any) -> Any:
    """Try parse JSON or python literal; otherwise return original string."""
    if s is None:
        return None
    if not isinstance(s, str):
        return s
    s0 = s.strip()
    if s0 == "":
        return None
    try:
        return json.loads(s0)
    except ValueError:
        pass
    try:
        return ast.literal_eval(s0)
    except (ValueError, SyntaxError):
        pass
    return s


def _parse_motifs(v: Any) -> List[List[Any]]:
    """
    Normalize motif input into ``[[sequence, offset], ...]``.

    Accepts a list of pairs, a single pair, ``"SEQ:offset"`` strings, or a flat
    ``[SEQ, offset, SEQ, offset]`` list as written on one CSV line.
    """
    raw = _parse_list(_try_json_or_literal(v) if isinstance(v, str) else v)
    if not raw:
        return []
    if len(raw) == 2 and isinstance(raw[0], str) and not isinstance(raw[1], (list, tuple)):
        try:
            return [[raw[0], int(raw[1])]]
        except ValueError:
            pass
    motifs: List[List[Any]] = []
    pending: Optional[str] = None
    for item in raw:
        if isinstance(item, (list, tuple)):
            if len(item) != 2:
                raise ValueError(f"motif {item!r} must be a [sequence, offset] pair")
            motifs.append([str(item[0]), int(item[1])])
        elif pending is not None:
            motifs.append([pending, int(item)])
            pending = None
        elif ":" in str(item):
            seq, _, offset = str(item).partition(":")
            motifs.append([seq, int(offset)])
        else:
            pending = str(item)
    if pending is not None:
        raise ValueError(f"motif {pending} is missing its offset")
    return motifs


def _parse_thresholds(v: Any) -> Dict[str, float]:
    """``{"h": 0.8}``, ``"h:0.8,m:0.7"`` or ``[["h", 0.8]]`` into a code -> threshold dict."""
    if v is None:
        return {}
    parsed = _try_json_or_literal(v) if isinstance(v, str) else v
    if parsed is None:
        return {}
    if isinstance(parsed, dict):
        return {str(k): float(val) for k, val in parsed.items()}
    out: Dict[str, float] = {}
    for item in _parse_list(parsed):
        if isinstance(item, (list, tuple)) and len(item) == 2:
            out[str(item[0])] = float(item[1])
        elif ":" in str(item):
            code, _, value = str(item).partition(":")
            out[code.strip()] = float(value)
        else:
            raise ValueError(f"cannot parse modification threshold {item!r}")
    return out


class LoadEntropyConfig:
    """
    Load a run CSV (or DataFrame / file-like) into a typed var_dict.

    CSV expected columns: 'variable', 'value', optional 'type'.
    If 'type' missing, the loader will infer type.

    Example
    -------
    loader = LoadEntropyConfig("entropy_config.csv")
    var_dict = loader.var_dict
    """

    def __init__(self, config_source: Union[str, Path, IO, pd.DataFrame]):
        self.source = config_source
        self.df = self._load_df(config_source)
        self.var_dict = self._parse_df(self.df)

    @staticmethod
    def _load_df(source: Union[str, Path, IO, pd.DataFrame]) -> pd.DataFrame:
        """Load a pandas DataFrame from path, file-like, or accept if already DataFrame."""
        if isinstance(source, pd.DataFrame):
            df = source.copy()
        elif isinstance(source, (str, Path)):
            p = Path(source)
            if not p.exists():
                raise FileNotFoundError(f"Config file not found: {source}")
            df = pd.read_csv(p, dtype=str, keep_default_na=False, na_values=[""])
        else:
            df = pd.read_csv(source, dtype=str, keep_default_na=False, na_values=[""])
        df.columns = [c.strip() for c in df.columns]
        if "variable" not in df.columns:
            raise ValueError("Config CSV must contain a 'variable' column.")
        if "value" not in df.columns:
            df["value"] = ""
        if "type" not in df.columns:
            df["type"] = ""
        return df

    @staticmethod
    def _parse_value_as_type(value_str: Optional[str], dtype_hint: Optional[str]) -> Any:
        """
        Parse a single value string into a Python object guided by dtype_hint (or infer).
        Supports int, float, bool, list, JSON, Python literal, or string.
        """
        if value_str is None:
            return None
        v = str(value_str).strip()
        if v == "" or v.lower() == "none":
            return None

        hint = "" if dtype_hint is None or pd.isna(dtype_hint) else str(dtype_hint).strip().lower()

        def parse_bool(s: str):
            s2 = s.strip().lower()
            if s2 in ("1", "true", "t", "yes", "y", "on"):
                return True
            if s2 in ("0", "false", "f", "no", "n", "off"):
                return False
            raise ValueError(f"Cannot parse boolean from '{s}'")

        if hint in ("int", "integer"):
            return int(v)
        if hint in ("float", "double"):
            return float(v)
        if hint in ("bool", "boolean"):
            return parse_bool(v)
        if hint in ("list", "array"):
            return _parse_list(v)
        if hint in ("string", "str"):
            return v

        # infer
        for parser in (int, float, parse_bool):
            try:
                return parser(v)
            except ValueError:
                pass
        lit = _try_json_or_literal(v)
        if lit is not v:
            return lit
        if ("," in v) and (not any(ch in v for ch in "{}[]()")):
            return [p.strip() for p in v.split(",") if p.strip() != ""]
        return v

    def _parse_df(self, df: pd.DataFrame) -> Dict[str, Any]:
        parsed: Dict[str, Any] = {}
        for idx, row in df.iterrows():
            name = str(row["variable"]).strip()
            if name == "":
                continue
            raw_val = row.get("value", "")
            raw_type = row.get("type", "")
            if pd.isna(raw_val) or str(raw_val).strip() == "":
                raw_val = None
            try:
                parsed_val = self._parse_value_as_type(raw_val, raw_type)
            except ValueError as e:
                warnings.warn(f"Failed to parse config variable '{name}' (row {idx}): {e}. Storing raw value.")
                parsed_val = raw_val
            if name in parsed:
                warnings.warn(f"Duplicate config variable '{name}' encountered (row {idx}). Overwriting previous value.")
            parsed[name] = parsed_val
        return parsed


# -------------------------
# deep merge & defaults loader
# -------------------------
def deep_merge(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    """
    Recursively merge two dicts: returns new dict = a merged with b, where b overrides.
    If both values are dicts -> merge recursively; else b replaces a.
    """
    out = dict(a or {})
    for k, v in (b or {}).items():
        if k in out and isinstance(out[k], dict) and isinstance(v, dict):
            out[k] = deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def load_defaults(path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """Packaged defaults (or a user defaults file) as a dict."""
    p = Path(path) if path is not None else DEFAULTS_PATH
    if not p.exists():
        return {}
    text = p.read_text(encoding="utf8")
    if p.suffix.lower() == ".json":
        return json.loads(text or "{}")
    return yaml.safe_load(text) or {}


@dataclass
class EntropyConfig:
    # Inputs
    in_bams: List[str] = field(default_factory=list)
    reference_fasta: Optional[str] = None
    regions_bed: Optional[str] = None

    # Outputs
    out_bed: Optional[str] = None
    prefix: Optional[str] = None
    header: bool = False
    drop_zeros: bool = False
    force: bool = False

    # Motifs and windows
    motifs: List[List[Any]] = field(default_factory=list)
    cpg: bool = False
    combine_strands: bool = False
    num_positions: int = DEFAULT_NUM_POSITIONS
    window_size: int = DEFAULT_WINDOW_SIZE
    min_coverage: int = DEFAULT_MIN_COVERAGE
    max_filtered_positions: int = DEFAULT_MAX_FILTERED_POSITIONS

    # Mod calling
    filter_threshold: Optional[float] = None
    mod_thresholds: Dict[str, float] = field(default_factory=dict)
    no_filtering: bool = False
    filter_percentile: float = DEFAULT_FILTER_PERCENTILE
    sample_num_reads: int = DEFAULT_SAMPLE_NUM_READS
    seed: Optional[int] = None

    # Compute
    batch_size: int = DEFAULT_BATCH_SIZE
    threads: int = 4
    io_threads: int = 2

    # Logging
    log_filepath: Optional[str] = None
    log_level: str = "INFO"
    suppress_progress: bool = False

    config_source: Optional[str] = None

    @classmethod
    def from_var_dict(
        cls,
        var_dict: Optional[Dict[str, Any]],
        config_source: Optional[str] = None,
        defaults_path: Optional[Union[str, Path]] = None,
        merge_with_defaults: bool = True,
        allow_null_override: bool = False,
    ) -> Tuple["EntropyConfig", Dict[str, Any]]:
        """
        Create EntropyConfig from a raw var_dict (as produced by LoadEntropyConfig).
        Returns (instance, report) where report contains the defaults and merged values.

        allow_null_override: if False, keys with value None will NOT override defaults.
        """
        var_dict = var_dict or {}
        normalized: Dict[str, Any] = {}
        for k, v in var_dict.items():
            normalized[k] = v.strip() if isinstance(v, str) else v

        defaults = load_defaults(defaults_path) if merge_with_defaults else {}
        overrides = {
            k: v for k, v in normalized.items() if v is not None or allow_null_override
        }
        merged = deep_merge(defaults, overrides)

        unknown = sorted(set(merged) - {f for f in cls.__dataclass_fields__})
        if unknown:
            warnings.warn(f"Ignoring unknown config variables: {', '.join(unknown)}")

        def _opt_float(key: str) -> Optional[float]:
            val = merged.get(key)
            return None if val is None else float(_parse_numeric(val, val))

        def _opt_int(key: str) -> Optional[int]:
            val = _parse_numeric(merged.get(key), None)
            return None if val is None else int(val)

        in_bams = merged.get("in_bams")
        if isinstance(in_bams, str):
            in_bams = _parse_list(in_bams) if any(ch in in_bams for ch in ",[") else [in_bams]

        instance = cls(
            in_bams=[str(p) for p in (in_bams or [])],
            reference_fasta=merged.get("reference_fasta"),
            regions_bed=merged.get("regions_bed"),
            out_bed=merged.get("out_bed"),
            prefix=merged.get("prefix"),
            header=_parse_bool(merged.get("header", False)),
            drop_zeros=_parse_bool(merged.get("drop_zeros", False)),
            force=_parse_bool(merged.get("force", False)),
            motifs=_parse_motifs(merged.get("motifs")),
            cpg=_parse_bool(merged.get("cpg", False)),
            combine_strands=_parse_bool(merged.get("combine_strands", False)),
            num_positions=int(_parse_numeric(merged.get("num_positions"), DEFAULT_NUM_POSITIONS)),
            window_size=int(_parse_numeric(merged.get("window_size"), DEFAULT_WINDOW_SIZE)),
            min_coverage=int(_parse_numeric(merged.get("min_coverage"), DEFAULT_MIN_COVERAGE)),
            max_filtered_positions=int(
                _parse_numeric(merged.get("max_filtered_positions"), DEFAULT_MAX_FILTERED_POSITIONS)
            ),
            filter_threshold=_opt_float("filter_threshold"),
            mod_thresholds=_parse_thresholds(merged.get("mod_thresholds")),
            no_filtering=_parse_bool(merged.get("no_filtering", False)),
            filter_percentile=float(
                _parse_numeric(merged.get("filter_percentile"), DEFAULT_FILTER_PERCENTILE)
            ),
            sample_num_reads=int(_parse_numeric(merged.get("sample_num_reads"), DEFAULT_SAMPLE_NUM_READS)),
            seed=_opt_int("seed"),
            batch_size=int(_parse_numeric(merged.get("batch_size"), DEFAULT_BATCH_SIZE)),
            threads=int(_parse_numeric(merged.get("threads"), 4)),
            io_threads=int(_parse_numeric(merged.get("io_threads"), 2)),
            log_filepath=merged.get("log_filepath"),
            log_level=str(merged.get("log_level") or "INFO").upper(),
            suppress_progress=_parse_bool(merged.get("suppress_progress", False)),
            config_source=config_source or "<var_dict>",
        )

        report = {
            "defaults_loaded": defaults,
            "normalized": normalized,
            "merged": merged,
        }
        return instance, report

    @classmethod
    def from_csv(
        cls,
        csv_input: Union[str, Path, IO, pd.DataFrame],
        config_source: Optional[str] = None,
        **kwargs,
    ) -> Tuple["EntropyConfig", Dict[str, Any]]:
        """
        Load CSV using LoadEntropyConfig (or accept DataFrame) and build EntropyConfig.
        Additional kwargs passed to from_var_dict().
        """
        loader = LoadEntropyConfig(csv_input)
        if config_source is None and isinstance(csv_input, (str, Path)):
            config_source = str(csv_input)
        return cls.from_var_dict(loader.var_dict, config_source=config_source, **kwargs)

    @classmethod
    def from_yaml(
        cls, path: Union[str, Path], **kwargs
    ) -> Tuple["EntropyConfig", Dict[str, Any]]:
        p = Path(path)
        if not p.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        var_dict = yaml.safe_load(p.read_text(encoding="utf8")) or {}
        if not isinstance(var_dict, dict):
            raise ValueError(f"YAML config {path} must be a mapping")
        return cls.from_var_dict(var_dict, config_source=str(p), **kwargs)

    @classmethod
    def from_path(cls, path: Union[str, Path], **kwargs) -> Tuple["EntropyConfig", Dict[str, Any]]:
        """Dispatch on suffix: ``.yaml``/``.yml`` via PyYAML, anything else as CSV."""
        if Path(path).suffix.lower() in (".yaml", ".yml"):
            return cls.from_yaml(path, **kwargs)
        return cls.from_csv(path, **kwargs)

    # -------------------------
    # validation & serialization
    # -------------------------
    def validate(self, require_paths: bool = True, raise_on_error: bool = True) -> List[str]:
        """
        Validate the config. If require_paths True, check that input files exist.
        Returns a list of error messages (empty if none). Raises ValueError if raise_on_error True.
        """
        errors: List[str] = []
        if not self.in_bams:
            errors.append("in_bams requires at least one alignment file.")
        if not self.reference_fasta:
            errors.append("reference_fasta is required but missing.")

        if require_paths:
            for bam in self.in_bams:
                if not Path(bam).exists():
                    errors.append(f"in_bams entry does not exist: {bam}")
            if self.reference_fasta and not Path(self.reference_fasta).exists():
                errors.append(f"reference_fasta does not exist: {self.reference_fasta}")
            if self.regions_bed and not Path(self.regions_bed).exists():
                errors.append(f"regions_bed does not exist: {self.regions_bed}")

        if self.num_positions < 1:
            errors.append("num_positions must be at least 1.")
        if self.window_size < self.num_positions:
            errors.append("window_size must be at least num_positions.")
        if self.min_coverage < 1:
            errors.append("min_coverage must be at least 1.")
        if self.max_filtered_positions < 0:
            errors.append("max_filtered_positions must not be negative.")
        if self.batch_size < 1:
            errors.append("batch_size must be at least 1.")
        if self.threads < 1 or self.io_threads < 1:
            errors.append("threads and io_threads must be at least 1.")

        thresholds = [self.filter_percentile, *self.mod_thresholds.values()]
        if self.filter_threshold is not None:
            thresholds.append(self.filter_threshold)
        for t in thresholds:
            if not (0.0 <= float(t) <= 1.0):
                errors.append(f"threshold value {t} must be in [0,1].")

        try:
            resolve_motifs(self.motifs, cpg=self.cpg, combine_strands=self.combine_strands)
        except ValueError as e:
            errors.append(str(e))

        if self.regions_bed and (not self.out_bed or str(self.out_bed).strip() in ("-", "stdout")):
            errors.append("regions_bed requires out_bed to name an output directory.")

        if raise_on_error and errors:
            raise ValueError("EntropyConfig validation failed:\n  " + "\n  ".join(errors))
        return errors

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_yaml(self, path: Optional[Union[str, Path]] = None) -> str:
        """Dump config to YAML (string if path None) or save to file at path."""
        text = yaml.safe_dump(self.to_dict(), sort_keys=False)
        if path is None:
            return text
        p = Path(path)
        p.write_text(text, encoding="utf8")
        return str(p)

    def save(self, path: Union[str, Path]) -> str:
        return self.to_yaml(path)

    def __repr__(self) -> str:
        mode = "regions" if self.regions_bed else "windows"
        return f"<EntropyConfig mode={mode} bams={len(self.in_bams)} source={self.config_source}>"
