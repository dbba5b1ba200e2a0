import click
import pandas as pd
from pathlib import Path
from typing import List, Optional

from .config import EntropyConfig
from .entropy.pipeline import EntropyRunSummary, run_entropy
from .logging_utils import get_logger, setup_logging

logger = get_logger(__name__)


def entropy_from_config(config_path, **overrides) -> EntropyRunSummary:
    """Load CONFIG_PATH (CSV or YAML), set up logging and run the entropy pipeline."""
    cfg, _report = EntropyConfig.from_path(config_path)
    for key, value in overrides.items():
        if value is not None:
            setattr(cfg, key, value)
    cfg.validate()

    setup_logging(
        level=cfg.log_level,
        log_file=cfg.log_filepath,
        reconfigure=cfg.log_filepath is not None,
    )
    logger.info(f"Running entropy with {cfg!r}")
    return run_entropy(cfg)


def _read_config_paths(config_table: Path, column: str, sep: Optional[str]) -> List[Path]:
    suffix = config_table.suffix.lower()

    # TXT mode -> each line is a config path
    if suffix in {".txt", ".list"}:
        paths = []
        with config_table.open() as f:
            for line in f:
                line = line.strip()
                if line:
                    paths.append(Path(line).expanduser())
        if not paths:
            raise click.ClickException(f"No config paths found in text file: {config_table}")
        return paths

    # CSV / TSV mode
    if sep is None:
        sep = "\t" if suffix in {".tsv", ".tab"} else ","
    try:
        df = pd.read_csv(config_table, sep=sep, dtype=str)
    except (OSError, ValueError) as e:
        raise click.ClickException(f"Failed to read table {config_table}: {e}") from e

    if df.empty:
        raise click.ClickException(f"Config table is empty: {config_table}")

    # a single column without the expected header is treated as raw paths
    if df.shape[1] == 1 and column not in df.columns:
        config_series = df.iloc[:, 0]
    else:
        if column not in df.columns:
            raise click.ClickException(
                f"Column '{column}' not found in {config_table}. "
                f"Available columns: {', '.join(df.columns)}"
            )
        config_series = df[column]

    return config_series.dropna().map(str).map(lambda p: Path(p).expanduser()).tolist()


@click.group()
def cli():
    """Command-line interface for modentropy."""
    pass


####### Entropy ###########
@cli.command()
@click.argument("config_path", type=click.Path(exists=True))
@click.option("--out-bed", "-o", default=None, help="Override the output file (or directory in region mode).")
@click.option("--threads", "-t", type=int, default=None, help="Override the number of worker threads.")
@click.option("--force", is_flag=True, default=False, help="Overwrite existing outputs.")
def entropy(config_path, out_bed, threads, force):
    """Compute methylation entropy for the run described in CONFIG_PATH."""
    try:
        summary = entropy_from_config(config_path, out_bed=out_bed, threads=threads, force=force or None)
    except (ValueError, OSError, RuntimeError) as e:
        raise click.ClickException(str(e)) from e
    click.echo(
        f"Wrote {summary.rows_written} rows, {summary.failure_count} windows or regions failed"
    )
##########################################


####### batch command ###########
@cli.command()
@click.argument(
    "config_table",
    type=click.Path(exists=True, dir_okay=False, readable=True, path_type=Path),
)
@click.option(
    "--column",
    "-c",
    default="config_path",
    show_default=True,
    help="Column name containing config paths (ignored for plain TXT).",
)
@click.option(
    "--sep",
    default=None,
    help="Field separator: default auto-detect (.tsv -> '\\t', .csv -> ',', others treated as TXT).",
)
def batch(config_table: Path, column: str, sep: Optional[str]):
    """
    Run entropy on multiple CONFIG_PATHs listed in a CSV/TSV or plain TXT file.

    Plain text format: one config path per line, no header.
    """
    config_paths = _read_config_paths(config_table, column, sep)
    if not config_paths:
        raise click.ClickException("No config paths found.")

    click.echo(f"Running entropy on {len(config_paths)} config paths from {config_table}")

    failed = 0
    for i, cfg in enumerate(config_paths, start=1):
        if not cfg.exists():
            click.echo(f"[{i}/{len(config_paths)}] SKIP (missing): {cfg}")
            continue

        click.echo(f"[{i}/{len(config_paths)}] entropy → {cfg}")

        try:
            entropy_from_config(str(cfg))
        except (ValueError, OSError, RuntimeError) as e:
            failed += 1
            click.echo(f"  ERROR on {cfg}: {e}")

    click.echo(f"Batch processing complete ({failed} failed).")
##########################################
