"""Command line entry points for the retail metrics engine."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

import pandas as pd
import structlog

from retail_metrics.foundation.config import DEFAULT_CONFIG, REQUIRED_KEYS, StaticConfigProvider
from retail_metrics.foundation.facts import FactSnapshot
from retail_metrics.pandas import (
    FACT_TABLES,
    dataframes_to_snapshot,
    records_to_dataframe,
    snapshot_to_dataframes,
)
from retail_metrics.refresh.engine import PUBLISHER_NAMES, MetricsEngine
from retail_metrics.synthetic import RetailScenario, generate_retail_snapshot

logger = logging.getLogger(__name__)


MAX_INPUT_BYTES = 25 * 1024 * 1024  # 25 MiB cap per fact table to avoid accidental OOM


def configure_logging(verbose: bool = False) -> None:
    """Send stdlib and structlog output to stderr so stdout stays pipeable."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(format="%(levelname)s %(name)s: %(message)s", stream=sys.stderr, level=level)
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )


def _resolve_output_dir(path: Path) -> Path:
    output_dir = path.resolve()
    cwd = Path.cwd().resolve()
    try:
        output_dir.relative_to(cwd)
    except ValueError:
        raise ValueError(
            f"Output directory {output_dir} must reside within the current working directory"
        )
    output_dir.mkdir(parents=True, exist_ok=True)
    return output_dir


def load_facts_dir(facts_dir: Path) -> FactSnapshot:
    """Load ``<table>.csv`` files from a directory into a fact snapshot.

    Every fact table is optional; absent files are treated as empty tables.

    Raises:
        FileNotFoundError: If the directory holds none of the fact tables
        ValueError: If a file exceeds the size cap or holds invalid rows
    """
    frames: dict[str, pd.DataFrame] = {}
    for table in FACT_TABLES:
        path = facts_dir / f"{table}.csv"
        if not path.is_file():
            continue
        size = path.resolve().stat().st_size
        if size > MAX_INPUT_BYTES:
            raise ValueError(
                f"Input file {path} is {size} bytes; exceeds limit of {MAX_INPUT_BYTES} bytes"
            )
        frames[table] = pd.read_csv(path, dtype=str, keep_default_na=False)
        logger.info(f"Loaded {len(frames[table])} rows from {path.name}")

    if not frames:
        raise FileNotFoundError(
            f"No fact tables found in {facts_dir}; expected any of "
            f"{', '.join(f'{t}.csv' for t in FACT_TABLES)}"
        )
    return dataframes_to_snapshot(frames)


def load_config(path: Path | None) -> StaticConfigProvider:
    """Packaged default thresholds, overridden by an optional JSON object.

    Raises:
        ValueError: If the file is not a JSON object or names an unknown key
    """
    provider = StaticConfigProvider(DEFAULT_CONFIG)
    if path is None:
        return provider
    with path.open("r", encoding="utf-8") as fh:
        overrides = json.load(fh)
    if not isinstance(overrides, dict):
        raise ValueError(f"Expected a JSON object of threshold overrides in {path}")
    unknown = sorted(set(overrides) - set(REQUIRED_KEYS))
    if unknown:
        raise ValueError(
            f"Unknown threshold keys in {path}: {unknown}; expected any of {list(REQUIRED_KEYS)}"
        )
    return provider.with_overrides(overrides)


def compute_cli(argv: list[str] | None = None) -> int:
    """Compute every classified output from CSV fact tables and export to CSV.

    Writes one ``<publisher>.csv`` per successful output into the output
    directory and prints a JSON summary of the refresh to stdout.

    Args:
        argv: Command line arguments (defaults to sys.argv)

    Returns:
        Exit code (0 when every requested output was published, 1 otherwise)
    """
    parser = argparse.ArgumentParser(
        prog="retail-metrics compute",
        description="Compute classified retail metrics from CSV fact tables",
    )
    parser.add_argument(
        "--facts-dir",
        type=Path,
        required=True,
        help="Directory holding <table>.csv fact files (customers.csv, orders.csv, ...)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Optional JSON object overriding the packaged classification thresholds",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        required=True,
        help="Directory for the exported CSV files (must be under the working directory)",
    )
    parser.add_argument(
        "--only",
        dest="publishers",
        action="append",
        choices=PUBLISHER_NAMES,
        help="Restrict the run to these outputs (repeatable; defaults to all)",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")

    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    output_dir = _resolve_output_dir(args.output_dir)
    source = load_facts_dir(args.facts_dir)
    engine = MetricsEngine(source, load_config(args.config))

    if args.publishers:
        results = {name: engine.refresh(name) for name in dict.fromkeys(args.publishers)}
    else:
        results = engine.refresh_all()

    summary: dict[str, Any] = {}
    exit_code = 0
    for name, result in results.items():
        if not result.success:
            exit_code = 1
            logger.error(f"{name}: refresh failed: {result.error}")
            summary[name] = {"success": False, "error": str(result.error)}
            continue
        snapshot = result.snapshot
        path = output_dir / f"{name}.csv"
        records_to_dataframe(snapshot.records).to_csv(path, index=False)
        logger.info(f"Wrote {len(snapshot.records)} {name} records to {path}")
        summary[name] = {
            "success": True,
            "records": len(snapshot.records),
            "version": snapshot.version,
            "reference_date": (
                snapshot.reference_date.isoformat() if snapshot.reference_date else None
            ),
            "computed_at": snapshot.computed_at.isoformat(),
            "output": str(path),
        }

    json.dump(summary, fp=sys.stdout, indent=2, sort_keys=True)
    print()
    return exit_code


def generate_cli(argv: list[str] | None = None) -> int:
    """Write a seeded synthetic retail dataset as CSV fact tables."""
    parser = argparse.ArgumentParser(
        prog="retail-metrics generate",
        description="Generate synthetic retail fact tables as CSV",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        required=True,
        help="Directory for the generated <table>.csv files (must be under the working directory)",
    )
    parser.add_argument("--customers", type=int, default=200, help="Number of customers (default: 200)")
    parser.add_argument("--products", type=int, default=40, help="Catalog size (default: 40)")
    parser.add_argument("--stores", type=int, default=6, help="Number of stores (default: 6)")
    parser.add_argument("--seed", type=int, default=42, help="RNG seed (default: 42)")

    args = parser.parse_args(argv)
    configure_logging()

    output_dir = _resolve_output_dir(args.output_dir)
    snapshot = generate_retail_snapshot(
        RetailScenario(
            n_customers=args.customers,
            n_products=args.products,
            n_stores=args.stores,
            seed=args.seed,
        )
    )
    for table, df in snapshot_to_dataframes(snapshot).items():
        path = output_dir / f"{table}.csv"
        df.to_csv(path, index=False)
        logger.info(f"Wrote {len(df)} rows to {path}")
    return 0


COMMANDS = {
    "compute": compute_cli,
    "generate": generate_cli,
}


def main(argv: list[str] | None = None) -> int:
    """Dispatch ``retail-metrics <command> [options]``."""
    argv = list(sys.argv[1:] if argv is None else argv)
    if not argv or argv[0] in ("-h", "--help") or argv[0] not in COMMANDS:
        print(f"usage: retail-metrics {{{','.join(COMMANDS)}}} [options]", file=sys.stderr)
        return 0 if argv and argv[0] in ("-h", "--help") else 2
    return COMMANDS[argv[0]](argv[1:])


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
