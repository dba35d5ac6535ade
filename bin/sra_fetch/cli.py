"""CLI entry point for sra-fetch."""
from __future__ import annotations

import argparse
import csv
import logging
import sys
import tomllib
from pathlib import Path
from typing import IO

from pydantic import ValidationError

from sra_fetch.config import DEFAULT_CONFIG_NAME, FetchConfig, load_config, save_config
from sra_fetch.dump import DumpToolConfigError, find_dump_tool
from sra_fetch.resolve import MetadataError, NcbiResolver, resolve_samples
from sra_fetch.scheduler import FleetScheduler, prepare_output_dir

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sra-fetch",
        description="Download SRA samples and runs as paired and singleton FASTQ files.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    # fetch
    fetch = sub.add_parser("fetch", help="Download samples listed in a tab-delimited file")
    fetch.add_argument("out_dir", type=Path, help="Output directory (one subdirectory per sample)")
    fetch.add_argument("-i", "--input", type=Path, default=None,
                       help="Input file with sample/run IDs (default: stdin)")
    fetch.add_argument("--col", default="sample_id",
                       help="Name or 1-based index of the ID column [%(default)s]")
    fetch.add_argument("-b", "--batch-size", type=int, default=None,
                       help="Accessions per NCBI query (default: 100)")
    fetch.add_argument("-p", "--parallel", type=int, default=None,
                       help="Samples downloaded at once (default: 1)")
    fetch.add_argument("--zip", dest="zipped", action="store_true", default=None,
                       help="GZIP the output files")
    fetch.add_argument("--missing", dest="skip_completed", action="store_true", default=None,
                       help="Only download samples not already present")
    fetch.add_argument("--clear", action="store_true", default=None,
                       help="Erase the output directory before processing")
    fetch.add_argument("--sra-lib", default=None,
                       help="SRA toolkit bin directory (default: $SRALIB)")
    fetch.add_argument("--config", type=Path, default=None,
                       help=f"Settings file (e.g. {DEFAULT_CONFIG_NAME})")
    fetch.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    # init-config
    init = sub.add_parser("init-config", help="Write a default settings file")
    init.add_argument("path", type=Path, nargs="?", default=Path(DEFAULT_CONFIG_NAME),
                      help="Where to write it [%(default)s]")

    return parser


def read_accessions(stream: IO[str], column: str) -> list[str]:
    """Read the ID column of a tab-delimited file with a header line."""
    reader = csv.reader(stream, delimiter="\t")
    header = next(reader, None)
    if header is None:
        return []
    if column.isdigit():
        idx = int(column) - 1
        if not 0 <= idx < len(header):
            raise ValueError(f"Column {column} is out of range for {len(header)} input columns.")
    elif column in header:
        idx = header.index(column)
    else:
        raise ValueError(f"Column '{column}' not found in input. Found columns: {header}")
    ids = []
    for row in reader:
        if len(row) > idx and row[idx].strip():
            ids.append(row[idx].strip())
    return ids


def merge_options(cfg: FetchConfig, args: argparse.Namespace) -> FetchConfig:
    """Overlay command-line options that were given onto *cfg*."""
    overrides = {
        name: getattr(args, name)
        for name in ("zipped", "skip_completed", "clear", "parallel", "batch_size", "sra_lib")
        if getattr(args, name) is not None
    }
    overrides["output_dir"] = str(args.out_dir)
    return FetchConfig(**{**cfg.model_dump(), **overrides})


def cmd_fetch(args: argparse.Namespace) -> int:
    try:
        cfg = merge_options(load_config(args.config), args)
    except (ValidationError, tomllib.TOMLDecodeError) as e:
        logger.error("Invalid settings: %s", e)
        return 1
    except OSError as e:
        logger.error("Cannot read settings file: %s", e)
        return 1
    try:
        tool = find_dump_tool(cfg.resolved_sra_lib())
    except DumpToolConfigError as e:
        logger.error("%s", e)
        return 1

    out_dir = Path(cfg.output_dir)
    try:
        prepare_output_dir(out_dir, cfg.clear)
        logger.info("Reading sample and run data from input.")
        if args.input is None:
            accessions = read_accessions(sys.stdin, args.col)
        else:
            with open(args.input, newline="") as fh:
                accessions = read_accessions(fh, args.col)
        logger.info("%d accessions read.", len(accessions))
        resolver = NcbiResolver(email=cfg.ncbi_email, api_key=cfg.ncbi_api_key, tool=cfg.ncbi_tool)
        samples = resolve_samples(accessions, resolver, cfg.batch_size)
    except (OSError, ValueError, MetadataError) as e:
        logger.error("%s", e)
        return 1

    scheduler = FleetScheduler(
        out_dir,
        zipped=cfg.zipped,
        parallel=cfg.parallel,
        skip_completed=cfg.skip_completed,
        tool=tool,
    )
    result = scheduler.download(samples.values())
    print(result)
    for sample_id, error in sorted(result.failures.items()):
        print(f"  FAILED {sample_id}: {error.splitlines()[0] if error else ''}", file=sys.stderr)
    return 1 if result.failed else 0


def cmd_init_config(path: Path) -> int:
    if path.exists():
        print(f"Error: {path} already exists", file=sys.stderr)
        return 1
    save_config(FetchConfig(), path)
    print(f"Settings written to {path}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "fetch":
        logging.basicConfig(
            format="%(asctime)s - %(levelname)s - %(message)s",
            level=logging.DEBUG if args.verbose else logging.INFO,
        )
        return cmd_fetch(args)
    elif args.command == "init-config":
        return cmd_init_config(args.path)
    return 2


if __name__ == "__main__":
    sys.exit(main())
