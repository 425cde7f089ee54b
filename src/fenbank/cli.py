"""Command line entry point for the position aggregation engine."""

from __future__ import annotations

import argparse
import logging
from collections.abc import Sequence
from pathlib import Path

from fenbank.config import get_settings
from fenbank.errors import ConfigurationError
from fenbank.pipeline import run_pipeline
from fenbank.utils.logger import get_logger, set_level
from fenbank.utils.progress import ProgressLogger

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fenbank",
        description=(
            "Extract every position from an ID-tagged PGN file and aggregate "
            "occurrence and result counts per FEN into three TSV outputs."
        ),
    )
    parser.add_argument("input", nargs="?", type=Path, help="ID-tagged .pgn input file")
    parser.add_argument(
        "--resume",
        action="store_true",
        default=None,
        help="skip extraction and sorting; continue from the temp directory manifest",
    )
    parser.add_argument("--chunk-size", type=int, help="positions per chunk file")
    parser.add_argument("--fan-in", type=int, help="chunks combined by one merge task")
    parser.add_argument("--pool-size", type=int, help="worker processes per pool")
    parser.add_argument("--temp-dir", type=Path, help="directory for temporary chunks")
    parser.add_argument("--output-dir", type=Path, help="directory for the TSV outputs")
    parser.add_argument(
        "--discard-sorted",
        action="store_true",
        help="delete sorted chunks once phase 1 has consumed them",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="logging verbosity",
    )
    return parser


def _validate_input(path: Path | None) -> None:
    if path is None:
        return
    if path.suffix.lower() != ".pgn":
        raise ConfigurationError(f"Input must be a .pgn file: {path}")
    if not path.is_file():
        raise ConfigurationError(f"Input file not found: {path}")


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    set_level(getattr(logging, args.log_level))
    try:
        _validate_input(args.input)
        settings = get_settings(
            input_path=args.input,
            resume=args.resume,
            chunk_size=args.chunk_size,
            fan_in=args.fan_in,
            pool_size=args.pool_size,
            temp_dir=args.temp_dir,
            output_dir=args.output_dir,
            keep_sorted_chunks=False if args.discard_sorted else None,
        )
        result = run_pipeline(
            settings,
            progress=ProgressLogger(interval_s=settings.progress_interval_s),
        )
    except Exception:
        logger.exception("Run failed; temporary files were kept for inspection")
        return 1
    logger.info("Outputs written to %s", Path(result.all_positions_path).parent)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
