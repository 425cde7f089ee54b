"""Assemble the published TSV files from the occurrence buckets."""

from __future__ import annotations

import shutil
from collections.abc import Iterable
from pathlib import Path
from typing import BinaryIO

from pydantic import BaseModel

from fenbank.final_merge import EXACT_BUCKETS, bucket_path
from fenbank.line_codecs import AGGREGATE_HEADER
from fenbank.manifest import clear_manifest
from fenbank.sort_chunk__chunks import SORTED_SUFFIX
from fenbank.utils.logger import get_logger

logger = get_logger(__name__)

COPY_BUFFER_SIZE = 8 * 1024 * 1024


class OutputRowCounts(BaseModel):
    all_positions: int = 0
    without_one: int = 0
    only_recurrent: int = 0


def count_rows(path: Path) -> int:
    """Count data rows of a TSV output, excluding its header line."""
    path = Path(path)
    if not path.exists():
        return 0
    rows = 0
    with path.open("rb") as handle:
        for line in handle:
            if line.strip():
                rows += 1
    return max(rows - 1, 0)


def _append_file(target: BinaryIO, source: Path, skip_header: bool = False) -> None:
    if not source.exists():
        logger.debug("Skipping missing bucket %s", source.name)
        return
    with source.open("rb") as handle:
        if skip_header:
            handle.readline()
        shutil.copyfileobj(handle, target, COPY_BUFFER_SIZE)


def _write_concatenation(output: Path, recurrent_file: Path, buckets: Iterable[Path]) -> None:
    output.parent.mkdir(parents=True, exist_ok=True)
    with output.open("wb") as target:
        target.write(AGGREGATE_HEADER.encode("utf-8"))
        _append_file(target, recurrent_file, skip_header=True)
        for bucket in buckets:
            _append_file(target, bucket)


def assemble_outputs(
    temp_dir: Path,
    only_recurrent_path: Path,
    without_one_path: Path,
    all_positions_path: Path,
) -> OutputRowCounts:
    """Write the ``>=2`` and ``all`` outputs next to the sorted recurrent file.

    Rows follow the sorted ``10+`` file, then buckets 9 down to 2, then
    bucket 1 for the ``all`` output.
    """

    temp_dir = Path(temp_dir)
    descending = [bucket_path(temp_dir, bucket) for bucket in reversed(EXACT_BUCKETS)]
    logger.info("Assembling %s", without_one_path.name)
    _write_concatenation(without_one_path, only_recurrent_path, descending[:-1])
    logger.info("Assembling %s", all_positions_path.name)
    _write_concatenation(all_positions_path, only_recurrent_path, descending)
    return OutputRowCounts(
        all_positions=count_rows(all_positions_path),
        without_one=count_rows(without_one_path),
        only_recurrent=count_rows(only_recurrent_path),
    )


def cleanup_temp_artifacts(temp_dir: Path, manifest_path: Path | None = None) -> int:
    """Remove buckets, phase directories, chunks and the manifest; return files removed."""
    temp_dir = Path(temp_dir)
    if not temp_dir.is_dir():
        return 0
    removed = 0
    for path in sorted(temp_dir.iterdir()):
        if path.is_dir() and path.name.startswith("phase"):
            removed += sum(1 for item in path.rglob("*") if item.is_file())
            shutil.rmtree(path)
        elif path.is_file() and (
            path.name.endswith("occ.tmp")
            or path.name.endswith(SORTED_SUFFIX)
            or (path.name.startswith("chunk_") and path.suffix == ".tmp")
        ):
            path.unlink()
            removed += 1
    if manifest_path is not None and Path(manifest_path).exists():
        clear_manifest(Path(manifest_path))
        removed += 1
    logger.info("Removed %s temporary files from %s", removed, temp_dir)
    return removed
