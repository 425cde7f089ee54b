"""In-memory sort of one size-bounded chunk and the parallel driver for all chunks."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from concurrent.futures import Executor, ProcessPoolExecutor
from pathlib import Path

from fenbank.errors import ChunkTooLargeError
from fenbank.line_codecs import raw_line_key
from fenbank.ports.progress import ProgressCallback, emit_progress
from fenbank.utils.logger import get_logger

logger = get_logger(__name__)

SORTED_SUFFIX = "_sorted.tmp"


def sorted_chunk_path(chunk_file: Path) -> Path:
    return chunk_file.with_name(chunk_file.name.replace(".tmp", SORTED_SUFFIX))


def sort_chunk(chunk_file: Path, max_records: int | None = None) -> Path:
    """Sort a chunk by FEN key, write ``chunk_<n>_sorted.tmp`` and delete the input.

    The whole chunk is held in memory, so the line count is checked against
    ``max_records`` before sorting. The sort is stable and compares keys by
    code point, which matches UTF-8 byte order.
    """

    chunk_file = Path(chunk_file)
    with chunk_file.open("r", encoding="utf-8", newline="") as handle:
        lines = [line.rstrip("\r\n") for line in handle]
    lines = [line for line in lines if line.strip()]
    if max_records is not None and len(lines) > max_records:
        raise ChunkTooLargeError(
            f"{chunk_file.name} holds {len(lines)} records, above the {max_records} cap"
        )
    lines.sort(key=raw_line_key)
    output = sorted_chunk_path(chunk_file)
    with output.open("w", encoding="utf-8", newline="\n") as handle:
        handle.writelines(f"{line}\n" for line in lines)
    if output != chunk_file:
        chunk_file.unlink()
    return output


def sort_chunks(
    chunk_files: Sequence[Path],
    max_records: int | None,
    parallelism: int,
    progress: ProgressCallback | None = None,
    executor_factory: Callable[[int], Executor] = ProcessPoolExecutor,
) -> list[Path]:
    """Sort every chunk with at most ``parallelism`` sorts in flight.

    Results keep the order of ``chunk_files``. A failing sort propagates.
    """

    if not chunk_files:
        return []
    workers = max(1, min(parallelism, len(chunk_files)))
    logger.info("Sorting %s chunks with %s workers", len(chunk_files), workers)
    sorted_files: list[Path] = []
    with executor_factory(workers) as executor:
        for done, output in enumerate(
            executor.map(sort_chunk, chunk_files, [max_records] * len(chunk_files)), start=1
        ):
            sorted_files.append(output)
            emit_progress(progress, "sort", done=done, total=len(chunk_files))
    logger.info("%s chunks sorted", len(sorted_files))
    return sorted_files
