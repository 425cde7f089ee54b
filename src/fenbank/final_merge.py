"""Single-cursor final merge that partitions aggregates by occurrence."""

from __future__ import annotations

import time
from collections.abc import Sequence
from contextlib import ExitStack
from pathlib import Path

from pydantic import BaseModel, Field

from fenbank.aggregate_record import RECURRENT_BUCKET, AggregateRecord
from fenbank.line_reader import DEFAULT_BLOCK_SIZE, LineReader
from fenbank.merge_worker import AGGREGATE_FORMAT, ChunkFileSink, kway_merge
from fenbank.utils.format_duration import format_duration
from fenbank.utils.logger import get_logger

logger = get_logger(__name__)

EXACT_BUCKETS = tuple(range(1, 10))
BUCKET_KEYS: tuple[int | str, ...] = (*EXACT_BUCKETS, RECURRENT_BUCKET)


def bucket_path(temp_dir: Path, bucket: int | str) -> Path:
    return Path(temp_dir) / f"{bucket}occ.tmp"


class FinalMergeResult(BaseModel):
    positions_written: int = 0
    lines_read: int = 0
    bucket_counts: dict[str, int] = Field(default_factory=dict)
    elapsed: str = ""


class BucketSink:
    """Route finished aggregates to the eleven occurrence bucket files.

    All bucket files are created on open, so an empty bucket is an empty file.
    """

    def __init__(self, temp_dir: Path) -> None:
        self.temp_dir = Path(temp_dir)
        self.counts: dict[str, int] = {str(bucket): 0 for bucket in BUCKET_KEYS}
        self._sinks: dict[str, ChunkFileSink] = {}
        try:
            for bucket in BUCKET_KEYS:
                self._sinks[str(bucket)] = ChunkFileSink(bucket_path(self.temp_dir, bucket))
        except OSError:
            self.close()
            raise

    def write(self, record: AggregateRecord) -> None:
        bucket = str(record.bucket)
        self._sinks[bucket].write(record)
        self.counts[bucket] += 1

    def close(self) -> None:
        for sink in self._sinks.values():
            sink.close()


def final_merge(
    input_files: Sequence[Path],
    temp_dir: Path,
    block_size: int = DEFAULT_BLOCK_SIZE,
) -> FinalMergeResult:
    """Merge the last ``<= fan-in`` aggregate chunks into the bucket files.

    Runs in the calling process: a single global merge cursor orders the whole
    output, and any error propagates to the caller.
    """

    started = time.monotonic()
    logger.info("Final merge of %s chunks into occurrence buckets", len(input_files))
    with ExitStack() as stack:
        readers = [
            stack.enter_context(LineReader(Path(path), block_size=block_size))
            for path in input_files
        ]
        sink = BucketSink(temp_dir)
        stack.callback(sink.close)
        stats = kway_merge(readers, sink, AGGREGATE_FORMAT)
    elapsed = format_duration(time.monotonic() - started)
    logger.info(
        "Final merge complete: %s lines -> %s unique positions in %s",
        f"{stats.lines_read:,}",
        f"{stats.positions_written:,}",
        elapsed,
    )
    return FinalMergeResult(
        positions_written=stats.positions_written,
        lines_read=stats.lines_read,
        bucket_counts=dict(sink.counts),
        elapsed=elapsed,
    )
