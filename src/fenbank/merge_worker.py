"""K-way merge of sorted chunks with same-key aggregation.

Every merge in the engine runs through :func:`kway_merge`: the intermediate
phases write one aggregate chunk, the final merge routes records to the
occurrence buckets. Phase one reads raw ``fen|result`` lines and is the only
place where raw lines turn into aggregate rows.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Sequence
from contextlib import ExitStack
from dataclasses import dataclass
from pathlib import Path
from typing import TextIO

from pydantic import BaseModel

from fenbank.aggregate_record import AggregateRecord
from fenbank.errors import MergeTaskError
from fenbank.line_codecs import (
    aggregate_line_key,
    decode_aggregate_line,
    decode_raw_line,
    raw_line_key,
)
from fenbank.line_reader import DEFAULT_BLOCK_SIZE, LineReader
from fenbank.ports.aggregate_sink import AggregateSink
from fenbank.utils.format_duration import format_duration
from fenbank.utils.logger import get_logger

logger = get_logger(__name__)

WRITE_BUFFER_LIMIT = 1024 * 1024


@dataclass(frozen=True, slots=True)
class LineFormat:
    """How to key and fold one on-disk line format into a running aggregate."""

    name: str
    key: Callable[[str], str]
    accumulate: Callable[[AggregateRecord, str], bool]


def _accumulate_raw(record: AggregateRecord, line: str) -> bool:
    decoded = decode_raw_line(line)
    if decoded is None:
        return False
    record.add_result(decoded[1])
    return True


def _accumulate_aggregate(record: AggregateRecord, line: str) -> bool:
    decoded = decode_aggregate_line(line)
    if decoded is None:
        return False
    record.absorb(decoded)
    return True


def _raw_key(line: str) -> str:
    return raw_line_key(line) if "|" in line else ""


def _aggregate_key(line: str) -> str:
    return aggregate_line_key(line) if "\t" in line else ""


RAW_FORMAT = LineFormat(name="raw", key=_raw_key, accumulate=_accumulate_raw)
AGGREGATE_FORMAT = LineFormat(name="aggregate", key=_aggregate_key, accumulate=_accumulate_aggregate)


def line_format_for_phase(is_first_phase: bool) -> LineFormat:
    return RAW_FORMAT if is_first_phase else AGGREGATE_FORMAT


@dataclass(slots=True)
class MergeStats:
    positions_written: int = 0
    lines_read: int = 0
    lines_skipped: int = 0


class MergeResult(BaseModel):
    """Outcome of one merge task, as reported back to the reducer."""

    success: bool
    output_file: str
    input_files: list[str]
    positions_written: int = 0
    lines_read: int = 0
    lines_skipped: int = 0
    elapsed: str = ""
    error: str | None = None


class ChunkFileSink:
    """Write aggregate rows to a single output chunk through a write buffer."""

    def __init__(self, path: Path, buffer_limit: int = WRITE_BUFFER_LIMIT) -> None:
        self.path = Path(path)
        self.buffer_limit = buffer_limit
        self._buffer: list[str] = []
        self._buffered = 0
        self._handle: TextIO | None = self.path.open("w", encoding="utf-8", newline="\n")

    def write(self, record: AggregateRecord) -> None:
        line = record.to_line()
        self._buffer.append(line)
        self._buffered += len(line)
        if self._buffered >= self.buffer_limit:
            self._flush()

    def close(self) -> None:
        if self._handle is None:
            return
        self._flush()
        self._handle.close()
        self._handle = None

    def _flush(self) -> None:
        if self._buffer and self._handle is not None:
            self._handle.write("".join(self._buffer))
        self._buffer = []
        self._buffered = 0


def _next_head(reader: LineReader, line_format: LineFormat, stats: MergeStats) -> str | None:
    """Return the key of the reader's head, skipping lines with no delimiter."""
    while True:
        line = reader.head
        if line is None:
            return None
        key = line_format.key(line)
        if key:
            return key
        reader.advance()
        stats.lines_skipped += 1
        logger.warning(
            "Skipping malformed %s line in %s: %r", line_format.name, reader.path.name, line[:80]
        )


def _flush(record: AggregateRecord, sink: AggregateSink, stats: MergeStats) -> None:
    if record.occurrence < 1:
        return
    sink.write(record)
    stats.positions_written += 1


def kway_merge(
    readers: Sequence[LineReader],
    sink: AggregateSink,
    line_format: LineFormat,
) -> MergeStats:
    """Merge sorted readers into ``sink``, summing records that share a FEN key.

    Each iteration selects the minimal head key across non-exhausted readers
    and advances every reader whose head carries that key. The running
    aggregate is flushed to the sink as soon as the minimal key changes and
    once more when all readers are exhausted, so the sink sees strictly
    increasing keys.
    """

    stats = MergeStats()
    current: AggregateRecord | None = None
    while True:
        heads: list[tuple[str, LineReader]] = []
        for reader in readers:
            head_key = _next_head(reader, line_format, stats)
            if head_key is not None:
                heads.append((head_key, reader))
        if not heads:
            break
        min_key = min(key for key, _ in heads)
        if current is not None and current.fen != min_key:
            _flush(current, sink, stats)
            current = None
        if current is None:
            current = AggregateRecord(fen=min_key)
        for key, reader in heads:
            if key != min_key:
                continue
            line = reader.advance()
            stats.lines_read += 1
            if not line_format.accumulate(current, line):
                stats.lines_skipped += 1
    if current is not None:
        _flush(current, sink, stats)
    return stats


def merge_chunks(
    input_files: Sequence[Path],
    output_file: Path,
    is_first_phase: bool,
    block_size: int = DEFAULT_BLOCK_SIZE,
) -> MergeResult:
    """Merge up to fan-in sorted chunks into one aggregate chunk.

    Any I/O error removes the partial output and raises MergeTaskError.
    """

    started = time.monotonic()
    output_file = Path(output_file)
    try:
        with ExitStack() as stack:
            readers = [
                stack.enter_context(LineReader(Path(path), block_size=block_size))
                for path in input_files
            ]
            sink = ChunkFileSink(output_file)
            stack.callback(sink.close)
            stats = kway_merge(readers, sink, line_format_for_phase(is_first_phase))
    except OSError as exc:
        output_file.unlink(missing_ok=True)
        raise MergeTaskError(f"Merge into {output_file.name} failed: {exc}") from exc
    return MergeResult(
        success=True,
        output_file=str(output_file),
        input_files=[str(path) for path in input_files],
        positions_written=stats.positions_written,
        lines_read=stats.lines_read,
        lines_skipped=stats.lines_skipped,
        elapsed=format_duration(time.monotonic() - started),
    )
