"""Bounded-size rotating chunk files plus the position index side channel."""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path
from typing import TextIO

from fenbank.line_codecs import encode_raw_line
from fenbank.position_record import PositionRecord
from fenbank.utils.logger import get_logger

logger = get_logger(__name__)

INDEX_HEADER = "fen\tgame_id\n"


def chunk_path(temp_dir: Path, index: int) -> Path:
    return temp_dir / f"chunk_{index}.tmp"


class ChunkWriter:
    """Append extraction output to ``chunk_<n>.tmp`` files of at most ``chunk_size`` lines.

    Exactly one chunk is open at a time. Before a record is written, a full
    chunk is closed and the next index is opened, so every chunk except
    possibly the last holds exactly ``chunk_size`` records. Every record is
    also appended to the index file as ``fen\\tgame_id``.
    """

    def __init__(self, temp_dir: Path, chunk_size: int, index_path: Path | None = None) -> None:
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")
        self.temp_dir = Path(temp_dir)
        self.chunk_size = chunk_size
        self.index_path = Path(index_path) if index_path is not None else None
        self.chunk_index = 0
        self.positions_in_current_chunk = 0
        self.positions_written = 0
        self.chunk_paths: list[Path] = []
        self._chunk_handle: TextIO | None = None
        self._index_handle: TextIO | None = None

    def __enter__(self) -> ChunkWriter:
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def open(self) -> None:
        self.temp_dir.mkdir(parents=True, exist_ok=True)
        if self.index_path is not None and self._index_handle is None:
            self.index_path.parent.mkdir(parents=True, exist_ok=True)
            self._index_handle = self.index_path.open("w", encoding="utf-8", newline="\n")
            self._index_handle.write(INDEX_HEADER)
        if self._chunk_handle is None:
            self._open_chunk()

    def write(self, records: Iterable[PositionRecord]) -> int:
        """Write records, rotating chunks at the size cap; return the count written."""
        if self._chunk_handle is None:
            self.open()
        written = 0
        for record in records:
            if self.positions_in_current_chunk >= self.chunk_size:
                self._rotate()
            self._chunk_handle.write(encode_raw_line(record.fen, record.result))
            if self._index_handle is not None and record.game_id:
                self._index_handle.write(f"{record.fen}\t{record.game_id}\n")
            self.positions_in_current_chunk += 1
            self.positions_written += 1
            written += 1
        return written

    def close(self) -> None:
        if self._chunk_handle is not None:
            self._chunk_handle.close()
            self._chunk_handle = None
        if self._index_handle is not None:
            self._index_handle.close()
            self._index_handle = None

    def _rotate(self) -> None:
        self._chunk_handle.close()
        logger.debug(
            "Chunk %s complete with %s positions", self.chunk_index, self.positions_in_current_chunk
        )
        self.chunk_index += 1
        self._open_chunk()

    def _open_chunk(self) -> None:
        path = chunk_path(self.temp_dir, self.chunk_index)
        self._chunk_handle = path.open("w", encoding="utf-8", newline="\n")
        self.chunk_paths.append(path)
        self.positions_in_current_chunk = 0
