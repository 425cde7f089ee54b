"""Block-buffered line reader with a small read-ahead queue."""

from __future__ import annotations

from collections import deque
from pathlib import Path
from typing import TextIO

DEFAULT_BLOCK_SIZE = 8 * 1024 * 1024
DEFAULT_READ_AHEAD = 100
REFILL_THRESHOLD = 10


class LineReader:
    """Stream non-empty lines of one sorted file.

    Data is read in blocks and split on newlines; the partial line at the end
    of a block is carried over to the next read. At end of stream any buffered
    remainder becomes the final line. ``head`` is the next unconsumed line, or
    None once the reader is exhausted. The file handle is closed as soon as
    the stream ends.
    """

    def __init__(
        self,
        path: Path,
        block_size: int = DEFAULT_BLOCK_SIZE,
        read_ahead: int = DEFAULT_READ_AHEAD,
    ) -> None:
        self.path = Path(path)
        self.block_size = block_size
        self.read_ahead = max(1, read_ahead)
        self.lines_read = 0
        self._queue: deque[str] = deque()
        self._carry = ""
        self._stream_ended = False
        self._handle: TextIO | None = self.path.open("r", encoding="utf-8", newline="")

    def __enter__(self) -> LineReader:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @property
    def head(self) -> str | None:
        if len(self._queue) < REFILL_THRESHOLD and not self._stream_ended:
            self._fill()
        return self._queue[0] if self._queue else None

    def advance(self) -> str:
        """Consume and return the head line."""
        line = self.head
        if line is None:
            raise EOFError(f"{self.path.name} is exhausted")
        self._queue.popleft()
        self.lines_read += 1
        return line

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None
        self._carry = ""

    def _fill(self) -> None:
        while len(self._queue) < self.read_ahead and not self._stream_ended:
            block = self._handle.read(self.block_size) if self._handle is not None else ""
            if not block:
                self._finish_stream()
                return
            pieces = (self._carry + block).split("\n")
            self._carry = pieces.pop()
            self._queue.extend(line for line in (piece.strip() for piece in pieces) if line)

    def _finish_stream(self) -> None:
        remainder = self._carry.strip()
        if remainder:
            self._queue.append(remainder)
        self._stream_ended = True
        self.close()
