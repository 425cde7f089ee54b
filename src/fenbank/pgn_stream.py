"""Streaming reader that splits an ID-tagged PGN file into game texts."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from pathlib import Path

from fenbank.errors import InputNotFoundError, MissingGameIdError

GAME_START_PREFIX = "[ID "
READ_BLOCK_SIZE = 1024 * 1024


def _iter_lines(path: Path, block_size: int = READ_BLOCK_SIZE) -> Iterator[str]:
    carry = ""
    with path.open("r", encoding="utf-8", errors="replace", newline="") as handle:
        while True:
            block = handle.read(block_size)
            if not block:
                break
            lines = (carry + block).split("\n")
            carry = lines.pop()
            yield from lines
    if carry:
        yield carry


def iter_game_texts(path: Path, block_size: int = READ_BLOCK_SIZE) -> Iterator[str]:
    """Yield one text per game; a game starts at each ``[ID `` line.

    Text before the first ``[ID `` line belongs to no game and is dropped.
    """

    current: list[str] = []
    in_game = False
    for line in _iter_lines(path, block_size):
        line = line.rstrip("\r")
        if line.startswith(GAME_START_PREFIX):
            if in_game and "".join(current).strip():
                yield "\n".join(current) + "\n"
            current = [line]
            in_game = True
        elif in_game:
            current.append(line)
    if in_game and "".join(current).strip():
        yield "\n".join(current) + "\n"


def iter_batches(games: Iterable[str], batch_size: int) -> Iterator[list[str]]:
    batch: list[str] = []
    for game in games:
        batch.append(game)
        if len(batch) >= batch_size:
            yield batch
            batch = []
    if batch:
        yield batch


def count_games(path: Path) -> int:
    """Count ``[ID `` tag lines in the input."""
    return sum(1 for line in _iter_lines(path) if line.startswith(GAME_START_PREFIX))


def has_tagged_game(path: Path) -> bool:
    return any(line.startswith(GAME_START_PREFIX) for line in _iter_lines(path))


def check_input(path: Path, expected_games: int = 0) -> int:
    """Fail fast on a missing input or one without ID tags; return the game count.

    A positive ``expected_games`` is trusted as the count, so only the first
    ID tag line is looked for instead of scanning the whole file.
    """
    if not path.is_file():
        raise InputNotFoundError(f"PGN input not found: {path}")
    if expected_games > 0:
        games = expected_games if has_tagged_game(path) else 0
    else:
        games = count_games(path)
    if games == 0 and path.stat().st_size > 0:
        raise MissingGameIdError(
            f"No [ID \"...\"] tag lines in {path}; run the ID-tagging pass first"
        )
    return games
