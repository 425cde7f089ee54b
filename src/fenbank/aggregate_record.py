"""Per-position occurrence and result tallies."""

from __future__ import annotations

from dataclasses import dataclass

from fenbank.game_result import GameResult

RECURRENT_BUCKET = "10plus"
RECURRENT_THRESHOLD = 10


def bucket_for_occurrence(occurrence: int) -> int | str:
    """Return the occurrence bucket key: ``1``..``9`` or ``"10plus"``."""
    if occurrence >= RECURRENT_THRESHOLD:
        return RECURRENT_BUCKET
    if occurrence < 1:
        raise ValueError(f"Occurrence must be positive, got {occurrence}")
    return occurrence


@dataclass(slots=True)
class AggregateRecord:
    """Running aggregate for a single FEN key.

    ``occurrence`` always equals ``white + black + draw`` for records built from
    extractor output.
    """

    fen: str
    occurrence: int = 0
    white: int = 0
    black: int = 0
    draw: int = 0

    def add_result(self, result: GameResult | None) -> None:
        """Count one raw occurrence with its game result."""
        self.occurrence += 1
        if result is GameResult.WHITE_WIN:
            self.white += 1
        elif result is GameResult.BLACK_WIN:
            self.black += 1
        elif result is GameResult.DRAW:
            self.draw += 1

    def absorb(self, other: AggregateRecord) -> None:
        """Sum another aggregate for the same key into this one."""
        if other.fen != self.fen:
            raise ValueError(f"Cannot merge aggregates for different keys: {other.fen!r}")
        self.occurrence += other.occurrence
        self.white += other.white
        self.black += other.black
        self.draw += other.draw

    @property
    def bucket(self) -> int | str:
        return bucket_for_occurrence(self.occurrence)

    def to_line(self) -> str:
        return f"{self.fen}\t{self.occurrence}\t{self.white}\t{self.black}\t{self.draw}\n"
