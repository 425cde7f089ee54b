"""Transient record emitted for every replayed ply."""

from __future__ import annotations

from dataclasses import dataclass

from fenbank.game_result import GameResult


@dataclass(frozen=True, slots=True)
class PositionRecord:
    """One normalized position together with its game's result and id."""

    fen: str
    result: GameResult
    game_id: str
