"""Extraction task executed inside a pool worker."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from fenbank.extract_game__positions import extract_game_positions
from fenbank.position_record import PositionRecord


@dataclass(slots=True)
class ExtractionResult:
    positions: list[PositionRecord] = field(default_factory=list)
    processed_games: int = 0
    batch_id: int = 0


def extract_batch(
    games: Sequence[str],
    low_value_markers: Sequence[str] = (),
    batch_id: int = 0,
) -> ExtractionResult:
    """Extract positions for every game in a batch.

    ``processed_games`` counts every non-empty game text handed to the
    extractor, including games that were rejected or failed to replay.
    """

    result = ExtractionResult(batch_id=batch_id)
    for game_text in games:
        if not game_text or not isinstance(game_text, str):
            continue
        result.positions.extend(extract_game_positions(game_text, low_value_markers))
        result.processed_games += 1
    return result
