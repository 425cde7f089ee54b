"""Replay one ID-tagged game and emit a record per position."""

from __future__ import annotations

from collections.abc import Iterable
from io import StringIO

import chess
import chess.pgn

from fenbank.normalize_fen__positions import normalize_fen
from fenbank.pgn_headers import GameHeaders, extract_movetext_result
from fenbank.position_record import PositionRecord
from fenbank.utils.logger import get_logger

logger = get_logger(__name__)


def is_low_value_game(game_text: str, markers: Iterable[str]) -> bool:
    lowered = game_text.lower()
    return any(marker and marker in lowered for marker in markers)


def extract_game_positions(
    game_text: str,
    low_value_markers: Iterable[str] = (),
) -> list[PositionRecord]:
    """Replay a game from the initial position and collect its positions.

    One record is produced for the position before every ply plus one for the
    final position. Games without an ID tag, with an unfinished result, that
    carry a low-value marker, or whose movetext fails to replay yield an empty
    list; no exception escapes for a bad game.
    """

    if not game_text or is_low_value_game(game_text, low_value_markers):
        return []
    result = extract_movetext_result(game_text)
    if result is None:
        return []
    headers = GameHeaders.from_game_text(game_text)
    if headers is None:
        return []
    try:
        fens = _replay_fens(game_text)
    except (ValueError, IndexError, AssertionError) as exc:
        logger.debug("Discarding game %s (%s): %s", headers.game_id, headers.context(), exc)
        return []
    if fens is None:
        logger.debug("Discarding game %s (%s): unreplayable movetext", headers.game_id, headers.context())
        return []
    return [PositionRecord(fen=fen, result=result, game_id=headers.game_id) for fen in fens]


def _replay_fens(game_text: str) -> list[str] | None:
    game = chess.pgn.read_game(StringIO(game_text))
    if game is None or game.errors:
        return None
    board = game.board()
    if board.fen() != chess.STARTING_FEN:
        return None
    fens: list[str] = []
    for move in game.mainline_moves():
        fens.append(normalize_fen(board.fen()))
        board.push(move)
    fens.append(normalize_fen(board.fen()))
    return fens
