"""Collapse FENs that differ only in move-count metadata."""

from __future__ import annotations

HALFMOVE_CLOCK_SENTINEL = "0"
FULLMOVE_NUMBER_SENTINEL = "1"


def normalize_fen(fen: str) -> str:
    """Fix the halfmove clock and fullmove number of a FEN to ``0 1``.

    Args:
        fen: Full six-field FEN (a four-field FEN is padded).

    Returns:
        FEN whose last two fields are the fixed sentinels.
    """

    parts = fen.split()
    if len(parts) < 4:
        raise ValueError(f"Not a FEN: {fen!r}")
    parts = parts[:4] + [HALFMOVE_CLOCK_SENTINEL, FULLMOVE_NUMBER_SENTINEL]
    return " ".join(parts)
