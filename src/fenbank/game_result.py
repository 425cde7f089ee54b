from __future__ import annotations

from enum import StrEnum


class GameResult(StrEnum):
    """
    Enumeration of decisive and drawn PGN results.

    Attributes:
        WHITE_WIN: ``1-0``.
        BLACK_WIN: ``0-1``.
        DRAW: ``1/2-1/2``.

    Methods:
        from_token(token: str) -> GameResult | None:
            Map a movetext termination marker to a result; unfinished games
            (``*``) and unknown tokens map to None.
    """

    WHITE_WIN = "1-0"
    BLACK_WIN = "0-1"
    DRAW = "1/2-1/2"

    @classmethod
    def from_token(cls, token: str | None) -> GameResult | None:
        if not token:
            return None
        try:
            return cls(token.strip())
        except ValueError:
            return None
