"""Tag-line parsing for ID-tagged PGN games."""

from __future__ import annotations

import re
from dataclasses import dataclass

from fenbank.game_result import GameResult

DEFAULT_GAME_DATE = "1900.01.01"
OFFICIAL_SOURCE = "Official"

_ID_RE = re.compile(r'\[ID\s+"([^"]+)"\]')
_WHITE_ELO_RE = re.compile(r'\[WhiteElo\s+"([^"]+)"\]')
_SITE_RE = re.compile(r'\[Site\s+"([^"]+)"\]')
_DATE_RE = re.compile(r'\[Date\s+"([^"]+)"\]')
_SOURCE_RE = re.compile(r'\[Source\s+"([^"]+)"\]')
_RESULT_RE = re.compile(r"\s+(1-0|0-1|1/2-1/2|\*)\s*$", re.MULTILINE)


@dataclass(frozen=True, slots=True)
class GameHeaders:
    """Tag values the extractor reads from one game."""

    game_id: str
    white_elo: int = 0
    site: str | None = None
    date: str = DEFAULT_GAME_DATE
    official: bool = False

    @classmethod
    def from_game_text(cls, game_text: str) -> GameHeaders | None:
        """Parse tags from raw game text; None when the game has no ID tag."""
        game_id = _match(_ID_RE, game_text)
        if not game_id:
            return None
        return cls(
            game_id=game_id,
            white_elo=_parse_elo(_match(_WHITE_ELO_RE, game_text)),
            site=_match(_SITE_RE, game_text),
            date=_match(_DATE_RE, game_text) or DEFAULT_GAME_DATE,
            official=_match(_SOURCE_RE, game_text) == OFFICIAL_SOURCE,
        )

    def context(self) -> str:
        """Short tag summary used when a game is logged as skipped."""
        source = "official" if self.official else "unofficial"
        return f"site={self.site or '?'} date={self.date} white_elo={self.white_elo} {source}"


def extract_movetext_result(game_text: str) -> GameResult | None:
    """Return the result marker that terminates the movetext, if decisive or drawn."""
    match = _RESULT_RE.search(game_text)
    if match is None:
        return None
    return GameResult.from_token(match.group(1))


def _match(pattern: re.Pattern[str], text: str) -> str | None:
    match = pattern.search(text)
    return match.group(1) if match else None


def _parse_elo(raw: str | None) -> int:
    if not raw:
        return 0
    try:
        return int(raw)
    except ValueError:
        return 0
