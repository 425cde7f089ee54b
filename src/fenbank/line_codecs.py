"""Line formats exchanged between the extraction, sort and merge stages.

Two on-disk formats exist:

* raw chunk lines, ``<fen>|<result>``, written by the chunk writer and read by
  the sorter and by phase-one merges;
* aggregate lines, ``<fen>\\t<occurrence>\\t<white>\\t<black>\\t<draw>``,
  written by every merge and read by later phases and the final merge.
"""

from __future__ import annotations

from fenbank.aggregate_record import AggregateRecord
from fenbank.game_result import GameResult

RAW_SEPARATOR = "|"
AGGREGATE_SEPARATOR = "\t"
AGGREGATE_HEADER = "fen\toccurrence\twhite\tblack\tdraw\n"
AGGREGATE_FIELD_COUNT = 5


def encode_raw_line(fen: str, result: GameResult | str) -> str:
    return f"{fen}{RAW_SEPARATOR}{result}\n"


def raw_line_key(line: str) -> str:
    """Return the FEN key of a raw line (text before the first ``|``)."""
    return line.split(RAW_SEPARATOR, 1)[0]


def decode_raw_line(line: str) -> tuple[str, GameResult | None] | None:
    """Split a raw chunk line into its FEN and result.

    Returns None for a line without a ``|`` delimiter. An unknown result token
    decodes as ``None`` so the caller still counts the occurrence.
    """
    fen, separator, result = line.rstrip("\r\n").partition(RAW_SEPARATOR)
    if not separator:
        return None
    return fen, GameResult.from_token(result)


def aggregate_line_key(line: str) -> str:
    return line.split(AGGREGATE_SEPARATOR, 1)[0]


def decode_aggregate_line(line: str) -> AggregateRecord | None:
    """Parse an aggregate line; non-numeric counters decode as zero."""
    parts = line.rstrip("\r\n").split(AGGREGATE_SEPARATOR)
    if len(parts) < AGGREGATE_FIELD_COUNT:
        return None
    fen, occurrence, white, black, draw = parts[:AGGREGATE_FIELD_COUNT]
    return AggregateRecord(
        fen=fen,
        occurrence=_parse_count(occurrence),
        white=_parse_count(white),
        black=_parse_count(black),
        draw=_parse_count(draw),
    )


def encode_aggregate_line(record: AggregateRecord) -> str:
    return record.to_line()


def _parse_count(raw: str) -> int:
    try:
        return int(raw)
    except ValueError:
        return 0
