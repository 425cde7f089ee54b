"""Tests for sorting the recurrent occurrence bucket."""

from __future__ import annotations

from fenbank.line_codecs import AGGREGATE_HEADER
from fenbank.sort_recurrent__buckets import sort_recurrent_bucket
from tests.pgn_helpers import write_lines


def test_rows_are_sorted_by_descending_occurrence(tmp_path) -> None:
    bucket = write_lines(
        tmp_path / "10plusocc.tmp",
        ["a\t10\t10\t0\t0", "b\t42\t20\t20\t2", "c\t11\t1\t5\t5", "d\t42\t0\t0\t42"],
    )
    output = tmp_path / "out" / "fens-onlyrecurrent.tsv"

    rows = sort_recurrent_bucket(bucket, output)

    assert rows == 4
    assert output.read_text(encoding="utf-8") == AGGREGATE_HEADER + (
        "b\t42\t20\t20\t2\nd\t42\t0\t0\t42\nc\t11\t1\t5\t5\na\t10\t10\t0\t0\n"
    )


def test_missing_bucket_writes_header_only(tmp_path) -> None:
    output = tmp_path / "fens-onlyrecurrent.tsv"

    rows = sort_recurrent_bucket(tmp_path / "10plusocc.tmp", output)

    assert rows == 0
    assert output.read_text(encoding="utf-8") == AGGREGATE_HEADER
