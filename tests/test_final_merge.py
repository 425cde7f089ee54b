"""Tests for the final merge into occurrence buckets."""

from __future__ import annotations

from fenbank.aggregate_record import RECURRENT_BUCKET
from fenbank.final_merge import BUCKET_KEYS, bucket_path, final_merge
from fenbank.line_codecs import decode_aggregate_line
from fenbank.merge_worker import merge_chunks
from tests.pgn_helpers import write_lines


def _write_inputs(tmp_path):
    first = write_lines(
        tmp_path / "in_0.tmp",
        ["a\t6\t6\t0\t0", "b\t5\t0\t5\t0", "d\t2\t1\t1\t0"],
    )
    second = write_lines(
        tmp_path / "in_1.tmp",
        ["a\t4\t0\t0\t4", "b\t4\t4\t0\t0", "c\t1\t1\t0\t0"],
    )
    return [first, second]


def test_ten_occurrences_land_in_recurrent_bucket_nine_in_bucket_nine(tmp_path) -> None:
    temp_dir = tmp_path / "temp"
    temp_dir.mkdir()

    result = final_merge(_write_inputs(tmp_path), temp_dir)

    assert bucket_path(temp_dir, RECURRENT_BUCKET).read_text(encoding="utf-8") == "a\t10\t6\t0\t4\n"
    assert bucket_path(temp_dir, 9).read_text(encoding="utf-8") == "b\t9\t4\t5\t0\n"
    assert bucket_path(temp_dir, 2).read_text(encoding="utf-8") == "d\t2\t1\t1\t0\n"
    assert bucket_path(temp_dir, 1).read_text(encoding="utf-8") == "c\t1\t1\t0\t0\n"
    assert result.positions_written == 4
    assert result.bucket_counts["10plus"] == 1
    assert result.bucket_counts["9"] == 1


def test_every_bucket_file_exists_even_when_empty(tmp_path) -> None:
    temp_dir = tmp_path / "temp"
    temp_dir.mkdir()

    final_merge(_write_inputs(tmp_path), temp_dir)

    for bucket in BUCKET_KEYS:
        assert bucket_path(temp_dir, bucket).exists()
    assert bucket_path(temp_dir, 5).read_text(encoding="utf-8") == ""


def test_each_record_appears_in_exactly_the_bucket_matching_its_occurrence(tmp_path) -> None:
    temp_dir = tmp_path / "temp"
    temp_dir.mkdir()
    lines = [f"fen{occ:02d}\t{occ}\t{occ}\t0\t0" for occ in range(1, 15)]
    source = write_lines(tmp_path / "in.tmp", lines)

    final_merge([source], temp_dir)

    seen: dict[str, str] = {}
    for bucket in BUCKET_KEYS:
        for line in bucket_path(temp_dir, bucket).read_text(encoding="utf-8").splitlines():
            record = decode_aggregate_line(line)
            assert record.fen not in seen
            seen[record.fen] = str(bucket)
            assert str(record.bucket) == str(bucket)
    assert len(seen) == 14


def test_bucket_rows_match_a_single_unpartitioned_merge(tmp_path) -> None:
    temp_dir = tmp_path / "temp"
    temp_dir.mkdir()
    inputs = _write_inputs(tmp_path)
    unpartitioned = tmp_path / "single.tmp"

    merge_chunks(inputs, unpartitioned, is_first_phase=False)
    final_merge(inputs, temp_dir)

    bucket_rows = sum(
        len(bucket_path(temp_dir, bucket).read_text(encoding="utf-8").splitlines())
        for bucket in BUCKET_KEYS
    )
    assert bucket_rows == len(unpartitioned.read_text(encoding="utf-8").splitlines())
