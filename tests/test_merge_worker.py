"""Tests for the k-way merge with same-key aggregation."""

from __future__ import annotations

import random
from collections import Counter

import pytest

import fenbank.merge_worker as merge_worker
from fenbank.errors import MergeTaskError
from fenbank.line_codecs import decode_aggregate_line
from fenbank.merge_worker import merge_chunks
from tests.pgn_helpers import write_lines

RESULTS = ("1-0", "0-1", "1/2-1/2")


def _aggregates(path):
    return [decode_aggregate_line(line) for line in path.read_text(encoding="utf-8").splitlines()]


def test_phase_one_merge_counts_occurrences_and_results(tmp_path) -> None:
    chunk_a = write_lines(tmp_path / "a_sorted.tmp", ["d4fen|0-1", "e4fen|1-0"])
    chunk_b = write_lines(tmp_path / "b_sorted.tmp", ["e4fen|1-0", "e4fen|1/2-1/2"])
    output = tmp_path / "phase1" / "chunk_0.tmp"
    output.parent.mkdir()

    result = merge_chunks([chunk_a, chunk_b], output, is_first_phase=True)

    assert result.success
    assert result.positions_written == 2
    assert result.lines_read == 4
    assert output.read_text(encoding="utf-8") == "d4fen\t1\t0\t1\t0\ne4fen\t3\t2\t0\t1\n"


def test_later_phase_merge_sums_aggregates(tmp_path) -> None:
    chunk_a = write_lines(tmp_path / "a.tmp", ["a\t2\t1\t1\t0", "c\t1\t0\t0\t1"])
    chunk_b = write_lines(tmp_path / "b.tmp", ["a\t3\t0\t0\t3", "b\t1\t1\t0\t0"])
    chunk_c = write_lines(tmp_path / "c.tmp", ["c\t4\t2\t2\t0"])
    output = tmp_path / "out.tmp"

    merge_chunks([chunk_a, chunk_b, chunk_c], output, is_first_phase=False)

    assert output.read_text(encoding="utf-8") == (
        "a\t5\t1\t1\t3\nb\t1\t1\t0\t0\nc\t5\t2\t2\t1\n"
    )


def test_merge_skips_lines_without_delimiter(tmp_path) -> None:
    chunk = write_lines(tmp_path / "a.tmp", ["a|1-0", "garbage", "b|0-1"])
    output = tmp_path / "out.tmp"

    result = merge_chunks([chunk], output, is_first_phase=True)

    assert result.lines_skipped == 1
    assert output.read_text(encoding="utf-8") == "a\t1\t1\t0\t0\nb\t1\t0\t1\t0\n"


def test_skipped_line_warning_names_the_line_format(tmp_path, monkeypatch) -> None:
    chunk = write_lines(tmp_path / "a.tmp", ["a\t1\t1\t0\t0", "a|1-0"])
    warnings: list[str] = []
    monkeypatch.setattr(merge_worker.logger, "warning", lambda message, *args: warnings.append(message % args))

    merge_chunks([chunk], tmp_path / "out.tmp", is_first_phase=False)

    assert len(warnings) == 1
    assert warnings[0].startswith("Skipping malformed aggregate line in a.tmp")


def test_merge_of_empty_inputs_writes_empty_chunk(tmp_path) -> None:
    chunk = write_lines(tmp_path / "a.tmp", [])
    output = tmp_path / "out.tmp"

    result = merge_chunks([chunk], output, is_first_phase=True)

    assert result.positions_written == 0
    assert output.read_text(encoding="utf-8") == ""


def test_merge_matches_multiset_totals(tmp_path) -> None:
    rng = random.Random(7)
    fens = [f"fen{index:02d}" for index in range(25)]
    expected_occurrence: Counter[str] = Counter()
    expected_results: Counter[tuple[str, str]] = Counter()
    chunks = []
    for chunk_index in range(4):
        lines = []
        for _ in range(60):
            fen = rng.choice(fens)
            result = rng.choice(RESULTS)
            expected_occurrence[fen] += 1
            expected_results[(fen, result)] += 1
            lines.append(f"{fen}|{result}")
        chunks.append(write_lines(tmp_path / f"chunk_{chunk_index}.tmp", sorted(lines)))
    output = tmp_path / "out.tmp"

    merge_chunks(chunks, output, is_first_phase=True)

    records = _aggregates(output)
    assert [record.fen for record in records] == sorted(expected_occurrence)
    for record in records:
        assert record.occurrence == record.white + record.black + record.draw
        assert record.occurrence == expected_occurrence[record.fen]
        assert record.white == expected_results[(record.fen, "1-0")]
        assert record.black == expected_results[(record.fen, "0-1")]
        assert record.draw == expected_results[(record.fen, "1/2-1/2")]


def test_missing_input_raises_merge_task_error_without_output(tmp_path) -> None:
    output = tmp_path / "out.tmp"

    with pytest.raises(MergeTaskError):
        merge_chunks([tmp_path / "absent.tmp"], output, is_first_phase=True)

    assert not output.exists()
