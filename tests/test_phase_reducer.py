"""Tests for multi-phase reduction of sorted chunks."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from fenbank.final_merge import BUCKET_KEYS, bucket_path
from fenbank.line_codecs import decode_aggregate_line
from fenbank.manifest import RunManifest, read_manifest
from fenbank.merge_pool import MergePool
from fenbank.phase_reducer import PhaseReducer, ReducerState, group_chunks, phase_dir
from tests.pgn_helpers import write_lines


def _sorted_chunks(temp_dir, count: int):
    chunks = []
    for index in range(count):
        lines = sorted(["shared|1-0", f"pos{index}|0-1", f"pos{index}|1/2-1/2"])
        chunks.append(write_lines(temp_dir / f"chunk_{index}_sorted.tmp", lines))
    return chunks


def _bucket_records(temp_dir):
    records = {}
    for bucket in BUCKET_KEYS:
        for line in bucket_path(temp_dir, bucket).read_text(encoding="utf-8").splitlines():
            record = decode_aggregate_line(line)
            records[record.fen] = record
    return records


def test_group_chunks_respects_fan_in(tmp_path) -> None:
    paths = [tmp_path / f"{index}" for index in range(5)]

    assert [len(group) for group in group_chunks(paths, 2)] == [2, 2, 1]


def test_reducer_runs_phases_until_fan_in_then_partitions(tmp_path) -> None:
    chunks = _sorted_chunks(tmp_path, 5)
    manifest = RunManifest()
    manifest.record_sorted_chunks(chunks)
    manifest_path = tmp_path / "manifest.json"
    events: list[dict[str, object]] = []

    with MergePool(2, executor_factory=ThreadPoolExecutor) as pool:
        reducer = PhaseReducer(
            tmp_path,
            fan_in=2,
            merge_pool=pool,
            manifest=manifest,
            manifest_path=manifest_path,
            progress=events.append,
        )
        result = reducer.run(chunks)

    assert result.phases_run == 2
    assert result.last_phase == 2
    assert result.failed_merges == 0
    assert reducer.state is ReducerState.DONE
    records = _bucket_records(tmp_path)
    assert records["shared"].occurrence == 5
    assert records["shared"].white == 5
    for index in range(5):
        assert records[f"pos{index}"].occurrence == 2
        assert records[f"pos{index}"].black == 1
        assert records[f"pos{index}"].draw == 1
    assert result.final.bucket_counts["2"] == 5
    assert result.final.bucket_counts["5"] == 1
    assert all(chunk.exists() for chunk in chunks)
    assert not phase_dir(tmp_path, 1).exists()
    assert list(phase_dir(tmp_path, 2).iterdir()) == []
    stored = read_manifest(manifest_path)
    assert [item.phase for item in stored.completed_phases] == [1, 2]
    assert stored.final_merge_done
    assert {event["step"] for event in events} == {"phase 1", "phase 2"}


def test_phase_one_runs_even_for_a_single_chunk(tmp_path) -> None:
    chunks = _sorted_chunks(tmp_path, 1)

    with MergePool(1, executor_factory=ThreadPoolExecutor) as pool:
        result = PhaseReducer(tmp_path, fan_in=6, merge_pool=pool).run(chunks)

    assert result.phases_run == 1
    assert result.final.positions_written == 2
    assert bucket_path(tmp_path, 1).read_text(encoding="utf-8") == "shared\t1\t1\t0\t0\n"


def test_resume_from_completed_phase_skips_raw_conversion(tmp_path) -> None:
    phase_one = phase_dir(tmp_path, 1)
    phase_one.mkdir()
    chunks = [
        write_lines(phase_one / "chunk_0.tmp", ["a\t3\t1\t1\t1"]),
        write_lines(phase_one / "chunk_1.tmp", ["a\t7\t7\t0\t0", "b\t1\t0\t1\t0"]),
    ]

    with MergePool(1, executor_factory=ThreadPoolExecutor) as pool:
        result = PhaseReducer(tmp_path, fan_in=2, merge_pool=pool).run(chunks, start_phase=1)

    assert result.phases_run == 0
    assert result.last_phase == 1
    assert bucket_path(tmp_path, "10plus").read_text(encoding="utf-8") == "a\t10\t8\t1\t1\n"
    assert not any(chunk.exists() for chunk in chunks)


def test_discarding_sorted_inputs_after_phase_one(tmp_path) -> None:
    chunks = _sorted_chunks(tmp_path, 3)

    with MergePool(1, executor_factory=ThreadPoolExecutor) as pool:
        PhaseReducer(tmp_path, fan_in=6, merge_pool=pool, keep_sorted_chunks=False).run(chunks)

    assert not any(chunk.exists() for chunk in chunks)


def test_failed_merge_is_counted_and_skipped(tmp_path) -> None:
    chunks = _sorted_chunks(tmp_path, 2)
    missing = tmp_path / "chunk_9_sorted.tmp"

    with MergePool(1, executor_factory=ThreadPoolExecutor) as pool:
        result = PhaseReducer(tmp_path, fan_in=2, merge_pool=pool).run([*chunks, missing])

    assert result.failed_merges == 1
    assert _bucket_records(tmp_path)["shared"].occurrence == 2


def test_fan_in_below_two_is_rejected(tmp_path) -> None:
    with pytest.raises(ValueError):
        PhaseReducer(tmp_path, fan_in=1, merge_pool=MergePool(1))
