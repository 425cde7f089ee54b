"""End-to-end tests for the aggregation pipeline."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import chess
import pytest

import fenbank.pipeline as pipeline
from fenbank.config import Settings
from fenbank.errors import InputNotFoundError, ManifestError
from fenbank.line_codecs import AGGREGATE_HEADER
from fenbank.pipeline import run_pipeline
from tests.pgn_helpers import (
    ITALIAN_DRAW,
    QUEENS_PAWN_LOSS,
    SCHOLARS_MATE,
    read_rows,
    tagged_game,
    write_pgn,
)


def _corpus() -> list[str]:
    games = [tagged_game(f"s{index}", SCHOLARS_MATE) for index in range(10)]
    games += [tagged_game(f"i{index}", ITALIAN_DRAW) for index in range(2)]
    games.append(tagged_game("q0", QUEENS_PAWN_LOSS))
    games.append(tagged_game("bad", "1. e4 e5 2. Ke3 1-0"))
    games.append(tagged_game("tcec", SCHOLARS_MATE, Site="TCEC Season 9"))
    return games


def _settings(root, **overrides) -> Settings:
    values = {
        "input_path": root / "games.pgn",
        "temp_dir": root / "temp",
        "output_dir": root / "out",
        "chunk_size": 10,
        "fan_in": 2,
        "pool_size": 2,
        "batch_size": 2,
        "merge_retries": 0,
        "low_value_markers": ("tcec",),
    }
    values.update(overrides)
    return Settings(**values)


def _leftover_temp_files(settings: Settings) -> list[str]:
    return sorted(path.name for path in settings.temp_dir.rglob("*"))


def test_full_run_publishes_three_outputs(tmp_path) -> None:
    write_pgn(tmp_path / "games.pgn", _corpus())
    settings = _settings(tmp_path)

    result = run_pipeline(settings, executor_factory=ThreadPoolExecutor)

    assert result.games_processed == 15
    assert result.positions_extracted == 10 * 8 + 2 * 7 + 5
    assert result.unique_positions == 16
    assert result.recurrent_positions == 8
    assert result.repeated_positions == 4
    assert result.single_positions == 4
    assert result.phases_run >= 2
    assert result.failed_merges == 0

    recurrent = read_rows(settings.only_recurrent_path)
    assert recurrent[0] == AGGREGATE_HEADER.rstrip("\n").split("\t")
    assert recurrent[1] == [chess.STARTING_FEN, "13", "10", "1", "2"]
    occurrences = [int(row[1]) for row in recurrent[1:]]
    assert occurrences == sorted(occurrences, reverse=True)

    all_rows = read_rows(settings.all_positions_path)[1:]
    assert len(all_rows) == 16
    for fen, occurrence, white, black, draw in all_rows:
        assert int(occurrence) == int(white) + int(black) + int(draw)
    assert [int(row[1]) for row in all_rows[8:12]] == [2, 2, 2, 2]
    assert [int(row[1]) for row in all_rows[12:]] == [1, 1, 1, 1]
    assert read_rows(settings.without_one_path)[1:] == all_rows[:12]

    assert settings.index_path.name == "games-pgi.tsv"
    assert len(settings.index_path.read_text(encoding="utf-8").splitlines()) == 1 + 99
    assert _leftover_temp_files(settings) == []


def test_resume_from_sorted_chunks_matches_a_full_run(tmp_path, monkeypatch) -> None:
    full_root = tmp_path / "full"
    resumed_root = tmp_path / "resumed"
    for root in (full_root, resumed_root):
        root.mkdir()
        write_pgn(root / "games.pgn", _corpus())
    full = _settings(full_root)
    run_pipeline(full, executor_factory=ThreadPoolExecutor)

    interrupted = _settings(resumed_root)
    real_reduce = pipeline._reduce

    def interrupt(*args, **kwargs):
        raise RuntimeError("killed during merge")

    monkeypatch.setattr(pipeline, "_reduce", interrupt)
    with pytest.raises(RuntimeError):
        run_pipeline(interrupted, executor_factory=ThreadPoolExecutor)
    assert interrupted.manifest_path.exists()
    assert any(name.endswith("_sorted.tmp") for name in _leftover_temp_files(interrupted))

    monkeypatch.setattr(pipeline, "_reduce", real_reduce)
    (resumed_root / "games.pgn").unlink()
    resumed = _settings(resumed_root, resume=True)
    result = run_pipeline(resumed, executor_factory=ThreadPoolExecutor)

    assert result.resumed
    assert result.unique_positions == 16
    for name in ("fens-all.tsv", "fens-withoutone.tsv", "fens-onlyrecurrent.tsv"):
        assert (resumed.output_dir / name).read_bytes() == (full.output_dir / name).read_bytes()
    assert _leftover_temp_files(resumed) == []


def test_resume_without_manifest_fails(tmp_path) -> None:
    with pytest.raises(ManifestError):
        run_pipeline(_settings(tmp_path, resume=True), executor_factory=ThreadPoolExecutor)


def test_missing_input_fails_before_touching_temp_state(tmp_path) -> None:
    settings = _settings(tmp_path)
    settings.temp_dir.mkdir()
    stale = settings.temp_dir / "chunk_0_sorted.tmp"
    stale.write_text("a|1-0\n", encoding="utf-8")

    with pytest.raises(InputNotFoundError):
        run_pipeline(settings, executor_factory=ThreadPoolExecutor)

    assert stale.exists()


def test_empty_input_produces_header_only_outputs(tmp_path) -> None:
    (tmp_path / "games.pgn").write_text("", encoding="utf-8")
    settings = _settings(tmp_path)

    result = run_pipeline(settings, executor_factory=ThreadPoolExecutor)

    assert result.unique_positions == 0
    for path in (
        settings.all_positions_path,
        settings.without_one_path,
        settings.only_recurrent_path,
    ):
        assert path.read_text(encoding="utf-8") == AGGREGATE_HEADER
