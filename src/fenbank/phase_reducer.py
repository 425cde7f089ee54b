"""Multi-phase bounded fan-in reduction of sorted chunks.

The reducer walks ``AwaitingChunks -> MergingPhase(N) -> Reducing ->
FinalMerging -> Done``. Each phase groups the current chunk list into
batches of at most ``fan_in`` chunks and merges every batch on the merge pool
into ``phase<N>/chunk_<m>.tmp``. Phases repeat until the chunk count is at or
below ``fan_in``; phase one always runs because it turns raw ``fen|result``
lines into aggregate rows. The remaining chunks go through the single-cursor
final merge into the occurrence buckets.
"""

from __future__ import annotations

import shutil
from collections.abc import Sequence
from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel

from fenbank.final_merge import FinalMergeResult, final_merge
from fenbank.manifest import RunManifest, write_manifest
from fenbank.merge_pool import MergePool, MergeTask
from fenbank.ports.progress import ProgressCallback, emit_progress
from fenbank.utils.logger import get_logger

logger = get_logger(__name__)


class ReducerState(StrEnum):
    AWAITING_CHUNKS = "awaiting_chunks"
    MERGING_PHASE = "merging_phase"
    REDUCING = "reducing"
    FINAL_MERGING = "final_merging"
    DONE = "done"


class ReductionResult(BaseModel):
    phases_run: int = 0
    last_phase: int = 0
    failed_merges: int = 0
    final: FinalMergeResult


def phase_dir(temp_dir: Path, phase: int) -> Path:
    return Path(temp_dir) / f"phase{phase}"


def group_chunks(chunks: Sequence[Path], fan_in: int) -> list[list[Path]]:
    return [list(chunks[i : i + fan_in]) for i in range(0, len(chunks), fan_in)]


class PhaseReducer:
    """Drive merge phases over a chunk set until the final merge."""

    def __init__(
        self,
        temp_dir: Path,
        fan_in: int,
        merge_pool: MergePool,
        keep_sorted_chunks: bool = True,
        manifest: RunManifest | None = None,
        manifest_path: Path | None = None,
        progress: ProgressCallback | None = None,
    ) -> None:
        if fan_in < 2:
            raise ValueError(f"fan_in must be >= 2, got {fan_in}")
        self.temp_dir = Path(temp_dir)
        self.fan_in = fan_in
        self.merge_pool = merge_pool
        self.keep_sorted_chunks = keep_sorted_chunks
        self.manifest = manifest
        self.manifest_path = manifest_path
        self.progress = progress
        self.state = ReducerState.AWAITING_CHUNKS
        self.phase = 0
        self.failed_merges = 0

    def run(self, chunks: Sequence[Path], start_phase: int = 0) -> ReductionResult:
        """Reduce ``chunks`` (outputs of ``start_phase``; 0 = sorted raw chunks)."""
        current = [Path(path) for path in chunks]
        self.phase = start_phase
        phases_run = 0
        logger.info(
            "Reducing %s chunks (fan-in %s, starting after phase %s)",
            len(current),
            self.fan_in,
            start_phase,
        )
        while self._needs_phase(current):
            self.phase += 1
            self.state = ReducerState.MERGING_PHASE
            current = self._run_phase(self.phase, current)
            phases_run += 1
            self.state = ReducerState.REDUCING
        self.state = ReducerState.FINAL_MERGING
        final = final_merge(current, self.temp_dir)
        self._mark_final_done()
        for path in current:
            path.unlink(missing_ok=True)
        self.state = ReducerState.DONE
        logger.info("Reduction finished after %s phases", self.phase)
        return ReductionResult(
            phases_run=phases_run,
            last_phase=self.phase,
            failed_merges=self.failed_merges,
            final=final,
        )

    def _needs_phase(self, current: Sequence[Path]) -> bool:
        if self.phase == 0:
            return True
        return len(current) > self.fan_in

    def _run_phase(self, phase: int, inputs: list[Path]) -> list[Path]:
        output_dir = phase_dir(self.temp_dir, phase)
        output_dir.mkdir(parents=True, exist_ok=True)
        tasks = [
            MergeTask(
                input_files=tuple(group),
                output_file=output_dir / f"chunk_{index}.tmp",
                is_first_phase=phase == 1,
                index=index,
            )
            for index, group in enumerate(group_chunks(inputs, self.fan_in))
        ]
        logger.info("Phase %s: %s chunks -> %s merge tasks", phase, len(inputs), len(tasks))
        outputs: list[Path] = []
        for done, result in enumerate(self.merge_pool.run(tasks), start=1):
            if result.success:
                outputs.append(Path(result.output_file))
                logger.info(
                    "Merge %s: %s files -> %s positions (%s)",
                    Path(result.output_file).name,
                    len(result.input_files),
                    f"{result.positions_written:,}",
                    result.elapsed,
                )
            else:
                self.failed_merges += 1
                logger.error(
                    "Merge into %s failed, its %s input chunks are lost: %s",
                    result.output_file,
                    len(result.input_files),
                    result.error,
                )
            emit_progress(self.progress, f"phase {phase}", done=done, total=len(tasks))
        self._record_phase(phase, outputs)
        self._release_inputs(phase, inputs)
        logger.info("Phase %s complete: %s -> %s chunks", phase, len(inputs), len(outputs))
        return outputs

    def _release_inputs(self, phase: int, inputs: list[Path]) -> None:
        if phase == 1 and self.keep_sorted_chunks:
            logger.info("Keeping phase 1 sorted inputs for resume")
            return
        for path in inputs:
            path.unlink(missing_ok=True)
        previous = phase_dir(self.temp_dir, phase - 1)
        if phase > 1 and previous.is_dir() and not any(previous.iterdir()):
            shutil.rmtree(previous, ignore_errors=True)

    def _record_phase(self, phase: int, outputs: list[Path]) -> None:
        if self.manifest is None or self.manifest_path is None:
            return
        self.manifest.record_phase(phase, outputs)
        write_manifest(self.manifest_path, self.manifest)

    def _mark_final_done(self) -> None:
        if self.manifest is None or self.manifest_path is None:
            return
        self.manifest.final_merge_done = True
        write_manifest(self.manifest_path, self.manifest)
