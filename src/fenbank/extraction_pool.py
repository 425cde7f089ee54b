"""Parallel position extraction with a bounded pending-batch queue."""

from __future__ import annotations

from collections.abc import Callable
from concurrent.futures import (
    FIRST_COMPLETED,
    BrokenExecutor,
    Executor,
    Future,
    ProcessPoolExecutor,
    wait,
)
from dataclasses import dataclass

from pydantic import BaseModel

from fenbank.chunk_writer import ChunkWriter
from fenbank.config import Settings
from fenbank.extract_batch__worker import ExtractionResult, extract_batch
from fenbank.pgn_stream import iter_batches, iter_game_texts
from fenbank.ports.progress import ProgressCallback, emit_progress
from fenbank.utils.logger import get_logger

logger = get_logger(__name__)


class ExtractionSummary(BaseModel):
    games_read: int = 0
    games_processed: int = 0
    positions_written: int = 0
    chunks_written: int = 0
    failed_batches: int = 0
    pool_restarts: int = 0


@dataclass(frozen=True, slots=True)
class PendingBatch:
    batch_id: int
    games: tuple[str, ...]


class ExtractionRun:
    """Owns the worker pool and every batch that has not been written yet.

    A worker process that dies breaks the whole pool and fails every pending
    future with ``BrokenExecutor``. Those batches are suspects: the pool is
    rebuilt and each suspect is rerun alone. A suspect that kills its worker
    a second time is the culprit and is dropped; the others are written.
    """

    def __init__(
        self,
        settings: Settings,
        writer: ChunkWriter,
        total_games: int,
        progress: ProgressCallback | None,
        executor_factory: Callable[[int], Executor],
    ) -> None:
        self.settings = settings
        self.writer = writer
        self.total_games = total_games
        self.progress = progress
        self.summary = ExtractionSummary()
        self.pending: dict[Future[ExtractionResult], PendingBatch] = {}
        self._executor_factory = executor_factory
        self._executor: Executor | None = None

    def __enter__(self) -> ExtractionRun:
        self._executor = self._executor_factory(self.settings.pool_size)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def submit(self, batch: PendingBatch) -> None:
        try:
            future = self._start(batch)
        except BrokenExecutor:
            self._recover([batch])
            return
        self.pending[future] = batch

    def collect(self, done: set[Future[ExtractionResult]]) -> None:
        suspects: list[PendingBatch] = []
        for future in done:
            self._absorb(future, self.pending.pop(future), suspects)
        if suspects:
            self._recover(suspects)
        emit_progress(
            self.progress,
            "extraction",
            done=self.summary.games_processed,
            total=self.total_games or None,
            positions=self.summary.positions_written,
        )

    def drain_to(self, limit: int) -> None:
        while len(self.pending) > limit:
            done, _ = wait(self.pending, return_when=FIRST_COMPLETED)
            self.collect(done)

    def _start(self, batch: PendingBatch) -> Future[ExtractionResult]:
        return self._executor.submit(
            extract_batch, batch.games, self.settings.low_value_markers, batch.batch_id
        )

    def _absorb(
        self,
        future: Future[ExtractionResult],
        batch: PendingBatch,
        suspects: list[PendingBatch],
    ) -> None:
        try:
            result = future.result()
        except BrokenExecutor:
            suspects.append(batch)
            return
        except Exception as exc:
            self._drop(batch, exc)
            return
        self._write(result)

    def _write(self, result: ExtractionResult) -> None:
        self.summary.positions_written += self.writer.write(result.positions)
        self.summary.games_processed += result.processed_games

    def _drop(self, batch: PendingBatch, reason: object) -> None:
        self.summary.failed_batches += 1
        logger.error(
            "Extraction batch %s of %s games failed and was dropped: %s",
            batch.batch_id,
            len(batch.games),
            reason,
        )

    def _restart(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
        self._executor = self._executor_factory(self.settings.pool_size)
        self.summary.pool_restarts += 1

    def _recover(self, suspects: list[PendingBatch]) -> None:
        if self.pending:
            done, _ = wait(self.pending)
            for future in done:
                self._absorb(future, self.pending.pop(future), suspects)
        logger.warning(
            "Extraction pool broke with %s batches in flight; restarting workers",
            len(suspects),
        )
        self._restart()
        for batch in sorted(suspects, key=lambda item: item.batch_id):
            try:
                result = self._start(batch).result()
            except BrokenExecutor:
                self._drop(batch, "worker died twice while running it")
                self._restart()
                continue
            except Exception as exc:
                self._drop(batch, exc)
                continue
            self._write(result)


def run_extraction(
    settings: Settings,
    writer: ChunkWriter,
    progress: ProgressCallback | None = None,
    executor_factory: Callable[[int], Executor] = ProcessPoolExecutor,
    total_games: int = 0,
) -> ExtractionSummary:
    """Stream the input into batches, extract them on a pool and write the chunks.

    At most ``max_queue_size`` batches are pending at once. Reaching that mark
    pauses reading until half of them have completed. Only this process writes
    chunk files, so rotation stays strictly ordered.
    """

    high_water = max(1, settings.max_queue_size)
    low_water = high_water // 2
    logger.info(
        "Extracting positions from %s with %s workers (batch %s, queue %s)",
        settings.input_path,
        settings.pool_size,
        settings.batch_size,
        high_water,
    )
    with ExtractionRun(settings, writer, total_games, progress, executor_factory) as run:
        batches = iter_batches(iter_game_texts(settings.input_path), settings.batch_size)
        for batch_id, batch in enumerate(batches):
            run.summary.games_read += len(batch)
            run.submit(PendingBatch(batch_id=batch_id, games=tuple(batch)))
            if len(run.pending) >= high_water:
                logger.debug("Queue full (%s batches); pausing input", len(run.pending))
                run.drain_to(low_water)
                logger.debug("Queue drained to %s batches; resuming input", len(run.pending))
        run.drain_to(0)
    summary = run.summary
    summary.chunks_written = len(writer.chunk_paths)
    logger.info(
        "Extraction complete: %s games processed, %s positions in %s chunks",
        f"{summary.games_processed:,}",
        f"{summary.positions_written:,}",
        summary.chunks_written,
    )
    if summary.failed_batches:
        logger.warning("%s extraction batches were dropped", summary.failed_batches)
    return summary
