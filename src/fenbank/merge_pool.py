"""Worker pool that runs bounded fan-in merge tasks with retries."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from concurrent.futures import BrokenExecutor, Executor, Future, ProcessPoolExecutor
from dataclasses import dataclass
from pathlib import Path

from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from fenbank.errors import MergeTaskError
from fenbank.merge_worker import MergeResult, merge_chunks
from fenbank.utils.logger import get_logger

logger = get_logger(__name__)

RETRY_WAIT_MIN_S = 1
RETRY_WAIT_MAX_S = 10


@dataclass(frozen=True, slots=True)
class MergeTask:
    input_files: tuple[Path, ...]
    output_file: Path
    is_first_phase: bool
    index: int = 0


def run_merge_task(task: MergeTask, retries: int = 0, wait_max_s: float = RETRY_WAIT_MAX_S) -> MergeResult:
    """Run one merge, retrying I/O failures; report the last failure as a result.

    A retry overwrites the task's own output path, so attempts are idempotent.
    """

    merge_with_retry = retry(
        retry=retry_if_exception_type(MergeTaskError),
        stop=stop_after_attempt(retries + 1),
        wait=wait_exponential(multiplier=1, min=min(RETRY_WAIT_MIN_S, wait_max_s), max=wait_max_s),
        reraise=True,
        before_sleep=before_sleep_log(logger, logging.WARNING),
    )(merge_chunks)
    try:
        return merge_with_retry(task.input_files, task.output_file, task.is_first_phase)
    except MergeTaskError as exc:
        return _failed_result(task, str(exc))


def _failed_result(task: MergeTask, error: str) -> MergeResult:
    return MergeResult(
        success=False,
        output_file=str(task.output_file),
        input_files=[str(path) for path in task.input_files],
        error=error,
    )


class MergePool:
    """Fixed-size pool consuming merge tasks; one future per task.

    A merge worker that dies breaks the executor and fails every queued
    sibling with ``BrokenExecutor``. The pool then restarts its executor and
    reruns each of those tasks alone, so only a task that kills its worker
    twice is reported as failed.
    """

    def __init__(
        self,
        pool_size: int,
        retries: int = 0,
        executor_factory: Callable[[int], Executor] = ProcessPoolExecutor,
        wait_max_s: float = RETRY_WAIT_MAX_S,
    ) -> None:
        self.pool_size = max(1, pool_size)
        self.retries = retries
        self.wait_max_s = wait_max_s
        self.restarts = 0
        self._executor_factory = executor_factory
        self._executor: Executor | None = None

    def __enter__(self) -> MergePool:
        self._executor = self._executor_factory(self.pool_size)
        logger.info("Merge pool started with %s workers", self.pool_size)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown()

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def submit(self, task: MergeTask) -> Future[MergeResult]:
        if self._executor is None:
            raise RuntimeError("MergePool is not running")
        return self._executor.submit(run_merge_task, task, self.retries, self.wait_max_s)

    def run(self, tasks: Sequence[MergeTask]) -> list[MergeResult]:
        """Run tasks concurrently and return their results in task order.

        A task whose worker crashes is rerun once on a fresh executor; a
        second crash, or any other exception, becomes a failed result.
        """

        results: dict[int, MergeResult] = {}
        suspects: list[int] = []
        futures: list[tuple[int, Future[MergeResult]]] = []
        for position, task in enumerate(tasks):
            try:
                futures.append((position, self.submit(task)))
            except BrokenExecutor:
                suspects.append(position)
        for position, future in futures:
            try:
                results[position] = future.result()
            except BrokenExecutor:
                suspects.append(position)
            except Exception as exc:
                logger.error("Merge task %s crashed: %s", tasks[position].index, exc)
                results[position] = _failed_result(tasks[position], repr(exc))
        if suspects:
            logger.warning(
                "Merge pool broke with %s tasks outstanding; restarting workers", len(suspects)
            )
            self._restart()
            for position in sorted(suspects):
                results[position] = self._run_alone(tasks[position])
        return [results[position] for position in range(len(tasks))]

    def _restart(self) -> None:
        self.shutdown()
        self._executor = self._executor_factory(self.pool_size)
        self.restarts += 1

    def _run_alone(self, task: MergeTask) -> MergeResult:
        try:
            return self.submit(task).result()
        except BrokenExecutor as exc:
            logger.error("Merge task %s crashed its worker twice: %s", task.index, exc)
            Path(task.output_file).unlink(missing_ok=True)
            self._restart()
            return _failed_result(task, repr(exc))
        except Exception as exc:
            logger.error("Merge task %s crashed: %s", task.index, exc)
            return _failed_result(task, repr(exc))
