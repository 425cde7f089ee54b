"""End-to-end aggregation run: extract, sort, reduce, partition and publish."""

from __future__ import annotations

import time
from collections.abc import Callable
from concurrent.futures import Executor, ProcessPoolExecutor
from pathlib import Path

from pydantic import BaseModel

from fenbank.aggregate_record import RECURRENT_BUCKET
from fenbank.chunk_writer import ChunkWriter
from fenbank.config import Settings, get_settings
from fenbank.errors import ManifestError
from fenbank.extraction_pool import ExtractionSummary, run_extraction
from fenbank.final_merge import BUCKET_KEYS, bucket_path
from fenbank.manifest import RunManifest, read_manifest, write_manifest
from fenbank.merge_pool import MergePool
from fenbank.output_assembler import assemble_outputs, cleanup_temp_artifacts
from fenbank.phase_reducer import PhaseReducer
from fenbank.pgn_stream import check_input
from fenbank.ports.progress import ProgressCallback, emit_progress
from fenbank.sort_chunk__chunks import sort_chunks
from fenbank.sort_recurrent__buckets import sort_recurrent_bucket
from fenbank.utils.format_duration import format_duration
from fenbank.utils.logger import get_logger

logger = get_logger(__name__)


class PipelineResult(BaseModel):
    resumed: bool = False
    games_processed: int = 0
    positions_extracted: int = 0
    chunks_written: int = 0
    failed_batches: int = 0
    phases_run: int = 0
    failed_merges: int = 0
    unique_positions: int = 0
    recurrent_positions: int = 0
    repeated_positions: int = 0
    single_positions: int = 0
    all_positions_path: str = ""
    without_one_path: str = ""
    only_recurrent_path: str = ""
    elapsed: str = ""


def _buckets_present(temp_dir: Path) -> bool:
    return all(bucket_path(temp_dir, bucket).exists() for bucket in BUCKET_KEYS)


def _extract_and_sort(
    settings: Settings,
    progress: ProgressCallback | None,
    executor_factory: Callable[[int], Executor],
) -> tuple[ExtractionSummary, RunManifest]:
    total_games = check_input(settings.input_path, settings.expected_games)
    logger.info("Found %s games in %s", f"{total_games:,}", settings.input_path)
    cleanup_temp_artifacts(settings.temp_dir, settings.manifest_path)
    with ChunkWriter(settings.temp_dir, settings.chunk_size, settings.index_path) as writer:
        extraction = run_extraction(
            settings,
            writer,
            progress=progress,
            executor_factory=executor_factory,
            total_games=total_games,
        )
    sorted_chunks = sort_chunks(
        writer.chunk_paths,
        settings.chunk_size,
        settings.sort_parallelism,
        progress=progress,
        executor_factory=executor_factory,
    )
    manifest = RunManifest(input_path=str(settings.input_path), chunk_size=settings.chunk_size)
    manifest.record_sorted_chunks(sorted_chunks)
    write_manifest(settings.manifest_path, manifest)
    return extraction, manifest


def _load_resume_manifest(settings: Settings) -> RunManifest:
    manifest = read_manifest(settings.manifest_path)
    if manifest is None:
        raise ManifestError(
            f"Resume requested but no manifest at {settings.manifest_path}; run without --resume"
        )
    logger.info("Resuming from manifest %s", settings.manifest_path)
    return manifest


def _reduce(
    settings: Settings,
    manifest: RunManifest,
    progress: ProgressCallback | None,
    executor_factory: Callable[[int], Executor],
) -> tuple[int, int]:
    if settings.resume and manifest.final_merge_done and _buckets_present(settings.temp_dir):
        logger.info("Final merge already completed; reusing occurrence buckets")
        return 0, 0
    if settings.resume:
        start_phase, chunks = manifest.resume_point()
        logger.info("Resuming after phase %s with %s chunks", start_phase, len(chunks))
    else:
        start_phase, chunks = 0, [Path(chunk) for chunk in manifest.sorted_chunks]
    with MergePool(
        settings.pool_size,
        retries=settings.merge_retries,
        executor_factory=executor_factory,
    ) as pool:
        reducer = PhaseReducer(
            settings.temp_dir,
            settings.fan_in,
            pool,
            keep_sorted_chunks=settings.keep_sorted_chunks,
            manifest=manifest,
            manifest_path=settings.manifest_path,
            progress=progress,
        )
        reduction = reducer.run(chunks, start_phase=start_phase)
    return reduction.phases_run, reduction.failed_merges


def _percentage(part: int, whole: int) -> str:
    if whole <= 0:
        return "0.0%"
    return f"{part / whole * 100:.1f}%"


def _log_final_stats(result: PipelineResult) -> None:
    unique = result.unique_positions
    logger.info("Games processed: %s", f"{result.games_processed:,}")
    logger.info("Positions extracted: %s", f"{result.positions_extracted:,}")
    logger.info("Unique positions: %s", f"{unique:,}")
    logger.info(
        "Positions seen 10+ times: %s (%s)",
        f"{result.recurrent_positions:,}",
        _percentage(result.recurrent_positions, unique),
    )
    logger.info(
        "Positions seen 2-9 times: %s (%s)",
        f"{result.repeated_positions:,}",
        _percentage(result.repeated_positions, unique),
    )
    logger.info(
        "Positions seen once: %s (%s)",
        f"{result.single_positions:,}",
        _percentage(result.single_positions, unique),
    )
    logger.info("Total time: %s", result.elapsed)


def run_pipeline(
    settings: Settings | None = None,
    progress: ProgressCallback | None = None,
    executor_factory: Callable[[int], Executor] = ProcessPoolExecutor,
) -> PipelineResult:
    """Run the whole aggregation and publish the three TSV outputs.

    Temporary files are removed only after a successful run; any exception
    leaves the temp directory as it was for inspection or ``--resume``.
    """

    settings = settings or get_settings()
    settings.ensure_dirs()
    started = time.monotonic()
    emit_progress(progress, "start", input=str(settings.input_path), resume=settings.resume)

    if settings.resume:
        extraction = ExtractionSummary()
        manifest = _load_resume_manifest(settings)
    else:
        extraction, manifest = _extract_and_sort(settings, progress, executor_factory)

    phases_run, failed_merges = _reduce(settings, manifest, progress, executor_factory)

    sort_recurrent_bucket(
        bucket_path(settings.temp_dir, RECURRENT_BUCKET), settings.only_recurrent_path
    )
    counts = assemble_outputs(
        settings.temp_dir,
        settings.only_recurrent_path,
        settings.without_one_path,
        settings.all_positions_path,
    )
    result = PipelineResult(
        resumed=settings.resume,
        games_processed=extraction.games_processed,
        positions_extracted=extraction.positions_written,
        chunks_written=extraction.chunks_written,
        failed_batches=extraction.failed_batches,
        phases_run=phases_run,
        failed_merges=failed_merges,
        unique_positions=counts.all_positions,
        recurrent_positions=counts.only_recurrent,
        repeated_positions=counts.without_one - counts.only_recurrent,
        single_positions=counts.all_positions - counts.without_one,
        all_positions_path=str(settings.all_positions_path),
        without_one_path=str(settings.without_one_path),
        only_recurrent_path=str(settings.only_recurrent_path),
        elapsed=format_duration(time.monotonic() - started),
    )
    _log_final_stats(result)
    cleanup_temp_artifacts(settings.temp_dir, settings.manifest_path)
    emit_progress(progress, "complete", final=True, unique=result.unique_positions)
    return result
