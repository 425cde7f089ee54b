"""Checkpoint manifest recording which stages of a run have completed."""

from __future__ import annotations

import json
import os
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from fenbank.errors import ManifestError
from fenbank.utils.logger import get_logger

logger = get_logger(__name__)

MANIFEST_VERSION = 1


class PhaseCheckpoint(BaseModel):
    phase: int
    chunks: list[str] = Field(default_factory=list)


class RunManifest(BaseModel):
    """Persisted state of a run inside its temp directory."""

    version: int = MANIFEST_VERSION
    input_path: str | None = None
    chunk_size: int | None = None
    sorted_chunks: list[str] = Field(default_factory=list)
    completed_phases: list[PhaseCheckpoint] = Field(default_factory=list)
    final_merge_done: bool = False

    def record_sorted_chunks(self, chunks: list[Path]) -> None:
        self.sorted_chunks = [str(path) for path in chunks]
        self.completed_phases = []
        self.final_merge_done = False

    def record_phase(self, phase: int, chunks: list[Path]) -> None:
        self.completed_phases = [item for item in self.completed_phases if item.phase < phase]
        self.completed_phases.append(PhaseCheckpoint(phase=phase, chunks=[str(p) for p in chunks]))

    def resume_point(self) -> tuple[int, list[Path]]:
        """Return ``(last completed phase, its chunks)``, falling back to the sorted chunks.

        A phase only counts when every chunk it recorded still exists. Phase 0
        stands for the sorted extraction chunks.
        """
        for checkpoint in sorted(self.completed_phases, key=lambda item: item.phase, reverse=True):
            paths = [Path(chunk) for chunk in checkpoint.chunks]
            if all(path.exists() for path in paths):
                return checkpoint.phase, paths
            logger.warning("Phase %s outputs incomplete on disk; ignoring", checkpoint.phase)
        sorted_paths = [Path(chunk) for chunk in self.sorted_chunks]
        missing = [path for path in sorted_paths if not path.exists()]
        if missing:
            raise ManifestError(f"{len(missing)} sorted chunks are missing, e.g. {missing[0]}")
        if not sorted_paths:
            raise ManifestError("Manifest records no sorted chunks to resume from")
        return 0, sorted_paths


def read_manifest(path: Path) -> RunManifest | None:
    """Read the manifest, or None when it does not exist."""
    if not path.exists():
        return None
    try:
        return RunManifest.model_validate(json.loads(path.read_text(encoding="utf-8")))
    except (json.JSONDecodeError, ValidationError) as exc:
        raise ManifestError(f"Unreadable manifest {path}: {exc}") from exc


def write_manifest(path: Path, manifest: RunManifest) -> None:
    """Write the manifest atomically."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f"{path.name}.partial")
    tmp_path.write_text(manifest.model_dump_json(indent=2), encoding="utf-8")
    os.replace(tmp_path, path)


def clear_manifest(path: Path) -> None:
    path.unlink(missing_ok=True)
