from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path

from dotenv import load_dotenv

from fenbank.errors import ConfigurationError

load_dotenv()

DEFAULT_DATA_DIR = Path(os.getenv("FENBANK_DATA_DIR", "data"))
DEFAULT_CHUNK_SIZE = 3_000_000
DEFAULT_FAN_IN = 6
DEFAULT_BATCH_SIZE = 16
DEFAULT_MERGE_RETRIES = 2
DEFAULT_LOW_VALUE_MARKERS = ("tcec",)
MAX_SORT_PARALLELISM = 32
QUEUE_SIZE_PER_WORKER = 4

ALL_POSITIONS_FILENAME = "fens-all.tsv"
WITHOUT_ONE_FILENAME = "fens-withoutone.tsv"
ONLY_RECURRENT_FILENAME = "fens-onlyrecurrent.tsv"
MANIFEST_FILENAME = "manifest.json"


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}") from exc


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from exc


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_markers() -> tuple[str, ...]:
    value = os.getenv("FENBANK_LOW_VALUE_MARKERS")
    if value is None:
        return DEFAULT_LOW_VALUE_MARKERS
    return tuple(marker.strip().lower() for marker in value.split(",") if marker.strip())


def _default_pool_size() -> int:
    return _env_int("FENBANK_POOL_SIZE", os.cpu_count() or 1)


@dataclass(slots=True)
class Settings:
    """Central configuration for extraction, sorting and merging."""

    input_path: Path = field(
        default_factory=lambda: Path(
            os.getenv("FENBANK_INPUT_PATH", DEFAULT_DATA_DIR / "output" / "games.pgn")
        )
    )
    temp_dir: Path = field(
        default_factory=lambda: Path(os.getenv("FENBANK_TEMP_DIR", DEFAULT_DATA_DIR / "temp"))
    )
    output_dir: Path = field(
        default_factory=lambda: Path(os.getenv("FENBANK_OUTPUT_DIR", DEFAULT_DATA_DIR / "output"))
    )
    chunk_size: int = field(
        default_factory=lambda: _env_int("FENBANK_CHUNK_SIZE", DEFAULT_CHUNK_SIZE)
    )
    fan_in: int = field(default_factory=lambda: _env_int("FENBANK_FAN_IN", DEFAULT_FAN_IN))
    pool_size: int = field(default_factory=_default_pool_size)
    batch_size: int = field(
        default_factory=lambda: _env_int("FENBANK_BATCH_SIZE", DEFAULT_BATCH_SIZE)
    )
    # 0 means derived from pool_size
    max_queue_size: int = field(default_factory=lambda: _env_int("FENBANK_MAX_QUEUE_SIZE", 0))
    sort_parallelism: int = field(
        default_factory=lambda: _env_int("FENBANK_SORT_PARALLELISM", 0)
    )
    resume: bool = field(default_factory=lambda: _env_flag("FENBANK_RESUME", False))
    keep_sorted_chunks: bool = field(
        default_factory=lambda: _env_flag("FENBANK_KEEP_SORTED", True)
    )
    merge_retries: int = field(
        default_factory=lambda: _env_int("FENBANK_MERGE_RETRIES", DEFAULT_MERGE_RETRIES)
    )
    low_value_markers: tuple[str, ...] = field(default_factory=_env_markers)
    progress_interval_s: float = field(
        default_factory=lambda: _env_float("FENBANK_PROGRESS_INTERVAL_S", 0.5)
    )
    expected_games: int = field(
        default_factory=lambda: _env_int("FENBANK_EXPECTED_GAMES", 0)
    )

    def __post_init__(self) -> None:
        self.input_path = Path(self.input_path)
        self.temp_dir = Path(self.temp_dir)
        self.output_dir = Path(self.output_dir)
        self.low_value_markers = tuple(marker.lower() for marker in self.low_value_markers)
        if self.max_queue_size <= 0:
            self.max_queue_size = max(1, self.pool_size) * QUEUE_SIZE_PER_WORKER
        if self.sort_parallelism <= 0:
            self.sort_parallelism = min(max(1, self.pool_size), MAX_SORT_PARALLELISM)

    def validate(self) -> Settings:
        """Raise ConfigurationError when a setting cannot drive a run."""
        if self.chunk_size < 1:
            raise ConfigurationError(f"chunk_size must be >= 1, got {self.chunk_size}")
        if self.fan_in < 2:
            raise ConfigurationError(f"fan_in must be >= 2, got {self.fan_in}")
        if self.pool_size < 1:
            raise ConfigurationError(f"pool_size must be >= 1, got {self.pool_size}")
        if self.batch_size < 1:
            raise ConfigurationError(f"batch_size must be >= 1, got {self.batch_size}")
        if self.merge_retries < 0:
            raise ConfigurationError(f"merge_retries must be >= 0, got {self.merge_retries}")
        return self

    @property
    def index_path(self) -> Path:
        return self.output_dir / f"{self.input_path.stem}-pgi.tsv"

    @property
    def manifest_path(self) -> Path:
        return self.temp_dir / MANIFEST_FILENAME

    @property
    def all_positions_path(self) -> Path:
        return self.output_dir / ALL_POSITIONS_FILENAME

    @property
    def without_one_path(self) -> Path:
        return self.output_dir / WITHOUT_ONE_FILENAME

    @property
    def only_recurrent_path(self) -> Path:
        return self.output_dir / ONLY_RECURRENT_FILENAME

    def ensure_dirs(self) -> None:
        self.temp_dir.mkdir(parents=True, exist_ok=True)
        self.output_dir.mkdir(parents=True, exist_ok=True)


def get_settings(**overrides: object) -> Settings:
    """Return a Settings instance built from the environment plus overrides."""
    load_dotenv()
    known = {item.name for item in fields(Settings)}
    unexpected = sorted(set(overrides) - known)
    if unexpected:
        raise TypeError(f"get_settings() got an unexpected keyword argument '{unexpected[0]}'")
    settings = Settings(**{key: value for key, value in overrides.items() if value is not None})
    return settings.validate()
