"""Custom error types used in fenbank."""


class FenbankError(RuntimeError):
    """Base error for the aggregation engine."""


class ConfigurationError(FenbankError, ValueError):
    """Settings hold a value the engine cannot run with."""


class InputNotFoundError(FenbankError, FileNotFoundError):
    """The PGN input file does not exist."""


class MissingGameIdError(FenbankError):
    """The PGN input carries no ``[ID "..."]`` tag lines."""


class ChunkTooLargeError(FenbankError):
    """A chunk file holds more records than the configured chunk size."""


class MergeTaskError(FenbankError):
    """A merge task could not read its inputs or write its output."""


class ManifestError(FenbankError):
    """The run manifest is missing or unusable for a resume."""


__all__ = [
    "ChunkTooLargeError",
    "ConfigurationError",
    "FenbankError",
    "InputNotFoundError",
    "ManifestError",
    "MergeTaskError",
    "MissingGameIdError",
]
