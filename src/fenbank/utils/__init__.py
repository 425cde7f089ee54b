"""Utility exports for the fenbank package."""

from .format_duration import format_duration
from .logger import get_logger, set_level
from .progress import ProgressLogger

__all__ = [
    "ProgressLogger",
    "format_duration",
    "get_logger",
    "set_level",
]
