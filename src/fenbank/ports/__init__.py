"""Port interfaces used across the aggregation engine."""

from fenbank.ports.aggregate_sink import AggregateSink
from fenbank.ports.progress import ProgressCallback, emit_progress

__all__ = [
    "AggregateSink",
    "ProgressCallback",
    "emit_progress",
]
