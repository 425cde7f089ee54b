"""Port interface for merge output destinations."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from fenbank.aggregate_record import AggregateRecord


class AggregateSink(Protocol):
    """Receive finished aggregate records in ascending FEN order."""

    def write(self, record: AggregateRecord) -> None:
        """Persist one finished aggregate record."""

    def close(self) -> None:
        """Flush buffered rows and release file handles."""
