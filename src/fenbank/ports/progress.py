"""Port interface for pipeline progress reporting."""

from __future__ import annotations

import time
from collections.abc import Callable

ProgressCallback = Callable[[dict[str, object]], None]


def emit_progress(progress: ProgressCallback | None, step: str, **fields: object) -> None:
    """
    Emits a progress update by invoking the provided callback with a payload
    containing the current step, timestamp, and any additional fields.

    Parameters
    ----------
    progress : callable or None
        A callback function that accepts a single dictionary
        argument representing the progress payload.
        If None, no action is taken.
    step : str
        A string indicating the current step or stage of the process.
    **fields : object
        Additional keyword arguments to include in the progress payload.

    Examples
    --------
    >>> _events = []
    >>> emit_progress(_events.append, "extraction", games=16)
    >>> _events[0]["games"]
    16
    """
    if progress is None:
        return
    payload: dict[str, object] = {"step": step, "timestamp": time.time()}
    payload.update(fields)
    progress(payload)
