"""Throttled progress lines with elapsed time and ETA."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from fenbank.utils.format_duration import format_duration
from fenbank.utils.logger import get_logger


class ProgressLogger:
    """Progress callback that logs counts, elapsed time and ETA.

    Payloads carrying ``done`` and ``total`` produce an ETA; any other payload
    is logged with its fields. Lines are throttled to one per ``interval_s``
    per step, except payloads flagged ``final=True``.
    """

    def __init__(
        self,
        interval_s: float = 0.5,
        logger: logging.Logger | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.interval_s = interval_s
        self.logger = logger or get_logger("fenbank.progress")
        self._clock = clock
        self._started: dict[str, float] = {}
        self._last_logged: dict[str, float] = {}

    def __call__(self, payload: dict[str, object]) -> None:
        step = str(payload.get("step", "progress"))
        now = self._clock()
        started = self._started.setdefault(step, now)
        final = bool(payload.get("final"))
        last = self._last_logged.get(step)
        if not final and last is not None and now - last < self.interval_s:
            return
        self._last_logged[step] = now
        self.logger.info("%s", self.render(step, payload, now - started))

    def render(self, step: str, payload: dict[str, object], elapsed: float) -> str:
        fields = {
            key: value
            for key, value in payload.items()
            if key not in {"step", "timestamp", "final", "done", "total"}
        }
        parts = [step]
        done = payload.get("done")
        total = payload.get("total")
        if isinstance(done, int) and isinstance(total, int) and total > 0:
            percentage = done / total * 100
            parts.append(f"{done:,}/{total:,} ({percentage:.1f}%)")
        elif isinstance(done, int):
            parts.append(f"{done:,}")
        parts.extend(f"{key}={_format_value(value)}" for key, value in fields.items())
        parts.append(f"elapsed {format_duration(elapsed)}")
        eta = _estimate_remaining(done, total, elapsed)
        if eta is not None:
            parts.append(f"ETA {format_duration(eta)}")
        return " - ".join(parts)


def _estimate_remaining(done: object, total: object, elapsed: float) -> float | None:
    if not isinstance(done, int) or not isinstance(total, int):
        return None
    if done <= 0 or total <= 0:
        return None
    return elapsed / done * max(total - done, 0)


def _format_value(value: object) -> str:
    if isinstance(value, int) and not isinstance(value, bool):
        return f"{value:,}"
    return str(value)
