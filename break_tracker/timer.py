from __future__ import annotations

import logging
import time
from typing import Callable

from .errors import TimerStateError

IDLE = "idle"
RUNNING = "running"


def monotonic_ms() -> int:
    return time.monotonic_ns() // 1_000_000


class SessionTimer:
    """Start/stop stopwatch reporting whole elapsed seconds.

    The reading survives stop() so a failed submission can be retried; the
    caller clears it with reset() once the break has been logged. A new run
    replaces the old reading on its first tick() or stop().
    """

    def __init__(self, clock: Callable[[], int] = monotonic_ms, logger: logging.Logger | None = None) -> None:
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)
        self.state = IDLE
        self.elapsed = 0
        self._started_ms: int | None = None
        self._run_elapsed = 0

    @property
    def running(self) -> bool:
        return self.state == RUNNING

    def start(self) -> None:
        if self.state == RUNNING:
            raise TimerStateError("start", "the timer is running")
        self._started_ms = self.clock()
        self._run_elapsed = 0
        self.state = RUNNING

    def tick(self) -> int:
        if self.state != RUNNING:
            return self.elapsed
        self.elapsed = self._measure()
        return self.elapsed

    def stop(self) -> int:
        if self.state != RUNNING:
            raise TimerStateError("stop", "the timer is idle")
        self.elapsed = self._measure()
        self.state = IDLE
        self._started_ms = None
        self.logger.debug("Timer stopped at %ss", self.elapsed)
        return self.elapsed

    def reset(self) -> None:
        self.elapsed = 0

    def _measure(self) -> int:
        seconds = max(0, (self.clock() - self._started_ms) // 1000)
        # Non-decreasing within a run even if the clock steps back.
        self._run_elapsed = max(self._run_elapsed, seconds)
        return self._run_elapsed
