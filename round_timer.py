"""Server-authoritative countdown for the voting window."""

from __future__ import annotations

import logging
import time

logger = logging.getLogger(__name__)

MIN_ROUND_MS = 1000
TICK_SECONDS = 0.25


class RoundTimer:
    """One countdown at a time. Remaining time is always derived from the
    deadline, so every snapshot is exact no matter when it is taken."""

    def __init__(self, default_ms: int = 30_000, clock=time.monotonic):
        self._clock = clock
        self.deadline: float | None = None
        self.default_ms = max(MIN_ROUND_MS, int(default_ms))
        self.duration_ms = self.default_ms

    @property
    def running(self) -> bool:
        return self.deadline is not None

    def start(self, duration_ms: int) -> int:
        """Start a new round, replacing any round in flight. Returns the clamped duration."""
        self.duration_ms = max(MIN_ROUND_MS, int(duration_ms))
        self.deadline = self._clock() + self.duration_ms / 1000.0
        logger.info("round started: %d ms", self.duration_ms)
        return self.duration_ms

    def stop(self):
        if self.deadline is not None:
            logger.info("round stopped")
        self.deadline = None

    def remaining_ms(self) -> int:
        if self.deadline is None:
            return 0
        return max(0, int(round((self.deadline - self._clock()) * 1000)))

    @property
    def expired(self) -> bool:
        return self.deadline is not None and self.remaining_ms() == 0

    def accepting(self) -> bool:
        return self.running and not self.expired

    def snapshot(self) -> dict:
        return {
            "remainingMs": self.remaining_ms(),
            "durationMs": self.duration_ms,
            "running": self.running,
        }
