from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    """Monotonic clock abstraction.

    Core logic depends on this interface rather than calling real time directly.
    """

    def now(self) -> float:
        """Return monotonic seconds."""


class WallClock(Protocol):
    """Local system wall clock, used only to seed the startup anchor."""

    def epoch_ms(self) -> float:
        """Return milliseconds since the Unix epoch."""


class RealClock:
    """Production clock backed by time.monotonic()."""

    def now(self) -> float:
        return time.monotonic()


class SystemWallClock:
    """Production wall clock backed by time.time()."""

    def epoch_ms(self) -> float:
        return time.time() * 1000.0
