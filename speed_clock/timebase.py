from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Anchor:
    """Paired (epoch, monotonic) reading taken at the same instant."""

    epoch_ms: float
    monotonic_s: float


class TimeBase:
    """Maps monotonic clock readings onto real-world epoch time.

    The anchor pair is only ever replaced as a whole, so a reader on the frame
    loop always sees both halves from the same sync (or speed change).
    """

    def __init__(self, *, epoch_ms: float, monotonic_s: float) -> None:
        self._anchor = Anchor(epoch_ms=float(epoch_ms), monotonic_s=float(monotonic_s))

    @property
    def current_anchor(self) -> Anchor:
        return self._anchor

    @property
    def synced_epoch_ms(self) -> float:
        return self._anchor.epoch_ms

    @property
    def synced_monotonic_s(self) -> float:
        return self._anchor.monotonic_s

    def anchor(self, epoch_ms: float, monotonic_now: float) -> None:
        self._anchor = Anchor(epoch_ms=float(epoch_ms), monotonic_s=float(monotonic_now))

    def now(self, monotonic_now: float) -> float:
        """Real time in epoch milliseconds at ``monotonic_now``."""

        a = self._anchor
        return a.epoch_ms + (float(monotonic_now) - a.monotonic_s) * 1000.0

    def elapsed_s(self, monotonic_now: float) -> float:
        return float(monotonic_now) - self._anchor.monotonic_s
