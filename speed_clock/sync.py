from __future__ import annotations

import logging

from .clock import Clock
from .hands import HandSimulator
from .scheduling import Scheduler, TaskOutcome, TaskRunner, TimerHandle
from .time_provider import TimeDecodeError, TimeProvider, TimeSyncError
from .timebase import TimeBase

logger = logging.getLogger(__name__)

WAITING_MESSAGE = "Waiting for time sync..."


class SyncScheduler:
    """Periodic and on-demand correction of the TimeBase against a TimeProvider.

    - Automatic requests are dropped while any attempt is in flight.
    - Manual requests always start; overlapping attempts each anchor on
      completion and the last one applied wins.
    - A failed attempt records ``last_error`` and leaves the TimeBase alone.
    """

    def __init__(
        self,
        *,
        time_base: TimeBase,
        hands: HandSimulator,
        provider: TimeProvider,
        clock: Clock,
        tasks: TaskRunner,
        time_zone: str,
    ) -> None:
        self._time_base = time_base
        self._hands = hands
        self._provider = provider
        self._clock = clock
        self._tasks = tasks
        self._time_zone = time_zone

        self._in_flight = 0
        self._last_sync_time: float | None = None
        self._last_error: str | None = None
        self._timer: TimerHandle | None = None

    @property
    def syncing(self) -> bool:
        return self._in_flight > 0

    @property
    def last_sync_time(self) -> float | None:
        return self._last_sync_time

    @property
    def last_error(self) -> str | None:
        return self._last_error

    def start(self, timers: Scheduler, *, interval_s: float) -> None:
        """Sync now, then every ``interval_s`` seconds."""

        if self._timer is not None:
            self._timer.cancel()
        self.request_sync(manual=False)
        self._timer = timers.call_every(interval_s, lambda: self.request_sync(manual=False))

    def stop(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def request_sync(self, *, manual: bool = False) -> bool:
        if not manual and self._in_flight > 0:
            logger.debug("Automatic sync skipped; attempt already in flight")
            return False

        self._in_flight += 1
        self._last_error = None
        zone = self._time_zone

        def fetch() -> tuple[float, float]:
            epoch_ms = self._provider.fetch_epoch_ms(zone)
            return epoch_ms, self._clock.now()

        self._tasks.submit(fetch, lambda outcome: self._finish(outcome, manual=manual))
        return True

    def status_message(self) -> str:
        if self._last_error:
            return self._last_error
        if self._last_sync_time is None:
            return WAITING_MESSAGE
        return ""

    def _finish(self, outcome: TaskOutcome, *, manual: bool) -> None:
        self._in_flight = max(0, self._in_flight - 1)

        if outcome.ok:
            epoch_ms, received_at = outcome.value
            try:
                # Align first so a time the zone cannot represent leaves the TimeBase as it was.
                self._hands.on_anchor(epoch_ms)
            except (OverflowError, ValueError, OSError) as exc:
                self._fail(TimeDecodeError(f"timestamp out of range: {epoch_ms!r}"), manual=manual)
                logger.debug("Rejected anchor", exc_info=exc)
                return
            self._time_base.anchor(epoch_ms, received_at)
            self._last_sync_time = float(epoch_ms)
            self._last_error = None
            logger.info("Time synchronised (%s)", "manual" if manual else "automatic")
            return

        self._fail(outcome.error, manual=manual)

    def _fail(self, err: BaseException | None, *, manual: bool) -> None:
        if isinstance(err, TimeSyncError):
            detail = str(err)
        else:
            logger.error("Unexpected error during time sync", exc_info=err)
            detail = f"unexpected error: {err}"
        prefix = "Manual sync failed" if manual else "Automatic sync failed"
        self._last_error = f"{prefix}: {detail}"
        logger.warning("%s", self._last_error)
