from __future__ import annotations

import logging
from dataclasses import dataclass
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .clock import Clock, WallClock
from .hands import SPEED_MULTIPLIERS, HandSimulator, format_speed, match_speed, wall_fields
from .scheduling import FrameTimers, TaskRunner
from .sync import SyncScheduler
from .time_provider import TimeProvider
from .timebase import TimeBase

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ClockSnapshot:
    """View model for the UI (pure data)."""

    hour_deg: float
    minute_deg: float
    second_deg: float
    speed: float
    digital_time: str
    status_message: str
    syncing: bool


class ClockEngine:
    """Owns the TimeBase, HandSimulator and SyncScheduler for one clock face.

    All mutation happens on the caller's frame loop: ``update()`` fires due
    timers and applies finished sync attempts, ``snapshot()`` only reads.
    """

    def __init__(
        self,
        *,
        clock: Clock,
        wall_clock: WallClock,
        tasks: TaskRunner,
        provider: TimeProvider | None,
        time_zone: str = "Etc/UTC",
        speed: float = 1.0,
        sync_interval_s: float = 15.0 * 60.0,
    ) -> None:
        if match_speed(speed) is None:
            raise ValueError(f"speed must be one of {SPEED_MULTIPLIERS}")
        try:
            tz = ZoneInfo(time_zone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"unknown time zone: {time_zone!r}") from exc
        self._clock = clock
        self._tz = tz
        self._time_zone = time_zone
        self._sync_interval_s = float(sync_interval_s)

        self._time_base = TimeBase(epoch_ms=wall_clock.epoch_ms(), monotonic_s=clock.now())
        self._hands = HandSimulator(time_base=self._time_base, tz=tz, speed_multiplier=match_speed(speed))
        self._timers = FrameTimers(clock=clock)
        self._sync: SyncScheduler | None = None
        if provider is not None:
            self._sync = SyncScheduler(
                time_base=self._time_base,
                hands=self._hands,
                provider=provider,
                clock=clock,
                tasks=tasks,
                time_zone=time_zone,
            )
        self._tasks = tasks

    @property
    def time_base(self) -> TimeBase:
        return self._time_base

    @property
    def hands(self) -> HandSimulator:
        return self._hands

    @property
    def sync(self) -> SyncScheduler | None:
        return self._sync

    @property
    def timers(self) -> FrameTimers:
        return self._timers

    @property
    def time_zone(self) -> str:
        return self._time_zone

    @property
    def speed(self) -> float:
        return self._hands.speed_multiplier

    @property
    def syncing(self) -> bool:
        return self._sync is not None and self._sync.syncing

    def start(self) -> None:
        if self._sync is None:
            logger.info("Time sync disabled; running from the local clock")
            return
        self._sync.start(self._timers, interval_s=self._sync_interval_s)

    def update(self) -> None:
        self._timers.poll()
        self._tasks.drain()

    def set_speed(self, speed: float) -> float:
        """Switch the second-hand multiplier without moving the hand."""

        matched = match_speed(speed)
        if matched is None:
            raise ValueError(f"speed must be one of {SPEED_MULTIPLIERS}")
        if matched != self._hands.speed_multiplier:
            self._hands.on_speed_change(matched, self._clock.now())
            logger.info("Second-hand speed set to x%s", format_speed(matched))
        return matched

    def step_speed(self, delta: int) -> float:
        """Move ``delta`` positions through SPEED_MULTIPLIERS, clamped at the ends."""

        idx = SPEED_MULTIPLIERS.index(self._hands.speed_multiplier)
        idx = max(0, min(len(SPEED_MULTIPLIERS) - 1, idx + int(delta)))
        return self.set_speed(SPEED_MULTIPLIERS[idx])

    def request_manual_sync(self) -> bool:
        if self._sync is None:
            return False
        return self._sync.request_sync(manual=True)

    def real_time_ms(self) -> float:
        return self._time_base.now(self._clock.now())

    def snapshot(self) -> ClockSnapshot:
        mono = self._clock.now()
        real_ms = self._time_base.now(mono)
        f = wall_fields(real_ms, self._tz)
        sync = self._sync
        return ClockSnapshot(
            hour_deg=self._hands.hour_angle(real_ms),
            minute_deg=self._hands.minute_angle(real_ms),
            second_deg=self._hands.second_angle(mono),
            speed=self._hands.speed_multiplier,
            digital_time=f"{f.hour:02d}:{f.minute:02d}:{int(f.second):02d}",
            status_message="" if sync is None else sync.status_message(),
            syncing=self.syncing,
        )

    def shutdown(self) -> None:
        if self._sync is not None:
            self._sync.stop()
        self._tasks.shutdown()
