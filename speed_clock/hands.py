"""Hand-angle simulation for the clock face.

Hour and minute hands are pure functions of real time. The second hand is
simulated: it sweeps at ``speed_multiplier`` times real speed from a base
angle fixed at the last anchor. ``on_anchor`` re-aligns that base so the
accelerated (or slowed) hand still passes 12 o'clock on the next real minute
boundary; ``on_speed_change`` keeps the rendered angle where it is and only
changes the sweep rate.

Angles are degrees clockwise from 12 o'clock, normalised to [0, 360).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, tzinfo, timezone

from .timebase import TimeBase

# Closed set offered to the user; 2/3 is shown as 0.6667 in menus.
SPEED_MULTIPLIERS: tuple[float, ...] = (0.5, 2.0 / 3.0, 1.0, 1.5, 2.0, 3.0, 4.0)
DEFAULT_SPEED = 1.0

DEG_PER_SECOND = 360.0 / 60.0
DEG_PER_HOUR = 360.0 / 12.0


@dataclass(frozen=True, slots=True)
class WallFields:
    hour: int
    minute: int
    second: float  # includes the fractional part


@dataclass(frozen=True, slots=True)
class _SecondHand:
    speed_multiplier: float
    base_angle: float


def normalize_deg(angle: float) -> float:
    a = float(angle) % 360.0
    # -1e-17 % 360.0 == 360.0 in floating point.
    return 0.0 if a >= 360.0 else a


def match_speed(value: float, *, tolerance: float = 1e-3) -> float | None:
    """Return the member of SPEED_MULTIPLIERS closest to ``value``, if any."""

    for speed in SPEED_MULTIPLIERS:
        if abs(float(value) - speed) <= tolerance:
            return speed
    return None


def format_speed(speed: float) -> str:
    if abs(speed - 2.0 / 3.0) < 1e-9:
        return "0.6667"
    return f"{speed:g}"


def wall_fields(real_time_ms: float, tz: tzinfo = timezone.utc) -> WallFields:
    whole_s, frac_ms = divmod(float(real_time_ms), 1000.0)
    dt = datetime.fromtimestamp(whole_s, tz=tz)
    return WallFields(hour=dt.hour, minute=dt.minute, second=dt.second + frac_ms / 1000.0)


def aligned_second_angle(seconds_in_minute: float, speed_multiplier: float) -> float:
    """Base angle that puts the simulated hand on 12 at the next real minute.

    Moving at ``speed_multiplier`` from here, the hand covers ``travel``
    seconds of dial before the real minute turns over; starting that far
    behind 12 makes it arrive exactly on the boundary.
    """

    until_boundary = 60.0 - float(seconds_in_minute)
    travel = (float(speed_multiplier) * until_boundary) % 60.0
    target_seconds = (60.0 - travel) % 60.0
    return normalize_deg(target_seconds / 60.0 * 360.0)


def minute_angle(real_time_ms: float, tz: tzinfo = timezone.utc) -> float:
    f = wall_fields(real_time_ms, tz)
    return normalize_deg((f.minute + f.second / 60.0) * DEG_PER_SECOND)


def hour_angle(real_time_ms: float, tz: tzinfo = timezone.utc) -> float:
    f = wall_fields(real_time_ms, tz)
    return normalize_deg(((f.hour % 12) + f.minute / 60.0 + f.second / 3600.0) * DEG_PER_HOUR)


class HandSimulator:
    """Derives hand angles from a TimeBase plus a second-hand speed multiplier.

    ``speed_multiplier`` must be one of SPEED_MULTIPLIERS; the engine does not
    check membership, its callers do.
    """

    def __init__(
        self,
        *,
        time_base: TimeBase,
        tz: tzinfo = timezone.utc,
        speed_multiplier: float = DEFAULT_SPEED,
    ) -> None:
        if speed_multiplier <= 0:
            raise ValueError("speed_multiplier must be > 0")
        self._time_base = time_base
        self._tz = tz
        self._hand = _SecondHand(speed_multiplier=float(speed_multiplier), base_angle=0.0)
        self.on_anchor(time_base.synced_epoch_ms)

    @property
    def speed_multiplier(self) -> float:
        return self._hand.speed_multiplier

    @property
    def base_second_angle(self) -> float:
        return self._hand.base_angle

    @property
    def tz(self) -> tzinfo:
        return self._tz

    def on_anchor(self, real_time_ms: float) -> None:
        """Re-align the second hand for a TimeBase anchored at ``real_time_ms``.

        Raises OverflowError/ValueError for times the zone cannot represent;
        the current base is kept in that case.
        """

        s = wall_fields(real_time_ms, self._tz).second
        m = self._hand.speed_multiplier
        self._hand = _SecondHand(speed_multiplier=m, base_angle=aligned_second_angle(s, m))

    def on_speed_change(self, new_multiplier: float, monotonic_now: float) -> None:
        if new_multiplier <= 0:
            raise ValueError("speed multiplier must be > 0")
        current = self.second_angle(monotonic_now)
        tb = self._time_base
        tb.anchor(tb.now(monotonic_now), monotonic_now)
        self._hand = _SecondHand(speed_multiplier=float(new_multiplier), base_angle=current)

    def second_angle(self, monotonic_now: float) -> float:
        hand = self._hand
        elapsed = self._time_base.elapsed_s(monotonic_now)
        return normalize_deg(hand.base_angle + elapsed * hand.speed_multiplier * DEG_PER_SECOND)

    def minute_angle(self, real_time_ms: float) -> float:
        return minute_angle(real_time_ms, self._tz)

    def hour_angle(self, real_time_ms: float) -> float:
        return hour_angle(real_time_ms, self._tz)
