from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import pytest

from speed_clock.hands import HandSimulator
from speed_clock.scheduling import FrameTimers, TaskOutcome
from speed_clock.sync import WAITING_MESSAGE, SyncScheduler
from speed_clock.time_provider import TimeDecodeError, TimeRequestError
from speed_clock.timebase import Anchor, TimeBase


@dataclass
class FakeClock:
    t: float = 0.0

    def now(self) -> float:
        return self.t

    def advance(self, dt: float) -> None:
        self.t += dt


@dataclass
class ManualTasks:
    """Runs submitted work only when a test says so."""

    pending: list[tuple[Callable[[], Any], Callable[[TaskOutcome], None]]] = field(default_factory=list)
    done: list[tuple[Callable[[TaskOutcome], None], TaskOutcome]] = field(default_factory=list)

    def submit(self, fn: Callable[[], Any], on_done: Callable[[TaskOutcome], None]) -> None:
        self.pending.append((fn, on_done))

    def run(self, index: int = 0) -> None:
        fn, on_done = self.pending.pop(index)
        try:
            outcome = TaskOutcome(value=fn())
        except Exception as exc:
            outcome = TaskOutcome(error=exc)
        self.done.append((on_done, outcome))

    def drain(self) -> int:
        handled = 0
        while self.done:
            on_done, outcome = self.done.pop(0)
            on_done(outcome)
            handled += 1
        return handled

    def shutdown(self) -> None:
        self.pending.clear()


@dataclass
class ScriptedProvider:
    results: list[float | Exception]
    zones: list[str] = field(default_factory=list)

    def fetch_epoch_ms(self, time_zone: str) -> float:
        self.zones.append(time_zone)
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return result


START_MS = datetime(2024, 1, 1, 0, 0, 0, tzinfo=timezone.utc).timestamp() * 1000.0


def _build(
    provider: ScriptedProvider,
) -> tuple[FakeClock, TimeBase, HandSimulator, ManualTasks, SyncScheduler]:
    clock = FakeClock(t=100.0)
    tb = TimeBase(epoch_ms=START_MS, monotonic_s=clock.now())
    hands = HandSimulator(time_base=tb)
    tasks = ManualTasks()
    sync = SyncScheduler(
        time_base=tb,
        hands=hands,
        provider=provider,
        clock=clock,
        tasks=tasks,
        time_zone="Europe/Berlin",
    )
    return clock, tb, hands, tasks, sync


def test_initial_status_is_waiting() -> None:
    _, _, _, _, sync = _build(ScriptedProvider([START_MS]))

    assert sync.status_message() == WAITING_MESSAGE
    assert sync.syncing is False
    assert sync.last_sync_time is None
    assert sync.last_error is None


def test_successful_sync_anchors_time_base_and_realigns_hands() -> None:
    remote = START_MS + 42_000.0 + 3_600_000.0
    provider = ScriptedProvider([remote])
    clock, tb, hands, tasks, sync = _build(provider)

    assert sync.request_sync() is True
    assert sync.syncing is True
    clock.advance(0.3)
    tasks.run()
    clock.advance(0.2)
    tasks.drain()

    assert provider.zones == ["Europe/Berlin"]
    assert tb.current_anchor == Anchor(epoch_ms=remote, monotonic_s=100.3)
    assert tb.now(clock.now()) == pytest.approx(remote + 200.0)
    assert hands.base_second_angle == pytest.approx(42.0 * 6.0)
    assert sync.syncing is False
    assert sync.last_sync_time == pytest.approx(remote)
    assert sync.last_error is None
    assert sync.status_message() == ""


def test_failing_provider_leaves_time_base_untouched() -> None:
    provider = ScriptedProvider([TimeRequestError("network request failed: unreachable")])
    clock, tb, hands, tasks, sync = _build(provider)
    startup = tb.current_anchor
    base = hands.base_second_angle

    for _ in range(5):
        clock.advance(60.0)
        assert sync.request_sync() is True
        tasks.run()
        tasks.drain()

    assert tb.current_anchor == startup
    assert tb.now(clock.now()) == pytest.approx(START_MS + 300_000.0)
    assert hands.base_second_angle == base
    assert sync.last_error
    assert sync.last_error.startswith("Automatic sync failed: network request failed")
    assert sync.status_message() == sync.last_error
    assert sync.syncing is False


def test_unrepresentable_remote_time_is_a_failed_attempt() -> None:
    # Passes the decoder's float checks but no datetime can hold it.
    provider = ScriptedProvider([1e23])
    clock, tb, hands, tasks, sync = _build(provider)
    startup = tb.current_anchor
    base = hands.base_second_angle

    sync.request_sync()
    tasks.run()
    assert tasks.drain() == 1

    assert tb.current_anchor == startup
    assert hands.base_second_angle == base
    assert sync.syncing is False
    assert sync.last_sync_time is None
    assert sync.last_error is not None
    assert sync.last_error.startswith("Automatic sync failed: timestamp out of range")
    clock.advance(1.0)
    assert tb.now(clock.now()) == pytest.approx(START_MS + 1_000.0)
    assert 0.0 <= hands.second_angle(clock.now()) < 360.0


def test_manual_and_automatic_failures_are_worded_differently() -> None:
    provider = ScriptedProvider([TimeDecodeError("failed to parse response")])
    _, _, _, tasks, sync = _build(provider)

    sync.request_sync(manual=True)
    tasks.run()
    tasks.drain()
    manual_error = sync.last_error

    sync.request_sync(manual=False)
    tasks.run()
    tasks.drain()
    auto_error = sync.last_error

    assert manual_error == "Manual sync failed: failed to parse response"
    assert auto_error == "Automatic sync failed: failed to parse response"


def test_unexpected_exception_is_reported_as_failure() -> None:
    provider = ScriptedProvider([RuntimeError("boom")])
    _, tb, _, tasks, sync = _build(provider)
    startup = tb.current_anchor

    sync.request_sync(manual=True)
    tasks.run()
    tasks.drain()

    assert tb.current_anchor == startup
    assert sync.last_error is not None
    assert "boom" in sync.last_error


def test_new_attempt_clears_previous_error() -> None:
    provider = ScriptedProvider([TimeRequestError("down"), START_MS])
    _, _, _, tasks, sync = _build(provider)

    sync.request_sync()
    tasks.run()
    tasks.drain()
    assert sync.last_error is not None

    sync.request_sync()
    assert sync.last_error is None
    tasks.run()
    tasks.drain()
    assert sync.last_error is None
    assert sync.status_message() == ""


def test_automatic_request_dropped_while_in_flight() -> None:
    provider = ScriptedProvider([START_MS])
    _, _, _, tasks, sync = _build(provider)

    assert sync.request_sync(manual=False) is True
    assert sync.request_sync(manual=False) is False
    assert len(tasks.pending) == 1


def test_manual_request_runs_alongside_automatic_and_last_completion_wins() -> None:
    auto_ms = START_MS + 10_000.0
    manual_ms = START_MS + 20_000.0
    provider = ScriptedProvider([auto_ms, manual_ms])
    clock, tb, _, tasks, sync = _build(provider)

    assert sync.request_sync(manual=False) is True
    assert sync.request_sync(manual=True) is True
    assert len(tasks.pending) == 2

    # Automatic fetch finishes first, manual one later.
    clock.advance(1.0)
    tasks.run(0)
    tasks.drain()
    assert sync.syncing is True
    assert tb.current_anchor == Anchor(epoch_ms=auto_ms, monotonic_s=101.0)

    clock.advance(1.0)
    tasks.run(0)
    tasks.drain()
    assert sync.syncing is False
    assert tb.current_anchor == Anchor(epoch_ms=manual_ms, monotonic_s=102.0)


def test_start_syncs_now_and_on_interval() -> None:
    provider = ScriptedProvider([START_MS])
    clock, _, _, tasks, sync = _build(provider)
    timers = FrameTimers(clock=clock)

    sync.start(timers, interval_s=900.0)
    assert len(tasks.pending) == 1
    tasks.run()
    tasks.drain()

    clock.advance(899.0)
    timers.poll()
    assert tasks.pending == []

    clock.advance(1.0)
    timers.poll()
    assert len(tasks.pending) == 1

    sync.stop()
    tasks.run()
    tasks.drain()
    clock.advance(900.0)
    timers.poll()
    assert tasks.pending == []
