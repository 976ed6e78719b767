"""Timer and background-task primitives for a single cooperative frame loop.

``FrameTimers`` fires callbacks when ``poll()`` observes they are due on the
injected Clock; the UI calls ``poll()`` once per frame. ``BackgroundTasks``
runs blocking work (network fetches) off the frame loop but hands results
back through ``drain()``, so all engine state is mutated from one thread.
"""

from __future__ import annotations

import queue
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Protocol

from .clock import Clock


class TimerHandle:
    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


class Scheduler(Protocol):
    def call_every(self, interval_s: float, callback: Callable[[], None]) -> TimerHandle: ...
    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle: ...


class TaskRunner(Protocol):
    def submit(self, fn: Callable[[], Any], on_done: Callable[["TaskOutcome"], None]) -> None: ...
    def drain(self) -> int: ...
    def shutdown(self) -> None: ...


@dataclass(frozen=True, slots=True)
class TaskOutcome:
    value: Any = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(slots=True)
class _Timer:
    due_s: float
    interval_s: float | None
    callback: Callable[[], None]
    handle: TimerHandle


class FrameTimers:
    """Repeating and one-shot timers driven by ``poll()``."""

    def __init__(self, *, clock: Clock) -> None:
        self._clock = clock
        self._timers: list[_Timer] = []

    def call_every(self, interval_s: float, callback: Callable[[], None]) -> TimerHandle:
        if interval_s <= 0:
            raise ValueError("interval_s must be > 0")
        handle = TimerHandle()
        self._timers.append(
            _Timer(
                due_s=self._clock.now() + float(interval_s),
                interval_s=float(interval_s),
                callback=callback,
                handle=handle,
            )
        )
        return handle

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle:
        handle = TimerHandle()
        self._timers.append(
            _Timer(
                due_s=self._clock.now() + max(0.0, float(delay_s)),
                interval_s=None,
                callback=callback,
                handle=handle,
            )
        )
        return handle

    def pending(self) -> int:
        return sum(1 for t in self._timers if not t.handle.cancelled)

    def poll(self) -> int:
        """Fire every due timer once; returns how many fired."""

        now = self._clock.now()
        fired = 0
        for timer in list(self._timers):
            if timer.handle.cancelled or timer.due_s > now:
                continue
            if timer.interval_s is None:
                timer.handle.cancel()
            else:
                # A stalled loop fires a repeating timer once, not once per missed interval.
                while timer.due_s <= now:
                    timer.due_s += timer.interval_s
            timer.callback()
            fired += 1
        self._timers = [t for t in self._timers if not t.handle.cancelled]
        return fired


class BackgroundTasks:
    """Thread-pool runner whose completion callbacks run inside ``drain()``."""

    def __init__(self, *, max_workers: int = 2) -> None:
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="speed-clock")
        self._done: queue.SimpleQueue[tuple[Callable[[TaskOutcome], None], TaskOutcome]] = queue.SimpleQueue()

    def submit(self, fn: Callable[[], Any], on_done: Callable[[TaskOutcome], None]) -> None:
        future = self._executor.submit(fn)

        def _finished(f: Future[Any]) -> None:
            if f.cancelled():
                return
            exc = f.exception()
            outcome = TaskOutcome(error=exc) if exc is not None else TaskOutcome(value=f.result())
            self._done.put((on_done, outcome))

        future.add_done_callback(_finished)

    def drain(self) -> int:
        handled = 0
        while True:
            try:
                on_done, outcome = self._done.get_nowait()
            except queue.Empty:
                return handled
            on_done(outcome)
            handled += 1

    def shutdown(self) -> None:
        # Hung requests are abandoned rather than joined.
        self._executor.shutdown(wait=False, cancel_futures=True)
