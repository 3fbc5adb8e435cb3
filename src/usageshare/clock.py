import asyncio
import time
from typing import Awaitable, Callable, Protocol

import structlog

logger = structlog.get_logger()

IntervalCallback = Callable[[], Awaitable[None]]


class Clock(Protocol):
    """
    Clock is the source of wall-clock time and periodic
    scheduling. Times are UTC milliseconds.
    """

    def now(self) -> "int": ...

    def set_interval(
        self, callback: "IntervalCallback", period_ms: "int"
    ) -> "None": ...


class RealClock:
    """
    RealClock schedules each periodic callback in its own asyncio
    task. The next tick of a timer is only scheduled once the
    previous one has returned, so ticks of one timer never overlap.
    Must be used from within a running event loop.
    """

    def __init__(self) -> "None":
        self._tasks: "list[asyncio.Task[None]]" = []

    def now(self) -> "int":
        return int(time.time() * 1000)

    def set_interval(self, callback: "IntervalCallback", period_ms: "int") -> "None":
        task = asyncio.get_running_loop().create_task(
            self._run_interval(callback, period_ms)
        )
        self._tasks.append(task)

    async def _run_interval(
        self, callback: "IntervalCallback", period_ms: "int"
    ) -> "None":
        while True:
            await asyncio.sleep(period_ms / 1000)
            try:
                await callback()
            except Exception:
                # keep the timer alive, the next tick runs as scheduled
                logger.exception("interval_callback_error", period_ms=period_ms)

    async def close(self) -> "None":
        """
        cancels all running timers.
        """
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()


class ManualClock:
    """
    ManualClock is a deterministic clock for tests. Time only
    moves when advance() is called, which fires every timer that
    came due, in due order.
    """

    def __init__(self, now_ms: "int" = 0) -> "None":
        self.now_ms = now_ms
        # each entry is [next_due_ms, period_ms, callback]
        self._timers: "list[list]" = []

    def now(self) -> "int":
        return self.now_ms

    def set_interval(self, callback: "IntervalCallback", period_ms: "int") -> "None":
        self._timers.append([self.now_ms + period_ms, period_ms, callback])

    async def advance(self, delta_ms: "int") -> "None":
        target = self.now_ms + delta_ms
        while True:
            due = [t for t in self._timers if t[0] <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t[0])
            self.now_ms = timer[0]
            timer[0] += timer[1]
            await timer[2]()
        self.now_ms = target
