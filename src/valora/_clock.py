"""Injectable scheduling: real asyncio time and a manually advanced clock."""

from __future__ import annotations

import asyncio
import heapq
import itertools
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from valora._cancellation import CancellationToken


@runtime_checkable
class TimerHandle(Protocol):
    """A scheduled callback that can be cancelled before it fires."""

    def cancel(self) -> None: ...


@runtime_checkable
class Clock(Protocol):
    """
    Scheduling capability used by every timed strategy.

    Implement this to run strategies against a different time source.

    Example:
        class MyClock:
            def now(self):
                return time.monotonic()

            def after(self, seconds, callback):
                return asyncio.get_running_loop().call_later(seconds, callback)
    """

    def now(self) -> float:
        """Current time in seconds."""
        ...

    def after(self, seconds: float, callback: Callable[[], None]) -> TimerHandle:
        """Run callback once, `seconds` from now, on the running event loop."""
        ...


class AsyncioClock:
    """Clock backed by the running asyncio event loop."""

    def now(self) -> float:
        return asyncio.get_running_loop().time()

    def after(
        self, seconds: float, callback: Callable[[], None]
    ) -> asyncio.TimerHandle:
        return asyncio.get_running_loop().call_later(max(seconds, 0.0), callback)

    def __repr__(self) -> str:
        return "AsyncioClock()"


@dataclass(order=True)
class _ManualTimer:
    deadline: float
    seq: int
    callback: Callable[[], None] = field(compare=False)
    cancelled: bool = field(default=False, compare=False)

    def cancel(self) -> None:
        self.cancelled = True


class ManualClock:
    """
    Clock whose time only moves when advance() is awaited.

    Timers fire in deadline order (ties in scheduling order). After each
    timer, and before and after the whole advance, the event loop is given
    `settle_rounds` turns so tasks woken by the timer can run to their next
    suspension point.

    Example:
        clock = ManualClock()
        validator = AsyncValidator(check).debounce(0.3).with_clock(clock)

        task = asyncio.ensure_future(validator.validate_async("bob"))
        await clock.advance(0.3)
        result = task.result()
    """

    def __init__(self, start: float = 0.0, settle_rounds: int = 50):
        self._now = start
        self._timers: list[_ManualTimer] = []
        self._seq = itertools.count()
        self.settle_rounds = settle_rounds

    def now(self) -> float:
        return self._now

    def after(self, seconds: float, callback: Callable[[], None]) -> _ManualTimer:
        timer = _ManualTimer(self._now + max(seconds, 0.0), next(self._seq), callback)
        heapq.heappush(self._timers, timer)
        return timer

    @property
    def pending_timers(self) -> int:
        """Number of scheduled timers that have neither fired nor been cancelled."""
        return sum(1 for t in self._timers if not t.cancelled)

    async def advance(self, seconds: float = 0.0) -> None:
        """Move time forward, firing every timer that falls due."""
        if seconds < 0:
            raise ValueError("Cannot move a clock backwards")
        await self.settle()
        target = self._now + seconds
        while self._timers and self._timers[0].deadline <= target:
            timer = heapq.heappop(self._timers)
            if timer.cancelled:
                continue
            self._now = timer.deadline
            timer.cancelled = True
            timer.callback()
            await self.settle()
        self._now = target
        await self.settle()

    async def settle(self) -> None:
        """Let ready tasks run without moving time."""
        for _ in range(self.settle_rounds):
            await asyncio.sleep(0)

    def __repr__(self) -> str:
        return f"ManualClock(now={self._now}, pending={self.pending_timers})"


async def sleep(
    clock: Clock, seconds: float, token: CancellationToken | None = None
) -> bool:
    """
    Wait `seconds` on the given clock.

    Wakes early if the token is cancelled. Returns True when the full delay
    elapsed and False when the wait was cut short by cancellation.
    """
    loop = asyncio.get_running_loop()
    waker: asyncio.Future[None] = loop.create_future()

    def wake() -> None:
        if not waker.done():
            waker.set_result(None)

    handle = clock.after(seconds, wake)
    if token is not None:
        token.add_callback(wake)
    try:
        await waker
    finally:
        handle.cancel()
        if token is not None:
            token.remove_callback(wake)
    return not (token is not None and token.cancelled)
