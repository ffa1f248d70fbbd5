"""Debounce strategy."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

from valora._cancellation import CancellationToken
from valora._clock import Clock, TimerHandle
from valora._results import ValidationContext, ValidationResult, cancelled_failure
from valora._strategy import Strategy
from valora._tasks import result_of, spawn
from valora._types import ExecutionFunction


@dataclass
class DebounceWindow:
    """
    An open debounce window: the latest call and everyone waiting on it.

    Waiters are resolved in registration order with the same result object.
    """

    last_value: Any
    last_context: ValidationContext
    last_token: CancellationToken
    timer: TimerHandle | None = None
    waiters: list[asyncio.Future] = field(default_factory=list)

    def resolve(self, result: ValidationResult) -> None:
        waiters, self.waiters = self.waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(result)


class _Debouncer:
    """The layer built by DebounceStrategy; owns at most one open window."""

    def __init__(self, inner: ExecutionFunction, clock: Clock, seconds: float):
        self.inner = inner
        self.clock = clock
        self.seconds = seconds
        self.window: DebounceWindow | None = None

    async def __call__(
        self, value: Any, context: ValidationContext, token: CancellationToken
    ) -> ValidationResult:
        waiter: asyncio.Future[ValidationResult] = (
            asyncio.get_running_loop().create_future()
        )
        window = self.window
        if window is None:
            window = self.window = DebounceWindow(value, context, token)
        else:
            if window.timer is not None:
                window.timer.cancel()
            window.last_value = value
            window.last_context = context
            window.last_token = token
        window.waiters.append(waiter)
        window.timer = self.clock.after(self.seconds, lambda: self._fire(window))
        token.add_callback(lambda: self._on_cancel(window, waiter, token))
        return await waiter

    def _fire(self, window: DebounceWindow) -> None:
        if self.window is window:
            self.window = None
        window.timer = None
        if window.last_token.cancelled:
            window.resolve(cancelled_failure(window.last_context))
            return
        task = spawn(self.inner(window.last_value, window.last_context, window.last_token))
        task.add_done_callback(
            lambda t: window.resolve(result_of(t, window.last_context))
        )

    def _on_cancel(
        self,
        window: DebounceWindow,
        waiter: asyncio.Future,
        token: CancellationToken,
    ) -> None:
        if waiter.done():
            return
        if token is window.last_token:
            if self.window is not window:
                # Already executing; the inner layers observe the token.
                return
            if window.timer is not None:
                window.timer.cancel()
                window.timer = None
            self.window = None
            window.resolve(cancelled_failure(window.last_context))
        else:
            window.waiters.remove(waiter)
            waiter.set_result(cancelled_failure(window.last_context))


@dataclass(frozen=True, repr=False)
class DebounceStrategy(Strategy):
    """
    Coalesces bursts of calls into one execution of the inner layer.

    Each call restarts a timer. When the timer fires, the inner layer runs
    once with the latest call's value and context, and every caller that
    arrived during the window receives the identical result object.

    Cancelling the latest caller's operation while the window is open stops
    the timer and resolves every waiter with a cancellation failure; the
    inner layer is not run. Cancelling an earlier caller only releases that
    caller.

    Example:
        check = AsyncValidator(lookup_username).debounce(0.3)

        # Three keystrokes in quick succession -> one lookup for "bob"
        results = await asyncio.gather(
            check.validate_async("b"),
            check.validate_async("bo"),
            check.validate_async("bob"),
        )

    Args:
        seconds: Quiet period required before the inner layer runs
    """

    seconds: float

    def __post_init__(self) -> None:
        if self.seconds < 0:
            raise ValueError("Debounce delay must be >= 0 seconds")

    def wrap(self, inner: ExecutionFunction, clock: Clock) -> ExecutionFunction:
        return _Debouncer(inner, clock, self.seconds)

    def __repr__(self) -> str:
        return f"Debounce({self.seconds:g}s)"
