"""Timeout strategy."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

from valora._cancellation import CancellationToken
from valora._clock import Clock
from valora._results import (
    TIMEOUT_ERROR,
    ValidationContext,
    ValidationResult,
    failure,
)
from valora._strategy import Strategy
from valora._tasks import result_of, spawn
from valora._types import ExecutionFunction


@dataclass(frozen=True, repr=False)
class TimeoutStrategy(Strategy):
    """
    Races the inner layer against a timer.

    Whichever settles first decides the result. When the timer wins, the
    inner operation is abandoned: it keeps running in the background and its
    result is discarded. When the timer callback finds the operation already
    settled (same scheduler tick, or seconds=0 with an operation that does
    not suspend), the operation's result wins.

    Cancellation passes straight through to the inner layer.

    Example:
        check = AsyncValidator(lookup_username).timeout(5.0, "Lookup took too long")

    Args:
        seconds: Time allowed for the inner layer
        message: Failure message (default: "Validation timeout after <seconds>s")
    """

    seconds: float
    message: str | None = None

    def __post_init__(self) -> None:
        if self.seconds < 0:
            raise ValueError("Timeout must be >= 0 seconds")

    @property
    def timeout_message(self) -> str:
        return self.message or f"Validation timeout after {self.seconds:g}s"

    def wrap(self, inner: ExecutionFunction, clock: Clock) -> ExecutionFunction:
        async def timeout_layer(
            value: Any, context: ValidationContext, token: CancellationToken
        ) -> ValidationResult:
            outcome: asyncio.Future[ValidationResult] = (
                asyncio.get_running_loop().create_future()
            )
            task = spawn(inner(value, context, token))

            def on_settled(t: asyncio.Future) -> None:
                if not outcome.done():
                    outcome.set_result(result_of(t, context))

            def on_timer() -> None:
                if outcome.done():
                    return
                if task.done():
                    on_settled(task)
                    return
                outcome.set_result(
                    failure(
                        TIMEOUT_ERROR,
                        self.timeout_message,
                        context,
                        {"timeout": self.seconds},
                    )
                )

            task.add_done_callback(on_settled)
            timer = clock.after(self.seconds, on_timer)
            try:
                return await outcome
            finally:
                timer.cancel()

        return timeout_layer

    def __repr__(self) -> str:
        return f"Timeout({self.seconds:g}s)"
