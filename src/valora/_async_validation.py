"""Async validator: a base operation plus an ordered list of strategies."""

from __future__ import annotations

import dataclasses
from collections.abc import Callable
from typing import Any, Generic, overload

from valora._clock import AsyncioClock, Clock
from valora._debounce import DebounceStrategy
from valora._lifecycle import LifecycleController, PendingState
from valora._operation import OperationAdapter, Pipeline
from valora._results import ValidationContext, ValidationResult
from valora._retry import RetryPolicy, RetryStrategy
from valora._strategy import Strategy
from valora._timeout import TimeoutStrategy
from valora._types import ExecutionFunction, Operation, T


class AsyncValidator(Generic[T]):
    """
    Wraps an async validation operation with execution strategies.

    Strategies are applied in call order, so the last one added is the
    outermost layer and controls everything beneath it:

        AsyncValidator(check).debounce(0.3).timeout(5.0)
        # Timeout(Debounce(check)): the 5s budget includes the debounce wait

        AsyncValidator(check).timeout(1.0).retry(3)
        # Retry(Timeout(check)): each attempt gets its own 1s budget

    Every fluent call returns a new validator; the receiver is unchanged.
    Each validator owns its lifecycle and debounce state.

    Example:
        async def username_available(username, ctx):
            return not await db.username_exists(username)

        check = (
            AsyncValidator(username_available, error="Username {value} is taken")
            .debounce(0.3)
            .timeout(5.0)
        )

        result = await check.validate_async("bob")
        if not result:
            print(result.messages)
    """

    def __init__(
        self,
        operation: Operation,
        *,
        name: str | None = None,
        error: str | Callable[[Any], str] | None = None,
        clock: Clock | None = None,
    ):
        self._steps: tuple[OperationAdapter, ...] = (
            OperationAdapter(operation, name, error),
        )
        self._strategies: tuple[Strategy, ...] = ()
        self._clock: Clock = clock or AsyncioClock()
        self._lifecycle = LifecycleController()
        self._composed: ExecutionFunction | None = None

    def _derive(
        self,
        *,
        steps: tuple[OperationAdapter, ...] | None = None,
        strategies: tuple[Strategy, ...] | None = None,
        clock: Clock | None = None,
    ) -> AsyncValidator[T]:
        derived = object.__new__(type(self))
        derived._steps = self._steps if steps is None else steps
        derived._strategies = self._strategies if strategies is None else strategies
        derived._clock = self._clock if clock is None else clock
        derived._lifecycle = LifecycleController()
        derived._composed = None
        return derived

    # -------------------------------------------------------------------------
    # Fluent API
    # -------------------------------------------------------------------------

    def with_strategy(self, strategy: Strategy) -> AsyncValidator[T]:
        """Add a strategy as the new outermost layer."""
        return self._derive(strategies=self._strategies + (strategy,))

    def timeout(self, seconds: float, message: str | None = None) -> AsyncValidator[T]:
        """Fail with "async.timeout" if the layers beneath take longer than `seconds`."""
        return self.with_strategy(TimeoutStrategy(seconds, message))

    def debounce(self, seconds: float) -> AsyncValidator[T]:
        """Coalesce calls arriving less than `seconds` apart into one execution."""
        return self.with_strategy(DebounceStrategy(seconds))

    def retry(self, policy: int | RetryPolicy) -> AsyncValidator[T]:
        """Re-run the layers beneath when the operation raises."""
        return self.with_strategy(RetryStrategy(RetryPolicy.coerce(policy)))

    def then(
        self,
        operation: Operation,
        *,
        name: str | None = None,
        error: str | Callable[[Any], str] | None = None,
    ) -> AsyncValidator[T]:
        """
        Run another operation on the data produced by the previous one.

        Steps always form the innermost layer, beneath every strategy.
        """
        step = OperationAdapter(operation, name, error)
        return self._derive(steps=self._steps + (step,))

    def with_clock(self, clock: Clock) -> AsyncValidator[T]:
        """Use a different clock for every timed strategy."""
        return self._derive(clock=clock)

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def _build(self) -> ExecutionFunction:
        depth = len(self._strategies)
        execute: ExecutionFunction = Pipeline(list(self._steps), depth)
        for index, strategy in enumerate(self._strategies):
            execute = strategy.build(execute, self._clock, depth - 1 - index)
        return execute

    async def validate_async(
        self, value: T, context: ValidationContext | None = None
    ) -> ValidationResult:
        """
        Validate a value through every strategy.

        Never raises for operation failures: errors, timeouts, exhausted
        retries and cancellation all come back as failed results.
        """
        if self._composed is None:
            self._composed = self._build()
        ctx = context if context is not None else ValidationContext.for_value(value)
        return await self._lifecycle.run(self._composed, value, ctx)

    def cancel(self) -> None:
        """Cancel the most recent validation, if it is still pending."""
        self._lifecycle.cancel()

    def is_pending(self) -> bool:
        return self._lifecycle.is_pending()

    async def wait_for_completion(self) -> None:
        """Wait until the most recent validation has been delivered."""
        await self._lifecycle.wait_for_completion()

    @property
    def state(self) -> PendingState:
        """Snapshot of the pending state."""
        return dataclasses.replace(self._lifecycle.state)

    @property
    def strategies(self) -> tuple[Strategy, ...]:
        return self._strategies

    @property
    def clock(self) -> Clock:
        return self._clock

    def __repr__(self) -> str:
        inner = " >> ".join(repr(s) for s in self._steps)
        if not self._strategies:
            return f"AsyncValidator({inner})"
        layers = ", ".join(repr(s) for s in self._strategies)
        return f"AsyncValidator({inner}, strategies=[{layers}])"


@overload
def async_validator(
    fn: Operation,
    *,
    name: str | None = None,
    error: str | Callable[[Any], str] | None = None,
    clock: Clock | None = None,
) -> AsyncValidator[Any]: ...


@overload
def async_validator(
    fn: None = None,
    *,
    name: str | None = None,
    error: str | Callable[[Any], str] | None = None,
    clock: Clock | None = None,
) -> Callable[[Operation], AsyncValidator[Any]]: ...


def async_validator(
    fn: Operation | None = None,
    *,
    name: str | None = None,
    error: str | Callable[[Any], str] | None = None,
    clock: Clock | None = None,
) -> AsyncValidator[Any] | Callable[[Operation], AsyncValidator[Any]]:
    """
    Decorator to create an AsyncValidator from a validation function.

    Example:
        @async_validator(error="Username {value} is taken")
        async def username_available(username, ctx):
            return not await db.username_exists(username)

        check = username_available.debounce(0.3).timeout(5.0)
        result = await check.validate_async("bob")
    """

    def decorator(f: Operation) -> AsyncValidator[Any]:
        return AsyncValidator(f, name=name, error=error, clock=clock)

    if fn is not None:
        return decorator(fn)
    return decorator
