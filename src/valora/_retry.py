"""Retry strategy with configurable backoff."""

from __future__ import annotations

import inspect
import random
from dataclasses import dataclass, field, replace
from typing import Any

from valora._cancellation import CancellationToken
from valora._clock import Clock, sleep
from valora._results import (
    ValidationContext,
    ValidationResult,
    ValoraValidationError,
    cancelled_failure,
    operation_failure,
)
from valora._strategy import Strategy
from valora._types import ExecutionFunction, RetryCallback


# =============================================================================
# Retry Policy
# =============================================================================


@dataclass(frozen=True)
class RetryPolicy:
    """
    How many times to attempt an operation and how long to wait in between.

    The wait before attempt k (k >= 2) is
    min(initial_delay * backoff_multiplier ** (k - 2), max_delay),
    plus up to `jitter` seconds of random delay.

    Example:
        # 3 attempts, waiting 0.01s then 0.02s
        policy = RetryPolicy(max_attempts=3, initial_delay=0.01, max_delay=0.1)

        # With observability hook
        def on_retry(attempt, error, delay):
            print(f"Attempt {attempt} failed: {error}, waiting {delay}s")

        policy = RetryPolicy(max_attempts=5, on_retry=on_retry)

    Args:
        max_attempts: Maximum number of attempts, including the first (default: 3)
        initial_delay: Wait before the second attempt in seconds (default: 0.1)
        max_delay: Upper bound for any wait in seconds (default: 10.0)
        backoff_multiplier: Growth factor between waits (default: 2.0)
        jitter: Random jitter to add to each wait (default: 0)
        on_retry: Optional sync or async callback(attempt, error, delay) called
            before each wait, with the number of the attempt that failed
    """

    max_attempts: int = 3
    initial_delay: float = 0.1
    max_delay: float = 10.0
    backoff_multiplier: float = 2.0
    jitter: float = 0.0
    on_retry: RetryCallback | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if isinstance(self.max_attempts, bool) or not isinstance(self.max_attempts, int):
            raise TypeError("max_attempts must be an int")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValueError("Delays must be >= 0 seconds")
        if self.backoff_multiplier <= 0:
            raise ValueError("backoff_multiplier must be > 0")
        if self.jitter < 0:
            raise ValueError("jitter must be >= 0")

    @classmethod
    def coerce(cls, policy: int | RetryPolicy) -> RetryPolicy:
        """Accept a bare attempt count or a full policy."""
        if isinstance(policy, RetryPolicy):
            return policy
        return cls(max_attempts=policy)

    def get_delay(self, attempt: int) -> float:
        """Calculate the wait before the given attempt number (1-based)."""
        if attempt < 2:
            return 0.0
        delay = min(
            self.initial_delay * self.backoff_multiplier ** (attempt - 2),
            self.max_delay,
        )
        if self.jitter > 0:
            delay += random.uniform(0, self.jitter)
        return delay


# =============================================================================
# Retry Strategy
# =============================================================================


def _exhausted(last: ValidationResult, attempts: int) -> ValidationResult:
    errors = [
        replace(e, metadata={**(e.metadata or {}), "attempts": attempts})
        for e in last.errors
    ]
    return ValidationResult.fail(*errors)


@dataclass(frozen=True, repr=False)
class RetryStrategy(Strategy):
    """
    Re-runs the inner layer when the operation itself errored.

    Only operation errors are retried: an exception raised by the inner
    layer, or a result whose errors all carry the "async.error" code. A
    success, or a failure produced by validation correctly rejecting the
    value, is returned immediately. Attempts never overlap.

    After the last attempt the final operation error is returned, with the
    number of attempts recorded in each error's metadata.

    If the on_retry hook raises, retrying stops and the hook's exception is
    returned as an "async.error" failure.

    The cancellation token is checked before every attempt and before every
    wait; a wait in progress is cut short when the token is cancelled.

    Example:
        check = AsyncValidator(lookup_username).retry(3)
        check = AsyncValidator(lookup_username).retry(
            RetryPolicy(max_attempts=5, initial_delay=0.2, max_delay=2.0)
        )
    """

    policy: RetryPolicy

    def wrap(self, inner: ExecutionFunction, clock: Clock) -> ExecutionFunction:
        policy = self.policy

        async def retry_layer(
            value: Any, context: ValidationContext, token: CancellationToken
        ) -> ValidationResult:
            last_result: ValidationResult | None = None
            last_error: Exception | None = None

            for attempt in range(1, policy.max_attempts + 1):
                if attempt > 1:
                    if token.cancelled:
                        return cancelled_failure(context)
                    delay = policy.get_delay(attempt)

                    # Call the retry hook if provided (supports both sync and async)
                    if policy.on_retry is not None:
                        try:
                            hook_result = policy.on_retry(attempt - 1, last_error, delay)
                            if inspect.isawaitable(hook_result):
                                await hook_result
                        except Exception as e:
                            return operation_failure(e, context, attempts=attempt - 1)

                    if delay > 0 and not await sleep(clock, delay, token):
                        return cancelled_failure(context)

                if token.cancelled:
                    return cancelled_failure(context)

                try:
                    result = await inner(value, context, token)
                except Exception as e:
                    last_error = e
                    last_result = operation_failure(e, context)
                    continue

                if not result.is_operation_error:
                    return result
                last_result = result
                last_error = ValoraValidationError("; ".join(result.messages), result.errors)

            assert last_result is not None
            return _exhausted(last_result, policy.max_attempts)

        return retry_layer

    def __repr__(self) -> str:
        return f"Retry(max_attempts={self.policy.max_attempts})"
