"""
Valora - Async Validation Strategies

Wraps an asynchronous validation operation (e.g. "is this username still
available?") with composable execution strategies and a pending/completion
lifecycle:

    .debounce(s)  = coalesce bursts of calls into one execution
    .timeout(s)   = fail if the layers beneath take longer than s seconds
    .retry(n)     = re-run the operation when it raises
    .then(fn)     = feed the result's data into another operation

Strategies nest in call order: the last one added is the outermost layer.

Example:
    from valora import AsyncValidator

    async def username_available(username, ctx):
        return not await api.username_exists(username)

    check = (
        AsyncValidator(username_available, error="Username {value} is taken")
        .retry(3)
        .debounce(0.3)
        .timeout(5.0)
    )

    result = await check.validate_async("bob")
    if not result.success:
        print(result.messages)

    check.is_pending()  # False once the result has been delivered
    check.cancel()      # resolves a pending call with "Validation cancelled"
"""

from __future__ import annotations

__version__ = "0.1.0"
__all__ = [
    # Results
    "ValidationResult",
    "ValidationError",
    "ValidationContext",
    "ValoraValidationError",
    "create_error",
    "OPERATION_ERROR",
    "TIMEOUT_ERROR",
    "CANCELLED_ERROR",
    "INVALID_ERROR",
    # Validator
    "AsyncValidator",
    "async_validator",
    # Strategies
    "Strategy",
    "TimeoutStrategy",
    "DebounceStrategy",
    "DebounceWindow",
    "RetryStrategy",
    "RetryPolicy",
    # Base operation
    "OperationAdapter",
    "Pipeline",
    # Lifecycle
    "LifecycleController",
    "LifecycleState",
    "PendingState",
    "CancellationToken",
    # Clock
    "Clock",
    "TimerHandle",
    "AsyncioClock",
    "ManualClock",
    "sleep",
    # Tracing
    "TraceHook",
    "TraceConfig",
    "use_tracing",
    "PrintHook",
    "LoggingHook",
    "OpenTelemetryHook",
    # Types
    "ExecutionFunction",
    "RetryCallback",
]

from valora._async_validation import AsyncValidator, async_validator
from valora._cancellation import CancellationToken
from valora._clock import AsyncioClock, Clock, ManualClock, TimerHandle, sleep
from valora._debounce import DebounceStrategy, DebounceWindow
from valora._lifecycle import LifecycleController, LifecycleState, PendingState
from valora._operation import OperationAdapter, Pipeline
from valora._results import (
    CANCELLED_ERROR,
    INVALID_ERROR,
    OPERATION_ERROR,
    TIMEOUT_ERROR,
    ValidationContext,
    ValidationError,
    ValidationResult,
    ValoraValidationError,
    create_error,
)
from valora._retry import RetryPolicy, RetryStrategy
from valora._strategy import Strategy
from valora._timeout import TimeoutStrategy
from valora._tracing import (
    LoggingHook,
    OpenTelemetryHook,
    PrintHook,
    TraceConfig,
    TraceHook,
    use_tracing,
)
from valora._types import ExecutionFunction, RetryCallback
