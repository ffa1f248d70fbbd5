"""Base operation adapter and step pipeline."""

from __future__ import annotations

import inspect
from collections.abc import Callable
from typing import Any

from valora._cancellation import CancellationToken
from valora._results import (
    INVALID_ERROR,
    ValidationContext,
    ValidationResult,
    failure,
    operation_failure,
)
from valora._tracing import run_traced
from valora._types import Operation


class OperationAdapter:
    """
    Turns a user validation function into an execution function.

    The function receives (value, context) and may be sync or async. Its
    return value is normalized:

        ValidationResult  -> passed through unchanged
        True / None       -> success, data is the input value
        False             -> failure with code "async.invalid"
        anything else     -> success, data is the returned value

    Only the literal False rejects. Falsy values such as 0, "" or [] are
    data, and so is a dict like {"success": False}: that lets a step
    transform a value (e.g. strip it to "") for the next `.then()` step.
    To reject, return False or a failed ValidationResult.

    Exceptions raised by the function (or by the awaitable it returns) become
    a failure with code "async.error" carrying the exception's message.

    Example:
        async def is_available(username, ctx):
            return not await db.username_exists(username)

        check = OperationAdapter(is_available, error="Username is taken")
        result = await check("bob", ValidationContext(), CancellationToken())
    """

    def __init__(
        self,
        fn: Operation,
        name: str | None = None,
        error: str | Callable[[Any], str] | None = None,
    ):
        if not callable(fn):
            raise TypeError(f"Validation operation must be callable, got {fn!r}")
        self.fn = fn
        self.name = name or getattr(fn, "__name__", "operation")
        self._error = error

    def get_error(self, value: Any) -> str:
        """Get the error message for a rejected value."""
        if self._error is None:
            return f"Check failed: {self.name}"
        if callable(self._error):
            return self._error(value)
        try:
            return self._error.format(value=value)
        except (KeyError, AttributeError, IndexError):
            return self._error

    async def _invoke(self, value: Any, context: ValidationContext) -> ValidationResult:
        result = self.fn(value, context)
        if inspect.isawaitable(result):
            result = await result
        if isinstance(result, ValidationResult):
            return result
        if result is True or result is None:
            return ValidationResult.ok(value)
        if result is False:
            return failure(INVALID_ERROR, self.get_error(value), context)
        return ValidationResult.ok(result)

    async def __call__(
        self,
        value: Any,
        context: ValidationContext,
        token: CancellationToken,
        depth: int = 0,
    ) -> ValidationResult:
        try:
            return await run_traced(
                repr(self), value, depth, lambda: self._invoke(value, context), leaf=True
            )
        except Exception as e:
            return operation_failure(e, context)

    def __repr__(self) -> str:
        return f"Operation({self.name})"


class Pipeline:
    """
    Runs operations in order, feeding each step the previous step's data.

    The first failing step's result is returned as is.
    """

    def __init__(self, steps: list[OperationAdapter], depth: int = 0):
        if not steps:
            raise ValueError("Pipeline requires at least one step")
        self.steps = steps
        self.depth = depth

    async def __call__(
        self, value: Any, context: ValidationContext, token: CancellationToken
    ) -> ValidationResult:
        result = ValidationResult.ok(value)
        for step in self.steps:
            result = await step(result.data, context, token, self.depth)
            if not result.success:
                return result
        return result

    def __repr__(self) -> str:
        return " >> ".join(repr(s) for s in self.steps)
