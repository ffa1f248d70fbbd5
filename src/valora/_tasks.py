"""Background task bookkeeping shared by strategies and the lifecycle."""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from typing import Any

from valora._results import (
    ValidationContext,
    ValidationResult,
    cancelled_failure,
    operation_failure,
)

# Strong references to detached tasks; the event loop only keeps weak ones.
_background: set[asyncio.Task] = set()


def spawn(coro: Coroutine[Any, Any, ValidationResult]) -> asyncio.Task:
    """Schedule a coroutine as a task that stays referenced until it finishes."""
    task = asyncio.ensure_future(coro)
    _background.add(task)
    task.add_done_callback(_background.discard)
    return task


def background_count() -> int:
    """Number of spawned tasks still running."""
    return len(_background)


def result_of(task: asyncio.Future, context: ValidationContext) -> ValidationResult:
    """Read a settled task's result, converting failures into results."""
    if task.cancelled():
        return cancelled_failure(context)
    error = task.exception()
    if error is not None:
        return operation_failure(error, context)
    return task.result()
