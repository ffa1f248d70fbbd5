"""Shared type variables and callable aliases."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from valora._cancellation import CancellationToken
from valora._results import ValidationContext, ValidationResult

T = TypeVar("T")

ExecutionFunction = Callable[
    [Any, ValidationContext, CancellationToken], Awaitable[ValidationResult]
]
"""Signature shared by the base operation and every strategy layer:
(value, context, token) -> awaitable ValidationResult"""

Operation = Callable[[Any, ValidationContext], Any]
"""User supplied validation function: (value, context) -> result or awaitable"""

RetryCallback = Callable[[int, Exception | None, float], Any]
"""Callback signature for retry hooks: (attempt, error, delay) -> None or Coroutine"""
