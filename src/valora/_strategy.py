"""Strategy descriptor base class."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from valora._cancellation import CancellationToken
from valora._clock import Clock
from valora._results import ValidationContext, ValidationResult
from valora._tracing import run_traced
from valora._types import ExecutionFunction


class Strategy(ABC):
    """
    Base class for execution strategies.

    A strategy is an immutable description ("time out after 5s", "retry 3
    times"). wrap() turns it into a layer: it takes an execution function
    and returns a new one with the same (value, context, token) signature.
    Any per-call state a layer needs is created inside wrap(), so two
    validators built from the same descriptors never share it.
    """

    @abstractmethod
    def wrap(self, inner: ExecutionFunction, clock: Clock) -> ExecutionFunction:
        """Build a layer around inner."""
        ...

    def build(
        self, inner: ExecutionFunction, clock: Clock, depth: int = 0
    ) -> ExecutionFunction:
        """Build the layer and report it to the active trace hook."""
        layer = self.wrap(inner, clock)
        name = repr(self)

        async def traced_layer(
            value: Any, context: ValidationContext, token: CancellationToken
        ) -> ValidationResult:
            return await run_traced(
                name, value, depth, lambda: layer(value, context, token)
            )

        return traced_layer
