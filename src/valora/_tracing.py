"""Tracing hooks for strategy layers and base operations."""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from valora._results import ValidationResult

# Optional OpenTelemetry imports - only needed if using OpenTelemetryHook
try:
    from opentelemetry.trace import (
        Status as _Status,
    )
    from opentelemetry.trace import (
        StatusCode as _StatusCode,
    )
    from opentelemetry.trace import (
        set_span_in_context as _set_span_in_context,
    )

    _HAS_OPENTELEMETRY = True
except ImportError:
    _HAS_OPENTELEMETRY = False
    _Status = None
    _StatusCode = None
    _set_span_in_context = None


# =============================================================================
# Hook Protocol & Config
# =============================================================================


@runtime_checkable
class TraceHook(Protocol):
    """
    Protocol for trace hooks.

    Implement this to integrate with logging, OpenTelemetry, or other
    tracing systems. Every strategy layer and every base operation call is
    reported; depth 0 is the outermost strategy.

    Example:
        class MyHook:
            def on_enter(self, name, ctx, depth):
                print(f"{'  ' * depth}-> {name}")
                return None  # span token

            def on_exit(self, span, name, ok, duration_ms, depth):
                status = "✔" if ok else "✗"
                print(f"{'  ' * depth}<- {name} {status} ({duration_ms:.2f}ms)")

            def on_error(self, span, name, error, duration_ms, depth):
                print(f"{'  ' * depth}<- {name} ERROR: {error}")
    """

    def on_enter(self, name: str, ctx: Any, depth: int) -> Any:
        """
        Called before a layer runs.

        Args:
            name: Layer description, e.g. "Timeout(0.5s)"
            ctx: The value being validated
            depth: Nesting depth (0 = outermost strategy)

        Returns:
            Span token to pass to on_exit (can be None)
        """
        ...

    def on_exit(
        self, span: Any, name: str, ok: bool, duration_ms: float, depth: int
    ) -> None:
        """Called after a layer produced a result."""
        ...

    def on_error(
        self, span: Any, name: str, error: Exception, duration_ms: float, depth: int
    ) -> None:
        """Called when a base operation raised; the error becomes a failure result."""
        ...


@dataclass
class TraceConfig:
    """
    Configuration for tracing behavior.

    Attributes:
        nested: If False, only the outermost layer is traced
        max_depth: Maximum depth to trace (None = unlimited)
        include_leaf_only: If True, only trace base operations
    """

    nested: bool = True
    max_depth: int | None = None
    include_leaf_only: bool = False


_trace_hook: ContextVar[TraceHook | None] = ContextVar("trace_hook", default=None)
_trace_config: ContextVar[TraceConfig] = ContextVar(
    "trace_config", default=TraceConfig()
)


@contextmanager
def use_tracing(hook: TraceHook, config: TraceConfig | None = None):
    """
    Context manager to enable tracing for all validations started in scope.

    Tasks and timers created inside the scope keep tracing after it exits,
    since they inherit the context they were created in.

    Example:
        with use_tracing(LoggingHook(logger)):
            await validator.validate_async("bob")
    """
    hook_token = _trace_hook.set(hook)
    config_token = _trace_config.set(config or TraceConfig())
    try:
        yield
    finally:
        _trace_hook.reset(hook_token)
        _trace_config.reset(config_token)


def _should_trace(config: TraceConfig, depth: int, leaf: bool) -> bool:
    if config.include_leaf_only and not leaf:
        return False
    if not config.nested and depth > 0:
        return False
    if config.max_depth is not None and depth > config.max_depth:
        return False
    return True


async def run_traced(
    name: str,
    value: Any,
    depth: int,
    call: Callable[[], Awaitable[ValidationResult]],
    leaf: bool = False,
) -> ValidationResult:
    """Run one layer, reporting to the active hook if tracing is enabled."""
    hook = _trace_hook.get()
    if hook is None or not _should_trace(_trace_config.get(), depth, leaf):
        return await call()

    span = hook.on_enter(name, value, depth)
    start = time.perf_counter()
    try:
        result = await call()
    except Exception as e:
        hook.on_error(span, name, e, (time.perf_counter() - start) * 1000, depth)
        raise
    hook.on_exit(span, name, result.success, (time.perf_counter() - start) * 1000, depth)
    return result


# =============================================================================
# Built-in Trace Hooks
# =============================================================================


def _layer_kind(name: str) -> str:
    """Classify a trace name as "operation" or "strategy"."""
    return "operation" if name.startswith("Operation(") else "strategy"


class PrintHook:
    """
    Prints the layer tree of each validation.

    Example:
        with use_tracing(PrintHook()):
            await validator.validate_async("bob")

        # Output:
        # strategy Timeout(5s)
        #   operation Operation(check_username)
        #   Operation(check_username): valid (12.31ms)
        # Timeout(5s): valid (12.40ms)
    """

    def __init__(self, indent: str = "  ", show_value: bool = False, file=None):
        self.indent = indent
        self.show_value = show_value
        self.file = file

    def _emit(self, depth: int, line: str) -> None:
        print(f"{self.indent * depth}{line}", file=self.file)

    def on_enter(self, name: str, ctx: Any, depth: int) -> None:
        line = f"{_layer_kind(name)} {name}"
        if self.show_value:
            line += f" value={ctx!r}"
        self._emit(depth, line)

    def on_exit(
        self, span: None, name: str, ok: bool, duration_ms: float, depth: int
    ) -> None:
        verdict = "valid" if ok else "invalid"
        self._emit(depth, f"{name}: {verdict} ({duration_ms:.2f}ms)")

    def on_error(
        self, span: None, name: str, error: Exception, duration_ms: float, depth: int
    ) -> None:
        self._emit(
            depth,
            f"{name}: raised {type(error).__name__}: {error} ({duration_ms:.2f}ms)",
        )


class LoggingHook:
    """
    Trace hook that logs to a Python logger.

    Entering and leaving layers is logged at `level`. A layer that produced
    a failed result is logged at `failure_level`, and a base operation that
    raised is logged at ERROR.

    Example:
        import logging
        logger = logging.getLogger("valora")

        with use_tracing(LoggingHook(logger, failure_level=logging.INFO)):
            await validator.validate_async("bob")
    """

    def __init__(
        self,
        logger: logging.Logger,
        level: int = logging.DEBUG,
        failure_level: int | None = None,
    ):
        self.logger = logger
        self.level = level
        self.failure_level = level if failure_level is None else failure_level

    def on_enter(self, name: str, ctx: Any, depth: int) -> None:
        self.logger.log(
            self.level, "enter %s %s (depth=%d)", _layer_kind(name), name, depth
        )

    def on_exit(
        self, span: None, name: str, ok: bool, duration_ms: float, depth: int
    ) -> None:
        self.logger.log(
            self.level if ok else self.failure_level,
            "exit %s %s: %s in %.2fms",
            _layer_kind(name),
            name,
            "valid" if ok else "invalid",
            duration_ms,
        )

    def on_error(
        self, span: None, name: str, error: Exception, duration_ms: float, depth: int
    ) -> None:
        self.logger.error(
            "%s %s raised %s: %s (%.2fms)",
            _layer_kind(name),
            name,
            type(error).__name__,
            error,
            duration_ms,
        )


_otel_parent: ContextVar[Any] = ContextVar("valora_otel_parent", default=None)


class OpenTelemetryHook:
    """
    OpenTelemetry trace hook.

    Each layer becomes a span; spans started inside a layer (including in
    tasks it spawns) are parented to it through a context variable, so
    concurrent validations never share a span stack.

    Requires: pip install opentelemetry-api
    """

    def __init__(self, tracer, *, max_span_depth: int | None = None):
        if not _HAS_OPENTELEMETRY:
            raise ImportError(
                "OpenTelemetry is not installed. "
                "Install it with: pip install opentelemetry-api"
            )
        self.tracer = tracer
        self.max_span_depth = max_span_depth

    def on_enter(self, name: str, ctx: Any, depth: int) -> Any:
        # Guaranteed non-None because __init__ checks _HAS_OPENTELEMETRY
        assert _set_span_in_context is not None

        if self.max_span_depth is not None and depth > self.max_span_depth:
            return None

        parent = _otel_parent.get()
        parent_ctx = _set_span_in_context(parent) if parent is not None else None
        span = self.tracer.start_span(name, context=parent_ctx)
        span.set_attribute("valora.name", name)
        span.set_attribute("valora.depth", depth)
        span.set_attribute("valora.layer", _layer_kind(name))
        return span, _otel_parent.set(span)

    def on_exit(
        self, span: Any, name: str, ok: bool, duration_ms: float, depth: int
    ) -> None:
        if span is None:
            return
        assert _Status is not None
        assert _StatusCode is not None

        otel_span, parent_token = span
        otel_span.set_attribute("valora.success", ok)
        otel_span.set_attribute("valora.duration_ms", duration_ms)
        if not ok:
            otel_span.set_status(_Status(_StatusCode.ERROR))
        otel_span.end()
        _otel_parent.reset(parent_token)

    def on_error(
        self, span: Any, name: str, error: Exception, duration_ms: float, depth: int
    ) -> None:
        if span is None:
            return
        assert _Status is not None
        assert _StatusCode is not None

        otel_span, parent_token = span
        otel_span.set_attribute("valora.success", False)
        otel_span.set_attribute("valora.duration_ms", duration_ms)
        otel_span.record_exception(error)
        otel_span.set_status(_Status(_StatusCode.ERROR, str(error)))
        otel_span.end()
        _otel_parent.reset(parent_token)
