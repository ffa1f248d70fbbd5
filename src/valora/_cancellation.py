"""Cooperative cancellation token."""

from __future__ import annotations

from collections.abc import Callable


class CancellationToken:
    """
    Per-operation cancellation flag observed by cancellation-aware strategies.

    A token only moves from "active" to "cancelled", never back. Callbacks
    registered with add_callback() run once, synchronously, when cancel() is
    first called; registering on an already cancelled token runs the
    callback immediately.

    Example:
        token = CancellationToken()
        token.add_callback(lambda: print("stopped"))
        token.cancel()  # prints "stopped"
        token.cancelled  # True
    """

    __slots__ = ("_cancelled", "_callbacks", "operation_id")

    def __init__(self, operation_id: int = 0):
        self.operation_id = operation_id
        self._cancelled = False
        self._callbacks: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    def add_callback(self, callback: Callable[[], None]) -> None:
        if self._cancelled:
            callback()
        else:
            self._callbacks.append(callback)

    def remove_callback(self, callback: Callable[[], None]) -> None:
        try:
            self._callbacks.remove(callback)
        except ValueError:
            pass

    def __repr__(self) -> str:
        state = "cancelled" if self._cancelled else "active"
        return f"CancellationToken(op={self.operation_id}, {state})"
