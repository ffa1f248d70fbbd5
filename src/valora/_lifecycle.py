"""Pending/idle lifecycle shared by every call on a validator."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any

from valora._cancellation import CancellationToken
from valora._results import ValidationContext, ValidationResult, cancelled_failure
from valora._tasks import result_of, spawn
from valora._types import ExecutionFunction


class LifecycleState(Enum):
    IDLE = "idle"
    PENDING = "pending"
    SETTLING = "settling"


@dataclass
class PendingState:
    """
    Mutable per-validator record.

    Attributes:
        pending: True while the most recent operation has not been delivered
        cancel_requested: True once cancel() hit the current operation
        current_operation_id: Id of the most recent operation (0 = none yet)
    """

    pending: bool = False
    cancel_requested: bool = False
    current_operation_id: int = 0


@dataclass
class _OperationRecord:
    id: int
    token: CancellationToken
    context: ValidationContext
    result: asyncio.Future


class LifecycleController:
    """
    Runs composed execution functions and tracks the most recent one.

    Every call gets a fresh operation id and cancellation token. Only the
    most recent operation drives the pending state; older operations that
    settle later deliver their own result and leave the state alone.

    Each caller's future is resolved exactly once. cancel() resolves the
    current caller immediately with a cancellation failure; whatever the
    execution function later returns for that operation is discarded.
    """

    def __init__(self):
        self.state = PendingState()
        self.phase = LifecycleState.IDLE
        self._current: _OperationRecord | None = None

    def _begin(self, context: ValidationContext) -> _OperationRecord:
        self.state.current_operation_id += 1
        self.state.pending = True
        self.state.cancel_requested = False
        self.phase = LifecycleState.PENDING
        record = _OperationRecord(
            id=self.state.current_operation_id,
            token=CancellationToken(self.state.current_operation_id),
            context=context,
            result=asyncio.get_running_loop().create_future(),
        )
        self._current = record
        return record

    async def run(
        self, execute: ExecutionFunction, value: Any, context: ValidationContext
    ) -> ValidationResult:
        record = self._begin(context)
        task = spawn(execute(value, context, record.token))
        task.add_done_callback(lambda t: self._settle(record, t))
        return await asyncio.shield(record.result)

    def _settle(self, record: _OperationRecord, task: asyncio.Future) -> None:
        if record is self._current:
            self.phase = LifecycleState.SETTLING
        if record.token.cancelled:
            result = cancelled_failure(record.context)
        else:
            result = result_of(task, record.context)
        self._deliver(record, result)

    def _deliver(self, record: _OperationRecord, result: ValidationResult) -> None:
        if not record.result.done():
            record.result.set_result(result)
        if record is self._current:
            self._current = None
            self.state.pending = False
            self.phase = LifecycleState.IDLE

    def cancel(self) -> None:
        record = self._current
        if record is None:
            return
        self.state.cancel_requested = True
        record.token.cancel()
        self._deliver(record, cancelled_failure(record.context))

    def is_pending(self) -> bool:
        return self.phase is not LifecycleState.IDLE

    async def wait_for_completion(self) -> None:
        record = self._current
        if record is None:
            return
        await asyncio.wait([record.result])
