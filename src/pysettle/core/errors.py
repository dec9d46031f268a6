"""
Error taxonomy for task rejections.

Every rejection falls into one of four kinds:

- EXECUTION: user code raised (or rejected with a plain value)
- CANCELLATION: a CancellationToken fired
- TIMEOUT: a task lost its race against a timer
- AGGREGATE: several tasks of a fan-out failed

Exceptions raised by user code are not wrapped. A handler that raises
ValueError rejects its task with that same ValueError, so `except
ValueError` keeps working across await boundaries. `classify()` maps any
exception to its kind.

Errors created by the runtime are TaskError subclasses. They record the
id of the task they belong to, and `raise ... from` keeps the cause chain.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum
from typing import Any
from uuid import UUID

__all__ = [
    "ErrorKind",
    "TaskError",
    "ExecutionError",
    "CancellationError",
    "TaskTimeoutError",
    "AggregateError",
    "InvalidStateError",
    "RuntimeClosedError",
    "DeadlockError",
    "classify",
]


class ErrorKind(Enum):
    """Kind of a rejection."""

    EXECUTION = "execution"
    CANCELLATION = "cancellation"
    TIMEOUT = "timeout"
    AGGREGATE = "aggregate"

    def __str__(self) -> str:
        return self.value


class TaskError(Exception):
    """
    Base class for errors produced by the runtime.

    Attributes:
        task_id: Id of the task the error was raised for, if known
        kind: ErrorKind of this error class
    """

    kind: ErrorKind = ErrorKind.EXECUTION

    def __init__(
        self, message: str = "", *, task_id: UUID | None = None, cause: BaseException | None = None
    ):
        super().__init__(message)
        self.task_id = task_id
        if cause is not None:
            self.__cause__ = cause


class ExecutionError(TaskError):
    """
    A task was rejected with something that is not an exception.

    `reject("boom")` rejects with ExecutionError whose `reason` is "boom".
    """

    kind = ErrorKind.EXECUTION

    def __init__(
        self,
        message: str = "",
        *,
        reason: Any = None,
        task_id: UUID | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message, task_id=task_id, cause=cause)
        self.reason = reason


class CancellationError(TaskError):
    """A CancellationToken fired before the task settled."""

    kind = ErrorKind.CANCELLATION

    def __init__(
        self,
        reason: str | None = None,
        *,
        task_id: UUID | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(reason or "operation cancelled", task_id=task_id, cause=cause)
        self.reason = reason


class TaskTimeoutError(TaskError):
    """A task did not settle before its deadline."""

    kind = ErrorKind.TIMEOUT

    def __init__(
        self,
        message: str = "",
        *,
        timeout: float | None = None,
        task_id: UUID | None = None,
        cause: BaseException | None = None,
    ):
        if not message:
            message = f"task timed out after {timeout}s" if timeout is not None else "task timed out"
        super().__init__(message, task_id=task_id, cause=cause)
        self.timeout = timeout


class AggregateError(TaskError):
    """
    Several tasks of a fan-out failed.

    Collects every failure in input order instead of surfacing only the
    first one.

    Example:
        ```python
        try:
            await any_of([fetch_a(), fetch_b()])
        except AggregateError as e:
            for error in e.errors:
                log(error)
        ```
    """

    kind = ErrorKind.AGGREGATE

    def __init__(
        self,
        errors: Iterable[BaseException],
        message: str = "",
        *,
        task_id: UUID | None = None,
    ):
        errors = list(errors)
        super().__init__(message or f"{len(errors)} task(s) failed", task_id=task_id)
        self.errors = errors

    def __repr__(self) -> str:
        return f"AggregateError({self.errors!r})"


class InvalidStateError(RuntimeError):
    """Operation is not valid for the task's current state (e.g. result() while pending)."""


class RuntimeClosedError(RuntimeError):
    """Work was scheduled on a runtime that has been closed."""


class DeadlockError(RuntimeError):
    """The runtime ran out of work while a task was still pending."""


def classify(error: BaseException) -> ErrorKind:
    """
    Map an exception to its ErrorKind.

    Runtime errors report their own kind; anything raised by user code is
    an EXECUTION error.
    """
    if isinstance(error, TaskError):
        return error.kind
    return ErrorKind.EXECUTION
