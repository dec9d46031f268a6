"""
Task: a single-settlement deferred computation.

A Task starts PENDING and settles exactly once, either FULFILLED with a
value or REJECTED with an error. Observers attach continuations with
`then()`; continuations never run synchronously. They are queued as
microtasks on the task's Runtime in attachment order.

Settlement rules:
- First write wins. Later resolve/reject calls are no-ops.
- Resolving with another Task adopts that task's eventual settlement.
- Resolving a task with itself rejects it with TypeError.
- A task bound to a CancellationToken rejects with CancellationError
  when the token fires, and never fulfills once the token is cancelled.

Example:
    ```python
    task = create_task(lambda resolve, reject: resolve(21))
    doubled = task.then(lambda v: v * 2)
    runtime.run_until_complete(doubled)  # 42
    ```
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Generator
from typing import TYPE_CHECKING, Any, Generic, TypeVar
from uuid import UUID

from uuid_extensions import uuid7

from pysettle.core.cancellation import CancellationRegistration, CancellationToken
from pysettle.core.context import get_current_runtime
from pysettle.core.errors import (
    CancellationError,
    ExecutionError,
    InvalidStateError,
    TaskError,
    TaskTimeoutError,
)
from pysettle.core.outcome import Fulfilled, Rejected, Settlement
from pysettle.models import DEFAULT_OPTIONS, TaskOptions, TaskState

if TYPE_CHECKING:
    from pysettle.executor.runtime import Runtime

logger = logging.getLogger(__name__)

__all__ = ["Task", "create_task", "Executor"]

T = TypeVar("T")
U = TypeVar("U")

Resolve = Callable[[Any], None]
Reject = Callable[[Any], None]
Executor = Callable[[Resolve, Reject], Any]


class Task(Generic[T]):
    """
    Promise-style deferred result.

    Attributes:
        id: Time-ordered unique id (UUIDv7)
        name: Optional human-readable name

    Tasks are awaitable from coroutines driven by `spawn()`:

        ```python
        async def pipeline():
            user = await fetch_user()
            return await fetch_orders(user)
        ```
    """

    def __init__(
        self,
        *,
        runtime: Runtime | None = None,
        name: str | None = None,
        token: CancellationToken | None = None,
        on_cancel: Callable[[BaseException], None] | None = None,
    ):
        self._runtime = runtime if runtime is not None else get_current_runtime()
        self.id: UUID = uuid7()
        self.name = name

        self._settlement: Settlement[T] | None = None
        self._continuations: list[Callable[[Settlement[T]], None]] = []
        self._settled_callbacks: list[Callable[[Task[T]], None]] = []

        # Whether any observer has looked at the outcome (then/await/result).
        self._handled = False
        # Resolved with another task; waiting to adopt its settlement.
        self._locked = False

        self._token = token
        self._on_cancel = on_cancel
        self._cancel_registration: CancellationRegistration | None = None
        if token is not None:
            # Runs immediately when the token is already cancelled.
            registration = token.on_cancel(self._cancel)
            if self._settlement is None:
                self._cancel_registration = registration

    # =========================================================================
    # Constructors
    # =========================================================================

    @classmethod
    def resolved(cls, value: T, *, runtime: Runtime | None = None) -> Task[T]:
        """A task already settled with `value` (or adopting it, if it is a Task)."""
        task: Task[T] = cls(runtime=runtime)
        task._resolve(value)
        return task

    @classmethod
    def rejected(cls, error: Any, *, runtime: Runtime | None = None) -> Task[Any]:
        """A task already rejected with `error`."""
        task: Task[Any] = cls(runtime=runtime)
        task._reject(error)
        return task

    # =========================================================================
    # Inspection
    # =========================================================================

    @property
    def runtime(self) -> Runtime:
        return self._runtime

    @property
    def token(self) -> CancellationToken | None:
        return self._token

    @property
    def state(self) -> TaskState:
        if self._settlement is None:
            return TaskState.PENDING
        if isinstance(self._settlement, Fulfilled):
            return TaskState.FULFILLED
        return TaskState.REJECTED

    @property
    def settlement(self) -> Settlement[T] | None:
        """The terminal record, or None while pending. Does not mark the task handled."""
        return self._settlement

    def done(self) -> bool:
        return self._settlement is not None

    def result(self) -> T:
        """
        Value of a fulfilled task.

        Raises:
            InvalidStateError: If the task is still pending
            BaseException: The rejection error, if the task was rejected
        """
        self._mark_handled()
        settlement = self._settlement
        if settlement is None:
            raise InvalidStateError(f"{self!r} has not settled")
        if isinstance(settlement, Rejected):
            raise settlement.error
        return settlement.value

    def exception(self) -> BaseException | None:
        """Rejection error of a settled task, or None if it fulfilled."""
        self._mark_handled()
        settlement = self._settlement
        if settlement is None:
            raise InvalidStateError(f"{self!r} has not settled")
        if isinstance(settlement, Rejected):
            return settlement.error
        return None

    # =========================================================================
    # Chaining
    # =========================================================================

    def then(
        self,
        on_fulfilled: Callable[[T], Any] | None = None,
        on_rejected: Callable[[BaseException], Any] | None = None,
    ) -> Task[Any]:
        """
        Attach a continuation and return a task for its result.

        The returned task:
        - settles like this task when the matching handler is missing
        - resolves with the handler's return value (adopting it if it is a Task)
        - rejects with whatever the handler raises

        The returned task is not bound to this task's cancellation token.
        A cancellation reaches it as this task's rejection, so `on_rejected`
        can recover from it like from any other error.
        """
        derived = self._derive()

        def continuation(settlement: Settlement[T]) -> None:
            if isinstance(settlement, Fulfilled):
                handler, argument = on_fulfilled, settlement.value
            else:
                handler, argument = on_rejected, settlement.error

            if handler is None:
                derived._adopt(settlement)
                return
            try:
                outcome = handler(argument)
            except Exception as e:
                derived._reject(e)
            else:
                derived._resolve(outcome)

        self._subscribe(continuation)
        return derived

    def catch(self, on_rejected: Callable[[BaseException], Any]) -> Task[Any]:
        """Shorthand for `then(None, on_rejected)`."""
        return self.then(None, on_rejected)

    def finally_(self, callback: Callable[[], Any]) -> Task[T]:
        """
        Run `callback()` once this task settles, keeping its settlement.

        If the callback raises, or returns a task that rejects, the returned
        task rejects with that error instead.
        """
        derived = self._derive()

        def continuation(settlement: Settlement[T]) -> None:
            try:
                outcome = callback()
            except Exception as e:
                derived._reject(e)
                return
            if isinstance(outcome, Task):

                def after_cleanup(cleanup: Settlement[Any]) -> None:
                    derived._adopt(cleanup if isinstance(cleanup, Rejected) else settlement)

                outcome._subscribe(after_cleanup)
            else:
                derived._adopt(settlement)

        self._subscribe(continuation)
        return derived

    def __await__(self) -> Generator[Task[T], None, T]:
        if self._settlement is None:
            yield self
        return self.result()

    # =========================================================================
    # Settlement (internal; exposed to executors as resolve/reject)
    # =========================================================================

    def _derive(self) -> Task[Any]:
        return Task(runtime=self._runtime)

    def _resolve(self, value: Any) -> None:
        if self._settlement is not None or self._locked:
            return
        if value is self:
            self._reject(TypeError(f"{self!r} cannot be resolved with itself"))
            return
        if isinstance(value, Task):
            self._locked = True
            value._subscribe(self._adopt)
            return
        self._fulfill(value)

    def _reject(self, error: Any) -> None:
        if self._settlement is not None or self._locked:
            return
        self._settle(Rejected(self._as_error(error), origin=self.id))

    def _fulfill(self, value: Any) -> None:
        if self._token is not None and self._token.is_cancelled():
            self._abort(CancellationError(self._token.reason, task_id=self.id))
            return
        self._settle(Fulfilled(value))

    def _adopt(self, settlement: Settlement[Any]) -> None:
        """Settle like `settlement`; rejections keep their origin."""
        if self._settlement is not None:
            return
        if isinstance(settlement, Fulfilled):
            self._fulfill(settlement.value)
        else:
            self._settle(settlement)

    def _cancel(self, reason: str | None) -> None:
        if self._settlement is None:
            self._abort(CancellationError(reason, task_id=self.id))

    def _time_out(self, timeout: float) -> None:
        if self._settlement is None:
            label = self.name or str(self.id)
            self._abort(
                TaskTimeoutError(
                    f"task {label} timed out after {timeout}s", timeout=timeout, task_id=self.id
                )
            )

    def _abort(self, error: TaskError) -> None:
        self._settle(Rejected(error, origin=self.id))
        if self._on_cancel is not None:
            try:
                self._on_cancel(error)
            except Exception:
                logger.exception(f"on_cancel handler of {self!r} raised")

    def _start_deadline(self, timeout: float) -> None:
        handle = self._runtime.call_later(timeout, self._time_out, timeout)
        self._on_settled(lambda _task: handle.cancel())

    def _as_error(self, error: Any) -> BaseException:
        if isinstance(error, BaseException):
            if isinstance(error, TaskError) and error.task_id is None:
                error.task_id = self.id
            return error
        return ExecutionError(
            f"task rejected with non-exception value {error!r}", reason=error, task_id=self.id
        )

    def _settle(self, settlement: Settlement[T]) -> None:
        self._settlement = settlement

        if self._cancel_registration is not None:
            self._cancel_registration.dispose()
            self._cancel_registration = None

        continuations, self._continuations = self._continuations, []
        for continuation in continuations:
            self._runtime.call_soon(continuation, settlement)

        callbacks, self._settled_callbacks = self._settled_callbacks, []
        for callback in callbacks:
            try:
                callback(self)
            except Exception:
                logger.exception(f"settle callback of {self!r} raised")

        if isinstance(settlement, Rejected) and not self._handled:
            self._runtime.rejections.track(self)

    # =========================================================================
    # Observation
    # =========================================================================

    def _subscribe(self, continuation: Callable[[Settlement[T]], None]) -> None:
        """Queue `continuation(settlement)` as a microtask once settled. Marks the task handled."""
        self._mark_handled()
        if self._settlement is None:
            self._continuations.append(continuation)
        else:
            self._runtime.call_soon(continuation, self._settlement)

    def _on_settled(self, callback: Callable[[Task[T]], None]) -> None:
        """Run `callback(task)` synchronously at settlement. Does not mark the task handled."""
        if self._settlement is not None:
            callback(self)
        else:
            self._settled_callbacks.append(callback)

    def _mark_handled(self) -> None:
        if self._handled:
            return
        self._handled = True
        if isinstance(self._settlement, Rejected):
            self._runtime.rejections.handled(self)

    def __repr__(self) -> str:
        label = self.name or str(self.id)
        settlement = self._settlement
        if settlement is None:
            return f"<Task {label} PENDING>"
        return f"<Task {label} {self.state} {settlement}>"


def create_task(
    executor: Executor,
    options: TaskOptions | None = None,
    *,
    runtime: Runtime | None = None,
) -> Task[Any]:
    """
    Create a task and run `executor(resolve, reject)` synchronously.

    An exception raised by the executor rejects the task unless it already
    settled. If the token in `options` is already cancelled, the executor
    is not run and the task is rejected with CancellationError.

    Args:
        executor: Callable receiving the resolve and reject functions
        options: Deadline, cancellation token, cancel hook and name
        runtime: Runtime to bind to (defaults to the current runtime)

    Example:
        ```python
        def executor(resolve, reject):
            runtime.call_later(0.01, resolve, "pong")

        task = create_task(executor, TaskOptions(timeout_ms=100))
        ```
    """
    options = options or DEFAULT_OPTIONS
    task: Task[Any] = Task(
        runtime=runtime, name=options.name, token=options.token, on_cancel=options.on_cancel
    )
    if task.done():
        return task

    if options.timeout_ms is not None:
        task._start_deadline(options.timeout_ms / 1000)

    try:
        executor(task._resolve, task._reject)
    except Exception as e:
        task._reject(e)
    return task
