"""
Sequencer: straight-line async code over Tasks.

`spawn()` turns a coroutine into a Task. The coroutine runs synchronously
up to its first `await`; from then on every `await task` suspends it and
the Sequencer resumes it in a microtask once the awaited task settles.

    ```python
    async def checkout(cart_id):
        cart = await load_cart(cart_id)          # suspends here
        try:
            receipt = await charge(cart)         # and here
        except PaymentDeclined:
            return await notify_declined(cart)
        return receipt

    task = spawn(checkout(42))
    ```

Errors take the nearest `try/except` around the await that raised them.
If nothing catches them, the spawned Task rejects with the same error:
one hop up, to whoever awaits or chains that Task.

Design: Explicit State Machine
    The driver is a plain object with a SequencerState and a resume
    generation counter, not a nested chain of callbacks. Each resume is a
    single `send()`/`throw()` on the coroutine, so the coroutine body reads
    in source order while execution stays cooperative.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Awaitable, Callable, Coroutine, Generator
from typing import Any, ParamSpec, TypeVar

from pysettle.core.errors import CancellationError
from pysettle.core.outcome import Rejected, Settlement
from pysettle.core.task import Task
from pysettle.executor.runtime import Runtime
from pysettle.models import DEFAULT_OPTIONS, SequencerState, TaskOptions

logger = logging.getLogger(__name__)

__all__ = ["Sequencer", "spawn", "sequenced", "ensure_task"]

T = TypeVar("T")
P = ParamSpec("P")


class Sequencer:
    """
    Drives one awaitable to completion on a Runtime.

    A coroutine may await:
    - a Task: resumed once the task settles
    - a bare `yield` (e.g. `types.coroutine` helpers yielding None):
      resumed on the next microtask, a cooperative yield
    Anything else is answered with TypeError thrown in at the await point.

    When the driven task is aborted early (its token fires or its deadline
    passes) while the coroutine is suspended, the abort error is thrown in
    at the await point so `finally` blocks run promptly.
    """

    def __init__(self, awaitable: Awaitable[T], task: Task[T]):
        self._iterator: Generator[Any, None, T] = awaitable.__await__()  # type: ignore[assignment]
        self._task = task
        self._runtime: Runtime = task.runtime
        self._state = SequencerState.CREATED
        # Bumped on every suspension; stale wakeups carry an old value.
        self._generation = 0
        task._on_settled(self._on_task_settled)

    @property
    def state(self) -> SequencerState:
        return self._state

    def start(self) -> None:
        self._step(None, None)

    def _step(self, value: Any, error: BaseException | None) -> None:
        if self._state is SequencerState.COMPLETED:
            return
        self._state = SequencerState.RUNNING
        try:
            if error is not None:
                yielded = self._iterator.throw(error)
            else:
                yielded = self._iterator.send(value)
        except StopIteration as exc:
            self._state = SequencerState.COMPLETED
            self._task._resolve(exc.value)
            return
        except Exception as exc:
            self._state = SequencerState.COMPLETED
            self._task._reject(exc)
            return

        self._state = SequencerState.SUSPENDED
        self._generation += 1
        generation = self._generation

        settlement = self._task.settlement
        if isinstance(settlement, Rejected):
            # Aborted while running (e.g. the coroutine cancelled its own token).
            self._runtime.call_soon(self._resume, generation, None, settlement.error)
        elif isinstance(yielded, Task):
            yielded._subscribe(functools.partial(self._wakeup, generation))
        elif yielded is None:
            self._runtime.call_soon(self._resume, generation, None, None)
        else:
            self._runtime.call_soon(
                self._resume,
                generation,
                None,
                TypeError(f"cannot await {type(yielded).__name__} from a pysettle task"),
            )

    def _wakeup(self, generation: int, settlement: Settlement[Any]) -> None:
        token = self._task.token
        if token is not None and token.is_cancelled():
            self._resume(
                generation, None, CancellationError(token.reason, task_id=self._task.id)
            )
            return
        # Task.__await__ reads the settlement itself; no value needs to be sent.
        self._resume(generation, None, None)

    def _resume(self, generation: int, value: Any, error: BaseException | None) -> None:
        if generation != self._generation or self._state is not SequencerState.SUSPENDED:
            return
        self._step(value, error)

    def _on_task_settled(self, task: Task[T]) -> None:
        settlement = task.settlement
        if self._state is not SequencerState.SUSPENDED or not isinstance(settlement, Rejected):
            return
        self._generation += 1
        self._runtime.call_soon(self._resume, self._generation, None, settlement.error)

    def __repr__(self) -> str:
        return f"<Sequencer {self._task!r} state={self._state}>"


def spawn(
    awaitable: Awaitable[T],
    options: TaskOptions | None = None,
    *,
    runtime: Runtime | None = None,
) -> Task[T]:
    """
    Run `awaitable` (usually a coroutine) as a Task.

    The first step runs synchronously before `spawn()` returns.

    Args:
        awaitable: Coroutine or any object with `__await__`
        options: Deadline, cancellation token, cancel hook and name
        runtime: Runtime to bind to (defaults to the current runtime)

    Raises:
        TypeError: If `awaitable` is not awaitable

    Example:
        ```python
        token = CancellationToken()
        task = spawn(poll_forever(), TaskOptions(token=token, timeout_ms=5000))
        ```
    """
    if isinstance(awaitable, Task):
        return awaitable
    if not hasattr(awaitable, "__await__"):
        raise TypeError(f"spawn() expects an awaitable, got {type(awaitable).__name__}")

    options = options or DEFAULT_OPTIONS
    task: Task[T] = Task(
        runtime=runtime,
        name=options.name or getattr(awaitable, "__qualname__", None),
        token=options.token,
        on_cancel=options.on_cancel,
    )
    if task.done():
        # Cancelled before it started; the body never runs.
        close = getattr(awaitable, "close", None)
        if callable(close):
            close()
        return task

    if options.timeout_ms is not None:
        task._start_deadline(options.timeout_ms / 1000)

    Sequencer(awaitable, task).start()
    return task


def sequenced(
    func: Callable[P, Coroutine[Any, Any, T]] | None = None,
    *,
    options: TaskOptions | None = None,
) -> Any:
    """
    Make an `async def` return a Task when called.

    Example:
        ```python
        @sequenced
        async def fetch_profile(user_id):
            user = await fetch_user(user_id)
            return await fetch_avatar(user)

        task = fetch_profile(7)           # Task, already running
        task.then(print)

        @sequenced(options=TaskOptions(timeout_ms=200))
        async def bounded():
            ...
        ```
    """

    def decorator(fn: Callable[P, Coroutine[Any, Any, T]]) -> Callable[P, Task[T]]:
        @functools.wraps(fn)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> Task[T]:
            return spawn(fn(*args, **kwargs), options)

        return wrapper

    if func is not None:
        return decorator(func)
    return decorator


def ensure_task(obj: Any, *, runtime: Runtime | None = None) -> Task[Any]:
    """
    Coerce `obj` to a Task.

    Tasks pass through, awaitables are spawned, and plain values become
    already fulfilled tasks.
    """
    if isinstance(obj, Task):
        return obj
    if hasattr(obj, "__await__"):
        return spawn(obj, runtime=runtime)
    return Task.resolved(obj, runtime=runtime)
