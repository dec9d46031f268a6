"""
Timer tasks: delays, sleeps and deadlines.

Timers are macrotasks on the runtime's clock. A timer task settles from
the macrotask and its continuations run in the microtask drain that
follows, so every microtask queued before the timer fired has already
run.

`with_timeout()` races a task against a timer task. Whichever settles
first wins. The losing timer is cancelled; the losing task keeps running
(cancellation is advisory) unless a token to cancel was supplied.
"""

from __future__ import annotations

import logging
from typing import Any, TypeVar

from pysettle.core.cancellation import CancellationToken
from pysettle.core.context import get_current_runtime
from pysettle.core.errors import TaskTimeoutError
from pysettle.core.task import Task
from pysettle.executor.runtime import Runtime, TimerHandle

logger = logging.getLogger(__name__)

__all__ = ["delay", "sleep", "with_timeout"]

T = TypeVar("T")


def delay(
    seconds: float,
    value: T = None,  # type: ignore[assignment]
    *,
    token: CancellationToken | None = None,
    runtime: Runtime | None = None,
) -> Task[T]:
    """
    A task that fulfills with `value` after `seconds`.

    If `token` fires first, the timer is cancelled and the task rejects
    with CancellationError.

    Example:
        ```python
        greeting = delay(0.5, "hello")
        ```
    """
    runtime = runtime if runtime is not None else get_current_runtime()
    task: Task[T] = Task(runtime=runtime, token=token, name=f"delay({seconds})")
    if task.done():
        return task

    handle = runtime.call_later(seconds, task._resolve, value)
    task._on_settled(lambda _task: handle.cancel())
    return task


def sleep(
    seconds: float,
    *,
    token: CancellationToken | None = None,
    runtime: Runtime | None = None,
) -> Task[None]:
    """A task that fulfills with None after `seconds`. Await it from a coroutine."""
    return delay(seconds, None, token=token, runtime=runtime)


def with_timeout(
    task: Task[T],
    seconds: float,
    *,
    cancel: CancellationToken | None = None,
) -> Task[T]:
    """
    Race `task` against a timer.

    Args:
        task: The task to bound
        seconds: Deadline relative to now
        cancel: Token to cancel when the deadline wins, so the work behind
            `task` can release its resources

    Returns:
        A task that settles like `task`, or rejects with TaskTimeoutError
        if the deadline passes first.
    """
    from pysettle.executor.combinators import race

    runtime = task.runtime
    timer_task: Task[Any] = Task(runtime=runtime, name=f"timeout({seconds})")
    label = task.name or str(task.id)

    def expire() -> None:
        logger.debug(f"Task {label} exceeded its {seconds}s deadline")
        timer_task._reject(
            TaskTimeoutError(
                f"task {label} timed out after {seconds}s", timeout=seconds, task_id=task.id
            )
        )
        if cancel is not None:
            cancel.cancel(f"timed out after {seconds}s")

    handle: TimerHandle = runtime.call_later(seconds, expire)
    task._on_settled(lambda _task: handle.cancel())
    return race([task, timer_task])
