"""Consuming async sequences: the for-await loop as a Task."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from pysettle.core.cancellation import CancellationToken
from pysettle.core.task import Task
from pysettle.executor.runtime import Runtime
from pysettle.executor.sequencer import ensure_task, spawn
from pysettle.iteration.cursor import AsyncCursor, AsyncSource
from pysettle.iteration.sources import AsyncGeneratorSource, IterableSource
from pysettle.models import TaskOptions

logger = logging.getLogger(__name__)

__all__ = ["for_each", "collect", "cursor_of"]


def cursor_of(source: Any, *, runtime: Runtime | None = None) -> AsyncCursor[Any]:
    """
    Get a cursor for anything iterable.

    Accepts an AsyncCursor (returned as is), an AsyncSource, a Python
    async iterable, or a sync iterable.

    Raises:
        TypeError: If `source` is none of these
    """
    if isinstance(source, AsyncCursor):
        return source
    if isinstance(source, AsyncSource):
        return source.async_iterator()
    if hasattr(source, "__aiter__"):
        return AsyncGeneratorSource(source.__aiter__, runtime=runtime).async_iterator()
    if hasattr(source, "__iter__"):
        return IterableSource(source, runtime=runtime).async_iterator()
    raise TypeError(f"{type(source).__name__} is not iterable")


def for_each(
    source: Any,
    fn: Callable[[Any], Any],
    *,
    token: CancellationToken | None = None,
    runtime: Runtime | None = None,
) -> Task[int]:
    """
    Call `fn(value)` for every value of `source`, one at a time.

    Each value is requested only after the previous call finished; when
    `fn` returns a Task or awaitable, it is awaited first. The loop stops
    at the end of the sequence and never asks the cursor for more.

    Returns:
        A task that fulfils with the number of values processed. It rejects
        with the cursor's error, with whatever `fn` raised, or with
        CancellationError once `token` fires. When the loop stops before the
        end of the sequence the cursor is closed so the producer can clean up.

    Example:
        ```python
        task = for_each(IterableSource([1, 2, 3]), print)   # prints 1 2 3
        ```
    """
    cursor = cursor_of(source, runtime=runtime)
    runtime = runtime if runtime is not None else cursor.runtime

    async def loop() -> int:
        count = 0
        exhausted = False
        try:
            while True:
                if token is not None:
                    token.raise_if_cancelled()
                step = await cursor.next()
                if step.done:
                    exhausted = True
                    return count
                outcome = fn(step.value)
                if isinstance(outcome, Task) or hasattr(outcome, "__await__"):
                    await ensure_task(outcome, runtime=runtime)
                count += 1
        finally:
            if not exhausted:
                logger.debug(f"Loop over {cursor!r} stopped after {count} value(s); closing")
                cursor.close()

    return spawn(loop(), TaskOptions(token=token, name="for_each"), runtime=runtime)


def collect(
    source: Any,
    *,
    token: CancellationToken | None = None,
    runtime: Runtime | None = None,
) -> Task[list[Any]]:
    """Gather every value of `source` into a list."""
    items: list[Any] = []
    return for_each(source, items.append, token=token, runtime=runtime).then(lambda _count: items)
