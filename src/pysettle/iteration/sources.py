"""
Concrete AsyncSources.

- IterableSource: a sync iterable or Python generator; items may be Tasks
- UnfoldSource: an explicit state machine, `step(state) -> (value, state)`
- AsyncGeneratorSource: an `async def` generator whose awaits are Tasks

Design: Explicit State Machine
    UnfoldSource keeps its captured locals in `state` and its program
    counter in the step function. It needs no generator support at all,
    which makes it the reference shape for hand-written producers.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator
from typing import Any, Final, TypeVar

from pysettle.core.task import Task
from pysettle.executor.runtime import Runtime
from pysettle.executor.sequencer import spawn
from pysettle.iteration.cursor import (
    _DONE,
    AsyncCursor,
    AsyncSource,
    IterResult,
    done_step,
    fulfilled_step,
)
from pysettle.models import TaskOptions

logger = logging.getLogger(__name__)

__all__ = ["IterableSource", "UnfoldSource", "UNFOLD_DONE", "AsyncGeneratorSource"]

T = TypeVar("T")
S = TypeVar("S")


# =============================================================================
# IterableSource
# =============================================================================


class IterableSource(AsyncSource[T]):
    """
    Serve a sync iterable one item per `next()`.

    Items that are Tasks are awaited before they are delivered, so a
    generator can yield work in flight:

        ```python
        def pages():
            for n in range(1, 4):
                yield fetch_page(n)        # Task

        collect(IterableSource(pages()))
        ```

    Closing the cursor early calls the generator's `close()`, which runs
    its `finally` blocks.
    """

    def __init__(self, iterable: Iterable[T | Task[T]], *, runtime: Runtime | None = None):
        self._iterable = iterable
        self._runtime = runtime

    def async_iterator(self) -> AsyncCursor[T]:
        return _IterableCursor(iter(self._iterable), self._runtime)


class _IterableCursor(AsyncCursor[T]):
    def __init__(self, iterator: Iterator[T | Task[T]], runtime: Runtime | None):
        super().__init__(runtime)
        self._iterator = iterator

    def _produce(self) -> Task[IterResult[T]]:
        try:
            item = next(self._iterator)
        except StopIteration:
            return done_step(runtime=self.runtime)
        if isinstance(item, Task):
            return item.then(lambda value: IterResult(value, False))
        return fulfilled_step(item, runtime=self.runtime)

    def _release(self) -> None:
        close = getattr(self._iterator, "close", None)
        if callable(close):
            close()


# =============================================================================
# UnfoldSource
# =============================================================================


class _UnfoldDone:
    def __repr__(self) -> str:
        return "UNFOLD_DONE"


UNFOLD_DONE: Final = _UnfoldDone()


class UnfoldSource(AsyncSource[T]):
    """
    Produce values by repeatedly stepping a state.

    `step(state)` returns `(value, next_state)` to emit `value`, or
    UNFOLD_DONE to finish. It may also return a Task of either.
    Every cursor starts again from `seed`.

    Example:
        ```python
        def countdown(n):
            return UNFOLD_DONE if n == 0 else (n, n - 1)

        collect(UnfoldSource(3, countdown))  # -> [3, 2, 1]
        ```
    """

    def __init__(
        self,
        seed: S,
        step: Callable[[S], tuple[T, S] | _UnfoldDone | Task[Any]],
        *,
        runtime: Runtime | None = None,
    ):
        self._seed = seed
        self._step = step
        self._runtime = runtime

    def async_iterator(self) -> AsyncCursor[T]:
        return _UnfoldCursor(self._seed, self._step, self._runtime)


class _UnfoldCursor(AsyncCursor[T]):
    def __init__(self, seed: Any, step: Callable[[Any], Any], runtime: Runtime | None):
        super().__init__(runtime)
        self._current = seed
        self._step = step

    def _produce(self) -> Task[IterResult[T]]:
        outcome = self._step(self._current)
        if isinstance(outcome, Task):
            return outcome.then(self._advance)
        return Task.resolved(self._advance(outcome), runtime=self.runtime)

    def _advance(self, outcome: Any) -> IterResult[T]:
        if outcome is UNFOLD_DONE:
            return _DONE
        value, self._current = outcome
        return IterResult(value, False)


# =============================================================================
# AsyncGeneratorSource
# =============================================================================


class AsyncGeneratorSource(AsyncSource[T]):
    """
    Serve an `async def` generator through the Sequencer.

    `factory(*args)` is called once per cursor, so each cursor starts a
    fresh generator. Each `next()` drives one `__anext__()` step; awaits
    inside the generator must be Tasks. Closing the cursor early drives
    `aclose()`, which runs the generator's `finally` blocks.

    Example:
        ```python
        async def ticks(n):
            for i in range(n):
                await sleep(0.01)
                yield i

        collect(AsyncGeneratorSource(ticks, 3))  # -> [0, 1, 2]
        ```
    """

    def __init__(self, factory: Callable[..., Any], *args: Any, runtime: Runtime | None = None):
        self._factory = factory
        self._args = args
        self._runtime = runtime

    def async_iterator(self) -> AsyncCursor[T]:
        return _AsyncGeneratorCursor(self._factory(*self._args), self._runtime)


class _AsyncGeneratorCursor(AsyncCursor[T]):
    def __init__(self, agen: Any, runtime: Runtime | None):
        super().__init__(runtime)
        self._agen = agen
        self._label = getattr(agen, "__qualname__", type(agen).__name__)

    def _produce(self) -> Task[IterResult[T]]:
        step = spawn(
            self._agen.__anext__(),
            TaskOptions(name=f"{self._label}.__anext__"),
            runtime=self.runtime,
        )
        return step.then(_yielded, _exhausted)

    def _release(self) -> Task[Any] | None:
        aclose = getattr(self._agen, "aclose", None)
        if not callable(aclose):
            return None
        return spawn(aclose(), TaskOptions(name=f"{self._label}.aclose"), runtime=self.runtime)


def _yielded(value: Any) -> IterResult[Any]:
    return IterResult(value, False)


def _exhausted(error: BaseException) -> IterResult[Any]:
    if isinstance(error, StopAsyncIteration):
        return _DONE
    raise error
