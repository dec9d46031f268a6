"""
Async iteration protocol.

An AsyncSource hands out AsyncCursors. A cursor produces IterResults one
at a time through `next()`, which returns a Task:

    ```python
    cursor = source.async_iterator()
    first = await cursor.next()      # IterResult(value=..., done=False)
    ...
    await cursor.close()             # optional early termination
    ```

Cursors serialize requests: `next()` may be called again before the
previous result arrived, but the producer only ever sees one request at a
time. Results are delivered in request order.

After the cursor completes (done, failure, or close), further `next()`
calls fulfil with `IterResult(None, True)` without touching the producer.

Cursors are also Python async iterators, so a coroutine driven by
`spawn()` can write `async for value in cursor`.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pysettle.core.context import get_current_runtime
from pysettle.core.errors import InvalidStateError
from pysettle.core.outcome import Rejected, Settlement
from pysettle.core.task import Task
from pysettle.executor.runtime import Runtime
from pysettle.models import CursorState

logger = logging.getLogger(__name__)

__all__ = ["IterResult", "AsyncSource", "AsyncCursor", "fulfilled_step", "done_step"]

T = TypeVar("T")


@dataclass(frozen=True)
class IterResult(Generic[T]):
    """One step of an iteration: a value, or the end of the sequence."""

    value: T | None = None
    done: bool = False


_DONE: IterResult[Any] = IterResult(None, True)


class AsyncSource(ABC, Generic[T]):
    """
    A producer of a lazy, possibly infinite, asynchronously delivered sequence.

    Each call to `async_iterator()` returns a new cursor. Whether a new
    cursor starts over depends on the source; sources wrapping one-shot
    iterators continue where the previous cursor stopped.
    """

    @abstractmethod
    def async_iterator(self) -> AsyncCursor[T]:
        """Return a new cursor over the sequence."""

    def __aiter__(self) -> AsyncCursor[T]:
        return self.async_iterator()


class AsyncCursor(ABC, Generic[T]):
    """
    Base cursor with request serialization and completion handling.

    Subclasses implement:
        _produce(): return a Task of the next IterResult
        _release(): best-effort cleanup on early close; may return a Task
    """

    def __init__(self, runtime: Runtime | None = None):
        self._runtime = runtime if runtime is not None else get_current_runtime()
        self._state = CursorState.SUSPENDED_START
        self._requests: deque[Task[IterResult[T]]] = deque()
        self._in_flight = False
        self._closing: Task[IterResult[T]] | None = None

    @property
    def state(self) -> CursorState:
        return self._state

    @property
    def runtime(self) -> Runtime:
        return self._runtime

    # =========================================================================
    # Protocol
    # =========================================================================

    def next(self) -> Task[IterResult[T]]:
        """Request the next result."""
        request: Task[IterResult[T]] = Task(runtime=self._runtime)
        self._requests.append(request)
        self._pump()
        return request

    def close(self) -> Task[IterResult[T]]:
        """
        Stop iterating early and let the producer clean up.

        Best-effort: never raises, cleanup failures are logged, and
        closing a finished or already closing cursor is a no-op.
        Pending requests fulfil with done. A request already in flight
        completes first; cleanup runs after it.
        """
        if self._closing is not None:
            return self._closing
        closing: Task[IterResult[T]] = Task(runtime=self._runtime)
        self._closing = closing

        if self._state is CursorState.COMPLETED:
            closing._resolve(_DONE)
            return closing

        self._state = CursorState.COMPLETED
        while self._requests:
            self._requests.popleft()._resolve(_DONE)
        if not self._in_flight:
            self._run_release()
        return closing

    def __aiter__(self) -> AsyncCursor[T]:
        return self

    def __anext__(self) -> Task[T]:
        return self.next().then(_unwrap)

    # =========================================================================
    # Subclass hooks
    # =========================================================================

    @abstractmethod
    def _produce(self) -> Task[IterResult[T]]:
        """Start producing the next result."""

    def _release(self) -> Any:
        """Clean up after an early close. May return a Task to wait for."""
        return None

    # =========================================================================
    # Internals
    # =========================================================================

    def _pump(self) -> None:
        while self._requests and not self._in_flight:
            if self._state is CursorState.COMPLETED:
                self._requests.popleft()._resolve(_DONE)
                continue

            request = self._requests.popleft()
            self._in_flight = True
            self._state = CursorState.EXECUTING
            try:
                produced = self._produce()
            except Exception as e:
                self._in_flight = False
                self._state = CursorState.COMPLETED
                request._reject(e)
                continue
            produced._subscribe(lambda settlement, request=request: self._deliver(request, settlement))

    def _deliver(self, request: Task[IterResult[T]], settlement: Settlement[Any]) -> None:
        self._in_flight = False
        closed = self._closing is not None

        if isinstance(settlement, Rejected):
            self._state = CursorState.COMPLETED
            request._adopt(settlement)
        elif not isinstance(settlement.value, IterResult):
            self._state = CursorState.COMPLETED
            request._reject(
                TypeError(f"cursor produced {type(settlement.value).__name__}, expected IterResult")
            )
        elif settlement.value.done:
            self._state = CursorState.COMPLETED
            request._resolve(_DONE)
        else:
            if not closed:
                self._state = CursorState.SUSPENDED_YIELD
            request._resolve(settlement.value)

        if closed:
            self._run_release()
        self._pump()

    def _run_release(self) -> None:
        closing = self._closing
        if closing is None:
            raise InvalidStateError(f"{self!r} released before close()")
        try:
            released = self._release()
        except Exception:
            logger.warning(f"Cleanup of {self!r} failed", exc_info=True)
            closing._resolve(_DONE)
            return

        if isinstance(released, Task):

            def finished(settlement: Settlement[Any]) -> None:
                if isinstance(settlement, Rejected):
                    logger.warning(f"Cleanup of {self!r} failed: {settlement.error!r}")
                closing._resolve(_DONE)

            released._subscribe(finished)
        else:
            closing._resolve(_DONE)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} state={self._state}>"


def _unwrap(result: IterResult[T]) -> T:
    if result.done:
        raise StopAsyncIteration
    return result.value  # type: ignore[return-value]


def fulfilled_step(value: Any, *, runtime: Runtime) -> Task[IterResult[Any]]:
    """An already fulfilled Task of IterResult(value, False)."""
    return Task.resolved(IterResult(value, False), runtime=runtime)


def done_step(*, runtime: Runtime) -> Task[IterResult[Any]]:
    return Task.resolved(_DONE, runtime=runtime)

