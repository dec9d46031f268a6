"""Asyncio host: drive a Runtime from an asyncio event loop.

I/O usually lives in asyncio. The host lets pysettle tasks and asyncio
code cooperate on one thread:

- the runtime's microtasks and due timers are processed in asyncio
  callbacks (`loop.call_soon` / `loop.call_at`)
- `wrap_future()` turns an asyncio future into a Task
- `AsyncioHost.wait()` awaits a Task from asyncio code

The runtime keeps its own clock; the host only translates the next
deadline into asyncio time. Use a MonotonicClock (the default) with a
host.

Example:
    ```python
    async def main():
        async with AsyncioHost(Runtime()) as host:
            task = spawn(fetch_all(), runtime=host.runtime)
            return await host.wait(task)

    asyncio.run(main())
    ```
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, TypeVar

from pysettle.core.errors import CancellationError
from pysettle.core.outcome import Fulfilled, Settlement
from pysettle.core.task import Task
from pysettle.executor.runtime import Runtime
from pysettle.models import TaskOptions

logger = logging.getLogger(__name__)

__all__ = ["AsyncioHost", "wrap_future"]

T = TypeVar("T")


class AsyncioHost:
    """
    Schedules a Runtime's work on an asyncio loop.

    Lifecycle:
        host = AsyncioHost(runtime)
        host.start()      # or `async with host:`
        ...
        host.stop()
    """

    def __init__(self, runtime: Runtime | None = None, loop: asyncio.AbstractEventLoop | None = None):
        self._runtime = runtime or Runtime()
        self._loop = loop
        self._tick_scheduled = False
        self._timer: asyncio.TimerHandle | None = None
        self._running = False

    @property
    def runtime(self) -> Runtime:
        return self._runtime

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def is_running(self) -> bool:
        return self._running

    def start(self) -> AsyncioHost:
        if self._running:
            return self
        self._running = True
        self._runtime.set_wakeup(self._schedule_tick)
        self._schedule_tick()
        logger.debug(f"Asyncio host started for {self._runtime!r}")
        return self

    def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        self._runtime.set_wakeup(None)
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        logger.debug(f"Asyncio host stopped for {self._runtime!r}")

    async def __aenter__(self) -> AsyncioHost:
        return self.start()

    async def __aexit__(self, *exc_info: Any) -> None:
        self.stop()

    async def wait(self, task: Task[T]) -> T:
        """Await `task` from asyncio code."""
        if task.runtime is not self._runtime:
            raise ValueError(f"{task!r} belongs to a different runtime")
        future: asyncio.Future[T] = self.loop.create_future()

        def deliver(settlement: Settlement[T]) -> None:
            if future.done():
                return
            if isinstance(settlement, Fulfilled):
                future.set_result(settlement.value)
            else:
                future.set_exception(settlement.error)

        task._subscribe(deliver)
        return await future

    def _schedule_tick(self) -> None:
        if not self._running or self._tick_scheduled:
            return
        self._tick_scheduled = True
        self.loop.call_soon(self._tick)

    def _tick(self) -> None:
        self._tick_scheduled = False
        if not self._running or self._runtime.is_closed():
            return
        deadline = self._runtime.run_once()

        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if deadline is not None:
            delay = max(0.0, deadline - self._runtime.time())
            self._timer = self.loop.call_at(self.loop.time() + delay, self._on_timer)

    def _on_timer(self) -> None:
        self._timer = None
        self._schedule_tick()


def wrap_future(
    future: asyncio.Future[T] | Any,
    options: TaskOptions | None = None,
    *,
    runtime: Runtime | None = None,
) -> Task[T]:
    """
    Bridge an asyncio future (or coroutine, scheduled with ensure_future) into a Task.

    A cancelled asyncio future rejects the task with CancellationError.
    If the task is aborted first (token or deadline), the future is cancelled.
    """
    future = asyncio.ensure_future(future)
    options = options or TaskOptions()

    task: Task[T] = Task(
        runtime=runtime, name=options.name, token=options.token, on_cancel=options.on_cancel
    )
    if task.done():
        future.cancel()
        return task
    if options.timeout_ms is not None:
        task._start_deadline(options.timeout_ms / 1000)

    def transfer(done: asyncio.Future[T]) -> None:
        if done.cancelled():
            task._reject(CancellationError("asyncio future was cancelled"))
            return
        error = done.exception()
        if error is not None:
            task._reject(error)
        else:
            task._resolve(done.result())

    def release(settled: Task[T]) -> None:
        if not future.done():
            future.cancel()

    future.add_done_callback(transfer)
    task._on_settled(release)
    return task

