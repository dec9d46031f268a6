"""
Runtime: the cooperative scheduler loop.

The runtime owns two queues:

- a FIFO microtask queue (`call_soon`) for task continuations
- a macrotask queue of timers (`call_later` / `call_at`), ordered by
  deadline and then by submission order

Microtasks always drain to exhaustion before the next macrotask runs, and
again after every macrotask. Only one callback runs at a time; code is
only interleaved at await/then boundaries.

Design Pattern: Template Method
    `run()`, `run_until_complete()` and the asyncio host all share the
    same step, `run_once()`: drain, then fire due timers. They differ only
    in when they stop and how they wait for the next deadline.

Usage:
    ```python
    runtime = Runtime()

    async def main():
        await sleep(0.1)
        return "done"

    runtime.run_until_complete(main())  # "done"
    runtime.close()
    ```
"""

from __future__ import annotations

import heapq
import itertools
import logging
import time
from collections import deque
from collections.abc import Callable
from typing import Any, Protocol

from pysettle.core.config import RuntimeConfig
from pysettle.core.context import use_runtime
from pysettle.core.errors import DeadlockError, RuntimeClosedError
from pysettle.executor.rejections import RejectionTracker
from pysettle.models import RuntimeState

logger = logging.getLogger(__name__)

__all__ = [
    "Clock",
    "MonotonicClock",
    "VirtualClock",
    "TimerHandle",
    "Runtime",
]


# =============================================================================
# Clocks
# =============================================================================


class Clock(Protocol):
    """Time source for timers."""

    def now(self) -> float: ...

    def sleep_until(self, deadline: float) -> None: ...


class MonotonicClock:
    """Real time. Waiting for a deadline blocks the calling thread."""

    def now(self) -> float:
        return time.monotonic()

    def sleep_until(self, deadline: float) -> None:
        remaining = deadline - time.monotonic()
        if remaining > 0:
            time.sleep(remaining)


class VirtualClock:
    """
    Simulated time. Waiting for a deadline jumps straight to it.

    Makes timer-heavy code deterministic and instant in tests.
    """

    def __init__(self, start: float = 0.0):
        self._now = start

    def now(self) -> float:
        return self._now

    def sleep_until(self, deadline: float) -> None:
        if deadline > self._now:
            self._now = deadline

    def advance(self, seconds: float) -> None:
        if seconds < 0:
            raise ValueError("cannot move a clock backwards")
        self._now += seconds

    def __repr__(self) -> str:
        return f"VirtualClock(now={self._now})"


# =============================================================================
# Timers
# =============================================================================


class TimerHandle:
    """A scheduled macrotask. Cancelling it before it fires skips the callback."""

    def __init__(self, deadline: float, seq: int, callback: Callable[..., Any], args: tuple):
        self.deadline = deadline
        self._seq = seq
        self._callback = callback
        self._args = args
        self._cancelled = False
        self._fired = False

    def cancel(self) -> None:
        if not self._cancelled and not self._fired:
            self._cancelled = True
            self._callback = _noop
            self._args = ()

    def cancelled(self) -> bool:
        return self._cancelled

    def fired(self) -> bool:
        return self._fired

    def __lt__(self, other: TimerHandle) -> bool:
        return (self.deadline, self._seq) < (other.deadline, other._seq)

    def __repr__(self) -> str:
        status = "cancelled" if self._cancelled else "fired" if self._fired else "scheduled"
        return f"<TimerHandle deadline={self.deadline:.6f} {status}>"


def _noop(*_args: Any) -> None:
    return None


# =============================================================================
# Runtime
# =============================================================================


class Runtime:
    """
    Single-threaded cooperative scheduler.

    State machine (RuntimeState):
        IDLE → DRAINING → IDLE
        IDLE → PROCESSING_MACROTASK → DRAINING → IDLE
        IDLE → TERMINATED (close)

    The runtime never lets a callback exception escape its loop. Task
    handler errors are already captured as rejections; anything else is
    logged.

    Usage:
        runtime = Runtime(RuntimeConfig.from_env()).with_clock(VirtualClock())
    """

    def __init__(self, config: RuntimeConfig | None = None, clock: Clock | None = None):
        self._config = config or RuntimeConfig()
        self._clock: Clock = clock or MonotonicClock()
        self._state = RuntimeState.IDLE
        # Set by close(); outlives any state a running callback restores.
        self._closed = False
        self._microtasks: deque[tuple[Callable[..., Any], tuple]] = deque()
        self._timers: list[TimerHandle] = []
        self._timer_seq = itertools.count()
        self._rejections = RejectionTracker(self._config)
        self._wakeup: Callable[[], None] | None = None

    # =========================================================================
    # Configuration (builder)
    # =========================================================================

    def with_config(self, config: RuntimeConfig) -> Runtime:
        self._config = config
        self._rejections.configure(config)
        return self

    def with_clock(self, clock: Clock) -> Runtime:
        if self._timers:
            raise RuntimeError("cannot replace the clock while timers are scheduled")
        self._clock = clock
        return self

    def set_wakeup(self, callback: Callable[[], None] | None) -> None:
        """
        Register `callback()` to be called whenever new work is scheduled.

        Used by hosts that drive the runtime from another event loop.
        """
        self._wakeup = callback

    # =========================================================================
    # Inspection
    # =========================================================================

    @property
    def config(self) -> RuntimeConfig:
        return self._config

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def state(self) -> RuntimeState:
        if self._closed:
            return RuntimeState.TERMINATED
        return self._state

    @property
    def rejections(self) -> RejectionTracker:
        return self._rejections

    def time(self) -> float:
        """Current time on the runtime's clock."""
        return self._clock.now()

    def is_closed(self) -> bool:
        return self._closed

    def has_pending_work(self) -> bool:
        return bool(self._microtasks) or any(not t.cancelled() for t in self._timers)

    def next_deadline(self) -> float | None:
        """Deadline of the earliest live timer, or None."""
        while self._timers and self._timers[0].cancelled():
            heapq.heappop(self._timers)
        if not self._timers:
            return None
        return self._timers[0].deadline

    # =========================================================================
    # Scheduling
    # =========================================================================

    def call_soon(self, callback: Callable[..., Any], *args: Any) -> None:
        """Queue a microtask."""
        if self._state is not RuntimeState.DRAINING:
            # A drain in progress still completes work queued after close().
            self._check_open()
        self._microtasks.append((callback, args))
        if self._wakeup is not None and len(self._microtasks) == 1:
            self._wakeup()

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        """Schedule a macrotask `delay` seconds from now."""
        return self.call_at(self._clock.now() + max(0.0, delay), callback, *args)

    def call_at(self, deadline: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        """Schedule a macrotask at an absolute clock time."""
        self._check_open()
        handle = TimerHandle(deadline, next(self._timer_seq), callback, args)
        heapq.heappush(self._timers, handle)
        if self._wakeup is not None:
            self._wakeup()
        return handle

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeClosedError("runtime is closed")

    # =========================================================================
    # Loop
    # =========================================================================

    def run_once(self) -> float | None:
        """
        Drain microtasks, then fire every due timer (draining after each).

        Never blocks. Returns the next timer deadline, or None if no timers
        remain.
        """
        if self._state in (RuntimeState.DRAINING, RuntimeState.PROCESSING_MACROTASK):
            raise RuntimeError("runtime loop entered re-entrantly from one of its own callbacks")
        with use_runtime(self):
            self._drain()
            self._run_due_timers()
        return self.next_deadline()

    def run(self, close_when_idle: bool = False) -> None:
        """
        Process work until both queues are empty.

        With `close_when_idle=True` the runtime transitions to TERMINATED
        once it runs out of work.
        """
        self._check_open()
        while True:
            deadline = self.run_once()
            if self._closed:
                return
            if self._microtasks:
                continue
            if deadline is None:
                break
            self._clock.sleep_until(deadline)
        if close_when_idle:
            self.close()

    def run_until_complete(self, awaitable: Any) -> Any:
        """
        Process work until `awaitable` settles; return its value or raise its error.

        Accepts a Task or anything `spawn()` accepts.

        Raises:
            DeadlockError: If the runtime runs out of work first
            RuntimeClosedError: If a callback closes the runtime first
        """
        from pysettle.executor.sequencer import ensure_task

        self._check_open()
        with use_runtime(self):
            task = ensure_task(awaitable, runtime=self)
        if task.runtime is not self:
            raise ValueError(f"{task!r} belongs to a different runtime")
        # The caller observes the outcome; it is never an unhandled rejection.
        task._mark_handled()

        while not task.done():
            deadline = self.run_once()
            if task.done():
                break
            if self._closed:
                raise RuntimeClosedError(f"runtime was closed while {task!r} is still pending")
            if self._microtasks:
                continue
            if deadline is None:
                raise DeadlockError(f"runtime ran out of work while {task!r} is still pending")
            self._clock.sleep_until(deadline)
        return task.result()

    def close(self) -> None:
        """
        Terminate the runtime.

        Pending microtasks are drained so already-settled work completes;
        remaining timers are dropped. Closing twice is a no-op.

        A callback may close the runtime it runs on: the current drain
        finishes the queued microtasks, then the loop stops.
        """
        if self._closed:
            return
        with use_runtime(self):
            self._drain()
        dropped = sum(1 for t in self._timers if not t.cancelled())
        for handle in self._timers:
            handle.cancel()
        self._timers.clear()
        self._closed = True
        if self._state is RuntimeState.IDLE:
            self._state = RuntimeState.TERMINATED
        if dropped:
            logger.debug(f"Runtime closed with {dropped} pending timer(s) dropped")
        else:
            logger.debug("Runtime closed")

    def _drain(self) -> None:
        if self._state is RuntimeState.DRAINING:
            # Re-entrant call from inside a microtask; the outer drain continues.
            return
        previous = self._state
        while self._microtasks:
            self._state = RuntimeState.DRAINING
            try:
                while self._microtasks:
                    callback, args = self._microtasks.popleft()
                    self._invoke(callback, args)
            finally:
                self._state = previous
            # Hooks may schedule more work, so flush inside the loop.
            self._rejections.flush()
        self._rejections.flush()

    def _run_due_timers(self) -> None:
        while self._timers:
            handle = self._timers[0]
            if handle.cancelled():
                heapq.heappop(self._timers)
                continue
            if handle.deadline > self._clock.now():
                break
            heapq.heappop(self._timers)
            handle._fired = True
            self._state = RuntimeState.PROCESSING_MACROTASK
            try:
                self._invoke(handle._callback, handle._args)
            finally:
                self._state = RuntimeState.IDLE
            self._drain()

    def _invoke(self, callback: Callable[..., Any], args: tuple) -> None:
        threshold = self._config.slow_callback_ms
        started = time.perf_counter() if threshold is not None else 0.0
        try:
            callback(*args)
        except Exception:
            logger.exception(f"Exception in scheduled callback {callback!r}")
        if threshold is not None:
            elapsed_ms = (time.perf_counter() - started) * 1000
            if elapsed_ms > threshold:
                logger.warning(f"Slow callback {callback!r} took {elapsed_ms:.1f}ms")

    def __repr__(self) -> str:
        return (
            f"<Runtime state={self._state} microtasks={len(self._microtasks)} "
            f"timers={len(self._timers)}>"
        )
