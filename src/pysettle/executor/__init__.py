"""
Executor module - the runtime engine.

This module contains the execution components:
- runtime: Runtime loop (microtasks, timers, clocks)
- sequencer: Coroutine driver (spawn, sequenced)
- timer: delay, sleep, with_timeout
- combinators: all_of, all_settled, race, any_of, retry
- rejections: Unhandled-rejection tracking and hooks
- host: Asyncio integration
"""

from pysettle.executor.combinators import all_of, all_settled, any_of, race, retry
from pysettle.executor.host import AsyncioHost, wrap_future
from pysettle.executor.rejections import (
    RejectionEvent,
    RejectionEventType,
    RejectionHook,
    RejectionTracker,
    add_rejection_hook,
    remove_rejection_hook,
)
from pysettle.executor.runtime import Clock, MonotonicClock, Runtime, TimerHandle, VirtualClock
from pysettle.executor.sequencer import Sequencer, ensure_task, sequenced, spawn
from pysettle.executor.timer import delay, sleep, with_timeout

__all__ = [
    # Runtime loop
    "Runtime",
    "Clock",
    "MonotonicClock",
    "VirtualClock",
    "TimerHandle",
    # Sequencer
    "Sequencer",
    "spawn",
    "sequenced",
    "ensure_task",
    # Timers
    "delay",
    "sleep",
    "with_timeout",
    # Combinators
    "all_of",
    "all_settled",
    "race",
    "any_of",
    "retry",
    # Rejections
    "RejectionEvent",
    "RejectionEventType",
    "RejectionHook",
    "RejectionTracker",
    "add_rejection_hook",
    "remove_rejection_hook",
    # Asyncio
    "AsyncioHost",
    "wrap_future",
]
