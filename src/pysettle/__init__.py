"""
pysettle: cooperative promise-style tasks for Python

A single-threaded runtime of settle-once Tasks, with ordered continuations,
straight-line coroutines, lazy async sequences, cooperative cancellation and
unhandled-rejection reporting.

Design Pattern: Façade Pattern
This module re-exports the public surface of the core, executor, iteration
and models packages, so callers only ever import `pysettle`.

Example:
    ```python
    from pysettle import Runtime, all_of, delay, spawn

    async def greet():
        name, punctuation = await all_of([delay(0.01, "world"), delay(0.02, "!")])
        return f"hello {name}{punctuation}"

    runtime = Runtime()
    print(runtime.run_until_complete(greet()))
    ```
"""

# Core types
from pysettle.core import (
    CURRENT_RUNTIME,
    AggregateError,
    CancellationError,
    CancellationRegistration,
    CancellationToken,
    DeadlockError,
    ErrorKind,
    ExecutionError,
    Fulfilled,
    InvalidStateError,
    Rejected,
    RuntimeClosedError,
    RuntimeConfig,
    Settlement,
    Task,
    TaskError,
    TaskTimeoutError,
    classify,
    create_task,
    get_current_runtime,
    get_default_runtime,
    is_fulfilled,
    is_rejected,
    set_default_runtime,
    use_runtime,
)

# Execution
from pysettle.executor import (
    AsyncioHost,
    Clock,
    MonotonicClock,
    RejectionEvent,
    RejectionEventType,
    RejectionHook,
    Runtime,
    Sequencer,
    TimerHandle,
    VirtualClock,
    add_rejection_hook,
    all_of,
    all_settled,
    any_of,
    delay,
    ensure_task,
    race,
    remove_rejection_hook,
    retry,
    sequenced,
    sleep,
    spawn,
    with_timeout,
    wrap_future,
)

# Iteration
from pysettle.iteration import (
    UNFOLD_DONE,
    AsyncCursor,
    AsyncGeneratorSource,
    AsyncSource,
    IterableSource,
    IterResult,
    UnfoldSource,
    collect,
    cursor_of,
    for_each,
)

# Models
from pysettle.models import (
    CursorState,
    RetryableError,
    RetryPolicy,
    RuntimeState,
    SequencerState,
    TaskOptions,
    TaskState,
)

__version__ = "0.1.0"

__all__ = [
    # Tasks
    "Task",
    "create_task",
    "Fulfilled",
    "Rejected",
    "Settlement",
    "is_fulfilled",
    "is_rejected",
    "TaskOptions",
    "TaskState",
    # Sequencer
    "spawn",
    "sequenced",
    "ensure_task",
    "Sequencer",
    "SequencerState",
    # Runtime
    "Runtime",
    "RuntimeConfig",
    "RuntimeState",
    "Clock",
    "MonotonicClock",
    "VirtualClock",
    "TimerHandle",
    "CURRENT_RUNTIME",
    "get_current_runtime",
    "get_default_runtime",
    "set_default_runtime",
    "use_runtime",
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
    "RetryPolicy",
    "RetryableError",
    # Iteration
    "IterResult",
    "AsyncSource",
    "AsyncCursor",
    "CursorState",
    "IterableSource",
    "UnfoldSource",
    "UNFOLD_DONE",
    "AsyncGeneratorSource",
    "for_each",
    "collect",
    "cursor_of",
    # Cancellation
    "CancellationToken",
    "CancellationRegistration",
    # Errors
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
    # Rejection reporting
    "RejectionEvent",
    "RejectionEventType",
    "RejectionHook",
    "add_rejection_hook",
    "remove_rejection_hook",
    # Asyncio
    "AsyncioHost",
    "wrap_future",
]
