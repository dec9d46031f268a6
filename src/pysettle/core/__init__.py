"""
Core types for the pysettle runtime.

- Task / create_task: the promise-style primitive
- Fulfilled / Rejected: terminal settlements
- CancellationToken: cooperative, monotonic cancellation
- RuntimeConfig: runtime settings (builder + environment)
- Error taxonomy: TaskError and its kinds
- Current-runtime lookup (contextvars)
"""

from pysettle.core.cancellation import CancellationRegistration, CancellationToken
from pysettle.core.config import RuntimeConfig
from pysettle.core.context import (
    CURRENT_RUNTIME,
    get_current_runtime,
    get_default_runtime,
    set_default_runtime,
    use_runtime,
)
from pysettle.core.errors import (
    AggregateError,
    CancellationError,
    DeadlockError,
    ErrorKind,
    ExecutionError,
    InvalidStateError,
    RuntimeClosedError,
    TaskError,
    TaskTimeoutError,
    classify,
)
from pysettle.core.outcome import Fulfilled, Rejected, Settlement, is_fulfilled, is_rejected
from pysettle.core.task import Task, create_task

__all__ = [
    "Task",
    "create_task",
    "Fulfilled",
    "Rejected",
    "Settlement",
    "is_fulfilled",
    "is_rejected",
    "CancellationToken",
    "CancellationRegistration",
    "RuntimeConfig",
    "CURRENT_RUNTIME",
    "get_current_runtime",
    "get_default_runtime",
    "set_default_runtime",
    "use_runtime",
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
]
