"""Plain data models shared by the runtime.

Design: Dependency-Free Models
These types import nothing from core or executor at runtime, which keeps
the package layering acyclic.
"""

from pysettle.models.options import DEFAULT_OPTIONS, TaskOptions
from pysettle.models.retry import RetryableError, RetryPolicy
from pysettle.models.status import CursorState, RuntimeState, SequencerState, TaskState

__all__ = [
    "TaskState",
    "RuntimeState",
    "SequencerState",
    "CursorState",
    "TaskOptions",
    "DEFAULT_OPTIONS",
    "RetryPolicy",
    "RetryableError",
]
