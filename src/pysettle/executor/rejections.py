"""Unhandled-rejection tracking.

Every rejection ends in exactly one place: a handler, the rejection of a
task further up the chain, or an unhandled-rejection report.

A task that rejects with no observer is parked in the tracker. At the end
of every microtask drain the runtime flushes the tracker: anything still
unobserved is reported once. If an observer attaches after the report, a
second HANDLED event tells the host the rejection was dealt with late.

Reports go to process-wide hooks and, in "warn" mode, to the log. Hook
failures are logged and never reach the runtime loop.

Example:
    ```python
    def on_rejection(event: RejectionEvent) -> None:
        if event.type is RejectionEventType.UNHANDLED:
            metrics.increment("unhandled_rejections", kind=str(event.kind))

    add_rejection_hook(on_rejection)
    ```
"""

from __future__ import annotations

import logging
import weakref
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from pysettle.core.config import RuntimeConfig
from pysettle.core.errors import ErrorKind, InvalidStateError, classify
from pysettle.core.outcome import Rejected

if TYPE_CHECKING:
    from pysettle.core.task import Task

logger = logging.getLogger(__name__)

__all__ = [
    "RejectionEventType",
    "RejectionEvent",
    "RejectionTracker",
    "RejectionHook",
    "add_rejection_hook",
    "remove_rejection_hook",
]


class RejectionEventType(Enum):
    UNHANDLED = "unhandled"
    """A rejected task had no observer at the end of a drain cycle."""

    HANDLED = "handled"
    """A previously reported task gained an observer."""

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class RejectionEvent:
    """
    Report about a rejected task.

    Attributes:
        type: UNHANDLED or HANDLED
        task_id: Id of the rejected task
        task_name: Name of the rejected task, if any
        error: The rejection error
        kind: ErrorKind of the error
        origin: Id of the task where the rejection first happened
    """

    type: RejectionEventType
    task_id: UUID
    task_name: str | None
    error: BaseException
    kind: ErrorKind
    origin: UUID | None


RejectionHook = Callable[[RejectionEvent], None]

_hooks: list[RejectionHook] = []


def add_rejection_hook(hook: RejectionHook) -> None:
    """Register a process-wide hook for rejection events."""
    if hook not in _hooks:
        _hooks.append(hook)


def remove_rejection_hook(hook: RejectionHook) -> None:
    """Unregister a hook. Unknown hooks are ignored."""
    try:
        _hooks.remove(hook)
    except ValueError:
        pass


class RejectionTracker:
    """Per-runtime registry of rejections that have not been observed yet."""

    def __init__(self, config: RuntimeConfig):
        self._config = config
        # Strong references: a rejected task must not vanish before it is reported.
        self._pending: dict[UUID, Task] = {}
        # Reported tasks only matter while something can still observe them.
        self._reported: weakref.WeakSet[Task] = weakref.WeakSet()

    def configure(self, config: RuntimeConfig) -> None:
        self._config = config

    def track(self, task: Task) -> None:
        """Called when `task` rejects with no observer."""
        self._pending[task.id] = task

    def handled(self, task: Task) -> None:
        """Called when an observer attaches to an already rejected task."""
        if self._pending.pop(task.id, None) is not None:
            return
        if task in self._reported:
            self._reported.discard(task)
            self._emit(self._event(RejectionEventType.HANDLED, task))

    def pending_count(self) -> int:
        return len(self._pending)

    def flush(self) -> int:
        """Report every rejection that is still unobserved. Returns how many were reported."""
        if not self._pending:
            return 0
        pending, self._pending = self._pending, {}
        for task in pending.values():
            self._reported.add(task)
            event = self._event(RejectionEventType.UNHANDLED, task)
            if self._config.unhandled_rejections == "warn":
                logger.error(
                    f"Unhandled rejection in {task!r}: {type(event.error).__name__}: {event.error}",
                    exc_info=event.error,
                )
            self._emit(event)
        return len(pending)

    def _event(self, event_type: RejectionEventType, task: Task) -> RejectionEvent:
        settlement = task.settlement
        if not isinstance(settlement, Rejected):
            raise InvalidStateError(f"{task!r} has no rejection to report")
        return RejectionEvent(
            type=event_type,
            task_id=task.id,
            task_name=task.name,
            error=settlement.error,
            kind=classify(settlement.error),
            origin=settlement.origin,
        )

    def _emit(self, event: RejectionEvent) -> None:
        for hook in list(_hooks):
            try:
                hook(event)
            except Exception:
                logger.exception(f"Rejection hook {hook!r} raised while handling {event.type} event")
