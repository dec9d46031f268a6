"""State enumerations for tasks, the runtime loop, sequencers and cursors.

Each enum describes one state machine. Transitions are owned by the
component named in the class docstring; nothing else mutates them.
"""

from enum import Enum


class TaskState(Enum):
    """Lifecycle of a Task.

    Lifecycle:
        PENDING → FULFILLED | REJECTED

    A Task leaves PENDING exactly once and never leaves a terminal state.
    """

    PENDING = "PENDING"
    """Task has not settled yet."""

    FULFILLED = "FULFILLED"
    """Task settled with a value."""

    REJECTED = "REJECTED"
    """Task settled with an error."""

    @property
    def is_terminal(self) -> bool:
        """Check if this state is terminal (the task has settled)."""
        return self is not TaskState.PENDING

    def __str__(self) -> str:
        return self.value


class RuntimeState(Enum):
    """State of the Runtime loop.

    Lifecycle:
        IDLE → DRAINING → IDLE
        IDLE → PROCESSING_MACROTASK → DRAINING → IDLE
        IDLE → TERMINATED
    """

    IDLE = "IDLE"
    """No callback is executing."""

    DRAINING = "DRAINING"
    """Microtask queue is being drained."""

    PROCESSING_MACROTASK = "PROCESSING_MACROTASK"
    """A timer callback is executing."""

    TERMINATED = "TERMINATED"
    """Runtime was closed; no further work is accepted."""

    def __str__(self) -> str:
        return self.value


class SequencerState(Enum):
    """Progress of a coroutine driven by the Sequencer.

    Lifecycle:
        CREATED → RUNNING → SUSPENDED → RUNNING → ... → COMPLETED
    """

    CREATED = "CREATED"
    RUNNING = "RUNNING"
    SUSPENDED = "SUSPENDED"
    COMPLETED = "COMPLETED"

    def __str__(self) -> str:
        return self.value


class CursorState(Enum):
    """Position of an AsyncCursor over its source.

    Lifecycle:
        SUSPENDED_START → EXECUTING → SUSPENDED_YIELD → EXECUTING → ... → COMPLETED

    A cursor reaches COMPLETED when the source reports done, when the
    producer fails, or when the consumer closes it early.
    """

    SUSPENDED_START = "SUSPENDED_START"
    """No value has been requested yet."""

    SUSPENDED_YIELD = "SUSPENDED_YIELD"
    """At least one value was delivered; waiting for the next request."""

    EXECUTING = "EXECUTING"
    """A request is in flight against the producer."""

    COMPLETED = "COMPLETED"
    """No more values will be produced."""

    @property
    def is_finished(self) -> bool:
        return self is CursorState.COMPLETED

    def __str__(self) -> str:
        return self.value
