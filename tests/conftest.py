"""
Pytest configuration and fixtures for pysettle tests.

Provides a deterministic runtime (virtual clock), a recorder for
rejection events, and small task helpers.
"""

from collections.abc import Iterator

import pytest

from pysettle import (
    RejectionEvent,
    RejectionEventType,
    Runtime,
    RuntimeConfig,
    VirtualClock,
    add_rejection_hook,
    create_task,
    remove_rejection_hook,
    use_runtime,
)


@pytest.fixture
def clock() -> VirtualClock:
    """Virtual clock starting at zero."""
    return VirtualClock()


@pytest.fixture
def runtime(clock: VirtualClock) -> Iterator[Runtime]:
    """Runtime on a virtual clock, installed as the current runtime."""
    rt = Runtime(RuntimeConfig(unhandled_rejections="silent"), clock=clock)
    with use_runtime(rt):
        yield rt
    rt.close()


class RejectionRecorder:
    """Collects rejection events reported through the process-wide hooks."""

    def __init__(self):
        self.events: list[RejectionEvent] = []

    def __call__(self, event: RejectionEvent) -> None:
        self.events.append(event)

    @property
    def unhandled(self) -> list[RejectionEvent]:
        return [e for e in self.events if e.type is RejectionEventType.UNHANDLED]

    @property
    def handled(self) -> list[RejectionEvent]:
        return [e for e in self.events if e.type is RejectionEventType.HANDLED]


@pytest.fixture
def rejection_events() -> Iterator[RejectionRecorder]:
    """Record rejection events for the duration of a test."""
    recorder = RejectionRecorder()
    add_rejection_hook(recorder)
    yield recorder
    remove_rejection_hook(recorder)


@pytest.fixture
def deferred(runtime: Runtime):
    """Factory for a pending task plus its resolve and reject functions."""

    def make(**options):
        handles = {}

        def executor(resolve, reject):
            handles["resolve"] = resolve
            handles["reject"] = reject

        task = create_task(executor, runtime=runtime, **options)
        return task, handles["resolve"], handles["reject"]

    return make
