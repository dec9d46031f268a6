"""Task-local access to the current Runtime.

Tasks bind to a Runtime when they are created. Code running inside
`Runtime.run()` sees that runtime through CURRENT_RUNTIME; code outside
any runtime gets a lazily created process-wide default.

Design: Task-Local State (contextvars)
    A runtime driven from a thread or an asyncio host does not leak into
    unrelated code, and tests can install an isolated runtime per test.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from pysettle.executor.runtime import Runtime

__all__ = [
    "CURRENT_RUNTIME",
    "get_current_runtime",
    "get_default_runtime",
    "set_default_runtime",
    "use_runtime",
]

CURRENT_RUNTIME: ContextVar[Optional["Runtime"]] = ContextVar("current_runtime", default=None)
"""Runtime installed for the current context.

Usage:
    ```python
    with use_runtime(runtime):
        task = create_task(executor)  # bound to `runtime`
    ```
"""

_default_runtime: Optional["Runtime"] = None


def get_default_runtime() -> "Runtime":
    """Return the process-wide runtime, creating a fresh one if none is open."""
    global _default_runtime
    if _default_runtime is None or _default_runtime.is_closed():
        from pysettle.executor.runtime import Runtime

        _default_runtime = Runtime()
    return _default_runtime


def set_default_runtime(runtime: Optional["Runtime"]) -> None:
    """Replace the process-wide runtime. None makes the next lookup create one."""
    global _default_runtime
    _default_runtime = runtime


def get_current_runtime() -> "Runtime":
    """The runtime installed for this context, or the process-wide default."""
    runtime = CURRENT_RUNTIME.get()
    if runtime is not None:
        return runtime
    return get_default_runtime()


@contextmanager
def use_runtime(runtime: "Runtime") -> Iterator["Runtime"]:
    """Install `runtime` as the current runtime for the duration of the block."""
    token = CURRENT_RUNTIME.set(runtime)
    try:
        yield runtime
    finally:
        CURRENT_RUNTIME.reset(token)
