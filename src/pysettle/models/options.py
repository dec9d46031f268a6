"""Per-task configuration.

TaskOptions replaces loosely shaped option dictionaries with an explicit,
frozen set of fields. Every field is optional; the defaults describe a
task with no deadline, no cancellation and no cleanup hook.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pysettle.core.cancellation import CancellationToken


@dataclass(frozen=True)
class TaskOptions:
    """
    Options accepted by `create_task()` and `spawn()`.

    Attributes:
        timeout_ms: Reject with TaskTimeoutError if still pending after
            this many milliseconds. None disables the deadline.
        on_cancel: Called with the error when the task is aborted by its
            token or its deadline. Use it to release resources held by the
            underlying work.
        token: Cancellation token that rejects the task when it fires.
        name: Human-readable name used in reprs and log lines.

    Example:
        ```python
        token = CancellationToken()
        options = TaskOptions(timeout_ms=500, token=token, name="fetch-user")
        task = create_task(fetch_user, options)
        ```
    """

    timeout_ms: int | None = None
    on_cancel: Callable[[BaseException], None] | None = None
    token: CancellationToken | None = None
    name: str | None = None

    def __post_init__(self) -> None:
        if self.timeout_ms is not None and self.timeout_ms < 0:
            raise ValueError(f"timeout_ms must not be negative, got {self.timeout_ms}")

    def with_timeout_ms(self, timeout_ms: int | None) -> TaskOptions:
        return replace(self, timeout_ms=timeout_ms)

    def with_token(self, token: CancellationToken | None) -> TaskOptions:
        return replace(self, token=token)

    def with_name(self, name: str | None) -> TaskOptions:
        return replace(self, name=name)


DEFAULT_OPTIONS = TaskOptions()
