"""
Fan-out combinators and caller-composed retry.

All combinators accept any iterable of Tasks, awaitables (spawned) or
plain values (treated as already fulfilled), and subscribe to the inputs
in input order. Inputs that have already settled therefore report in
input order, which breaks ties deterministically.

| combinator      | fulfils with                   | rejects with                        |
|-----------------|--------------------------------|-------------------------------------|
| all_of          | list of values, input order    | first rejection                     |
| all_settled     | list of Fulfilled/Rejected     | never                               |
| race            | first settlement               | first settlement                    |
| any_of          | first fulfilment               | AggregateError when every input fails |

The tasks returned by `all_of`, `race` and `any_of` settle as soon as
the outcome is known. They do not wait for the remaining inputs, and
they do not cancel them either.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import Any, TypeVar

from pysettle.core.cancellation import CancellationToken
from pysettle.core.context import get_current_runtime
from pysettle.core.errors import AggregateError, CancellationError
from pysettle.core.outcome import Fulfilled, Rejected, Settlement
from pysettle.core.task import Task
from pysettle.executor.runtime import Runtime
from pysettle.executor.sequencer import ensure_task, spawn
from pysettle.executor.timer import sleep
from pysettle.models import RetryPolicy, TaskOptions

logger = logging.getLogger(__name__)

__all__ = ["all_of", "all_settled", "race", "any_of", "retry"]

T = TypeVar("T")


def _prepare(items: Iterable[Any], runtime: Runtime | None) -> tuple[list[Task[Any]], Runtime]:
    items = list(items)
    if runtime is None:
        first = next((item for item in items if isinstance(item, Task)), None)
        runtime = first.runtime if first is not None else get_current_runtime()
    return [ensure_task(item, runtime=runtime) for item in items], runtime


def all_of(items: Iterable[Any], *, runtime: Runtime | None = None) -> Task[list[Any]]:
    """
    Fulfil with every value once all inputs fulfil; reject on the first failure.

    Example:
        ```python
        user, orders = await all_of([fetch_user(7), fetch_orders(7)])
        ```
    """
    tasks, runtime = _prepare(items, runtime)
    combined: Task[list[Any]] = Task(runtime=runtime, name="all_of")
    if not tasks:
        combined._resolve([])
        return combined

    values: list[Any] = [None] * len(tasks)
    remaining = len(tasks)

    def on_settled(index: int, settlement: Settlement[Any]) -> None:
        nonlocal remaining
        if isinstance(settlement, Rejected):
            combined._adopt(settlement)
            return
        values[index] = settlement.value
        remaining -= 1
        if remaining == 0:
            combined._resolve(values)

    for index, task in enumerate(tasks):
        task._subscribe(lambda settlement, index=index: on_settled(index, settlement))
    return combined


def all_settled(items: Iterable[Any], *, runtime: Runtime | None = None) -> Task[list[Settlement[Any]]]:
    """
    Fulfil with the settlement of every input once all have settled. Never rejects.

    Example:
        ```python
        for settlement in await all_settled(tasks):
            if settlement.status == "rejected":
                log.warning(settlement.error)
        ```
    """
    tasks, runtime = _prepare(items, runtime)
    combined: Task[list[Settlement[Any]]] = Task(runtime=runtime, name="all_settled")
    if not tasks:
        combined._resolve([])
        return combined

    settlements: list[Settlement[Any] | None] = [None] * len(tasks)
    remaining = len(tasks)

    def on_settled(index: int, settlement: Settlement[Any]) -> None:
        nonlocal remaining
        settlements[index] = settlement
        remaining -= 1
        if remaining == 0:
            combined._resolve(list(settlements))

    for index, task in enumerate(tasks):
        task._subscribe(lambda settlement, index=index: on_settled(index, settlement))
    return combined


def race(items: Iterable[Any], *, runtime: Runtime | None = None) -> Task[Any]:
    """
    Settle like the first input to settle, success or failure.

    An empty race never settles.
    """
    tasks, runtime = _prepare(items, runtime)
    combined: Task[Any] = Task(runtime=runtime, name="race")
    for task in tasks:
        task._subscribe(combined._adopt)
    return combined


def any_of(items: Iterable[Any], *, runtime: Runtime | None = None) -> Task[Any]:
    """
    Fulfil with the first value; reject with AggregateError if every input rejects.

    The AggregateError lists the errors in input order. An empty input
    rejects immediately with an empty AggregateError.
    """
    tasks, runtime = _prepare(items, runtime)
    combined: Task[Any] = Task(runtime=runtime, name="any_of")
    if not tasks:
        combined._reject(AggregateError([], "any_of() received no tasks"))
        return combined

    errors: list[BaseException | None] = [None] * len(tasks)
    remaining = len(tasks)

    def on_settled(index: int, settlement: Settlement[Any]) -> None:
        nonlocal remaining
        if isinstance(settlement, Fulfilled):
            combined._resolve(settlement.value)
            return
        errors[index] = settlement.error
        remaining -= 1
        if remaining == 0:
            combined._reject(
                AggregateError([e for e in errors if e is not None], "all tasks were rejected")
            )

    for index, task in enumerate(tasks):
        task._subscribe(lambda settlement, index=index: on_settled(index, settlement))
    return combined


def retry(
    factory: Callable[[], Any],
    policy: RetryPolicy = RetryPolicy.STANDARD,
    *,
    token: CancellationToken | None = None,
    runtime: Runtime | None = None,
) -> Task[Any]:
    """
    Run `factory()` until it succeeds or the policy gives up.

    `factory` must return a fresh Task, awaitable or value on every call;
    a settled Task cannot be retried. Between attempts the combinator
    sleeps for `policy.delay_for_attempt(n)` milliseconds on the runtime's
    clock.

    Stops early when:
    - the error reports `is_retryable() == False` (see RetryableError)
    - the error is a CancellationError, or `token` is cancelled

    Returns:
        A task that fulfils with the first successful result, or rejects
        with the last error.

    Example:
        ```python
        task = retry(lambda: fetch(url), RetryPolicy.with_max_attempts(5))
        ```
    """
    runtime = runtime if runtime is not None else get_current_runtime()

    async def attempts() -> Any:
        attempt = 1
        while True:
            if token is not None:
                token.raise_if_cancelled()
            try:
                return await ensure_task(factory(), runtime=runtime)
            except CancellationError:
                raise
            except Exception as e:
                if hasattr(e, "is_retryable") and not e.is_retryable():
                    logger.debug(f"Not retrying after attempt {attempt}: {e!r} is not retryable")
                    raise
                delay_ms = policy.delay_for_attempt(attempt)
                if delay_ms is None:
                    logger.debug(f"Giving up after {attempt} attempt(s): {e!r}")
                    raise
                logger.info(f"Attempt {attempt} failed with {e!r}; retrying in {delay_ms}ms")
            await sleep(delay_ms / 1000, token=token, runtime=runtime)
            attempt += 1

    return spawn(attempts(), TaskOptions(token=token, name="retry"), runtime=runtime)
