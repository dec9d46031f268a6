"""Tests for CancellationToken and token-bound tasks."""

import logging

import pytest

from pysettle import (
    CancellationError,
    CancellationToken,
    ErrorKind,
    TaskOptions,
    TaskState,
    create_task,
    delay,
    spawn,
)


def test_cancel_is_write_once():
    token = CancellationToken()

    token.cancel("first")
    token.cancel("second")

    assert token.is_cancelled()
    assert token.reason == "first"


def test_fresh_token_is_active():
    token = CancellationToken()

    assert not token.is_cancelled()
    assert token.reason is None
    token.raise_if_cancelled()
    assert "active" in repr(token)


def test_raise_if_cancelled():
    token = CancellationToken()
    token.cancel("stop")

    with pytest.raises(CancellationError, match="stop"):
        token.raise_if_cancelled()


def test_callbacks_run_once_in_registration_order():
    token = CancellationToken()
    calls = []
    token.on_cancel(lambda reason: calls.append(("a", reason)))
    token.on_cancel(lambda reason: calls.append(("b", reason)))

    token.cancel("why")
    token.cancel("again")

    assert calls == [("a", "why"), ("b", "why")]


def test_disposed_registration_is_not_called():
    token = CancellationToken()
    calls = []
    registration = token.on_cancel(calls.append)

    registration.dispose()
    registration.dispose()
    token.cancel()

    assert calls == []


def test_on_cancel_after_cancel_runs_immediately():
    token = CancellationToken()
    token.cancel("done")
    calls = []

    token.on_cancel(calls.append)

    assert calls == ["done"]


def test_callback_exception_is_logged(caplog):
    token = CancellationToken()
    calls = []

    def broken(_reason):
        raise RuntimeError("callback failed")

    token.on_cancel(broken)
    token.on_cancel(calls.append)

    with caplog.at_level(logging.ERROR, logger="pysettle.core.cancellation"):
        token.cancel("x")

    assert calls == ["x"]
    assert "Cancellation callback" in caplog.text


def test_child_follows_parent_only():
    parent = CancellationToken()
    child = parent.child()
    sibling = parent.child()

    child.cancel("child only")
    assert not parent.is_cancelled()
    assert not sibling.is_cancelled()

    parent.cancel("everything")
    assert sibling.is_cancelled()
    assert sibling.reason == "everything"


def test_cancelled_children_detach_from_parent():
    parent = CancellationToken()
    children = [parent.child() for _ in range(100)]
    assert len(parent._callbacks) == 100

    for child in children:
        child.cancel("request finished")

    assert parent._callbacks == {}
    assert not parent.is_cancelled()


def test_disposed_child_ignores_parent():
    parent = CancellationToken()

    with parent.child() as child:
        assert len(parent._callbacks) == 1
    child.dispose()

    assert parent._callbacks == {}
    parent.cancel()
    assert not child.is_cancelled()


def test_child_of_cancelled_parent_starts_cancelled():
    parent = CancellationToken()
    parent.cancel("already down")

    child = parent.child()

    assert child.is_cancelled()
    assert child.reason == "already down"
    child.dispose()


def test_token_fired_before_settlement_wins_over_success(runtime):
    token = CancellationToken()

    def executor(resolve, reject):
        token.cancel("stop")
        resolve("would have succeeded")

    task = create_task(executor, TaskOptions(token=token))

    assert task.state is TaskState.REJECTED
    error = task.exception()
    assert isinstance(error, CancellationError)
    assert error.task_id == task.id


def test_coroutine_completing_after_cancel_still_rejects(runtime):
    token = CancellationToken()

    async def work():
        token.cancel()
        return "done"

    task = spawn(work(), TaskOptions(token=token))

    assert isinstance(task.exception(), CancellationError)


def test_already_cancelled_token_skips_executor(runtime):
    token = CancellationToken()
    token.cancel()
    ran = []

    task = create_task(lambda resolve, reject: ran.append(True), TaskOptions(token=token))

    assert ran == []
    assert isinstance(task.exception(), CancellationError)


def test_pending_task_rejects_when_token_fires(runtime):
    token = CancellationToken()
    aborted = []
    task = create_task(
        lambda resolve, reject: runtime.call_later(1, resolve, "late"),
        TaskOptions(token=token, on_cancel=aborted.append),
    )
    runtime.call_later(0.5, token.cancel, "timeout budget spent")

    with pytest.raises(CancellationError, match="timeout budget spent"):
        runtime.run_until_complete(task)
    assert len(aborted) == 1
    assert aborted[0].kind is ErrorKind.CANCELLATION

    runtime.run()
    assert task.state is TaskState.REJECTED


def test_cancel_after_settlement_has_no_effect(runtime, deferred):
    token = CancellationToken()
    task, resolve, _reject = deferred(options=TaskOptions(token=token))

    resolve("kept")
    token.cancel()

    assert task.result() == "kept"


def test_cancellation_reaches_derived_tasks_as_rejection(runtime):
    token = CancellationToken()
    source = delay(1, "value", token=token)
    derived = source.then(lambda v: v.upper())

    token.cancel()
    assert derived.state is TaskState.PENDING
    runtime.run()

    assert isinstance(derived.exception(), CancellationError)
    assert derived.token is None


def test_catch_recovers_from_cancellation(runtime, rejection_events):
    token = CancellationToken()
    source = create_task(lambda resolve, reject: None, TaskOptions(token=token))
    seen = []

    def recover(error):
        seen.append(type(error).__name__)
        return "recovered"

    leaf = source.catch(recover)
    token.cancel("stop")
    runtime.run()

    assert seen == ["CancellationError"]
    assert leaf.result() == "recovered"
    assert rejection_events.unhandled == []


def test_cancelled_chain_reports_only_unhandled_leaf(runtime, rejection_events):
    token = CancellationToken()
    source = delay(1, token=token)
    recovered = source.catch(lambda e: None)
    unobserved = source.then(lambda v: v)

    token.cancel()
    runtime.run()

    assert recovered.result() is None
    assert [e.task_id for e in rejection_events.unhandled] == [unobserved.id]


def test_one_token_cancels_a_whole_chain(runtime):
    token = CancellationToken()
    options = TaskOptions(token=token)

    async def wait(seconds):
        await delay(seconds)

    first = spawn(wait(1), options)
    second = spawn(wait(2), options)
    third = delay(3, token=token)

    token.cancel("shutdown")

    for task in (first, second, third):
        assert isinstance(task.exception(), CancellationError)
