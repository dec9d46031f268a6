"""Tests for the Runtime loop: queues, ordering, clocks and lifecycle."""

import logging
import time

import pytest

from pysettle import (
    DeadlockError,
    Runtime,
    RuntimeClosedError,
    RuntimeConfig,
    RuntimeState,
    Task,
    TaskState,
    VirtualClock,
    delay,
    get_current_runtime,
    set_default_runtime,
    sleep,
    use_runtime,
)


def test_microtasks_run_before_macrotasks(runtime):
    order = []
    runtime.call_later(0, order.append, "timer")
    runtime.call_soon(order.append, "micro1")
    runtime.call_soon(lambda: runtime.call_soon(order.append, "micro2"))

    runtime.run()

    assert order == ["micro1", "micro2", "timer"]


def test_microtasks_are_fifo(runtime):
    order = []
    for index in range(10):
        runtime.call_soon(order.append, index)

    runtime.run()

    assert order == list(range(10))


def test_timers_fire_by_deadline_then_submission(runtime):
    order = []
    runtime.call_later(0.2, order.append, "b")
    runtime.call_later(0.1, order.append, "a1")
    runtime.call_later(0.1, order.append, "a2")

    runtime.run()

    assert order == ["a1", "a2", "b"]
    assert runtime.time() == pytest.approx(0.2)


def test_microtasks_drain_between_macrotasks(runtime):
    order = []

    def first_timer():
        order.append("t1")
        runtime.call_soon(order.append, "micro")

    runtime.call_later(0.1, first_timer)
    runtime.call_later(0.1, order.append, "t2")

    runtime.run()

    assert order == ["t1", "micro", "t2"]


def test_timer_continuations_run_before_next_timer(runtime):
    order = []
    delay(0.1).then(lambda _v: order.append("then"))
    runtime.call_later(0.1, order.append, "timer")

    runtime.run()

    assert order == ["then", "timer"]


def test_state_machine_transitions(runtime):
    observed = []
    runtime.call_soon(lambda: observed.append(runtime.state))
    runtime.call_later(0.1, lambda: observed.append(runtime.state))

    assert runtime.state is RuntimeState.IDLE
    runtime.run()

    assert observed == [RuntimeState.DRAINING, RuntimeState.PROCESSING_MACROTASK]
    assert runtime.state is RuntimeState.IDLE

    runtime.close()
    assert runtime.state is RuntimeState.TERMINATED


def test_scheduling_on_closed_runtime_raises(runtime):
    runtime.close()

    assert runtime.is_closed()
    with pytest.raises(RuntimeClosedError):
        runtime.call_soon(print)
    with pytest.raises(RuntimeClosedError):
        runtime.call_later(1, print)
    with pytest.raises(RuntimeClosedError):
        runtime.run()


def test_close_drains_microtasks_and_drops_timers(runtime):
    order = []
    runtime.call_soon(order.append, "micro")
    handle = runtime.call_later(1, order.append, "timer")

    runtime.close()
    runtime.close()

    assert order == ["micro"]
    assert handle.cancelled()
    assert not runtime.has_pending_work()


def test_run_close_when_idle(clock):
    rt = Runtime(clock=clock)
    rt.call_later(0.5, lambda: None)

    rt.run(close_when_idle=True)

    assert rt.is_closed()


def test_close_from_microtask_stays_closed(runtime):
    order = []
    runtime.call_soon(runtime.close)
    runtime.call_soon(order.append, "queued before close")
    runtime.call_later(1, order.append, "timer")

    runtime.run_once()

    assert runtime.is_closed()
    assert runtime.state is RuntimeState.TERMINATED
    assert order == ["queued before close"]
    with pytest.raises(RuntimeClosedError):
        runtime.call_soon(print)


def test_close_from_timer_stops_run(runtime):
    order = []
    runtime.call_later(1, runtime.close)
    runtime.call_later(2, order.append, "never")

    runtime.run()

    assert runtime.is_closed()
    assert order == []
    assert runtime.time() == 1


def test_run_until_complete_raises_when_callback_closes_runtime(runtime):
    pending = delay(2, "late")
    runtime.call_later(1, runtime.close)

    with pytest.raises(RuntimeClosedError):
        runtime.run_until_complete(pending)
    assert pending.state is TaskState.PENDING


def test_callback_exception_is_logged_and_loop_continues(runtime, caplog):
    order = []

    def boom():
        raise ValueError("callback failed")

    runtime.call_soon(boom)
    runtime.call_soon(order.append, "after")

    with caplog.at_level(logging.ERROR, logger="pysettle.executor.runtime"):
        runtime.run()

    assert order == ["after"]
    assert "Exception in scheduled callback" in caplog.text


def test_slow_callback_warning(clock, caplog):
    rt = Runtime(RuntimeConfig(slow_callback_ms=1), clock=clock)
    rt.call_soon(time.sleep, 0.005)

    with caplog.at_level(logging.WARNING, logger="pysettle.executor.runtime"):
        rt.run()

    assert "Slow callback" in caplog.text
    rt.close()


def test_run_once_is_not_reentrant(runtime):
    errors = []

    def reenter():
        try:
            runtime.run_once()
        except RuntimeError as e:
            errors.append(e)

    runtime.call_soon(reenter)
    runtime.run()

    assert len(errors) == 1


def test_run_once_returns_next_deadline(runtime):
    runtime.call_later(0.3, lambda: None)
    runtime.call_later(0.1, lambda: None)

    assert runtime.run_once() == pytest.approx(0.1)


def test_next_deadline_skips_cancelled_timers(runtime):
    first = runtime.call_later(0.1, lambda: None)
    runtime.call_later(0.2, lambda: None)

    first.cancel()

    assert first.cancelled()
    assert runtime.next_deadline() == pytest.approx(0.2)


def test_cancelled_timer_does_not_fire(runtime):
    fired = []
    handle = runtime.call_later(0.1, fired.append, True)

    handle.cancel()
    runtime.run()

    assert fired == []
    assert not handle.fired()


def test_run_until_complete_returns_value(runtime):
    async def compute():
        await sleep(0.25)
        return "value"

    assert runtime.run_until_complete(compute()) == "value"
    assert runtime.time() == pytest.approx(0.25)


def test_run_until_complete_raises_error(runtime):
    with pytest.raises(KeyError):
        runtime.run_until_complete(Task.rejected(KeyError("missing")))


def test_run_until_complete_detects_deadlock(runtime):
    with pytest.raises(DeadlockError):
        runtime.run_until_complete(Task(runtime=runtime))


def test_run_until_complete_rejects_foreign_task(runtime, clock):
    other = Runtime(clock=clock)
    task = Task.resolved(1, runtime=other)

    with pytest.raises(ValueError):
        runtime.run_until_complete(task)
    other.close()


def test_virtual_clock_jumps_to_deadlines(runtime):
    runtime.run_until_complete(delay(3600, "an hour later"))

    assert runtime.time() == pytest.approx(3600)


def test_virtual_clock_cannot_go_backwards():
    clock = VirtualClock(start=5)

    clock.advance(1)
    assert clock.now() == 6
    with pytest.raises(ValueError):
        clock.advance(-1)


def test_with_clock_refuses_while_timers_pending(runtime):
    runtime.call_later(1, lambda: None)

    with pytest.raises(RuntimeError):
        runtime.with_clock(VirtualClock())


def test_wakeup_called_when_work_arrives(runtime):
    wakeups = []
    runtime.set_wakeup(lambda: wakeups.append(True))

    runtime.call_soon(lambda: None)
    runtime.call_soon(lambda: None)
    assert len(wakeups) == 1

    runtime.call_later(1, lambda: None)
    assert len(wakeups) == 2
    runtime.set_wakeup(None)


def test_use_runtime_installs_current_runtime(clock):
    first = Runtime(clock=clock)
    second = Runtime(clock=clock)

    with use_runtime(first):
        assert get_current_runtime() is first
        with use_runtime(second):
            assert get_current_runtime() is second
        assert get_current_runtime() is first

    first.close()
    second.close()


def test_default_runtime_is_created_lazily():
    set_default_runtime(None)
    try:
        default = get_current_runtime()
        assert isinstance(default, Runtime)
        assert get_current_runtime() is default

        default.close()
        assert get_current_runtime() is not default
    finally:
        set_default_runtime(None)
