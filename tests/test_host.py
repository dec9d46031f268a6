"""Tests for driving a Runtime from asyncio."""

import asyncio

import pytest

from pysettle import (
    AsyncioHost,
    CancellationError,
    CancellationToken,
    Runtime,
    RuntimeConfig,
    Task,
    TaskOptions,
    delay,
    sleep,
    spawn,
    wrap_future,
)


@pytest.fixture
def rt():
    runtime = Runtime(RuntimeConfig(unhandled_rejections="silent"))
    yield runtime
    runtime.close()


@pytest.mark.asyncio
async def test_wait_returns_value(rt):
    async with AsyncioHost(rt) as host:
        task = delay(0.01, "value", runtime=rt)
        assert await host.wait(task) == "value"


@pytest.mark.asyncio
async def test_wait_raises_rejection(rt):
    async def failing():
        await sleep(0.01, runtime=rt)
        raise ValueError("failed in pysettle")

    async with AsyncioHost(rt) as host:
        with pytest.raises(ValueError, match="failed in pysettle"):
            await host.wait(spawn(failing(), runtime=rt))


@pytest.mark.asyncio
async def test_wrap_future_of_coroutine(rt):
    async def fetch():
        await asyncio.sleep(0.01)
        return 42

    async with AsyncioHost(rt) as host:
        task = wrap_future(fetch(), runtime=rt)
        doubled = task.then(lambda v: v * 2)
        assert await host.wait(doubled) == 84


@pytest.mark.asyncio
async def test_mixed_awaits_inside_coroutine(rt):
    async def fetch():
        await asyncio.sleep(0.01)
        return "io result"

    async def workflow():
        await sleep(0.01, runtime=rt)
        value = await wrap_future(fetch(), runtime=rt)
        return value.upper()

    async with AsyncioHost(rt) as host:
        assert await host.wait(spawn(workflow(), runtime=rt)) == "IO RESULT"


@pytest.mark.asyncio
async def test_cancelled_future_rejects_with_cancellation(rt):
    future = asyncio.get_running_loop().create_future()

    async with AsyncioHost(rt) as host:
        task = wrap_future(future, runtime=rt)
        future.cancel()
        with pytest.raises(CancellationError):
            await host.wait(task)


@pytest.mark.asyncio
async def test_aborted_task_cancels_future(rt):
    future = asyncio.get_running_loop().create_future()
    token = CancellationToken()

    async with AsyncioHost(rt):
        task = wrap_future(future, TaskOptions(token=token), runtime=rt)
        token.cancel("not needed")
        await asyncio.sleep(0)

    assert future.cancelled()
    assert isinstance(task.exception(), CancellationError)


@pytest.mark.asyncio
async def test_start_and_stop(rt):
    host = AsyncioHost(rt)
    assert not host.is_running()

    assert host.start() is host
    assert host.is_running()

    host.stop()
    host.stop()
    assert not host.is_running()


@pytest.mark.asyncio
async def test_wait_rejects_foreign_task(rt):
    other = Runtime()
    task = Task.resolved(1, runtime=other)

    async with AsyncioHost(rt) as host:
        with pytest.raises(ValueError):
            await host.wait(task)
    other.close()
