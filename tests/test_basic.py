"""
Basic tests for the pysettle package surface.

Tests imports, version and the end-to-end example from the package docs.
"""

import pysettle
from pysettle import Runtime, all_of, delay, spawn


def test_import():
    """Test that the main entry points are exported."""
    for name in ("Task", "Runtime", "spawn", "all_of", "for_each", "CancellationToken"):
        assert hasattr(pysettle, name)


def test_all_names_exist():
    """Every name in __all__ resolves."""
    for name in pysettle.__all__:
        assert hasattr(pysettle, name), name


def test_version():
    """Test that version is available."""
    assert isinstance(pysettle.__version__, str)


def test_quickstart(clock):
    async def greet():
        name, punctuation = await all_of([delay(0.01, "world"), delay(0.02, "!")])
        return f"hello {name}{punctuation}"

    runtime = Runtime(clock=clock)

    assert runtime.run_until_complete(greet()) == "hello world!"
    assert runtime.time() == 0.02

    runtime.close()


def test_spawn_uses_current_runtime(runtime):
    async def answer():
        return 42

    task = spawn(answer())

    assert task.runtime is runtime
    assert task.result() == 42
