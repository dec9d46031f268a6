"""Tests for RuntimeConfig, RetryPolicy and the error taxonomy."""

from dataclasses import FrozenInstanceError

import pytest

from pysettle import (
    AggregateError,
    CancellationError,
    ErrorKind,
    ExecutionError,
    RetryableError,
    RetryPolicy,
    RuntimeConfig,
    TaskError,
    TaskState,
    TaskTimeoutError,
    classify,
)

# =============================================================================
# RuntimeConfig
# =============================================================================


def test_config_defaults():
    config = RuntimeConfig()

    assert config.unhandled_rejections == "warn"
    assert config.slow_callback_ms is None


def test_config_builders_return_copies():
    base = RuntimeConfig()
    quiet = base.with_unhandled_rejections("silent").with_slow_callback_ms(25)

    assert quiet.unhandled_rejections == "silent"
    assert quiet.slow_callback_ms == 25
    assert base == RuntimeConfig()


def test_config_is_frozen():
    with pytest.raises(FrozenInstanceError):
        RuntimeConfig().unhandled_rejections = "silent"


def test_config_validation():
    with pytest.raises(ValueError):
        RuntimeConfig(unhandled_rejections="loud")
    with pytest.raises(ValueError):
        RuntimeConfig(slow_callback_ms=-1)


def test_config_from_env():
    config = RuntimeConfig.from_env(
        {"PYSETTLE_UNHANDLED_REJECTIONS": " Silent ", "PYSETTLE_SLOW_CALLBACK_MS": "12.5"}
    )

    assert config == RuntimeConfig(unhandled_rejections="silent", slow_callback_ms=12.5)


def test_config_from_empty_env():
    assert RuntimeConfig.from_env({}) == RuntimeConfig()


def test_config_from_env_rejects_malformed_numbers():
    with pytest.raises(ValueError, match="PYSETTLE_SLOW_CALLBACK_MS"):
        RuntimeConfig.from_env({"PYSETTLE_SLOW_CALLBACK_MS": "fast"})


def test_config_from_process_env(monkeypatch):
    monkeypatch.setenv("PYSETTLE_UNHANDLED_REJECTIONS", "silent")
    monkeypatch.delenv("PYSETTLE_SLOW_CALLBACK_MS", raising=False)

    assert RuntimeConfig.from_env().unhandled_rejections == "silent"


# =============================================================================
# RetryPolicy
# =============================================================================


def test_retry_policy_presets():
    assert RetryPolicy.NONE.max_attempts == 1
    assert RetryPolicy.STANDARD.delay_for_attempt(1) == 100
    assert RetryPolicy.STANDARD.delay_for_attempt(2) == 200
    assert RetryPolicy.STANDARD.delay_for_attempt(3) is None
    assert RetryPolicy.AGGRESSIVE.max_attempts == 10


def test_retry_policy_delay_is_capped():
    policy = RetryPolicy(
        max_attempts=10, initial_delay_ms=100, max_delay_ms=250, backoff_multiplier=2.0
    )

    assert [policy.delay_for_attempt(n) for n in range(1, 5)] == [100, 200, 250, 250]


def test_retry_policy_with_max_attempts():
    policy = RetryPolicy.with_max_attempts(5)

    assert policy.max_attempts == 5
    assert policy.initial_delay_ms == RetryPolicy.STANDARD.initial_delay_ms


def test_retry_policy_validation():
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0, initial_delay_ms=0, max_delay_ms=0, backoff_multiplier=1.0)
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=1, initial_delay_ms=-1, max_delay_ms=0, backoff_multiplier=1.0)
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=1, initial_delay_ms=0, max_delay_ms=0, backoff_multiplier=0.5)


def test_retryable_error_defaults_to_retryable():
    assert RetryableError("transient").is_retryable()


# =============================================================================
# Errors
# =============================================================================


def test_classify():
    assert classify(ValueError()) is ErrorKind.EXECUTION
    assert classify(ExecutionError()) is ErrorKind.EXECUTION
    assert classify(CancellationError()) is ErrorKind.CANCELLATION
    assert classify(TaskTimeoutError(timeout=1.0)) is ErrorKind.TIMEOUT
    assert classify(AggregateError([])) is ErrorKind.AGGREGATE


def test_errors_share_a_base():
    for error in (ExecutionError(), CancellationError(), TaskTimeoutError(), AggregateError([])):
        assert isinstance(error, TaskError)


def test_cancellation_error_message_and_reason():
    assert str(CancellationError()) == "operation cancelled"
    assert CancellationError().reason is None
    assert CancellationError("user abort").reason == "user abort"


def test_timeout_error_message():
    error = TaskTimeoutError(timeout=2.5)

    assert error.timeout == 2.5
    assert "2.5s" in str(error)


def test_task_error_keeps_cause():
    cause = OSError("disk full")
    error = ExecutionError("write failed", cause=cause)

    assert error.__cause__ is cause


def test_aggregate_error_collects_errors():
    errors = [ValueError("a"), KeyError("b")]
    error = AggregateError(iter(errors))

    assert error.errors == errors
    assert "2 task(s) failed" in str(error)
    assert "ValueError" in repr(error)


def test_task_state_is_terminal():
    assert not TaskState.PENDING.is_terminal
    assert TaskState.FULFILLED.is_terminal
    assert TaskState.REJECTED.is_terminal
