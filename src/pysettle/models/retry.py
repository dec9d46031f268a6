"""
Retry policy configuration for the retry combinator.

Design Pattern: Strategy Pattern
RetryPolicy encapsulates how often and how patiently a failing task
factory is re-run, so `retry()` itself stays a plain loop.

Retrying is composed by the caller around a factory; tasks themselves
never retry. A task, once settled, stays settled.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, cast


@dataclass(frozen=True)
class RetryPolicy:
    """
    Configuration for retry behavior.

    Examples:
        # Simple: just specify max attempts (uses standard delays)
        policy = RetryPolicy.with_max_attempts(3)

        # Named policy: predefined sensible defaults
        policy = RetryPolicy.STANDARD

        # Custom policy: full control
        policy = RetryPolicy(
            max_attempts=5,
            initial_delay_ms=50,
            max_delay_ms=2000,
            backoff_multiplier=2.0,
        )
    """

    max_attempts: int
    """Maximum number of attempts, including the first one.

    max_attempts = 3 means:
    - Attempt 1: immediately
    - Attempt 2: after initial_delay_ms
    - Attempt 3: after initial_delay_ms * backoff_multiplier
    """

    initial_delay_ms: int
    """Delay before the first retry in milliseconds."""

    max_delay_ms: int
    """Upper bound for any single delay in milliseconds."""

    backoff_multiplier: float
    """Growth factor applied to the delay after every failed retry."""

    if TYPE_CHECKING:
        NONE: RetryPolicy
        STANDARD: RetryPolicy
        AGGRESSIVE: RetryPolicy
    else:
        # Set after class definition
        NONE = cast("RetryPolicy", None)
        STANDARD = cast("RetryPolicy", None)
        AGGRESSIVE = cast("RetryPolicy", None)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {self.max_attempts}")
        if self.initial_delay_ms < 0 or self.max_delay_ms < 0:
            raise ValueError("retry delays must not be negative")
        if self.backoff_multiplier < 1.0:
            raise ValueError(
                f"backoff_multiplier must be >= 1.0, got {self.backoff_multiplier}"
            )

    @classmethod
    def with_max_attempts(cls, max_attempts: int) -> RetryPolicy:
        """
        Create a policy with custom max_attempts and the standard delays.

        Example:
            policy = RetryPolicy.with_max_attempts(5)
        """
        return cls(
            max_attempts=max_attempts,
            initial_delay_ms=100,
            max_delay_ms=5000,
            backoff_multiplier=2.0,
        )

    def delay_for_attempt(self, attempt: int) -> int | None:
        """
        Delay before the attempt that follows `attempt`.

        Uses exponential backoff: initial_delay * backoff_multiplier^(attempt-1),
        capped at max_delay.

        Args:
            attempt: The attempt that just failed (1-indexed)

        Returns:
            Delay in milliseconds, or None when no attempts remain.

        Example:
            policy = RetryPolicy.STANDARD
            policy.delay_for_attempt(1)  # 100
            policy.delay_for_attempt(2)  # 200
            policy.delay_for_attempt(3)  # None
        """
        if attempt >= self.max_attempts:
            return None

        delay_ms = self.initial_delay_ms * self.backoff_multiplier ** (attempt - 1)
        return int(min(delay_ms, self.max_delay_ms))


RetryPolicy.NONE = RetryPolicy(
    max_attempts=1, initial_delay_ms=0, max_delay_ms=0, backoff_multiplier=1.0
)

RetryPolicy.STANDARD = RetryPolicy(
    max_attempts=3,
    initial_delay_ms=100,
    max_delay_ms=5000,
    backoff_multiplier=2.0,
)

RetryPolicy.AGGRESSIVE = RetryPolicy(
    max_attempts=10,
    initial_delay_ms=10,
    max_delay_ms=1000,
    backoff_multiplier=1.5,
)


class RetryableError(Exception):
    """
    Base class for errors that decide whether they should be retried.

    Example:
        class FetchError(RetryableError):
            def __init__(self, message: str, transient: bool = True):
                super().__init__(message)
                self._transient = transient

            def is_retryable(self) -> bool:
                return self._transient

        raise FetchError("connection reset")            # retried
        raise FetchError("404 not found", transient=False)  # not retried
    """

    def is_retryable(self) -> bool:
        """True if the failure is transient and another attempt may succeed."""
        return True
