"""
Runtime configuration.

RuntimeConfig is immutable. Adjust it with the builder methods, or read
it from the environment for deployments that inject settings:

    PYSETTLE_UNHANDLED_REJECTIONS   "warn" (default) or "silent"
    PYSETTLE_SLOW_CALLBACK_MS       log callbacks slower than this, unset disables

Example:
    ```python
    config = RuntimeConfig().with_slow_callback_ms(50)
    runtime = Runtime(config)

    # $ export PYSETTLE_UNHANDLED_REJECTIONS=silent
    runtime = Runtime(RuntimeConfig.from_env())
    ```
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, replace

__all__ = ["RuntimeConfig", "UNHANDLED_REJECTION_MODES"]

UNHANDLED_REJECTION_MODES = ("warn", "silent")

ENV_UNHANDLED_REJECTIONS = "PYSETTLE_UNHANDLED_REJECTIONS"
ENV_SLOW_CALLBACK_MS = "PYSETTLE_SLOW_CALLBACK_MS"


@dataclass(frozen=True)
class RuntimeConfig:
    """
    Settings for a Runtime.

    Attributes:
        unhandled_rejections: "warn" logs every unhandled rejection at
            ERROR level before calling the rejection hooks; "silent" only
            calls the hooks.
        slow_callback_ms: Log a warning for any scheduled callback that
            runs longer than this many milliseconds. None disables it.
    """

    unhandled_rejections: str = "warn"
    slow_callback_ms: float | None = None

    def __post_init__(self) -> None:
        if self.unhandled_rejections not in UNHANDLED_REJECTION_MODES:
            raise ValueError(
                f"unhandled_rejections must be one of {UNHANDLED_REJECTION_MODES}, "
                f"got {self.unhandled_rejections!r}"
            )
        if self.slow_callback_ms is not None and self.slow_callback_ms < 0:
            raise ValueError(f"slow_callback_ms must not be negative, got {self.slow_callback_ms}")

    def with_unhandled_rejections(self, mode: str) -> RuntimeConfig:
        return replace(self, unhandled_rejections=mode)

    def with_slow_callback_ms(self, threshold_ms: float | None) -> RuntimeConfig:
        return replace(self, slow_callback_ms=threshold_ms)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> RuntimeConfig:
        """
        Build a config from environment variables.

        Unset variables keep their defaults. Malformed values raise
        ValueError instead of being ignored.
        """
        env = os.environ if environ is None else environ

        mode = env.get(ENV_UNHANDLED_REJECTIONS, "warn").strip().lower() or "warn"

        slow_ms: float | None = None
        raw_slow = env.get(ENV_SLOW_CALLBACK_MS, "").strip()
        if raw_slow:
            try:
                slow_ms = float(raw_slow)
            except ValueError as e:
                raise ValueError(
                    f"{ENV_SLOW_CALLBACK_MS} must be a number, got {raw_slow!r}"
                ) from e

        return cls(unhandled_rejections=mode, slow_callback_ms=slow_ms)
