"""Cooperative cancellation.

A CancellationToken is a shared, write-once flag. Cancelling it never
interrupts code that is already running; tasks bound to the token observe
it when they settle and at every await point, and reject with
CancellationError instead of fulfilling.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from pysettle.core.errors import CancellationError

logger = logging.getLogger(__name__)

__all__ = ["CancellationToken", "CancellationRegistration"]

CancelCallback = Callable[[str | None], None]


class CancellationRegistration:
    """Handle returned by `CancellationToken.on_cancel()`.

    Disposing it detaches the callback. Disposing twice is harmless.
    """

    def __init__(self, token: CancellationToken | None, callback: CancelCallback):
        self._token = token
        self._callback = callback

    def dispose(self) -> None:
        if self._token is not None:
            self._token._callbacks.pop(self, None)
            self._token = None


class CancellationToken:
    """
    Shared, monotonic cancellation signal.

    Once cancelled a token stays cancelled; later `cancel()` calls are
    no-ops and keep the first reason.

    Example:
        ```python
        token = CancellationToken()
        task = spawn(download(url), TaskOptions(token=token))
        token.cancel("user pressed stop")
        # task rejects with CancellationError("user pressed stop")
        ```
    """

    def __init__(self, parent: CancellationToken | None = None):
        self._cancelled = False
        self._reason: str | None = None
        # dict keeps registration order and gives O(1) removal
        self._callbacks: dict[CancellationRegistration, CancelCallback] = {}
        self._parent_registration: CancellationRegistration | None = None
        if parent is not None:
            # Runs self.cancel() right away when the parent is already cancelled.
            registration = parent.on_cancel(self.cancel)
            if not self._cancelled:
                self._parent_registration = registration

    def cancel(self, reason: str | None = None) -> None:
        """Cancel the token and notify registered callbacks in registration order."""
        if self._cancelled:
            return
        self._cancelled = True
        self._reason = reason
        self.dispose()
        logger.debug(f"Cancellation requested: {reason or 'no reason given'}")

        callbacks = list(self._callbacks.values())
        self._callbacks.clear()
        for callback in callbacks:
            try:
                callback(reason)
            except Exception:
                logger.exception(f"Cancellation callback {callback!r} raised")

    def is_cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> str | None:
        """The reason passed to `cancel()`, if any."""
        return self._reason

    def on_cancel(self, callback: CancelCallback) -> CancellationRegistration:
        """
        Register `callback(reason)` to run when the token is cancelled.

        If the token is already cancelled the callback runs immediately.
        """
        if self._cancelled:
            callback(self._reason)
            return CancellationRegistration(None, callback)
        registration = CancellationRegistration(self, callback)
        self._callbacks[registration] = callback
        return registration

    def raise_if_cancelled(self) -> None:
        """Raise CancellationError if the token has been cancelled."""
        if self._cancelled:
            raise CancellationError(self._reason)

    def child(self) -> CancellationToken:
        """
        A new token that is cancelled whenever this one is (but not vice versa).

        The parent holds a registration for the child until the child is
        cancelled or disposed. Scope short-lived children with `with`:

            ```python
            with shutdown.child() as request_token:
                task = spawn(handle(request), TaskOptions(token=request_token))
                ...
            ```
        """
        return CancellationToken(parent=self)

    def dispose(self) -> None:
        """Detach from the parent token. Does not cancel this token; disposing twice is harmless."""
        if self._parent_registration is not None:
            self._parent_registration.dispose()
            self._parent_registration = None

    def __enter__(self) -> CancellationToken:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.dispose()

    def __repr__(self) -> str:
        if self._cancelled:
            return f"CancellationToken(cancelled, reason={self._reason!r})"
        return "CancellationToken(active)"
