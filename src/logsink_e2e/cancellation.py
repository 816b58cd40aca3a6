"""Cancellation token shared by the fixture and the scenario.

The token is the only channel through which a run is interrupted. The CLI
translates OS signals into ``cancel()``; tests call it directly. Subscribers
(the fixture lifecycle manager) run once, on the thread that cancels.

Example:
    token = CancellationToken()
    token.subscribe(lambda reason: print(f"cancelled: {reason}"))
    token.cancel("SIGINT")
"""

from __future__ import annotations

import threading
from collections.abc import Callable

import structlog

logger = structlog.get_logger(__name__)

CancelCallback = Callable[[str], None]


class CancellationToken:
    """One-shot cancellation signal with subscriber callbacks.

    Attributes:
        reason: Why the token was cancelled, or None while still active.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: list[CancelCallback] = []
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        """True once cancel() has been called."""
        return self._event.is_set()

    def subscribe(self, callback: CancelCallback) -> None:
        """Register a callback invoked with the cancel reason.

        If the token is already cancelled the callback runs immediately.
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
            reason = self.reason or ""
        callback(reason)

    def cancel(self, reason: str = "cancelled") -> bool:
        """Cancel the token and run subscribers.

        Only the first call has an effect; later calls return False.

        Args:
            reason: Human-readable cause, e.g. "SIGINT".

        Returns:
            True if this call performed the cancellation.
        """
        with self._lock:
            if self._event.is_set():
                return False
            self.reason = reason
            self._event.set()
            callbacks = list(self._callbacks)
            self._callbacks.clear()

        logger.warning("cancellation.requested", reason=reason, subscribers=len(callbacks))
        for callback in callbacks:
            callback(reason)
        return True

    def wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds, waking early on cancellation.

        Returns:
            True if the token was cancelled.
        """
        return self._event.wait(timeout)


__all__ = ["CancelCallback", "CancellationToken"]
