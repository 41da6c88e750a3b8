from __future__ import annotations

import threading
import time
from collections.abc import Callable

from .errors import OperationCancelledError


class CancelToken:
    """Cancellation signal shared between a caller and a running operation.

    A token is cancelled explicitly with :meth:`cancel` or implicitly once its
    ``timeout`` elapses. Operations check it before every round trip and stop with
    :class:`OperationCancelledError`; results gathered so far are discarded.
    """

    def __init__(self, *, timeout: float | None = None, now: Callable[[], float] | None = None) -> None:
        if timeout is not None and timeout < 0:
            raise ValueError("timeout must be >= 0")

        self._now = now or time.monotonic
        self._deadline = self._now() + timeout if timeout is not None else None
        self._event = threading.Event()
        self._reason = ""

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and self._now() >= self._deadline:
            self._reason = self._reason or "deadline exceeded"
            self._event.set()
            return True
        return False

    @property
    def reason(self) -> str:
        return self._reason

    def remaining(self) -> float | None:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - self._now())

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self._reason = reason
        self._event.set()

    def raise_if_cancelled(self, operation: str) -> None:
        if self.cancelled:
            raise OperationCancelledError(f"{operation}: {self._reason or 'cancelled'}")

    def sleep(self, seconds: float) -> None:
        """Wait up to ``seconds``, returning early when the token is cancelled."""
        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, remaining)
        if seconds > 0:
            self._event.wait(seconds)


def check(cancel: CancelToken | None, operation: str) -> None:
    if cancel is not None:
        cancel.raise_if_cancelled(operation)
