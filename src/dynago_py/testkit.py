from __future__ import annotations

import threading
from typing import Any

from .mocks import ANY, FakeDynamoDBClient, client_error


def no_sleep(_: float) -> None:
    return None


class RecordingSleep:
    """Sleep replacement that records the requested delays instead of waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class SerializedClient:
    """Wraps a client so that each call runs under one lock.

    Useful with in-memory fakes whose individual calls are not atomic across
    threads; a conditional write then behaves like the real store's.
    """

    def __init__(self, client: Any) -> None:
        self._client = client
        self._lock = threading.Lock()

    def __getattr__(self, name: str) -> Any:
        attr = getattr(self._client, name)
        if name.startswith("_") or not callable(attr):
            return attr

        def locked(*args: Any, **kwargs: Any) -> Any:
            with self._lock:
                return attr(*args, **kwargs)

        return locked


def serialized(client: Any) -> SerializedClient:
    """Middleware form of :class:`SerializedClient`."""
    return SerializedClient(client)


__all__ = [
    "ANY",
    "FakeDynamoDBClient",
    "RecordingSleep",
    "SerializedClient",
    "client_error",
    "no_sleep",
    "serialized",
]
