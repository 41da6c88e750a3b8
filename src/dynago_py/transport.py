from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class DynamoDBTransport(Protocol):
    """The slice of the boto3 DynamoDB client this library calls."""

    def get_item(self, **kwargs: Any) -> Mapping[str, Any]: ...

    def put_item(self, **kwargs: Any) -> Mapping[str, Any]: ...

    def delete_item(self, **kwargs: Any) -> Mapping[str, Any]: ...

    def update_item(self, **kwargs: Any) -> Mapping[str, Any]: ...

    def query(self, **kwargs: Any) -> Mapping[str, Any]: ...

    def batch_get_item(self, **kwargs: Any) -> Mapping[str, Any]: ...

    def batch_write_item(self, **kwargs: Any) -> Mapping[str, Any]: ...

    def transact_write_items(self, **kwargs: Any) -> Mapping[str, Any]: ...


type Middleware = Callable[[Any], Any]


@dataclass(frozen=True)
class AwsCallMetric:
    operation: str
    seconds: float
    ok: bool


class _InstrumentedClient:
    def __init__(self, client: Any, on_call: Callable[[AwsCallMetric], None]) -> None:
        self._client = client
        self._on_call = on_call

    def __getattr__(self, name: str) -> Any:
        attr = getattr(self._client, name)
        if name.startswith("_") or not callable(attr):
            return attr

        def wrapped(*args: Any, **kwargs: Any) -> Any:
            start = time.monotonic()
            ok = False
            try:
                out = attr(*args, **kwargs)
                ok = True
                return out
            finally:
                self._on_call(AwsCallMetric(operation=name, seconds=time.monotonic() - start, ok=ok))

        return wrapped


def instrument_client(on_call: Callable[[AwsCallMetric], None]) -> Middleware:
    """Middleware reporting one :class:`AwsCallMetric` per client call."""

    def middleware(client: Any) -> Any:
        return _InstrumentedClient(client, on_call)

    return middleware


def log_calls(level: int = logging.DEBUG) -> Middleware:
    """Middleware logging every call's operation, duration and outcome."""

    def on_call(metric: AwsCallMetric) -> None:
        logger.log(level, "dynamodb %s ok=%s %.3fs", metric.operation, metric.ok, metric.seconds)

    return instrument_client(on_call)


def apply_middlewares(client: Any, middlewares: tuple[Middleware, ...]) -> Any:
    for middleware in middlewares:
        client = middleware(client)
        if client is None:
            raise ValueError("middleware must return a client")
    return client
