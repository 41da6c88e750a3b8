from __future__ import annotations

import pytest

from dynago_py import CancelToken, OperationCancelledError
from dynago_py.cancel import check


class _Clock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def test_token_without_deadline() -> None:
    token = CancelToken()

    assert not token.cancelled
    assert token.remaining() is None
    token.raise_if_cancelled("get_item")


def test_explicit_cancel_keeps_first_reason() -> None:
    token = CancelToken()
    token.cancel("shutting down")
    token.cancel("again")

    assert token.cancelled
    assert token.reason == "shutting down"
    with pytest.raises(OperationCancelledError, match="put_item: shutting down"):
        token.raise_if_cancelled("put_item")


def test_deadline_expires() -> None:
    clock = _Clock()
    token = CancelToken(timeout=5, now=clock)

    assert not token.cancelled
    assert token.remaining() == 5

    clock.now += 5
    assert token.cancelled
    assert token.reason == "deadline exceeded"
    assert token.remaining() == 0.0
    with pytest.raises(OperationCancelledError, match="query: deadline exceeded"):
        check(token, "query")


def test_sleep_returns_immediately_once_cancelled() -> None:
    token = CancelToken()
    token.cancel()

    token.sleep(30)


def test_negative_timeout_is_rejected() -> None:
    with pytest.raises(ValueError, match="timeout must be >= 0"):
        CancelToken(timeout=-1)


def test_check_without_token_is_noop() -> None:
    check(None, "query")
