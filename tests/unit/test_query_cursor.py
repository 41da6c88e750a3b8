from __future__ import annotations

import base64
import json

import pytest
from boto3.dynamodb.types import Binary

from dynago_py import decode_cursor, encode_cursor


def _token(payload: object) -> str:
    return base64.urlsafe_b64encode(json.dumps(payload).encode("utf-8")).decode("ascii")


def test_cursor_round_trip() -> None:
    key = {"pk": {"S": "users#1"}, "sk": {"N": "42"}, "gsi": {"M": {"a": {"L": [{"BOOL": True}, {"NULL": True}]}}}}

    token = encode_cursor(key)

    assert token
    assert decode_cursor(token) == key


def test_cursor_round_trip_with_binary_keys() -> None:
    token = encode_cursor({"pk": {"B": Binary(b"\x00\x01")}, "sk": {"BS": [b"\xff"]}})

    assert decode_cursor(token) == {"pk": {"B": b"\x00\x01"}, "sk": {"BS": [b"\xff"]}}


def test_empty_cursor_means_no_cursor() -> None:
    assert encode_cursor(None) == ""
    assert encode_cursor({}) == ""
    assert decode_cursor("") is None
    assert decode_cursor(None) is None
    assert decode_cursor("   ") is None


def test_encode_cursor_rejects_invalid_keys() -> None:
    with pytest.raises(ValueError, match="last_key must be a map"):
        encode_cursor("nope")  # type: ignore[arg-type]
    with pytest.raises(ValueError, match="unsupported attribute value type"):
        encode_cursor({"pk": {"X": "a"}})
    with pytest.raises(ValueError, match="single-key map"):
        encode_cursor({"pk": {"S": "a", "N": "1"}})


@pytest.mark.parametrize(
    ("token", "message"),
    [
        ("%%%", "cursor is not a valid token"),
        (base64.urlsafe_b64encode(b"hello").decode("ascii"), "cursor is not a valid token"),
        (_token([1, 2]), "cursor must decode to an object"),
        (_token({"lastKey": {}}), "cursor lastKey is invalid"),
        (_token({"lastKey": {"pk": {"N": 5}}}), "N value has invalid type"),
        (_token({"lastKey": {"pk": {"B": "***"}}}), "binary value is not valid base64"),
    ],
)
def test_decode_cursor_rejects_garbage(token: str, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        decode_cursor(token)
