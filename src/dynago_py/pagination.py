from __future__ import annotations

import base64
import binascii
import json
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .cancel import CancelToken, check
from .errors import ValidationError

if TYPE_CHECKING:
    from .codec import AttributeValue, Item

logger = logging.getLogger(__name__)

type FetchPage = Callable[[Item | None, int | None], tuple[list[Item], Item | None]]


@dataclass(frozen=True)
class PageResult:
    items: list[Item]
    cursor: Item | None


def normalize_cursor(last_key: Mapping[str, Any] | None) -> Item | None:
    # an empty LastEvaluatedKey means the same as an absent one
    if not last_key:
        return None
    return dict(last_key)


def paginate(
    fetch_page: FetchPage,
    *,
    limit: int | None = None,
    start_key: Mapping[str, Any] | None = None,
    cancel: CancelToken | None = None,
    operation: str = "query",
) -> PageResult:
    """Drive ``fetch_page`` until ``limit`` items are gathered or the results end.

    ``fetch_page(start_key, remaining)`` performs one round trip and returns the page
    items plus the store's continuation key. Pages are requested strictly one after
    another. The returned cursor resumes right after the last item returned.
    """
    if limit is not None and limit <= 0:
        raise ValidationError("limit must be > 0")

    results: list[Item] = []
    cursor = normalize_cursor(start_key)
    remaining = limit
    pages = 0

    while True:
        check(cancel, operation)
        items, last_key = fetch_page(cursor, remaining)
        pages += 1
        results.extend(items)
        cursor = normalize_cursor(last_key)

        if limit is not None:
            if len(results) >= limit:
                break
            remaining = limit - len(results)

        if cursor is None or not items:
            break

    logger.debug("%s: %d item(s) across %d page(s), more=%s", operation, len(results), pages, cursor is not None)
    return PageResult(items=results, cursor=cursor)


_SCALAR_KINDS = {"S": str, "N": str, "BOOL": bool}
_STRING_SET_KINDS = {"SS", "NS"}


def _single(av: Any) -> tuple[str, Any]:
    if not isinstance(av, dict) or len(av) != 1:
        raise ValueError("attribute value must be a single-key map")
    ((kind, value),) = av.items()
    return str(kind), value


def _convert_av(av: Any, *, encode: bool) -> AttributeValue:
    kind, value = _single(av)

    if kind in _SCALAR_KINDS:
        if not isinstance(value, _SCALAR_KINDS[kind]):
            raise ValueError(f"{kind} value has invalid type {type(value).__name__}")
        return {kind: value}

    if kind == "NULL":
        if value is not True:
            raise ValueError("NULL value must be true")
        return {"NULL": True}

    if kind in _STRING_SET_KINDS:
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise ValueError(f"{kind} value must be a list of strings")
        return {kind: list(value)}

    if kind == "B":
        return {"B": _convert_binary(value, encode=encode)}

    if kind == "BS":
        if not isinstance(value, list):
            raise ValueError("BS value must be a list")
        return {"BS": [_convert_binary(v, encode=encode) for v in value]}

    if kind == "L":
        if not isinstance(value, list):
            raise ValueError("L value must be a list")
        return {"L": [_convert_av(v, encode=encode) for v in value]}

    if kind == "M":
        if not isinstance(value, dict):
            raise ValueError("M value must be a map")
        return {"M": {str(k): _convert_av(value[k], encode=encode) for k in sorted(value)}}

    raise ValueError(f"unsupported attribute value type: {kind}")


def _convert_binary(value: Any, *, encode: bool) -> Any:
    if encode:
        # boto3 hands binaries back as Binary wrappers
        raw = getattr(value, "value", value)
        if not isinstance(raw, (bytes, bytearray)):
            raise ValueError("binary value must be bytes")
        return base64.b64encode(bytes(raw)).decode("ascii")

    if not isinstance(value, str):
        raise ValueError("binary value must be a base64 string")
    try:
        return base64.b64decode(value, validate=True)
    except binascii.Error as err:
        raise ValueError("binary value is not valid base64") from err


def encode_cursor(last_key: Mapping[str, Any] | None) -> str:
    """Turn a continuation key into an opaque URL-safe token; no key gives ``""``."""
    if last_key is None:
        return ""
    if not isinstance(last_key, Mapping):
        raise ValueError("last_key must be a map")
    if not last_key:
        return ""

    payload = {"lastKey": {str(k): _convert_av(last_key[k], encode=True) for k in sorted(last_key)}}
    data = json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    return base64.urlsafe_b64encode(data).decode("ascii")


def decode_cursor(token: str | None) -> Item | None:
    """Inverse of :func:`encode_cursor`; an empty token means "start from the beginning"."""
    raw = str(token or "").strip()
    if not raw:
        return None

    try:
        data = base64.urlsafe_b64decode(raw + "=" * (-len(raw) % 4)).decode("utf-8")
        parsed = json.loads(data)
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as err:
        raise ValueError("cursor is not a valid token") from err

    if not isinstance(parsed, dict):
        raise ValueError("cursor must decode to an object")

    last_key = parsed.get("lastKey")
    if not isinstance(last_key, dict) or not last_key:
        raise ValueError("cursor lastKey is invalid")

    return {str(k): _convert_av(last_key[k], encode=False) for k in sorted(last_key)}
