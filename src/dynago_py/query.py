from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .errors import ValidationError
from .expression import Bindings, Condition, placeholder_token
from .pagination import decode_cursor, encode_cursor

if TYPE_CHECKING:
    from .codec import Codec, Item


@dataclass(frozen=True)
class QueryResult[T]:
    items: list[T]
    cursor: Item | None

    @property
    def has_more(self) -> bool:
        return self.cursor is not None

    @property
    def next_token(self) -> str:
        """The cursor as an opaque string, ``""`` when the results are exhausted."""
        return encode_cursor(self.cursor)


def resolve_start_key(start_key: Item | str | None) -> Item | None:
    if start_key is None:
        return None
    if isinstance(start_key, str):
        try:
            return decode_cursor(start_key)
        except ValueError as err:
            raise ValidationError("invalid cursor") from err
    if not isinstance(start_key, dict):
        raise ValidationError("start_key must be a key map or a cursor token")
    return dict(start_key) or None


def projection_expression(fields: Sequence[str], bindings: Bindings) -> str:
    if isinstance(fields, str):
        raise ValidationError("fields must be a sequence of attribute names")
    if not fields:
        raise ValidationError("fields must not be empty")

    taken: set[str] = set()
    refs: list[str] = []
    for field_name in fields:
        if not field_name:
            raise ValidationError("empty projection field")
        token = placeholder_token(field_name, taken)
        refs.append(bindings.bind_name(f"#p_{token}", field_name))
    return ", ".join(refs)


def build_query_request(
    table_name: str,
    condition: str,
    params: dict[str, Any] | None,
    codec: Codec,
    *,
    names: dict[str, str] | None = None,
    fields: Sequence[str] | None = None,
    filter: str | Condition | None = None,
    index: str | None = None,
    scan_forward: bool = True,
    consistent_read: bool = False,
) -> dict[str, Any]:
    if not condition or not condition.strip():
        raise ValidationError("key condition expression is required")

    bindings = Bindings()
    bindings.bind_all(names, params, codec)

    req: dict[str, Any] = {
        "TableName": table_name,
        "KeyConditionExpression": condition,
        "ScanIndexForward": scan_forward,
    }
    if consistent_read:
        req["ConsistentRead"] = True
    if index is not None:
        req["IndexName"] = index
    if fields is not None:
        req["ProjectionExpression"] = projection_expression(fields, bindings)
    if filter is not None:
        if isinstance(filter, Condition):
            bindings.bind_all(filter.names, filter.values, codec)
            req["FilterExpression"] = filter.expression
        else:
            req["FilterExpression"] = filter

    bindings.apply_to(req)
    return req
