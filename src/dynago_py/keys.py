from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from .errors import ValidationError


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, bytes, bytearray)) and len(value) == 0:
        return True
    return False


@dataclass(frozen=True)
class KeySchema:
    partition_key: str = "pk"
    sort_key: str = "sk"

    def __post_init__(self) -> None:
        if not self.partition_key:
            raise ValueError("partition_key name is required")
        if not self.sort_key:
            raise ValueError("sort_key name is required")
        if self.partition_key == self.sort_key:
            raise ValueError("partition_key and sort_key must differ")

    def is_key_field(self, name: str) -> bool:
        return name in (self.partition_key, self.sort_key)

    def new_keys(self, pk: Any, sk: Any, serialize: Callable[[Any], Any]) -> dict[str, Any]:
        # DynamoDB rejects empty-string key attributes
        if _is_blank(pk):
            raise ValidationError("partition key value is required")
        if _is_blank(sk):
            raise ValidationError("sort key value is required")

        return {self.partition_key: serialize(pk), self.sort_key: serialize(sk)}

    def key_values(self, key: dict[str, Any], deserialize: Callable[[Any], Any]) -> tuple[Any, Any]:
        if self.partition_key not in key or self.sort_key not in key:
            raise ValidationError("key is missing partition or sort key attribute")
        return deserialize(key[self.partition_key]), deserialize(key[self.sort_key])
