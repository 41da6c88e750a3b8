from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .errors import ValidationError

type TransactEntry = dict[str, Any]


@dataclass(frozen=True)
class TransactPutInput:
    pk: Any
    sk: Any
    item: Any


@dataclass(frozen=True)
class TransactDeleteInput:
    pk: Any
    sk: Any


def entry_kind(entry: TransactEntry) -> str:
    if not isinstance(entry, dict) or len(entry) != 1:
        raise ValidationError("transact entry must hold exactly one action")
    ((kind, _),) = entry.items()
    if kind not in {"Put", "Delete", "Update", "ConditionCheck"}:
        raise ValidationError(f"unsupported transact action: {kind}")
    return kind
