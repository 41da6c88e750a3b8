from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .errors import ValidationError
from .expression import ConditionExpression, UpdateExpression

if TYPE_CHECKING:
    from .codec import Codec, Item

VERSION_NAME = "#version"
OLD_VERSION_VALUE = ":oldVersion"
NEW_VERSION_VALUE = ":newVersion"

VERSION_CONDITION = f"attribute_not_exists({VERSION_NAME}) OR {VERSION_NAME} = {OLD_VERSION_VALUE}"

# placeholder tokens generated update fields must not reuse while a lock is applied
LOCK_TOKENS = frozenset(p[1:] for p in (VERSION_NAME, OLD_VERSION_VALUE, NEW_VERSION_VALUE))


@dataclass(frozen=True)
class OptimisticLock:
    """Compare-and-swap on a numeric version attribute.

    The write only goes through when the stored version equals ``current_version``
    (or the item has no version yet) and stores ``current_version + 1``. A lost race
    surfaces as :class:`~dynago_py.errors.ConditionFailedError`; callers re-read and
    retry.
    """

    version_field: str
    current_version: int

    def __post_init__(self) -> None:
        if not self.version_field:
            raise ValidationError("version field name is required")
        if isinstance(self.current_version, bool) or not isinstance(self.current_version, int):
            raise ValidationError("current version must be an integer")
        if self.current_version < 0:
            raise ValidationError("current version must be >= 0")

    @property
    def next_version(self) -> int:
        return self.current_version + 1

    def apply_condition(self, cond: ConditionExpression, codec: Codec) -> ConditionExpression:
        cond.bindings.bind_name(VERSION_NAME, self.version_field)
        cond.bindings.bind_value(OLD_VERSION_VALUE, codec.serialize(self.current_version))
        return cond.add(VERSION_CONDITION)

    def apply_to_update(self, expr: UpdateExpression, codec: Codec) -> UpdateExpression:
        if self.version_field in expr.assigned_attributes():
            raise ValidationError("cannot update version field together with optimistic lock")

        name_ref = expr.bindings.bind_name(VERSION_NAME, self.version_field)
        value_ref = expr.bindings.bind_value(NEW_VERSION_VALUE, codec.serialize(self.next_version))
        return expr.set(name_ref, value_ref)

    def apply_to_item(self, item: Item, codec: Codec) -> Item:
        out = dict(item)
        out[self.version_field] = codec.serialize(self.next_version)
        return out


def version_of(record: Any, version_field: str) -> int:
    """Read a version attribute from a decoded record; absent means 0."""
    if record is None:
        return 0
    if isinstance(record, dict):
        raw = record.get(version_field)
    else:
        raw = getattr(record, version_field, None)
    if raw is None:
        return 0
    return int(raw)
