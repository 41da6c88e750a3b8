from __future__ import annotations

import types
from collections.abc import Mapping, Sequence
from dataclasses import MISSING, dataclass, field, fields, is_dataclass
from decimal import Decimal
from typing import Any, Protocol, Union, cast, get_args, get_origin, get_type_hints

from boto3.dynamodb.types import TypeDeserializer, TypeSerializer

from .errors import ValidationError

type AttributeValue = dict[str, Any]
type Item = dict[str, AttributeValue]


class AttributeConverter(Protocol):
    def to_dynamodb(self, value: Any) -> Any: ...

    def from_dynamodb(self, value: Any) -> Any: ...


@dataclass(frozen=True)
class FieldDefinition:
    python_name: str
    attribute_name: str
    omitempty: bool
    converter: AttributeConverter | None = None


def dynago_field(
    *,
    name: str | None = None,
    omitempty: bool = False,
    converter: AttributeConverter | None = None,
    ignore: bool = False,
    default: Any = MISSING,
    default_factory: Any = MISSING,
) -> Any:
    if default is not MISSING and default_factory is not MISSING:
        raise ValueError("dynago_field: cannot set both default and default_factory")

    opts: dict[str, Any] = {"omitempty": omitempty, "converter": converter, "ignore": ignore}
    if name is not None:
        opts["name"] = name

    return field(default=default, default_factory=default_factory, metadata={"dynago": opts})


def field_definitions(model_type: type[Any]) -> tuple[FieldDefinition, ...]:
    if not is_dataclass(model_type):
        raise ValidationError("model type must be a dataclass")

    out: list[FieldDefinition] = []
    seen: set[str] = set()
    for dc_field in fields(model_type):
        opts = cast(dict[str, Any], dc_field.metadata.get("dynago", {}))
        if opts.get("ignore"):
            continue

        attribute_name = cast(str, opts.get("name") or dc_field.name)
        if attribute_name in seen:
            raise ValidationError(f"duplicate attribute name: {attribute_name}")
        seen.add(attribute_name)

        out.append(
            FieldDefinition(
                python_name=dc_field.name,
                attribute_name=attribute_name,
                omitempty=bool(opts.get("omitempty", False)),
                converter=cast(AttributeConverter | None, opts.get("converter")),
            )
        )
    return tuple(out)


def _is_empty(value: Any) -> bool:
    if value is None or value is False:
        return True
    if isinstance(value, (int, float, Decimal)) and value == 0:
        return True
    if isinstance(value, (str, bytes, bytearray, list, dict, set, frozenset, tuple)) and len(value) == 0:
        return True
    return False


def _to_wire_native(value: Any) -> Any:
    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, (set, frozenset)):
        if not value:
            return None
        return {_to_wire_native(v) for v in value}
    if isinstance(value, Mapping):
        return {str(k): _to_wire_native(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [_to_wire_native(v) for v in value]
    if isinstance(value, list):
        return [_to_wire_native(v) for v in value]
    if is_dataclass(value) and not isinstance(value, type):
        return {k: _to_wire_native(v) for k, v in _dataclass_values(value).items()}
    return value


def _dataclass_values(record: Any) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for fd in field_definitions(type(record)):
        value = getattr(record, fd.python_name)
        if fd.omitempty and _is_empty(value):
            continue
        if fd.converter is not None and value is not None:
            value = fd.converter.to_dynamodb(value)
        out[fd.attribute_name] = value
    return out


def _strip_optional(annotation: Any) -> Any:
    origin = get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        args = [a for a in get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return annotation


def _coerce_value(value: Any, annotation: Any) -> Any:
    if value is None:
        # empty sets are stored as NULL
        origin = get_origin(annotation)
        if origin in (set, frozenset):
            return origin()
        return None

    annotation = _strip_optional(annotation)

    if annotation in (int, "int") and isinstance(value, Decimal):
        return int(value)
    if annotation in (float, "float") and isinstance(value, Decimal):
        return float(value)

    origin = get_origin(annotation)
    if origin in (set, frozenset) and isinstance(value, set):
        (elem_type,) = get_args(annotation) or (Any,)
        return origin(_coerce_value(v, elem_type) for v in value)
    if origin is list and isinstance(value, list):
        (elem_type,) = get_args(annotation) or (Any,)
        return [_coerce_value(v, elem_type) for v in value]
    if origin is tuple and isinstance(value, list):
        return tuple(value)
    if isinstance(annotation, type) and is_dataclass(annotation) and isinstance(value, dict):
        return _build_dataclass(annotation, value)

    return value


def _type_hints(model_type: type[Any]) -> dict[str, Any]:
    try:
        return get_type_hints(model_type)
    except Exception:
        return dict(getattr(model_type, "__annotations__", {}))


def _build_dataclass[T](model_type: type[T], values: Mapping[str, Any]) -> T:
    hints = _type_hints(model_type)
    kwargs: dict[str, Any] = {}
    for fd in field_definitions(model_type):
        if fd.attribute_name not in values:
            continue
        raw = values[fd.attribute_name]
        if fd.converter is not None and raw is not None:
            raw = fd.converter.from_dynamodb(raw)
        kwargs[fd.python_name] = _coerce_value(raw, hints.get(fd.python_name, Any))

    try:
        return model_type(**kwargs)
    except TypeError as err:
        raise ValidationError(str(err)) from err


class Codec:
    """Native record <-> DynamoDB wire item conversion.

    Records are dataclass instances (optionally annotated with :func:`dynago_field`)
    or plain mappings. Floats are sent as ``Decimal`` and empty sets as ``NULL``,
    the two shapes boto3's serializer refuses.
    """

    def __init__(self) -> None:
        self._serializer = TypeSerializer()
        self._deserializer = TypeDeserializer()

    def serialize(self, value: Any) -> AttributeValue:
        try:
            return self._serializer.serialize(_to_wire_native(value))
        except (TypeError, ValueError) as err:
            raise ValidationError(f"cannot marshal value of type {type(value).__name__}: {err}") from err

    def deserialize(self, av: AttributeValue) -> Any:
        return self._deserializer.deserialize(av)

    def serialize_values(self, values: Mapping[str, Any]) -> dict[str, AttributeValue]:
        return {k: self.serialize(v) for k, v in values.items()}

    def flatten(self, record: Any) -> dict[str, Any]:
        if is_dataclass(record) and not isinstance(record, type):
            return _dataclass_values(record)
        if isinstance(record, Mapping):
            return {str(k): v for k, v in record.items()}
        raise ValidationError(
            f"cannot marshal {type(record).__name__}: expected a dataclass instance or a mapping"
        )

    def marshal_item(self, record: Any) -> Item:
        return {name: self.serialize(value) for name, value in self.flatten(record).items()}

    def unmarshal_item[T](
        self, item: Mapping[str, AttributeValue], out_type: type[T] | None = None
    ) -> T | dict[str, Any]:
        values = {k: self.deserialize(v) for k, v in item.items()}
        if out_type is None or out_type is dict:
            return values
        return _build_dataclass(out_type, values)

    def unmarshal_items[T](
        self, items: Sequence[Mapping[str, AttributeValue]], out_type: type[T] | None = None
    ) -> list[Any]:
        return [self.unmarshal_item(item, out_type) for item in items]
