from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .errors import ExpressionCollisionError, ValidationError

if TYPE_CHECKING:
    from .codec import AttributeValue, Codec
    from .keys import KeySchema

UPDATE_KINDS = ("SET", "REMOVE", "ADD", "DELETE")

_KEYWORD_RE = re.compile(r"(?<![\w#:.\[\]])(SET|REMOVE|ADD|DELETE)(?=\s)", re.IGNORECASE)
_TOKEN_UNSAFE_RE = re.compile(r"[^A-Za-z0-9_]")
_PATH_RE = re.compile(r"^\s*([#\w.\[\]]+)")


@dataclass(frozen=True)
class Condition:
    """A caller supplied condition expression with its placeholders.

    ``values`` holds native Python values; they are marshaled when the request is built.
    """

    expression: str
    names: Mapping[str, str] | None = None
    values: Mapping[str, Any] | None = None


@dataclass(frozen=True)
class CustomExpression:
    """A raw update expression, e.g. ``ADD #age :inc``, merged into the generated one."""

    expression: str
    names: Mapping[str, str] | None = None
    values: Mapping[str, Any] | None = None


@dataclass
class Bindings:
    names: dict[str, str] = field(default_factory=dict)
    values: dict[str, AttributeValue] = field(default_factory=dict)

    def bind_name(self, placeholder: str, attribute: str) -> str:
        if not placeholder.startswith("#"):
            raise ValidationError(f"name placeholder must start with '#': {placeholder}")
        existing = self.names.get(placeholder)
        if existing is not None and existing != attribute:
            raise ExpressionCollisionError(placeholder=placeholder, existing=existing, incoming=attribute)
        self.names[placeholder] = attribute
        return placeholder

    def bind_value(self, placeholder: str, value: AttributeValue) -> str:
        if not placeholder.startswith(":"):
            raise ValidationError(f"value placeholder must start with ':': {placeholder}")
        if placeholder in self.values and self.values[placeholder] != value:
            raise ExpressionCollisionError(
                placeholder=placeholder, existing=self.values[placeholder], incoming=value
            )
        self.values[placeholder] = value
        return placeholder

    def bind_all(
        self,
        names: Mapping[str, str] | None,
        values: Mapping[str, Any] | None,
        codec: Codec,
    ) -> None:
        for placeholder, attribute in (names or {}).items():
            self.bind_name(placeholder, attribute)
        for placeholder, value in (values or {}).items():
            self.bind_value(placeholder, codec.serialize(value))

    def merge(self, other: Bindings) -> None:
        for placeholder, attribute in other.names.items():
            self.bind_name(placeholder, attribute)
        for placeholder, value in other.values.items():
            self.bind_value(placeholder, value)

    def apply_to(self, req: dict[str, Any]) -> None:
        if self.names:
            req["ExpressionAttributeNames"] = dict(self.names)
        if self.values:
            req["ExpressionAttributeValues"] = dict(self.values)


@dataclass
class UpdateExpression:
    """Update expression kept as clauses until rendered.

    Actions of the same kind always land in one clause, so merging several sources
    never yields a second ``SET`` keyword.
    """

    clauses: dict[str, list[str]] = field(default_factory=lambda: {kind: [] for kind in UPDATE_KINDS})
    bindings: Bindings = field(default_factory=Bindings)

    def add_action(self, kind: str, action: str) -> UpdateExpression:
        kind = kind.upper()
        if kind not in self.clauses:
            raise ValidationError(f"unsupported update clause: {kind}")
        action = action.strip()
        if not action:
            raise ValidationError(f"empty {kind} action")
        self.clauses[kind].append(action)
        return self

    def set(self, name_placeholder: str, value_placeholder: str) -> UpdateExpression:
        return self.add_action("SET", f"{name_placeholder} = {value_placeholder}")

    def merge(self, other: UpdateExpression) -> UpdateExpression:
        self.bindings.merge(other.bindings)
        for kind in UPDATE_KINDS:
            self.clauses[kind].extend(other.clauses[kind])
        return self

    def is_empty(self) -> bool:
        return not any(self.clauses.values())

    def assigned_attributes(self) -> set[str]:
        out: set[str] = set()
        for actions in self.clauses.values():
            for action in actions:
                match = _PATH_RE.match(action)
                if match is None:
                    continue
                head = re.split(r"[.\[]", match.group(1), maxsplit=1)[0]
                out.add(self.bindings.names.get(head, head))
        return out

    def render(self) -> str:
        parts = [f"{kind} " + ", ".join(self.clauses[kind]) for kind in UPDATE_KINDS if self.clauses[kind]]
        if not parts:
            raise ValidationError("no update expression provided")
        return " ".join(parts)


@dataclass
class ConditionExpression:
    terms: list[str] = field(default_factory=list)
    bindings: Bindings = field(default_factory=Bindings)

    def add(self, term: str) -> ConditionExpression:
        term = term.strip()
        if not term:
            raise ValidationError("empty condition expression")
        self.terms.append(term)
        return self

    def add_condition(self, condition: Condition, codec: Codec) -> ConditionExpression:
        self.bindings.bind_all(condition.names, condition.values, codec)
        return self.add(condition.expression)

    def render(self) -> str | None:
        if not self.terms:
            return None
        if len(self.terms) == 1:
            return self.terms[0]
        return " AND ".join(f"({t})" for t in self.terms)


def _paren_depths(text: str) -> list[int]:
    depths: list[int] = []
    depth = 0
    for ch in text:
        if ch == ")":
            depth -= 1
        depths.append(depth)
        if ch == "(":
            depth += 1
    if depth != 0:
        raise ValidationError("unbalanced parentheses in update expression")
    return depths


def _split_actions(body: str) -> list[str]:
    actions: list[str] = []
    depth = 0
    current: list[str] = []
    for ch in body:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        if ch == "," and depth == 0:
            actions.append("".join(current).strip())
            current = []
            continue
        current.append(ch)
    actions.append("".join(current).strip())
    return actions


def parse_update_expression(text: str) -> UpdateExpression:
    raw = str(text or "")
    if not raw.strip():
        raise ValidationError("update expression is empty")

    depths = _paren_depths(raw)
    keywords = [m for m in _KEYWORD_RE.finditer(raw) if depths[m.start()] == 0]
    if not keywords or raw[: keywords[0].start()].strip():
        raise ValidationError("update expression must start with SET, REMOVE, ADD or DELETE")

    expr = UpdateExpression()
    for i, match in enumerate(keywords):
        end = keywords[i + 1].start() if i + 1 < len(keywords) else len(raw)
        body = raw[match.end() : end]
        actions = _split_actions(body)
        if any(not a for a in actions):
            raise ValidationError(f"malformed {match.group(1).upper()} clause")
        for action in actions:
            expr.add_action(match.group(1), action)
    return expr


def custom_update_expression(custom: CustomExpression, codec: Codec) -> UpdateExpression:
    expr = parse_update_expression(custom.expression)
    expr.bindings.bind_all(custom.names, custom.values, codec)
    return expr


def placeholder_token(field_name: str, taken: set[str]) -> str:
    token = _TOKEN_UNSAFE_RE.sub("_", field_name) or "_"
    candidate = token
    suffix = 1
    while candidate in taken:
        suffix += 1
        candidate = f"{token}_{suffix}"
    taken.add(candidate)
    return candidate


def build_update_expression(
    fields: Any,
    key_schema: KeySchema,
    codec: Codec,
    *,
    reserved: Iterable[str] = (),
) -> UpdateExpression:
    """Compile a field -> value mapping (or dataclass) into a ``SET`` update.

    Primary-key fields are skipped; a payload that is empty or carries only key
    fields is rejected rather than sent as a no-op. Tokens in ``reserved`` are
    never handed out, so placeholders owned by another part of the request stay free.
    """
    if fields is None:
        raise ValidationError("fields required")

    flat = codec.flatten(fields)
    if not flat:
        raise ValidationError("no fields to update")

    expr = UpdateExpression()
    taken: set[str] = set(reserved)
    for field_name, value in flat.items():
        if key_schema.is_key_field(field_name):
            continue

        token = placeholder_token(field_name, taken)
        name_ref = expr.bindings.bind_name(f"#{token}", field_name)
        value_ref = expr.bindings.bind_value(f":{token}", codec.serialize(value))
        expr.set(name_ref, value_ref)

    if expr.is_empty():
        raise ValidationError("no valid fields to update (only primary keys provided)")
    return expr
