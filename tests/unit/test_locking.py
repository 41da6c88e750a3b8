from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

import pytest

from dynago_py import KeySchema, OptimisticLock, ValidationError, version_of
from dynago_py.codec import Codec
from dynago_py.expression import ConditionExpression, build_update_expression
from dynago_py.locking import LOCK_TOKENS, VERSION_CONDITION


@dataclass
class Wallet:
    pk: str
    sk: str
    balance: int
    version: int = 0


def test_lock_condition_binds_current_version() -> None:
    codec = Codec()
    cond = OptimisticLock("version", 2).apply_condition(ConditionExpression(), codec)

    assert cond.render() == "attribute_not_exists(#version) OR #version = :oldVersion"
    assert cond.render() == VERSION_CONDITION
    assert cond.bindings.names == {"#version": "version"}
    assert cond.bindings.values == {":oldVersion": {"N": "2"}}


def test_lock_joins_the_existing_set_clause() -> None:
    codec = Codec()
    expr = build_update_expression({"balance": 10}, KeySchema(), codec)

    OptimisticLock("version", 3).apply_to_update(expr, codec)

    rendered = expr.render()
    assert rendered == "SET #balance = :balance, #version = :newVersion"
    assert rendered.count("SET") == 1
    assert expr.bindings.values[":newVersion"] == {"N": "4"}


def test_lock_rejects_updates_touching_the_version_field() -> None:
    codec = Codec()
    expr = build_update_expression({"version": 9, "balance": 1}, KeySchema(), codec)

    with pytest.raises(ValidationError, match="cannot update version field together with optimistic lock"):
        OptimisticLock("version", 1).apply_to_update(expr, codec)


def test_lock_sets_next_version_on_a_copy_of_the_item() -> None:
    codec = Codec()
    item = {"pk": {"S": "a"}, "sk": {"S": "b"}}

    out = OptimisticLock("rev", 0).apply_to_item(item, codec)

    assert out["rev"] == {"N": "1"}
    assert "rev" not in item


@pytest.mark.parametrize("bad", [-1, True, "1", 1.5])
def test_lock_requires_non_negative_int(bad: object) -> None:
    with pytest.raises(ValidationError):
        OptimisticLock("version", bad)  # type: ignore[arg-type]


def test_lock_requires_field_name() -> None:
    with pytest.raises(ValidationError, match="version field name is required"):
        OptimisticLock("", 0)


def test_version_of_reads_dicts_and_dataclasses() -> None:
    assert version_of(None, "version") == 0
    assert version_of({}, "version") == 0
    assert version_of({"version": Decimal("4")}, "version") == 4
    assert version_of(Wallet(pk="a", sk="b", balance=1, version=7), "version") == 7


def test_generated_fields_leave_lock_placeholders_free() -> None:
    codec = Codec()
    expr = build_update_expression(
        {"version": "2.0", "oldVersion": 7, "newVersion": 8},
        KeySchema(),
        codec,
        reserved=LOCK_TOKENS,
    )

    OptimisticLock("rev", 3).apply_to_update(expr, codec)
    cond = OptimisticLock("rev", 3).apply_condition(ConditionExpression(), codec)
    expr.bindings.merge(cond.bindings)

    assert expr.render() == (
        "SET #version_2 = :version_2, #oldVersion_2 = :oldVersion_2, "
        "#newVersion_2 = :newVersion_2, #version = :newVersion"
    )
    assert expr.bindings.names["#version"] == "rev"
    assert expr.bindings.names["#version_2"] == "version"
    assert expr.bindings.values[":oldVersion"] == {"N": "3"}
    assert expr.bindings.values[":oldVersion_2"] == {"N": "7"}
    assert expr.bindings.values[":newVersion"] == {"N": "4"}
    assert expr.bindings.values[":newVersion_2"] == {"N": "8"}
