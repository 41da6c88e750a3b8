from __future__ import annotations

import logging

import pytest

from dynago_py import (
    Client,
    ClientOptions,
    Condition,
    ConditionFailedError,
    OptimisticLock,
    TransactDeleteInput,
    TransactionCanceledError,
    TransactPutInput,
    ValidationError,
)
from dynago_py.testkit import FakeDynamoDBClient, client_error


def _client(fake: FakeDynamoDBClient) -> Client:
    return Client(ClientOptions(table_name="accounts"), client=fake)


def test_transact_items_sends_every_entry_in_order() -> None:
    fake = FakeDynamoDBClient()
    fake.expect("transact_write_items", response={})
    client = _client(fake)

    client.transact_items(
        client.with_put_item("acct#1", "meta", {"owner": "a"}),
        client.with_update_item("acct#2", "meta", {"balance": 5}, optimistic_lock=OptimisticLock("version", 1)),
        client.with_delete_item("acct#3", "meta"),
        client.with_condition_check("acct#4", "meta", Condition("attribute_exists(#pk)", names={"#pk": "pk"})),
    )

    items = fake.requests("transact_write_items")[0]["TransactItems"]
    assert [next(iter(entry)) for entry in items] == ["Put", "Update", "Delete", "ConditionCheck"]
    assert items[0]["Put"]["Item"] == {"owner": {"S": "a"}, "pk": {"S": "acct#1"}, "sk": {"S": "meta"}}
    assert items[1]["Update"]["UpdateExpression"] == "SET #balance = :balance, #version = :newVersion"
    assert items[1]["Update"]["ConditionExpression"].startswith("attribute_not_exists(#version)")
    assert items[2]["Delete"]["Key"] == {"pk": {"S": "acct#3"}, "sk": {"S": "meta"}}
    assert items[3]["ConditionCheck"]["ConditionExpression"] == "attribute_exists(#pk)"
    assert all(entry[next(iter(entry))]["TableName"] == "accounts" for entry in items)


def test_transaction_condition_failure_surfaces_as_condition_failed(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.DEBUG, logger="dynago_py.client")
    fake = FakeDynamoDBClient()
    fake.expect(
        "transact_write_items",
        error=client_error(
            "TransactionCanceledException",
            "Transaction cancelled",
            cancellation_reasons=["ConditionalCheckFailed", "None"],
        ),
    )
    client = _client(fake)

    with pytest.raises(ConditionFailedError):
        client.transact_items(
            client.with_put_item("a", "1", {"v": 1}, optimistic_lock=OptimisticLock("version", 2)),
            client.with_delete_item("b", "1"),
        )

    assert [r.levelno for r in caplog.records if r.name == "dynago_py.client"] == [logging.DEBUG]


def test_other_transaction_cancellations(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.DEBUG, logger="dynago_py.client")
    fake = FakeDynamoDBClient()
    fake.expect(
        "transact_write_items",
        error=client_error(
            "TransactionCanceledException", "Transaction cancelled", cancellation_reasons=["TransactionConflict"]
        ),
    )
    client = _client(fake)

    with pytest.raises(TransactionCanceledError) as excinfo:
        client.transact_items(client.with_delete_item("b", "1"))
    assert excinfo.value.reason_codes == ("TransactionConflict",)
    assert [r.levelno for r in caplog.records if r.name == "dynago_py.client"] == [logging.WARNING]


def test_transact_items_validates_entries() -> None:
    fake = FakeDynamoDBClient()
    client = _client(fake)

    with pytest.raises(ValidationError, match="at least one transact entry"):
        client.transact_items()
    with pytest.raises(ValidationError, match="at most 100"):
        client.transact_items(*(client.with_delete_item("a", str(i)) for i in range(101)))
    with pytest.raises(ValidationError, match="unsupported transact action: Scan"):
        client.transact_items({"Scan": {}})
    with pytest.raises(ValidationError, match="exactly one action"):
        client.transact_items({"Put": {}, "Delete": {}})
    with pytest.raises(ValidationError, match="condition is required"):
        client.with_condition_check("a", "1", None)  # type: ignore[arg-type]

    assert fake.calls == []


def test_transact_put_and_delete_groups() -> None:
    fake = FakeDynamoDBClient()
    fake.expect("transact_write_items", response={})
    fake.expect("transact_write_items", response={})
    client = _client(fake)

    client.transact_put_items([TransactPutInput("a", "1", {"v": 1}), TransactPutInput("b", "1", {"v": 2})])
    client.transact_delete_items([TransactDeleteInput("a", "1")])

    puts, deletes = fake.requests("transact_write_items")
    assert [next(iter(e)) for e in puts["TransactItems"]] == ["Put", "Put"]
    key = {"pk": {"S": "a"}, "sk": {"S": "1"}}
    assert deletes["TransactItems"] == [{"Delete": {"TableName": "accounts", "Key": key}}]
    fake.assert_no_pending()
