from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from dynago_py import (
    Client,
    Condition,
    ConditionFailedError,
    OptimisticLock,
    TransactDeleteInput,
    TransactPutInput,
    version_of,
)

pytestmark = pytest.mark.integration


def _deposit(client: Client, amount: int) -> int:
    attempts = 0
    while True:
        attempts += 1
        current = client.get_item("acct#1", "balance", consistent_read=True)
        assert current is not None
        try:
            client.update_item(
                "acct#1",
                "balance",
                {"balance": int(current["balance"]) + amount},
                optimistic_lock=OptimisticLock("version", version_of(current, "version")),
            )
            return attempts
        except ConditionFailedError:
            continue


def test_concurrent_locked_increments_lose_no_updates(shared_client: Client) -> None:
    shared_client.put_item("acct#1", "balance", {"balance": 0, "version": 0})

    with ThreadPoolExecutor(max_workers=10) as pool:
        attempts = list(pool.map(lambda _: _deposit(shared_client, 100), range(10)))

    final = shared_client.get_item("acct#1", "balance", consistent_read=True)
    assert final == {"pk": "acct#1", "sk": "balance", "balance": 1000, "version": 10}
    assert sum(attempts) >= 10


def test_transaction_applies_all_entries(client: Client) -> None:
    client.put_item("acct#1", "meta", {"balance": 10, "version": 1})
    client.put_item("acct#3", "meta", {"balance": 0})

    client.transact_items(
        client.with_put_item("acct#2", "meta", {"balance": 5}),
        client.with_update_item("acct#1", "meta", {"balance": 5}, optimistic_lock=OptimisticLock("version", 1)),
        client.with_delete_item("acct#3", "meta"),
    )

    assert client.get_item("acct#1", "meta") == {"pk": "acct#1", "sk": "meta", "balance": 5, "version": 2}
    assert client.get_item("acct#2", "meta") == {"pk": "acct#2", "sk": "meta", "balance": 5}
    assert client.get_item("acct#3", "meta") is None


def test_failed_condition_cancels_the_whole_transaction(client: Client) -> None:
    client.put_item("acct#1", "meta", {"balance": 10, "version": 4})

    with pytest.raises(ConditionFailedError):
        client.transact_items(
            client.with_put_item("acct#2", "meta", {"balance": 5}),
            client.with_update_item("acct#1", "meta", {"balance": 0}, optimistic_lock=OptimisticLock("version", 1)),
        )

    assert client.get_item("acct#2", "meta") is None
    assert client.get_item("acct#1", "meta") == {"pk": "acct#1", "sk": "meta", "balance": 10, "version": 4}


def test_condition_check_guards_a_transaction(client: Client) -> None:
    must_exist = Condition("attribute_exists(#pk)", names={"#pk": "pk"})

    with pytest.raises(ConditionFailedError):
        client.transact_items(
            client.with_condition_check("acct#9", "meta", must_exist),
            client.with_put_item("acct#2", "meta", {"balance": 5}),
        )
    assert client.get_item("acct#2", "meta") is None


def test_transact_put_and_delete_groups(client: Client) -> None:
    client.transact_put_items([TransactPutInput("t#1", "a", {"v": 1}), TransactPutInput("t#1", "b", {"v": 2})])

    assert len(client.query("pk = :pk", {":pk": "t#1"}).items) == 2

    client.transact_delete_items([TransactDeleteInput("t#1", "a"), TransactDeleteInput("t#1", "b")])

    assert client.query("pk = :pk", {":pk": "t#1"}).items == []
