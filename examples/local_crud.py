from __future__ import annotations

import logging
import os
import uuid
from dataclasses import dataclass

from dynago_py import (
    Client,
    ClientOptions,
    ConditionFailedError,
    CustomExpression,
    EndpointResolver,
    OptimisticLock,
    log_calls,
    version_of,
)


@dataclass
class Note:
    pk: str
    sk: str
    value: int
    version: int = 0


def _options(table_name: str) -> ClientOptions:
    return ClientOptions(
        table_name=table_name,
        region=os.environ.get("AWS_REGION", "us-east-1"),
        endpoint=EndpointResolver(
            endpoint_url=os.environ.get("DYNAMODB_ENDPOINT", "http://localhost:8000"),
            access_key_id=os.environ.get("AWS_ACCESS_KEY_ID", "dummy"),
            secret_access_key=os.environ.get("AWS_SECRET_ACCESS_KEY", "dummy"),
        ),
        middlewares=(log_calls(logging.INFO),),
    )


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    table_name = f"dynago_py_example_{uuid.uuid4().hex[:12]}"
    client = Client(_options(table_name))
    ddb = client.dynamodb_client

    ddb.create_table(
        TableName=table_name,
        KeySchema=[{"AttributeName": "pk", "KeyType": "HASH"}, {"AttributeName": "sk", "KeyType": "RANGE"}],
        AttributeDefinitions=[
            {"AttributeName": "pk", "AttributeType": "S"},
            {"AttributeName": "sk", "AttributeType": "S"},
        ],
        BillingMode="PAY_PER_REQUEST",
    )
    ddb.get_waiter("table_exists").wait(TableName=table_name)

    try:
        client.batch_write_items([Note(pk="A", sk=f"{i:03d}", value=i) for i in (1, 10, 100)])

        note = client.get_item("A", "010", out_type=Note)
        print("get:", note)

        lock = OptimisticLock("version", version_of(note, "version"))
        client.update_item("A", "010", {"value": 11}, optimistic_lock=lock)
        try:
            client.update_item("A", "010", {"value": 12}, optimistic_lock=OptimisticLock("version", 0))
        except ConditionFailedError:
            print("stale write rejected")

        client.update_item("A", "100", expression=CustomExpression("ADD #v :one", {"#v": "value"}, {":one": 1}))

        condition = "pk = :pk AND begins_with(sk, :prefix)"
        page = client.query(condition, {":pk": "A", ":prefix": "0"}, out_type=Note, limit=1)
        print("first page:", page.items, "next:", page.next_token)
        rest = client.query("pk = :pk", {":pk": "A"}, out_type=Note, start_key=page.next_token)
        print("rest:", rest.items)
    finally:
        ddb.delete_table(TableName=table_name)


if __name__ == "__main__":
    main()
