"""Integration fixtures backed by moto's in-memory DynamoDB."""

from __future__ import annotations

import uuid
from collections.abc import Iterator

import pytest
from moto import mock_aws

from dynago_py import Client, ClientOptions
from dynago_py.testkit import serialized


@pytest.fixture
def aws_credentials(monkeypatch):
    """Mock AWS credentials for moto."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")
    # moto only intercepts requests sent to the default endpoint
    monkeypatch.delenv("AWS_ENDPOINT_URL", raising=False)
    monkeypatch.delenv("DYNAMODB_ENDPOINT", raising=False)


@pytest.fixture
def mock_dynamodb(aws_credentials) -> Iterator[None]:
    with mock_aws():
        yield


@pytest.fixture
def table_name(mock_dynamodb) -> str:
    name = f"dynago_py_{uuid.uuid4().hex[:12]}"
    setup = Client(ClientOptions(table_name=name, region="us-east-1"))
    setup.dynamodb_client.create_table(
        TableName=name,
        AttributeDefinitions=[
            {"AttributeName": "pk", "AttributeType": "S"},
            {"AttributeName": "sk", "AttributeType": "S"},
        ],
        KeySchema=[
            {"AttributeName": "pk", "KeyType": "HASH"},
            {"AttributeName": "sk", "KeyType": "RANGE"},
        ],
        BillingMode="PAY_PER_REQUEST",
    )
    return name


@pytest.fixture
def client(table_name: str) -> Client:
    return Client(ClientOptions(table_name=table_name, region="us-east-1"))


@pytest.fixture
def shared_client(table_name: str) -> Client:
    """Client safe to share across threads against the in-memory backend."""
    return Client(ClientOptions(table_name=table_name, region="us-east-1", middlewares=(serialized,)))
