from __future__ import annotations

import os
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

import boto3
from botocore.config import Config

from .keys import KeySchema
from .transport import Middleware, apply_middlewares


@dataclass(frozen=True)
class EndpointResolver:
    """Custom endpoint with static credentials, for DynamoDB Local and other test targets."""

    endpoint_url: str
    access_key_id: str = "dummy"
    secret_access_key: str = "dummy"


@dataclass(frozen=True)
class ClientOptions:
    table_name: str
    region: str | None = None
    partition_key_name: str = "pk"
    sort_key_name: str = "sk"
    endpoint: EndpointResolver | None = None
    middlewares: tuple[Middleware, ...] = field(default=())
    max_attempts: int = 3

    def __post_init__(self) -> None:
        if not self.table_name:
            raise ValueError("table_name is required")
        if self.max_attempts <= 0:
            raise ValueError("max_attempts must be > 0")
        KeySchema(partition_key=self.partition_key_name, sort_key=self.sort_key_name)  # validates key names
        object.__setattr__(self, "middlewares", tuple(self.middlewares))

    @property
    def key_schema(self) -> KeySchema:
        return KeySchema(partition_key=self.partition_key_name, sort_key=self.sort_key_name)

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] = os.environ,
        *,
        middlewares: Sequence[Middleware] = (),
    ) -> ClientOptions:
        table_name = environ.get("DYNAGO_TABLE_NAME", "")
        endpoint: EndpointResolver | None = None
        endpoint_url = (environ.get("DYNAMODB_ENDPOINT") or "").strip()
        if endpoint_url:
            endpoint = EndpointResolver(
                endpoint_url=endpoint_url,
                access_key_id=environ.get("AWS_ACCESS_KEY_ID", "dummy"),
                secret_access_key=environ.get("AWS_SECRET_ACCESS_KEY", "dummy"),
            )

        return cls(
            table_name=table_name,
            region=environ.get("AWS_REGION") or environ.get("AWS_DEFAULT_REGION") or None,
            partition_key_name=environ.get("DYNAGO_PARTITION_KEY", "pk"),
            sort_key_name=environ.get("DYNAGO_SORT_KEY", "sk"),
            endpoint=endpoint,
            middlewares=tuple(middlewares),
        )


def create_boto3_config(*, max_attempts: int = 3) -> Config:
    return Config(retries={"max_attempts": max_attempts, "mode": "standard"})


def new_dynamodb_client(options: ClientOptions, *, session: Any | None = None) -> Any:
    """Build the boto3 DynamoDB client for ``options`` and run it through the middlewares."""
    sess = session or boto3.session.Session(region_name=options.region)
    kwargs: dict[str, Any] = {
        "region_name": options.region,
        "config": create_boto3_config(max_attempts=options.max_attempts),
    }
    if options.endpoint is not None:
        kwargs["endpoint_url"] = options.endpoint.endpoint_url
        kwargs["aws_access_key_id"] = options.endpoint.access_key_id
        kwargs["aws_secret_access_key"] = options.endpoint.secret_access_key

    client = sess.client("dynamodb", **kwargs)
    return apply_middlewares(client, options.middlewares)
