from __future__ import annotations

import json
import re
from importlib.resources import files
from typing import TYPE_CHECKING, Any

from .cancel import CancelToken
from .codec import AttributeConverter, dynago_field
from .errors import (
    AwsError,
    BatchRetryExceededError,
    BatchWriteError,
    ConditionFailedError,
    DynagoError,
    ExpressionCollisionError,
    NotFoundError,
    OperationCancelledError,
    TransactionCanceledError,
    ValidationError,
)
from .expression import Condition, CustomExpression
from .keys import KeySchema
from .locking import OptimisticLock, version_of
from .pagination import decode_cursor, encode_cursor
from .query import QueryResult
from .transaction import TransactDeleteInput, TransactPutInput

if TYPE_CHECKING:
    from .client import Client
    from .config import ClientOptions, EndpointResolver, create_boto3_config, new_dynamodb_client
    from .transport import AwsCallMetric, instrument_client, log_calls


def _read_repo_version() -> str:
    try:
        data = json.loads(files(__package__).joinpath("version.json").read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return "0.0.0"

    version = data.get("version")
    return version if isinstance(version, str) and version else "0.0.0"


def _normalize_repo_version(repo_version: str) -> str:
    match = re.match(r"^(\d+\.\d+\.\d+)-rc\.?([0-9]+)$", repo_version)
    if match:
        return f"{match.group(1)}rc{match.group(2)}"
    return repo_version


__repo_version__ = _read_repo_version()
__version__ = _normalize_repo_version(__repo_version__)


def __getattr__(name: str) -> Any:
    # boto3 session setup is only imported on first use
    if name == "Client":
        from .client import Client

        return Client
    if name in {"ClientOptions", "EndpointResolver", "create_boto3_config", "new_dynamodb_client"}:
        from . import config

        return getattr(config, name)
    if name in {"AwsCallMetric", "instrument_client", "log_calls"}:
        from . import transport

        return getattr(transport, name)
    raise AttributeError(name)


__all__ = [
    "AttributeConverter",
    "AwsCallMetric",
    "AwsError",
    "BatchRetryExceededError",
    "BatchWriteError",
    "CancelToken",
    "Client",
    "ClientOptions",
    "Condition",
    "ConditionFailedError",
    "CustomExpression",
    "DynagoError",
    "EndpointResolver",
    "ExpressionCollisionError",
    "KeySchema",
    "NotFoundError",
    "OperationCancelledError",
    "OptimisticLock",
    "QueryResult",
    "TransactDeleteInput",
    "TransactPutInput",
    "TransactionCanceledError",
    "ValidationError",
    "__repo_version__",
    "__version__",
    "create_boto3_config",
    "decode_cursor",
    "dynago_field",
    "encode_cursor",
    "instrument_client",
    "log_calls",
    "new_dynamodb_client",
    "version_of",
]
