from __future__ import annotations

from botocore.exceptions import ClientError

from .errors import (
    AwsError,
    ConditionFailedError,
    NotFoundError,
    TransactionCanceledError,
    ValidationError,
)


def _code_and_message(err: ClientError) -> tuple[str, str]:
    error = err.response.get("Error", {})
    return str(error.get("Code", "")), str(error.get("Message", ""))


def map_client_error(err: ClientError) -> Exception:
    code, message = _code_and_message(err)

    if code == "ConditionalCheckFailedException":
        return ConditionFailedError(message or "conditional check failed")
    if code == "ValidationException":
        return ValidationError(message)
    if code == "ResourceNotFoundException":
        return NotFoundError(message)

    return AwsError(code=code or "UnknownError", message=message or str(err))


def map_transaction_error(err: ClientError) -> Exception:
    code, message = _code_and_message(err)

    if code != "TransactionCanceledException":
        return map_client_error(err)

    reasons_raw = err.response.get("CancellationReasons") or []
    reason_codes = tuple(
        str(reason.get("Code", "Unknown"))
        for reason in reasons_raw
        if isinstance(reason, dict) and reason.get("Code") and reason.get("Code") != "None"
    )

    # same error kind as a failed single-item conditional write
    if "ConditionalCheckFailed" in reason_codes or "ConditionalCheckFailed" in message:
        return ConditionFailedError(message or "transaction canceled: ConditionalCheckFailed")

    return TransactionCanceledError(
        message=message or "transaction canceled",
        reason_codes=reason_codes,
    )
