from __future__ import annotations

from collections.abc import Sequence
from typing import Any


class DynagoError(Exception):
    pass


class ConditionFailedError(DynagoError):
    pass


class NotFoundError(DynagoError):
    pass


class ValidationError(DynagoError):
    pass


class ExpressionCollisionError(ValidationError):
    def __init__(self, *, placeholder: str, existing: Any, incoming: Any) -> None:
        super().__init__(f"expression placeholder collision: {placeholder}")
        self.placeholder = placeholder
        self.existing = existing
        self.incoming = incoming


class OperationCancelledError(DynagoError):
    pass


class BatchRetryExceededError(DynagoError):
    def __init__(self, *, operation: str, unprocessed_count: int) -> None:
        super().__init__(f"{operation}: retry limit exceeded (unprocessed={unprocessed_count})")
        self.operation = operation
        self.unprocessed_count = unprocessed_count


class BatchWriteError(DynagoError):
    """Raised after every chunk was attempted and some requests were not applied.

    ``failed`` holds the original write requests (wire shape) that the store did not
    process, ``errors`` the transport errors of the chunks that failed outright.
    """

    def __init__(self, *, failed: Sequence[dict[str, Any]], errors: Sequence[Exception]) -> None:
        super().__init__(f"batch_write: {len(failed)} request(s) failed ({len(errors)} chunk error(s))")
        self.failed = list(failed)
        self.errors = list(errors)


class TransactionCanceledError(DynagoError):
    def __init__(self, *, message: str, reason_codes: tuple[str, ...]) -> None:
        super().__init__(message)
        self.reason_codes = reason_codes


class AwsError(DynagoError):
    def __init__(self, *, code: str, message: str) -> None:
        super().__init__(f"{code}: {message}")
        self.code = code
        self.message = message
