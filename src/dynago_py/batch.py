from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from botocore.exceptions import ClientError

from .aws_errors import map_client_error
from .cancel import CancelToken, check
from .errors import BatchRetryExceededError

if TYPE_CHECKING:
    from .codec import Item

logger = logging.getLogger(__name__)

BATCH_WRITE_LIMIT = 25
BATCH_GET_LIMIT = 100
TRANSACT_LIMIT = 100


def chunked[T](items: Sequence[T], size: int) -> list[Sequence[T]]:
    if size <= 0:
        raise ValueError("size must be > 0")
    return [items[i : i + size] for i in range(0, len(items), size)]


def backoff_seconds(attempt: int) -> float:
    seconds = 0.05 * (2.0 ** (attempt - 1))
    if seconds > 1.0:
        return 1.0
    return seconds


@dataclass
class BatchOutcome:
    failed: list[dict[str, Any]] = field(default_factory=list)
    errors: list[Exception] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


def submit_write_chunks(
    client: Any,
    table_name: str,
    requests: Sequence[dict[str, Any]],
    *,
    chunk_size: int = BATCH_WRITE_LIMIT,
    cancel: CancelToken | None = None,
) -> BatchOutcome:
    """Send write requests in chunks, one attempt per chunk.

    A chunk whose call fails counts every request in it as failed; requests the
    store hands back as ``UnprocessedItems`` count as failed too. Later chunks are
    still sent. Nothing is retried here.
    """
    outcome = BatchOutcome()
    chunks = chunked(requests, chunk_size)

    for index, chunk in enumerate(chunks):
        check(cancel, "batch_write")
        try:
            resp = client.batch_write_item(RequestItems={table_name: list(chunk)})
        except ClientError as err:
            mapped = map_client_error(err)
            logger.warning(
                "batch write chunk %d/%d failed (%d requests): %s", index + 1, len(chunks), len(chunk), mapped
            )
            outcome.errors.append(mapped)
            outcome.failed.extend(chunk)
            continue

        unprocessed = resp.get("UnprocessedItems", {}).get(table_name) or []
        if unprocessed:
            logger.debug("batch write chunk %d/%d: %d unprocessed", index + 1, len(chunks), len(unprocessed))
            outcome.failed.extend(unprocessed)

    return outcome


def fetch_batch_chunk(
    client: Any,
    table_name: str,
    keys: Sequence[Item],
    *,
    base_request: dict[str, Any],
    max_retries: int,
    sleep: Callable[[float], None] | None = time.sleep,
    cancel: CancelToken | None = None,
) -> list[Item]:
    """Fetch one chunk of keys, re-requesting ``UnprocessedKeys`` until none remain."""
    out: list[Item] = []
    pending: list[Item] = list(keys)
    attempts = 0

    while pending:
        check(cancel, "batch_get")
        req = {table_name: dict(base_request, Keys=pending)}
        try:
            resp = client.batch_get_item(RequestItems=req)
        except ClientError as err:
            mapped = map_client_error(err)
            logger.warning("batch get of %d keys failed: %s", len(pending), mapped)
            raise mapped from err

        out.extend(resp.get("Responses", {}).get(table_name, []))

        pending = list(resp.get("UnprocessedKeys", {}).get(table_name, {}).get("Keys") or [])
        if pending:
            if attempts >= max_retries:
                raise BatchRetryExceededError(operation="batch_get", unprocessed_count=len(pending))
            attempts += 1
            logger.debug("batch get: %d unprocessed keys, attempt %d", len(pending), attempts)
            delay = backoff_seconds(attempts)
            if cancel is not None and sleep is time.sleep:
                cancel.sleep(delay)
            elif sleep is not None:
                sleep(delay)

    return out
