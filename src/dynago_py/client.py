from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from typing import Any, overload

from botocore.exceptions import ClientError

from .aws_errors import map_client_error, map_transaction_error
from .batch import BATCH_GET_LIMIT, TRANSACT_LIMIT, chunked, fetch_batch_chunk, submit_write_chunks
from .cancel import CancelToken, check
from .codec import Codec, Item
from .config import ClientOptions, new_dynamodb_client
from .errors import BatchWriteError, ConditionFailedError, ValidationError
from .expression import (
    Condition,
    ConditionExpression,
    CustomExpression,
    UpdateExpression,
    build_update_expression,
    custom_update_expression,
)
from .keys import KeySchema
from .locking import LOCK_TOKENS, OptimisticLock
from .pagination import paginate
from .query import QueryResult, build_query_request, resolve_start_key
from .transaction import TransactDeleteInput, TransactEntry, TransactPutInput, entry_kind
from .transport import apply_middlewares

logger = logging.getLogger(__name__)

_RETURN_VALUES = frozenset({"NONE", "ALL_OLD", "UPDATED_OLD", "ALL_NEW", "UPDATED_NEW"})


class Client:
    """Item-level access to a single DynamoDB table with a (partition, sort) key.

    The client holds only immutable configuration; one instance may be shared by
    any number of threads. Every operation accepts a ``cancel`` token that is
    checked before each round trip.
    """

    def __init__(
        self,
        options: ClientOptions,
        *,
        client: Any | None = None,
        session: Any | None = None,
    ) -> None:
        self._options = options
        self._table_name = options.table_name
        self._keys = options.key_schema
        self._codec = Codec()
        if client is not None:
            self._client = apply_middlewares(client, options.middlewares)
        else:
            self._client = new_dynamodb_client(options, session=session)

    @classmethod
    def from_options(
        cls,
        table_name: str,
        *,
        client: Any | None = None,
        session: Any | None = None,
        **option_kwargs: Any,
    ) -> Client:
        return cls(ClientOptions(table_name=table_name, **option_kwargs), client=client, session=session)

    @property
    def table_name(self) -> str:
        return self._table_name

    @property
    def key_schema(self) -> KeySchema:
        return self._keys

    @property
    def codec(self) -> Codec:
        return self._codec

    @property
    def dynamodb_client(self) -> Any:
        """The underlying transport (after middlewares), for table administration."""
        return self._client

    def new_keys(self, pk: Any, sk: Any) -> Item:
        return self._keys.new_keys(pk, sk, self._codec.serialize)

    def _call(self, operation: str, cancel: CancelToken | None, **req: Any) -> Any:
        check(cancel, operation)
        try:
            return getattr(self._client, operation)(**req)
        except ClientError as err:
            mapped = map_client_error(err)
            if isinstance(mapped, ConditionFailedError):
                logger.debug("%s on %s: condition failed", operation, self._table_name)
            else:
                logger.warning("%s on %s failed: %s", operation, self._table_name, mapped)
            raise mapped from err

    def _condition(
        self, condition: Condition | None, optimistic_lock: OptimisticLock | None
    ) -> ConditionExpression:
        cond = ConditionExpression()
        if optimistic_lock is not None:
            optimistic_lock.apply_condition(cond, self._codec)
        if condition is not None:
            cond.add_condition(condition, self._codec)
        return cond

    @staticmethod
    def _apply_condition(req: dict[str, Any], cond: ConditionExpression) -> dict[str, Any]:
        rendered = cond.render()
        if rendered is not None:
            req["ConditionExpression"] = rendered
        cond.bindings.apply_to(req)
        return req

    # -- request builders shared by single-item calls and transactions --

    def _put_request(
        self,
        pk: Any,
        sk: Any,
        item: Any,
        condition: Condition | None,
        optimistic_lock: OptimisticLock | None,
    ) -> dict[str, Any]:
        keys = self.new_keys(pk, sk)
        wire = self._codec.marshal_item(item)
        wire.update(keys)
        if optimistic_lock is not None:
            wire = optimistic_lock.apply_to_item(wire, self._codec)

        req: dict[str, Any] = {"TableName": self._table_name, "Item": wire}
        return self._apply_condition(req, self._condition(condition, optimistic_lock))

    def _delete_request(self, pk: Any, sk: Any, condition: Condition | None) -> dict[str, Any]:
        req: dict[str, Any] = {"TableName": self._table_name, "Key": self.new_keys(pk, sk)}
        return self._apply_condition(req, self._condition(condition, None))

    def _update_request(
        self,
        pk: Any,
        sk: Any,
        fields: Any,
        condition: Condition | None,
        optimistic_lock: OptimisticLock | None,
        expression: CustomExpression | None,
    ) -> dict[str, Any]:
        keys = self.new_keys(pk, sk)

        expr = UpdateExpression()
        if fields is not None:
            reserved = LOCK_TOKENS if optimistic_lock is not None else ()
            expr.merge(build_update_expression(fields, self._keys, self._codec, reserved=reserved))
        elif expression is None:
            raise ValidationError("fields required")
        if expression is not None:
            expr.merge(custom_update_expression(expression, self._codec))
        if optimistic_lock is not None:
            optimistic_lock.apply_to_update(expr, self._codec)

        cond = self._condition(condition, optimistic_lock)
        expr.bindings.merge(cond.bindings)

        req: dict[str, Any] = {
            "TableName": self._table_name,
            "Key": keys,
            "UpdateExpression": expr.render(),
        }
        rendered = cond.render()
        if rendered is not None:
            req["ConditionExpression"] = rendered
        expr.bindings.apply_to(req)
        return req

    # -- single item --

    @overload
    def get_item(
        self,
        pk: Any,
        sk: Any,
        *,
        out_type: None = None,
        consistent_read: bool = False,
        cancel: CancelToken | None = None,
    ) -> dict[str, Any] | None: ...

    @overload
    def get_item[T](
        self,
        pk: Any,
        sk: Any,
        *,
        out_type: type[T],
        consistent_read: bool = False,
        cancel: CancelToken | None = None,
    ) -> T | None: ...

    def get_item(
        self,
        pk: Any,
        sk: Any,
        *,
        out_type: type[Any] | None = None,
        consistent_read: bool = False,
        cancel: CancelToken | None = None,
    ) -> Any:
        """Fetch one item; a missing item gives ``None``."""
        req: dict[str, Any] = {"TableName": self._table_name, "Key": self.new_keys(pk, sk)}
        if consistent_read:
            req["ConsistentRead"] = True

        resp = self._call("get_item", cancel, **req)
        item = resp.get("Item")
        if not item:
            return None
        return self._codec.unmarshal_item(item, out_type)

    def put_item(
        self,
        pk: Any,
        sk: Any,
        item: Any,
        *,
        optimistic_lock: OptimisticLock | None = None,
        condition: Condition | None = None,
        cancel: CancelToken | None = None,
    ) -> None:
        """Create or replace an item.

        The key arguments win over key fields carried by ``item``. With an
        ``optimistic_lock`` the stored version becomes ``current_version + 1``.
        """
        req = self._put_request(pk, sk, item, condition, optimistic_lock)
        self._call("put_item", cancel, **req)

    def delete_item(
        self,
        pk: Any,
        sk: Any,
        *,
        condition: Condition | None = None,
        cancel: CancelToken | None = None,
    ) -> None:
        req = self._delete_request(pk, sk, condition)
        self._call("delete_item", cancel, **req)

    def update_item(
        self,
        pk: Any,
        sk: Any,
        fields: Any = None,
        *,
        condition: Condition | None = None,
        optimistic_lock: OptimisticLock | None = None,
        expression: CustomExpression | None = None,
        return_values: str | None = None,
        out_type: type[Any] | None = None,
        cancel: CancelToken | None = None,
    ) -> Any:
        """Apply a partial update.

        ``fields`` becomes ``SET`` actions (key fields skipped); ``expression`` adds raw
        actions such as ``ADD #n :inc``. All actions, the lock's version bump included,
        are rendered into one expression with one clause per keyword. Returns the
        decoded ``Attributes`` when ``return_values`` asks for them, else ``None``.
        """
        if return_values is not None and return_values not in _RETURN_VALUES:
            raise ValidationError(f"unsupported return_values: {return_values}")

        req = self._update_request(pk, sk, fields, condition, optimistic_lock, expression)
        if return_values is not None:
            req["ReturnValues"] = return_values

        resp = self._call("update_item", cancel, **req)
        attributes = resp.get("Attributes")
        if not attributes:
            return None
        return self._codec.unmarshal_item(attributes, out_type)

    # -- batches --

    def batch_get_items(
        self,
        keys: Sequence[tuple[Any, Any]],
        *,
        out_type: type[Any] | None = None,
        consistent_read: bool = False,
        max_retries: int = 5,
        sleep: Callable[[float], None] | None = time.sleep,
        cancel: CancelToken | None = None,
    ) -> list[Any]:
        """Fetch many items, 100 keys per request. Missing keys are simply absent."""
        if max_retries < 0:
            raise ValidationError("max_retries must be >= 0")

        wire_keys = [self.new_keys(*self._key_pair(key)) for key in keys]
        base_request: dict[str, Any] = {"ConsistentRead": True} if consistent_read else {}

        raw: list[Item] = []
        for chunk in chunked(wire_keys, BATCH_GET_LIMIT):
            raw.extend(
                fetch_batch_chunk(
                    self._client,
                    self._table_name,
                    chunk,
                    base_request=base_request,
                    max_retries=max_retries,
                    sleep=sleep,
                    cancel=cancel,
                )
            )
        return self._codec.unmarshal_items(raw, out_type)

    def batch_write_items(self, items: Sequence[Any], *, cancel: CancelToken | None = None) -> None:
        """Put many items, 25 per request.

        Each entry is a record carrying its own key fields or a ``(pk, sk, record)``
        triple. Every chunk is attempted; if any request was not applied the call
        raises :class:`~dynago_py.errors.BatchWriteError` listing them.
        """
        requests = [{"PutRequest": {"Item": self._batch_item(entry)}} for entry in items]
        if not requests:
            return

        outcome = submit_write_chunks(self._client, self._table_name, requests, cancel=cancel)
        if outcome.ok:
            return

        logger.warning("batch write on %s: %d request(s) not applied", self._table_name, len(outcome.failed))
        cause = outcome.errors[0] if outcome.errors else None
        raise BatchWriteError(failed=outcome.failed, errors=outcome.errors) from cause

    def batch_delete_items(
        self, keys: Sequence[tuple[Any, Any]], *, cancel: CancelToken | None = None
    ) -> list[tuple[Any, Any]]:
        """Delete many items, 25 per request; returns the keys that were not deleted."""
        requests = [{"DeleteRequest": {"Key": self.new_keys(*self._key_pair(key))}} for key in keys]
        if not requests:
            return []

        outcome = submit_write_chunks(self._client, self._table_name, requests, cancel=cancel)
        failed = [
            self._keys.key_values(req["DeleteRequest"]["Key"], self._codec.deserialize) for req in outcome.failed
        ]
        if failed:
            logger.warning("batch delete on %s: %d key(s) not deleted", self._table_name, len(failed))
        return failed

    @staticmethod
    def _key_pair(key: Any) -> tuple[Any, Any]:
        if not isinstance(key, (tuple, list)) or len(key) != 2:
            raise ValidationError("expected key tuple (pk, sk)")
        return key[0], key[1]

    def _batch_item(self, entry: Any) -> Item:
        if isinstance(entry, tuple):
            if len(entry) != 3:
                raise ValidationError("expected (pk, sk, record)")
            pk, sk, record = entry
            wire = self._codec.marshal_item(record)
            wire.update(self.new_keys(pk, sk))
            return wire

        wire = self._codec.marshal_item(entry)
        if self._keys.partition_key not in wire or self._keys.sort_key not in wire:
            raise ValidationError("batch item is missing partition or sort key attribute")
        # re-run key validation on the decoded values
        pk, sk = self._keys.key_values(wire, self._codec.deserialize)
        self.new_keys(pk, sk)
        return wire

    # -- query --

    def query(
        self,
        condition: str,
        params: dict[str, Any] | None = None,
        *,
        out_type: type[Any] | None = None,
        names: dict[str, str] | None = None,
        fields: Sequence[str] | None = None,
        filter: str | Condition | None = None,
        index: str | None = None,
        scan_forward: bool = True,
        limit: int | None = None,
        consistent_read: bool = False,
        start_key: Item | str | None = None,
        cancel: CancelToken | None = None,
    ) -> QueryResult[Any]:
        """Run a key-condition query, following continuation keys across pages.

        Without ``limit`` every matching item is returned. With it, collection stops
        once ``limit`` items are gathered and ``QueryResult.cursor`` resumes after the
        last one. ``start_key`` takes a cursor map or its string token.
        """
        if limit is not None and limit <= 0:
            raise ValidationError("limit must be > 0")

        req = build_query_request(
            self._table_name,
            condition,
            params,
            self._codec,
            names=names,
            fields=fields,
            filter=filter,
            index=index,
            scan_forward=scan_forward,
            consistent_read=consistent_read,
        )
        start = resolve_start_key(start_key)

        def fetch_page(exclusive_start_key: Item | None, remaining: int | None) -> tuple[list[Item], Item | None]:
            page_req = dict(req)
            if exclusive_start_key is not None:
                page_req["ExclusiveStartKey"] = exclusive_start_key
            if remaining is not None:
                page_req["Limit"] = remaining
            resp = self._call("query", None, **page_req)
            return list(resp.get("Items") or []), resp.get("LastEvaluatedKey")

        page = paginate(fetch_page, limit=limit, start_key=start, cancel=cancel)
        return QueryResult(items=self._codec.unmarshal_items(page.items, out_type), cursor=page.cursor)

    # -- transactions --

    def with_put_item(
        self,
        pk: Any,
        sk: Any,
        item: Any,
        *,
        condition: Condition | None = None,
        optimistic_lock: OptimisticLock | None = None,
    ) -> TransactEntry:
        return {"Put": self._put_request(pk, sk, item, condition, optimistic_lock)}

    def with_delete_item(self, pk: Any, sk: Any, *, condition: Condition | None = None) -> TransactEntry:
        return {"Delete": self._delete_request(pk, sk, condition)}

    def with_update_item(
        self,
        pk: Any,
        sk: Any,
        updates: Any = None,
        *,
        condition: Condition | None = None,
        optimistic_lock: OptimisticLock | None = None,
        expression: CustomExpression | None = None,
    ) -> TransactEntry:
        return {"Update": self._update_request(pk, sk, updates, condition, optimistic_lock, expression)}

    def with_condition_check(self, pk: Any, sk: Any, condition: Condition) -> TransactEntry:
        if condition is None:
            raise ValidationError("condition is required for a condition check")
        req: dict[str, Any] = {"TableName": self._table_name, "Key": self.new_keys(pk, sk)}
        return {"ConditionCheck": self._apply_condition(req, self._condition(condition, None))}

    def transact_items(self, *entries: TransactEntry, cancel: CancelToken | None = None) -> None:
        """Apply up to 100 entries atomically: all of them take effect or none does.

        A cancelled transaction whose reasons include a failed condition raises
        :class:`~dynago_py.errors.ConditionFailedError`.
        """
        if not entries:
            raise ValidationError("at least one transact entry is required")
        if len(entries) > TRANSACT_LIMIT:
            raise ValidationError(f"a transaction supports at most {TRANSACT_LIMIT} entries")
        for entry in entries:
            entry_kind(entry)

        check(cancel, "transact_write")
        try:
            self._client.transact_write_items(TransactItems=list(entries))
        except ClientError as err:
            mapped = map_transaction_error(err)
            if isinstance(mapped, ConditionFailedError):
                logger.debug("transaction on %s: condition failed", self._table_name)
            else:
                logger.warning("transaction of %d entries on %s failed: %s", len(entries), self._table_name, mapped)
            raise mapped from err

    def transact_put_items(
        self, inputs: Sequence[TransactPutInput], *, cancel: CancelToken | None = None
    ) -> None:
        self.transact_items(*(self.with_put_item(i.pk, i.sk, i.item) for i in inputs), cancel=cancel)

    def transact_delete_items(
        self, inputs: Sequence[TransactDeleteInput], *, cancel: CancelToken | None = None
    ) -> None:
        self.transact_items(*(self.with_delete_item(i.pk, i.sk) for i in inputs), cancel=cancel)
