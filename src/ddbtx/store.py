from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any, Protocol

import boto3
from boto3.dynamodb.types import TypeSerializer
from botocore.exceptions import BotoCoreError, ClientError

from .aws_errors import map_transaction_error, map_transport_error
from .config import MAX_TRANSACTION_ACTIONS
from .errors import ValidationError
from .operations import DeleteOperation, PutOperation, UpdateOperation, WireOperation

logger = logging.getLogger(__name__)


class Store(Protocol):
    def submit_transaction(self, operations: Sequence[WireOperation]) -> None: ...


class DynamoDBStore:
    """Submits wire operations as a single ``TransactWriteItems`` call."""

    def __init__(self, *, client: Any | None = None) -> None:
        self._client: Any = client
        self._serializer = TypeSerializer()

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = boto3.client("dynamodb")
        return self._client

    def submit_transaction(self, operations: Sequence[WireOperation]) -> None:
        if not operations:
            raise ValidationError("operations is required")
        if len(operations) > MAX_TRANSACTION_ACTIONS:
            raise ValidationError(f"a transaction supports at most {MAX_TRANSACTION_ACTIONS} actions")

        transact_items = [self._transact_item(op) for op in operations]

        logger.debug("transact_write_items: %d items", len(transact_items))
        try:
            self.client.transact_write_items(TransactItems=transact_items)
        except ClientError as err:
            raise map_transaction_error(err) from err
        except BotoCoreError as err:
            raise map_transport_error(err) from err

    def _transact_item(self, op: WireOperation) -> dict[str, Any]:
        if isinstance(op, PutOperation):
            req: dict[str, Any] = {"TableName": op.table_name, "Item": self._serialize_map(op.item)}
            if op.condition_expression:
                req["ConditionExpression"] = op.condition_expression
            return {"Put": req}

        if isinstance(op, UpdateOperation):
            req = {
                "TableName": op.table_name,
                "Key": self._serialize_map(op.key),
                "UpdateExpression": op.update_expression,
            }
            if op.expression_attribute_values:
                req["ExpressionAttributeValues"] = self._serialize_map(op.expression_attribute_values)
            if op.expression_attribute_names:
                req["ExpressionAttributeNames"] = dict(op.expression_attribute_names)
            return {"Update": req}

        if isinstance(op, DeleteOperation):
            return {"Delete": {"TableName": op.table_name, "Key": self._serialize_map(op.key)}}

        raise ValidationError(f"unsupported wire operation: {type(op).__name__}")

    def _serialize_map(self, values: Mapping[str, Any]) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for k, v in values.items():
            try:
                out[k] = self._serializer.serialize(v)
            except TypeError as err:
                raise ValidationError(f"unsupported value for {k}: {err}") from err
        return out
