from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    ReadTimeoutError,
)

from ..model.values import (
    IndexSchema,
    KeyType,
    Record,
    TableSchema,
    record_from_wire,
    record_to_wire,
    to_wire,
)
from .base import (
    LISTING_TIMEOUT_S,
    BackendError,
    BackendInterface,
    BackendTimeout,
    KeyCondition,
    Page,
)

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "http://localhost:8000"


@dataclass(frozen=True)
class DynamoDbConfig:
    endpoint: str = DEFAULT_ENDPOINT
    region: str = "us-east-1"
    timeout_s: float = LISTING_TIMEOUT_S
    access_key_id: str = "local"
    secret_access_key: str = "local"

    @classmethod
    def from_env(cls, endpoint: str, *, region: str | None = None) -> DynamoDbConfig:
        """Passthrough credentials from the environment, `local` otherwise."""

        return cls(
            endpoint=endpoint,
            region=region or os.environ.get("AWS_REGION") or cls.region,
            access_key_id=os.environ.get("AWS_ACCESS_KEY_ID") or cls.access_key_id,
            secret_access_key=os.environ.get("AWS_SECRET_ACCESS_KEY") or cls.secret_access_key,
        )


def _key_schema(elements: list[dict[str, Any]]) -> tuple[str, str]:
    partition_key = ""
    sort_key = ""
    for element in elements:
        if element.get("KeyType") == "HASH":
            partition_key = str(element["AttributeName"])
        elif element.get("KeyType") == "RANGE":
            sort_key = str(element["AttributeName"])
    return (partition_key, sort_key)


def _index_schemas(raw: list[dict[str, Any]] | None) -> tuple[IndexSchema, ...]:
    indexes: list[IndexSchema] = []
    for entry in raw or []:
        partition_key, sort_key = _key_schema(entry.get("KeySchema") or [])
        indexes.append(
            IndexSchema(
                name=str(entry["IndexName"]),
                partition_key=partition_key,
                sort_key=sort_key,
            )
        )
    return tuple(indexes)


def table_schema_from_description(name: str, description: dict[str, Any]) -> TableSchema:
    """Build a TableSchema from a DescribeTable `Table` object."""

    partition_key, sort_key = _key_schema(description.get("KeySchema") or [])
    key_types: dict[str, KeyType] = {}
    for definition in description.get("AttributeDefinitions") or []:
        attr_type = definition.get("AttributeType")
        if attr_type in {"S", "N", "B"}:
            key_types[str(definition["AttributeName"])] = attr_type
    return TableSchema(
        name=name,
        partition_key=partition_key,
        sort_key=sort_key,
        global_indexes=_index_schemas(description.get("GlobalSecondaryIndexes")),
        local_indexes=_index_schemas(description.get("LocalSecondaryIndexes")),
        key_types=key_types,
    )


class DynamoDbBackend(BackendInterface):
    """Low-level boto3 client talking to a single DynamoDB-compatible endpoint."""

    def __init__(self, config: DynamoDbConfig, *, client: Any | None = None) -> None:
        self._config = config
        self.listing_timeout_s = config.timeout_s
        self._client: Any = client or boto3.client(
            "dynamodb",
            endpoint_url=config.endpoint,
            region_name=config.region,
            aws_access_key_id=config.access_key_id,
            aws_secret_access_key=config.secret_access_key,
            config=Config(
                connect_timeout=config.timeout_s,
                read_timeout=config.timeout_s,
                retries={"max_attempts": 1},
            ),
        )

    @property
    def endpoint(self) -> str:
        return self._config.endpoint

    def _call(self, operation: str, **request: Any) -> dict[str, Any]:
        fn = getattr(self._client, operation)
        try:
            return fn(**request)
        except (ConnectTimeoutError, ReadTimeoutError) as exc:
            logger.warning("%s timed out: %s", operation, exc)
            raise BackendTimeout(f"{operation} timed out: {exc}") from exc
        except ClientError as exc:
            logger.warning("%s failed: %s", operation, exc)
            raise BackendError(f"{operation} failed: {exc}") from exc
        except BotoCoreError as exc:
            logger.warning("%s failed: %s", operation, exc)
            raise BackendError(f"{operation} failed: {exc}") from exc

    def list_tables_page(self, cursor: Any | None) -> Page[str]:
        request: dict[str, Any] = {}
        if cursor is not None:
            request["ExclusiveStartTableName"] = cursor
        resp = self._call("list_tables", **request)
        return Page(
            items=[str(name) for name in resp.get("TableNames", [])],
            cursor=resp.get("LastEvaluatedTableName"),
        )

    def describe_table(self, name: str) -> TableSchema:
        resp = self._call("describe_table", TableName=name)
        return table_schema_from_description(name, resp.get("Table") or {})

    def _records_page(self, resp: dict[str, Any]) -> Page[Record]:
        return Page(
            items=[record_from_wire(item) for item in resp.get("Items", [])],
            cursor=resp.get("LastEvaluatedKey") or None,
        )

    def scan_page(self, table: str, index: str | None, cursor: Any | None) -> Page[Record]:
        request: dict[str, Any] = {"TableName": table}
        if index:
            request["IndexName"] = index
        if cursor is not None:
            request["ExclusiveStartKey"] = cursor
        return self._records_page(self._call("scan", **request))

    def query_page(
        self,
        table: str,
        index: str | None,
        condition: KeyCondition,
        cursor: Any | None,
    ) -> Page[Record]:
        request: dict[str, Any] = {
            "TableName": table,
            "KeyConditionExpression": condition.expression,
            "ExpressionAttributeNames": {"#pk": condition.attribute},
            "ExpressionAttributeValues": {":pk": to_wire(condition.value)},
        }
        if index:
            request["IndexName"] = index
        if cursor is not None:
            request["ExclusiveStartKey"] = cursor
        return self._records_page(self._call("query", **request))

    def get_item(self, table: str, key: Record) -> Record | None:
        resp = self._call("get_item", TableName=table, Key=record_to_wire(key))
        item = resp.get("Item")
        if not item:
            return None
        return record_from_wire(item)

    def put_item(self, table: str, record: Record) -> None:
        self._call("put_item", TableName=table, Item=record_to_wire(record))

    def delete_item(self, table: str, key: Record) -> None:
        self._call("delete_item", TableName=table, Key=record_to_wire(key))
