"""DynamoDB table access for full scans and partition queries.

Used by the batch jobs, which walk whole tables page by page with a
continuation key.
"""

import asyncio
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional

from boto3.dynamodb.types import TypeDeserializer
from botocore.exceptions import BotoCoreError, ClientError
import structlog

from shared.utils.errors import StorageError

from .aws import AwsClients


logger = structlog.get_logger()

_deserializer = TypeDeserializer()


def _plain(value: Any) -> Any:
    """Convert DynamoDB numbers and sets into JSON-friendly values."""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, set, tuple)):
        return [_plain(v) for v in value]
    return value


def unmarshall(item: Dict[str, Any]) -> Dict[str, Any]:
    """Convert a DynamoDB wire item into a plain dictionary."""
    return {k: _plain(_deserializer.deserialize(v)) for k, v in item.items()}


@dataclass
class ScanPage:
    """One page of a table scan."""
    items: List[Dict[str, Any]] = field(default_factory=list)
    next_key: Optional[Dict[str, Any]] = None


class DynamoTable:
    """Read-only access to one DynamoDB table."""

    def __init__(self, table_name: str, clients: AwsClients):
        self.table_name = table_name
        self.clients = clients
        self.logger = structlog.get_logger("dynamodb-table").bind(table=table_name)

    async def scan_page(
        self,
        start_key: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = None,
    ) -> ScanPage:
        """Fetch one scan page starting at ``start_key``."""
        kwargs: Dict[str, Any] = {"TableName": self.table_name}
        if start_key:
            kwargs["ExclusiveStartKey"] = start_key
        if limit:
            kwargs["Limit"] = limit

        try:
            response = await asyncio.to_thread(self.clients.dynamodb.scan, **kwargs)
        except (BotoCoreError, ClientError) as e:
            self.logger.error("DynamoDB scan error", error=str(e))
            raise StorageError("Table scan failed", operation="scan", resource=self.table_name) from e

        return ScanPage(
            items=[unmarshall(item) for item in response.get("Items", [])],
            next_key=response.get("LastEvaluatedKey"),
        )

    async def query_partition(
        self,
        key_name: str,
        value: str,
        index_name: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Return every item whose ``key_name`` equals ``value``."""
        items: List[Dict[str, Any]] = []
        start_key: Optional[Dict[str, Any]] = None
        while True:
            kwargs: Dict[str, Any] = {
                "TableName": self.table_name,
                "KeyConditionExpression": "#k = :v",
                "ExpressionAttributeNames": {"#k": key_name},
                "ExpressionAttributeValues": {":v": {"S": value}},
            }
            if index_name:
                kwargs["IndexName"] = index_name
            if start_key:
                kwargs["ExclusiveStartKey"] = start_key

            try:
                response = await asyncio.to_thread(self.clients.dynamodb.query, **kwargs)
            except (BotoCoreError, ClientError) as e:
                self.logger.error("DynamoDB query error", error=str(e), key=key_name, value=value)
                raise StorageError("Table query failed", operation="query", resource=self.table_name) from e

            items.extend(unmarshall(item) for item in response.get("Items", []))
            start_key = response.get("LastEvaluatedKey")
            if not start_key:
                return items
