"""
Utility wrapper for storing encrypted OAuth token items in DynamoDB.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError

from tokenvault.clients.base import ConditionalWriteError
from tokenvault.core.config import StorageSettings


class DynamoDBClient:
    """Revision-checked CRUD operations for token items."""

    def __init__(self, settings: StorageSettings, table: Any = None) -> None:
        self._settings = settings
        if table is None:
            resource = boto3.resource("dynamodb", region_name=settings.region_name)
            table = resource.Table(settings.dynamodb_table_name)
        self._table = table

    def put_item(
        self, item: Dict[str, Any], *, expected_revision: Optional[int] = None
    ) -> None:
        """Put an item, optionally guarded by the stored revision."""
        kwargs: Dict[str, Any] = {"Item": item}
        if expected_revision == 0:
            kwargs["ConditionExpression"] = "attribute_not_exists(pk)"
        elif expected_revision is not None:
            kwargs["ConditionExpression"] = "#rev = :rev"
            kwargs["ExpressionAttributeNames"] = {"#rev": "revision"}
            kwargs["ExpressionAttributeValues"] = {":rev": expected_revision}

        try:
            self._table.put_item(**kwargs)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            if code == "ConditionalCheckFailedException":
                raise ConditionalWriteError(
                    f"Stored revision no longer matches {expected_revision}."
                ) from exc
            raise

    def get_item(
        self, *, partition_key: str, sort_key: str
    ) -> Optional[Dict[str, Any]]:
        """Retrieve an item using its key."""
        response = self._table.get_item(
            Key={"pk": partition_key, "sk": sort_key},
            ConsistentRead=True,
        )
        return response.get("Item")

    def delete_item(self, *, partition_key: str, sort_key: str) -> None:
        self._table.delete_item(Key={"pk": partition_key, "sk": sort_key})

    def list_items_with_prefix(
        self, *, partition_key: str, sort_key_prefix: str
    ) -> list[Dict[str, Any]]:
        """Query items in a partition whose sort key starts with the prefix."""
        condition = Key("pk").eq(partition_key) & Key("sk").begins_with(sort_key_prefix)
        items: list[Dict[str, Any]] = []
        kwargs: Dict[str, Any] = {"KeyConditionExpression": condition}
        while True:
            response = self._table.query(**kwargs)
            items.extend(response.get("Items", []))
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                return items
            kwargs["ExclusiveStartKey"] = last_key


__all__ = ["DynamoDBClient"]
