"""DynamoDB access for the reconciler tables.

Tables are named {prefix}-{table}. Writes take boto3 condition objects
(`boto3.dynamodb.conditions.Attr`) and report a failed condition as a
return value rather than an exception, which is how the ledger expresses
its compare-and-set transitions.
"""

import os
from typing import Any

import boto3
from boto3.dynamodb.conditions import ConditionBase, Key
from botocore.exceptions import ClientError

# Module-level singleton for connection reuse
_dynamodb_service_instance: "DynamoDBService | None" = None


def get_dynamodb_service(table_prefix: str | None = None) -> "DynamoDBService":
    """Get or create the shared DynamoDBService. The prefix only applies on first call."""
    global _dynamodb_service_instance
    if _dynamodb_service_instance is None:
        _dynamodb_service_instance = DynamoDBService(table_prefix)
    return _dynamodb_service_instance


def reset_dynamodb_service() -> None:
    """Reset the singleton instance (for testing only)."""
    global _dynamodb_service_instance
    _dynamodb_service_instance = None


def is_condition_failure(error: ClientError) -> bool:
    """True if a write was rejected by its condition expression."""
    return error.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException"


class UpdateBuilder:
    """Builds an UpdateExpression with generated placeholders.

    Every attribute name goes through a #placeholder, so callers never
    have to care which names are DynamoDB reserved words. The #a and :u
    prefixes stay clear of the #n and :v placeholders boto3 generates for
    condition objects in the same request.
    """

    def __init__(self) -> None:
        self._set: list[str] = []
        self._remove: list[str] = []
        self.names: dict[str, str] = {}
        self.values: dict[str, Any] = {}

    def _name(self, attribute: str) -> str:
        placeholder = f"#a{len(self.names)}"
        self.names[placeholder] = attribute
        return placeholder

    def _value(self, value: Any) -> str:
        placeholder = f":u{len(self.values)}"
        self.values[placeholder] = value
        return placeholder

    def set(self, attribute: str, value: Any) -> "UpdateBuilder":
        self._set.append(f"{self._name(attribute)} = {self._value(value)}")
        return self

    def set_if_missing(self, attribute: str, value: Any) -> "UpdateBuilder":
        name = self._name(attribute)
        self._set.append(f"{name} = if_not_exists({name}, {self._value(value)})")
        return self

    def remove(self, attribute: str) -> "UpdateBuilder":
        self._remove.append(self._name(attribute))
        return self

    @property
    def expression(self) -> str:
        clauses = []
        if self._set:
            clauses.append("SET " + ", ".join(self._set))
        if self._remove:
            clauses.append("REMOVE " + ", ".join(self._remove))
        return " ".join(clauses)


class DynamoDBService:
    """DynamoDB operations with environment-aware table names."""

    def __init__(self, table_prefix: str | None = None, resource: Any | None = None) -> None:
        """Initialize DynamoDB service.

        Args:
            table_prefix: Table name prefix. Defaults to DYNAMODB_TABLE_PREFIX,
                then reconciler-{ENVIRONMENT}.
            resource: Optional boto3 DynamoDB resource to use instead of a new one.
        """
        environment = os.getenv("ENVIRONMENT", "dev")
        self.name_prefix = table_prefix or os.getenv(
            "DYNAMODB_TABLE_PREFIX", f"reconciler-{environment}"
        )
        self._dynamodb = resource or boto3.resource("dynamodb")

    def table(self, name: str) -> Any:
        return self._dynamodb.Table(f"{self.name_prefix}-{name}")

    def get_item(
        self, table: str, key: dict[str, Any], consistent_read: bool = True
    ) -> dict[str, Any] | None:
        response = self.table(table).get_item(Key=key, ConsistentRead=consistent_read)
        item: dict[str, Any] | None = response.get("Item")
        return item

    def put_item(
        self,
        table: str,
        item: dict[str, Any],
        condition: ConditionBase | None = None,
    ) -> bool:
        """Write a whole item.

        Returns:
            True if written, False if the condition rejected the write
        """
        kwargs: dict[str, Any] = {"Item": item}
        if condition is not None:
            kwargs["ConditionExpression"] = condition
        try:
            self.table(table).put_item(**kwargs)
        except ClientError as e:
            if is_condition_failure(e):
                return False
            raise
        return True

    def update_item(
        self,
        table: str,
        key: dict[str, Any],
        update: UpdateBuilder,
        condition: ConditionBase | None = None,
    ) -> dict[str, Any] | None:
        """Apply an update and return the item as it now stands.

        An update without a condition creates the item when it is missing.

        Returns:
            All attributes after the update, or None if the condition failed
        """
        kwargs: dict[str, Any] = {
            "Key": key,
            "UpdateExpression": update.expression,
            "ExpressionAttributeNames": update.names,
            "ReturnValues": "ALL_NEW",
        }
        if update.values:
            kwargs["ExpressionAttributeValues"] = update.values
        if condition is not None:
            kwargs["ConditionExpression"] = condition
        try:
            response = self.table(table).update_item(**kwargs)
        except ClientError as e:
            if is_condition_failure(e):
                return None
            raise
        attrs: dict[str, Any] | None = response.get("Attributes")
        return attrs

    def query_index(
        self, table: str, index_name: str, attribute: str, value: str
    ) -> list[dict[str, Any]]:
        """Return every item on a GSI partition, following pagination."""
        kwargs: dict[str, Any] = {
            "IndexName": index_name,
            "KeyConditionExpression": Key(attribute).eq(value),
        }
        items: list[dict[str, Any]] = []
        while True:
            response = self.table(table).query(**kwargs)
            items.extend(response.get("Items", []))
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                return items
            kwargs["ExclusiveStartKey"] = last_key
