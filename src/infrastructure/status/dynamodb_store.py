"""DynamoDB-backed assembly status store."""

from decimal import Decimal
from typing import Any, Dict, Optional
import logging

import boto3
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import ClientError, BotoCoreError

from domain.exceptions import (
    AssemblyNotFoundError,
    AssemblyAlreadyStartedError,
    TransientInfraError,
)

KEY_ATTRIBUTE = "assembly_id"


def to_dynamo(value: Any) -> Any:
    """Convert floats (recursively) to Decimal; DynamoDB rejects float."""
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: to_dynamo(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_dynamo(v) for v in value]
    return value


def from_dynamo(value: Any) -> Any:
    """Convert Decimal (recursively) back to int or float."""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: from_dynamo(v) for k, v in value.items()}
    if isinstance(value, list):
        return [from_dynamo(v) for v in value]
    return value


class DynamoStatusStore:
    """
    Status records in a DynamoDB table keyed by ``assembly_id``.
    Implements IStatusStore protocol.

    Updates are field-scoped ``SET`` expressions so concurrent writers of
    different attributes never overwrite each other.
    """

    def __init__(
        self,
        table_name: str,
        region: str = "us-east-1",
        table=None,
        logger: Optional[logging.Logger] = None
    ):
        if not table_name and table is None:
            raise ValueError("table_name is required")
        self.table_name = table_name
        self.logger = logger or logging.getLogger(__name__)
        self._table = table or boto3.resource('dynamodb', region_name=region).Table(table_name)

    def get(self, assembly_id: str) -> Dict[str, Any]:
        try:
            response = self._table.get_item(Key={KEY_ATTRIBUTE: assembly_id}, ConsistentRead=True)
        except (ClientError, BotoCoreError) as e:
            raise TransientInfraError(f"Status lookup for {assembly_id} failed: {e}") from e

        item = response.get('Item')
        if not item:
            raise AssemblyNotFoundError(assembly_id)
        return from_dynamo(item)

    def create(self, record: Dict[str, Any]) -> None:
        assembly_id = record.get(KEY_ATTRIBUTE)
        if not assembly_id:
            raise ValueError(f"Record is missing {KEY_ATTRIBUTE}")

        # A pending record (written when the upload URL was issued) may be
        # replaced; a started or finished one may not.
        condition = Attr(KEY_ATTRIBUTE).not_exists() | Attr('execution_start').not_exists()
        try:
            self._table.put_item(Item=to_dynamo(record), ConditionExpression=condition)
        except ClientError as e:
            if e.response.get('Error', {}).get('Code') == 'ConditionalCheckFailedException':
                raise AssemblyAlreadyStartedError(assembly_id) from e
            raise TransientInfraError(f"Status create for {assembly_id} failed: {e}") from e
        except BotoCoreError as e:
            raise TransientInfraError(f"Status create for {assembly_id} failed: {e}") from e

    def update(self, assembly_id: str, fields: Dict[str, Any]) -> None:
        if not fields:
            return

        names = {}
        values = {}
        assignments = []
        for index, (name, value) in enumerate(fields.items()):
            if name == KEY_ATTRIBUTE:
                continue
            names[f"#f{index}"] = name
            values[f":v{index}"] = to_dynamo(value)
            assignments.append(f"#f{index} = :v{index}")

        if not assignments:
            return

        try:
            self._table.update_item(
                Key={KEY_ATTRIBUTE: assembly_id},
                UpdateExpression="SET " + ", ".join(assignments),
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values
            )
        except (ClientError, BotoCoreError) as e:
            raise TransientInfraError(f"Status update for {assembly_id} failed: {e}") from e
