"""DynamoDB-backed key-value property storage scoped per principal."""
import logging
import time
from typing import Optional

import boto3
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)


class DynamoDBPropertyStore:
    """Per-principal property bag stored in DynamoDB."""

    def __init__(self, table_name: str, principal_id: str):
        """
        Initialize DynamoDB resource and table reference.

        Args:
            table_name: Name of the DynamoDB table
            principal_id: User or service account the properties belong to
        """
        self.table_name = table_name
        self.principal_id = principal_id
        self.dynamodb = boto3.resource('dynamodb')
        self.table = self.dynamodb.Table(table_name)
        logger.info(
            f"Initialized DynamoDBPropertyStore for table: {table_name} "
            f"(principal: {principal_id})"
        )

    def get_property(self, key: str) -> Optional[str]:
        """
        Read a property.

        Args:
            key: Property key

        Returns:
            Stored value or None if the property is not set
        """
        try:
            response = self.table.get_item(
                Key=self._key(key),
                ConsistentRead=True
            )
        except ClientError as e:
            logger.error(f"Error reading property '{key}': {e}")
            raise

        item = response.get('Item')
        if not item:
            return None
        return item.get('value')

    def set_property(self, key: str, value: str) -> None:
        """
        Write a property, replacing any previous value.

        Args:
            key: Property key
            value: Value to store
        """
        item = self._key(key)
        item['value'] = value
        item['updated_at'] = int(time.time())

        try:
            self.table.put_item(Item=item)
        except ClientError as e:
            logger.error(f"Error writing property '{key}': {e}")
            raise

    def delete_property(self, key: str) -> None:
        """
        Delete a property; deleting a missing property is a no-op.

        Args:
            key: Property key
        """
        try:
            self.table.delete_item(Key=self._key(key))
        except ClientError as e:
            logger.error(f"Error deleting property '{key}': {e}")
            raise

    def _key(self, key: str) -> dict:
        return {'principal_id': self.principal_id, 'property_key': key}
