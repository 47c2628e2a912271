"""Per-calendar advisory lock built on DynamoDB conditional writes."""
import logging
import time
import uuid

import boto3
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)


class SyncLock:
    """
    Advisory lock that keeps overlapping sync passes off the same calendar.

    A lock that was never released (the process was killed mid-pass)
    expires after ``ttl_seconds`` and can then be taken over.
    """

    LOCK_PRINCIPAL = '__sync_lock__'

    def __init__(self, table_name: str, ttl_seconds: int = 330):
        """
        Args:
            table_name: Name of the DynamoDB table
            ttl_seconds: Lifetime of an acquired lock
        """
        self.table_name = table_name
        self.ttl_seconds = ttl_seconds
        self.owner = uuid.uuid4().hex
        self.dynamodb = boto3.resource('dynamodb')
        self.table = self.dynamodb.Table(table_name)

    def acquire(self, calendar_id: str) -> bool:
        """
        Try to take the lock for a calendar.

        Args:
            calendar_id: Calendar to lock

        Returns:
            True if the lock is now held by this instance
        """
        now = int(time.time())
        try:
            self.table.put_item(
                Item={
                    'principal_id': self.LOCK_PRINCIPAL,
                    'property_key': calendar_id,
                    'owner': self.owner,
                    'expires_at': now + self.ttl_seconds
                },
                ConditionExpression=(
                    'attribute_not_exists(property_key) OR expires_at < :now'
                ),
                ExpressionAttributeValues={':now': now}
            )
        except ClientError as e:
            if e.response['Error']['Code'] == 'ConditionalCheckFailedException':
                logger.warning(f"Sync lock for calendar {calendar_id} is held elsewhere")
                return False
            logger.error(f"Error acquiring sync lock for calendar {calendar_id}: {e}")
            raise

        logger.debug(f"Acquired sync lock for calendar {calendar_id}")
        return True

    def release(self, calendar_id: str) -> None:
        """
        Release the lock if this instance still holds it.

        Args:
            calendar_id: Calendar to unlock
        """
        try:
            self.table.delete_item(
                Key={
                    'principal_id': self.LOCK_PRINCIPAL,
                    'property_key': calendar_id
                },
                ConditionExpression='#owner = :owner',
                ExpressionAttributeNames={'#owner': 'owner'},
                ExpressionAttributeValues={':owner': self.owner}
            )
        except ClientError as e:
            if e.response['Error']['Code'] == 'ConditionalCheckFailedException':
                logger.warning(
                    f"Sync lock for calendar {calendar_id} was taken over before release"
                )
                return
            logger.error(f"Error releasing sync lock for calendar {calendar_id}: {e}")
            raise
        logger.debug(f"Released sync lock for calendar {calendar_id}")
