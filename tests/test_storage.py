"""Unit tests for DynamoDB-backed property storage, cursors and locks."""
import boto3
import pytest
from moto import mock_aws

from storage.cursor_store import CursorStore
from storage.property_store import DynamoDBPropertyStore
from storage.sync_lock import SyncLock

TABLE_NAME = 'test-videoroom-sync'


@pytest.fixture
def aws_env(monkeypatch):
    """Point boto3 at a fake region and credentials."""
    monkeypatch.setenv('AWS_DEFAULT_REGION', 'us-east-1')
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')


@pytest.fixture
def dynamodb_table(aws_env):
    """Create a mock DynamoDB table for testing."""
    with mock_aws():
        dynamodb = boto3.resource('dynamodb', region_name='us-east-1')

        table = dynamodb.create_table(
            TableName=TABLE_NAME,
            KeySchema=[
                {'AttributeName': 'principal_id', 'KeyType': 'HASH'},
                {'AttributeName': 'property_key', 'KeyType': 'RANGE'}
            ],
            AttributeDefinitions=[
                {'AttributeName': 'principal_id', 'AttributeType': 'S'},
                {'AttributeName': 'property_key', 'AttributeType': 'S'}
            ],
            BillingMode='PAY_PER_REQUEST'
        )

        yield table


@pytest.fixture
def property_store(dynamodb_table):
    return DynamoDBPropertyStore(TABLE_NAME, principal_id='user-1')


class TestDynamoDBPropertyStore:
    """Test cases for DynamoDBPropertyStore."""

    def test_missing_property(self, property_store):
        assert property_store.get_property('syncToken:cal-1') is None

    def test_set_and_get(self, property_store, dynamodb_table):
        property_store.set_property('syncToken:cal-1', 'tok1')

        assert property_store.get_property('syncToken:cal-1') == 'tok1'
        item = dynamodb_table.get_item(
            Key={'principal_id': 'user-1', 'property_key': 'syncToken:cal-1'}
        )['Item']
        assert item['value'] == 'tok1'
        assert 'updated_at' in item

    def test_last_write_wins(self, property_store):
        property_store.set_property('syncToken:cal-1', 'tok1')
        property_store.set_property('syncToken:cal-1', 'tok2')

        assert property_store.get_property('syncToken:cal-1') == 'tok2'

    def test_delete(self, property_store):
        property_store.set_property('syncToken:cal-1', 'tok1')

        property_store.delete_property('syncToken:cal-1')

        assert property_store.get_property('syncToken:cal-1') is None

    def test_delete_missing_is_noop(self, property_store):
        property_store.delete_property('never-set')

    def test_scoped_per_principal(self, property_store, dynamodb_table):
        """Test two principals never see each other's properties."""
        other = DynamoDBPropertyStore(TABLE_NAME, principal_id='user-2')
        property_store.set_property('syncToken:cal-1', 'mine')

        assert other.get_property('syncToken:cal-1') is None


class TestCursorStore:
    """Test cases for CursorStore."""

    def test_round_trip(self, property_store):
        store = CursorStore(property_store)

        assert store.get('cal-1') is None
        store.set('cal-1', 'tok1')
        assert store.get('cal-1') == 'tok1'

    def test_one_cursor_per_calendar(self, property_store):
        store = CursorStore(property_store)
        store.set('cal-1', 'tok1')
        store.set('cal-2', 'tokX')
        store.set('cal-1', 'tok2')

        assert store.get('cal-1') == 'tok2'
        assert store.get('cal-2') == 'tokX'
        assert property_store.get_property('syncToken:cal-1') == 'tok2'

    def test_delete(self, property_store):
        store = CursorStore(property_store)
        store.set('cal-1', 'tok1')

        store.delete('cal-1')

        assert store.get('cal-1') is None

    def test_empty_cursor_rejected(self, property_store):
        with pytest.raises(ValueError):
            CursorStore(property_store).set('cal-1', '')


class TestSyncLock:
    """Test cases for SyncLock."""

    def test_acquire_and_release(self, dynamodb_table):
        lock = SyncLock(TABLE_NAME)

        assert lock.acquire('cal-1') is True
        lock.release('cal-1')
        assert lock.acquire('cal-1') is True

    def test_second_holder_refused(self, dynamodb_table):
        first = SyncLock(TABLE_NAME)
        second = SyncLock(TABLE_NAME)

        assert first.acquire('cal-1') is True
        assert second.acquire('cal-1') is False
        assert second.acquire('cal-2') is True

    def test_release_by_other_owner_keeps_lock(self, dynamodb_table):
        first = SyncLock(TABLE_NAME)
        second = SyncLock(TABLE_NAME)
        first.acquire('cal-1')

        second.release('cal-1')

        assert second.acquire('cal-1') is False

    def test_expired_lock_taken_over(self, dynamodb_table):
        """Test a lock left behind by a killed pass expires."""
        stale = SyncLock(TABLE_NAME, ttl_seconds=-60)
        fresh = SyncLock(TABLE_NAME)

        assert stale.acquire('cal-1') is True
        assert fresh.acquire('cal-1') is True

    def test_lock_does_not_clash_with_properties(self, property_store, dynamodb_table):
        lock = SyncLock(TABLE_NAME)
        property_store.set_property('cal-1', 'value')

        assert lock.acquire('cal-1') is True
        assert property_store.get_property('cal-1') == 'value'
