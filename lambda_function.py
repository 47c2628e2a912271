"""AWS Lambda handler for Video Room Calendar Sync."""
import json
import logging
import os
import time
from typing import Any, Dict, Optional

from calendar_api.google_calendar import GoogleCalendarClient
from conference.creator import create_conference
from conference.room_names import RoomNameClient
from conference.updater import ConferenceUpdater
from storage.cursor_store import CursorStore
from storage.property_store import DynamoDBPropertyStore
from storage.sync_lock import SyncLock
from sync.engine import SyncEngine
from sync.models import SyncOutcome
from sync.triggers import TriggerRegistrar

logger = logging.getLogger(__name__)

CREATE_CONFERENCE_ACTION = 'createConference'
CHANNEL_TOKEN_HEADER = 'x-goog-channel-token'
RESOURCE_STATE_HEADER = 'x-goog-resource-state'
LOCK_TTL_MARGIN_SECONDS = 30


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def load_config() -> Dict[str, Any]:
    """Read configuration from environment variables."""
    return {
        'table_name': os.environ.get('TABLE_NAME', 'videoroom-sync'),
        'principal_id': os.environ.get('PRINCIPAL_ID', 'default'),
        'log_level': os.environ.get('LOG_LEVEL', 'INFO'),
        'timeout_seconds': int(os.environ.get('TIMEOUT_SECONDS', '30')),
        'lock_ttl_seconds': int(os.environ.get('LOCK_TTL_SECONDS', '330')),
        'webhook_url': os.environ.get('WEBHOOK_URL') or None,
        'access_token': os.environ.get('GOOGLE_ACCESS_TOKEN') or None,
        'client_id': os.environ.get('GOOGLE_CLIENT_ID') or None,
        'client_secret': os.environ.get('GOOGLE_CLIENT_SECRET') or None,
        'refresh_token': os.environ.get('GOOGLE_REFRESH_TOKEN') or None
    }


def build_engine(
    config: Dict[str, Any],
    calendar_client: GoogleCalendarClient,
    property_store: DynamoDBPropertyStore
) -> SyncEngine:
    """Wire a SyncEngine from its collaborators."""
    return SyncEngine(
        calendar_client=calendar_client,
        cursor_store=CursorStore(property_store),
        updater=ConferenceUpdater(calendar_client),
        lock=SyncLock(config['table_name'], ttl_seconds=config['lock_ttl_seconds'])
    )


def lock_ttl_seconds(config: Dict[str, Any], context: Any) -> int:
    """
    Lifetime of the sync lock for this invocation.

    The lock must outlive the invocation, so the configured TTL is raised
    to the remaining execution time plus LOCK_TTL_MARGIN_SECONDS when the
    function timeout is longer.

    Args:
        config: Configuration from load_config()
        context: Lambda context object, or None outside Lambda

    Returns:
        Lock TTL in seconds
    """
    ttl = config['lock_ttl_seconds']
    get_remaining = getattr(context, 'get_remaining_time_in_millis', None)
    if get_remaining is None:
        return ttl
    remaining_seconds = int(get_remaining()) // 1000
    return max(ttl, remaining_seconds + LOCK_TTL_MARGIN_SECONDS)


def _renew_trigger(
    config: Dict[str, Any],
    calendar_client: GoogleCalendarClient,
    property_store: DynamoDBPropertyStore,
    calendar_id: str
) -> None:
    """Reopen the calendar's notification channel if it is about to lapse."""
    try:
        registrar = TriggerRegistrar(
            property_store,
            calendar_client=calendar_client,
            webhook_url=config['webhook_url']
        )
        registrar.ensure_trigger(calendar_id)
    except Exception as e:
        # The sync itself does not depend on the channel.
        logger.warning(
            f"Failed to renew sync trigger for calendar {calendar_id}: {e}",
            extra={'error_type': type(e).__name__}
        )


def _build_clients(config: Dict[str, Any]):
    calendar_client = GoogleCalendarClient(
        access_token=config['access_token'],
        client_id=config['client_id'],
        client_secret=config['client_secret'],
        refresh_token=config['refresh_token'],
        timeout=config['timeout_seconds']
    )
    property_store = DynamoDBPropertyStore(
        table_name=config['table_name'],
        principal_id=config['principal_id']
    )
    return calendar_client, property_store


def sync_events(
    notification: Dict[str, Any],
    engine: Optional[SyncEngine] = None
) -> SyncOutcome:
    """
    Sync the conferences of the calendar named in a change notification.

    Args:
        notification: Dictionary with the required 'calendarId' key
        engine: SyncEngine to use; built from the environment if omitted

    Returns:
        SyncOutcome of the pass

    Raises:
        ValueError: If the notification carries no calendar ID
    """
    calendar_id = notification.get('calendarId')
    if not calendar_id:
        raise ValueError("Notification is missing 'calendarId'")

    if engine is None:
        config = load_config()
        engine = build_engine(config, *_build_clients(config))

    return engine.sync(calendar_id)


def _headers(event: Dict[str, Any]) -> Dict[str, str]:
    headers = event.get('headers') or {}
    return {str(key).lower(): value for key, value in headers.items()}


def _extract_calendar_id(event: Dict[str, Any]) -> Optional[str]:
    """Calendar ID from a direct invocation or a push notification's channel token."""
    if event.get('calendarId'):
        return event['calendarId']
    return _headers(event).get(CHANNEL_TOKEN_HEADER) or None


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {'statusCode': status_code, 'body': json.dumps(body)}


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler function for Video Room Calendar Sync.

    Handles calendar push notifications, manual sync invocations and
    conference creation requests.

    Args:
        event: Push notification, {'calendarId': ...} or
            {'action': 'createConference', 'eventData': {...}}
        context: Lambda context object

    Returns:
        Response dict with statusCode and a JSON body
    """
    config = load_config()
    setup_logging(config['log_level'])
    config['lock_ttl_seconds'] = lock_ttl_seconds(config, context)

    start_time = time.time()
    logger.info(
        "Lambda execution started",
        extra={'table_name': config['table_name']}
    )

    try:
        calendar_client, property_store = _build_clients(config)
        engine = build_engine(config, calendar_client, property_store)

        if event.get('action') == CREATE_CONFERENCE_ACTION:
            return _handle_create_conference(
                event, config, calendar_client, property_store, engine
            )

        if _headers(event).get(RESOURCE_STATE_HEADER) == 'sync':
            logger.info("Acknowledged notification channel handshake")
            return _response(200, {'message': 'Notification channel acknowledged'})

        calendar_id = _extract_calendar_id(event)
        if not calendar_id:
            logger.warning("Invocation did not identify a calendar")
            return _response(400, {'message': 'Missing calendarId'})

        _renew_trigger(config, calendar_client, property_store, calendar_id)

        logger.info(f"Synchronizing calendar {calendar_id}")
        outcome = sync_events({'calendarId': calendar_id}, engine=engine)
        duration = time.time() - start_time

        if not outcome.succeeded:
            logger.error(
                f"Sync failed for calendar {calendar_id}: {outcome.reason}",
                extra={
                    'duration_seconds': round(duration, 2),
                    'events_updated': outcome.updated_count
                }
            )
            return _response(500, {
                'message': 'Sync failed',
                'error': outcome.reason,
                'errors': outcome.errors,
                'statistics': {
                    'events_updated': outcome.updated_count,
                    'duration_seconds': round(duration, 2)
                }
            })

        logger.info(
            "Lambda execution completed successfully",
            extra={
                'duration_seconds': round(duration, 2),
                'events_updated': outcome.updated_count
            }
        )
        return _response(200, {
            'message': 'Sync completed successfully',
            'statistics': {
                'events_updated': outcome.updated_count,
                'duration_seconds': round(duration, 2)
            }
        })

    except Exception as e:
        duration = time.time() - start_time
        logger.error(
            f"Lambda execution failed: {str(e)}",
            extra={
                'duration_seconds': round(duration, 2),
                'error_type': type(e).__name__
            },
            exc_info=True
        )
        return _response(500, {
            'message': 'Sync failed',
            'error': str(e),
            'error_type': type(e).__name__,
            'duration_seconds': round(duration, 2)
        })


def _handle_create_conference(
    event: Dict[str, Any],
    config: Dict[str, Any],
    calendar_client: GoogleCalendarClient,
    property_store: DynamoDBPropertyStore,
    engine: SyncEngine
) -> Dict[str, Any]:
    """Create a conference and, on success, start syncing its calendar."""
    event_data = event.get('eventData') or {}
    if not event_data.get('calendarId') or not event_data.get('eventId'):
        return _response(400, {'message': 'eventData requires calendarId and eventId'})

    conference_data = create_conference(
        event_data,
        calendar_client,
        RoomNameClient(timeout=config['timeout_seconds'])
    )

    if 'error' not in conference_data:
        calendar_id = event_data['calendarId']
        try:
            registrar = TriggerRegistrar(
                property_store,
                calendar_client=calendar_client,
                webhook_url=config['webhook_url']
            )
            registrar.ensure_trigger(calendar_id)
            outcome = sync_events({'calendarId': calendar_id}, engine=engine)
            logger.info(
                f"Initial sync for calendar {calendar_id}: {outcome.status.value}"
            )
        except Exception as e:
            # The conference exists; syncing is retried by the next trigger.
            logger.error(
                f"Failed to initialize syncing for calendar {calendar_id}: {e}",
                exc_info=True
            )

    return _response(200, conference_data)
