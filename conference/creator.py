"""Builds conference data for newly created video rooms."""
import logging
from typing import Any, Dict

from calendar_api.errors import ProviderError
from conference.matcher import VIDEO_ROOM
from conference.room_names import RoomNameError
from conference.room_url import build_room_url
from sync.models import VIDEO_ENTRY_POINT_TYPE

logger = logging.getLogger(__name__)

TEMPORARY_ERROR = 'TEMPORARY'


def create_conference(
    event_data: Dict[str, Any],
    calendar_client,
    room_names
) -> Dict[str, Any]:
    """
    Create a video room for a calendar event and describe it as conference data.

    The event may not exist on the calendar yet; in that case the event ID
    from ``event_data`` is used and the details are filled in by later syncs.

    Args:
        event_data: Dictionary with 'calendarId' and 'eventId'
        calendar_client: Client exposing get_event()
        room_names: Client exposing generate_name()

    Returns:
        Conference data dictionary, or a dictionary with an 'error' key
        when the room could not be created
    """
    calendar_id = event_data['calendarId']
    event_id = event_data['eventId']

    try:
        event_id = calendar_client.get_event(calendar_id, event_id).id or event_id
    except ProviderError as e:
        logger.info(f"Event {event_id} not readable yet, continuing: {e}")

    try:
        room_name = room_names.generate_name()
    except RoomNameError as e:
        logger.error(f"Failed to create conference for event {event_id}: {e}")
        return {'error': {'conferenceErrorType': TEMPORARY_ERROR}}

    logger.info(f"Created room '{room_name}' for event {event_id}")
    return {
        'conferenceId': event_id,
        'conferenceSolution': {'name': VIDEO_ROOM},
        'parameters': {
            'addOnParameters': {
                'parameters': {'roomName': room_name}
            }
        },
        'entryPoints': [
            {
                'entryPointType': VIDEO_ENTRY_POINT_TYPE,
                'uri': build_room_url(room_name)
            }
        ]
    }
