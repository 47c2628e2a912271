"""Rewrites the video entry point of managed conferences."""
import logging

from conference.room_url import build_room_url
from sync.models import VIDEO_ENTRY_POINT_TYPE, CalendarEvent, EntryPoint

logger = logging.getLogger(__name__)


class ConferenceUpdater:
    """Keeps an event's video room URL in line with the event summary."""

    CONFERENCE_DATA_VERSION = 1

    def __init__(self, calendar_client):
        """
        Args:
            calendar_client: Client exposing update_event()
        """
        self.calendar_client = calendar_client

    def update(self, event: CalendarEvent, calendar_id: str) -> bool:
        """
        Point the event's video entry point at the canonical room URL.

        The provider is only called when the URL actually changes, so
        repeated calls for an unchanged event have no effect.

        Args:
            event: Event owning a managed conference
            calendar_id: Calendar the event belongs to

        Returns:
            True if the event was rewritten and persisted, False if it
            was already canonical

        Raises:
            ValueError: If the event has no conference data
            ProviderError: If the provider rejects the update
        """
        conference = event.conference_data
        if conference is None:
            raise ValueError(f"Event {event.id} has no conference data")

        room_url = build_room_url(event.summary or '')
        entry_point = conference.video_entry_point()

        if entry_point is None:
            entry_point = EntryPoint(type=VIDEO_ENTRY_POINT_TYPE)
            conference.entry_points.append(entry_point)
        elif entry_point.uri == room_url:
            logger.debug(f"Event {event.id} already points at {room_url}")
            return False

        entry_point.uri = room_url
        self.calendar_client.update_event(
            event,
            calendar_id,
            event.id,
            conference_data_version=self.CONFERENCE_DATA_VERSION
        )
        logger.info(f"Updated conference for event {event.id}: {room_url}")
        return True
