"""Relevance test for conferences managed by this integration."""
from sync.models import CalendarEvent

VIDEO_ROOM = 'Videoroom'


def is_managed_conference(event: CalendarEvent) -> bool:
    """
    Check whether an event carries a conference of the managed solution.

    Missing conference data or a missing solution name means the
    conference is not ours; neither is an error.

    Args:
        event: Event read from the calendar provider

    Returns:
        True if the conference solution name is exactly VIDEO_ROOM
    """
    conference = event.conference_data
    if conference is None or conference.solution_name is None:
        return False
    return conference.solution_name == VIDEO_ROOM
