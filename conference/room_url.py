"""Canonical video room URLs."""
from urllib.parse import quote

BASE_URL = 'https://videoroom.membrane.work/room/'

# Characters left unescaped, matching JavaScript's encodeURIComponent
_UNRESERVED = "-_.!~*'()"


def build_room_url(room_name: str) -> str:
    """
    Build the URL of a video room.

    Args:
        room_name: Room name; any string, including empty

    Returns:
        Base URL followed by the percent-encoded room name
    """
    return BASE_URL + quote(room_name, safe=_UNRESERVED)
