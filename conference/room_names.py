"""Client for the third-party room naming service."""
import logging

import requests

logger = logging.getLogger(__name__)


class RoomNameError(Exception):
    """Raised when a room name cannot be obtained."""


class RoomNameClient:
    """Generates human-readable room names."""

    NAMES_URL = "https://names.drycodes.com/1"

    def __init__(self, timeout: int = 30):
        self.timeout = timeout

    def generate_name(self) -> str:
        """
        Fetch a fresh room name.

        Returns:
            Generated room name

        Raises:
            RoomNameError: If the service is unreachable or answers
                with something other than a list of names
        """
        try:
            response = requests.get(
                self.NAMES_URL,
                params={'combine': 4},
                timeout=self.timeout
            )
            response.raise_for_status()
            names = response.json()
        except requests.RequestException as e:
            logger.error(f"Room naming service request failed: {e}")
            raise RoomNameError(str(e)) from e
        except ValueError as e:
            raise RoomNameError("Room naming service returned invalid JSON") from e

        if not isinstance(names, list) or not names or not isinstance(names[0], str):
            raise RoomNameError(f"Unexpected room naming response: {names!r}")

        return names[0]
