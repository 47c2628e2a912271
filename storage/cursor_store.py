"""Persistence of sync cursors, one per calendar."""
import logging
from typing import Optional

logger = logging.getLogger(__name__)


class CursorStore:
    """Stores the provider sync token of each calendar in a property store."""

    KEY_PREFIX = 'syncToken:'

    def __init__(self, property_store):
        """
        Args:
            property_store: Object exposing get_property(), set_property()
                and delete_property()
        """
        self.property_store = property_store

    def get(self, calendar_id: str) -> Optional[str]:
        """Return the stored cursor for a calendar, or None."""
        return self.property_store.get_property(self._key(calendar_id)) or None

    def set(self, calendar_id: str, cursor: str) -> None:
        """
        Replace the stored cursor for a calendar.

        Raises:
            ValueError: If the cursor is empty
        """
        if not cursor:
            raise ValueError("Sync cursor must be a non-empty string")
        self.property_store.set_property(self._key(calendar_id), cursor)
        logger.info(f"Stored sync cursor for calendar {calendar_id}")

    def delete(self, calendar_id: str) -> None:
        """Discard the stored cursor for a calendar."""
        self.property_store.delete_property(self._key(calendar_id))
        logger.info(f"Deleted sync cursor for calendar {calendar_id}")

    def _key(self, calendar_id: str) -> str:
        return f"{self.KEY_PREFIX}{calendar_id}"
