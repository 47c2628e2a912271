"""Exceptions raised by the Google Calendar client."""
from typing import Optional


class CalendarApiError(Exception):
    """Base error for calendar provider calls."""


class InvalidCursorError(CalendarApiError):
    """Raised when the provider rejects a sync token; a full sync is required."""


class ProviderError(CalendarApiError):
    """Raised for quota, network, auth and malformed-response failures."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        self.message = message
        if status_code is None:
            super().__init__(message)
        else:
            super().__init__(f"Calendar API request failed ({status_code}): {message}")


class NotFoundError(ProviderError):
    """Raised when the requested calendar or event does not exist."""
