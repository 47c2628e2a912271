"""Google Calendar API v3 client used as the sync event source."""
import logging
import time
from typing import Any, Dict, Optional
from urllib.parse import quote

import requests

from calendar_api.errors import InvalidCursorError, NotFoundError, ProviderError
from sync.models import CalendarEvent, SyncPageResult, SyncRequest

logger = logging.getLogger(__name__)


class GoogleCalendarClient:
    """Thin REST client for the Google Calendar events collection."""

    BASE_URL = "https://www.googleapis.com/calendar/v3"
    TOKEN_URL = "https://oauth2.googleapis.com/token"
    INVALID_SYNC_TOKEN_MESSAGE = (
        "Sync token is no longer valid, a full sync is required."
    )
    RETRYABLE_STATUS_CODES = (429, 500, 502, 503, 504)

    def __init__(
        self,
        access_token: Optional[str] = None,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        refresh_token: Optional[str] = None,
        timeout: int = 30,
        max_retries: int = 3,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the calendar client.

        Either a static ``access_token`` or the three OAuth refresh-token
        credentials must be supplied.

        Args:
            access_token: Pre-issued OAuth bearer token
            client_id: OAuth client ID for refresh-token exchange
            client_secret: OAuth client secret for refresh-token exchange
            refresh_token: OAuth refresh token
            timeout: HTTP request timeout in seconds (default: 30)
            max_retries: Attempts per request for transient failures
            session: Optional requests session to reuse
        """
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.session = session or requests.Session()
        self._access_token = access_token
        self._client_id = client_id
        self._client_secret = client_secret
        self._refresh_token = refresh_token

    def list_events(self, calendar_id: str, request: SyncRequest) -> SyncPageResult:
        """
        Fetch one page of events.

        Args:
            calendar_id: Calendar identifier
            request: Page request (incremental or bounded full sync)

        Returns:
            SyncPageResult for the page

        Raises:
            InvalidCursorError: If the provider rejected the sync token
            ProviderError: For any other failure
        """
        logger.debug(
            f"Listing events for calendar {calendar_id} "
            f"(mode={request.mode.value}, page_token={request.page_token})"
        )
        payload = self._request(
            'GET',
            f"/calendars/{self._quote(calendar_id)}/events",
            params=request.to_params()
        )
        try:
            return SyncPageResult.from_api(payload)
        except (TypeError, AttributeError, ValueError) as e:
            raise ProviderError(f"malformed response: {e}") from e

    def get_event(self, calendar_id: str, event_id: str) -> CalendarEvent:
        """
        Fetch a single event.

        Raises:
            NotFoundError: If the event does not exist
            ProviderError: For any other failure
        """
        payload = self._request(
            'GET',
            f"/calendars/{self._quote(calendar_id)}/events/{self._quote(event_id)}"
        )
        return CalendarEvent.from_api(payload)

    def update_event(
        self,
        event: CalendarEvent,
        calendar_id: str,
        event_id: str,
        conference_data_version: int = 1
    ) -> CalendarEvent:
        """
        Replace an event resource, including its conference data.

        Args:
            event: Event to persist; the whole resource is sent
            calendar_id: Calendar identifier
            event_id: Event identifier
            conference_data_version: 1 allows conference data to be modified

        Returns:
            The event as stored by the provider
        """
        payload = self._request(
            'PUT',
            f"/calendars/{self._quote(calendar_id)}/events/{self._quote(event_id)}",
            params={'conferenceDataVersion': conference_data_version},
            json=event.to_api()
        )
        return CalendarEvent.from_api(payload)

    def watch_events(
        self,
        calendar_id: str,
        channel_id: str,
        address: str,
        token: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Open a push-notification channel for changes to a calendar's events.

        Returns:
            Channel resource returned by the provider
        """
        body = {'id': channel_id, 'type': 'web_hook', 'address': address}
        if token:
            body['token'] = token
        return self._request(
            'POST',
            f"/calendars/{self._quote(calendar_id)}/events/watch",
            json=body
        )

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Perform an authorized request with retry logic for transient failures.

        Returns:
            Decoded JSON payload

        Raises:
            InvalidCursorError: If the sync token was rejected
            NotFoundError: On HTTP 404
            ProviderError: For all other failures, once retries are exhausted
        """
        base_delay = 1  # seconds
        url = f"{self.BASE_URL}{path}"
        refreshed = False
        attempt = 0

        while True:
            attempt += 1
            try:
                response = self.session.request(
                    method,
                    url,
                    params=params,
                    json=json,
                    headers={'Authorization': f"Bearer {self._get_access_token()}"},
                    timeout=self.timeout
                )
            except requests.RequestException as e:
                if attempt < self.max_retries:
                    delay = base_delay * (2 ** (attempt - 1))
                    logger.warning(
                        f"Request failed (attempt {attempt}/{self.max_retries}): {e}. "
                        f"Retrying in {delay} seconds..."
                    )
                    time.sleep(delay)
                    continue
                logger.error(
                    f"All {self.max_retries} attempts failed for {method} {path}: {e}"
                )
                raise ProviderError(str(e)) from e

            if response.status_code == 401 and not refreshed and self._can_refresh():
                logger.info("Access token rejected; refreshing")
                self._access_token = None
                refreshed = True
                attempt -= 1
                continue

            if (response.status_code in self.RETRYABLE_STATUS_CODES
                    and attempt < self.max_retries):
                delay = base_delay * (2 ** (attempt - 1))
                logger.warning(
                    f"Request returned {response.status_code} "
                    f"(attempt {attempt}/{self.max_retries}). "
                    f"Retrying in {delay} seconds..."
                )
                time.sleep(delay)
                continue

            return self._handle_response(response)

    def _handle_response(self, response: requests.Response) -> Dict[str, Any]:
        """Map an HTTP response onto a payload or the matching exception."""
        if 200 <= response.status_code < 300:
            if not response.content:
                return {}
            try:
                payload = response.json()
            except ValueError as e:
                raise ProviderError(
                    "Calendar API returned invalid JSON",
                    status_code=response.status_code
                ) from e
            if not isinstance(payload, dict):
                raise ProviderError(
                    "Calendar API returned an unexpected payload shape",
                    status_code=response.status_code
                )
            return payload

        message = self._error_message(response)

        if response.status_code == 410 or message == self.INVALID_SYNC_TOKEN_MESSAGE:
            raise InvalidCursorError(message)
        if response.status_code == 404:
            raise NotFoundError(message, status_code=404)
        raise ProviderError(message, status_code=response.status_code)

    def _get_access_token(self) -> str:
        if self._access_token:
            return self._access_token
        if not self._can_refresh():
            raise ProviderError("No Google credentials configured")

        try:
            response = self.session.post(
                self.TOKEN_URL,
                data={
                    'client_id': self._client_id,
                    'client_secret': self._client_secret,
                    'refresh_token': self._refresh_token,
                    'grant_type': 'refresh_token'
                },
                timeout=self.timeout
            )
        except requests.RequestException as e:
            raise ProviderError(f"Token refresh failed: {e}") from e

        if response.status_code != 200:
            raise ProviderError(
                f"Token refresh failed: {self._error_message(response)}",
                status_code=response.status_code
            )

        try:
            token = response.json().get('access_token')
        except (ValueError, AttributeError):
            token = None
        if not token:
            raise ProviderError("Token refresh response did not include access_token")

        self._access_token = token
        return token

    def _can_refresh(self) -> bool:
        return bool(self._client_id and self._client_secret and self._refresh_token)

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            payload = response.json()
        except ValueError:
            payload = None

        if isinstance(payload, dict):
            error = payload.get('error')
            if isinstance(error, dict) and error.get('message'):
                return str(error['message'])
            if isinstance(error, str) and error:
                return payload.get('error_description') or error

        text = response.text.strip()
        return text[:200] if text else f"HTTP {response.status_code}"

    @staticmethod
    def _quote(value: str) -> str:
        return quote(value, safe='')
