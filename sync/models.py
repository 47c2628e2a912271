"""Data models for calendar synchronization."""
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

VIDEO_ENTRY_POINT_TYPE = 'video'


class SyncMode(Enum):
    """How a pass queries the calendar provider."""
    INCREMENTAL = 'incremental'
    FULL_BOUNDED = 'full_bounded'


class SyncStatus(Enum):
    """Final status of a sync pass."""
    COMPLETED = 'completed'
    FAILED = 'failed'


def _rfc3339(value: datetime) -> str:
    """Format a datetime the way the Calendar API expects (UTC, 'Z' suffix)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime('%Y-%m-%dT%H:%M:%S.') + f"{value.microsecond // 1000:03d}Z"


@dataclass(frozen=True)
class TimeWindow:
    """Bounds of a full resync: upcoming events modified recently."""
    not_before: datetime
    modified_after: datetime


@dataclass(frozen=True)
class SyncRequest:
    """Query for a single page of events."""
    mode: SyncMode
    cursor: Optional[str] = None
    time_window: Optional[TimeWindow] = None
    page_token: Optional[str] = None
    page_size: int = 50
    order_by: Optional[str] = None

    FULL_SYNC_LOOKBACK = timedelta(hours=24)

    @classmethod
    def incremental(cls, cursor: str) -> 'SyncRequest':
        """Build the first request of a token-based delta sync."""
        return cls(mode=SyncMode.INCREMENTAL, cursor=cursor)

    @classmethod
    def full_bounded(cls, now: datetime) -> 'SyncRequest':
        """
        Build the first request of a bounded full sync.

        Only events starting after ``now`` and modified within the last
        24 hours are listed.

        Args:
            now: Current time

        Returns:
            SyncRequest in FULL_BOUNDED mode
        """
        window = TimeWindow(
            not_before=now,
            modified_after=now - cls.FULL_SYNC_LOOKBACK
        )
        return cls(
            mode=SyncMode.FULL_BOUNDED,
            time_window=window,
            order_by='updated'
        )

    def next_page(self, page_token: str) -> 'SyncRequest':
        """Return a fresh request for the page identified by ``page_token``."""
        return replace(self, page_token=page_token)

    def to_params(self) -> Dict[str, Any]:
        """
        Flatten the request into Calendar API query parameters.

        Returns:
            Dictionary of query parameters for events.list
        """
        params: Dict[str, Any] = {'maxResults': self.page_size}

        if self.mode is SyncMode.INCREMENTAL:
            params['syncToken'] = self.cursor
        else:
            params['timeMin'] = _rfc3339(self.time_window.not_before)
            params['updatedMin'] = _rfc3339(self.time_window.modified_after)
            if self.order_by:
                params['orderBy'] = self.order_by

        if self.page_token:
            params['pageToken'] = self.page_token

        return params


@dataclass
class EntryPoint:
    """Conference access method (video link, phone number, ...)."""
    type: str
    uri: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'EntryPoint':
        return cls(
            type=data.get('entryPointType') or '',
            uri=data.get('uri'),
            raw=dict(data)
        )

    def to_api(self) -> Dict[str, Any]:
        data = dict(self.raw)
        data['entryPointType'] = self.type
        if self.uri is not None:
            data['uri'] = self.uri
        return data

    @property
    def is_video(self) -> bool:
        return self.type.lower() == VIDEO_ENTRY_POINT_TYPE


@dataclass
class ConferenceRecord:
    """Conference attached to a calendar event."""
    solution_name: Optional[str]
    entry_points: List[EntryPoint] = field(default_factory=list)
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'ConferenceRecord':
        solution = data.get('conferenceSolution') or {}
        entry_points = [
            EntryPoint.from_api(entry)
            for entry in data.get('entryPoints') or []
            if isinstance(entry, dict)
        ]
        return cls(
            solution_name=solution.get('name') if isinstance(solution, dict) else None,
            entry_points=entry_points,
            raw=dict(data)
        )

    def to_api(self) -> Dict[str, Any]:
        data = dict(self.raw)
        data['entryPoints'] = [entry.to_api() for entry in self.entry_points]
        return data

    def video_entry_point(self) -> Optional[EntryPoint]:
        """Return the first video entry point, if any."""
        for entry in self.entry_points:
            if entry.is_video:
                return entry
        return None


@dataclass
class CalendarEvent:
    """Calendar event as read from the provider."""
    id: str
    summary: Optional[str] = None
    conference_data: Optional[ConferenceRecord] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'CalendarEvent':
        """
        Build an event from a Calendar API event resource.

        Args:
            data: Event resource dictionary

        Returns:
            CalendarEvent with the raw resource preserved for write-back
        """
        conference = data.get('conferenceData')
        return cls(
            id=data.get('id', ''),
            summary=data.get('summary'),
            conference_data=(
                ConferenceRecord.from_api(conference)
                if isinstance(conference, dict) else None
            ),
            raw=dict(data)
        )

    def to_api(self) -> Dict[str, Any]:
        """Rebuild the full event resource, including fields not modelled here."""
        data = dict(self.raw)
        data['id'] = self.id
        if self.summary is not None:
            data['summary'] = self.summary
        if self.conference_data is not None:
            data['conferenceData'] = self.conference_data.to_api()
        return data


@dataclass
class SyncPageResult:
    """One page returned by events.list."""
    items: List[CalendarEvent]
    next_page_token: Optional[str] = None
    next_sync_token: Optional[str] = None

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> 'SyncPageResult':
        items = [
            CalendarEvent.from_api(item)
            for item in payload.get('items') or []
            if isinstance(item, dict)
        ]
        return cls(
            items=items,
            next_page_token=payload.get('nextPageToken') or None,
            next_sync_token=payload.get('nextSyncToken') or None
        )


@dataclass
class SyncOutcome:
    """Result of a sync invocation."""
    status: SyncStatus
    updated_count: int = 0
    reason: Optional[str] = None
    errors: List[str] = field(default_factory=list)

    @classmethod
    def completed(cls, updated_count: int) -> 'SyncOutcome':
        return cls(status=SyncStatus.COMPLETED, updated_count=updated_count)

    @classmethod
    def failed(
        cls,
        reason: str,
        updated_count: int = 0,
        errors: Optional[List[str]] = None
    ) -> 'SyncOutcome':
        return cls(
            status=SyncStatus.FAILED,
            updated_count=updated_count,
            reason=reason,
            errors=list(errors or [])
        )

    @property
    def succeeded(self) -> bool:
        return self.status is SyncStatus.COMPLETED


@dataclass
class PassResult:
    """Outcome of one sync pass plus the cursor bookkeeping it implies."""
    outcome: SyncOutcome
    next_cursor: Optional[str] = None
    cursor_invalidated: bool = False
