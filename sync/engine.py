"""Incremental synchronization of managed conferences with a calendar."""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional

from calendar_api.errors import InvalidCursorError, ProviderError
from conference.matcher import is_managed_conference
from sync.models import CalendarEvent, PassResult, SyncOutcome, SyncRequest

logger = logging.getLogger(__name__)


@dataclass
class _PassProgress:
    """Running totals that survive page boundaries and restarts."""
    updated_count: int = 0
    errors: List[str] = field(default_factory=list)


class SyncEngine:
    """
    Keeps managed conferences consistent with a calendar's events.

    A pass uses the stored sync cursor for a delta sync when one exists and
    falls back to a bounded full sync otherwise. A cursor rejected by the
    provider is discarded and the pass restarted in full mode, at most
    MAX_RESTARTS times per invocation. The new cursor is committed only
    once the pagination loop has completed.
    """

    MAX_RESTARTS = 1

    def __init__(
        self,
        calendar_client,
        cursor_store,
        updater,
        lock=None,
        clock: Optional[Callable[[], datetime]] = None,
        matcher: Callable[[CalendarEvent], bool] = is_managed_conference
    ):
        """
        Args:
            calendar_client: Event source exposing list_events()
            cursor_store: Store exposing get(), set() and delete()
            updater: Conference updater exposing update()
            lock: Optional per-calendar lock exposing acquire() and release()
            clock: Returns the current time; defaults to UTC now
            matcher: Decides whether an event owns a managed conference
        """
        self.calendar_client = calendar_client
        self.cursor_store = cursor_store
        self.updater = updater
        self.lock = lock
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.matcher = matcher

    def sync(self, calendar_id: str) -> SyncOutcome:
        """
        Run one sync pass for a calendar and commit its cursor.

        Args:
            calendar_id: Calendar to synchronize

        Returns:
            SyncOutcome with the number of conferences updated
        """
        if self.lock is not None and not self.lock.acquire(calendar_id):
            return SyncOutcome.failed("sync already in progress")

        try:
            stored_cursor = self.cursor_store.get(calendar_id)
            result = self.run_pass(
                calendar_id,
                stored_cursor,
                on_cursor_invalidated=self.cursor_store.delete
            )

            if result.next_cursor:
                self.cursor_store.set(calendar_id, result.next_cursor)
            elif result.outcome.succeeded:
                logger.info(
                    f"No sync token returned for calendar {calendar_id}; "
                    f"stored cursor left unchanged"
                )

            return result.outcome
        finally:
            if self.lock is not None:
                try:
                    self.lock.release(calendar_id)
                except Exception as e:
                    logger.warning(
                        f"Failed to release sync lock for calendar {calendar_id}: {e}"
                    )

    def run_pass(
        self,
        calendar_id: str,
        stored_cursor: Optional[str],
        on_cursor_invalidated: Optional[Callable[[str], None]] = None
    ) -> PassResult:
        """
        Run one sync pass without touching the cursor store.

        Args:
            calendar_id: Calendar to synchronize
            stored_cursor: Cursor committed by the previous pass, if any
            on_cursor_invalidated: Called with the calendar ID as soon as the
                provider rejects ``stored_cursor``

        Returns:
            PassResult with the outcome, the cursor to commit (only when the
            pagination loop completed) and whether the stored cursor is stale
        """
        cursor = stored_cursor
        cursor_invalidated = False
        restarts = 0
        progress = _PassProgress()

        while True:
            request = self._initial_request(cursor)
            logger.info(
                f"Starting {request.mode.value} sync for calendar {calendar_id}"
            )

            try:
                next_cursor = self._paginate(calendar_id, request, progress)
            except InvalidCursorError as e:
                if restarts >= self.MAX_RESTARTS:
                    logger.error(
                        f"Sync cursor for calendar {calendar_id} rejected again "
                        f"after full resync: {e}"
                    )
                    return PassResult(
                        outcome=SyncOutcome.failed(
                            f"sync cursor rejected after full resync: {e}",
                            updated_count=progress.updated_count,
                            errors=progress.errors
                        ),
                        cursor_invalidated=cursor_invalidated
                    )

                logger.warning(
                    f"Sync cursor for calendar {calendar_id} is no longer valid; "
                    f"performing full sync"
                )
                restarts += 1
                if cursor is not None:
                    cursor_invalidated = True
                    if on_cursor_invalidated is not None:
                        on_cursor_invalidated(calendar_id)
                cursor = None
                continue
            except ProviderError as e:
                logger.error(
                    f"Sync for calendar {calendar_id} failed: {e}",
                    extra={'error_type': type(e).__name__}
                )
                return PassResult(
                    outcome=SyncOutcome.failed(
                        str(e),
                        updated_count=progress.updated_count,
                        errors=progress.errors
                    ),
                    cursor_invalidated=cursor_invalidated
                )
            except Exception as e:
                logger.error(
                    f"Sync for calendar {calendar_id} failed unexpectedly: {e}",
                    extra={'error_type': type(e).__name__},
                    exc_info=True
                )
                return PassResult(
                    outcome=SyncOutcome.failed(
                        f"{type(e).__name__}: {e}",
                        updated_count=progress.updated_count,
                        errors=progress.errors
                    ),
                    cursor_invalidated=cursor_invalidated
                )

            break

        if progress.errors:
            outcome = SyncOutcome.failed(
                f"{len(progress.errors)} event update(s) failed",
                updated_count=progress.updated_count,
                errors=progress.errors
            )
        else:
            outcome = SyncOutcome.completed(progress.updated_count)

        logger.info(
            f"Sync for calendar {calendar_id} finished: "
            f"{progress.updated_count} updated, {len(progress.errors)} failed"
        )
        return PassResult(
            outcome=outcome,
            next_cursor=next_cursor,
            cursor_invalidated=cursor_invalidated
        )

    def _initial_request(self, cursor: Optional[str]) -> SyncRequest:
        if cursor:
            return SyncRequest.incremental(cursor)
        return SyncRequest.full_bounded(self.clock())

    def _paginate(
        self,
        calendar_id: str,
        request: SyncRequest,
        progress: _PassProgress
    ) -> Optional[str]:
        """
        Walk every page of a pass, updating managed conferences.

        Returns:
            The sync token of the final page, or None if it carried none
        """
        page_request = request
        page_number = 0

        while True:
            page_number += 1
            page = self.calendar_client.list_events(calendar_id, page_request)
            logger.debug(
                f"Fetched page {page_number} with {len(page.items)} events "
                f"for calendar {calendar_id}"
            )

            for event in page.items:
                if not self.matcher(event):
                    continue
                try:
                    if self.updater.update(event, calendar_id):
                        progress.updated_count += 1
                except Exception as e:
                    error_msg = f"Failed to update event {event.id}: {e}"
                    logger.warning(error_msg)
                    progress.errors.append(error_msg)

            if not page.next_page_token:
                return page.next_sync_token

            page_request = request.next_page(page.next_page_token)
