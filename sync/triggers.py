"""Registration of calendar change triggers that invoke the sync handler."""
import json
import logging
import time
import uuid
from dataclasses import asdict, dataclass
from typing import List, Optional

logger = logging.getLogger(__name__)


@dataclass
class Trigger:
    """A registered calendar-change trigger."""
    calendar_id: str
    handler_name: str
    channel_id: Optional[str] = None
    resource_id: Optional[str] = None
    expiration: Optional[str] = None

    def expires_within(self, seconds: int, now: Optional[float] = None) -> bool:
        """
        Check whether the notification channel lapses within ``seconds``.

        Args:
            seconds: Renewal margin
            now: Current epoch time in seconds; defaults to time.time()

        Returns:
            True if the channel expiration (epoch milliseconds) falls before
            ``now + seconds``; False when no expiration is known
        """
        if not self.expiration:
            return False
        try:
            expiration_ms = int(self.expiration)
        except (TypeError, ValueError):
            logger.warning(
                f"Unreadable expiration {self.expiration!r} for calendar "
                f"{self.calendar_id}; treating trigger as expired"
            )
            return True
        if now is None:
            now = time.time()
        return expiration_ms / 1000 < now + seconds


class TriggerRegistrar:
    """Keeps at most one live change trigger per calendar."""

    PROPERTY_KEY = 'triggers'
    RENEWAL_MARGIN_SECONDS = 24 * 60 * 60

    def __init__(self, property_store, calendar_client=None, webhook_url: Optional[str] = None):
        """
        Args:
            property_store: Property store holding the registered triggers
            calendar_client: Client exposing watch_events()
            webhook_url: Address Google should push change notifications to
        """
        self.property_store = property_store
        self.calendar_client = calendar_client
        self.webhook_url = webhook_url

    def list_triggers(self) -> List[Trigger]:
        """
        Return all registered triggers.

        Unreadable entries are skipped with a warning.
        """
        raw = self.property_store.get_property(self.PROPERTY_KEY)
        if not raw:
            return []

        try:
            entries = json.loads(raw)
        except ValueError:
            logger.warning("Stored trigger list is not valid JSON; ignoring it")
            return []

        triggers = []
        for entry in entries if isinstance(entries, list) else []:
            try:
                triggers.append(Trigger(**entry))
            except TypeError as e:
                logger.warning(f"Skipping malformed trigger entry {entry!r}: {e}")
        return triggers

    def create_trigger(self, calendar_id: str, handler_name: str) -> Trigger:
        """
        Register a new trigger for a calendar, replacing any previous one.

        When a webhook URL is configured a push-notification channel is
        opened; the channel token carries the calendar ID so notifications
        can be routed back to it.

        Args:
            calendar_id: Calendar to watch
            handler_name: Name of the handler the trigger invokes

        Returns:
            The registered Trigger
        """
        trigger = Trigger(calendar_id=calendar_id, handler_name=handler_name)

        if self.calendar_client is not None and self.webhook_url:
            channel = self.calendar_client.watch_events(
                calendar_id,
                channel_id=uuid.uuid4().hex,
                address=self.webhook_url,
                token=calendar_id
            )
            trigger.channel_id = channel.get('id')
            trigger.resource_id = channel.get('resourceId')
            trigger.expiration = channel.get('expiration')
        else:
            logger.warning(
                f"No webhook configured; trigger for calendar {calendar_id} "
                f"recorded without a notification channel"
            )

        triggers = [t for t in self.list_triggers() if t.calendar_id != calendar_id]
        triggers.append(trigger)
        self.property_store.set_property(
            self.PROPERTY_KEY,
            json.dumps([asdict(t) for t in triggers])
        )
        logger.info(f"Created sync trigger for calendar {calendar_id}")
        return trigger

    def ensure_trigger(self, calendar_id: str, handler_name: str = 'sync_events') -> Trigger:
        """
        Register a trigger for a calendar unless a live one already exists.

        A trigger whose channel has expired, or expires within
        RENEWAL_MARGIN_SECONDS, is replaced by a freshly opened one.

        Returns:
            The existing or newly created Trigger
        """
        for trigger in self.list_triggers():
            if trigger.calendar_id != calendar_id:
                continue
            if trigger.expires_within(self.RENEWAL_MARGIN_SECONDS):
                logger.info(
                    f"Sync trigger for calendar {calendar_id} expires at "
                    f"{trigger.expiration}; renewing"
                )
                break
            logger.debug(f"Sync trigger for calendar {calendar_id} already exists")
            return trigger
        return self.create_trigger(calendar_id, handler_name)
