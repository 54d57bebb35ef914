"""Realtime relay of stage event changes for a candidate.

Each open view subscribes to one Supabase realtime channel per candidate and
keeps a local copy of the candidate's events. Change notifications are
reconciled last-write-wins by event version; after a disrupted connection
recovers, the feed re-fetches the authoritative event list.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from supabase import AsyncClient

from app.constants import EVENTS_TABLE, LIVE_INDICATOR_SECONDS, REALTIME_SCHEMA
from app.models.pipeline import EventStatus, StageEvent
from app.repositories.event_repository import EventRepository


logger = logging.getLogger(__name__)

FeedListener = Callable[["CandidateEventFeed"], Any]

DISRUPTED_STATES = ("CHANNEL_ERROR", "TIMED_OUT", "CLOSED")


def _state_name(status: Any) -> str:
    return str(getattr(status, "value", status)).upper()


def normalize_change(payload: Dict[str, Any]) -> Tuple[str, Optional[Dict[str, Any]], Optional[Dict[str, Any]]]:
    """Extract (change type, new record, old record) from a postgres change payload.

    Accepts both the nested realtime-py shape ({"data": {"type", "record",
    "old_record"}}) and the flat shape ({"eventType", "new", "old"}).
    """
    data = payload.get("data", payload) or {}
    change_type = str(data.get("type") or data.get("eventType") or "").upper()
    record = data.get("record") or data.get("new") or None
    old_record = data.get("old_record") or data.get("old") or None
    return change_type, record, old_record


class CandidateEventFeed:
    """Local, continuously reconciled view of one candidate's stage events.

    Attributes:
        candidate_id: Interview candidate the feed follows.
        view_id: Identifier of the view that owns the feed.
        stale: True while the realtime connection is disrupted.
        live: True while the transient in-progress indicator is raised.
    """

    def __init__(
        self,
        candidate_id: str,
        event_repository: EventRepository,
        view_id: str = "default",
        indicator_seconds: float = LIVE_INDICATOR_SECONDS
    ):
        self.candidate_id = candidate_id
        self.view_id = view_id
        self.event_repository = event_repository
        self.indicator_seconds = indicator_seconds
        self.stale = False
        self.live = False
        self._events: Dict[str, StageEvent] = {}
        self._listeners: List[FeedListener] = []
        self._indicator_handle: Optional[asyncio.TimerHandle] = None
        self._tasks: List[asyncio.Future] = []
        self.pending_resync: Optional[asyncio.Task] = None
        self._in_flight: List[Dict[str, bool]] = []

    @property
    def events(self) -> List[StageEvent]:
        """Held events, oldest first."""
        return sorted(
            self._events.values(),
            key=lambda event: (event.created_at is None, event.created_at or 0, event.id)
        )

    def get(self, event_id: str) -> Optional[StageEvent]:
        return self._events.get(event_id)

    def add_listener(self, listener: FeedListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: FeedListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def resync(self) -> List[StageEvent]:
        """Replace local state with the authoritative event list.

        Notifications that arrive while the fetch is in flight win over it:
        a held version newer than the fetched row is kept, an event inserted
        mid-fetch is kept even if the fetch missed it, and an event deleted
        mid-fetch stays deleted.
        """
        received: Dict[str, bool] = {}
        self._in_flight.append(received)
        try:
            fetched = await self.event_repository.get_by_candidate(self.candidate_id)
        finally:
            self._in_flight.remove(received)

        events: Dict[str, StageEvent] = {}
        for event in fetched:
            if received.get(event.id) is False:
                continue
            held = self._events.get(event.id)
            events[event.id] = held if held is not None and self._is_newer(held, event) else event

        for event_id, present in received.items():
            if present and event_id not in events and event_id in self._events:
                events[event_id] = self._events[event_id]

        self._events = events
        self.stale = False
        logger.debug(f"Resynced {len(events)} events for candidate {self.candidate_id}")
        self._notify()
        return self.events

    def handle_change(self, payload: Dict[str, Any]) -> None:
        """Realtime callback for postgres changes on the candidate's events."""
        change_type, record, old_record = normalize_change(payload)

        if change_type in ("INSERT", "UPDATE"):
            if not record:
                logger.warning(f"Ignoring {change_type} notification without record for {self.candidate_id}")
                return
            applied = self.apply_upsert(StageEvent(**record), raise_indicator=change_type == "UPDATE")
        elif change_type == "DELETE":
            event_id = (old_record or record or {}).get("id")
            applied = self.apply_delete(event_id)
        else:
            logger.warning(f"Ignoring unknown change type '{change_type}' for {self.candidate_id}")
            return

        if applied:
            self._notify()

    def apply_upsert(self, event: StageEvent, raise_indicator: bool = True) -> bool:
        """Insert or replace an event unless the held version is newer.

        Returns:
            True if local state changed.
        """
        if event.interview_candidate_id != self.candidate_id:
            return False

        held = self._events.get(event.id)
        if held is not None and self._is_newer(held, event):
            logger.debug(f"Ignoring out-of-order version of event {event.id}")
            return False

        self._events[event.id] = event
        for received in self._in_flight:
            received[event.id] = True
        if raise_indicator and event.status == EventStatus.IN_PROGRESS.value:
            self._raise_live_indicator()
        return True

    def apply_delete(self, event_id: Optional[str]) -> bool:
        if event_id is None:
            return False
        for received in self._in_flight:
            received[event_id] = False
        if event_id not in self._events:
            return False
        del self._events[event_id]
        return True

    def handle_state(self, status: Any, error: Optional[Exception] = None) -> None:
        """Realtime callback for channel subscription state changes."""
        state = _state_name(status)

        if state in DISRUPTED_STATES:
            if not self.stale:
                logger.warning(f"Realtime feed for candidate {self.candidate_id} disrupted ({state}): {error}")
            self.stale = True
            self._notify()
        elif state == "SUBSCRIBED" and self.stale:
            logger.info(f"Realtime feed for candidate {self.candidate_id} recovered, resyncing")
            self.pending_resync = asyncio.ensure_future(self.resync())

    def close(self) -> None:
        if self._indicator_handle is not None:
            self._indicator_handle.cancel()
            self._indicator_handle = None
        if self.pending_resync is not None and not self.pending_resync.done():
            self.pending_resync.cancel()
        self.live = False
        self._listeners.clear()

    def _raise_live_indicator(self) -> None:
        if self._indicator_handle is not None:
            self._indicator_handle.cancel()
        self.live = True
        loop = asyncio.get_running_loop()
        self._indicator_handle = loop.call_later(self.indicator_seconds, self._clear_live_indicator)

    def _clear_live_indicator(self) -> None:
        self._indicator_handle = None
        self.live = False
        self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(self)
                if inspect.isawaitable(result):
                    self._tasks.append(asyncio.ensure_future(result))
            except Exception as error:
                logger.error(f"Feed listener for candidate {self.candidate_id} failed: {error}")
        self._tasks = [task for task in self._tasks if not task.done()]

    @staticmethod
    def _is_newer(held: StageEvent, incoming: StageEvent) -> bool:
        if held.version is None or incoming.version is None:
            return False
        return held.version > incoming.version


@dataclass
class _Subscription:
    feed: CandidateEventFeed
    channel: Any
    references: int = 1


class LiveStatusRelay:
    """Manages realtime feeds, one channel per (view, candidate).

    Subscribing twice from the same view reuses the feed; the channel is
    removed once every subscriber of that view has unsubscribed.

    Attributes:
        db_client: Async Supabase client providing realtime channels.
        event_repository: Repository used for authoritative re-fetches.
    """

    def __init__(
        self,
        db_client: AsyncClient,
        event_repository: EventRepository,
        indicator_seconds: float = LIVE_INDICATOR_SECONDS
    ):
        self.db_client = db_client
        self.event_repository = event_repository
        self.indicator_seconds = indicator_seconds
        self._subscriptions: Dict[Tuple[str, str], _Subscription] = {}

    @property
    def open_channels(self) -> int:
        return len(self._subscriptions)

    async def subscribe(
        self,
        candidate_id: str,
        listener: Optional[FeedListener] = None,
        view_id: str = "default"
    ) -> CandidateEventFeed:
        """Open (or join) the feed of a candidate's stage events.

        Args:
            candidate_id: Interview candidate to follow.
            listener: Called with the feed after every reconciliation.
            view_id: Identifier of the subscribing view.

        Returns:
            CandidateEventFeed loaded with the current events.
        """
        key = (view_id, candidate_id)
        subscription = self._subscriptions.get(key)
        if subscription is not None:
            subscription.references += 1
            if listener is not None:
                subscription.feed.add_listener(listener)
            return subscription.feed

        feed = CandidateEventFeed(candidate_id, self.event_repository, view_id, self.indicator_seconds)
        if listener is not None:
            feed.add_listener(listener)

        channel = self.db_client.channel(f"interview-events:{view_id}:{candidate_id}")
        channel.on_postgres_changes(
            "*",
            schema=REALTIME_SCHEMA,
            table=EVENTS_TABLE,
            filter=f"interview_candidate_id=eq.{candidate_id}",
            callback=feed.handle_change
        )
        self._subscriptions[key] = _Subscription(feed=feed, channel=channel)

        try:
            await channel.subscribe(feed.handle_state)
            await feed.resync()
        except Exception:
            del self._subscriptions[key]
            feed.close()
            await self.db_client.remove_channel(channel)
            raise

        logger.info(f"Subscribed view {view_id} to events of candidate {candidate_id}")
        return feed

    async def unsubscribe(self, feed: CandidateEventFeed, listener: Optional[FeedListener] = None) -> None:
        """Release one reference to a feed, removing its channel at zero."""
        key = (feed.view_id, feed.candidate_id)
        subscription = self._subscriptions.get(key)
        if subscription is None or subscription.feed is not feed:
            return

        if listener is not None:
            feed.remove_listener(listener)

        subscription.references -= 1
        if subscription.references > 0:
            return

        del self._subscriptions[key]
        feed.close()
        await self.db_client.remove_channel(subscription.channel)
        logger.info(f"Unsubscribed view {feed.view_id} from events of candidate {feed.candidate_id}")

    async def close(self) -> None:
        """Remove every channel opened by this relay."""
        subscriptions = list(self._subscriptions.values())
        self._subscriptions.clear()
        for subscription in subscriptions:
            subscription.feed.close()
            await self.db_client.remove_channel(subscription.channel)
