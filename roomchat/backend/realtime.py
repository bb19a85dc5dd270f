import asyncio
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

logger = logging.getLogger(__name__)

INSERT = "INSERT"

_CLOSED = object()


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    type: str
    record: Dict[str, Any]
    commit_timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class Subscription:
    """Ordered, unbounded stream of change events for one table and filter.

    Iterate it with ``async for``. Once closed it ends and cannot be resumed;
    subscribe again for a fresh stream. Events are handed over through the
    loop the subscription was created on, so publishers may live on any loop
    or thread.
    """

    def __init__(self, feed: "ChangeFeed", table: str, event: str,
                 eq: Optional[Mapping[str, Any]] = None, channel: Optional[str] = None):
        self.table = table
        self.event = event
        self.eq = dict(eq or {})
        self.channel = channel or f"{table}:{event}"
        self._feed = feed
        self._loop = asyncio.get_running_loop()
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False
        self._exhausted = False

    @property
    def closed(self) -> bool:
        return self._closed

    def matches(self, change: ChangeEvent) -> bool:
        if change.table != self.table or change.type != self.event:
            return False
        return all(change.record.get(key) == value for key, value in self.eq.items())

    def deliver(self, change: ChangeEvent) -> None:
        if self._closed:
            return
        self._loop.call_soon_threadsafe(self._queue.put_nowait, change)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._feed.remove(self)
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, _CLOSED)
        except RuntimeError:
            logger.debug("Loop for channel %s already closed", self.channel)

    def __aiter__(self):
        return self

    async def __anext__(self) -> ChangeEvent:
        if self._exhausted:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            self._exhausted = True
            raise StopAsyncIteration
        return item

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()


class ChangeFeed:
    def __init__(self):
        self.active_subscriptions: Dict[str, List[Subscription]] = {}
        self._lock = threading.Lock()

    def subscribe(self, table: str, *, event: str = INSERT,
                  eq: Optional[Mapping[str, Any]] = None, channel: Optional[str] = None) -> Subscription:
        subscription = Subscription(self, table, event, eq=eq, channel=channel)
        with self._lock:
            self.active_subscriptions.setdefault(table, []).append(subscription)
        logger.debug("Subscribed %s to %s events on %s", subscription.channel, event, table)
        return subscription

    def remove(self, subscription: Subscription) -> None:
        with self._lock:
            subscriptions = self.active_subscriptions.get(subscription.table)
            if not subscriptions:
                return
            self.active_subscriptions[subscription.table] = [
                s for s in subscriptions if s is not subscription
            ]
            if not self.active_subscriptions[subscription.table]:
                self.active_subscriptions.pop(subscription.table, None)

    def subscriber_count(self, table: str) -> int:
        with self._lock:
            return len(self.active_subscriptions.get(table, []))

    def publish(self, change: ChangeEvent) -> int:
        with self._lock:
            targets = [s for s in self.active_subscriptions.get(change.table, []) if s.matches(change)]

        delivered = 0
        dead_subscriptions = []
        for subscription in targets:
            try:
                subscription.deliver(change)
                delivered += 1
            except RuntimeError:
                logger.warning("Dropping subscription %s: its event loop is gone", subscription.channel)
                dead_subscriptions.append(subscription)

        for subscription in dead_subscriptions:
            subscription.close()
        return delivered
