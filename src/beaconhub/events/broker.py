"""In-process publish/subscribe for live dashboard notifications.

Delivery is best-effort and at-most-once. ``publish`` never blocks on a
subscriber: each subscription owns a bounded queue bound to the event loop it
was created on, and events are handed across threads with
``loop.call_soon_threadsafe``. Nothing is persisted, so a client that
subscribes after a publish sees nothing and must re-query on (re)connect.
"""

import asyncio
import enum
import logging
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol

from beaconhub.config import settings

logger = logging.getLogger(__name__)


class TopicKind(enum.StrEnum):
    users = "users"
    history = "history"


@dataclass(frozen=True)
class Topic:
    """A structured topic key.

    Matching uses the (kind, nickname) pair, never a joined string, so a
    nickname containing separator characters cannot alias another topic.
    """

    kind: TopicKind
    nickname: str | None = None

    @classmethod
    def users(cls) -> "Topic":
        return cls(TopicKind.users)

    @classmethod
    def history(cls, nickname: str) -> "Topic":
        return cls(TopicKind.history, nickname)

    @property
    def event_name(self) -> str:
        """Event name as seen by dashboard clients."""
        if self.kind == TopicKind.users:
            return "update_users"
        return f"update_history_{self.nickname}"


@dataclass(frozen=True)
class Event:
    topic: Topic
    emitted_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_message(self) -> dict[str, Any]:
        return {
            "event": self.topic.event_name,
            "topic": str(self.topic.kind),
            "nickname": self.topic.nickname,
            "emittedAt": self.emitted_at.isoformat(),
        }


class EventSink(Protocol):
    """Anything core operations can announce changes to."""

    def publish(self, topic: Topic) -> int: ...


class Subscription:
    """A subscriber's FIFO of events for the topics it registered."""

    def __init__(
        self,
        topics: frozenset[Topic],
        loop: asyncio.AbstractEventLoop,
        maxsize: int,
    ) -> None:
        self.topics = topics
        self.dropped = 0
        self._loop = loop
        self._queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=maxsize)

    def _offer(self, event: Event) -> None:
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                "Subscriber queue full, dropped %s (%d dropped so far)",
                event.topic.event_name,
                self.dropped,
            )

    def deliver(self, event: Event) -> None:
        """Enqueue ``event`` from any thread without blocking."""
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            self._offer(event)
        else:
            # Raises RuntimeError once the owning loop is closed
            self._loop.call_soon_threadsafe(self._offer, event)

    async def get(self) -> Event:
        return await self._queue.get()

    def get_nowait(self) -> Event | None:
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    def pending(self) -> int:
        return self._queue.qsize()


class Broker:
    """Topic registry fanning published events out to live subscriptions."""

    def __init__(self, queue_size: int = 100) -> None:
        self.queue_size = queue_size
        self._lock = threading.Lock()
        self._by_topic: dict[Topic, set[Subscription]] = defaultdict(set)

    def subscribe(self, *topics: Topic) -> Subscription:
        """Register interest in ``topics``. Must be called on an event loop."""
        if not topics:
            raise ValueError("subscribe() needs at least one topic")
        loop = asyncio.get_running_loop()
        subscription = Subscription(frozenset(topics), loop, self.queue_size)
        with self._lock:
            for topic in subscription.topics:
                self._by_topic[topic].add(subscription)
        logger.debug("Subscribed to %s", sorted(t.event_name for t in topics))
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            for topic in subscription.topics:
                subscribers = self._by_topic.get(topic)
                if subscribers is None:
                    continue
                subscribers.discard(subscription)
                if not subscribers:
                    del self._by_topic[topic]

    def publish(self, topic: Topic) -> int:
        """Offer a change event to every current subscriber of ``topic``.

        Returns the number of subscriptions the event was handed to.
        """
        with self._lock:
            subscribers = list(self._by_topic.get(topic, ()))

        event = Event(topic)
        delivered = 0
        for subscription in subscribers:
            try:
                subscription.deliver(event)
                delivered += 1
            except RuntimeError:
                logger.debug("Dropping subscription on a closed loop")
                self.unsubscribe(subscription)

        logger.debug("Emitting %s to %d subscriber(s)", topic.event_name, delivered)
        return delivered

    def subscriber_count(self, topic: Topic) -> int:
        with self._lock:
            return len(self._by_topic.get(topic, ()))


broker = Broker(queue_size=settings.event_queue_size)


def get_broker() -> Broker:
    """Return the process-wide broker for FastAPI Depends()."""
    return broker
