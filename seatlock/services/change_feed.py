"""Per-trip change feed carrying seat and booking row events.

The store publishes a typed event after every committed write; clients
subscribe per trip and consume the events as an async iterator. Two
transports are provided: an in-process one (single web worker, tests) and a
Redis pub/sub one for multi-process deployments.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Union

from pydantic import ValidationError
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from seatlock.errors import FeedDisconnected
from seatlock.schemas.events import BookingChanged, SeatChanged, dump_event, parse_event

logger = logging.getLogger(__name__)

Event = Union[SeatChanged, BookingChanged]

CHANNEL_TPL = "seat_feed:{trip_id}"

_CLOSED = object()
_DROPPED = object()


class Subscription(ABC):
    """Cancellable async iterator over one trip's events."""

    def __init__(self, trip_id: str):
        self.trip_id = trip_id
        self.closed = False

    def __aiter__(self):
        return self

    @abstractmethod
    async def __anext__(self) -> Event:
        raise NotImplementedError()

    @abstractmethod
    async def close(self) -> None:
        raise NotImplementedError()


class ChangeFeed(ABC):
    @abstractmethod
    async def publish(self, event: Event) -> None:
        raise NotImplementedError()

    @abstractmethod
    async def subscribe(self, trip_id: str) -> Subscription:
        raise NotImplementedError()

    async def unsubscribe(self, subscription: Subscription) -> None:
        await subscription.close()


class InMemorySubscription(Subscription):
    def __init__(self, trip_id: str, feed: "InMemoryChangeFeed"):
        super().__init__(trip_id)
        self.queue: asyncio.Queue = asyncio.Queue()
        self._feed = feed

    async def __anext__(self) -> Event:
        if self.closed:
            raise StopAsyncIteration
        item = await self.queue.get()
        if item is _CLOSED:
            self.closed = True
            raise StopAsyncIteration
        if item is _DROPPED:
            self.closed = True
            raise FeedDisconnected(f"feed for trip {self.trip_id} dropped")
        return item

    async def close(self) -> None:
        if self.closed:
            return
        self._feed._detach(self)
        self.queue.put_nowait(_CLOSED)


class InMemoryChangeFeed(ChangeFeed):
    """Fan-out over asyncio queues, one per subscriber."""

    def __init__(self):
        self._subscribers: Dict[str, List[InMemorySubscription]] = {}

    async def publish(self, event: Event) -> None:
        subscribers = self._subscribers.get(event.trip_id)
        if not subscribers:
            return
        for sub in list(subscribers):
            sub.queue.put_nowait(event)

    async def subscribe(self, trip_id: str) -> InMemorySubscription:
        sub = InMemorySubscription(trip_id, self)
        self._subscribers.setdefault(trip_id, []).append(sub)
        logger.debug("Subscribed to trip %s (subscribers=%d)", trip_id, len(self._subscribers[trip_id]))
        return sub

    def subscriber_count(self, trip_id: str) -> int:
        return len(self._subscribers.get(trip_id, []))

    def disconnect(self, trip_id: str) -> None:
        """Drop every subscription of a trip, as a broken transport would."""
        for sub in self._subscribers.pop(trip_id, []):
            sub.queue.put_nowait(_DROPPED)

    def _detach(self, sub: InMemorySubscription) -> None:
        subscribers = self._subscribers.get(sub.trip_id)
        if not subscribers:
            return
        if sub in subscribers:
            subscribers.remove(sub)
        if not subscribers:
            del self._subscribers[sub.trip_id]


class RedisSubscription(Subscription):
    def __init__(self, trip_id: str, pubsub, poll_timeout: float = 1.0):
        super().__init__(trip_id)
        self._pubsub = pubsub
        self._poll_timeout = poll_timeout

    async def __anext__(self) -> Event:
        while True:
            if self.closed:
                raise StopAsyncIteration
            try:
                message = await self._pubsub.get_message(ignore_subscribe_messages=True, timeout=self._poll_timeout)
            except (RedisConnectionError, RedisTimeoutError) as exc:
                self.closed = True
                raise FeedDisconnected(f"redis feed for trip {self.trip_id} dropped") from exc
            if message is None:
                continue
            try:
                return parse_event(message["data"])
            except ValidationError:
                logger.warning("Discarding malformed feed payload on trip %s", self.trip_id)

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            await self._pubsub.unsubscribe()
        finally:
            await self._pubsub.aclose()


class RedisChangeFeed(ChangeFeed):
    def __init__(self, client=None):
        if client is None:
            from seatlock.redis_client import redis_client as client
        self._client = client

    async def publish(self, event: Event) -> None:
        await self._client.publish(CHANNEL_TPL.format(trip_id=event.trip_id), dump_event(event))

    async def subscribe(self, trip_id: str) -> RedisSubscription:
        pubsub = self._client.pubsub()
        try:
            await pubsub.subscribe(CHANNEL_TPL.format(trip_id=trip_id))
        except (RedisConnectionError, RedisTimeoutError) as exc:
            await pubsub.aclose()
            raise FeedDisconnected(f"cannot subscribe to trip {trip_id}") from exc
        return RedisSubscription(trip_id, pubsub)


def build_feed(settings, client=None) -> ChangeFeed:
    backend = (settings.FEED_BACKEND or "memory").lower()
    if backend == "redis":
        return RedisChangeFeed(client)
    if backend == "memory":
        return InMemoryChangeFeed()
    raise ValueError("Unknown feed backend: %s" % settings.FEED_BACKEND)
