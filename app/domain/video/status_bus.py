"""In-process publish/subscribe for video status and collaboration events."""

import asyncio
from collections import defaultdict
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from loguru import logger

VIDEO_STATUS_TOPIC = "video_status"
COLLABORATION_STATUS_TOPIC = "collaboration_status"

DEFAULT_QUEUE_SIZE = 100


class Subscription:
    """One subscriber's view of a (topic, key) channel.

    Async-iterate it to receive events published after it was registered.
    """

    def __init__(self, topic: str, key: str, maxsize: int):
        self.topic = topic
        self.key = key
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def _offer(self, event: Any) -> bool:
        try:
            self._queue.put_nowait(event)
            return True
        except asyncio.QueueFull:
            self.dropped += 1
            return False

    async def get(self) -> Any:
        return await self._queue.get()

    def pending(self) -> int:
        return self._queue.qsize()

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> Any:
        return await self._queue.get()


class StatusBus:
    """Fan-out of ephemeral events to live subscribers, filtered by key.

    - publish never blocks; a full subscriber queue drops that subscriber's copy
    - no replay: a subscriber only sees events published after it registered
    - leaving the subscribe() context unregisters the subscriber
    """

    def __init__(self, queue_size: int = DEFAULT_QUEUE_SIZE):
        self._queue_size = queue_size
        self._subscribers: dict[tuple[str, str], set[Subscription]] = defaultdict(set)

    def publish(self, topic: str, key: str, event: Any) -> int:
        """Deliver `event` to every subscriber of (topic, key).

        Returns the number of subscribers that received it.
        """
        subscribers = self._subscribers.get((topic, key))
        if not subscribers:
            logger.debug(f"No subscribers for {topic}:{key}, event discarded")
            return 0

        delivered = 0
        for subscription in list(subscribers):
            if subscription._offer(event):
                delivered += 1
            else:
                logger.warning(
                    f"Subscriber queue full on {topic}:{key}, event dropped "
                    f"(dropped so far: {subscription.dropped})"
                )
        return delivered

    @asynccontextmanager
    async def subscribe(self, topic: str, key: str) -> AsyncIterator[Subscription]:
        subscription = Subscription(topic, key, self._queue_size)
        self._subscribers[(topic, key)].add(subscription)
        logger.debug(f"Subscribed to {topic}:{key} ({self.subscriber_count(topic, key)} total)")
        try:
            yield subscription
        finally:
            self._unsubscribe(subscription)

    def _unsubscribe(self, subscription: Subscription) -> None:
        bucket_key = (subscription.topic, subscription.key)
        subscribers = self._subscribers.get(bucket_key)
        if subscribers is None:
            return
        subscribers.discard(subscription)
        if not subscribers:
            del self._subscribers[bucket_key]
        logger.debug(f"Unsubscribed from {subscription.topic}:{subscription.key}")

    def subscriber_count(self, topic: str, key: str) -> int:
        return len(self._subscribers.get((topic, key), ()))

    def total_subscribers(self) -> int:
        return sum(len(s) for s in self._subscribers.values())
