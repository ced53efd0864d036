"""In-process publish/subscribe channel with per-subscriber queues."""

from __future__ import annotations

import asyncio
import logging
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CLOSED = object()


class Subscription(Generic[T]):
    """One consumer's view of a Channel.

    Iterate it with ``async for`` to receive every item published after the
    subscription was created, in publish order. ``close()`` is the
    unsubscribe handle: it stops delivery to this subscriber only and ends
    its iteration.

    Example:
        async with channel.subscribe() as sub:
            async for item in sub:
                handle(item)
    """

    def __init__(self, channel: Channel[T]) -> None:
        self._channel = channel
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _deliver(self, item: T) -> None:
        if not self._closed:
            self._queue.put_nowait(item)

    def close(self) -> None:
        """Unsubscribe. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._channel._remove(self)
        self._queue.put_nowait(_CLOSED)

    async def get(self) -> T:
        """Wait for the next item.

        Raises:
            StopAsyncIteration: the subscription (or its channel) is closed
        """
        item = await self._queue.get()
        if item is _CLOSED:
            # Keep the marker so later calls also stop
            self._queue.put_nowait(_CLOSED)
            raise StopAsyncIteration
        return item

    def __aiter__(self) -> Subscription[T]:
        return self

    async def __anext__(self) -> T:
        return await self.get()

    async def __aenter__(self) -> Subscription[T]:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class Channel(Generic[T]):
    """Fan-out channel: every subscriber receives every published item."""

    def __init__(self, name: str = "channel") -> None:
        self.name = name
        self._subscribers: list[Subscription[T]] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> Subscription[T]:
        """Attach a new subscriber and return its handle."""
        subscription: Subscription[T] = Subscription(self)
        self._subscribers.append(subscription)
        return subscription

    def publish(self, item: T) -> None:
        """Deliver an item to all current subscribers without blocking."""
        for subscription in list(self._subscribers):
            subscription._deliver(item)

    def _remove(self, subscription: Subscription[T]) -> None:
        try:
            self._subscribers.remove(subscription)
        except ValueError:
            pass

    def close(self) -> None:
        """Close every subscription."""
        for subscription in list(self._subscribers):
            subscription.close()
        logger.debug("Channel closed: %s", self.name)
