"""Delivery of unsolicited property notifications to a single subscriber."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Optional

from .codec import Notification
from .errors import Disconnected

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_SIZE = 10


class Subscription:
    """
    Bounded channel of notifications for one consumer.

    Features:
    - Non-blocking delivery from the connection's read loop
    - Drop-oldest when the buffer is full (counted in ``dropped``)
    - Async iteration that ends once the channel is closed and drained
    """

    def __init__(self, maxsize: int = DEFAULT_BUFFER_SIZE):
        if maxsize < 1:
            raise ValueError("subscription buffer must hold at least one notification")
        self.maxsize = maxsize
        self.dropped = 0
        self._items: deque[Notification] = deque(maxlen=maxsize)
        self._ready = asyncio.Event()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return len(self._items)

    def deliver(self, notification: Notification) -> bool:
        """Queue a notification; returns False once the channel is closed."""
        if self._closed:
            return False
        if len(self._items) == self.maxsize:
            # deque(maxlen) evicts the oldest entry on append
            self.dropped += 1
            logger.warning(
                "Notification buffer full (%d); dropping oldest notification", self.maxsize
            )
        self._items.append(notification)
        self._ready.set()
        return True

    def close(self) -> None:
        """Stop accepting notifications; buffered ones can still be read."""
        self._closed = True
        self._ready.set()

    def get_nowait(self) -> Optional[Notification]:
        """Return the oldest buffered notification, or None if there is none."""
        if self._items:
            return self._items.popleft()
        return None

    async def get(self) -> Optional[Notification]:
        """Wait for the next notification; None once closed and drained."""
        while True:
            if self._items:
                return self._items.popleft()
            if self._closed:
                return None
            self._ready.clear()
            await self._ready.wait()

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> Notification:
        item = await self.get()
        if item is None:
            raise StopAsyncIteration
        return item


class NotificationDispatcher:
    """Routes notifications to the current subscription, if any."""

    def __init__(self, buffer_size: int = DEFAULT_BUFFER_SIZE):
        self.buffer_size = buffer_size
        self._subscription: Optional[Subscription] = None
        self._closed = False

    @property
    def subscription(self) -> Optional[Subscription]:
        return self._subscription

    def subscribe(self, maxsize: Optional[int] = None) -> Subscription:
        """
        Open a new subscription, superseding (and closing) the previous one.

        Args:
            maxsize: Buffer size for this subscription (defaults to the dispatcher's)

        Raises:
            Disconnected: if the connection has already closed
        """
        if self._closed:
            raise Disconnected("cannot subscribe: connection is closed")
        previous = self._subscription
        self._subscription = Subscription(maxsize or self.buffer_size)
        if previous is not None:
            previous.close()
        return self._subscription

    def dispatch(self, notification: Notification) -> bool:
        """Deliver to the active subscription without blocking.

        Returns False when nobody is subscribed.
        """
        subscription = self._subscription
        if subscription is None:
            logger.debug("No subscriber for notification %s", notification.props)
            return False
        return subscription.deliver(notification)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._subscription is not None:
            self._subscription.close()
