"""
Publish/subscribe fan-out of execution events.

Every queue subscriber owns its own bounded queue, so publishing never blocks
on it and a slow or broken observer only loses its own subscription. Callback
observers run inline on the publishing thread and must return quickly.
Events published before a subscription exists are never replayed to it.
"""

import asyncio
import threading
import uuid
from typing import Callable, List, Optional, Union

from ..core.logging_config import get_logger
from .events import ExecutionEvent

DEFAULT_QUEUE_SIZE = 1000

_CLOSED = object()


class Subscription:
    """Queue-backed observer handle; async-iterable until closed."""

    def __init__(self, maxsize: int = DEFAULT_QUEUE_SIZE):
        self.id = uuid.uuid4().hex
        # One slot beyond maxsize is kept free for the close marker.
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize + 1)
        self._maxsize = maxsize
        # Events accepted but not yet consumed, including puts still
        # scheduled on the owning loop.
        self._in_flight = 0
        self._lock = threading.Lock()
        self._closed = False
        try:
            self._loop: Optional[asyncio.AbstractEventLoop] = asyncio.get_running_loop()
        except RuntimeError:
            self._loop = None

    @property
    def closed(self) -> bool:
        return self._closed

    def deliver(self, event: ExecutionEvent) -> bool:
        """Queue an event without blocking. Returns False if it cannot be delivered."""
        with self._lock:
            if self._closed or self._in_flight >= self._maxsize:
                return False
            self._in_flight += 1

        if self._on_own_loop():
            self._queue.put_nowait(event)
        else:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, event)
        return True

    def close(self) -> None:
        """Stop accepting events; iteration ends after the queued ones."""
        with self._lock:
            if self._closed:
                return
            self._closed = True

        if self._loop is None or self._loop.is_closed():
            self._put_marker()
        elif self._on_own_loop():
            # Runs after any puts other threads have already scheduled.
            self._loop.call_soon(self._put_marker)
        else:
            self._loop.call_soon_threadsafe(self._put_marker)

    def _put_marker(self) -> None:
        self._queue.put_nowait(_CLOSED)

    def _on_own_loop(self) -> bool:
        if self._loop is None or self._loop.is_closed():
            return True
        try:
            return asyncio.get_running_loop() is self._loop
        except RuntimeError:
            return False

    def _consumed(self, item) -> Optional[ExecutionEvent]:
        if item is _CLOSED:
            self._queue.put_nowait(_CLOSED)
            return None
        with self._lock:
            self._in_flight -= 1
        return item

    async def get(self) -> Optional[ExecutionEvent]:
        """Next event, or None once the subscription is closed and drained."""
        return self._consumed(await self._queue.get())

    def get_nowait(self) -> Optional[ExecutionEvent]:
        """Next queued event, or None if nothing is queued."""
        try:
            item = self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None
        return self._consumed(item)

    def drain(self) -> List[ExecutionEvent]:
        """All events queued right now."""
        events = []
        while True:
            event = self.get_nowait()
            if event is None:
                return events
            events.append(event)

    def __aiter__(self):
        return self

    async def __anext__(self) -> ExecutionEvent:
        event = await self.get()
        if event is None:
            raise StopAsyncIteration
        return event


class CallbackSubscription:
    """
    Observer that receives events through a synchronous callable.

    The callable runs inline on the publishing thread before ``publish``
    returns, so it must be fast and must not block; anything slow belongs
    behind a queue subscription instead.
    """

    def __init__(self, callback: Callable[[ExecutionEvent], None]):
        self.id = uuid.uuid4().hex
        self.callback = callback
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def deliver(self, event: ExecutionEvent) -> bool:
        if self._closed:
            return False
        self.callback(event)
        return True

    def close(self) -> None:
        self._closed = True


Observer = Union[Subscription, CallbackSubscription]


class NotificationBus:
    """Fan-out of execution events to every current subscriber."""

    def __init__(self):
        self._subscribers: List[Observer] = []
        self._lock = threading.Lock()
        self.logger = get_logger(__name__)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(self, maxsize: int = DEFAULT_QUEUE_SIZE) -> Subscription:
        """Create a queue-backed subscription; call from the consumer's event loop."""
        subscription = Subscription(maxsize=maxsize)
        with self._lock:
            self._subscribers.append(subscription)
        self.logger.debug(f"Observer subscribed: {subscription.id}")
        return subscription

    def subscribe_callback(
        self, callback: Callable[[ExecutionEvent], None]
    ) -> CallbackSubscription:
        subscription = CallbackSubscription(callback)
        with self._lock:
            self._subscribers.append(subscription)
        self.logger.debug(f"Callback observer subscribed: {subscription.id}")
        return subscription

    def unsubscribe(self, subscription: Observer) -> bool:
        """Remove and close a subscription. Returns False if it was not subscribed."""
        with self._lock:
            try:
                self._subscribers.remove(subscription)
            except ValueError:
                return False
        subscription.close()
        self.logger.debug(f"Observer unsubscribed: {subscription.id}")
        return True

    def publish(self, event: ExecutionEvent) -> int:
        """
        Deliver ``event`` to every subscriber.

        Observers whose delivery fails are dropped; the failure never reaches
        the publisher.

        Returns:
            Number of observers the event was delivered to
        """
        with self._lock:
            subscribers = list(self._subscribers)

        delivered = 0
        failed: List[Observer] = []
        for subscriber in subscribers:
            try:
                ok = subscriber.deliver(event)
            except Exception as e:
                self.logger.warning(
                    f"Observer {subscriber.id} raised during delivery: {e}",
                    extra={"metadata": {"event": event.type.value}},
                )
                ok = False
            if ok:
                delivered += 1
            else:
                failed.append(subscriber)

        for subscriber in failed:
            if self.unsubscribe(subscriber):
                self.logger.info(
                    f"Dropped observer {subscriber.id} after failed delivery",
                    extra={
                        "metadata": {
                            "event": event.type.value,
                            "execution_id": event.execution_id,
                        }
                    },
                )

        return delivered
