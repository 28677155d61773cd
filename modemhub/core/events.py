"""
Event bus for raw device output.

Fans out every chunk a session listener reads to any number of subscribers.
Delivery is best-effort: a subscriber whose queue is full misses the message.
"""

import logging
import queue
import threading
from typing import Iterator, Optional

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_SIZE = 100

# Marks the end of a subscription's stream
_CLOSED = object()


class Subscription:
    """
    A bounded delivery queue plus its cancellation handle.

    Iterate over it to receive messages until cancel() is called:

    .. code-block:: python

        sub = bus.subscribe()
        for line in sub:
            print(line)
    """

    def __init__(self, bus: "EventBus", buffer_size: int) -> None:
        self._bus = bus
        self._queue: "queue.Queue[object]" = queue.Queue(maxsize=buffer_size)
        self._closed = False

    @property
    def closed(self) -> bool:
        """True once cancel() has run."""
        return self._closed

    def cancel(self) -> None:
        """Unsubscribe and close the queue. Safe to call more than once."""
        self._bus._remove(self)

    def get(self, timeout: Optional[float] = None) -> Optional[str]:
        """
        Wait for the next message.

        Args:
            timeout: Seconds to wait (None blocks until a message or cancel)

        Returns:
            The message, or None on timeout or after cancellation
        """
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        if item is _CLOSED:
            # Leave the marker for any other reader
            self._requeue_marker()
            return None
        return item

    def __iter__(self) -> Iterator[str]:
        while True:
            item = self._queue.get()
            if item is _CLOSED:
                self._requeue_marker()
                return
            yield item

    def _offer(self, message: str) -> bool:
        """Non-blocking enqueue; False when the queue is full."""
        try:
            self._queue.put_nowait(message)
            return True
        except queue.Full:
            return False

    def _close(self) -> None:
        self._closed = True
        self._requeue_marker()

    def _requeue_marker(self) -> None:
        # Room for the marker is made by discarding undelivered messages
        while True:
            try:
                self._queue.put_nowait(_CLOSED)
                return
            except queue.Full:
                try:
                    self._queue.get_nowait()
                except queue.Empty:
                    pass


class EventBus:
    """
    Broadcast pub/sub for device chatter.

    Features:
    - Bounded queue per subscriber
    - Non-blocking publish, silent drop on a full queue
    - Idempotent cancellation
    """

    def __init__(self, log_events: bool = False) -> None:
        """
        Initialize event bus.

        Args:
            log_events: Log each broadcast at INFO level instead of DEBUG
        """
        self.log_events = log_events
        self._subscribers: set[Subscription] = set()
        self._lock = threading.Lock()
        logger.info("Initialized event bus")

    def subscribe(self, buffer_size: int = DEFAULT_BUFFER_SIZE) -> Subscription:
        """
        Register a new subscriber.

        Args:
            buffer_size: Queue capacity; values <= 0 use the default

        Returns:
            Subscription to read from and cancel
        """
        if buffer_size <= 0:
            buffer_size = DEFAULT_BUFFER_SIZE

        subscription = Subscription(self, buffer_size)
        with self._lock:
            self._subscribers.add(subscription)
            count = len(self._subscribers)
        logger.debug(f"New subscriber (buffer={buffer_size}, total={count})")
        return subscription

    def broadcast(self, message: str) -> int:
        """
        Deliver a message to every current subscriber without blocking.

        Args:
            message: Text to deliver

        Returns:
            Number of subscribers that accepted the message
        """
        if self.log_events:
            logger.info(f"Event: {message!r}")
        else:
            logger.debug(f"Event: {message!r}")

        delivered = 0
        with self._lock:
            for subscription in self._subscribers:
                if subscription._offer(message):
                    delivered += 1
                else:
                    logger.debug("Subscriber queue full, message dropped")
        return delivered

    def subscriber_count(self) -> int:
        """Number of active subscriptions."""
        with self._lock:
            return len(self._subscribers)

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription not in self._subscribers:
                return
            self._subscribers.discard(subscription)
            subscription._close()
        logger.debug("Subscriber cancelled")
