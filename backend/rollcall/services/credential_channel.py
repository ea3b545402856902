"""Publish/subscribe fan-out of rotated credentials to display clients."""
import logging
import queue
import threading
from typing import Dict, Optional, Set

logger = logging.getLogger(__name__)

# Marks the end of a stream: the session was stopped or expired.
END_OF_STREAM = object()


class Subscription:
    """
    One display client's view of a subject's credentials.

    Items are delivered in publish order through a bounded queue. When the
    queue is full the oldest undelivered item is discarded, so a slow client
    only ever falls behind to the newest credential and never blocks publish.
    """

    def __init__(self, subject_ref: str, maxsize: int = 8):
        self.subject_ref = subject_ref
        self._queue = queue.Queue(maxsize=max(1, maxsize))
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def offer(self, item) -> None:
        """Enqueue without blocking, dropping the oldest item if needed."""
        if self._closed.is_set():
            return
        while True:
            try:
                self._queue.put_nowait(item)
                return
            except queue.Full:
                try:
                    self._queue.get_nowait()
                except queue.Empty:
                    pass

    def get(self, timeout: float = None):
        """
        Return the next credential, ``END_OF_STREAM`` once the stream is over,
        or ``None`` if nothing arrived within ``timeout`` seconds.
        """
        if self._closed.is_set() and self._queue.empty():
            return END_OF_STREAM
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        if item is END_OF_STREAM:
            self._closed.set()
        return item

    def close(self) -> None:
        self._closed.set()

    def __iter__(self):
        while True:
            item = self.get()
            if item is END_OF_STREAM:
                return
            yield item


class _Topic:
    """Per-subject channel state."""

    def __init__(self, credential):
        self.latest = credential
        self.subscribers: Set[Subscription] = set()


class CredentialChannel:
    """Fan-out of each new credential to the subscribers of its subject."""

    def __init__(self, subscriber_queue_size: int = 8):
        self.subscriber_queue_size = subscriber_queue_size
        self._lock = threading.Lock()
        self._topics: Dict[str, _Topic] = {}

    def open(self, credential) -> None:
        """
        Make ``credential`` the current one for its subject.

        Called when a session starts. Subscribers already attached to the
        subject (from a superseded session) stay attached and receive it.
        """
        with self._lock:
            topic = self._topics.get(credential.subject_ref)
            if topic is None:
                self._topics[credential.subject_ref] = _Topic(credential)
                return
            topic.latest = credential
            self._deliver(topic, credential)

    def publish(self, credential) -> bool:
        """
        Deliver a rotated credential. Returns False when it was dropped because
        its session is no longer current or a newer credential was already sent.
        """
        with self._lock:
            topic = self._topics.get(credential.subject_ref)
            if topic is None or topic.latest.session_id != credential.session_id:
                return False
            if credential.sequence <= topic.latest.sequence:
                return False
            topic.latest = credential
            self._deliver(topic, credential)
            return True

    def close(self, subject_ref: str, session_id: str) -> None:
        """End every stream for the subject if ``session_id`` is still current."""
        with self._lock:
            topic = self._topics.get(subject_ref)
            if topic is None or topic.latest.session_id != session_id:
                return
            del self._topics[subject_ref]
            for subscription in topic.subscribers:
                subscription.offer(END_OF_STREAM)
            logger.debug("Closed %d stream(s) for subject %s", len(topic.subscribers), subject_ref)

    def subscribe(self, subject_ref: str) -> Optional[Subscription]:
        """Attach a subscriber; it receives the current credential at once."""
        with self._lock:
            topic = self._topics.get(subject_ref)
            if topic is None:
                return None
            subscription = Subscription(subject_ref, self.subscriber_queue_size)
            subscription.offer(topic.latest)
            topic.subscribers.add(subscription)
            return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subscription.close()
        with self._lock:
            topic = self._topics.get(subscription.subject_ref)
            if topic is not None:
                topic.subscribers.discard(subscription)

    def subscriber_count(self, subject_ref: str) -> int:
        with self._lock:
            topic = self._topics.get(subject_ref)
            return len(topic.subscribers) if topic else 0

    def _deliver(self, topic: _Topic, credential) -> None:
        for subscription in list(topic.subscribers):
            if subscription.closed:
                topic.subscribers.discard(subscription)
                continue
            subscription.offer(credential)
