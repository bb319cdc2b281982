import logging
import threading
from queue import Empty, Full, Queue

logger = logging.getLogger(__name__)


class EventSource(object):
    """
    Fans events out to registered handlers. Handlers may be added and removed from any thread;
    firing iterates over a snapshot of the handlers registered at the time.
    """

    def __init__(self):
        self._handlers = []
        self._lock = threading.Lock()

    def __iadd__(self, handler):
        return self.add(handler)

    def __isub__(self, handler):
        return self.remove(handler)

    def add(self, handler):
        with self._lock:
            self._handlers.append(handler)
        return self

    def remove(self, handler):
        with self._lock:
            if handler in self._handlers:
                self._handlers.remove(handler)
        return self

    def handlers(self):
        with self._lock:
            return tuple(self._handlers)

    def fire(self, *args, **kwargs):
        for handler in self.handlers():
            handler(*args, **kwargs)

    def fire_all(self, events):
        for e in events:
            self.fire(e)

    def subscribe(self, maxsize=1000):
        """
        Registers a queue-backed subscription that receives every event fired from now on.
        :param maxsize: the most events held for the subscriber. When full, the oldest event is dropped.
        :return: the Subscription. Close it to unsubscribe.
        """
        subscription = Subscription(self, maxsize)
        self.add(subscription.post)
        return subscription


class Subscription:
    """
    A bounded queue of events from an EventSource. The subscriber drains it at its own pace; when
    it falls behind, the oldest events are dropped and counted in `dropped`.
    """

    def __init__(self, source: EventSource, maxsize=1000):
        self.source = source
        self.events = Queue(maxsize)
        self.dropped = 0
        self.closed = False

    def post(self, event):
        while True:
            try:
                self.events.put_nowait(event)
                return
            except Full:
                try:
                    self.events.get_nowait()
                    self.dropped += 1
                except Empty:
                    pass

    def get(self, timeout=None):
        """
        Fetches the next event.
        :param timeout: seconds to wait. None waits indefinitely.
        :return: the event, or None if none arrived within the timeout.
        """
        try:
            return self.events.get(timeout=timeout)
        except Empty:
            return None

    def drain(self):
        """ fetches all queued events without waiting. """
        events = []
        while True:
            try:
                events.append(self.events.get_nowait())
            except Empty:
                return events

    def close(self):
        if not self.closed:
            self.closed = True
            self.source.remove(self.post)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
