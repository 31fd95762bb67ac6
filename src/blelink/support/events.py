import threading


class EventSource(object):
    """
    A list of handlers that are each called with the arguments passed to fire().

    Handlers may be added and removed from any thread. Firing iterates over a copy of the
    handlers so a handler can remove itself while being notified.
    """

    def __init__(self):
        self._handlers = []
        self._lock = threading.Lock()

    def add(self, handler):
        with self._lock:
            self._handlers.append(handler)

    def remove(self, handler):
        with self._lock:
            if handler in self._handlers:
                self._handlers.remove(handler)

    def handlers(self):
        with self._lock:
            return tuple(self._handlers)

    def fire(self, *args, **kwargs):
        for handler in self.handlers():
            handler(*args, **kwargs)
