"""
Background threads that repeat one step until told to stop.
"""
import logging
import threading

logger = logging.getLogger(__name__)


class AsyncLoop:
    """
    Calls loop() over and over on a daemon thread, then shutdown() once stop() is requested.
    Subclasses implement loop(); each call should return promptly so stop() is noticed.

    An error raised by a step is logged and the loop carries on.
    """

    def __init__(self, name=None, log=logger):
        self.name = name
        self.logger = log
        self.stop_event = threading.Event()
        self.background_thread = None
        self._lock = threading.Lock()

    def start(self):
        with self._lock:
            if self.background_thread is not None:
                return
            self.stop_event.clear()
            self.background_thread = threading.Thread(target=self._run, name=self.name, daemon=True)
            self.background_thread.start()

    def running(self):
        return not self.stop_event.is_set()

    def stop(self, timeout=None):
        """ asks the thread to finish and waits for it, unless called from the thread itself """
        self.stop_event.set()
        with self._lock:
            thread, self.background_thread = self.background_thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def loop(self):
        raise NotImplementedError()

    def shutdown(self):
        pass

    def _run(self):
        while self.running():
            self._step(self.loop)
        self._step(self.shutdown)
        self.logger.debug("%s exiting", self.name or "background thread")

    def _step(self, step):
        try:
            step()
        except Exception as e:
            self.logger.exception(e)
