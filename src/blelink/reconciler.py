"""
Applies transport notifications to the registry, one at a time and in arrival order.
"""
import logging
from queue import Empty, Queue

from blelink.device import CONNECTED, DISCONNECTED
from blelink.notifications import DeviceConnected, DeviceDisconnected, DeviceDiscovered
from blelink.support.background import AsyncLoop
from blelink.support.events import EventSource

logger = logging.getLogger(__name__)


class EventReconciler:
    """
    The single consumer of transport notifications.

    Transports post notifications from whatever thread they run on; post() only enqueues. The queue is
    drained either synchronously with process_pending(), or continuously by a ReconcilerLoop. Either
    way each notification is applied in full before the next is taken, so writes to the registry
    from notifications are serialized and keep the order the transport emitted them in.

    Discovery notifications are not written to the registry directly. They are passed to the
    `discovered` handlers, which decide whether the device is of interest (see ScanController).

    Connection notifications are applied as state writes stamped with the notification time.
    Notifications for unknown devices, or that are older than the device's last write, are
    discarded by the registry.
    """

    def __init__(self, registry):
        self.registry = registry
        self.queue = Queue()
        self.discovered = EventSource()
        self._appliers = {
            DeviceDiscovered: self._apply_discovered,
            DeviceConnected: self._apply_connected,
            DeviceDisconnected: self._apply_disconnected,
        }

    def post(self, notification):
        """ queues a notification. Safe to call from any thread. """
        self.queue.put(notification)

    __call__ = post

    def process_pending(self) -> int:
        """
        Applies every notification queued so far on the calling thread.
        :return: the number of notifications taken from the queue.
        """
        count = 0
        while True:
            try:
                notification = self.queue.get_nowait()
            except Empty:
                return count
            self._apply_taken(notification)
            count += 1

    def process_next(self, timeout=None) -> bool:
        """
        Waits up to timeout seconds for a notification and applies it.
        :return: True if a notification was applied.
        """
        try:
            notification = self.queue.get(timeout=timeout)
        except Empty:
            return False
        self._apply_taken(notification)
        return True

    def _apply_taken(self, notification):
        try:
            self.apply(notification)
        finally:
            self.queue.task_done()

    def join(self):
        """ waits until every notification posted so far has been applied """
        self.queue.join()

    def apply(self, notification) -> bool:
        applier = self._appliers.get(type(notification))
        if applier is None:
            logger.warning("ignoring unrecognized notification %r", notification)
            return False
        return applier(notification)

    def _apply_discovered(self, notification: DeviceDiscovered):
        handlers = self.discovered.handlers()
        if not handlers:
            logger.debug("no discovery handlers, ignoring %r", notification)
            return False
        for handler in handlers:
            handler(notification)
        return True

    def _apply_connected(self, notification: DeviceConnected):
        logger.debug("transport reports %s connected", notification.id)
        return self.registry.set_connection_state(notification.id, CONNECTED, notification.timestamp)

    def _apply_disconnected(self, notification: DeviceDisconnected):
        logger.debug("transport reports %s disconnected", notification.id)
        return self.registry.set_connection_state(notification.id, DISCONNECTED, notification.timestamp)


class ReconcilerLoop(AsyncLoop):
    """
    Drains a reconciler's queue on a background thread. Errors raised while applying a notification
    are logged and the loop carries on with the next.

    :param poll_interval: how long each wait for a notification lasts before checking for stop()
    """

    def __init__(self, reconciler: EventReconciler, poll_interval=0.1):
        super().__init__(name='blelink-reconciler')
        self.reconciler = reconciler
        self.poll_interval = poll_interval

    def loop(self):
        self.reconciler.process_next(self.poll_interval)

    def shutdown(self):
        self.reconciler.process_pending()
