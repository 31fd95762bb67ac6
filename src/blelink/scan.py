"""
Discovery windows and the allow-list that decides which advertised devices are tracked.
"""
import logging
import threading
from concurrent.futures import CancelledError, Future

from blelink.authorization import Authorizer, GrantedAuthorizer
from blelink.errors import AuthorizationDenied, ScanStartFailed
from blelink.notifications import DeviceDiscovered
from blelink.reconciler import EventReconciler
from blelink.registry import DeviceRegistry
from blelink.support.events import EventSource
from blelink.transport.base import Transport, failed

logger = logging.getLogger(__name__)


class ScanController:
    """
    Runs one discovery window at a time and admits discovered devices into the registry.

    Only devices whose advertised name exactly matches a name in the allow-list of the most recent scan
    are admitted; everything else in range is ignored. The controller listens to the reconciler's
    `discovered` events, so admission happens on the reconciler's thread like every other
    notification.

    Authorization is requested before the first scan. A grant is remembered. A refusal fails that scan
    request, and the authorizer is asked again on the next one.

    Errors are posted to `errors` as well as being set on the future returned by scan().

    :param names:       the default allow-list
    :param duration:    the default length of a discovery window, in seconds
    """

    def __init__(self, transport: Transport, registry: DeviceRegistry, reconciler: EventReconciler,
                 authorizer: Authorizer=None, names=(), duration=3.0):
        self.transport = transport
        self.registry = registry
        self.reconciler = reconciler
        self.authorizer = authorizer or GrantedAuthorizer()
        self.names = frozenset(names)
        self.duration = duration
        self.errors = EventSource()
        self._allowed = frozenset()
        self._authorized = False
        self._active = None
        self._lock = threading.Lock()
        reconciler.discovered.add(self.device_discovered)

    def dispose(self):
        self.reconciler.discovered.remove(self.device_discovered)

    @property
    def active(self):
        return self._active is not None

    def scan(self, names=None, duration=None):
        """
        Starts a discovery window.
        :param names:       the allow-list for this scan. Defaults to the controller's names.
        :param duration:    seconds to scan for. Defaults to the controller's duration.
        :return: a future that completes when the window closes, or fails with AuthorizationDenied
            or ScanStartFailed. None if a scan is already running, in which case nothing is started.
        """
        names = self.names if names is None else frozenset(names)
        duration = self.duration if duration is None else duration
        if self.active:
            logger.debug("scan already in progress, ignoring request")
            return None
        # may prompt the user, so not under the lock
        if not self._ensure_authorized():
            return self._report(AuthorizationDenied())
        with self._lock:
            if self._active is not None:
                logger.debug("another scan started while authorizing, ignoring request")
                return None
            self._allowed = names
            outcome = Future()
            self._active = outcome
        logger.info("scanning %.1fs for %s", duration, ", ".join(sorted(names)) or "nothing")
        try:
            window = self.transport.start_discovery(names, duration)
        except Exception as e:
            window = failed(e)
        window.add_done_callback(self._window_closed)
        return outcome

    def _ensure_authorized(self):
        if not self._authorized:
            self._authorized = self.authorizer.ensure_authorized()
        return self._authorized

    def _window_closed(self, window):
        with self._lock:
            outcome, self._active = self._active, None
        error = CancelledError("scan cancelled") if window.cancelled() else window.exception()
        if error is not None:
            scan_error = ScanStartFailed(error)
            logger.error("%s", scan_error)
            self.errors.fire(scan_error)
            outcome.set_exception(scan_error)
        else:
            logger.info("scan complete, %d device(s) known", len(self.registry))
            outcome.set_result(None)

    def _report(self, error):
        logger.error("%s", error)
        self.errors.fire(error)
        return failed(error)

    def is_allowed(self, name):
        return name is not None and name in self._allowed

    def device_discovered(self, notification: DeviceDiscovered):
        """ admits the device to the registry if its name is on the allow-list """
        if self.is_allowed(notification.name):
            self.registry.upsert_discovered(notification.id, notification.name, notification.timestamp)
        else:
            logger.debug("ignoring %s (%s): not on the allow-list", notification.id, notification.name)
