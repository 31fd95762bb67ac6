"""
Assembles the registry, reconciler, scan controller and orchestrator around a transport, and exposes
the small set of requests a user interface needs.
"""
import logging
from concurrent.futures import Future

from blelink import settings
from blelink.authorization import Authorizer
from blelink.orchestrator import ConnectionOrchestrator
from blelink.reconciler import EventReconciler, ReconcilerLoop
from blelink.registry import DeviceRegistry
from blelink.scan import ScanController
from blelink.services import ServiceRetrievalFallback
from blelink.support.events import EventSource
from blelink.transport.base import Transport
from blelink.transport.bleak_transport import BleakTransport

logger = logging.getLogger(__name__)


class DeviceManager:
    """
    The device manager for one transport.

    Presentation code subscribes to snapshots of the registry and calls the request_ methods; it has
    no other way to change device state. Errors from every component are posted to `diagnostics`.

    Notifications from the transport are applied by a background loop between start() and stop().
    Without start(), call process_notifications() to apply them on the calling thread.
    """

    def __init__(self, transport: Transport, authorizer: Authorizer=None, scan_names=(), scan_duration=3.0,
                 connect_timeout=10.0, disconnect_timeout=5.0, service_timeout=5.0, max_service_recoveries=3,
                 workers=8, executor=None):
        self.transport = transport
        self.registry = DeviceRegistry()
        self.reconciler = EventReconciler(self.registry)
        transport.notifications = self.reconciler.post
        self.scanner = ScanController(transport, self.registry, self.reconciler, authorizer,
                                      scan_names, scan_duration)
        fallback = ServiceRetrievalFallback(self.registry, transport, service_timeout, max_service_recoveries)
        self.orchestrator = ConnectionOrchestrator(self.registry, transport, fallback, executor=executor,
                                                   workers=workers, connect_timeout=connect_timeout,
                                                   disconnect_timeout=disconnect_timeout)
        self.diagnostics = EventSource()
        for errors in (self.scanner.errors, self.orchestrator.errors, fallback.errors):
            errors.add(self.diagnostics.fire)
        self._loop = ReconcilerLoop(self.reconciler)

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()

    def start(self):
        self._loop.start()

    def stop(self):
        """ stops applying notifications, waits for operations in flight and closes the transport """
        self.orchestrator.close()
        self.scanner.dispose()
        self._loop.stop()
        self.transport.close()

    def process_notifications(self):
        return self.reconciler.process_pending()

    def settle(self):
        """ waits until the background loop has applied every notification received so far """
        self.reconciler.join()

    def snapshot(self):
        return self.registry.snapshot()

    def subscribe(self, on_change):
        """
        Registers a callable that receives the ordered tuple of devices whenever any device changes.
        It is called once straight away with the current devices.
        """
        self.registry.changes.add(on_change)
        on_change(self.registry.snapshot())

    def unsubscribe(self, on_change):
        self.registry.changes.remove(on_change)

    def request_scan(self) -> Future:
        """ scans with the configured allow-list. None if a scan is already running. """
        return self.scanner.scan()

    def request_connect_all(self) -> Future:
        return self.orchestrator.connect_all()

    def request_disconnect_all(self) -> Future:
        return self.orchestrator.disconnect_all()

    def request_toggle(self, device_id) -> Future:
        return self.orchestrator.toggle(device_id)


def build_device_manager(transport: Transport=None, authorizer: Authorizer=None, configure=True):
    """
    Creates a device manager using the values in blelink.settings.
    :param transport:   the transport to drive. Defaults to a BleakTransport.
    :param configure:   when True, the settings are first loaded from the configuration files.
    """
    if configure:
        settings.load()
    if transport is None:
        transport = BleakTransport(connect_timeout=settings.connect_timeout)
    return DeviceManager(transport, authorizer,
                         scan_names=settings.scan_names,
                         scan_duration=settings.scan_duration,
                         connect_timeout=settings.connect_timeout,
                         disconnect_timeout=settings.disconnect_timeout,
                         service_timeout=settings.service_timeout,
                         max_service_recoveries=settings.max_service_recoveries,
                         workers=settings.workers)
