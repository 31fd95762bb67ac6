"""
An in-memory transport with scriptable peripherals, for tests and demonstrations without a radio.
"""
import logging
import threading
from collections import OrderedDict, deque
from concurrent.futures import Future

from blelink.device import ServiceSummary
from blelink.notifications import DeviceConnected, DeviceDisconnected, DeviceDiscovered
from blelink.transport.base import ConnectMode, Transport, TransportError, completed, failed

logger = logging.getLogger(__name__)


class SimulatedPeripheral:
    """
    A device the simulated transport can find and connect to.

    Outcomes are scripted as sequences consumed one per call. True means the call succeeds, an
    exception instance means it fails with that exception, and anything else fails with a generic
    TransportError. Once a sequence is exhausted, calls succeed.

    :param connects:    outcomes of successive connect calls
    :param disconnects: outcomes of successive disconnect calls
    :param retrievals:  outcomes of successive service retrievals
    :param services:    the (services, characteristics) counts reported by a successful retrieval
    :param in_range:    whether a scan finds the device
    """

    def __init__(self, id, name, connects=(), disconnects=(), retrievals=(), services=(3, 9), in_range=True):
        self.id = id
        self.name = name
        self.connects = deque(connects)
        self.disconnects = deque(disconnects)
        self.retrievals = deque(retrievals)
        self.services = services
        self.in_range = in_range
        self.connected = False

    @staticmethod
    def _outcome(script, what):
        outcome = script.popleft() if script else True
        if outcome is True:
            return None
        if isinstance(outcome, BaseException):
            return outcome
        return TransportError("%s failed" % what)


class SimulatedTransport(Transport):
    """
    Completes every operation immediately, except discovery, which lasts for `scan_window` seconds
    when that is positive. Notifications are posted on the calling thread.

    Every call is recorded in `calls` as a tuple of the operation name and its arguments.
    """

    def __init__(self, peripherals=(), scan_window=0, scan_error=None):
        super().__init__()
        self.peripherals = OrderedDict((p.id, p) for p in peripherals)
        self.scan_window = scan_window
        self.scan_error = scan_error
        self.calls = []
        self._lock = threading.Lock()

    def add(self, peripheral: SimulatedPeripheral):
        self.peripherals[peripheral.id] = peripheral
        return peripheral

    def _record(self, *call):
        with self._lock:
            self.calls.append(call)

    def calls_to(self, operation):
        with self._lock:
            return [c[1:] for c in self.calls if c[0] == operation]

    def start_discovery(self, names, duration):
        self._record('start_discovery', frozenset(names), duration)
        if self.scan_error is not None:
            return failed(self.scan_error)
        for p in list(self.peripherals.values()):
            if p.in_range:
                self._notify(DeviceDiscovered(p.id, p.name))
        if self.scan_window <= 0:
            return completed()
        return self._timed_window(min(self.scan_window, duration))

    @staticmethod
    def _timed_window(seconds):
        window = Future()
        timer = threading.Timer(seconds, window.set_result, (None,))
        timer.daemon = True
        timer.start()
        return window

    def _peripheral(self, device_id):
        return self.peripherals.get(device_id)

    def connect(self, device_id, mode: ConnectMode):
        self._record('connect', device_id, mode)
        p = self._peripheral(device_id)
        if p is None or not p.in_range:
            return failed(TransportError("%s is not in range" % device_id))
        error = p._outcome(p.connects, "connect")
        if error is not None:
            return failed(error)
        p.connected = True
        self._notify(DeviceConnected(device_id))
        return completed()

    def disconnect(self, device_id):
        self._record('disconnect', device_id)
        p = self._peripheral(device_id)
        if p is None:
            return failed(TransportError("%s is not known" % device_id))
        error = p._outcome(p.disconnects, "disconnect")
        if error is not None:
            return failed(error)
        p.connected = False
        self._notify(DeviceDisconnected(device_id))
        return completed()

    def retrieve_services(self, device_id, timeout):
        self._record('retrieve_services', device_id)
        p = self._peripheral(device_id)
        if p is None or not p.connected:
            return failed(TransportError("%s is not connected" % device_id))
        error = p._outcome(p.retrievals, "service retrieval")
        if error is not None:
            return failed(error)
        services, characteristics = p.services
        return completed(ServiceSummary(services, characteristics))

    def drop(self, device_id):
        """ simulates the link to a device being lost """
        p = self._peripheral(device_id)
        p.connected = False
        self._notify(DeviceDisconnected(device_id))
