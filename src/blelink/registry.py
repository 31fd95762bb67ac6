"""
The authoritative record of which devices exist and how they are connected.
"""
import logging
import threading
import time
from collections import OrderedDict

from blelink.device import DISCONNECTED, Device, ServiceSummary, is_permitted
from blelink.errors import UnknownDeviceReference
from blelink.support.events import EventSource

logger = logging.getLogger(__name__)


class DeviceRegistry:
    """
    Maps device id to Device, in the order devices were first discovered.

    The registry is the only owner of device state. All writes are serialized by a single lock;
    device counts are small, so one lock over the whole map is enough. Readers get immutable
    Device values and should fetch again rather than hold on to one.

    Devices are never removed. A device that is missing from a later scan may simply be out of range.

    Writes may carry the monotonic timestamp of the observation that caused them. A write older than
    the device's last applied write is stale and ignored.

    Fires `changes` with the new snapshot after any write that alters a device's name, state or
    services, and `transitions` with (id, old_state, new_state) after any state change. Handlers
    are called on the writing thread, after the lock is released. A snapshot that is overtaken by a
    later one before it can be delivered is dropped, so the last snapshot handlers receive is current.

    :param clock: source of timestamps for writes that do not carry one.
    """

    def __init__(self, clock=time.monotonic):
        self._devices = OrderedDict()
        self._lock = threading.RLock()
        self._clock = clock
        self._sequence = 0
        self._delivered = 0
        self._dispatch = threading.RLock()
        self.changes = EventSource()
        self.transitions = EventSource()

    def __len__(self):
        with self._lock:
            return len(self._devices)

    def __contains__(self, device_id):
        with self._lock:
            return device_id in self._devices

    def get(self, device_id) -> Device:
        with self._lock:
            return self._devices.get(device_id)

    def snapshot(self):
        """
        :return: a tuple of the current Device values in discovery order.
        """
        with self._lock:
            return tuple(self._devices.values())

    def upsert_discovered(self, device_id, name, timestamp=None) -> Device:
        """
        Records that a device was seen. A new device starts out disconnected. A known device keeps its
        connection state; only its name and last event time are updated. A missing name does not erase
        a name seen earlier.
        :return: the device as recorded, or None if the observation was stale.
        """
        with self._lock:
            existing = self._devices.get(device_id)
            if existing is not None and self._is_stale(existing, timestamp):
                return None
            stamp = self._stamp(timestamp)
            if existing is None:
                device = Device(device_id, name, DISCONNECTED, stamp)
                logger.info("discovered %s (%s)", name, device_id)
            else:
                device = existing._replace(name=name or existing.name, last_event=max(stamp, existing.last_event))
            self._devices[device_id] = device
            changed = existing is None or existing.name != device.name
            snapshot = self._snapshot() if changed else None
        if changed:
            self._publish(snapshot)
        return device

    def set_connection_state(self, device_id, state, timestamp=None) -> bool:
        """
        Moves a device to the given state. Writing the state a device is already in does nothing.
        Unknown devices, stale writes and moves the state machine does not permit are logged and ignored.
        :return: True if the device is in the given state afterwards.
        """
        return self._write_state(device_id, None, state, timestamp)

    def transition(self, device_id, expected, state, timestamp=None) -> bool:
        """
        Moves a device to the given state only if it is currently in one of the expected states.
        :param expected:    an iterable of ConnectionState
        :return: True if the device moved, or was already in the target state.
        """
        return self._write_state(device_id, tuple(expected), state, timestamp)

    def record_services(self, device_id, summary: ServiceSummary) -> bool:
        """ Stores the result of enumerating the device's services. """
        with self._lock:
            device = self._devices.get(device_id)
            if device is None:
                self._unknown(device_id)
                return False
            self._devices[device_id] = device._replace(services=summary)
            snapshot = self._snapshot()
        self._publish(snapshot)
        return True

    def _write_state(self, device_id, expected, state, timestamp):
        with self._lock:
            device = self._devices.get(device_id)
            if device is None:
                self._unknown(device_id)
                return False
            if self._is_stale(device, timestamp):
                return False
            current = device.state
            if current is state:
                return True
            if expected is not None and current not in expected:
                logger.debug("%s is %s, not moving to %s", device_id, current, state)
                return False
            if not is_permitted(current, state):
                logger.warning("rejected transition of %s from %s to %s", device_id, current, state)
                return False
            self._devices[device_id] = device._replace(state=state,
                                                       last_event=max(self._stamp(timestamp), device.last_event))
            snapshot = self._snapshot()
        logger.debug("%s: %s -> %s", device_id, current, state)
        self.transitions.fire(device_id, current, state)
        self._publish(snapshot)
        return True

    def _snapshot(self):
        """ numbers each snapshot taken for publishing, in the order of the writes it follows """
        self._sequence += 1
        return self._sequence, tuple(self._devices.values())

    def _publish(self, numbered):
        """
        Fires `changes`, unless a later snapshot has already been delivered. Writers publish after
        releasing the registry lock, so two writers can reach here in either order.
        """
        sequence, snapshot = numbered
        with self._dispatch:
            if sequence < self._delivered:
                logger.debug("dropping superseded snapshot %d", sequence)
                return
            self._delivered = sequence
            self.changes.fire(snapshot)

    def _stamp(self, timestamp):
        return self._clock() if timestamp is None else timestamp

    @staticmethod
    def _is_stale(device, timestamp):
        stale = timestamp is not None and timestamp < device.last_event
        if stale:
            logger.debug("discarding stale update for %s", device.id)
        return stale

    @staticmethod
    def _unknown(device_id):
        logger.warning("%s", UnknownDeviceReference(device_id))
