"""
Service enumeration after a connection, used as a check that the link really came up.
"""
import logging
import time

from blelink.device import CONNECTED, DISCONNECTED, ServiceSummary
from blelink.errors import ConnectFailed, ServiceRetrievalFailed
from blelink.registry import DeviceRegistry
from blelink.support.events import EventSource
from blelink.transport.base import Transport, wait_for

logger = logging.getLogger(__name__)


class ServiceRetrievalFallback:
    """
    Enumerates a connected device's services within a time limit.

    Some stacks report a connection before the link is usable. If enumeration fails or times out, the
    connection is treated as not established: the link is closed, the device is marked disconnected and
    reconnected, and enumeration is tried again. This repeats at most max_recoveries times, after which the device is
    left connected and a ServiceRetrievalFailed is posted to `errors`.

    :param timeout:         seconds allowed for each enumeration
    :param max_recoveries:  how many reconnects to make before giving up
    """

    def __init__(self, registry: DeviceRegistry, transport: Transport, timeout=5.0, max_recoveries=3):
        self.registry = registry
        self.transport = transport
        self.timeout = timeout
        self.max_recoveries = max_recoveries
        self.errors = EventSource()

    def retrieve(self, device_id) -> ServiceSummary:
        """
        Enumerates services once and records the result on the device.
        :return: the ServiceSummary, or None if enumeration failed or timed out.
        """
        logger.debug("retrieving services for %s", device_id)
        started = time.monotonic()
        try:
            summary = wait_for(self.transport.retrieve_services(device_id, self.timeout), self.timeout)
        except Exception as e:
            logger.warning("retrieving services for %s failed: %s", device_id, str(e) or type(e).__name__)
            return None
        if summary.elapsed is None:
            summary = summary._replace(elapsed=time.monotonic() - started)
        self.registry.record_services(device_id, summary)
        logger.info("retrieved services for %s in %.2fs: %d service(s), %d characteristic(s)",
                    device_id, summary.elapsed, summary.services, summary.characteristics)
        return summary

    def run(self, device_id, reconnect) -> ServiceSummary:
        """
        Retrieves services, reconnecting when retrieval fails.
        :param reconnect:   a callable taking the device id that connects the device again. It returns
            True once connected, False if there was nothing to do, and raises ConnectFailed on failure.
        :return: the ServiceSummary, or None when the device is no longer connected or retrieval
            was abandoned.
        """
        recoveries = 0
        while True:
            device = self.registry.get(device_id)
            if device is None or device.state is not CONNECTED:
                logger.debug("%s is no longer connected, not retrieving services", device_id)
                return None
            summary = self.retrieve(device_id)
            if summary is not None:
                return summary
            if recoveries >= self.max_recoveries:
                error = ServiceRetrievalFailed(device_id, recoveries)
                logger.error("%s", error)
                self.errors.fire(error)
                return None
            recoveries += 1
            logger.info("link to %s looks incomplete, reconnecting (%d of %d)",
                        device_id, recoveries, self.max_recoveries)
            self._drop_link(device_id)
            self.registry.transition(device_id, (CONNECTED,), DISCONNECTED)
            try:
                if not reconnect(device_id):
                    return None
            except ConnectFailed:   # already reported by the caller
                return None

    def _drop_link(self, device_id):
        """
        Closes the link the transport holds, so the reconnect makes a new one rather than handing
        back the link that could not be enumerated.
        """
        try:
            wait_for(self.transport.disconnect(device_id), self.timeout)
        except Exception as e:
            logger.warning("closing the link to %s failed: %s", device_id, str(e) or type(e).__name__)
