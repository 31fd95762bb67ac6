import logging
from abc import abstractmethod
from concurrent import futures
from enum import Enum

logger = logging.getLogger(__name__)


class TransportError(IOError):
    """ The radio stack reported that an operation failed. """


class ConnectMode(Enum):
    """
    How to establish a link.
    AUTO reuses what the stack already knows about the device, which is cheaper but can fail
    when that knowledge is out of date. DIRECT locates the device afresh before connecting.
    """
    AUTO = 'auto'
    DIRECT = 'direct'


def completed(result=None) -> futures.Future:
    """ a future that has already succeeded """
    future = futures.Future()
    future.set_result(result)
    return future


def failed(error) -> futures.Future:
    """ a future that has already failed """
    future = futures.Future()
    future.set_exception(error)
    return future


class Transport:
    """
    The operations the device manager needs from a radio stack.

    Every operation returns a concurrent.futures.Future. Failures are reported by setting a
    TransportError on the future rather than raising from the call.

    Notifications (DeviceDiscovered, DeviceConnected, DeviceDisconnected) are delivered to
    `notifications`, a callable that is assigned by whoever consumes them. It may be called from
    any thread.
    """

    def __init__(self):
        self.notifications = None

    def _notify(self, notification):
        sink = self.notifications
        if sink is None:
            logger.debug("no notification sink, dropping %r", notification)
            return
        sink(notification)

    @abstractmethod
    def start_discovery(self, names, duration) -> futures.Future:
        """
        Scans for devices advertising one of the given names for duration seconds.
        :param names:   a set of exact advertised names. A transport may use them to filter what it reports,
            but devices with other names can still be reported; the scan controller filters again.
        :return: a future that completes when the discovery window closes.
        """
        raise NotImplementedError()

    @abstractmethod
    def connect(self, device_id, mode: ConnectMode) -> futures.Future:
        raise NotImplementedError()

    @abstractmethod
    def disconnect(self, device_id) -> futures.Future:
        raise NotImplementedError()

    @abstractmethod
    def retrieve_services(self, device_id, timeout) -> futures.Future:
        """
        Enumerates the services of a connected device.
        :return: a future resolving to a ServiceSummary.
        """
        raise NotImplementedError()

    def close(self):
        """ releases any resources held by the transport """
        pass


def wait_for(future, timeout):
    """
    Waits for a transport operation. An operation that fails or does not finish in time is cancelled
    and its error raised.
    """
    try:
        return future.result(timeout)
    except Exception:
        future.cancel()
        raise
