"""
Connecting and disconnecting devices, one at a time or all at once.
"""
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor

from blelink.device import CONNECTED, CONNECTING, DISCONNECTED, DISCONNECTING
from blelink.errors import ConnectFailed, DisconnectFailed, OperationInProgress, UnknownDeviceReference
from blelink.registry import DeviceRegistry
from blelink.services import ServiceRetrievalFallback
from blelink.support.events import EventSource
from blelink.support.mixins import CommonEqualityMixin, StringerMixin
from blelink.support.retry_policy import RetryPolicy
from blelink.transport.base import ConnectMode, Transport, failed, wait_for

logger = logging.getLogger(__name__)

# bulk connects try the cheaper reconnect first, then a plain connect
BULK_CONNECT_POLICY = RetryPolicy((ConnectMode.AUTO, ConnectMode.DIRECT))
SINGLE_CONNECT_POLICY = RetryPolicy((ConnectMode.DIRECT,))


class BulkResult(CommonEqualityMixin, StringerMixin):
    """
    The outcome of a bulk operation.
    :param succeeded:   ids of devices the operation completed on
    :param failed:      map of id to the error that stopped the operation on that device
    :param skipped:     ids of devices that were busy or had already changed state
    """

    def __init__(self, succeeded=(), failed=None, skipped=()):
        self.succeeded = list(succeeded)
        self.failed = dict(failed or {})
        self.skipped = list(skipped)

    @property
    def ok(self):
        return not self.failed


class ConnectionOrchestrator:
    """
    Issues connect and disconnect operations against the transport and keeps the registry in step.

    Each operation runs on a worker thread and owns its device until it finishes; a second operation
    on the same device while one is in flight fails straight away with OperationInProgress. Operations
    on different devices run concurrently.

    Every transport call is time-boxed, and every path out of an operation leaves the device connected
    or disconnected.

    A connect is tried once for each mode in its retry policy. Once connected, services are retrieved
    (see ServiceRetrievalFallback) before the operation completes. Connections the transport makes by
    itself are also checked this way.

    Per-device errors are logged and posted to `errors`, and set on the operation's future.

    :param executor:    runs the operations. A thread pool with `workers` threads is created when
        not given, and shut down by close().
    """

    def __init__(self, registry: DeviceRegistry, transport: Transport, fallback: ServiceRetrievalFallback=None,
                 executor=None, workers=8, connect_timeout=10.0, disconnect_timeout=5.0,
                 bulk_policy=BULK_CONNECT_POLICY, single_policy=SINGLE_CONNECT_POLICY):
        self.registry = registry
        self.transport = transport
        self.fallback = fallback or ServiceRetrievalFallback(registry, transport)
        self.connect_timeout = connect_timeout
        self.disconnect_timeout = disconnect_timeout
        self.bulk_policy = bulk_policy
        self.single_policy = single_policy
        self.errors = EventSource()
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(max_workers=workers, thread_name_prefix='blelink')
        self._in_flight = set()
        self._lock = threading.Lock()
        self._closed = False
        registry.transitions.add(self._state_changed)

    def close(self):
        self._closed = True
        self.registry.transitions.remove(self._state_changed)
        if self._owns_executor:
            self._executor.shutdown(wait=True)

    def in_flight(self, device_id):
        with self._lock:
            return device_id in self._in_flight

    def connect(self, device_id) -> Future:
        """
        Connects one device with a single plain connect attempt.
        :return: a future resolving to True when connected, False when the device was not disconnected
            to begin with, or failing with ConnectFailed.
        """
        return self._submit(device_id, self._connect, device_id, self.single_policy)

    def disconnect(self, device_id) -> Future:
        """
        :return: a future resolving to True when disconnected, False when the device was not connected
            to begin with, or failing with DisconnectFailed.
        """
        return self._submit(device_id, self._disconnect, device_id)

    def toggle(self, device_id) -> Future:
        """ disconnects a connected device, connects a disconnected one """
        device = self.registry.get(device_id)
        if device is None:
            return failed(UnknownDeviceReference(device_id))
        if device.state is CONNECTED:
            return self.disconnect(device_id)
        if device.state is DISCONNECTED:
            return self.connect(device_id)
        return failed(OperationInProgress(device_id))

    def connect_all(self) -> Future:
        """
        Connects every device that is disconnected now. Each device is handled independently,
        trying each mode of the bulk policy in turn.
        :return: a future resolving to a BulkResult once every device has been handled.
        """
        targets = [d.id for d in self.registry.snapshot() if d.state is DISCONNECTED]
        logger.info("connecting %d device(s)", len(targets))
        return self._fan_out(targets, lambda device_id: self._submit(
            device_id, self._connect, device_id, self.bulk_policy))

    def disconnect_all(self) -> Future:
        """
        Disconnects every device that is connected now. Failures are reported but not retried.
        :return: a future resolving to a BulkResult once every device has been handled.
        """
        targets = [d.id for d in self.registry.snapshot() if d.state is CONNECTED]
        logger.info("disconnecting %d device(s)", len(targets))
        return self._fan_out(targets, self.disconnect)

    def _submit(self, device_id, fn, *args) -> Future:
        """ runs fn on a worker, holding the device for the duration """
        with self._lock:
            if device_id in self._in_flight:
                logger.debug("%s is busy, ignoring request", device_id)
                return failed(OperationInProgress(device_id))
            self._in_flight.add(device_id)
        try:
            return self._executor.submit(self._exclusive, device_id, fn, *args)
        except RuntimeError:
            self._release(device_id)
            raise

    def _exclusive(self, device_id, fn, *args):
        try:
            return fn(*args)
        finally:
            self._release(device_id)

    def _release(self, device_id):
        with self._lock:
            self._in_flight.discard(device_id)

    def _fan_out(self, device_ids, start) -> Future:
        """ starts an operation for each device and gathers the outcomes into a BulkResult """
        result = BulkResult()
        bulk = Future()
        remaining = [len(device_ids)]
        lock = threading.Lock()

        def finished(device_id, future):
            error = future.exception()
            with lock:
                if isinstance(error, OperationInProgress):
                    result.skipped.append(device_id)
                elif error is not None:
                    result.failed[device_id] = error
                elif future.result():
                    result.succeeded.append(device_id)
                else:
                    result.skipped.append(device_id)
                remaining[0] -= 1
                done = not remaining[0]
            if done:
                bulk.set_result(result)

        if not device_ids:
            bulk.set_result(result)
        for device_id in device_ids:
            start(device_id).add_done_callback(lambda f, device_id=device_id: finished(device_id, f))
        return bulk

    def _connect(self, device_id, policy):
        if not self._establish(device_id, policy):
            return False
        self.fallback.run(device_id, self._reconnect)
        if self.registry.get(device_id).state is not CONNECTED:
            raise ConnectFailed(device_id, "link did not survive service retrieval")
        return True

    def _reconnect(self, device_id):
        return self._establish(device_id, self.single_policy)

    def _establish(self, device_id, policy: RetryPolicy):
        """
        Connects the device, trying each mode in the policy until one succeeds.
        :return: True when connected, False if the device was not disconnected.
        """
        device = self.registry.get(device_id)
        if device is None:
            raise UnknownDeviceReference(device_id)
        if device.state is not DISCONNECTED:
            logger.debug("%s is %s, not connecting", device_id, device.state)
            return False

        def attempt(mode):
            return self._attempt_connect(device_id, mode)

        def retrying(mode, error):
            logger.warning("%s, retrying", error)

        try:
            policy.run(attempt, retry_on=(ConnectFailed,), on_retry=retrying)
        except ConnectFailed as e:
            logger.error("%s", e)
            self.errors.fire(e)
            raise
        logger.info("connected %s", device_id)
        return True

    def _attempt_connect(self, device_id, mode):
        registry = self.registry
        if not registry.transition(device_id, (DISCONNECTED,), CONNECTING):
            current = registry.get(device_id)
            if current.state is CONNECTED:
                return
            raise ConnectFailed(device_id, "device is %s" % current.state, mode)
        logger.debug("connecting %s (%s)", device_id, mode.value)
        try:
            wait_for(self.transport.connect(device_id, mode), self.connect_timeout)
        except Exception as e:
            registry.transition(device_id, (CONNECTING,), DISCONNECTED)
            raise ConnectFailed(device_id, str(e) or type(e).__name__, mode) from e
        registry.transition(device_id, (CONNECTING,), CONNECTED)
        if registry.get(device_id).state is not CONNECTED:
            raise ConnectFailed(device_id, "link dropped while connecting", mode)

    def _disconnect(self, device_id):
        registry = self.registry
        if not registry.transition(device_id, (CONNECTED,), DISCONNECTING):
            logger.debug("%s is not connected, not disconnecting", device_id)
            return False
        try:
            wait_for(self.transport.disconnect(device_id), self.disconnect_timeout)
        except Exception as e:
            error = DisconnectFailed(device_id, str(e) or type(e).__name__)
            # the link is still up as far as we know
            registry.transition(device_id, (DISCONNECTING,), CONNECTED)
            logger.error("%s", error)
            self.errors.fire(error)
            raise error from e
        registry.transition(device_id, (DISCONNECTING,), DISCONNECTED)
        logger.info("disconnected %s", device_id)
        return True

    def _state_changed(self, device_id, old, new):
        """ checks the services of connections the transport made on its own """
        if new is not CONNECTED or old is not DISCONNECTED or self._closed:
            return
        future = self._submit(device_id, self.fallback.run, device_id, self._reconnect)
        if future.done() and isinstance(future.exception(), OperationInProgress):
            return
        logger.info("%s connected by the transport, checking services", device_id)
