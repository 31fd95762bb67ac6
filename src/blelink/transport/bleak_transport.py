"""
A transport for real radios, built on bleak.

bleak is asyncio based. The transport runs its own event loop on a daemon thread and hands each
operation to that loop with run_coroutine_threadsafe, so callers get ordinary
concurrent.futures.Future instances and never need an event loop of their own. All bleak objects
are only touched from the loop thread.
"""
import asyncio
import logging
import threading
from concurrent import futures

from bleak import BleakClient, BleakScanner
from bleak.exc import BleakError

from blelink.device import ServiceSummary
from blelink.notifications import DeviceConnected, DeviceDisconnected, DeviceDiscovered
from blelink.transport.base import ConnectMode, Transport, TransportError

logger = logging.getLogger(__name__)


class BleakTransport(Transport):
    """
    Device ids are the addresses bleak reports (a MAC address, or a UUID on macOS).

    ConnectMode.AUTO connects with the BLEDevice remembered from the last scan, avoiding another scan.
    ConnectMode.DIRECT looks the address up again before connecting, which copes with a stale handle.

    :param adapter:         the host adapter to use, e.g. 'hci0'. None for the default.
    :param connect_timeout: seconds bleak is given to find and connect to a device
    """

    def __init__(self, adapter=None, connect_timeout=10.0, scanner_class=BleakScanner, client_class=BleakClient):
        super().__init__()
        self.adapter = adapter
        self.connect_timeout = connect_timeout
        self._scanner_class = scanner_class
        self._client_class = client_class
        self._advertised = {}   # address -> BLEDevice from the latest scan
        self._clients = {}      # address -> connected BleakClient
        self._loop = None
        self._thread = None
        self._lock = threading.Lock()

    def start(self):
        """ starts the event loop thread, if not already running """
        with self._lock:
            if self._loop is not None:
                return
            loop = asyncio.new_event_loop()
            ready = threading.Event()
            thread = threading.Thread(target=self._run_loop, args=(loop, ready), name='blelink-bleak', daemon=True)
            thread.start()
            ready.wait()
            self._loop, self._thread = loop, thread
        logger.debug("bleak event loop started")

    @staticmethod
    def _run_loop(loop, ready):
        asyncio.set_event_loop(loop)
        loop.call_soon(ready.set)
        try:
            loop.run_forever()
        finally:
            loop.close()

    def close(self):
        """ disconnects any connected devices and stops the event loop """
        with self._lock:
            loop, thread = self._loop, self._thread
            self._loop = self._thread = None
        if loop is None:
            return
        try:
            asyncio.run_coroutine_threadsafe(self._disconnect_all(), loop).result(self.connect_timeout)
        except futures.TimeoutError:
            logger.warning("timed out disconnecting devices while closing")
        loop.call_soon_threadsafe(loop.stop)
        thread.join(5.0)
        logger.debug("bleak event loop stopped")

    def _submit(self, coro) -> futures.Future:
        self.start()
        return asyncio.run_coroutine_threadsafe(self._translated(coro), self._loop)

    @staticmethod
    async def _translated(coro):
        """ awaits the coroutine, converting bleak's errors to TransportError """
        try:
            return await coro
        except TransportError:
            raise
        except BleakError as e:
            raise TransportError(str(e)) from e
        except asyncio.TimeoutError as e:
            raise TransportError("timed out") from e
        except OSError as e:
            raise TransportError(str(e)) from e

    def _bleak_kwargs(self):
        return {'adapter': self.adapter} if self.adapter else {}

    def start_discovery(self, names, duration):
        return self._submit(self._discover(frozenset(names), duration))

    def connect(self, device_id, mode: ConnectMode):
        return self._submit(self._connect(device_id, mode))

    def disconnect(self, device_id):
        return self._submit(self._disconnect(device_id))

    def retrieve_services(self, device_id, timeout):
        return self._submit(asyncio.wait_for(self._retrieve_services(device_id), timeout))

    async def _discover(self, names, duration):
        def detected(device, advertisement):
            name = advertisement.local_name or device.name
            if names and name not in names:
                return
            self._advertised[device.address] = device
            self._notify(DeviceDiscovered(device.address, name))

        scanner = self._scanner_class(detection_callback=detected, **self._bleak_kwargs())
        await scanner.start()
        try:
            await asyncio.sleep(duration)
        finally:
            await scanner.stop()

    async def _connect(self, address, mode):
        client = self._clients.get(address)
        if client is not None and client.is_connected:
            self._notify(DeviceConnected(address))
            return
        if mode is ConnectMode.AUTO:
            target = self._advertised.get(address, address)
        else:
            target = await self._scanner_class.find_device_by_address(
                address, timeout=self.connect_timeout, **self._bleak_kwargs())
            if target is None:
                raise TransportError("%s was not found" % address)
            self._advertised[address] = target
        client = self._client_class(target, disconnected_callback=self._disconnected,
                                    timeout=self.connect_timeout, **self._bleak_kwargs())
        await client.connect()
        self._clients[address] = client
        self._notify(DeviceConnected(address))

    def _disconnected(self, client):
        address = client.address
        if self._clients.get(address) is not client:
            # a link closed by _disconnect, already reported
            logger.debug("ignoring disconnect of a replaced link to %s", address)
            return
        del self._clients[address]
        logger.debug("bleak reports %s disconnected", address)
        self._notify(DeviceDisconnected(address))

    async def _disconnect(self, address):
        client = self._clients.pop(address, None)
        if client is not None:
            await client.disconnect()
        self._notify(DeviceDisconnected(address))

    async def _disconnect_all(self):
        for address in list(self._clients):
            try:
                await self._disconnect(address)
            except BleakError as e:
                logger.warning("error disconnecting %s: %s", address, e)

    async def _retrieve_services(self, address):
        client = self._clients.get(address)
        if client is None or not client.is_connected:
            raise TransportError("%s is not connected" % address)
        services = list(client.services)
        if not services:
            raise TransportError("%s reported no services" % address)
        return ServiceSummary(len(services), sum(len(s.characteristics) for s in services))
