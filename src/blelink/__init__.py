"""
Keeps track of nearby Bluetooth LE peripherals and their connections.

- Transport: drives the radio. Scans, connects, disconnects and enumerates services on request, and
  posts notifications (DeviceDiscovered, DeviceConnected, DeviceDisconnected) as things happen.
  BleakTransport drives a real adapter; SimulatedTransport stands in for one.
- DeviceRegistry: the one authoritative map from device id to Device. State only changes along the
  permitted transitions of ConnectionState.
- EventReconciler: the single consumer of transport notifications. Applies them to the registry in
  arrival order and discards those for unknown devices or that are older than the device's last write.
- ScanController: runs one discovery window at a time and admits devices whose advertised name is on
  the allow-list.
- ConnectionOrchestrator: connects and disconnects single devices or all of them. Bulk connects try a
  cheap reconnect first and a plain connect second, independently for each device.
- ServiceRetrievalFallback: enumerates services after connecting. A connection whose services can't
  be read is treated as not established and is made again.
- DeviceManager: wires all of the above to one transport, and is what a user interface talks to.


## Threading

Transport operations return concurrent.futures.Future. The orchestrator runs each device's operation
on a worker thread that waits on those futures with a timeout, so no device can be left connecting or
disconnecting.

Notifications are queued and applied by one background thread (ReconcilerLoop). Registry writes from
operations and from notifications are serialized by the registry's lock, and each write may carry the
time of the observation behind it so that an older observation can't undo a newer write.

Only one operation may act on a device at a time. A request for a device that is busy fails
immediately with OperationInProgress.
"""
