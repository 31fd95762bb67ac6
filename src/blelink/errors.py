"""
Errors reported by the device manager.

Errors that concern a single device carry its id in `device_id`. Apart from AuthorizationDenied and
ScanStartFailed, none of these halt the manager: they are logged, posted to the diagnostics event
source, and the device is left in a settled state.
"""


class BleLinkError(Exception):
    """ base class for all errors raised or reported by the device manager """

    def __init__(self, message, device_id=None):
        super().__init__(message)
        self.device_id = device_id


class AuthorizationDenied(BleLinkError):
    """ The platform refused access to the radio. Scanning cannot proceed. """

    def __init__(self, message="bluetooth access was not authorized"):
        super().__init__(message)


class ScanStartFailed(BleLinkError):
    """ The transport refused or failed to run a discovery window. """

    def __init__(self, cause):
        super().__init__("scan failed: %s" % cause)
        self.cause = cause


class ConnectFailed(BleLinkError):
    """ Every attempt to connect to a device failed. """

    def __init__(self, device_id, reason, mode=None):
        super().__init__("unable to connect to %s: %s" % (device_id, reason), device_id)
        self.reason = reason
        self.mode = mode


class DisconnectFailed(BleLinkError):
    """ The transport did not confirm a disconnect. """

    def __init__(self, device_id, reason):
        super().__init__("unable to disconnect from %s: %s" % (device_id, reason), device_id)
        self.reason = reason


class ServiceRetrievalFailed(BleLinkError):
    """ Services could not be enumerated, even after reconnecting. """

    def __init__(self, device_id, recoveries):
        super().__init__("services for %s unavailable after %d reconnect(s)" % (device_id, recoveries), device_id)
        self.recoveries = recoveries


class UnknownDeviceReference(BleLinkError):
    """ A notification or state write named a device that has not been discovered. """

    def __init__(self, device_id):
        super().__init__("unknown device %s" % device_id, device_id)


class OperationInProgress(BleLinkError):
    """ Another operation already owns the device. """

    def __init__(self, device_id):
        super().__init__("an operation on %s is already in progress" % device_id, device_id)
