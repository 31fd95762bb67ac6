"""
Notifications posted by a transport as the radio reports changes.

Each notification is stamped with the monotonic time it was created. The stamp lets the reconciler
discard a notification that was overtaken by a later write to the same device.
"""
import time

from blelink.support.mixins import CommonEqualityMixin, StringerMixin


class DeviceNotification(CommonEqualityMixin, StringerMixin):
    """ Something the transport observed about a device. """

    def __init__(self, id, timestamp=None):
        """
        :param id:  the device identifier
        :param timestamp:   monotonic time the transport observed the change. Defaults to now.
        """
        self.id = id
        self.timestamp = time.monotonic() if timestamp is None else timestamp


class DeviceDiscovered(DeviceNotification):
    """ A device advertised itself during a discovery window. """

    def __init__(self, id, name, timestamp=None):
        super().__init__(id, timestamp)
        self.name = name


class DeviceConnected(DeviceNotification):
    """ The transport established a link to the device. """


class DeviceDisconnected(DeviceNotification):
    """ The link to the device closed. """
