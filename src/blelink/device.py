"""
The device record and its connection state machine.
"""
from collections import namedtuple
from enum import Enum


class ConnectionState(Enum):
    DISCONNECTED = 'disconnected'
    CONNECTING = 'connecting'
    CONNECTED = 'connected'
    DISCONNECTING = 'disconnecting'

    def __str__(self):
        return self.value


DISCONNECTED = ConnectionState.DISCONNECTED
CONNECTING = ConnectionState.CONNECTING
CONNECTED = ConnectionState.CONNECTED
DISCONNECTING = ConnectionState.DISCONNECTING

# state -> states it may move to
_transitions = {
    DISCONNECTED: {CONNECTING, CONNECTED},
    CONNECTING: {CONNECTED, DISCONNECTED},
    CONNECTED: {DISCONNECTING, DISCONNECTED},
    DISCONNECTING: {DISCONNECTED, CONNECTED},
}


def is_permitted(current: ConnectionState, target: ConnectionState) -> bool:
    """
    Determines if a device may move from one state to another.
    Staying in the same state is always permitted.
    >>> is_permitted(DISCONNECTED, CONNECTING)
    True
    >>> is_permitted(DISCONNECTED, DISCONNECTING)
    False
    >>> is_permitted(CONNECTED, CONNECTED)
    True
    """
    return current is target or target in _transitions[current]


class ServiceSummary(namedtuple('ServiceSummary', 'services characteristics elapsed')):
    """ The outcome of enumerating a connected device's GATT services. """
    __slots__ = ()

    def __new__(cls, services, characteristics=0, elapsed=None):
        return super().__new__(cls, services, characteristics, elapsed)


class Device(namedtuple('Device', 'id name state last_event services')):
    """
    A point-in-time view of one peripheral.

    :param id:          the transport-assigned identifier, the only key used for identity
    :param name:        the advertised name, or None
    :param state:       a ConnectionState
    :param last_event:  monotonic time of the most recent write applied to the device
    :param services:    the latest ServiceSummary, or None
    """
    __slots__ = ()

    def __new__(cls, id, name=None, state=DISCONNECTED, last_event=0.0, services=None):
        return super().__new__(cls, id, name, state, last_event, services)

    @property
    def connected(self):
        return self.state is CONNECTED

    @property
    def settled(self):
        """ True when the device is not part way through connecting or disconnecting """
        return self.state in (CONNECTED, DISCONNECTED)

    @property
    def display_name(self):
        return self.name or self.id
