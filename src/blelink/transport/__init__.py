"""
Transports drive the radio. They scan, connect, disconnect and enumerate services on request,
and post notifications about what they observe to a sink.
"""
from blelink.transport.base import ConnectMode, Transport, TransportError
