"""
Duplex transport: envelope protocol, socket worker and its control-side client
"""

from .envelope import Envelope, EventType
from .socket_worker import TransportWorker
from .socket_client import SocketClient

__all__ = ["Envelope", "EventType", "TransportWorker", "SocketClient"]
