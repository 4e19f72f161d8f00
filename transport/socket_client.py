"""
Socket client: the control domain's handle on the transport worker
"""

import asyncio
import threading
from typing import Any, Callable, Dict, List, Optional

from config import SOCKET_CONFIG
from core.logging_config import get_logger
from events import event_bus, EventTypes
from .envelope import Envelope, EventType
from .socket_worker import TransportWorker

logger = get_logger(__name__)


class SocketClient:
    """
    Sends commands to the transport worker and tracks the connection state.

    ``connected`` only changes when the worker reports OPEN or CLOSE. When a
    loop is bound, events are handed to it with call_soon_threadsafe, which
    keeps them in the order the worker emitted them.
    """

    def __init__(self,
                 auth_store,
                 root: Optional[str] = None,
                 loop: Optional[asyncio.AbstractEventLoop] = None,
                 worker_factory: Callable[[Callable[[Envelope], None]], TransportWorker] = None):
        """
        Args:
            auth_store: Store the connect token is read from
            root: Overrides the same-origin socket endpoint
            loop: Control-domain event loop that events are delivered on
            worker_factory: Builds the worker given the event callback
        """
        self.auth_store = auth_store
        self.root = root if root is not None else SOCKET_CONFIG["root"]
        self._loop = loop
        factory = worker_factory or (lambda emit: TransportWorker(emit=emit))
        self.worker = factory(self._receive)

        # Connection state
        self.connected = False
        self._state_lock = threading.Lock()

        self.message_handlers: List[Callable[[Any], None]] = []
        self.connection_listeners: List[Callable[[bool], None]] = []

        # Stats
        self.commands_sent = 0
        self.messages_received = 0

    def bind_loop(self, loop: asyncio.AbstractEventLoop):
        """Deliver worker events on the given loop"""
        self._loop = loop

    def start(self):
        self.worker.start()

    def shutdown(self):
        """Tear down the worker; the connection state goes with it"""
        logger.info("Shutting down socket client...")
        self.worker.shutdown()
        with self._state_lock:
            self.connected = False

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    def connect(self):
        """Ask the worker to (re)connect using the current login token"""
        token = self.auth_store.state.token
        self._command(Envelope.connect(token=token, root=self.root))

    def disconnect(self):
        self._command(Envelope.disconnect())

    def send(self, payload: Any):
        """Send a payload; it is dropped if the socket is not open"""
        self._command(Envelope.message(payload))

    def _command(self, envelope: Envelope):
        self.commands_sent += 1
        event_bus.emit(EventTypes.SOCKET_COMMAND, {"command": envelope.event_type.value},
                       source="socket_client")
        self.worker.post(envelope)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------
    def on_message(self, handler: Callable[[Any], None]):
        """Register a handler for inbound payloads"""
        self.message_handlers.append(handler)

    def on_connection_change(self, listener: Callable[[bool], None]):
        self.connection_listeners.append(listener)

    def _receive(self, envelope: Envelope):
        """Called on the worker thread"""
        loop = self._loop
        if loop is not None and not loop.is_closed():
            loop.call_soon_threadsafe(self.handle_event, envelope)
        else:
            self.handle_event(envelope)

    def handle_event(self, envelope: Envelope):
        """Apply a worker event in the control domain"""
        if envelope.event_type == EventType.OPEN:
            self._set_connected(True)
        elif envelope.event_type == EventType.CLOSE:
            self._set_connected(False)
        elif envelope.event_type == EventType.MESSAGE:
            self.messages_received += 1
            event_bus.emit(EventTypes.SOCKET_MESSAGE, {"payload": envelope.payload},
                           source="socket_client")
            for handler in list(self.message_handlers):
                try:
                    handler(envelope.payload)
                except Exception:
                    logger.exception("Error in socket message handler")
        else:
            logger.warning(f"Ignoring unexpected event from worker: {envelope.event_type.value}")

    def _set_connected(self, connected: bool):
        with self._state_lock:
            changed = self.connected != connected
            self.connected = connected

        logger.info("Socket connected" if connected else "Socket disconnected")
        event_bus.emit(EventTypes.SOCKET_OPEN if connected else EventTypes.SOCKET_CLOSE, {},
                       source="socket_client")

        if changed:
            for listener in list(self.connection_listeners):
                try:
                    listener(connected)
                except Exception:
                    logger.exception("Error in connection listener")

    def get_stats(self) -> Dict[str, Any]:
        return {
            "connected": self.connected,
            "commands_sent": self.commands_sent,
            "messages_received": self.messages_received,
            "worker": self.worker.get_stats()
        }
