"""
Transport worker: owns the duplex socket on its own thread

The worker is an actor. Commands from the control domain and callbacks from
the socket threads all land in one FIFO mailbox and are handled on the
worker thread, so the connection, keepalive and reconnect state are only ever
touched there.
"""

import queue
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

import websocket

from config import SOCKET_CONFIG, socket_url
from core.exceptions import MalformedFrame, UnknownEnvelopeError
from core.logging_config import get_logger
from .envelope import Envelope, EventType, decode_frame, encode_frame

logger = get_logger(__name__)


class _Signal(Enum):
    """Mailbox items that come from the socket threads rather than the control domain"""
    SOCKET_OPENED = "socket_opened"
    SOCKET_FRAME = "socket_frame"
    SOCKET_ERROR = "socket_error"
    SOCKET_CLOSED = "socket_closed"
    STOP = "stop"


@dataclass
class _Internal:
    signal: _Signal
    connection: Optional["_Connection"] = None
    data: Any = None


class _Connection:
    """One physical socket attempt"""

    def __init__(self, url: str, subprotocols: Optional[List[str]], attempt: int):
        self.url = url
        self.subprotocols = subprotocols
        self.attempt = attempt
        self.app = None
        self.opened = False
        self.keep_closed = False
        self.close_reported = False

    def __repr__(self):
        return f"<_Connection {self.url} attempt={self.attempt} opened={self.opened}>"


def create_socket_app(url: str,
                      subprotocols: Optional[List[str]],
                      on_open: Callable,
                      on_message: Callable,
                      on_error: Callable) -> websocket.WebSocketApp:
    """Build the websocket-client app for one connection attempt"""
    return websocket.WebSocketApp(
        url,
        subprotocols=subprotocols,
        on_open=on_open,
        on_message=on_message,
        on_error=on_error
    )


def _spawn_thread(target: Callable[[], None], name: str) -> None:
    threading.Thread(target=target, daemon=True, name=name).start()


class TransportWorker:
    """Actor that owns the socket, its keepalive and its reconnection"""

    def __init__(self,
                 emit: Callable[[Envelope], None],
                 base_url: Optional[str] = None,
                 socket_factory: Callable[..., Any] = create_socket_app,
                 spawn: Callable[[Callable[[], None], str], None] = _spawn_thread,
                 clock: Callable[[], float] = time.monotonic,
                 keepalive_interval: Optional[float] = None,
                 reconnect_config: Optional[Dict[str, float]] = None):
        """
        Args:
            emit: Receives OPEN/CLOSE/MESSAGE envelopes, called on the worker thread
            base_url: HTTP origin used to derive the same-origin socket endpoint
            socket_factory: Builds the socket app for a connection attempt
            spawn: Starts a socket's run loop off the worker thread
            clock: Monotonic clock used for keepalive and reconnect deadlines
            keepalive_interval: Seconds between READY frames
            reconnect_config: min_delay, max_delay and growth for the backoff
        """
        self._emit = emit
        self._base_url = base_url
        self._socket_factory = socket_factory
        self._spawn = spawn
        self._clock = clock
        self.keepalive_interval = keepalive_interval or SOCKET_CONFIG["keepalive_interval"]
        self.reconnect_config = reconnect_config or dict(SOCKET_CONFIG["reconnect"])

        self._inbox: "queue.Queue[Union[Envelope, _Internal]]" = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._running = False

        # Worker-thread state
        self._current: Optional[_Connection] = None
        self._target: Optional[Dict[str, Any]] = None
        self._keepalive_due: Optional[float] = None
        self._reconnect_due: Optional[float] = None
        self._reconnect_attempts = 0

        # Stats
        self.frames_sent = 0
        self.frames_received = 0
        self.frames_dropped = 0
        self.malformed_frames = 0
        self.reconnects = 0

    # ------------------------------------------------------------------
    # Control-domain API
    # ------------------------------------------------------------------
    def post(self, envelope: Union[Envelope, Dict[str, Any]]) -> bool:
        """
        Submit a command to the mailbox

        Returns:
            False if the envelope could not be parsed, True otherwise
        """
        if isinstance(envelope, dict):
            try:
                envelope = Envelope.from_dict(envelope)
            except UnknownEnvelopeError as e:
                logger.warning(f"Rejected command: {e}")
                return False
        self._inbox.put(envelope)
        return True

    def start(self):
        """Start the worker thread"""
        if self._thread and self._thread.is_alive():
            return
        self._running = True
        self._thread = threading.Thread(target=self._run, daemon=True, name="TransportWorker")
        self._thread.start()
        logger.debug("Transport worker started")

    def shutdown(self, timeout: float = 2.0):
        """Disconnect and stop the worker thread"""
        self._inbox.put(Envelope.disconnect())
        self._inbox.put(_Internal(_Signal.STOP))
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning("Transport worker did not stop in time")
        self._thread = None

    @property
    def is_running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    # ------------------------------------------------------------------
    # Actor loop
    # ------------------------------------------------------------------
    def _run(self):
        while self._running:
            try:
                item = self._inbox.get(timeout=self._next_timeout())
            except queue.Empty:
                item = None
            if item is not None:
                self._handle(item)
            self.tick()
        logger.debug("Transport worker stopped")

    def process_pending(self) -> int:
        """Handle every queued item on the calling thread, then fire due timers"""
        handled = 0
        while True:
            try:
                item = self._inbox.get_nowait()
            except queue.Empty:
                break
            self._handle(item)
            handled += 1
        self.tick()
        return handled

    def tick(self, now: Optional[float] = None):
        """Fire the keepalive and reconnect deadlines that have passed"""
        now = self._clock() if now is None else now

        if self._keepalive_due is not None and now >= self._keepalive_due:
            self._keepalive_due = now + self.keepalive_interval
            conn = self._current
            if conn and conn.opened and not conn.keep_closed:
                self._send(SOCKET_CONFIG["keepalive_message"])

        if self._reconnect_due is not None and now >= self._reconnect_due:
            self._reconnect_due = None
            self._reconnect()

    def _next_timeout(self) -> Optional[float]:
        deadlines = [d for d in (self._keepalive_due, self._reconnect_due) if d is not None]
        if not deadlines:
            return None
        return max(0.0, min(deadlines) - self._clock())

    def _handle(self, item: Union[Envelope, _Internal]):
        try:
            if isinstance(item, _Internal):
                self._handle_signal(item)
            elif item.event_type == EventType.CONNECT:
                self._handle_connect(item.payload or {})
            elif item.event_type == EventType.DISCONNECT:
                self._handle_disconnect()
            elif item.event_type == EventType.MESSAGE:
                self._send(item.payload)
            else:
                logger.warning(f"Rejected non-command envelope: {item.event_type.value}")
        except Exception:
            logger.exception(f"Error handling {item!r}")

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    def _handle_connect(self, payload: Dict[str, Any]):
        token = payload.get("token")
        root = payload.get("root")
        url = socket_url(root, self._base_url)
        subprotocols = [SOCKET_CONFIG["subprotocol"], token] if token else None

        logger.info("Received connect request", extra={"extra_data": {
            "url": url, "authenticated": bool(token)}})

        if self._current:
            self._retire(self._current)
            self._current = None

        self._target = {"url": url, "subprotocols": subprotocols}
        self._reconnect_due = None
        self._reconnect_attempts = 0
        # One keepalive schedule; a repeated CONNECT moves it rather than adding another
        self._keepalive_due = self._clock() + self.keepalive_interval
        self._open(attempt=0)

    def _handle_disconnect(self):
        self._keepalive_due = None
        self._reconnect_due = None
        self._reconnect_attempts = 0
        self._target = None

        if not self._current:
            logger.debug("Disconnect requested with no active connection")
            return

        logger.info("Received disconnect request")
        self._retire(self._current)
        self._current = None

    def _send(self, payload: Any):
        conn = self._current
        if not conn or not conn.opened or conn.keep_closed:
            # No outbound queue: frames sent while closed are dropped
            self.frames_dropped += 1
            logger.debug("Dropped outbound message, socket not open")
            return

        try:
            conn.app.send(encode_frame(payload))
            self.frames_sent += 1
        except (websocket.WebSocketException, OSError) as e:
            self.frames_dropped += 1
            logger.warning(f"Failed to send frame: {e}")

    # ------------------------------------------------------------------
    # Socket lifecycle
    # ------------------------------------------------------------------
    def _open(self, attempt: int):
        target = self._target
        conn = _Connection(target["url"], target["subprotocols"], attempt)
        conn.app = self._socket_factory(
            conn.url,
            conn.subprotocols,
            lambda ws: self._inbox.put(_Internal(_Signal.SOCKET_OPENED, conn)),
            lambda ws, message: self._inbox.put(_Internal(_Signal.SOCKET_FRAME, conn, message)),
            lambda ws, error: self._inbox.put(_Internal(_Signal.SOCKET_ERROR, conn, error)),
        )
        self._current = conn
        logger.info("Connecting", extra={"extra_data": {"url": conn.url, "attempt": attempt}})
        self._spawn(lambda: self._run_socket(conn), f"Socket-{attempt}")

    def _run_socket(self, conn: _Connection):
        """Runs on the socket thread; only posts back into the mailbox"""
        try:
            conn.app.run_forever(reconnect=0)
        except Exception as e:
            self._inbox.put(_Internal(_Signal.SOCKET_ERROR, conn, e))
        finally:
            self._inbox.put(_Internal(_Signal.SOCKET_CLOSED, conn))

    def _retire(self, conn: _Connection):
        """Close a connection for good and report the close immediately"""
        conn.keep_closed = True
        self._report_close(conn)
        try:
            conn.app.close(status=websocket.STATUS_NORMAL, reason=b"Shutdown")
        except Exception as e:
            logger.debug(f"Error closing socket: {e}")

    def _report_close(self, conn: _Connection):
        if conn.opened and not conn.close_reported:
            conn.close_reported = True
            self._publish(Envelope.closed())

    def _reconnect(self):
        if not self._target or self._current:
            return
        self.reconnects += 1
        self._open(attempt=self._reconnect_attempts)

    def _schedule_reconnect(self):
        cfg = self.reconnect_config
        delay = min(cfg["min_delay"] * (cfg["growth"] ** self._reconnect_attempts), cfg["max_delay"])
        self._reconnect_attempts += 1
        self._reconnect_due = self._clock() + delay
        logger.info(f"Connection dropped, reconnecting in {delay:.1f}s",
                    extra={"extra_data": {"attempt": self._reconnect_attempts}})

    def _handle_signal(self, item: _Internal):
        conn = item.connection

        if item.signal == _Signal.STOP:
            self._running = False
            return

        if item.signal == _Signal.SOCKET_OPENED:
            if conn is not self._current or conn.keep_closed:
                logger.debug(f"Ignoring late open of {conn!r}")
                return
            conn.opened = True
            self._reconnect_attempts = 0
            logger.info("Socket open", extra={"extra_data": {"url": conn.url}})
            self._publish(Envelope.opened())

        elif item.signal == _Signal.SOCKET_FRAME:
            if conn is not self._current or conn.keep_closed:
                return
            try:
                payload = decode_frame(item.data)
            except MalformedFrame as e:
                self.malformed_frames += 1
                logger.warning(f"Invalid message from server: {e}", extra={"extra_data": e.details})
                return
            self.frames_received += 1
            self._publish(Envelope.message(payload))

        elif item.signal == _Signal.SOCKET_ERROR:
            logger.warning(f"Socket error: {item.data}", extra={"extra_data": {"url": conn.url}})

        elif item.signal == _Signal.SOCKET_CLOSED:
            self._report_close(conn)
            if conn is not self._current:
                return
            self._current = None
            if conn.keep_closed or not self._target:
                return
            self._schedule_reconnect()

    def _publish(self, envelope: Envelope):
        try:
            self._emit(envelope)
        except Exception:
            logger.exception(f"Error delivering {envelope.event_type.value} event")

    def get_stats(self) -> Dict[str, Any]:
        """Get worker statistics"""
        return {
            "open": bool(self._current and self._current.opened),
            "frames_sent": self.frames_sent,
            "frames_received": self.frames_received,
            "frames_dropped": self.frames_dropped,
            "malformed_frames": self.malformed_frames,
            "reconnects": self.reconnects,
            "queue_size": self._inbox.qsize()
        }
