"""
Event bus for observing auth, socket and request activity.

Events are published fire-and-forget and delivered on the bus's own thread in
emission order. Listeners subscribe to an exact event type ("socket.open"),
a namespace ("socket.*") or everything ("*"). Listeners observe; they never
feed back into the auth state.
"""

import threading
import time
import uuid
from collections import Counter, defaultdict, deque
from datetime import datetime
from queue import Empty, Queue
from typing import Any, Callable, Deque, Dict, List, Optional

from core.logging_config import get_logger

logger = get_logger(__name__)

Listener = Callable[["SystemEvent"], None]


class SystemEvent:
    """A published event"""

    def __init__(self, event_type: str, data: Dict[str, Any], source: str = None):
        self.id = str(uuid.uuid4())
        self.type = event_type
        self.data = data
        self.source = source or "system"
        self.timestamp = time.time()

    @property
    def namespace(self) -> str:
        return self.type.split(".", 1)[0]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "data": self.data,
            "source": self.source,
            "timestamp": self.timestamp,
            "datetime": datetime.fromtimestamp(self.timestamp).isoformat()
        }


class EventBus:
    """Process-wide publish/subscribe hub with a single delivery thread"""

    def __init__(self, max_history: int = 1000):
        self.listeners: Dict[str, List[Listener]] = defaultdict(list)
        self.event_queue: "Queue[SystemEvent]" = Queue()
        self.event_history: Deque[SystemEvent] = deque(maxlen=max_history)
        self.event_counts: Counter = Counter()
        self._lock = threading.Lock()
        self._running = True
        self._processor_thread = threading.Thread(target=self._process_events, daemon=True,
                                                  name="EventBus")
        self._processor_thread.start()

    def emit(self, event_type: str, data: Dict[str, Any], source: str = None):
        """Queue an event for delivery"""
        self.event_queue.put(SystemEvent(event_type, data, source))

    def on(self, pattern: str, callback: Listener):
        """
        Subscribe to events.

        Args:
            pattern: An event type, a namespace such as "auth.*", or "*"
            callback: Called with each matching SystemEvent
        """
        with self._lock:
            self.listeners[pattern].append(callback)

    def on_all(self, callback: Listener):
        self.on("*", callback)

    def off(self, pattern: str, callback: Listener):
        with self._lock:
            if callback in self.listeners.get(pattern, []):
                self.listeners[pattern].remove(callback)

    def _listeners_for(self, event: SystemEvent) -> List[Listener]:
        with self._lock:
            return (list(self.listeners.get(event.type, ()))
                    + list(self.listeners.get(f"{event.namespace}.*", ()))
                    + list(self.listeners.get("*", ())))

    def _process_events(self):
        while self._running:
            try:
                event = self.event_queue.get(timeout=0.1)
            except Empty:
                continue

            try:
                self.event_counts[event.type] += 1
                self.event_history.append(event)

                for listener in self._listeners_for(event):
                    try:
                        listener(event)
                    except Exception:
                        logger.exception(f"Error in event listener for {event.type}")
            finally:
                self.event_queue.task_done()

    def wait_until_idle(self, timeout: float = 2.0) -> bool:
        """Block until every queued event has been delivered"""
        deadline = time.monotonic() + timeout
        while self.event_queue.unfinished_tasks:
            if time.monotonic() > deadline:
                return False
            time.sleep(0.01)
        return True

    def get_stats(self) -> Dict[str, Any]:
        namespaces: Counter = Counter()
        for event_type, count in self.event_counts.items():
            namespaces[event_type.split(".", 1)[0]] += count
        return {
            "total_events": sum(self.event_counts.values()),
            "event_counts": dict(self.event_counts),
            "namespace_counts": dict(namespaces),
            "queue_size": self.event_queue.qsize(),
            "history_size": len(self.event_history),
        }

    def get_recent_events(self, count: int = 50, event_type: Optional[str] = None) -> List[Dict[str, Any]]:
        """Most recent events, oldest first, optionally filtered by exact type"""
        events = [e for e in list(self.event_history) if not event_type or e.type == event_type]
        return [e.to_dict() for e in events[-count:]]

    def shutdown(self):
        self._running = False
        if self._processor_thread.is_alive():
            self._processor_thread.join(timeout=2.0)


# Global event bus instance
event_bus = EventBus()


class EventTypes:
    # Auth state
    AUTH_TRANSITION = "auth.transition"
    AUTH_WHITELIST_ERROR = "auth.whitelist_error"
    AUTH_WHITELIST_EXPIRED = "auth.whitelist_expired"
    AUTH_LOGIN_INVALIDATED = "auth.login_invalidated"

    # Socket
    SOCKET_COMMAND = "socket.command"
    SOCKET_OPEN = "socket.open"
    SOCKET_CLOSE = "socket.close"
    SOCKET_MESSAGE = "socket.message"

    # Gated requests
    REQUEST_SUPPRESSED = "request.suppressed"
    REQUEST_COMPLETE = "request.complete"
    REQUEST_ERROR = "request.error"

    # Background errors
    ERROR_BACKGROUND_ADDED = "error.background_added"
    ERROR_BACKGROUND_CLEARED = "error.background_cleared"

    SYSTEM_START = "system.start"
    SYSTEM_STOP = "system.stop"
