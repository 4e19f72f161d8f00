"""Shared fixtures and fakes for the client test suite."""

import json
import time

import pytest
import websocket

from auth.controller import AuthController
from auth.service import ApiResponse
from core.auth_state import AuthStore
from core.error_reporter import ErrorReporter
from transport.envelope import EventType
from transport.socket_client import SocketClient
from transport.socket_worker import TransportWorker


def wait_for(predicate, timeout=2.0, interval=0.01):
    """Poll until predicate() is truthy or the timeout passes."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return bool(predicate())


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


class FakeSocketApp:
    """Stands in for websocket.WebSocketApp; the test drives its callbacks."""

    def __init__(self, url, subprotocols, on_open, on_message, on_error):
        self.url = url
        self.subprotocols = subprotocols
        self.on_open = on_open
        self.on_message = on_message
        self.on_error = on_error
        self.sent = []
        self.closed = False

    def open(self):
        self.on_open(self)

    def receive(self, raw):
        self.on_message(self, raw)

    def send(self, data):
        if self.closed:
            raise websocket.WebSocketConnectionClosedException("socket is already closed.")
        self.sent.append(json.loads(data))

    def close(self, **kwargs):
        self.closed = True

    def run_forever(self, **kwargs):
        # Returning means the connection has ended
        return False


class WorkerHarness:
    """A TransportWorker driven synchronously with fake sockets and a fake clock."""

    def __init__(self, base_url="https://orko.test"):
        self.apps = []
        self.runners = []
        self.events = []
        self.clock = FakeClock()
        self.worker = TransportWorker(
            emit=self.events.append,
            base_url=base_url,
            socket_factory=self._factory,
            spawn=self._spawn,
            clock=self.clock,
            keepalive_interval=3.0,
            reconnect_config={"min_delay": 1.0, "max_delay": 10.0, "growth": 2.0},
        )

    def _factory(self, url, subprotocols, on_open, on_message, on_error):
        app = FakeSocketApp(url, subprotocols, on_open, on_message, on_error)
        self.apps.append(app)
        return app

    def _spawn(self, target, name):
        self.runners.append(target)

    def command(self, envelope):
        self.worker.post(envelope)
        self.worker.process_pending()

    def open(self, index=-1):
        self.apps[index].open()
        self.worker.process_pending()

    def receive(self, raw, index=-1):
        self.apps[index].receive(raw)
        self.worker.process_pending()

    def end_socket(self, index=-1):
        """Let a socket's run loop return, as when the connection drops."""
        self.runners[index]()
        self.worker.process_pending()

    def advance(self, seconds):
        self.clock.now += seconds
        self.worker.tick()

    @property
    def event_types(self):
        return [e.event_type for e in self.events]

    def count(self, event_type):
        return sum(1 for e in self.events if e.event_type == event_type)


class RecordingWorker:
    """Worker stand-in that records the envelopes the socket client posts."""

    def __init__(self, emit):
        self.emit = emit
        self.posted = []
        self.started = False

    def post(self, envelope):
        self.posted.append(envelope)
        return True

    def start(self):
        self.started = True

    def shutdown(self):
        self.started = False

    def get_stats(self):
        return {}

    def commands(self, event_type=None):
        return [e for e in self.posted if event_type is None or e.event_type == event_type]


class FakeAuthService:
    """In-memory auth service with scriptable results."""

    def __init__(self):
        self.whitelisted = True
        self.fail_with = None
        self.config_response = ApiResponse(status=200, body=b'{"issuer": "https://id.example.com"}')
        self.calls = []

    async def check_whitelist(self):
        self.calls.append("check_whitelist")
        if self.fail_with:
            raise self.fail_with
        return self.whitelisted

    async def whitelist(self, token):
        self.calls.append(("whitelist", token))
        if self.fail_with:
            raise self.fail_with

    async def clear_whitelist(self):
        self.calls.append("clear_whitelist")
        if self.fail_with:
            raise self.fail_with

    async def config(self, auth_state=None):
        self.calls.append("config")
        return self.config_response


@pytest.fixture
def harness():
    return WorkerHarness()


@pytest.fixture
def store():
    return AuthStore()


@pytest.fixture
def socket_client(store):
    return SocketClient(store, root=None, worker_factory=RecordingWorker)


@pytest.fixture
def service():
    return FakeAuthService()


@pytest.fixture
def error_reporter():
    return ErrorReporter()


@pytest.fixture
def controller(store, service, socket_client, error_reporter):
    return AuthController(store=store, service=service, socket=socket_client,
                          error_reporter=error_reporter, request_timeout=1.0)


def commands(socket_client, event_type=None):
    return socket_client.worker.commands(event_type)


DISCONNECT = EventType.DISCONNECT
CONNECT = EventType.CONNECT
