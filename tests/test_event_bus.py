"""Tests for the event bus."""

import threading

import pytest

from events.event_bus import EventBus, EventTypes


@pytest.fixture
def bus():
    bus = EventBus()
    yield bus
    bus.shutdown()


def test_listeners_receive_events_in_order(bus):
    seen = []
    bus.on(EventTypes.SOCKET_OPEN, lambda event: seen.append(event.data["n"]))

    for n in range(5):
        bus.emit(EventTypes.SOCKET_OPEN, {"n": n})

    assert bus.wait_until_idle()
    assert seen == [0, 1, 2, 3, 4]


def test_events_delivered_off_the_emitting_thread(bus):
    threads = []
    bus.on_all(lambda event: threads.append(threading.current_thread().name))

    bus.emit(EventTypes.SYSTEM_START, {})

    assert bus.wait_until_idle()
    assert threads == ["EventBus"]


def test_failing_listener_does_not_stop_delivery(bus):
    seen = []
    bus.on(EventTypes.REQUEST_ERROR, lambda event: 1 / 0)
    bus.on(EventTypes.REQUEST_ERROR, lambda event: seen.append(event.source))

    bus.emit(EventTypes.REQUEST_ERROR, {"message": "boom"}, source="gateway")

    assert bus.wait_until_idle()
    assert seen == ["gateway"]


def test_off_and_stats(bus):
    seen = []
    listener = seen.append
    bus.on(EventTypes.SOCKET_CLOSE, listener)
    bus.off(EventTypes.SOCKET_CLOSE, listener)

    bus.emit(EventTypes.SOCKET_CLOSE, {})
    bus.emit(EventTypes.SOCKET_CLOSE, {})

    assert bus.wait_until_idle()
    assert seen == []
    assert bus.get_stats()["event_counts"][EventTypes.SOCKET_CLOSE] == 2
    recent = bus.get_recent_events(event_type=EventTypes.SOCKET_CLOSE)
    assert len(recent) == 2
    assert recent[0]["source"] == "system"


def test_namespace_subscription(bus):
    seen = []
    bus.on("socket.*", lambda event: seen.append(event.type))

    bus.emit(EventTypes.SOCKET_OPEN, {})
    bus.emit(EventTypes.AUTH_TRANSITION, {})
    bus.emit(EventTypes.SOCKET_CLOSE, {})

    assert bus.wait_until_idle()
    assert seen == [EventTypes.SOCKET_OPEN, EventTypes.SOCKET_CLOSE]
    assert bus.get_stats()["namespace_counts"] == {"socket": 2, "auth": 1}


def test_history_is_bounded():
    bus = EventBus(max_history=3)
    try:
        for n in range(5):
            bus.emit(EventTypes.REQUEST_COMPLETE, {"n": n})
        assert bus.wait_until_idle()

        assert [e["data"]["n"] for e in bus.get_recent_events()] == [2, 3, 4]
    finally:
        bus.shutdown()
