"""Tests for envelopes and frame decoding."""

import pytest

from core.exceptions import MalformedFrame, UnknownEnvelopeError
from transport.envelope import Envelope, EventType, decode_frame, encode_frame


def test_connect_envelope_shape():
    envelope = Envelope.connect(token="tok-1", root="ws://host:9000")

    assert envelope.to_dict() == {
        "eventType": "CONNECT",
        "payload": {"token": "tok-1", "root": "ws://host:9000"},
    }


def test_payloadless_envelope_omits_payload():
    assert Envelope.disconnect().to_dict() == {"eventType": "DISCONNECT"}
    assert Envelope.opened().to_dict() == {"eventType": "OPEN"}


def test_command_and_event_sets():
    assert Envelope.connect().is_command
    assert not Envelope.connect().is_event
    assert Envelope.closed().is_event
    assert not Envelope.closed().is_command
    # MESSAGE travels both ways
    assert Envelope.message({}).is_command and Envelope.message({}).is_event


def test_from_dict_accepts_known_tags():
    envelope = Envelope.from_dict({"eventType": "MESSAGE", "payload": {"price": 100}})

    assert envelope == Envelope(EventType.MESSAGE, {"price": 100})


@pytest.mark.parametrize("data", [
    {"eventType": "SUBSCRIBE"},
    {"payload": {}},
    {"eventType": "connect"},
    ["CONNECT"],
])
def test_from_dict_rejects_unknown_tags(data):
    with pytest.raises(UnknownEnvelopeError):
        Envelope.from_dict(data)


def test_decode_frame_text_and_bytes():
    assert decode_frame('{"price":100}') == {"price": 100}
    assert decode_frame(b'[1, 2]') == [1, 2]


@pytest.mark.parametrize("raw", ["not json {", b"\xff\xfe", 42, ""])
def test_decode_frame_rejects_malformed(raw):
    with pytest.raises(MalformedFrame):
        decode_frame(raw)


def test_encode_frame_is_json_text():
    assert encode_frame({"command": "READY"}) == '{"command": "READY"}'
