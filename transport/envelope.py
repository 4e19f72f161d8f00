"""
Envelope: the tagged message shape used across the worker boundary
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from core.exceptions import MalformedFrame, UnknownEnvelopeError


class EventType(Enum):
    """Closed set of envelope tags"""
    CONNECT = "CONNECT"
    DISCONNECT = "DISCONNECT"
    MESSAGE = "MESSAGE"
    OPEN = "OPEN"
    CLOSE = "CLOSE"


# Tags the control domain may send to the worker, and those it may receive back
COMMANDS = frozenset({EventType.CONNECT, EventType.DISCONNECT, EventType.MESSAGE})
EVENTS = frozenset({EventType.OPEN, EventType.CLOSE, EventType.MESSAGE})


@dataclass(frozen=True)
class Envelope:
    event_type: EventType
    payload: Optional[Any] = None

    @classmethod
    def connect(cls, token: Optional[str] = None, root: Optional[str] = None) -> "Envelope":
        return cls(EventType.CONNECT, {"token": token, "root": root})

    @classmethod
    def disconnect(cls) -> "Envelope":
        return cls(EventType.DISCONNECT)

    @classmethod
    def message(cls, payload: Any) -> "Envelope":
        return cls(EventType.MESSAGE, payload)

    @classmethod
    def opened(cls) -> "Envelope":
        return cls(EventType.OPEN)

    @classmethod
    def closed(cls) -> "Envelope":
        return cls(EventType.CLOSE)

    @property
    def is_command(self) -> bool:
        return self.event_type in COMMANDS

    @property
    def is_event(self) -> bool:
        return self.event_type in EVENTS

    def to_dict(self) -> Dict[str, Any]:
        data = {"eventType": self.event_type.value}
        if self.payload is not None:
            data["payload"] = self.payload
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Envelope":
        """
        Validate and build an envelope from its dict form.

        Raises:
            UnknownEnvelopeError: if the tag is missing or not a known event type
        """
        if not isinstance(data, dict):
            raise UnknownEnvelopeError(data)
        tag = data.get("eventType")
        try:
            event_type = EventType(tag)
        except ValueError:
            raise UnknownEnvelopeError(tag) from None
        return cls(event_type, data.get("payload"))


def decode_frame(raw: Any) -> Any:
    """
    Decode an inbound transport frame.

    Raises:
        MalformedFrame: if the frame is not valid JSON text
    """
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedFrame(raw, str(e)) from e
    if not isinstance(raw, str):
        raise MalformedFrame(raw, f"unsupported frame type {type(raw).__name__}")
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise MalformedFrame(raw, str(e)) from e


def encode_frame(payload: Any) -> str:
    """Encode an outbound payload as a JSON text frame"""
    return json.dumps(payload)
