"""Wire protocol shared between the relay server and viewing clients.

Clients exchange a single event, ``sync-event``, over a WebSocket. Each frame
is a compact JSON envelope carrying the event name and the playback payload.
The relay never looks inside a frame; only clients encode and decode them.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, TypedDict

import json
import math

SYNC_EVENT = "sync-event"

DEFAULT_RELAY_PORT = 3000
DEFAULT_RELAY_PATH = "/ws"

LOCAL_QUIESCENCE_SECONDS = 0.1
REMOTE_QUIESCENCE_SECONDS = 0.2
DEFAULT_QUIESCENCE_SECONDS = REMOTE_QUIESCENCE_SECONDS


class ProtocolError(ValueError):
    """Raised when a frame cannot be decoded into a sync message."""


class SyncAction(str, Enum):
    """Playback actions propagated between peers."""

    PLAY = "PLAY"
    PAUSE = "PAUSE"
    SEEK = "SEEK"


@dataclass(slots=True, frozen=True)
class SyncMessage:
    """A single playback action pinned to an absolute position in seconds."""

    action: SyncAction
    timestamp: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action.value,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SyncMessage":
        try:
            action = SyncAction(data["action"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ProtocolError(f"Unknown sync action in {data!r}") from exc
        raw_timestamp = data.get("timestamp")
        if isinstance(raw_timestamp, bool) or not isinstance(raw_timestamp, (int, float)):
            raise ProtocolError(f"Sync timestamp must be numeric, got {raw_timestamp!r}")
        timestamp = float(raw_timestamp)
        if not math.isfinite(timestamp) or timestamp < 0:
            raise ProtocolError(f"Sync timestamp out of range: {timestamp}")
        return cls(action=action, timestamp=timestamp)


class SyncEnvelope(TypedDict):
    """Generic representation of an event frame on the WebSocket."""

    event: str
    data: Dict[str, Any]


def encode_sync_event(message: SyncMessage) -> str:
    """Serialize a sync message into a text frame."""

    envelope: SyncEnvelope = {
        "event": SYNC_EVENT,
        "data": message.to_dict(),
    }
    return json.dumps(envelope, separators=(",", ":"))


def decode_sync_event(frame: str | bytes) -> SyncMessage:
    """Parse a text frame produced by :func:`encode_sync_event`."""

    if isinstance(frame, bytes):
        try:
            frame = frame.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ProtocolError("Frame is not valid UTF-8") from exc
    try:
        envelope = json.loads(frame)
    except json.JSONDecodeError as exc:
        raise ProtocolError("Frame is not valid JSON") from exc
    if not isinstance(envelope, dict):
        raise ProtocolError("Frame must be a JSON object")
    if envelope.get("event") != SYNC_EVENT:
        raise ProtocolError(f"Unexpected event {envelope.get('event')!r}")
    data = envelope.get("data")
    if not isinstance(data, dict):
        raise ProtocolError("Frame is missing its data object")
    return SyncMessage.from_dict(data)
