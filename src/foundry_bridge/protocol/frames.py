"""
Socket.IO text frame codec.

Only the handful of frame shapes the Foundry server actually sends are
understood:

    0{...}            Engine.IO handshake, answered with "40"
    2                 Engine.IO ping, answered with "3"
    40                Socket.IO connect
    42<ack>[...]      event that requests an acknowledgement
    43<ack>[...]      acknowledgement; first element is the payload
    430[...]          acknowledgement of the world request (ack id 0)

Parsers never raise. They return a FrameResult whose ``matched`` flag says
whether the frame was theirs, and whose ``error`` says whether it was theirs
but could not be decoded.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from foundry_bridge.lib import oj

CONNECT_FRAME = "40"
PING_FRAME = "2"
PONG_FRAME = "3"
WORLD_REQUEST_FRAME = '420["world"]'

HANDSHAKE_PREFIX = "0{"
SESSION_EVENT_MARKER = '["session",'
WORLD_RESPONSE_PREFIX = "430"
ACK_PREFIX = "43"
EVENT_PREFIX = "42"


class FrameKind(Enum):
    """Inbound frame kinds that carry a decodable payload."""

    WORLD = "world"
    ACK = "ack"


@dataclass(frozen=True)
class FrameResult:
    """Outcome of running one parser over one frame."""

    matched: bool
    data: Any = None
    error: str | None = None


NOT_MINE = FrameResult(matched=False)


def is_handshake(text: str) -> bool:
    """True for the Engine.IO open packet."""
    return text.startswith(HANDSHAKE_PREFIX)


def is_ping(text: str) -> bool:
    """True for an Engine.IO heartbeat ping."""
    return text == PING_FRAME


def is_session_event(text: str) -> bool:
    """True for the server's session announcement."""
    return SESSION_EVENT_MARKER in text


def parse_world_response(text: str) -> FrameResult:
    """Decode a ``430`` frame; data is the first array element."""
    if not text.startswith(WORLD_RESPONSE_PREFIX):
        return NOT_MINE

    try:
        decoded = oj.loads(text[len(WORLD_RESPONSE_PREFIX):])
    except oj.JSONDecodeError as e:
        return FrameResult(matched=True, error=f"Failed to parse world response: {e}")

    if not isinstance(decoded, list) or not decoded:
        return FrameResult(
            matched=True,
            error="Invalid response format: expected array with data",
        )

    return FrameResult(matched=True, data=decoded[0])


def parse_ack(text: str) -> FrameResult:
    """Decode a ``43<ack>`` frame; data is the whole decoded array."""
    if not text.startswith(ACK_PREFIX):
        return NOT_MINE

    start = text.find("[")
    if start == -1:
        return FrameResult(matched=True, error="Invalid ack format: missing JSON array")

    try:
        decoded = oj.loads(text[start:])
    except oj.JSONDecodeError as e:
        return FrameResult(matched=True, error=f"Failed to parse ack response: {e}")

    if not isinstance(decoded, list) or not decoded:
        return FrameResult(matched=True, error="Invalid ack format: empty payload")

    return FrameResult(matched=True, data=decoded)


def build_event_frame(ack_id: int, payload: Any) -> str:
    """Build ``42<ack_id><json>`` with no separators."""
    return f"{EVENT_PREFIX}{ack_id}{oj.dumps(payload)}"


FrameParser = Callable[[str], FrameResult]

# World first: "430" also starts with the ack prefix.
FRAME_PARSERS: tuple[tuple[FrameKind, FrameParser], ...] = (
    (FrameKind.WORLD, parse_world_response),
    (FrameKind.ACK, parse_ack),
)


def decode_frame(text: str) -> tuple[FrameKind, FrameResult] | None:
    """Run the parsers in order and return the first that claims the frame."""
    for kind, parser in FRAME_PARSERS:
        result = parser(text)
        if result.matched:
            return kind, result
    return None
