"""
Foundry protocol core.

Socket.IO frame codec, response matchers, request errors and the reconnect
state machine. The supervisor and correlator live in their own modules and
are imported from there.
"""

from foundry_bridge.protocol.frames import (
    CONNECT_FRAME,
    WORLD_REQUEST_FRAME,
    FrameKind,
    FrameResult,
    build_event_frame,
    decode_frame,
    parse_ack,
    parse_world_response,
)
from foundry_bridge.protocol.matchers import (
    BrowseMatcher,
    CompendiumMatcher,
    DocumentMatcher,
    Match,
    Verdict,
)
from foundry_bridge.protocol.errors import (
    RequestError,
    NotConnectedError,
    RequestTimeoutError,
    OperationFailedError,
    FrameDecodeError,
    ConnectionLostError,
)
from foundry_bridge.protocol.state import (
    ReconnectState,
    ReconnectStateMachine,
    InvalidStateTransition,
)

__all__ = [
    # Frames
    "CONNECT_FRAME",
    "WORLD_REQUEST_FRAME",
    "FrameKind",
    "FrameResult",
    "build_event_frame",
    "decode_frame",
    "parse_ack",
    "parse_world_response",
    # Matchers
    "BrowseMatcher",
    "CompendiumMatcher",
    "DocumentMatcher",
    "Match",
    "Verdict",
    # Errors
    "RequestError",
    "NotConnectedError",
    "RequestTimeoutError",
    "OperationFailedError",
    "FrameDecodeError",
    "ConnectionLostError",
    # State
    "ReconnectState",
    "ReconnectStateMachine",
    "InvalidStateTransition",
]
