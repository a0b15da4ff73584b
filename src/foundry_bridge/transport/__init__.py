"""
Foundry transport layer.

HTTP session negotiation (cookie, login, upload) and the socket.io
websocket connection.
"""

from foundry_bridge.transport.types import TransportConfig
from foundry_bridge.transport.base import (
    TransportError,
    ConnectionError,
    TimeoutError,
    SessionError,
    AuthenticationError,
)
from foundry_bridge.transport.session import SessionNegotiator, UploadResult
from foundry_bridge.transport.websocket import WebSocketConnection
from foundry_bridge.transport.wire_log import WireLogger

__all__ = [
    "TransportConfig",
    "TransportError",
    "ConnectionError",
    "TimeoutError",
    "SessionError",
    "AuthenticationError",
    "SessionNegotiator",
    "UploadResult",
    "WebSocketConnection",
    "WireLogger",
]
