"""Socket.IO websocket connection to one Foundry host and session."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from foundry_bridge.protocol.frames import (
    CONNECT_FRAME,
    PONG_FRAME,
    is_handshake,
    is_ping,
    is_session_event,
)
from foundry_bridge.transport.base import (
    ConnectionError,
    SessionError,
    TimeoutError,
)
from foundry_bridge.transport.types import TransportConfig
from foundry_bridge.transport.wire_log import WireLogger

logger = logging.getLogger(__name__)

FrameListener = Callable[[str], None]
CloseListener = Callable[["WebSocketConnection", Exception | None], None]
Connector = Callable[[str], Awaitable[Any]]


async def default_connector(url: str) -> Any:
    """Open a websocket; world snapshots can be large, so no frame size cap."""
    return await websockets.connect(url, max_size=None)


class WebSocketConnection:
    """
    One live socket bound to one hostname and session id.

    A single reader task consumes frames in arrival order. The handshake
    and heartbeat are answered here; every other frame is offered to the
    registered frame listeners in registration order. When the reader ends
    for any reason the close listeners are told once.
    """

    def __init__(
        self,
        hostname: str,
        session_id: str,
        config: TransportConfig | None = None,
        wire_log: WireLogger | None = None,
        connector: Connector | None = None,
    ):
        self.hostname = hostname
        self.session_id = session_id
        self.config = config or TransportConfig()
        self._wire_log = wire_log
        self._connector = connector or default_connector

        self._ws: Any = None
        self._reader: asyncio.Task | None = None
        self._listeners: list[FrameListener] = []
        self._close_listeners: list[CloseListener] = []
        self._ready = False
        self._closing = False
        self._closed = False

    @property
    def url(self) -> str:
        return (
            f"{self.config.ws_scheme}://{self.hostname}/socket.io/"
            f"?session={self.session_id}&EIO=4&transport=websocket"
        )

    @property
    def is_open(self) -> bool:
        """True while the socket can carry frames."""
        return self._ws is not None and not self._closed and not self._closing

    @property
    def is_ready(self) -> bool:
        """True once the server announced the session."""
        return self._ready and self.is_open

    def add_listener(self, listener: FrameListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: FrameListener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def add_close_listener(self, listener: CloseListener) -> None:
        self._close_listeners.append(listener)

    def remove_close_listener(self, listener: CloseListener) -> None:
        try:
            self._close_listeners.remove(listener)
        except ValueError:
            pass

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    async def open(self) -> None:
        """
        Open the socket and start reading.

        Raises:
            TimeoutError: The upgrade did not finish within connect_timeout.
            ConnectionError: The socket could not be opened.
            SessionError: This connection was already opened once.
        """
        if self._ws is not None or self._closed:
            raise SessionError("Connection already opened")

        logger.info(f"Connecting to WebSocket: {self.url}")

        try:
            ws = await asyncio.wait_for(
                self._connector(self.url),
                timeout=self.config.connect_timeout,
            )
        except asyncio.TimeoutError as e:
            raise TimeoutError("WebSocket connection timeout", cause=e)
        except (OSError, WebSocketException) as e:
            raise ConnectionError(f"WebSocket connection failed: {e}", cause=e)

        self._ws = ws
        self._reader = asyncio.create_task(
            self._read_loop(),
            name=f"foundry-ws-{self.hostname}",
        )
        logger.info("WebSocket connection established")

    async def send(self, text: str) -> None:
        """Send one text frame."""
        if not self.is_open:
            raise SessionError("Not connected to Foundry server")

        if self._wire_log is not None:
            self._wire_log.outbound(text)
        try:
            await self._ws.send(text)
        except ConnectionClosed as e:
            raise SessionError(f"WebSocket closed while sending: {e}", cause=e)

    async def close(self) -> None:
        """Close the socket on purpose. Safe to call more than once."""
        if self._ws is None or self._closing or self._closed:
            return

        self._closing = True
        try:
            await self._ws.close()
        except Exception as e:
            logger.debug(f"Error while closing WebSocket: {e}")

        reader = self._reader
        if reader is not None and reader is not asyncio.current_task():
            try:
                await reader
            except asyncio.CancelledError:
                pass

    async def _read_loop(self) -> None:
        error: Exception | None = None
        try:
            async for message in self._ws:
                if isinstance(message, bytes):
                    message = message.decode("utf-8", errors="replace")
                await self._handle_message(message)
        except ConnectionClosed as e:
            if not self._closing:
                error = e
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"WebSocket error: {e}")
            error = e
        finally:
            self._mark_closed(error)

    async def _handle_message(self, text: str) -> None:
        if self._wire_log is not None:
            self._wire_log.inbound(text)
        logger.debug(f"WebSocket message: {text[:200]}")

        if is_handshake(text):
            logger.debug("Received Engine.IO handshake, sending Socket.IO connect")
            await self.send(CONNECT_FRAME)
            return

        if is_ping(text):
            await self.send(PONG_FRAME)
            return

        if is_session_event(text):
            logger.info("Received session event, connection ready")
            self._ready = True
            return

        for listener in list(self._listeners):
            try:
                listener(text)
            except Exception:
                logger.exception("Frame listener failed")

    def _mark_closed(self, error: Exception | None) -> None:
        if self._closed:
            return
        self._closed = True
        self._ready = False

        if error is not None:
            logger.warning(f"WebSocket closed: {error}")
        else:
            logger.info("WebSocket closed")

        for listener in list(self._close_listeners):
            try:
                listener(self, error)
            except Exception:
                logger.exception("Close listener failed")

    def __repr__(self) -> str:
        state = "open" if self.is_open else "closed" if self._closed else "new"
        return f"WebSocketConnection({self.hostname}, session={self.session_id}, {state})"
