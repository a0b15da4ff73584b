"""Pytest configuration and fixtures."""

import asyncio
from typing import Callable
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from foundry_bridge.client import FoundryClient
from foundry_bridge.credentials import Credential
from foundry_bridge.lib import oj
from foundry_bridge.protocol.supervisor import SessionSupervisor
from foundry_bridge.transport.session import SessionNegotiator
from foundry_bridge.transport.types import TransportConfig
from foundry_bridge.transport.websocket import WebSocketConnection

# Enable async tests without marking each one
pytest_plugins = ["pytest_asyncio"]

_CLOSE = object()


class FakeWebSocket:
    """
    In-memory stand-in for a websockets client connection.

    Frames queued with ``feed`` are yielded by async iteration in order.
    ``responder`` is called with every sent frame and may return frames to
    feed back, which is how tests play the server side.
    """

    def __init__(self, responder: Callable[[str], list[str] | None] | None = None):
        self.sent: list[str] = []
        self.closed = False
        self.responder = responder
        self._inbox: asyncio.Queue = asyncio.Queue()

    async def send(self, text: str) -> None:
        self.sent.append(text)
        if self.responder is not None:
            for reply in self.responder(text) or []:
                self.feed(reply)

    def feed(self, text: str) -> None:
        self._inbox.put_nowait(text)

    def drop(self, error: Exception | None = None) -> None:
        """Simulate the server going away."""
        self._inbox.put_nowait(error if error is not None else _CLOSE)

    async def close(self) -> None:
        self.closed = True
        self._inbox.put_nowait(_CLOSE)

    def __aiter__(self):
        return self

    async def __anext__(self) -> str:
        item = await self._inbox.get()
        if item is _CLOSE:
            raise StopAsyncIteration
        if isinstance(item, Exception):
            raise item
        return item


async def settle(rounds: int = 10) -> None:
    """Let pending callbacks and reader tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def ack(ack_id: int, payload: dict) -> str:
    return f"43{ack_id}{oj.dumps([payload])}"


def world_frame(world: dict) -> str:
    return f"430{oj.dumps([world])}"


class SocketFactory:
    """Builds WebSocketConnections backed by FakeWebSockets and records them."""

    def __init__(self, config: TransportConfig, responder=None):
        self.config = config
        self.responder = responder
        self.sockets: list[FakeWebSocket] = []
        self.connections: list[WebSocketConnection] = []
        self.fail_next: Exception | None = None

    def __call__(self, hostname: str, session_id: str) -> WebSocketConnection:
        async def connector(url: str) -> FakeWebSocket:
            if self.fail_next is not None:
                error, self.fail_next = self.fail_next, None
                raise error
            ws = FakeWebSocket(self.responder)
            self.sockets.append(ws)
            return ws

        connection = WebSocketConnection(hostname, session_id, self.config, connector=connector)
        self.connections.append(connection)
        return connection

    @property
    def latest(self) -> FakeWebSocket:
        return self.sockets[-1]


@pytest.fixture
def config():
    return TransportConfig(connect_timeout=1.0, request_timeout=0.2)


@pytest.fixture
def credential():
    return Credential(id="main", hostname="foundry.example.com", userid="gm", password="secret")


@pytest.fixture
def negotiator():
    """Negotiator double: every host hands out sess-1 and accepts the credential."""
    mock = MagicMock(spec=SessionNegotiator)
    mock.get_session = AsyncMock(return_value="sess-1")
    mock.authenticate = AsyncMock(return_value=True)
    mock.download = AsyncMock()
    mock.upload = AsyncMock()
    mock.aclose = AsyncMock()
    return mock


@pytest.fixture
def sockets(config):
    return SocketFactory(config)


@pytest.fixture
def supervisor(negotiator, config, sockets):
    return SessionSupervisor(negotiator, config, connection_factory=sockets)


@pytest.fixture
def foundry_client():
    """FoundryClient double that reports a live connection."""
    mock = MagicMock(spec=FoundryClient)
    mock.is_connected.return_value = True
    mock.hostname = "foundry.example.com"
    for name in (
        "get_documents",
        "get_document",
        "get_world",
        "modify_document",
        "create_document",
        "delete_document",
        "choose_instance",
        "upload_file",
        "browse_files",
        "create_compendium",
        "delete_compendium",
    ):
        setattr(mock, name, AsyncMock())
    return mock


def mock_http(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))
