"""Ownership of the active session and recovery from unexpected closes."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Callable, Sequence

from foundry_bridge.credentials import Credential
from foundry_bridge.protocol.state import ReconnectState, ReconnectStateMachine
from foundry_bridge.transport.base import (
    AuthenticationError,
    ConnectionError,
    TransportError,
)
from foundry_bridge.transport.session import SessionNegotiator
from foundry_bridge.transport.types import TransportConfig
from foundry_bridge.transport.websocket import WebSocketConnection
from foundry_bridge.transport.wire_log import WireLogger

logger = logging.getLogger(__name__)

ConnectionFactory = Callable[[str, str], WebSocketConnection]


@dataclass(frozen=True)
class Session:
    """One authenticated connection to one Foundry host."""

    hostname: str
    credential: Credential
    session_id: str
    connection: WebSocketConnection


class SessionSupervisor:
    """
    Sole owner of the active Session.

    Nothing else assigns a session id or socket: connect, reconnect and
    disconnect all go through here, and readers only ever see the current
    value through ``session``.
    """

    def __init__(
        self,
        negotiator: SessionNegotiator,
        config: TransportConfig | None = None,
        wire_log: WireLogger | None = None,
        connection_factory: ConnectionFactory | None = None,
    ):
        self.negotiator = negotiator
        self.config = config or TransportConfig()
        self._wire_log = wire_log
        self._connection_factory = connection_factory or self._default_connection
        self._state = ReconnectStateMachine()
        self._state.on_transition(self._log_transition)
        self._session: Session | None = None
        self._reconnect_task: asyncio.Task | None = None

    def _log_transition(self, old: ReconnectState, new: ReconnectState) -> None:
        logger.debug(f"Reconnect state {old} -> {new}")

    def _default_connection(self, hostname: str, session_id: str) -> WebSocketConnection:
        return WebSocketConnection(hostname, session_id, self.config, wire_log=self._wire_log)

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def state(self) -> ReconnectState:
        return self._state.state

    @property
    def reconnecting(self) -> bool:
        return self._state.is_reconnecting

    @property
    def is_connected(self) -> bool:
        return self._session is not None and self._session.connection.is_open

    async def _open(self, hostname: str, session_id: str) -> WebSocketConnection:
        connection = self._connection_factory(hostname, session_id)
        connection.add_close_listener(self._on_connection_closed)
        await connection.open()
        return connection

    async def establish(self, credential: Credential) -> Session:
        """
        Run the full handshake for one credential and make it active.

        Any previous session is closed first.

        Raises:
            AuthenticationError: The server rejected the credential.
            TransportError: A request or the socket upgrade failed.
        """
        await self.disconnect()

        hostname = credential.hostname
        session_id = await self.negotiator.get_session(hostname)
        logger.debug(f"Got session ID for {hostname}: {session_id}")

        if not await self.negotiator.authenticate(hostname, session_id, credential):
            raise AuthenticationError(hostname)

        connection = await self._open(hostname, session_id)
        self._session = Session(
            hostname=hostname,
            credential=credential,
            session_id=session_id,
            connection=connection,
        )
        logger.info(f"Successfully connected to {hostname}")
        return self._session

    async def connect_first(self, credentials: Sequence[Credential]) -> int:
        """
        Try each credential in order and stay on the first that connects.

        Returns:
            Index of the credential now in use.

        Raises:
            ConnectionError: Empty list, or every credential failed.
        """
        if not credentials:
            raise ConnectionError("No credentials found in config file")

        for index, credential in enumerate(credentials):
            logger.info(f"Trying to connect to {credential.hostname}...")
            try:
                await self.establish(credential)
            except AuthenticationError:
                logger.warning(f"Authentication failed for {credential.hostname}, trying next...")
                continue
            except TransportError as e:
                logger.error(f"Failed to connect to {credential.hostname}: {e}")
                continue
            return index

        raise ConnectionError("Failed to connect to any Foundry server")

    def _on_connection_closed(
        self,
        connection: WebSocketConnection,
        error: Exception | None,
    ) -> None:
        session = self._session
        if session is None or session.connection is not connection:
            return
        if self._state.is_reconnecting:
            return

        logger.warning(f"Connection to {session.hostname} closed unexpectedly, reconnecting")
        self._reconnect_task = asyncio.create_task(
            self.reconnect(),
            name=f"foundry-reconnect-{session.hostname}",
        )

    async def reconnect(self) -> bool:
        """
        Renew the active session after its socket closed.

        Tries the cached session id first, then one fresh session. Never
        raises on failure; the next close will try again.

        Returns:
            True if a new socket is open.
        """
        session = self._session
        if session is None or self._state.is_reconnecting:
            return False

        self._state.transition(ReconnectState.RECONNECTING)
        logger.info("Attempting to reconnect...")
        try:
            renewed = await self._renew(session)
            if renewed is None:
                return False
            if self._session is not session:
                # Dropped or replaced while we were away
                await renewed.connection.close()
                return False
            self._session = renewed
            if session.connection.is_open:
                await session.connection.close()
            return True
        except TransportError as e:
            logger.error(f"Reconnection failed: {e}")
            return False
        finally:
            self._state.transition(ReconnectState.IDLE)

    async def _renew(self, session: Session) -> Session | None:
        hostname = session.hostname
        credential = session.credential

        if await self.negotiator.authenticate(hostname, session.session_id, credential):
            connection = await self._open(hostname, session.session_id)
            logger.info("Reconnection successful")
            return replace(session, connection=connection)

        session_id = await self.negotiator.get_session(hostname)
        if not await self.negotiator.authenticate(hostname, session_id, credential):
            logger.error("Reconnection failed - authentication failed")
            return None

        connection = await self._open(hostname, session_id)
        logger.info("Reconnection with new session successful")
        return replace(session, session_id=session_id, connection=connection)

    async def disconnect(self) -> None:
        """Drop the active session and close its socket."""
        task = self._reconnect_task
        self._reconnect_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        session = self._session
        self._session = None
        if session is not None:
            logger.info(f"Disconnecting from {session.hostname}")
            await session.connection.close()
