"""Tests for session ownership and reconnection."""

import asyncio
import logging

import pytest
import pytest_asyncio

from conftest import settle
from foundry_bridge.credentials import Credential
from foundry_bridge.protocol.state import ReconnectState
from foundry_bridge.transport.base import AuthenticationError, ConnectionError


@pytest_asyncio.fixture
async def supervisor(supervisor):
    yield supervisor
    await supervisor.disconnect()


def make_credential(hostname: str) -> Credential:
    return Credential(id=hostname, hostname=hostname, userid="gm", password="pw")


def reconnect_tasks() -> list[asyncio.Task]:
    return [task for task in asyncio.all_tasks() if task.get_name().startswith("foundry-reconnect")]


class TestEstablish:
    @pytest.mark.asyncio
    async def test_installs_session(self, supervisor, negotiator, sockets, credential):
        session = await supervisor.establish(credential)

        assert session.hostname == "foundry.example.com"
        assert session.session_id == "sess-1"
        assert supervisor.session is session
        assert supervisor.is_connected
        negotiator.get_session.assert_awaited_once_with("foundry.example.com")
        negotiator.authenticate.assert_awaited_once_with("foundry.example.com", "sess-1", credential)
        assert len(sockets.sockets) == 1
        await supervisor.disconnect()

    @pytest.mark.asyncio
    async def test_rejected_credential_raises(self, supervisor, negotiator, sockets, credential):
        negotiator.authenticate.return_value = False

        with pytest.raises(AuthenticationError, match="Authentication failed for foundry.example.com"):
            await supervisor.establish(credential)

        assert supervisor.session is None
        assert sockets.sockets == []

    @pytest.mark.asyncio
    async def test_replaces_previous_session(self, supervisor, sockets, credential):
        await supervisor.establish(credential)
        first = sockets.latest

        await supervisor.establish(make_credential("other.example.com"))
        await settle()

        assert first.closed
        assert supervisor.session.hostname == "other.example.com"
        assert reconnect_tasks() == []
        assert len(sockets.sockets) == 2


class TestConnectFirst:
    @pytest.mark.asyncio
    async def test_skips_rejected_hosts(self, supervisor, negotiator):
        async def authenticate(hostname, session_id, credential):
            return hostname == "b"

        negotiator.authenticate.side_effect = authenticate

        index = await supervisor.connect_first([make_credential("a"), make_credential("b")])

        assert index == 1
        assert supervisor.session.hostname == "b"
        await supervisor.disconnect()

    @pytest.mark.asyncio
    async def test_skips_unreachable_hosts(self, supervisor, negotiator):
        async def get_session(hostname):
            if hostname == "a":
                raise ConnectionError("GET /join failed for a: refused")
            return "sess-b"

        negotiator.get_session.side_effect = get_session

        index = await supervisor.connect_first([make_credential("a"), make_credential("b")])

        assert index == 1
        assert supervisor.session.session_id == "sess-b"
        await supervisor.disconnect()

    @pytest.mark.asyncio
    async def test_empty_list(self, supervisor):
        with pytest.raises(ConnectionError, match="No credentials found in config file"):
            await supervisor.connect_first([])

    @pytest.mark.asyncio
    async def test_all_fail(self, supervisor, negotiator):
        negotiator.authenticate.return_value = False

        with pytest.raises(ConnectionError, match="Failed to connect to any Foundry server"):
            await supervisor.connect_first([make_credential("a"), make_credential("b")])

        assert supervisor.session is None


class TestReconnect:
    @pytest.mark.asyncio
    async def test_unexpected_close_reuses_session_id(self, supervisor, negotiator, sockets, credential):
        await supervisor.establish(credential)
        old_connection = supervisor.session.connection
        negotiator.get_session.reset_mock()

        sockets.latest.drop()
        await settle()
        await asyncio.gather(*reconnect_tasks())

        assert len(sockets.sockets) == 2
        negotiator.get_session.assert_not_awaited()
        assert supervisor.session.session_id == "sess-1"
        assert supervisor.session.connection is not old_connection
        assert supervisor.is_connected
        assert supervisor.state == ReconnectState.IDLE
        await supervisor.disconnect()

    @pytest.mark.asyncio
    async def test_falls_back_to_fresh_session(self, supervisor, negotiator, sockets, credential):
        await supervisor.establish(credential)
        negotiator.authenticate.side_effect = [False, True]
        negotiator.get_session.return_value = "sess-2"

        assert await supervisor.reconnect() is True

        assert supervisor.session.session_id == "sess-2"
        assert supervisor.session.credential is credential
        assert len(sockets.sockets) == 2
        await supervisor.disconnect()

    @pytest.mark.asyncio
    async def test_gives_up_when_both_attempts_fail(self, supervisor, negotiator, sockets, credential):
        await supervisor.establish(credential)
        session = supervisor.session
        negotiator.authenticate.return_value = False

        assert await supervisor.reconnect() is False

        assert supervisor.session is session
        assert supervisor.state == ReconnectState.IDLE
        assert len(sockets.sockets) == 1
        await supervisor.disconnect()

    @pytest.mark.asyncio
    async def test_transport_error_is_not_raised(self, supervisor, negotiator, credential):
        await supervisor.establish(credential)
        negotiator.authenticate.side_effect = ConnectionError("POST /join failed")

        assert await supervisor.reconnect() is False
        assert supervisor.state == ReconnectState.IDLE
        await supervisor.disconnect()

    @pytest.mark.asyncio
    async def test_reconnecting_set_before_first_await(self, supervisor, negotiator, credential):
        await supervisor.establish(credential)
        seen = []

        async def authenticate(hostname, session_id, cred):
            seen.append(supervisor.state)
            return True

        negotiator.authenticate.side_effect = authenticate

        await supervisor.reconnect()

        assert seen == [ReconnectState.RECONNECTING]
        await supervisor.disconnect()

    @pytest.mark.asyncio
    async def test_overlapping_attempt_is_refused(self, supervisor, negotiator, credential):
        await supervisor.establish(credential)
        negotiator.authenticate.reset_mock()
        release = asyncio.Event()

        async def authenticate(hostname, session_id, cred):
            await release.wait()
            return True

        negotiator.authenticate.side_effect = authenticate

        first = asyncio.create_task(supervisor.reconnect())
        await settle()
        assert supervisor.reconnecting
        assert await supervisor.reconnect() is False

        release.set()
        assert await first is True
        assert negotiator.authenticate.await_count == 1

    @pytest.mark.asyncio
    async def test_close_while_reconnecting_is_ignored(self, supervisor, negotiator, sockets, credential):
        await supervisor.establish(credential)
        release = asyncio.Event()

        async def authenticate(hostname, session_id, cred):
            await release.wait()
            return True

        negotiator.authenticate.side_effect = authenticate
        first = asyncio.create_task(supervisor.reconnect())
        await settle()

        sockets.latest.drop()
        await settle()
        assert reconnect_tasks() == []

        release.set()
        assert await first is True
        assert len(sockets.sockets) == 2

    @pytest.mark.asyncio
    async def test_disconnect_cancels_reconnect(self, supervisor, negotiator, sockets, credential):
        await supervisor.establish(credential)

        async def authenticate(hostname, session_id, cred):
            await asyncio.sleep(10)
            return True

        negotiator.authenticate.side_effect = authenticate

        sockets.latest.drop()
        await settle()
        [task] = reconnect_tasks()
        assert supervisor.reconnecting

        await supervisor.disconnect()

        assert task.cancelled()
        assert supervisor.session is None
        assert supervisor.state == ReconnectState.IDLE

    @pytest.mark.asyncio
    async def test_intentional_close_does_not_reconnect(self, supervisor, sockets, credential):
        await supervisor.establish(credential)

        await supervisor.disconnect()
        await settle()

        assert reconnect_tasks() == []
        assert len(sockets.sockets) == 1
        assert not supervisor.is_connected

    @pytest.mark.asyncio
    async def test_transitions_are_logged(self, supervisor, credential, caplog):
        await supervisor.establish(credential)
        caplog.set_level(logging.DEBUG, logger="foundry_bridge.protocol.supervisor")

        await supervisor.reconnect()

        assert "Reconnect state IDLE -> RECONNECTING" in caplog.text
        assert "Reconnect state RECONNECTING -> IDLE" in caplog.text
