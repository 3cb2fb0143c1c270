"""
Integration tests for the reconnect policy.
"""

import asyncio

import pytest
from websockets.exceptions import InvalidState

from owop_client.config import ClientConfig
from owop_client.core.event_bus import EventType
from owop_client.core.state_machine import SessionState
from owop_client.protocol import encode_join


class FailingTransport:
    """Transport whose stream fails on the first read."""

    def __init__(self, error: Exception):
        self.error = error
        self.closed = False

    async def send(self, message) -> None:
        pass

    async def close(self) -> None:
        self.closed = True

    def __aiter__(self):
        return self

    async def __anext__(self):
        raise self.error


@pytest.fixture
def reconnecting_config():
    return ClientConfig(session={"reconnect": True, "reconnect_time": 0.0})


class TestReconnect:
    """Tests for reconnecting after the socket closes."""

    @pytest.mark.asyncio
    async def test_reconnects_after_server_close(self, make_client, new_transport, frames, reconnecting_config,
                                                 settle_loop):
        first, second = new_transport(), new_transport()
        client = await make_client(reconnecting_config, first, second)
        opens = []
        client.on(EventType.OPEN, opens.append)
        await first.deliver(frames.captcha(3), frames.set_id(7), frames.solid_chunk(1, 1, color=(5, 5, 5)))

        await first.server_close()
        await settle_loop()

        assert len(opens) == 1
        assert client.state is SessionState.SOCKET_OPEN
        assert client.player.id is None
        assert client.chunks.get_pixel(16, 16) == (5, 5, 5)

        await second.deliver(frames.captcha(3))

        assert second.sent_binary == [encode_join("main")]

    @pytest.mark.asyncio
    async def test_failed_first_attempt_is_retried(self, make_client, new_transport, reconnecting_config,
                                                   settle_loop):
        transport = new_transport()
        client = await make_client(reconnecting_config, OSError("refused"), transport, connect=False)

        await client.connection.start()
        await settle_loop()

        assert client.is_connected is True
        assert client.state is SessionState.SOCKET_OPEN

    @pytest.mark.asyncio
    async def test_intentional_close_does_not_reconnect(self, make_client, new_transport, reconnecting_config,
                                                        settle_loop):
        first, second = new_transport(), new_transport()
        client = await make_client(reconnecting_config, first, second)

        await client.close()
        await settle_loop()

        assert client.is_connected is False
        assert client.state is SessionState.DISCONNECTED
        await asyncio.wait_for(client.connection.wait_finished(), timeout=1.0)

    @pytest.mark.asyncio
    async def test_ban_does_not_reconnect(self, make_client, new_transport, reconnecting_config, settle_loop):
        first, second = new_transport(), new_transport()
        client = await make_client(reconnecting_config, first, second)

        await first.deliver("You are banned")
        await settle_loop()

        assert client.is_destroyed is True
        assert client.is_connected is False
        await asyncio.wait_for(client.connection.wait_finished(), timeout=1.0)

    @pytest.mark.asyncio
    async def test_no_reconnect_when_disabled(self, client, transport):
        await transport.server_close()

        await asyncio.wait_for(client.connection.wait_finished(), timeout=1.0)
        assert client.state is SessionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_run_returns_when_destroyed(self, make_client, new_transport, frames, reconnecting_config,
                                              settle_loop):
        transport = new_transport()
        client = await make_client(reconnecting_config, transport, connect=False)

        runner = asyncio.create_task(client.run())
        await settle_loop()
        await transport.deliver(frames.captcha(4))

        await asyncio.wait_for(runner, timeout=1.0)
        assert client.is_destroyed is True


class TestReceiveErrors:
    """Unexpected errors from the socket stream still close the session."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [InvalidState("stream broke"), ValueError("garbage")])
    async def test_stream_error_finishes_session(self, make_client, config, error):
        transport = FailingTransport(error)
        client = await make_client(config, transport)
        closes = []
        client.on(EventType.CLOSE, closes.append)

        await asyncio.wait_for(client.connection.wait_finished(), timeout=1.0)

        assert client.state is SessionState.DISCONNECTED
        assert client.is_connected is False
        assert len(closes) == 1

    @pytest.mark.asyncio
    async def test_stream_error_triggers_reconnect(self, make_client, new_transport, reconnecting_config,
                                                   settle_loop):
        second = new_transport()
        client = await make_client(reconnecting_config, FailingTransport(InvalidState("stream broke")), second)

        await settle_loop()

        assert client.is_connected is True
        assert client.state is SessionState.SOCKET_OPEN
