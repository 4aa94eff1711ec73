"""
Tests for the ident responder
"""

import asyncio

import pytest

from ircore.irc import IRCClient, ClientEvent
from ircore.irc.ident import IdentResponder, build_ident_reply


async def _query(port: int, request: bytes) -> bytes:
    reader, writer = await asyncio.open_connection("127.0.0.1", port)
    writer.write(request)
    await writer.drain()
    try:
        return await asyncio.wait_for(reader.read(), 2)
    finally:
        writer.close()


class TestBuildIdentReply:
    """Test reply formatting"""

    def test_valid_request(self):
        assert build_ident_reply("6667, 50000", "alice") == "6667 , 50000 : USERID : UNIX : alice"

    def test_whitespace_tolerated(self):
        assert build_ident_reply("  113 ,  4000 \r\n", "bob") == "113 , 4000 : USERID : UNIX : bob"

    @pytest.mark.parametrize("request_line", ["", "6667", "a, b", "1, 2, 3", "6667 50000"])
    def test_invalid_requests(self, request_line):
        assert build_ident_reply(request_line, "alice") is None


class TestIdentResponder:
    """Test the listening responder"""

    @pytest.mark.asyncio
    async def test_answers_and_stops(self):
        responder = IdentResponder("127.0.0.1", 0, "alice")
        await responder.start()
        assert responder.running
        port = responder.bound_port

        reply = await _query(port, b"6667, 40000\r\n")
        assert reply == b"6667 , 40000 : USERID : UNIX : alice\r\n"
        assert responder.queries_answered == 1

        await responder.stop()
        assert not responder.running
        with pytest.raises(OSError):
            await asyncio.open_connection("127.0.0.1", port)

    @pytest.mark.asyncio
    async def test_invalid_query_closes_without_reply(self):
        responder = IdentResponder("127.0.0.1", 0, "alice")
        await responder.start()
        try:
            assert await _query(responder.bound_port, b"garbage\r\n") == b""
            assert responder.queries_answered == 0
        finally:
            await responder.stop()

    @pytest.mark.asyncio
    async def test_occupied_port_raises(self):
        first = IdentResponder("127.0.0.1", 0, "alice")
        await first.start()
        try:
            second = IdentResponder("127.0.0.1", first.bound_port, "bob")
            with pytest.raises(OSError):
                await second.start()
            assert not second.running
        finally:
            await first.stop()

    @pytest.mark.asyncio
    async def test_stop_twice_is_harmless(self):
        responder = IdentResponder("127.0.0.1", 0, "alice")
        await responder.start()
        await responder.stop()
        await responder.stop()


@pytest.mark.asyncio
async def test_client_connects_when_ident_port_taken(irc_server):
    """The session continues when ident cannot bind"""
    blocker = IdentResponder("127.0.0.1", 0, "someone")
    await blocker.start()
    client = IRCClient(keepalive_interval=0)
    errors: list = []
    client.on(ClientEvent.ERROR, errors.append)
    try:
        ok = await client.connect(
            "127.0.0.1",
            irc_server.port,
            "alice",
            "al",
            "Alice",
            ident_host="127.0.0.1",
            ident_port=blocker.bound_port,
        )
        assert ok
        assert client.connected
        assert client.ident is None
        assert len(errors) == 1
        await client.disconnect()
    finally:
        await blocker.stop()
