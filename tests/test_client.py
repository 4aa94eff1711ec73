"""
Tests for the IRC client against a loopback server
"""

import asyncio
import socket

import pytest

from ircore.errors import NetworkError
from ircore.irc import ClientEvent, ConnectionState, IRCClient
from support import wait_until


def _free_port() -> int:
    with socket.socket() as probe:
        probe.bind(("127.0.0.1", 0))
        return probe.getsockname()[1]


def _recorder(client: IRCClient, event: ClientEvent) -> list:
    seen: list = []
    client.on(event, seen.append)
    return seen


async def _connect(client: IRCClient, server, **kwargs) -> bool:
    return await client.connect("127.0.0.1", server.port, "alice", "al", "Alice A", **kwargs)


class TestRegistration:
    """Test connect, registration and disconnect"""

    @pytest.mark.asyncio
    async def test_registration_lines_and_quit(self, irc_server):
        """Test NICK/USER are sent on connect and QUIT on disconnect"""
        client = IRCClient(keepalive_interval=0)
        statuses = _recorder(client, ClientEvent.STATUS)

        assert await _connect(client, irc_server)
        assert client.connected
        assert await irc_server.expect("NICK") == "NICK alice"
        assert await irc_server.expect("USER") == "USER al 0 * :Alice A"

        await client.disconnect("bye")
        assert await irc_server.expect("QUIT") == "QUIT :bye"
        assert client.state is ConnectionState.DISCONNECTED
        assert statuses[0] == f"Connecting to 127.0.0.1:{irc_server.port}..."
        assert statuses[-1] == "Disconnected"

    @pytest.mark.asyncio
    async def test_password_sent_before_nick(self, irc_server):
        """Test PASS precedes registration"""
        client = IRCClient(keepalive_interval=0)
        assert await _connect(client, irc_server, password="s3cret")
        assert await irc_server.expect("PASS") == "PASS s3cret"
        await irc_server.expect("NICK")
        assert irc_server.lines.index("PASS s3cret") < irc_server.lines.index("NICK alice")
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_connect_failure_reports_error(self):
        """Test an unreachable server yields False and an ERROR event"""
        client = IRCClient(keepalive_interval=0)
        errors = _recorder(client, ClientEvent.ERROR)

        assert not await client.connect("127.0.0.1", _free_port(), "alice", "al", "Alice")
        assert client.state is ConnectionState.DISCONNECTED
        assert len(errors) == 1
        assert isinstance(errors[0], NetworkError)

    @pytest.mark.asyncio
    async def test_send_while_disconnected_is_noop(self):
        """Test sending without a session returns False"""
        client = IRCClient()
        assert await client.send_message("#room", "hello") is False
        assert await client.send_command("PING :x") is False

    @pytest.mark.asyncio
    async def test_reconnect_uses_last_parameters(self, irc_server):
        """Test reconnect opens a fresh session with the same identity"""
        client = IRCClient(keepalive_interval=0)
        assert await client.reconnect() is False

        assert await _connect(client, irc_server)
        await irc_server.expect("NICK alice")
        assert await client.reconnect()
        await irc_server.expect("QUIT :Reconnecting")
        await wait_until(lambda: irc_server.connections == 2)
        assert await irc_server.expect("NICK") == "NICK alice"
        assert client.connected
        await client.disconnect()


class TestInbound:
    """Test the receive loop"""

    @pytest.mark.asyncio
    async def test_ping_is_answered(self, irc_server):
        """Test server PING gets a PONG with the same token"""
        client = IRCClient(keepalive_interval=0)
        await _connect(client, irc_server)
        await irc_server.send("PING :abc")
        assert await irc_server.expect("PONG") == "PONG abc"
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_messages_delivered_in_order(self, irc_server):
        """Test inbound lines reach subscribers in arrival order"""
        client = IRCClient(keepalive_interval=0)
        messages = _recorder(client, ClientEvent.MESSAGE)
        await _connect(client, irc_server)

        for i in range(3):
            await irc_server.send(f":bob!b@host PRIVMSG #room :line {i}")
        await wait_until(lambda: len(messages) == 3)
        assert [m.content for m in messages] == ["line 0", "line 1", "line 2"]
        assert messages[0].sender == "bob"
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_malformed_line_is_counted_and_dropped(self, irc_server):
        """Test unparseable lines are dropped without ending the session"""
        client = IRCClient(keepalive_interval=0)
        messages = _recorder(client, ClientEvent.MESSAGE)
        await _connect(client, irc_server)

        await irc_server.send(":server.example !!! broken")
        await irc_server.send(":bob!b@host PRIVMSG #room :still here")
        await wait_until(lambda: len(messages) == 1)
        assert client.dropped_lines == 1
        assert client.connected
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_failing_subscriber_does_not_break_delivery(self, irc_server):
        """Test a raising handler leaves other handlers and the loop intact"""
        client = IRCClient(keepalive_interval=0)

        def broken(_message):
            raise RuntimeError("handler bug")

        client.on(ClientEvent.MESSAGE, broken)
        messages = _recorder(client, ClientEvent.MESSAGE)
        await _connect(client, irc_server)

        await irc_server.send(":bob!b@host PRIVMSG #room :one")
        await irc_server.send(":bob!b@host PRIVMSG #room :two")
        await wait_until(lambda: len(messages) == 2)
        assert client.connected
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_server_close_ends_session(self, irc_server):
        """Test EOF from the server tears the session down"""
        client = IRCClient(keepalive_interval=0)
        statuses = _recorder(client, ClientEvent.STATUS)
        await _connect(client, irc_server)
        await irc_server.expect("USER")

        irc_server.drop_client()
        await wait_until(lambda: "Connection closed by server" in statuses)
        assert client.state is ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_welcome_and_nick_change_track_nickname(self, irc_server):
        """Test 001 and our own NICK update the nickname"""
        client = IRCClient(keepalive_interval=0)
        messages = _recorder(client, ClientEvent.MESSAGE)
        await _connect(client, irc_server)

        await irc_server.send(":irc.example 001 alice_ :Welcome")
        await irc_server.send(":alice_!al@host NICK :alicia")
        await wait_until(lambda: len(messages) == 2)
        assert client.nickname == "alicia"
        assert client.is_self("ALICIA")
        await client.disconnect()


class TestCTCP:
    """Test CTCP and DCC handling"""

    @pytest.mark.asyncio
    async def test_version_request_is_answered(self, irc_server):
        """Test CTCP VERSION gets a NOTICE reply"""
        client = IRCClient(keepalive_interval=0)
        requests = _recorder(client, ClientEvent.CTCP_REQUEST)
        await _connect(client, irc_server)
        await irc_server.send(":irc.example 001 alice :Welcome")

        await irc_server.send(":bob!b@host PRIVMSG alice :\x01VERSION\x01")
        reply = await irc_server.expect("NOTICE bob")
        assert reply == "NOTICE bob :\x01VERSION ircore 1.0.0\x01"
        assert requests[0].command == "VERSION"
        assert requests[0].sender == "bob"
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_ping_request_echoes_parameter(self, irc_server):
        """Test CTCP PING echoes its argument"""
        client = IRCClient(keepalive_interval=0)
        await _connect(client, irc_server)

        await irc_server.send(":bob!b@host PRIVMSG alice :\x01PING 12345\x01")
        assert await irc_server.expect("NOTICE bob") == "NOTICE bob :\x01PING 12345\x01"
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_action_is_not_answered(self, irc_server):
        """Test ACTION is reported but never replied to"""
        client = IRCClient(keepalive_interval=0)
        requests = _recorder(client, ClientEvent.CTCP_REQUEST)
        await _connect(client, irc_server)

        await irc_server.send(":bob!b@host PRIVMSG alice :\x01ACTION waves\x01")
        await wait_until(lambda: len(requests) == 1)
        assert requests[0].parameter == "waves"
        assert not any(line.startswith("NOTICE") for line in irc_server.lines)
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_dcc_offer_is_emitted(self, irc_server):
        """Test a DCC SEND offer is parsed into a request"""
        client = IRCClient(keepalive_interval=0)
        offers = _recorder(client, ClientEvent.DCC_REQUEST)
        await _connect(client, irc_server)

        await irc_server.send(":bob!b@host PRIVMSG alice :\x01DCC SEND report.pdf 2130706433 5000 1234\x01")
        await wait_until(lambda: len(offers) == 1)
        offer = offers[0]
        assert offer.sender == "bob"
        assert offer.file_name == "report.pdf"
        assert offer.address == "127.0.0.1"
        assert offer.port == 5000
        assert offer.file_size == 1234
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_malformed_dcc_offer_is_ignored(self, irc_server):
        """Test a broken offer does not emit and does not end the session"""
        client = IRCClient(keepalive_interval=0)
        offers = _recorder(client, ClientEvent.DCC_REQUEST)
        messages = _recorder(client, ClientEvent.MESSAGE)
        await _connect(client, irc_server)

        await irc_server.send(":bob!b@host PRIVMSG alice :\x01DCC SEND report.pdf notanip\x01")
        await irc_server.send(":bob!b@host PRIVMSG alice :after")
        await wait_until(lambda: len(messages) == 2)
        assert offers == []
        assert client.connected
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_send_dcc_offer(self, irc_server):
        """Test an outbound offer is framed as CTCP"""
        client = IRCClient(keepalive_interval=0)
        await _connect(client, irc_server)

        assert await client.send_dcc_offer("bob", "my file.txt", 10, "127.0.0.1", 4000)
        line = await irc_server.expect("PRIVMSG bob")
        assert line == 'PRIVMSG bob :\x01DCC SEND "my file.txt" 2130706433 4000 10\x01'
        await client.disconnect()


class TestOutbound:
    """Test the write path"""

    @pytest.mark.asyncio
    async def test_concurrent_sends_do_not_interleave(self, irc_server):
        """Test every concurrently written line arrives intact"""
        client = IRCClient(keepalive_interval=0)
        await _connect(client, irc_server)
        payload = "x" * 2000
        expected = {f"PRIVMSG #room :{payload} {i}" for i in range(40)}

        results = await asyncio.gather(
            *(client.send_message("#room", f"{payload} {i}") for i in range(40))
        )
        assert all(results)
        await wait_until(lambda: expected <= set(irc_server.lines))
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_join_and_part_formatting(self, irc_server):
        """Test channel names are normalised and reasons are trailing"""
        client = IRCClient(keepalive_interval=0)
        await _connect(client, irc_server)

        await client.join_channel("room")
        assert await irc_server.expect("JOIN") == "JOIN #room"
        await client.join_channel("#locked", "secret")
        assert await irc_server.expect("JOIN") == "JOIN #locked secret"
        await client.leave_channel("room", "see you")
        assert await irc_server.expect("PART") == "PART #room :see you"
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_embedded_newline_is_rejected(self, irc_server):
        """Test a raw line with CR/LF inside is refused"""
        client = IRCClient(keepalive_interval=0)
        await _connect(client, irc_server)
        assert await client.send_command("PRIVMSG #room :a\r\nQUIT") is False
        assert client.connected
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_multiline_message_split(self, irc_server):
        """Test each text line becomes its own PRIVMSG"""
        client = IRCClient(keepalive_interval=0)
        sent = _recorder(client, ClientEvent.COMMAND_SENT)
        await _connect(client, irc_server)

        assert await client.send_message("#room", "first\nsecond")
        assert await irc_server.expect("PRIVMSG") == "PRIVMSG #room :first"
        assert await irc_server.expect("PRIVMSG") == "PRIVMSG #room :second"
        assert "PRIVMSG #room :second" in sent
        await client.disconnect()


class TestIdentAndKeepalive:
    """Test the ident responder lifecycle and keepalive"""

    @pytest.mark.asyncio
    async def test_ident_runs_for_session(self, irc_server):
        """Test the ident responder answers during the session only"""
        client = IRCClient(keepalive_interval=0)
        assert await _connect(client, irc_server, ident_host="127.0.0.1", ident_port=0)
        assert client.ident is not None
        port = client.ident.bound_port

        reader, writer = await asyncio.open_connection("127.0.0.1", port)
        writer.write(b"6667, 12345\r\n")
        await writer.drain()
        reply = await asyncio.wait_for(reader.readline(), 2)
        writer.close()
        assert reply == b"6667 , 12345 : USERID : UNIX : al\r\n"

        await client.disconnect()
        assert client.ident is None
        with pytest.raises(OSError):
            await asyncio.open_connection("127.0.0.1", port)

    @pytest.mark.asyncio
    async def test_keepalive_pings_then_times_out(self, irc_server):
        """Test a silent server is pinged and then declared dead"""
        client = IRCClient(keepalive_interval=0.2)
        statuses = _recorder(client, ClientEvent.STATUS)
        errors = _recorder(client, ClientEvent.ERROR)
        await _connect(client, irc_server)

        assert await irc_server.expect("PING") == "PING :127.0.0.1"
        await wait_until(lambda: "Connection timed out" in statuses, timeout=3.0)
        assert client.state is ConnectionState.DISCONNECTED
        assert any(isinstance(e, TimeoutError) for e in errors)


class TestStalledServer:
    """Test teardown when the server stops reading"""

    @pytest.mark.asyncio
    async def test_disconnect_does_not_wait_for_unread_output(self):
        """Test disconnect returns and notifies while writes are backed up"""
        release = asyncio.Event()

        async def never_reads(_reader, writer):
            await release.wait()
            writer.close()

        server = await asyncio.start_server(never_reads, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        client = IRCClient(keepalive_interval=0)
        statuses = _recorder(client, ClientEvent.STATUS)

        async def flood():
            line = "PRIVMSG #room :" + "x" * 400
            while await client.send_command(line):
                pass

        try:
            assert await client.connect("127.0.0.1", port, "alice", "al", "Alice A")
            flooding = asyncio.create_task(flood())
            await wait_until(
                lambda: client._writer is not None and client._writer.transport.get_write_buffer_size() > 0,
                timeout=10,
            )

            await asyncio.wait_for(client.disconnect("bye"), 5)
            assert client.state is ConnectionState.DISCONNECTED
            assert statuses[-1] == "Disconnected"
            await asyncio.wait_for(flooding, 5)
            assert await client.send_command("PING :x") is False
        finally:
            release.set()
            server.close()
            await server.wait_closed()
