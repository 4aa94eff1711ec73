"""Persistent IRC session: registration, receive loop, keepalive and write path."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable

from ..constants import (
    CLIENT_NAME,
    CLIENT_VERSION,
    DEFAULT_IDENT_PORT,
    DEFAULT_QUIT_MESSAGE,
    IRC_CONNECT_TIMEOUT,
    IRC_KEEPALIVE_INTERVAL,
    IRC_QUIT_TIMEOUT,
    IRC_STREAM_LIMIT,
)
from ..errors.handling import log_error
from ..errors.internal import NetworkError, ParsingError
from ..logs.logger import logger
from ..utils.streams import close_writer
from .events import EventHub
from .ident import IdentResponder
from .message import (
    IRCMessage,
    build_ctcp,
    encode_irc_message,
    parse_ctcp,
    parse_irc_message,
)
from .models import ClientEvent, ConnectionState, ConnectParams, CTCPRequest

CHANNEL_PREFIXES = ("#", "&")
CTCP_SUPPORTED = "ACTION CLIENTINFO DCC FINGER PING TIME VERSION"


def normalize_channel(channel: str) -> str:
    name = channel.strip()
    return name if name.startswith(CHANNEL_PREFIXES) else f"#{name}"


class IRCClient:  # pylint: disable=too-many-instance-attributes
    def __init__(
        self,
        *,
        connect_timeout: float = IRC_CONNECT_TIMEOUT,
        keepalive_interval: float = IRC_KEEPALIVE_INTERVAL,
        quit_message: str = DEFAULT_QUIT_MESSAGE,
    ) -> None:
        self.server: str | None = None
        self.port: int | None = None
        self.nickname: str | None = None
        self.username: str | None = None
        self.realname: str | None = None
        self.use_ssl = False
        self.state = ConnectionState.DISCONNECTED
        self.connect_timeout = connect_timeout
        self.keepalive_interval = keepalive_interval
        self.quit_message = quit_message
        self.events = EventHub("irc")
        self.dropped_lines = 0
        self.last_server_activity = 0.0
        self._last_ping_sent = 0.0
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._write_lock = asyncio.Lock()
        self._connect_lock = asyncio.Lock()
        self._receive_task: asyncio.Task[None] | None = None
        self._keepalive_task: asyncio.Task[None] | None = None
        self._ident: IdentResponder | None = None
        self._last_params: ConnectParams | None = None

    @property
    def connected(self) -> bool:
        return self.state is ConnectionState.REGISTERED

    @property
    def ident(self) -> IdentResponder | None:
        return self._ident

    def on(self, event: ClientEvent, handler: Callable[..., object]) -> Callable[[], None]:
        """Subscribe to a client event; returns an unsubscribe callable."""
        return self.events.subscribe(event, handler)

    def _set_state(self, new_state: ConnectionState) -> None:
        if self.state != new_state:
            logger.log_event(
                "irc",
                "state_change",
                level=logging.DEBUG,
                nick=self.nickname,
                old_state=self.state.name,
                new_state=new_state.name,
            )
            self.state = new_state

    def is_self(self, nick: str | None) -> bool:
        return bool(nick and self.nickname and nick.lower() == self.nickname.lower())

    # ------------------------------------------------------------------ #
    #  Session lifecycle                                                   #
    # ------------------------------------------------------------------ #

    async def connect(
        self,
        server: str,
        port: int,
        nickname: str,
        username: str,
        realname: str,
        *,
        use_ssl: bool = False,
        password: str | None = None,
        ident_host: str | None = None,
        ident_port: int = DEFAULT_IDENT_PORT,
    ) -> bool:
        """Open the stream and register.

        Never raises for network trouble: failures are reported through the
        ``ERROR`` event and ``False`` is returned with the client back in
        ``DISCONNECTED``.
        """
        if self.state is not ConnectionState.DISCONNECTED:
            await self.disconnect("Changing servers")
        async with self._connect_lock:
            self._last_params = ConnectParams(
                server=server,
                port=port,
                nickname=nickname,
                username=username,
                realname=realname,
                use_ssl=use_ssl,
                password=password,
                ident_host=ident_host,
                ident_port=ident_port,
            )
            self.server, self.port = server, port
            self.nickname, self.username, self.realname = nickname, username, realname
            self.use_ssl = use_ssl
            self._set_state(ConnectionState.CONNECTING)
            logger.log_event(
                "irc", "connect_start", nick=nickname, server=server, port=port, ssl=use_ssl
            )
            await self._emit_status(f"Connecting to {server}:{port}...")

            try:
                reader, writer = await asyncio.wait_for(
                    asyncio.open_connection(
                        server, port, ssl=True if use_ssl else None, limit=IRC_STREAM_LIMIT
                    ),
                    timeout=self.connect_timeout,
                )
            except (OSError, TimeoutError) as e:
                await self._abort_connect(
                    NetworkError(
                        f"Could not connect to {server}:{port}: {str(e) or type(e).__name__}",
                        data={"server": server, "port": port},
                    )
                )
                return False
            self._reader, self._writer = reader, writer

            if ident_host:
                await self._start_ident(ident_host, ident_port, username)

            try:
                if password:
                    await self._write_line(f"PASS {password}")
                await self._write_line(encode_irc_message("NICK", [nickname]))
                await self._write_line(f"USER {username} 0 * :{realname}")
            except (OSError, ValueError) as e:
                await self._abort_connect(
                    NetworkError(f"Registration failed: {e}", data={"server": server})
                )
                return False

            now = time.monotonic()
            self.last_server_activity = now
            self._last_ping_sent = now
            self._set_state(ConnectionState.REGISTERED)
            self._receive_task = asyncio.create_task(
                self._receive_loop(reader), name="irc-receive"
            )
            if self.keepalive_interval > 0:
                self._keepalive_task = asyncio.create_task(
                    self._keepalive_loop(reader), name="irc-keepalive"
                )
            logger.log_event("irc", "connect_success", nick=nickname, server=server, port=port)
            await self._emit_status(f"Connected to {server}:{port}")
            return True

    async def disconnect(self, reason: str | None = None) -> None:
        """Send a courtesy QUIT and tear the session down.

        Always ends in ``DISCONNECTED`` with a ``STATUS`` event, even when the
        QUIT could not be written.
        """
        if self.state is ConnectionState.REGISTERED and self._writer is not None:
            try:
                await asyncio.wait_for(
                    self._write_line(f"QUIT :{reason or self.quit_message}"),
                    timeout=IRC_QUIT_TIMEOUT,
                )
            except (OSError, TimeoutError, ValueError) as e:
                logger.log_event(
                    "irc", "quit_failed", level=logging.DEBUG, nick=self.nickname, error=str(e)
                )
        await self._teardown("Disconnected")

    async def reconnect(self) -> bool:
        params = self._last_params
        if params is None:
            logger.log_event("irc", "reconnect_missing_details", level=logging.WARNING)
            return False
        logger.log_event("irc", "reconnect", nick=params.nickname, server=params.server)
        await self.disconnect("Reconnecting")
        return await self.connect(
            params.server,
            params.port,
            params.nickname,
            params.username,
            params.realname,
            use_ssl=params.use_ssl,
            password=params.password,
            ident_host=params.ident_host,
            ident_port=params.ident_port,
        )

    async def _start_ident(self, host: str, port: int, username: str) -> None:
        responder = IdentResponder(host, port, username)
        try:
            await responder.start()
        except OSError as e:
            await self._report_error(
                NetworkError(f"Ident responder could not bind {host}:{port}: {e}"),
                "Ident responder unavailable",
                level=logging.WARNING,
            )
            return
        self._ident = responder

    async def _abort_connect(self, error: NetworkError) -> None:
        writer, self._writer, self._reader = self._writer, None, None
        ident, self._ident = self._ident, None
        if writer is not None:
            await close_writer(writer, IRC_QUIT_TIMEOUT)
        if ident is not None:
            await ident.stop()
        self._set_state(ConnectionState.DISCONNECTED)
        await self._report_error(error, "IRC connect failed")

    async def _teardown(self, status: str) -> None:
        tasks = [t for t in (self._receive_task, self._keepalive_task) if t is not None]
        self._receive_task = self._keepalive_task = None
        writer, self._writer, self._reader = self._writer, None, None
        ident, self._ident = self._ident, None
        self._set_state(ConnectionState.DISCONNECTED)

        # The receive loop or keepalive may be tearing itself down
        current = asyncio.current_task()
        others = [t for t in tasks if t is not current]
        for task in others:
            if not task.done():
                task.cancel()
        if others:
            await asyncio.gather(*others, return_exceptions=True)
        if writer is not None:
            await close_writer(writer, IRC_QUIT_TIMEOUT)
        if ident is not None:
            await ident.stop()
        logger.log_event("irc", "disconnected", level=logging.WARNING, nick=self.nickname, status=status)
        await self._emit_status(status)

    # ------------------------------------------------------------------ #
    #  Write path                                                          #
    # ------------------------------------------------------------------ #

    async def _write_line(self, line: str) -> None:
        text = line.rstrip("\r\n")
        if "\r" in text or "\n" in text:
            raise ValueError("IRC lines must not contain CR or LF")
        writer = self._writer
        if writer is None:
            raise ConnectionError("not connected")
        async with self._write_lock:
            writer.write(f"{text}\r\n".encode())
            await writer.drain()
        await self.events.emit(ClientEvent.COMMAND_SENT, text)

    async def send_command(self, raw: str) -> bool:
        """Write one raw protocol line; a no-op returning ``False`` unless registered."""
        if self.state is not ConnectionState.REGISTERED or self._writer is None:
            logger.log_event("irc", "send_skipped", level=logging.DEBUG, command=raw.split(" ", 1)[0])
            return False
        try:
            await self._write_line(raw)
        except ValueError as e:
            logger.log_event("irc", "send_rejected", level=logging.WARNING, nick=self.nickname, error=str(e))
            return False
        except OSError as e:
            await self._report_error(NetworkError(f"Write failed: {e}"), "IRC write failed")
            if self.state is ConnectionState.REGISTERED:
                await self._teardown("Connection lost")
            return False
        return True

    async def _send_lines(self, verb: str, target: str, text: str) -> bool:
        ok = True
        for line in text.splitlines() or [""]:
            ok = await self.send_command(f"{verb} {target} :{line}") and ok
        return ok

    async def send_message(self, target: str, text: str) -> bool:
        return await self._send_lines("PRIVMSG", target, text)

    async def send_notice(self, target: str, text: str) -> bool:
        return await self._send_lines("NOTICE", target, text)

    async def join_channel(self, channel: str, key: str | None = None) -> bool:
        name = normalize_channel(channel)
        return await self.send_command(f"JOIN {name} {key}" if key else f"JOIN {name}")

    async def leave_channel(self, channel: str, reason: str | None = None) -> bool:
        name = normalize_channel(channel)
        return await self.send_command(f"PART {name} :{reason}" if reason else f"PART {name}")

    async def send_ctcp(self, target: str, command: str, parameter: str | None = None) -> bool:
        return await self.send_command(f"PRIVMSG {target} :{build_ctcp(command, parameter)}")

    async def send_ctcp_reply(self, target: str, command: str, parameter: str | None = None) -> bool:
        return await self.send_command(f"NOTICE {target} :{build_ctcp(command, parameter)}")

    async def send_action(self, target: str, text: str) -> bool:
        return await self.send_ctcp(target, "ACTION", text)

    async def send_dcc_offer(
        self,
        target: str,
        file_name: str,
        size: int,
        address: str,
        port: int,
        token: str | None = None,
    ) -> bool:
        # Local import: ircore.dcc imports this package while initialising
        from ..dcc.protocol import build_dcc_send

        offer = build_dcc_send(file_name, address, port, size, token)
        return await self.send_command(f"PRIVMSG {target} :{offer}")

    # ------------------------------------------------------------------ #
    #  Receive path                                                        #
    # ------------------------------------------------------------------ #

    async def _receive_loop(self, reader: asyncio.StreamReader) -> None:
        try:
            while self._reader is reader:
                try:
                    raw = await reader.readline()
                except ValueError as e:
                    # Line longer than the stream limit; the buffer has been discarded
                    self._drop_line("", reason=str(e))
                    continue
                if not raw:
                    break
                self.last_server_activity = time.monotonic()
                line = raw.decode("utf-8", errors="replace")
                message = parse_irc_message(line)
                if message is None:
                    if line.strip():
                        self._drop_line(line)
                    continue
                await self._handle_message(message)
        except asyncio.CancelledError:
            raise
        except OSError as e:
            if self._reader is reader:
                await self._report_error(NetworkError(f"Connection lost: {e}"), "IRC read failed")
                await self._teardown("Connection lost")
            return
        if self._reader is reader:
            logger.log_event("irc", "server_closed", level=logging.WARNING, nick=self.nickname)
            await self._teardown("Connection closed by server")

    def _drop_line(self, line: str, reason: str = "unparseable") -> None:
        self.dropped_lines += 1
        logger.log_event(
            "irc", "line_dropped", level=logging.DEBUG, line=line.strip()[:200], reason=reason
        )

    async def _handle_message(self, message: IRCMessage) -> None:
        if message.is_ping:
            token = message.params[-1] if message.params else (self.server or "")
            await self.send_command(encode_irc_message("PONG", [token]))
        elif message.command == "001" and message.params:
            self.nickname = message.params[0]
            logger.log_event("irc", "welcome", nick=self.nickname, server=message.sender)
        elif message.is_nick and message.params and self.is_self(message.sender):
            self.nickname = message.params[0]
        await self.events.emit(ClientEvent.MESSAGE, message)
        if message.is_private_message or message.is_notice:
            await self._handle_ctcp(message)

    async def _handle_ctcp(self, message: IRCMessage) -> None:
        content = message.content
        if not content:
            return
        sender = message.sender or ""
        target = message.target or ""
        body = content.strip("\x01")
        if message.is_private_message and body.upper().startswith("DCC "):
            from ..dcc.protocol import parse_dcc_request

            try:
                request = parse_dcc_request(sender, target, content)
            except ParsingError as e:
                logger.log_event("dcc", "offer_malformed", level=logging.WARNING, nick=sender, error=str(e))
                return
            if request is not None:
                logger.log_event(
                    "dcc",
                    "offer_received",
                    nick=sender,
                    type=request.type.value,
                    file=request.file_name,
                    size=request.file_size,
                )
                await self.events.emit(ClientEvent.DCC_REQUEST, request)
            return
        parsed = parse_ctcp(content)
        if parsed is None or message.is_notice:
            return
        command, parameter = parsed
        await self.events.emit(
            ClientEvent.CTCP_REQUEST, CTCPRequest(sender, target, command, parameter)
        )
        if command != "ACTION" and self.is_self(target):
            await self._answer_ctcp(sender, command, parameter)

    async def _answer_ctcp(self, sender: str, command: str, parameter: str | None) -> None:
        if command == "VERSION":
            reply: str | None = f"{CLIENT_NAME} {CLIENT_VERSION}"
        elif command == "PING":
            reply = parameter
        elif command == "TIME":
            reply = time.strftime("%a %b %d %H:%M:%S %Y")
        elif command == "FINGER":
            reply = self.realname or self.nickname
        elif command == "CLIENTINFO":
            reply = CTCP_SUPPORTED
        else:
            logger.log_event("irc", "ctcp_unsupported", level=logging.DEBUG, nick=sender, command=command)
            return
        logger.log_event("irc", "ctcp_reply", level=logging.DEBUG, nick=sender, command=command)
        await self.send_ctcp_reply(sender, command, reply)

    async def _keepalive_loop(self, reader: asyncio.StreamReader) -> None:
        interval = self.keepalive_interval
        while self._reader is reader:
            await asyncio.sleep(interval / 2)
            if self._reader is not reader:
                return
            silence = time.monotonic() - self.last_server_activity
            if silence >= interval * 2:
                await self._report_error(
                    TimeoutError(f"No data from server for {silence:.0f}s"), "IRC connection stale"
                )
                await self._teardown("Connection timed out")
                return
            if silence >= interval and self._last_ping_sent <= self.last_server_activity:
                self._last_ping_sent = time.monotonic()
                logger.log_event("irc", "keepalive_ping", level=logging.DEBUG, nick=self.nickname)
                await self.send_command(f"PING :{self.server}")

    # ------------------------------------------------------------------ #
    #  Notifications                                                       #
    # ------------------------------------------------------------------ #

    async def _emit_status(self, text: str) -> None:
        await self.events.emit(ClientEvent.STATUS, text)

    async def _report_error(
        self, error: Exception, message: str, level: int = logging.ERROR
    ) -> None:
        log_error(
            message,
            error,
            context={"server": self.server, "port": self.port, "nick": self.nickname},
            level=level,
        )
        await self.events.emit(ClientEvent.ERROR, error)
