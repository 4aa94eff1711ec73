"""Slash-command dispatcher.

Turns ``/name arg ...`` input into protocol actions on an :class:`IRCClient`.
Every outcome is reported through the processor's :class:`EventHub`:

* ``COMMAND_EXECUTED`` - the command line, for echoing;
* ``COMMAND_ERROR`` - usage text or the failure message;
* ``UNKNOWN_COMMAND`` - the unrecognised name;
* ``OUTPUT`` / ``CLEAR`` - local-only output for the front-end.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from pydantic import ValidationError

from ..config.servers import ServerInfo, ServerList
from ..constants import CLIENT_NAME, CLIENT_VERSION, DEFAULT_IRC_PORT
from ..errors.handling import log_error
from ..errors.internal import CommandUsageError, IRCoreError, NetworkError
from ..irc.client import CHANNEL_PREFIXES
from ..irc.events import EventHub
from ..logs.logger import logger
from ..utils.helpers import format_bytes

if TYPE_CHECKING:  # pragma: no cover
    from ..config.model import ClientConfig
    from ..dcc.models import Transfer
    from ..dcc.service import DCCService
    from ..irc.client import IRCClient


class CommandEvent(Enum):
    COMMAND_EXECUTED = "command_executed"
    COMMAND_ERROR = "command_error"
    UNKNOWN_COMMAND = "unknown_command"
    OUTPUT = "output"
    CLEAR = "clear"


class CommandOutcome(Enum):
    EXECUTED = "executed"
    USAGE_ERROR = "usage_error"
    UNKNOWN = "unknown"
    FAILED = "failed"
    NOT_A_COMMAND = "not_a_command"


@dataclass(frozen=True, slots=True)
class CommandCall:
    """One parsed invocation."""

    name: str
    args: tuple[str, ...]
    channel: str | None
    rest: str = ""

    def tail(self, skip: int) -> str:
        """Text after the first ``skip`` arguments with its spacing intact."""
        parts = self.rest.split(None, skip)
        return parts[skip] if len(parts) > skip else ""


Handler = Callable[[CommandCall], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class CommandSpec:
    name: str
    handler: Handler
    usage: str
    summary: str
    aliases: tuple[str, ...] = field(default=())
    min_args: int = 0


def _is_channel(token: str) -> bool:
    return token.startswith(CHANNEL_PREFIXES)


def _parse_port(value: str, usage: str) -> int:
    try:
        port = int(value)
    except ValueError as e:
        raise CommandUsageError(usage) from e
    if not 1 <= port <= 65535:
        raise CommandUsageError(usage)
    return port


class CommandProcessor:  # pylint: disable=too-many-public-methods
    def __init__(
        self,
        client: IRCClient,
        *,
        config: ClientConfig | None = None,
        servers: ServerList | None = None,
        transfers: DCCService | None = None,
        prefix: str = "/",
    ) -> None:
        self.client = client
        self.config = config
        self.servers = servers if servers is not None else ServerList()
        self.transfers = transfers
        self.prefix = prefix
        self.events = EventHub("commands")
        self._specs: list[CommandSpec] = self._build_table()
        self._commands: dict[str, CommandSpec] = {}
        for spec in self._specs:
            for name in (spec.name, *spec.aliases):
                self._commands[name] = spec

    def on(self, event: CommandEvent, handler: Callable[..., object]) -> Callable[[], None]:
        return self.events.subscribe(event, handler)

    @property
    def command_names(self) -> list[str]:
        return sorted(self._commands)

    def spec_for(self, name: str) -> CommandSpec | None:
        return self._commands.get(name.lower())

    # ------------------------------------------------------------------ #
    #  Dispatch                                                            #
    # ------------------------------------------------------------------ #

    async def process_command(self, text: str, current_channel: str | None = None) -> CommandOutcome:
        """Dispatch one prefixed command line.

        Never raises: usage problems, unknown names and handler failures are
        reported as events and reflected in the returned outcome.
        """
        if not text or not text.startswith(self.prefix):
            return CommandOutcome.NOT_A_COMMAND
        body = text[len(self.prefix) :]
        parts = body.split()
        if not parts:
            return CommandOutcome.NOT_A_COMMAND
        name = parts[0].lower()
        spec = self._commands.get(name)
        if spec is None:
            logger.log_event("commands", "unknown", level=logging.DEBUG, command=name)
            await self.events.emit(CommandEvent.UNKNOWN_COMMAND, name)
            return CommandOutcome.UNKNOWN

        call = CommandCall(
            name=name,
            args=tuple(parts[1:]),
            channel=current_channel,
            rest=body.lstrip().split(None, 1)[1] if len(parts) > 1 else "",
        )
        if len(call.args) < spec.min_args:
            await self._usage_error(spec.usage)
            return CommandOutcome.USAGE_ERROR
        try:
            await spec.handler(call)
        except CommandUsageError as e:
            await self._usage_error(e.usage)
            return CommandOutcome.USAGE_ERROR
        except Exception as e:  # noqa: BLE001
            log_error(f"Command /{spec.name} failed", e, context={"command": name}, level=logging.WARNING)
            await self.events.emit(CommandEvent.COMMAND_ERROR, f"Error executing command: {e}")
            return CommandOutcome.FAILED
        logger.log_event("commands", "executed", level=logging.DEBUG, command=spec.name, args=len(call.args))
        await self.events.emit(CommandEvent.COMMAND_EXECUTED, text)
        return CommandOutcome.EXECUTED

    async def submit(self, text: str, current_channel: str | None = None) -> CommandOutcome:
        """Handle one line of user input.

        Prefixed lines are commands; a doubled prefix sends the rest
        literally; anything else is a message to ``current_channel``.
        """
        if text.startswith(self.prefix) and not text.startswith(self.prefix * 2):
            return await self.process_command(text, current_channel)
        if text.startswith(self.prefix * 2):
            text = text[len(self.prefix) :]
        if not text.strip():
            return CommandOutcome.NOT_A_COMMAND
        if current_channel is None:
            await self.events.emit(
                CommandEvent.COMMAND_ERROR, f"No channel selected; join one with {self.prefix}join <channel>"
            )
            return CommandOutcome.USAGE_ERROR
        if not await self.client.send_message(current_channel, text):
            await self.events.emit(CommandEvent.COMMAND_ERROR, "Not connected to a server")
            return CommandOutcome.FAILED
        return CommandOutcome.EXECUTED

    async def _usage_error(self, usage: str) -> None:
        await self.events.emit(CommandEvent.COMMAND_ERROR, f"Usage: {self.prefix}{usage}")

    async def _output(self, text: str) -> None:
        await self.events.emit(CommandEvent.OUTPUT, text)

    @staticmethod
    def _sent(ok: bool) -> None:
        if not ok:
            raise NetworkError("Not connected to a server")

    async def _send(self, raw: str) -> None:
        self._sent(await self.client.send_command(raw))

    def _server_target(self, call: CommandCall) -> str | None:
        return call.args[0] if call.args else self.client.server

    def _split_channel(self, call: CommandCall, usage: str) -> tuple[str, str]:
        """Channel from the first argument when it looks like one, else the current one."""
        if call.args and _is_channel(call.args[0]):
            return call.args[0], call.tail(1)
        if call.channel is None:
            raise CommandUsageError(usage)
        return call.channel, call.rest

    def _require_channel(self, call: CommandCall, usage: str) -> str:
        if call.channel is None:
            raise CommandUsageError(usage)
        return call.channel

    # ------------------------------------------------------------------ #
    #  Connection                                                          #
    # ------------------------------------------------------------------ #

    async def _connect(self, call: CommandCall) -> None:
        usage = "connect <server> [port] [password]"
        bookmark = self.servers.get(call.args[0])
        host = bookmark.host if bookmark else call.args[0]
        port = bookmark.port if bookmark else DEFAULT_IRC_PORT
        use_ssl = bookmark.use_ssl if bookmark else bool(self.config and self.config.use_ssl)
        if len(call.args) > 1:
            port = _parse_port(call.args[1], usage)
        password = call.args[2] if len(call.args) > 2 else (self.config.password if self.config else None)

        config = self.config
        nickname = config.nickname if config else self.client.nickname
        if not nickname:
            raise IRCoreError("No nickname configured")
        username = (config.username if config else None) or self.client.username or nickname
        realname = (config.realname if config else None) or self.client.realname or nickname
        await self._output(f"Connecting to {host}:{port}...")
        ok = await self.client.connect(
            host,
            port,
            nickname,
            username,
            realname,
            use_ssl=use_ssl,
            password=password,
            ident_host=config.ident_host if config else None,
            ident_port=config.ident_port if config else 113,
        )
        if not ok:
            raise NetworkError(f"Could not connect to {host}:{port}")

    async def _disconnect(self, call: CommandCall) -> None:
        await self.client.disconnect(call.rest or None)

    async def _reconnect(self, _call: CommandCall) -> None:
        if not await self.client.reconnect():
            raise IRCoreError("No previous connection to restore")

    # ------------------------------------------------------------------ #
    #  Channels                                                            #
    # ------------------------------------------------------------------ #

    async def _join(self, call: CommandCall) -> None:
        key = call.args[1] if len(call.args) > 1 else None
        self._sent(await self.client.join_channel(call.args[0], key))

    async def _part(self, call: CommandCall) -> None:
        channel, reason = self._split_channel(call, "part [channel] [reason]")
        self._sent(await self.client.leave_channel(channel, reason or None))

    async def _topic(self, call: CommandCall) -> None:
        channel, topic = self._split_channel(call, "topic [channel] [new topic]")
        await self._send(f"TOPIC {channel} :{topic}" if topic else f"TOPIC {channel}")

    async def _names(self, call: CommandCall) -> None:
        channel = call.args[0] if call.args else call.channel
        if channel is None:
            raise CommandUsageError("names [channel]")
        await self._send(f"NAMES {channel}")

    async def _list(self, call: CommandCall) -> None:
        await self._send(f"LIST {','.join(call.args)}" if call.args else "LIST")

    # ------------------------------------------------------------------ #
    #  Users and messages                                                  #
    # ------------------------------------------------------------------ #

    async def _nick(self, call: CommandCall) -> None:
        await self._send(f"NICK {call.args[0]}")

    async def _whois(self, call: CommandCall) -> None:
        await self._send(f"WHOIS {call.args[0]}")

    async def _msg(self, call: CommandCall) -> None:
        self._sent(await self.client.send_message(call.args[0], call.tail(1)))

    async def _notice(self, call: CommandCall) -> None:
        self._sent(await self.client.send_notice(call.args[0], call.tail(1)))

    async def _me(self, call: CommandCall) -> None:
        channel = self._require_channel(call, "me <action>")
        self._sent(await self.client.send_action(channel, call.rest))

    async def _ctcp(self, call: CommandCall) -> None:
        target, command = call.args[0], call.args[1].upper()
        self._sent(await self.client.send_ctcp(target, command, call.tail(2) or None))
        await self._output(f"Sent CTCP {command} to {target}")

    # ------------------------------------------------------------------ #
    #  Server queries                                                      #
    # ------------------------------------------------------------------ #

    def _server_query(self, verb: str) -> Handler:
        async def handler(call: CommandCall) -> None:
            target = self._server_target(call)
            await self._send(f"{verb} {target}" if target else verb)

        return handler

    # ------------------------------------------------------------------ #
    #  Modes                                                               #
    # ------------------------------------------------------------------ #

    async def _mode(self, call: CommandCall) -> None:
        await self._send(f"MODE {call.rest}")

    def _mode_change(self, flag: str, usage: str) -> Handler:
        async def handler(call: CommandCall) -> None:
            channel = self._require_channel(call, usage)
            await self._send(f"MODE {channel} {flag} {call.args[0]}")

        return handler

    async def _kick(self, call: CommandCall) -> None:
        channel = self._require_channel(call, "kick <nickname> [reason]")
        reason = call.tail(1) or "Kicked"
        await self._send(f"KICK {channel} {call.args[0]} :{reason}")

    async def _raw(self, call: CommandCall) -> None:
        await self._send(call.rest)

    # ------------------------------------------------------------------ #
    #  Local                                                               #
    # ------------------------------------------------------------------ #

    async def _clear(self, _call: CommandCall) -> None:
        await self.events.emit(CommandEvent.CLEAR)
        await self._output("Clearing chat...")

    async def _help(self, call: CommandCall) -> None:
        if call.args:
            spec = self.spec_for(call.args[0].lstrip(self.prefix))
            if spec is None:
                raise IRCoreError(f"No help for unknown command: {call.args[0]}")
            lines = [f"Usage: {self.prefix}{spec.usage}", spec.summary]
            if spec.aliases:
                lines.append("Aliases: " + ", ".join(f"{self.prefix}{a}" for a in spec.aliases))
            await self._output("\n".join(lines))
            return
        names = ", ".join(spec.name for spec in self._specs)
        await self._output(f"Available commands: {names}\nType {self.prefix}help <command> for details.")

    async def _about(self, _call: CommandCall) -> None:
        await self._output(f"{CLIENT_NAME} {CLIENT_VERSION} - IRC client core with DCC file transfers")

    async def _servers(self, _call: CommandCall) -> None:
        servers = self.servers.all()
        if not servers:
            await self._output("No saved servers")
            return
        lines = [
            f"{s.display_name} - {s.host}:{s.port}{' (ssl)' if s.use_ssl else ''}{' *' if s.is_favorite else ''}"
            for s in servers
        ]
        await self._output("Saved servers:\n" + "\n".join(lines))

    async def _addserver(self, call: CommandCall) -> None:
        usage = "addserver <name> <host> [port] [ssl]"
        name, host = call.args[0], call.args[1]
        port = _parse_port(call.args[2], usage) if len(call.args) > 2 else DEFAULT_IRC_PORT
        use_ssl = len(call.args) > 3 and call.args[3].lower() in ("ssl", "tls", "true", "yes", "1")
        try:
            server = self.servers.add(ServerInfo(name=name, host=host, port=port, use_ssl=use_ssl))
        except ValidationError as e:
            raise CommandUsageError(usage) from e
        await self._output(f"Added server: {server.name} ({server.host}:{server.port})")

    async def _removeserver(self, call: CommandCall) -> None:
        name = call.rest
        if self.servers.remove(name):
            await self._output(f"Removed server: {name}")
        else:
            await self._output(f"No saved server named {name}")

    # ------------------------------------------------------------------ #
    #  DCC                                                                 #
    # ------------------------------------------------------------------ #

    def _require_transfers(self) -> DCCService:
        if self.transfers is None:
            raise IRCoreError("DCC transfers are not available")
        return self.transfers

    def _find_transfer(self, id_prefix: str) -> Transfer | None:
        matches = [t for t in self._require_transfers().transfers() if t.id.startswith(id_prefix.lower())]
        return matches[0] if len(matches) == 1 else None

    async def _dcc(self, call: CommandCall) -> None:
        usage = "dcc send <nickname> <file> | dcc cancel <id> | dcc list"
        action = call.args[0].lower()
        if action == "list":
            await self._dcc_list()
        elif action == "send" and len(call.args) >= 3:
            await self._dcc_send(call.args[1], call.tail(2))
        elif action == "cancel" and len(call.args) >= 2:
            await self._dcc_cancel(call.args[1])
        else:
            raise CommandUsageError(usage)

    async def _dcc_send(self, target: str, path: str) -> None:
        service = self._require_transfers()
        transfer = await service.initiate_send(target, path)
        offered = await self.client.send_dcc_offer(
            target, transfer.file_name, transfer.file_size, transfer.address or "", transfer.port
        )
        if not offered:
            await service.cancel_transfer(transfer.id)
            raise NetworkError("Not connected to a server")
        await self._output(
            f"Offering {transfer.file_name} ({format_bytes(transfer.file_size)}) to {target} [{transfer.id[:8]}]"
        )

    async def _dcc_cancel(self, id_prefix: str) -> None:
        transfer = self._find_transfer(id_prefix)
        if transfer is None or not await self._require_transfers().cancel_transfer(transfer.id):
            raise IRCoreError(f"No active transfer matching {id_prefix}")
        await self._output(f"Cancelled transfer {transfer.id[:8]} ({transfer.file_name})")

    async def _dcc_list(self) -> None:
        transfers = self._require_transfers().transfers()
        if not transfers:
            await self._output("No transfers")
            return
        lines = [
            f"{t.id[:8]} {t.direction.value:<7} {t.file_name} "
            f"{'to' if t.direction.value == 'send' else 'from'} {t.peer} "
            f"{t.status.name.lower()} {t.progress_percentage:.0f}%"
            + (f" ({t.error_message})" if t.error_message else "")
            for t in transfers
        ]
        await self._output("\n".join(lines))

    # ------------------------------------------------------------------ #
    #  Table                                                               #
    # ------------------------------------------------------------------ #

    def _build_table(self) -> list[CommandSpec]:
        spec = CommandSpec
        return [
            spec("connect", self._connect, "connect <server> [port] [password]", "Connects to an IRC server or a saved bookmark.", ("server",), 1),
            spec("disconnect", self._disconnect, "disconnect [reason]", "Disconnects from the server.", ("quit",)),
            spec("reconnect", self._reconnect, "reconnect", "Reconnects to the last server."),
            spec("join", self._join, "join <channel> [key]", "Joins a channel.", ("j",), 1),
            spec("part", self._part, "part [channel] [reason]", "Leaves a channel.", ("leave",)),
            spec("topic", self._topic, "topic [channel] [new topic]", "Gets or sets the channel topic."),
            spec("names", self._names, "names [channel]", "Lists users in a channel.", ("who",)),
            spec("list", self._list, "list [channels]", "Lists channels on the server."),
            spec("nick", self._nick, "nick <newnick>", "Changes your nickname.", ("nickname",), 1),
            spec("whois", self._whois, "whois <nickname>", "Gets information about a user.", (), 1),
            spec("msg", self._msg, "msg <nickname> <message>", "Sends a private message.", ("privmsg", "query"), 2),
            spec("notice", self._notice, "notice <nickname> <message>", "Sends a notice.", (), 2),
            spec("me", self._me, "me <action>", "Sends an action to the current channel.", ("action",), 1),
            spec("ping", self._server_query("PING"), "ping [target]", "Pings the server or a target."),
            spec("pong", self._server_query("PONG"), "pong [target]", "Sends a PONG."),
            spec("time", self._server_query("TIME"), "time [server]", "Asks the server for its time."),
            spec("version", self._server_query("VERSION"), "version [server]", "Asks the server for its version."),
            spec("info", self._server_query("INFO"), "info [server]", "Asks the server for its info."),
            spec("motd", self._server_query("MOTD"), "motd [server]", "Shows the message of the day."),
            spec("lusers", self._server_query("LUSERS"), "lusers [server]", "Shows user statistics."),
            spec("mode", self._mode, "mode <target> [modes] [parameters]", "Changes channel or user modes.", (), 1),
            spec("op", self._mode_change("+o", "op <nickname>"), "op <nickname>", "Gives operator status to a user.", (), 1),
            spec("deop", self._mode_change("-o", "deop <nickname>"), "deop <nickname>", "Removes operator status from a user.", (), 1),
            spec("voice", self._mode_change("+v", "voice <nickname>"), "voice <nickname>", "Gives voice to a user.", ("v",), 1),
            spec("devoice", self._mode_change("-v", "devoice <nickname>"), "devoice <nickname>", "Removes voice from a user.", ("dv",), 1),
            spec("ban", self._mode_change("+b", "ban <mask>"), "ban <mask>", "Bans a user from the channel.", (), 1),
            spec("unban", self._mode_change("-b", "unban <mask>"), "unban <mask>", "Lifts a ban.", (), 1),
            spec("kick", self._kick, "kick <nickname> [reason]", "Kicks a user from the channel.", (), 1),
            spec("ctcp", self._ctcp, "ctcp <target> <command> [parameter]", "Sends a CTCP request.", (), 2),
            spec("raw", self._raw, "raw <command>", "Sends a raw IRC line.", ("quote",), 1),
            spec("clear", self._clear, "clear", "Clears the chat window."),
            spec("help", self._help, "help [command]", "Shows help."),
            spec("about", self._about, "about", "Shows version information."),
            spec("servers", self._servers, "servers", "Lists saved servers."),
            spec("addserver", self._addserver, "addserver <name> <host> [port] [ssl]", "Saves a server bookmark.", (), 2),
            spec("removeserver", self._removeserver, "removeserver <name>", "Removes a server bookmark.", (), 1),
            spec("dcc", self._dcc, "dcc send <nickname> <file> | dcc cancel <id> | dcc list", "Sends, cancels or lists DCC file transfers.", (), 1),
        ]
