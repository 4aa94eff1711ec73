#!/usr/bin/env python3
"""
Console front-end for the ircore client.

Reads command lines from stdin and prints the conversation to stdout; log
records go to stderr.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from collections.abc import Callable

from .commands import CommandEvent, CommandProcessor
from .config import ClientConfig, ServerList, load_config
from .constants import CONNECT_RETRY_ATTEMPTS, CONNECT_RETRY_MAX_WAIT
from .dcc import DCCRequest, DCCRequestType, DCCService, Transfer, TransferEvent
from .errors import ConfigError, NetworkError, TransferError, log_error, retry_async
from .grouping import AggregateReply, PendingGroup, ReplyCorrelator
from .irc import ClientEvent, CTCPRequest, IRCClient, IRCMessage, parse_ctcp
from .logging_config import LoggerConfigurator
from .utils import format_bytes, format_duration


def format_message(message: IRCMessage) -> str:
    """Render one inbound message as a transcript line."""
    sender = message.sender or message.prefix or ""
    target = message.target or ""
    content = message.content or ""
    if message.is_private_message:
        ctcp = parse_ctcp(content)
        if ctcp and ctcp[0] == "ACTION":
            return f"[{target}] * {sender} {ctcp[1] or ''}".rstrip()
        return f"[{target}] <{sender}> {content}"
    if message.is_notice:
        return f"-{sender}- {content.strip(chr(1))}"
    if message.is_join:
        return f"--> {sender} joined {target}"
    if message.is_part:
        return f"<-- {sender} left {target}" + (f" ({content})" if content else "")
    if message.is_quit:
        reason = message.params[0] if message.params else ""
        return f"<-- {sender} quit" + (f" ({reason})" if reason else "")
    if message.is_nick:
        return f"{sender} is now known as {target}"
    if message.verb == "KICK" and len(message.params) > 1:
        return f"<-- {message.params[1]} was kicked from {target} by {sender}" + (
            f" ({content})" if len(message.params) > 2 else ""
        )
    if message.verb == "TOPIC":
        return f"{sender} changed the topic of {target} to: {content}"
    if message.is_numeric:
        return " ".join(message.params[1:])
    return str(message)


def format_reply(unit: IRCMessage | AggregateReply) -> str:
    if isinstance(unit, AggregateReply):
        lines = [f"== {unit.title}"]
        lines.extend(f"   {format_message(m)}" for m in unit.messages)
        return "\n".join(lines)
    return format_message(unit)


def format_transfer(transfer: Transfer) -> str:
    direction = "to" if transfer.direction.value == "send" else "from"
    return f"{transfer.file_name} {direction} {transfer.peer} [{transfer.id[:8]}]"


class ConsoleSession:  # pylint: disable=too-many-instance-attributes
    """Wires the client, dispatcher, correlator and transfers to a console."""

    def __init__(
        self,
        config: ClientConfig,
        *,
        client: IRCClient | None = None,
        transfers: DCCService | None = None,
        out: Callable[[str], None] = print,
    ) -> None:
        self.config = config
        self.client = client or IRCClient(
            keepalive_interval=config.keepalive_interval, quit_message=config.quit_message
        )
        self.transfers = transfers or DCCService(
            config.downloads_dir,
            nickname=lambda: self.client.nickname or config.nickname,
            local_address=config.dcc_address,
            bind_host=config.dcc_bind_host,
        )
        self.servers = ServerList(config.servers)
        self.processor = CommandProcessor(
            self.client,
            config=config,
            servers=self.servers,
            transfers=self.transfers,
            prefix=config.command_prefix,
        )
        self.correlator = ReplyCorrelator(on_evict=self._on_group_evicted)
        self.current_channel: str | None = None
        self.pending_offers: list[DCCRequest] = []
        self._out = out
        self._wire()

    def _wire(self) -> None:
        self.client.on(ClientEvent.MESSAGE, self._on_message)
        self.client.on(ClientEvent.STATUS, lambda text: self._out(f"*** {text}"))
        self.client.on(ClientEvent.ERROR, lambda error: self._out(f"!!! {error}"))
        self.client.on(ClientEvent.CTCP_REQUEST, self._on_ctcp)
        self.client.on(ClientEvent.DCC_REQUEST, self._on_dcc_request)
        self.processor.on(CommandEvent.OUTPUT, self._out)
        self.processor.on(CommandEvent.COMMAND_ERROR, lambda text: self._out(f"!!! {text}"))
        self.processor.on(
            CommandEvent.UNKNOWN_COMMAND,
            lambda name: self._out(f"!!! Unknown command: {name} (try {self.config.command_prefix}help)"),
        )
        self.processor.on(CommandEvent.CLEAR, lambda: self._out("\x1b[2J\x1b[H"))
        self.transfers.on(TransferEvent.STARTED, lambda t: self._out(f"*** DCC started: {format_transfer(t)}"))
        self.transfers.on(TransferEvent.COMPLETED, self._on_transfer_completed)
        self.transfers.on(
            TransferEvent.FAILED,
            lambda t: self._out(f"!!! DCC failed: {format_transfer(t)}: {t.error_message}"),
        )
        self.transfers.on(TransferEvent.CANCELLED, lambda t: self._out(f"*** DCC cancelled: {format_transfer(t)}"))

    # ------------------------------------------------------------------ #
    #  Event handlers                                                      #
    # ------------------------------------------------------------------ #

    def _track_channel(self, message: IRCMessage) -> None:
        if not self.client.is_self(message.sender) or not message.params:
            return
        channel = message.params[0]
        if message.is_join:
            self.current_channel = channel
        elif message.is_part and self.current_channel and channel.lower() == self.current_channel.lower():
            self.current_channel = None

    def _on_message(self, message: IRCMessage) -> None:
        if message.is_ping or message.is_pong:
            return
        self._track_channel(message)
        if message.is_numeric:
            unit = self.correlator.route(message)
            if unit is not None:
                self._out(format_reply(unit))
            return
        if message.is_ctcp and not message.is_notice:
            ctcp = parse_ctcp(message.content or "")
            if ctcp and ctcp[0] != "ACTION":
                return
        self._out(format_message(message))

    def _on_group_evicted(self, group: PendingGroup) -> None:
        self._out(format_reply(group.to_aggregate()))

    def _on_ctcp(self, request: CTCPRequest) -> None:
        if request.command not in ("ACTION", "DCC"):
            self._out(f"*** CTCP {request.command} from {request.sender}")

    async def _on_dcc_request(self, request: DCCRequest) -> None:
        if request.type is not DCCRequestType.SEND:
            self._out(f"*** Ignoring DCC {request.type.value} from {request.sender}")
            return
        if self.config.dcc_auto_accept:
            await self.accept_offer(request)
            return
        self.pending_offers.append(request)
        number = len(self.pending_offers)
        self._out(
            f"*** DCC SEND offer #{number} from {request.sender}: {request.file_name} "
            f"({format_bytes(request.file_size)}). Type {self.config.command_prefix}accept {number} to download."
        )

    def _on_transfer_completed(self, transfer: Transfer) -> None:
        self._out(
            f"*** DCC completed: {format_transfer(transfer)} "
            f"({format_bytes(transfer.bytes_transferred)} in {format_duration(transfer.duration)})"
        )
        if transfer.file_path and transfer.direction.value == "receive":
            self._out(f"*** Saved to {transfer.file_path}")

    # ------------------------------------------------------------------ #
    #  Actions                                                             #
    # ------------------------------------------------------------------ #

    async def accept_offer(self, request: DCCRequest) -> Transfer | None:
        try:
            return await self.transfers.initiate_receive(
                request.sender,
                request.file_name,
                request.file_size,
                request.address,
                request.port,
                request.token,
            )
        except TransferError as e:
            self._out(f"!!! Cannot accept {request.file_name}: {e}")
            return None

    async def _accept_command(self, argument: str) -> None:
        if not self.pending_offers:
            self._out("!!! No pending DCC offers")
            return
        try:
            index = int(argument) - 1 if argument else len(self.pending_offers) - 1
        except ValueError:
            self._out(f"!!! Usage: {self.config.command_prefix}accept [number]")
            return
        if not 0 <= index < len(self.pending_offers):
            self._out(f"!!! No DCC offer #{index + 1}")
            return
        request = self.pending_offers.pop(index)
        await self.accept_offer(request)

    async def handle_line(self, line: str) -> bool:
        """Process one input line; returns ``False`` when the user asked to exit."""
        text = line.rstrip("\r\n")
        prefix = self.config.command_prefix
        head, _, argument = text.partition(" ")
        if head.lower() == f"{prefix}exit":
            return False
        if head.lower() == f"{prefix}accept":
            await self._accept_command(argument.strip())
            return True
        await self.processor.submit(text, self.current_channel)
        return True

    async def connect(self) -> bool:
        config = self.config
        if not config.server:
            self._out(f"*** No server configured; use {config.command_prefix}connect <server>")
            return False

        async def attempt(_attempt: int) -> tuple[bool, bool]:
            ok = await self.client.connect(
                config.server,
                config.port,
                config.nickname,
                config.username or config.nickname,
                config.realname,
                use_ssl=config.use_ssl,
                password=config.password,
                ident_host=config.ident_host,
                ident_port=config.ident_port,
            )
            return ok, not ok

        try:
            await retry_async(
                attempt,
                f"connect to {config.server}:{config.port}",
                max_attempts=CONNECT_RETRY_ATTEMPTS,
                max_wait=CONNECT_RETRY_MAX_WAIT,
            )
        except NetworkError as e:
            self._out(f"!!! {e}")
            return False
        for channel in config.channels:
            await self.client.join_channel(channel)
        return True

    async def run(self) -> None:
        await self.connect()
        while True:
            line = await asyncio.to_thread(sys.stdin.readline)
            if not line:
                break
            if not await self.handle_line(line):
                break

    async def close(self) -> None:
        await self.transfers.close()
        if self.client.connected:
            await self.client.disconnect()
        for unit in self.correlator.flush():
            self._out(format_reply(unit))


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="ircore", description="Console IRC client with DCC file transfers")
    parser.add_argument("--config", "-c", help="path to a JSON configuration file (default: $IRCORE_CONFIG)")
    parser.add_argument("--debug", action="store_true", help="enable debug logging")
    return parser.parse_args(argv)


async def main(argv: list[str] | None = None) -> int:
    """Main entry point for the console client.

    Returns:
        Process exit status.
    """
    args = parse_args(argv)
    if args.debug:
        os.environ["DEBUG"] = "true"
    LoggerConfigurator({"debug": args.debug}).configure()
    try:
        config = load_config(args.config)
    except ConfigError as e:
        log_error("Configuration error", e)
        return 2
    session = ConsoleSession(config)
    try:
        await session.run()
    finally:
        await session.close()
        logging.info("Session closed")
    return 0


def run() -> None:
    """Synchronous entry point for the ``ircore`` console script."""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        sys.exit(0)
    except asyncio.CancelledError:
        sys.exit(0)


if __name__ == "__main__":
    run()
