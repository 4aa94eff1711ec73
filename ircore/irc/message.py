"""IRC message codec.

An IRC line has the general form::

    [:prefix] command [params ...] [:trailing]

``parse_irc_message`` turns one line into an immutable :class:`IRCMessage`
(or ``None`` when the line is malformed) and ``encode_irc_message`` does the
reverse. Neither function raises on inbound data; malformed input is the
caller's to count and drop.
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from dataclasses import dataclass, field

CTCP_DELIMITER = "\x01"


@dataclass(frozen=True, slots=True)
class IRCMessage:
    command: str
    params: tuple[str, ...] = ()
    prefix: str | None = None
    raw: str = field(default="", compare=False)
    received_at: float = field(default_factory=time.time, compare=False)

    @property
    def sender(self) -> str | None:
        """Nickname part of the prefix (everything before ``!``)."""
        if not self.prefix:
            return None
        idx = self.prefix.find("!")
        return self.prefix[:idx] if idx > 0 else self.prefix

    @property
    def host(self) -> str | None:
        if not self.prefix:
            return None
        idx = self.prefix.find("@")
        return self.prefix[idx + 1 :] if idx > 0 else None

    @property
    def target(self) -> str | None:
        return self.params[0] if self.params else None

    @property
    def content(self) -> str | None:
        return self.params[-1] if len(self.params) > 1 else None

    @property
    def verb(self) -> str:
        return self.command.upper()

    @property
    def is_private_message(self) -> bool:
        return self.verb == "PRIVMSG"

    @property
    def is_notice(self) -> bool:
        return self.verb == "NOTICE"

    @property
    def is_join(self) -> bool:
        return self.verb == "JOIN"

    @property
    def is_part(self) -> bool:
        return self.verb == "PART"

    @property
    def is_quit(self) -> bool:
        return self.verb == "QUIT"

    @property
    def is_nick(self) -> bool:
        return self.verb == "NICK"

    @property
    def is_mode(self) -> bool:
        return self.verb == "MODE"

    @property
    def is_ping(self) -> bool:
        return self.verb == "PING"

    @property
    def is_pong(self) -> bool:
        return self.verb == "PONG"

    @property
    def is_numeric(self) -> bool:
        return len(self.command) == 3 and self.command.isdigit()

    @property
    def is_ctcp(self) -> bool:
        return (
            (self.is_private_message or self.is_notice)
            and self.content is not None
            and parse_ctcp(self.content) is not None
        )

    def __str__(self) -> str:
        return self.raw or encode_irc_message(self.command, self.params)


def parse_irc_message(line: str) -> IRCMessage | None:
    """Decode one protocol line.

    Returns ``None`` for empty lines, lines carrying only a prefix and lines
    whose command token is not a word or numeric.
    """
    raw = line.rstrip("\r\n")
    if not raw.strip():
        return None

    prefix: str | None = None
    rest = raw
    if rest.startswith(":"):
        space = rest.find(" ")
        if space == -1:
            return None
        prefix = rest[1:space]
        rest = rest[space + 1 :]

    trailing: str | None = None
    idx = rest.find(" :")
    if idx != -1:
        rest, trailing = rest[:idx], rest[idx + 2 :]

    tokens = rest.split()
    if not tokens:
        return None
    command, *middle = tokens
    if not command.isalnum():
        return None

    params = list(middle)
    if trailing is not None:
        params.append(trailing)
    return IRCMessage(command=command, params=tuple(params), prefix=prefix, raw=raw)


def encode_irc_message(command: str, params: Sequence[str] = ()) -> str:
    """Encode ``command`` and ``params`` into one line without terminator.

    The final parameter is written in trailing form (``:`` prefixed) when it
    is empty, contains a space or starts with ``:``.

    Raises:
        ValueError: If the command is empty or a middle parameter cannot be
            represented on the wire.
    """
    if not command or " " in command:
        raise ValueError(f"invalid IRC command: {command!r}")
    parts = [command]
    if params:
        *middle, last = params
        for param in middle:
            if not param or " " in param or param.startswith(":"):
                raise ValueError(f"only the final parameter may be empty or contain spaces: {param!r}")
            parts.append(param)
        if not last or " " in last or last.startswith(":"):
            last = f":{last}"
        parts.append(last)
    return " ".join(parts)


def build_ctcp(command: str, parameter: str | None = None) -> str:
    body = f"{command.upper()} {parameter}" if parameter else command.upper()
    return f"{CTCP_DELIMITER}{body}{CTCP_DELIMITER}"


def parse_ctcp(text: str) -> tuple[str, str | None] | None:
    """Split a 0x01-framed payload into ``(COMMAND, parameter)``."""
    if len(text) < 2 or not text.startswith(CTCP_DELIMITER):
        return None
    body = text[1:-1] if text.endswith(CTCP_DELIMITER) else text[1:]
    if not body:
        return None
    command, _, parameter = body.partition(" ")
    if not command:
        return None
    return command.upper(), parameter or None


__all__ = [
    "IRCMessage",
    "parse_irc_message",
    "encode_irc_message",
    "build_ctcp",
    "parse_ctcp",
    "CTCP_DELIMITER",
]
