"""Centralized internal error hierarchy.

These exceptions give semantic categories to failures raised inside the
client. Raw ``OSError``/``ValueError`` instances are wrapped at the component
boundary so callers only need to know this hierarchy.

Classes:
  IRCoreError        – Base for all internal errors.
  NetworkError       – Transient network/IO issues (socket reset, timeout).
  ParsingError       – Malformed protocol payloads (DCC offers, CTCP).
  CommandUsageError  – User typed a command with missing or bad arguments.
  TransferError      – A DCC transfer could not be started or was refused.
  ConfigError        – Configuration file or environment could not be used.
"""

from __future__ import annotations

from collections.abc import Mapping


class IRCoreError(Exception):
    """Base class for all internal errors with metadata support.

    Attributes:
        data: Dictionary containing arbitrary structured context data.
    """

    data: dict[str, object]

    def __init__(
        self, message: str, *, data: Mapping[str, object] | None = None
    ) -> None:
        super().__init__(message)
        # Copy into a plain dict to avoid unexpected mutations from caller.
        self.data = dict(data) if data else {}


class NetworkError(IRCoreError):
    """Network or transport layer failure (connect, read, write)."""


class ParsingError(IRCoreError):
    """A protocol payload could not be interpreted."""


class CommandUsageError(IRCoreError):
    """A slash-command was invoked without the arguments it needs.

    The message is the usage text shown back to the user.
    """

    def __init__(self, usage: str, *, command: str | None = None) -> None:
        super().__init__(usage, data={"command": command} if command else None)
        self.usage = usage


class TransferError(IRCoreError):
    """A DCC transfer could not be created."""


class ConfigError(IRCoreError):
    """Configuration could not be loaded or validated."""


__all__ = [
    "IRCoreError",
    "NetworkError",
    "ParsingError",
    "CommandUsageError",
    "TransferError",
    "ConfigError",
]
