"""Shared IRC data models."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum, auto


class ConnectionState(Enum):
    DISCONNECTED = auto()
    CONNECTING = auto()
    REGISTERED = auto()


class ClientEvent(Enum):
    MESSAGE = "message"
    STATUS = "status"
    ERROR = "error"
    CTCP_REQUEST = "ctcp_request"
    DCC_REQUEST = "dcc_request"
    COMMAND_SENT = "command_sent"


@dataclass(slots=True)
class CTCPRequest:
    sender: str
    target: str
    command: str
    parameter: str | None = None
    timestamp: float = field(default_factory=time.time)


@dataclass(slots=True)
class ConnectParams:
    """Arguments of the last ``connect`` call, kept for ``reconnect``."""

    server: str
    port: int
    nickname: str
    username: str
    realname: str
    use_ssl: bool = False
    password: str | None = None
    ident_host: str | None = None
    ident_port: int = 113
