from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from ..constants import DEFAULT_IDENT_PORT, DEFAULT_IRC_PORT, DEFAULT_QUIT_MESSAGE, IRC_KEEPALIVE_INTERVAL
from .servers import ServerInfo


def normalize_channel_list(channels: list[str] | Any) -> list[str]:
    """Strip, lower-case, ``#``-prefix and deduplicate channel names, keeping order."""
    if not isinstance(channels, list):
        raise ValueError("channels must be a list")
    normalized = []
    for c in channels:
        if isinstance(c, str):
            stripped = c.strip().lower()
            if stripped and stripped not in ("#", "&"):
                normalized.append(stripped if stripped.startswith(("#", "&")) else f"#{stripped}")
    return list(dict.fromkeys(normalized))


class ClientConfig(BaseModel):
    """Identity and connection settings handed to the client.

    Attributes:
        server: Default server host; ``None`` means "connect later".
        port: Server port.
        nickname: Nickname to register with.
        username: Ident/USER name, defaults to the nickname.
        realname: Real name sent in USER.
        use_ssl: Wrap the connection in TLS.
        password: Optional server password (PASS).
        ident_host: Address to bind the ident responder to; ``None`` disables it.
        ident_port: Ident responder port.
        quit_message: Default QUIT reason.
        command_prefix: Character that introduces a slash command.
        channels: Channels joined after connecting.
        keepalive_interval: Seconds of server silence before a client PING.
        downloads_dir: Where inbound DCC files are stored.
        dcc_address: Address announced in DCC offers (autodetected when unset).
        dcc_bind_host: Address DCC listeners bind to.
        dcc_auto_accept: Accept inbound DCC SEND offers without asking.
        servers: Server bookmarks.
    """

    server: str | None = None
    port: int = Field(default=DEFAULT_IRC_PORT, ge=1, le=65535)
    nickname: str = Field(min_length=1, max_length=30)
    username: str | None = None
    realname: str = "ircore user"
    use_ssl: bool = False
    password: str | None = None
    ident_host: str | None = None
    ident_port: int = Field(default=DEFAULT_IDENT_PORT, ge=0, le=65535)
    quit_message: str = DEFAULT_QUIT_MESSAGE
    command_prefix: str = Field(default="/", min_length=1, max_length=1)
    channels: list[str] = Field(default_factory=list)
    keepalive_interval: float = Field(default=IRC_KEEPALIVE_INTERVAL, ge=0)
    downloads_dir: Path | None = None
    dcc_address: str | None = None
    dcc_bind_host: str = "0.0.0.0"
    dcc_auto_accept: bool = False
    servers: list[ServerInfo] = Field(default_factory=list)

    @field_validator("nickname", mode="before")
    @classmethod
    def validate_nickname(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.strip()
            if " " in v:
                raise ValueError("nickname must not contain spaces")
        return v

    @field_validator("channels", mode="before")
    @classmethod
    def validate_channels(cls, v: Any) -> list[str]:
        return normalize_channel_list(v)

    @model_validator(mode="after")
    def default_username(self) -> ClientConfig:
        if not self.username:
            self.username = self.nickname
        return self

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)
