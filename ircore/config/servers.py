"""Server bookmarks kept in memory for the ``/servers`` family of commands."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from ..constants import DEFAULT_IRC_PORT


class ServerInfo(BaseModel):
    """A named IRC server bookmark."""

    name: str = ""
    host: str = Field(min_length=1)
    port: int = Field(default=DEFAULT_IRC_PORT, ge=1, le=65535)
    use_ssl: bool = False
    is_favorite: bool = False

    @field_validator("host", "name", mode="before")
    @classmethod
    def strip_text(cls, v: object) -> object:
        return v.strip() if isinstance(v, str) else v

    @property
    def display_name(self) -> str:
        return self.name or f"{self.host}:{self.port}"


class ServerList:
    """Ordered bookmark list with case-insensitive names.

    Adding a server whose name already exists replaces it in place.
    """

    def __init__(self, servers: list[ServerInfo] | None = None) -> None:
        self._servers: list[ServerInfo] = []
        for server in servers or []:
            self.add(server)

    def __len__(self) -> int:
        return len(self._servers)

    def __iter__(self):
        return iter(list(self._servers))

    def all(self) -> list[ServerInfo]:
        return list(self._servers)

    def favorites(self) -> list[ServerInfo]:
        return [s for s in self._servers if s.is_favorite]

    def get(self, name: str) -> ServerInfo | None:
        key = name.strip().lower()
        for server in self._servers:
            if server.display_name.lower() == key:
                return server
        return None

    def add(self, server: ServerInfo) -> ServerInfo:
        if not server.name:
            server = server.model_copy(update={"name": server.display_name})
        for idx, existing in enumerate(self._servers):
            if existing.name.lower() == server.name.lower():
                self._servers[idx] = server
                return server
        self._servers.append(server)
        return server

    def remove(self, name: str) -> bool:
        server = self.get(name)
        if server is None:
            return False
        self._servers.remove(server)
        return True
