"""Ident (RFC 1413) responder.

Answers ``<server-port> , <client-port>`` queries with our username. Every
failure on a single query is swallowed: ident is a courtesy to the IRC server
and must never disturb the session that started it.
"""

from __future__ import annotations

import asyncio
import logging

from ..constants import IDENT_READ_TIMEOUT
from ..logs.logger import logger


def build_ident_reply(request: str, username: str) -> str | None:
    """Return the reply line for ``request`` or ``None`` when it is invalid."""
    parts = request.strip().split(",")
    if len(parts) != 2:
        return None
    server_port, client_port = (p.strip() for p in parts)
    if not (server_port.isdigit() and client_port.isdigit()):
        return None
    return f"{server_port} , {client_port} : USERID : UNIX : {username}"


class IdentResponder:
    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        read_timeout: float = IDENT_READ_TIMEOUT,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.read_timeout = read_timeout
        self.queries_answered = 0
        self._server: asyncio.Server | None = None

    @property
    def running(self) -> bool:
        return self._server is not None

    @property
    def bound_port(self) -> int | None:
        if not self._server or not self._server.sockets:
            return None
        return self._server.sockets[0].getsockname()[1]

    async def start(self) -> None:
        """Bind and start accepting queries.

        Raises:
            OSError: If the address cannot be bound.
        """
        if self._server:
            return
        self._server = await asyncio.start_server(self._handle_query, self.host, self.port)
        logger.log_event(
            "ident", "listening", host=self.host, port=self.bound_port, user=self.username
        )

    async def stop(self) -> None:
        server, self._server = self._server, None
        if server is None:
            return
        server.close()
        await server.wait_closed()
        logger.log_event("ident", "stopped", level=logging.DEBUG, host=self.host)

    async def _handle_query(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        try:
            raw = await asyncio.wait_for(reader.readline(), timeout=self.read_timeout)
            request = raw.decode("ascii").strip()
            reply = build_ident_reply(request, self.username)
            if reply is None:
                logger.log_event(
                    "ident", "invalid_query", level=logging.DEBUG, request=request
                )
                return
            writer.write(f"{reply}\r\n".encode("ascii"))
            await writer.drain()
            self.queries_answered += 1
            logger.log_event("ident", "answered", level=logging.DEBUG, request=request)
        except (OSError, TimeoutError, UnicodeError, ValueError) as e:
            logger.log_event(
                "ident", "query_error", level=logging.DEBUG, error=str(e)
            )
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                pass
