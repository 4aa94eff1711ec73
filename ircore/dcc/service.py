"""DCC file transfer service.

Each transfer runs in its own task with its own sockets and cancellation
signal. Nothing here touches the IRC connection: announcing an outbound
offer (``transfer.address``/``transfer.port``) is the caller's job.
"""

from __future__ import annotations

import asyncio
import logging
import socket
import struct
from collections.abc import Callable
from enum import Enum
from pathlib import Path

from ..constants import (
    DCC_ACCEPT_TIMEOUT,
    DCC_ACK_TIMEOUT,
    DCC_BIND_HOST,
    DCC_CHUNK_SIZE,
    DCC_CLOSE_TIMEOUT,
    DCC_CONNECT_TIMEOUT,
    DCC_DOWNLOADS_SUBDIR,
)
from ..errors.handling import log_error
from ..errors.internal import TransferError
from ..irc.events import EventHub
from ..logs.logger import logger
from ..utils.helpers import format_bytes, format_duration
from ..utils.streams import close_writer
from .models import Transfer, TransferDirection, TransferStatus
from .protocol import detect_local_address
from .registry import TransferEntry, TransferRegistry

_ACK = struct.Struct("!I")


class TransferEvent(Enum):
    STARTED = "started"
    PROGRESS = "progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


_TERMINAL_EVENTS = {
    TransferStatus.COMPLETED: TransferEvent.COMPLETED,
    TransferStatus.FAILED: TransferEvent.FAILED,
    TransferStatus.CANCELLED: TransferEvent.CANCELLED,
}


def default_downloads_dir() -> Path:
    return Path.home() / "Downloads" / DCC_DOWNLOADS_SUBDIR


def safe_file_name(file_name: str) -> str:
    """Strip any directory components a peer put into an offered name."""
    name = Path(file_name.replace("\\", "/")).name.strip()
    return name if name not in ("", ".", "..") else "download"


class DCCService:
    def __init__(
        self,
        downloads_dir: str | Path | None = None,
        *,
        nickname: str | Callable[[], str | None] = "me",
        local_address: str | None = None,
        bind_host: str = DCC_BIND_HOST,
        chunk_size: int = DCC_CHUNK_SIZE,
        accept_timeout: float = DCC_ACCEPT_TIMEOUT,
        connect_timeout: float = DCC_CONNECT_TIMEOUT,
        ack_timeout: float = DCC_ACK_TIMEOUT,
        close_timeout: float = DCC_CLOSE_TIMEOUT,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.downloads_dir = Path(downloads_dir) if downloads_dir else default_downloads_dir()
        self._nickname = nickname
        self.local_address = local_address
        self.bind_host = bind_host
        self.chunk_size = chunk_size
        self.accept_timeout = accept_timeout
        self.connect_timeout = connect_timeout
        self.ack_timeout = ack_timeout
        self.close_timeout = close_timeout
        self.registry = TransferRegistry()
        self.events = EventHub("dcc")

    @property
    def local_nick(self) -> str:
        nick = self._nickname() if callable(self._nickname) else self._nickname
        return nick or "me"

    def on(self, event: TransferEvent, handler: Callable[[Transfer], object]) -> Callable[[], None]:
        return self.events.subscribe(event, handler)

    # ------------------------------------------------------------------ #
    #  Public API                                                          #
    # ------------------------------------------------------------------ #

    async def initiate_send(self, target: str, file_path: str | Path) -> Transfer:
        """Offer ``file_path`` to ``target`` and wait for them in the background.

        Returns a snapshot carrying the listening ``port`` and the
        ``address`` to announce.

        Raises:
            TransferError: If the file does not exist or no port can be bound.
        """
        path = Path(file_path).expanduser()
        if not path.is_file():
            raise TransferError(f"File not found: {file_path}", data={"path": str(file_path)})
        transfer = Transfer(
            sender=self.local_nick,
            receiver=target,
            file_name=path.name,
            file_size=path.stat().st_size,
            direction=TransferDirection.SEND,
            file_path=str(path.resolve()),
        )
        try:
            listener = self._open_listener()
        except OSError as e:
            raise TransferError(f"Could not open DCC listener: {e}") from e
        transfer.port = listener.getsockname()[1]
        transfer.address = self.local_address or detect_local_address()

        entry = self.registry.add(transfer)
        entry.listener = listener
        logger.log_event(
            "dcc",
            "send_offered",
            target=target,
            file=transfer.file_name,
            size=format_bytes(transfer.file_size),
            address=transfer.address,
            port=transfer.port,
            transfer_id=transfer.id,
        )
        await self._emit(TransferEvent.STARTED, transfer)
        entry.task = asyncio.create_task(self._run_send(entry), name=f"dcc-send-{transfer.id}")
        return transfer.snapshot()

    async def initiate_receive(
        self,
        sender: str,
        file_name: str,
        file_size: int,
        address: str,
        port: int,
        token: str | None = None,
    ) -> Transfer:
        """Connect to a peer's offer and download into :attr:`downloads_dir`."""
        if file_size < 0:
            raise TransferError(f"Invalid file size: {file_size}")
        transfer = Transfer(
            sender=sender,
            receiver=self.local_nick,
            file_name=safe_file_name(file_name),
            file_size=file_size,
            direction=TransferDirection.RECEIVE,
            address=address,
            port=port,
            token=token,
        )
        entry = self.registry.add(transfer)
        logger.log_event(
            "dcc",
            "receive_accepted",
            nick=sender,
            file=transfer.file_name,
            size=format_bytes(file_size),
            address=address,
            port=port,
            transfer_id=transfer.id,
        )
        await self._emit(TransferEvent.STARTED, transfer)
        entry.task = asyncio.create_task(
            self._run_receive(entry), name=f"dcc-recv-{transfer.id}"
        )
        return transfer.snapshot()

    async def cancel_transfer(self, transfer_id: str) -> bool:
        """Cancel one transfer; other transfers are never touched."""
        entry = self.registry.get(transfer_id)
        if entry is None or entry.transfer.status.is_terminal:
            return False
        entry.cancel_event.set()
        task = entry.task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        # A task cancelled before its first step never reaches its cleanup
        entry.close_listener()
        await self._finish(entry, TransferStatus.CANCELLED)
        return entry.transfer.status is TransferStatus.CANCELLED

    def get_transfer(self, transfer_id: str) -> Transfer | None:
        entry = self.registry.get(transfer_id)
        return entry.transfer.snapshot() if entry else None

    def transfers(self) -> list[Transfer]:
        return [entry.transfer.snapshot() for entry in self.registry.entries()]

    def remove_transfer(self, transfer_id: str) -> bool:
        """Forget a finished transfer. Active transfers must be cancelled first."""
        entry = self.registry.get(transfer_id)
        if entry is None or not entry.transfer.status.is_terminal:
            return False
        return self.registry.remove(transfer_id) is not None

    async def wait_for(self, transfer_id: str) -> Transfer | None:
        """Wait until the transfer's task has finished and return its final state."""
        entry = self.registry.get(transfer_id)
        if entry is None:
            return None
        if entry.task is not None:
            await asyncio.gather(entry.task, return_exceptions=True)
        return entry.transfer.snapshot()

    async def close(self) -> None:
        for entry in self.registry.entries():
            if not entry.transfer.status.is_terminal:
                await self.cancel_transfer(entry.transfer.id)

    # ------------------------------------------------------------------ #
    #  Outbound                                                            #
    # ------------------------------------------------------------------ #

    def _open_listener(self) -> socket.socket:
        listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            listener.bind((self.bind_host, 0))
            listener.listen(1)
            listener.setblocking(False)
        except OSError:
            listener.close()
            raise
        return listener

    async def _run_send(self, entry: TransferEntry) -> None:
        transfer = entry.transfer
        writer: asyncio.StreamWriter | None = None
        try:
            transfer.advance(TransferStatus.CONNECTING)
            listener = entry.listener
            if listener is None:
                return
            loop = asyncio.get_running_loop()
            try:
                conn, peer = await asyncio.wait_for(
                    loop.sock_accept(listener), timeout=self.accept_timeout
                )
            except TimeoutError as e:
                raise TransferError(
                    f"{transfer.receiver} did not connect within {format_duration(self.accept_timeout)}"
                ) from e
            # Exactly one peer per offer
            entry.close_listener()
            reader, writer = await asyncio.open_connection(sock=conn)
            transfer.advance(TransferStatus.IN_PROGRESS)
            logger.log_event(
                "dcc",
                "peer_connected",
                level=logging.DEBUG,
                target=transfer.receiver,
                peer=f"{peer[0]}:{peer[1]}",
                transfer_id=transfer.id,
            )
            await self._stream_file(entry, writer)
            if entry.cancel_requested:
                return
            if transfer.bytes_transferred != transfer.file_size:
                raise TransferError(
                    f"file changed during transfer: sent {transfer.bytes_transferred} of {transfer.file_size} bytes"
                )
            await self._await_final_ack(reader, transfer)
            await self._finish(entry, TransferStatus.COMPLETED)
        except asyncio.CancelledError:
            raise
        except (OSError, TransferError, ValueError) as e:
            if not entry.cancel_requested:
                await self._fail(entry, e)
        finally:
            entry.close_listener()
            await self._close_writer(entry, writer)

    async def _stream_file(self, entry: TransferEntry, writer: asyncio.StreamWriter) -> None:
        transfer = entry.transfer
        with open(transfer.file_path, "rb") as source:
            while not entry.cancel_requested:
                chunk = await asyncio.to_thread(source.read, self.chunk_size)
                if not chunk:
                    break
                writer.write(chunk)
                await writer.drain()
                transfer.bytes_transferred += len(chunk)
                await self._emit(TransferEvent.PROGRESS, transfer)

    async def _await_final_ack(self, reader: asyncio.StreamReader, transfer: Transfer) -> None:
        """Read the receiver's 32-bit position acknowledgements.

        Draining them before closing keeps unread acks from turning our close
        into a reset that could truncate the tail of the file on their side.
        """
        if transfer.file_size == 0:
            return
        expected = transfer.file_size & 0xFFFFFFFF
        try:
            while True:
                data = await asyncio.wait_for(reader.readexactly(_ACK.size), timeout=self.ack_timeout)
                if _ACK.unpack(data)[0] == expected:
                    return
        except asyncio.IncompleteReadError:
            return
        except TimeoutError:
            logger.log_event(
                "dcc",
                "ack_timeout",
                level=logging.WARNING,
                target=transfer.receiver,
                transfer_id=transfer.id,
                timeout=self.ack_timeout,
            )

    # ------------------------------------------------------------------ #
    #  Inbound                                                             #
    # ------------------------------------------------------------------ #

    def _resolve_destination(self, file_name: str) -> Path:
        self.downloads_dir.mkdir(parents=True, exist_ok=True)
        candidate = self.downloads_dir / safe_file_name(file_name)
        counter = 1
        while candidate.exists():
            candidate = self.downloads_dir / f"{candidate.stem.rsplit(' (', 1)[0]} ({counter}){candidate.suffix}"
            counter += 1
        return candidate

    async def _run_receive(self, entry: TransferEntry) -> None:
        transfer = entry.transfer
        writer: asyncio.StreamWriter | None = None
        try:
            transfer.advance(TransferStatus.CONNECTING)
            try:
                reader, writer = await asyncio.wait_for(
                    asyncio.open_connection(transfer.address, transfer.port),
                    timeout=self.connect_timeout,
                )
            except TimeoutError as e:
                raise TransferError(
                    f"could not reach {transfer.address}:{transfer.port} within {format_duration(self.connect_timeout)}"
                ) from e
            destination = self._resolve_destination(transfer.file_name)
            transfer.file_path = str(destination)
            transfer.advance(TransferStatus.IN_PROGRESS)
            with destination.open("xb") as target:
                while transfer.bytes_transferred < transfer.file_size and not entry.cancel_requested:
                    wanted = min(self.chunk_size, transfer.file_size - transfer.bytes_transferred)
                    data = await reader.read(wanted)
                    if not data:
                        break
                    await asyncio.to_thread(target.write, data)
                    transfer.bytes_transferred += len(data)
                    await self._send_ack(writer, transfer)
                    await self._emit(TransferEvent.PROGRESS, transfer)
            if entry.cancel_requested:
                return
            if transfer.bytes_transferred < transfer.file_size:
                raise TransferError(
                    f"incomplete transfer: received {transfer.bytes_transferred} of {transfer.file_size} bytes"
                )
            await self._finish(entry, TransferStatus.COMPLETED)
        except asyncio.CancelledError:
            raise
        except (OSError, TransferError, ValueError) as e:
            if not entry.cancel_requested:
                await self._fail(entry, e)
        finally:
            await self._close_writer(entry, writer)

    @staticmethod
    async def _send_ack(writer: asyncio.StreamWriter, transfer: Transfer) -> None:
        try:
            writer.write(_ACK.pack(transfer.bytes_transferred & 0xFFFFFFFF))
            await writer.drain()
        except OSError as e:
            # A sender that hangs up right after its last chunk is normal
            logger.log_event(
                "dcc", "ack_failed", level=logging.DEBUG, transfer_id=transfer.id, error=str(e)
            )

    # ------------------------------------------------------------------ #
    #  Shared                                                              #
    # ------------------------------------------------------------------ #

    async def _close_writer(self, entry: TransferEntry, writer: asyncio.StreamWriter | None) -> None:
        if writer is None:
            return
        # Anything short of completion drops unsent data instead of waiting on the peer
        completed = entry.transfer.status is TransferStatus.COMPLETED
        await close_writer(writer, self.close_timeout, abort=not completed)

    async def _fail(self, entry: TransferEntry, error: BaseException) -> None:
        transfer = entry.transfer
        message = str(error) or type(error).__name__
        log_error(
            "DCC transfer failed",
            error,
            context={"transfer_id": transfer.id, "peer": transfer.peer, "file": transfer.file_name},
            level=logging.WARNING,
        )
        await self._finish(entry, TransferStatus.FAILED, message)

    async def _finish(
        self, entry: TransferEntry, status: TransferStatus, error: str | None = None
    ) -> None:
        transfer = entry.transfer
        if not transfer.advance(status, error):
            return
        logger.log_event(
            "dcc",
            status.name.lower(),
            level=logging.WARNING if status is TransferStatus.FAILED else logging.INFO,
            nick=transfer.peer,
            file=transfer.file_name,
            transferred=format_bytes(transfer.bytes_transferred),
            duration=format_duration(transfer.duration),
            error=error or "",
            transfer_id=transfer.id,
        )
        await self._emit(_TERMINAL_EVENTS[status], transfer)

    async def _emit(self, event: TransferEvent, transfer: Transfer) -> None:
        await self.events.emit(event, transfer.snapshot())
