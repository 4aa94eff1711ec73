"""Shared helpers for the test-suite: a loopback IRC server and polling."""

import asyncio
import time
from collections.abc import Callable


class FakeIRCServer:
    """Loopback server that records client lines and can push server lines."""

    def __init__(self) -> None:
        self.lines: list[str] = []
        self.connections = 0
        self.port = 0
        self._queue: asyncio.Queue[str] = asyncio.Queue()
        self._server: asyncio.Server | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._connected = asyncio.Event()

    async def start(self) -> None:
        self._server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        self.port = self._server.sockets[0].getsockname()[1]

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self._writer = writer
        self.connections += 1
        self._connected.set()
        try:
            while True:
                raw = await reader.readline()
                if not raw:
                    break
                line = raw.decode("utf-8").rstrip("\r\n")
                self.lines.append(line)
                self._queue.put_nowait(line)
        except OSError:
            pass
        finally:
            writer.close()

    async def wait_connected(self, timeout: float = 2.0) -> None:
        await asyncio.wait_for(self._connected.wait(), timeout)

    async def expect(self, prefix: str, timeout: float = 2.0) -> str:
        """Wait for the next client line starting with ``prefix``."""
        deadline = time.monotonic() + timeout
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise AssertionError(f"no line starting with {prefix!r}; got {self.lines}")
            try:
                line = await asyncio.wait_for(self._queue.get(), remaining)
            except TimeoutError:
                continue
            if line.startswith(prefix):
                return line

    async def send(self, line: str) -> None:
        assert self._writer is not None
        self._writer.write(f"{line}\r\n".encode())
        await self._writer.drain()

    async def send_raw(self, data: bytes) -> None:
        assert self._writer is not None
        self._writer.write(data)
        await self._writer.drain()

    def drop_client(self) -> None:
        if self._writer is not None:
            self._writer.close()

    async def stop(self) -> None:
        self.drop_client()
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


