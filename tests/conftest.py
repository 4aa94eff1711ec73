import os

import pytest_asyncio

# Set test-friendly defaults for constants that affect test duration
os.environ.setdefault("IRC_CONNECT_TIMEOUT", "2")
os.environ.setdefault("IRC_QUIT_TIMEOUT", "0.5")
os.environ.setdefault("DCC_ACK_TIMEOUT", "2")

from support import FakeIRCServer  # noqa: E402


@pytest_asyncio.fixture
async def irc_server():
    server = FakeIRCServer()
    await server.start()
    yield server
    await server.stop()
