"""
Tests for closing stream writers
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from ircore.utils import close_writer


class TestCloseWriter:
    """Test orderly and abortive closes"""

    @pytest.mark.asyncio
    async def test_orderly_close(self):
        writer = MagicMock()
        writer.wait_closed = AsyncMock()
        await close_writer(writer, 1.0)
        writer.close.assert_called_once()
        writer.transport.abort.assert_not_called()

    @pytest.mark.asyncio
    async def test_stalled_close_is_aborted(self):
        async def stall():
            await asyncio.sleep(10)

        writer = MagicMock()
        writer.wait_closed = stall
        await asyncio.wait_for(close_writer(writer, 0.05), 2)
        writer.close.assert_called_once()
        writer.transport.abort.assert_called_once()

    @pytest.mark.asyncio
    async def test_abort_skips_orderly_close(self):
        writer = MagicMock()
        writer.wait_closed = AsyncMock()
        await close_writer(writer, 1.0, abort=True)
        writer.close.assert_not_called()
        writer.transport.abort.assert_called_once()

    @pytest.mark.asyncio
    async def test_reset_during_close_is_ignored(self):
        writer = MagicMock()
        writer.wait_closed = AsyncMock(side_effect=ConnectionResetError("reset"))
        await close_writer(writer, 1.0)
        writer.transport.abort.assert_not_called()
