"""Stream helpers shared by the IRC session and DCC transfers."""

from __future__ import annotations

import asyncio

__all__ = ["close_writer"]


async def close_writer(writer: asyncio.StreamWriter, timeout: float, *, abort: bool = False) -> None:
    """Close ``writer`` without waiting on a peer that has stopped reading.

    Buffered output gets ``timeout`` seconds to flush; after that, or straight
    away when ``abort`` is set, the transport is aborted and unsent data is
    discarded.
    """
    transport = writer.transport
    if abort:
        transport.abort()
    else:
        writer.close()
    try:
        await asyncio.wait_for(writer.wait_closed(), timeout=timeout)
    except TimeoutError:
        transport.abort()
    except OSError:
        pass
