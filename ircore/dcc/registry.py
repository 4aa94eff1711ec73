"""Registry of transfers and the resources each one owns."""

from __future__ import annotations

import asyncio
import socket
import threading
from dataclasses import dataclass, field

from .models import Transfer


@dataclass
class TransferEntry:
    transfer: Transfer
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    task: asyncio.Task[None] | None = None
    listener: socket.socket | None = None

    @property
    def cancel_requested(self) -> bool:
        return self.cancel_event.is_set()

    def close_listener(self) -> None:
        listener, self.listener = self.listener, None
        if listener is not None:
            listener.close()


class TransferRegistry:
    """Thread-safe id -> :class:`TransferEntry` mapping.

    The lock only guards the dictionary; it is never held while a transfer
    performs I/O.
    """

    def __init__(self) -> None:
        self._entries: dict[str, TransferEntry] = {}
        self._lock = threading.Lock()

    def add(self, transfer: Transfer) -> TransferEntry:
        entry = TransferEntry(transfer)
        with self._lock:
            if transfer.id in self._entries:
                raise KeyError(f"duplicate transfer id {transfer.id}")
            self._entries[transfer.id] = entry
        return entry

    def get(self, transfer_id: str) -> TransferEntry | None:
        with self._lock:
            return self._entries.get(transfer_id)

    def remove(self, transfer_id: str) -> TransferEntry | None:
        with self._lock:
            return self._entries.pop(transfer_id, None)

    def entries(self) -> list[TransferEntry]:
        with self._lock:
            return list(self._entries.values())

    def __contains__(self, transfer_id: object) -> bool:
        with self._lock:
            return transfer_id in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
