"""DCC transfer data models."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum


class TransferDirection(Enum):
    SEND = "send"
    RECEIVE = "receive"


class TransferStatus(Enum):
    PENDING = 0
    CONNECTING = 1
    IN_PROGRESS = 2
    COMPLETED = 3
    FAILED = 4
    CANCELLED = 5

    @property
    def is_terminal(self) -> bool:
        return self.value >= TransferStatus.COMPLETED.value


class DCCRequestType(Enum):
    SEND = "SEND"
    CHAT = "CHAT"
    RESUME = "RESUME"
    ACCEPT = "ACCEPT"


@dataclass(slots=True)
class DCCRequest:
    """An offer received from a peer over IRC."""

    sender: str
    target: str
    type: DCCRequestType
    file_name: str
    file_size: int
    address: str
    port: int
    token: str | None = None
    timestamp: float = field(default_factory=time.time)


@dataclass
class Transfer:
    """One file exchange with a peer.

    Mutated only by the task that owns it; consumers receive copies via
    :meth:`snapshot`.
    """

    sender: str
    receiver: str
    file_name: str
    file_size: int
    direction: TransferDirection
    file_path: str = ""
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    bytes_transferred: int = 0
    status: TransferStatus = TransferStatus.PENDING
    start_time: float = field(default_factory=time.time)
    end_time: float | None = None
    port: int = 0
    address: str | None = None
    token: str | None = None
    error_message: str | None = None

    def advance(self, status: TransferStatus, error: str | None = None) -> bool:
        """Move forward to ``status``.

        Returns ``False`` (and changes nothing) when the transfer is already
        terminal or ``status`` would move it backwards.
        """
        if self.status.is_terminal or status.value < self.status.value:
            return False
        if status.is_terminal:
            self.end_time = time.time()
            if error is not None:
                self.error_message = error
        self.status = status
        return True

    def snapshot(self) -> Transfer:
        return Transfer(
            sender=self.sender,
            receiver=self.receiver,
            file_name=self.file_name,
            file_size=self.file_size,
            direction=self.direction,
            file_path=self.file_path,
            id=self.id,
            bytes_transferred=self.bytes_transferred,
            status=self.status,
            start_time=self.start_time,
            end_time=self.end_time,
            port=self.port,
            address=self.address,
            token=self.token,
            error_message=self.error_message,
        )

    @property
    def peer(self) -> str:
        return self.receiver if self.direction is TransferDirection.SEND else self.sender

    @property
    def progress_percentage(self) -> float:
        if self.file_size <= 0:
            return 100.0 if self.status is TransferStatus.COMPLETED else 0.0
        return self.bytes_transferred / self.file_size * 100

    @property
    def duration(self) -> float:
        end = self.end_time if self.end_time is not None else time.time()
        return max(0.0, end - self.start_time)

    @property
    def transfer_rate(self) -> float:
        """Average bytes per second since the transfer started."""
        duration = self.duration
        return self.bytes_transferred / duration if duration > 0 else 0.0

    @property
    def remaining_bytes(self) -> int:
        return max(0, self.file_size - self.bytes_transferred)

    @property
    def estimated_time_remaining(self) -> float | None:
        rate = self.transfer_rate
        return self.remaining_bytes / rate if rate > 0 else None
