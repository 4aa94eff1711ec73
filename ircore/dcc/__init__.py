"""DCC file transfers: offer parsing, transfer state and the transfer service."""

from .models import (
    DCCRequest,
    DCCRequestType,
    Transfer,
    TransferDirection,
    TransferStatus,
)
from .protocol import build_dcc_send, parse_dcc_request
from .service import DCCService, TransferEvent

__all__ = [
    "DCCRequest",
    "DCCRequestType",
    "DCCService",
    "Transfer",
    "TransferDirection",
    "TransferEvent",
    "TransferStatus",
    "build_dcc_send",
    "parse_dcc_request",
]
