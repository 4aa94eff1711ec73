"""Error hierarchy and error handling helpers."""

from .handling import log_error, retry_async  # noqa: F401
from .internal import (  # noqa: F401
    CommandUsageError,
    ConfigError,
    IRCoreError,
    NetworkError,
    ParsingError,
    TransferError,
)

__all__ = [
    "IRCoreError",
    "NetworkError",
    "ParsingError",
    "CommandUsageError",
    "TransferError",
    "ConfigError",
    "log_error",
    "retry_async",
]
