"""Utility functions package.

Exposed functions:
    format_duration: Formats time durations into human-readable strings.
    format_bytes: Formats byte counts with binary units.
    close_writer: Closes a stream writer without stalling on its peer.
"""

from .helpers import format_bytes, format_duration
from .streams import close_writer

__all__ = ["format_duration", "format_bytes", "close_writer"]
