"""General formatting helpers shared by logging and the console front-end."""

from __future__ import annotations

__all__ = ["format_duration", "format_bytes"]

_BYTE_UNITS = ("B", "KB", "MB", "GB", "TB")


def format_duration(total_seconds: int | float | None) -> str:
    """Return a human-friendly Hh Mm Ss string for a duration in seconds.

    Examples:
      65 -> "1m 5s"
      3605 -> "1h 0m 5s"
      59 -> "59s"
    """
    if total_seconds is None:
        return "unknown"
    seconds = int(total_seconds)
    if seconds < 60:
        return f"{seconds}s"
    minutes, sec = divmod(seconds, 60)
    if minutes < 60:
        return f"{minutes}m {sec}s"
    hours, minutes = divmod(minutes, 60)
    if hours < 24:
        return f"{hours}h {minutes}m {sec}s"
    days, hours = divmod(hours, 24)
    return f"{days}d {hours}h {minutes}m {sec}s"


def format_bytes(size: int | float) -> str:
    """Return ``size`` scaled to the largest unit below 1024.

    Examples:
      512 -> "512 B"
      1536 -> "1.5 KB"
    """
    value = float(size)
    for unit in _BYTE_UNITS:
        if abs(value) < 1024 or unit == _BYTE_UNITS[-1]:
            if unit == "B":
                return f"{int(value)} B"
            return f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} {_BYTE_UNITS[-1]}"
