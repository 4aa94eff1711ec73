"""
Configuration constants for the ircore client.

This module contains the tunables used throughout the package. Each constant
can be overridden by setting an environment variable with the same name.
"""

import os


def _get_env_int(name: str, default: int) -> int:
    """Retrieve an integer value from an environment variable.

    Args:
        name: The name of the environment variable to read.
        default: The default integer value to return if parsing fails.

    Returns:
        The parsed integer value from the environment, or the default if unavailable.
    """
    value = os.getenv(name)
    if value is not None:
        try:
            return int(value)
        except ValueError:
            print(
                f"Warning: Invalid integer value for {name}='{value}', using default {default}"
            )
    return default


def _get_env_float(name: str, default: float) -> float:
    """Retrieve a float value from an environment variable.

    Args:
        name: The name of the environment variable to read.
        default: The default float value to return if parsing fails.

    Returns:
        The parsed float value from the environment, or the default if unavailable.
    """
    value = os.getenv(name)
    if value is not None:
        try:
            return float(value)
        except ValueError:
            print(
                f"Warning: Invalid float value for {name}='{value}', using default {default}"
            )
    return default


CLIENT_NAME = "ircore"
CLIENT_VERSION = "1.0.0"
DEFAULT_QUIT_MESSAGE = f"{CLIENT_NAME} {CLIENT_VERSION}"

# IRC connection
DEFAULT_IRC_PORT = 6667
DEFAULT_IDENT_PORT = 113
IRC_CONNECT_TIMEOUT = _get_env_float("IRC_CONNECT_TIMEOUT", 10.0)
IRC_QUIT_TIMEOUT = _get_env_float(
    "IRC_QUIT_TIMEOUT", 2.0
)  # Courtesy QUIT must never stall teardown
IRC_KEEPALIVE_INTERVAL = _get_env_float(
    "IRC_KEEPALIVE_INTERVAL", 60.0
)  # Seconds of server silence before we send our own PING
IRC_STREAM_LIMIT = _get_env_int(
    "IRC_STREAM_LIMIT", 64 * 1024
)  # StreamReader line buffer limit

# Ident responder
IDENT_READ_TIMEOUT = _get_env_float("IDENT_READ_TIMEOUT", 10.0)

# Reply correlation
REPLY_GROUP_TIMEOUT = _get_env_float(
    "REPLY_GROUP_TIMEOUT", 5.0
)  # Idle seconds before a pending reply group is evicted

# DCC transfers
DCC_CHUNK_SIZE = _get_env_int("DCC_CHUNK_SIZE", 8192)
DCC_ACCEPT_TIMEOUT = _get_env_float(
    "DCC_ACCEPT_TIMEOUT", 300.0
)  # How long an outbound offer waits for the peer to connect
DCC_CONNECT_TIMEOUT = _get_env_float("DCC_CONNECT_TIMEOUT", 30.0)
DCC_ACK_TIMEOUT = _get_env_float(
    "DCC_ACK_TIMEOUT", 10.0
)  # Wait for the receiver's final acknowledgement
DCC_CLOSE_TIMEOUT = _get_env_float("DCC_CLOSE_TIMEOUT", 2.0)
DCC_BIND_HOST = os.getenv("DCC_BIND_HOST", "0.0.0.0")
DCC_DOWNLOADS_SUBDIR = "ircore"

# Connect retry policy used by the console front-end
CONNECT_RETRY_ATTEMPTS = _get_env_int("CONNECT_RETRY_ATTEMPTS", 3)
CONNECT_RETRY_MAX_WAIT = _get_env_float("CONNECT_RETRY_MAX_WAIT", 30.0)
