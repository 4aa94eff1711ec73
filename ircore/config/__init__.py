"""Client configuration: pydantic model, loader and server bookmarks."""

from .loader import CONFIG_ENV_VAR, load_config
from .model import ClientConfig, normalize_channel_list
from .servers import ServerInfo, ServerList

__all__ = [
    "CONFIG_ENV_VAR",
    "ClientConfig",
    "ServerInfo",
    "ServerList",
    "load_config",
    "normalize_channel_list",
]
