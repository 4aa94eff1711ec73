"""Configuration loading: JSON file plus environment overrides."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from ..errors.internal import ConfigError
from ..logs.logger import logger
from .model import ClientConfig

CONFIG_ENV_VAR = "IRCORE_CONFIG"

_TRUE_VALUES = ("true", "1", "yes", "on")


def read_config_file(path: str | os.PathLike[str]) -> dict[str, Any]:
    """Return the JSON object stored at ``path``.

    Raises:
        ConfigError: If the file is missing, unreadable or not a JSON object.
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"Configuration file not found: {path}", data={"path": str(path)}) from e
    except (OSError, ValueError) as e:
        raise ConfigError(f"Configuration file {path} could not be read: {e}", data={"path": str(path)}) from e
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration file {path} must contain a JSON object")
    return data


def apply_env_overrides(data: dict[str, Any], env: Mapping[str, str]) -> dict[str, Any]:
    merged = dict(data)
    if env.get("IRC_SERVER"):
        merged["server"] = env["IRC_SERVER"]
    if env.get("IRC_PORT"):
        try:
            merged["port"] = int(env["IRC_PORT"])
        except ValueError as e:
            raise ConfigError(f"Invalid IRC_PORT value: {env['IRC_PORT']!r}") from e
    if env.get("IRC_NICK"):
        merged["nickname"] = env["IRC_NICK"]
    if env.get("IRC_SSL"):
        merged["use_ssl"] = env["IRC_SSL"].strip().lower() in _TRUE_VALUES
    return merged


def load_config(
    path: str | os.PathLike[str] | None = None,
    env: Mapping[str, str] | None = None,
) -> ClientConfig:
    """Load and validate the client configuration.

    The file path comes from ``path`` or the ``IRCORE_CONFIG`` variable; with
    neither, only environment overrides are used.

    Raises:
        ConfigError: If the file cannot be read or the result does not validate.
    """
    environ = os.environ if env is None else env
    config_path = path or environ.get(CONFIG_ENV_VAR)
    data = read_config_file(config_path) if config_path else {}
    data = apply_env_overrides(data, environ)
    try:
        config = ClientConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(
            f"Invalid configuration: {e.error_count()} error(s)",
            data={"errors": e.errors(include_url=False)},
        ) from e
    logger.log_event(
        "config",
        "loaded",
        level=logging.DEBUG,
        path=str(Path(config_path)) if config_path else "<env>",
        server=config.server,
        nick=config.nickname,
    )
    return config
