"""Read config.yaml and build a Config (env vars still win)."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from loguru import logger

from threadbot.core.config.schema import Config
from threadbot.core.errors import ConfigurationError

CONFIG_ENV = "THREADBOT_CONFIG"


def load_config(config_path: str | Path | None = None) -> Config:
    """
    Build the runtime Config.

    The YAML file is taken from ``config_path``, else ``$THREADBOT_CONFIG``,
    else ``./config.yaml`` when present. No file means defaults + env only.

    Raises
    ------
    ConfigurationError
        An explicitly named file is missing, unreadable, or not a mapping.
    """
    explicit = config_path or os.environ.get(CONFIG_ENV)
    if explicit:
        path = Path(explicit)
        if not path.is_file():
            raise ConfigurationError(f"Config file not found: {path}")
    else:
        path = Path("config.yaml")
        if not path.is_file():
            logger.debug("No config.yaml, using defaults and environment")
            return Config()

    return Config(**_read_mapping(path))


def _read_mapping(path: Path) -> dict[str, Any]:
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Cannot read config {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config {path} must be a mapping, got {type(data).__name__}")
    logger.debug(f"Loaded config from {path}")
    return data
