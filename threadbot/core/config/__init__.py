"""Configuration module."""

from threadbot.core.config.loader import load_config
from threadbot.core.config.schema import Config

__all__ = ["Config", "load_config"]
