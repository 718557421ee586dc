"""Configuration module for sessionvault."""

from sessionvault.config.loader import get_config_path, load_config, save_config
from sessionvault.config.schema import Config

__all__ = ["Config", "get_config_path", "load_config", "save_config"]
