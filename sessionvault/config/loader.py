"""Configuration loading utilities."""

from __future__ import annotations

import json
from pathlib import Path

from pydantic import ValidationError

from sessionvault.config.schema import Config
from sessionvault.logging import get_logger
from sessionvault.utils.helpers import ensure_dir

logger = get_logger(__name__)


def get_config_path() -> Path:
    """Get the default configuration file path."""
    return Path.home() / ".sessionvault" / "config.json"


def load_config(config_path: Path | None = None) -> Config:
    """
    Load configuration from file or create default.

    Args:
        config_path: Optional path to config file. Uses default if not provided.

    Returns:
        Loaded configuration object. Unreadable or invalid files fall back to defaults.
    """
    path = config_path or get_config_path()

    if path.exists():
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            return Config.model_validate(data)
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            logger.warning("Failed to load config, using defaults", path=str(path), error=str(e))

    return Config()


def save_config(config: Config, config_path: Path | None = None) -> None:
    """Save configuration to file using camelCase keys."""
    path = config_path or get_config_path()
    ensure_dir(path.parent)

    data = config.model_dump(by_alias=True, exclude_none=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
