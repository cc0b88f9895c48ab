"""Configuration loader for tensorsafe.

This module handles loading configuration from multiple sources:
1. Default values (lowest priority)
2. User config file (~/.config/tensorsafe/config.toml)
3. Project config file (./tensorsafe.toml, or an explicit path)
4. Environment variables (TENSORSAFE_* prefix)
5. Programmatic overrides (highest priority)
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Any, Optional, Union

import tomli_w

from .schema import TensorsafeConfig

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

logger = logging.getLogger(__name__)

# Default paths
USER_CONFIG_DIR = Path.home() / ".config" / "tensorsafe"
USER_CONFIG_PATH = USER_CONFIG_DIR / "config.toml"
PROJECT_CONFIG_NAME = "tensorsafe.toml"
ENV_PREFIX = "TENSORSAFE_"
SECTIONS = ("reader", "writer", "logging")


def _parse_env_value(value: str) -> Any:
    """Parse an environment variable value to appropriate Python type."""
    if value.lower() in ("true", "yes", "on"):
        return True
    if value.lower() in ("false", "no", "off"):
        return False

    if value.lower() in ("none", "null", ""):
        return None

    try:
        if "." in value:
            return float(value)
        return int(value)
    except ValueError:
        pass

    return value


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries, with override taking precedence."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _filter_none_values(data: dict[str, Any]) -> dict[str, Any]:
    """Recursively drop None values, which TOML cannot represent."""
    result = {}
    for key, value in data.items():
        if value is None:
            continue
        if isinstance(value, dict):
            filtered = _filter_none_values(value)
            if filtered:
                result[key] = filtered
        else:
            result[key] = value
    return result


class ConfigLoader:
    """Load configuration from multiple sources with priority handling."""

    def __init__(
        self,
        config_path: Optional[Union[str, Path]] = None,
        project_dir: Optional[Union[str, Path]] = None,
        user_config_path: Optional[Path] = None,
    ):
        """Initialize the configuration loader.

        Args:
            config_path: Explicit config file; replaces the project file
            project_dir: Directory searched for ``tensorsafe.toml``
                (defaults to the working directory)
            user_config_path: Optional override for user config path
        """
        self.config_path = Path(config_path) if config_path else None
        self.project_dir = Path(project_dir) if project_dir else Path.cwd()
        self.user_config_path = Path(user_config_path or USER_CONFIG_PATH)

    @property
    def project_config_path(self) -> Path:
        if self.config_path is not None:
            return self.config_path
        return self.project_dir / PROJECT_CONFIG_NAME

    def load(self) -> TensorsafeConfig:
        """Load configuration from all sources with priority handling.

        Returns:
            Merged TensorsafeConfig instance

        Raises:
            FileNotFoundError: If an explicit config file does not exist
        """
        config_dict: dict[str, Any] = {}

        if self.user_config_path.exists():
            user_data = self._load_toml(self.user_config_path)
            if user_data:
                config_dict = _deep_merge(config_dict, user_data)
                logger.debug(f"Loaded user config from {self.user_config_path}")

        project_path = self.project_config_path
        if self.config_path is not None and not project_path.exists():
            raise FileNotFoundError(f"Config file not found: {project_path}")
        if project_path.exists():
            project_data = self._load_toml(project_path)
            if project_data:
                config_dict = _deep_merge(config_dict, project_data)
                logger.debug(f"Loaded project config from {project_path}")

        env_overrides = self._load_env_vars()
        if env_overrides:
            config_dict = _deep_merge(config_dict, env_overrides)
            logger.debug("Applied environment variable overrides")

        return TensorsafeConfig.from_dict(config_dict)

    def _load_toml(self, path: Path) -> Optional[dict[str, Any]]:
        """Load a TOML configuration file.

        Returns:
            Parsed configuration dict or None if it cannot be read
        """
        try:
            with open(path, "rb") as f:
                return tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            logger.warning(f"Failed to load TOML config from {path}: {e}")
            return None

    def _load_env_vars(self) -> dict[str, Any]:
        """Load configuration from environment variables.

        Variables are prefixed with TENSORSAFE_; the next word names the
        section and the rest the key, e.g.
        TENSORSAFE_READER_MAX_HEADER_SIZE -> reader.max_header_size.
        """
        result: dict[str, Any] = {}

        for key, value in os.environ.items():
            if not key.startswith(ENV_PREFIX):
                continue

            parts = key[len(ENV_PREFIX) :].lower().split("_")
            if parts[0] not in SECTIONS or len(parts) < 2:
                logger.debug(f"Ignoring unknown environment variable {key}")
                continue

            nested = {parts[0]: {"_".join(parts[1:]): _parse_env_value(value)}}
            result = _deep_merge(result, nested)

        return result

    def save_project_config(self, config: TensorsafeConfig) -> Path:
        """Save configuration to the project config file.

        Returns:
            Path that was written
        """
        path = self.project_config_path
        path.parent.mkdir(parents=True, exist_ok=True)
        self._save_toml(path, config.to_dict())
        logger.info(f"Saved project config to {path}")
        return path

    def save_user_config(self, config: TensorsafeConfig) -> Path:
        """Save configuration to the user config file.

        Returns:
            Path that was written
        """
        self.user_config_path.parent.mkdir(parents=True, exist_ok=True)
        self._save_toml(self.user_config_path, config.to_dict())
        logger.info(f"Saved user config to {self.user_config_path}")
        return self.user_config_path

    def _save_toml(self, path: Path, data: dict[str, Any]) -> None:
        try:
            with open(path, "wb") as f:
                tomli_w.dump(_filter_none_values(data), f)
        except OSError as e:
            logger.error(f"Failed to save config to {path}: {e}")
            raise


def load_config(
    config_path: Optional[Union[str, Path]] = None,
    project_dir: Optional[Union[str, Path]] = None,
    user_config_path: Optional[Path] = None,
) -> TensorsafeConfig:
    """Load tensorsafe configuration from all sources.

    This is the main entry point for loading configuration.

    Args:
        config_path: Optional explicit config file
        project_dir: Optional directory holding ``tensorsafe.toml``
        user_config_path: Optional override for user config path

    Returns:
        Merged TensorsafeConfig instance
    """
    loader = ConfigLoader(config_path, project_dir, user_config_path)
    return loader.load()


def get_default_config() -> TensorsafeConfig:
    """Get a TensorsafeConfig with all default values."""
    return TensorsafeConfig()
