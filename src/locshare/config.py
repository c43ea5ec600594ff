"""Configuration management for locshare.

Handles loading configuration from TOML files, environment variables,
and command-line options with proper precedence.
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from locshare.models.shortlink import MIN_CODE_LENGTH


DEFAULT_CONFIG_PATH = Path.home() / ".config" / "locshare" / "config.toml"
LOCAL_CONFIG_NAME = ".locshare.toml"
DEFAULT_DATA_DIR = Path("./data")


@dataclass
class DataConfig:
    """Data storage configuration."""

    directory: Path = field(default_factory=lambda: DEFAULT_DATA_DIR)


@dataclass
class TrackingConfig:
    """Producer-side tracking configuration."""

    interval: float = 10.0
    name: str = ""


@dataclass
class ViewerConfig:
    """Viewer and link URL configuration."""

    base_url: str = "http://127.0.0.1:8080"
    refresh_interval: float = 5.0


@dataclass
class LinksConfig:
    """Short link configuration."""

    code_length: int = 6


@dataclass
class Config:
    """Main configuration container."""

    data: DataConfig = field(default_factory=DataConfig)
    tracking: TrackingConfig = field(default_factory=TrackingConfig)
    viewer: ViewerConfig = field(default_factory=ViewerConfig)
    links: LinksConfig = field(default_factory=LinksConfig)
    config_path: Path | None = None


def _get_env_value(key: str, default: str = "") -> str:
    """Get environment variable value."""
    return os.environ.get(key, default)


def _find_config_path() -> Path:
    """Locate the configuration file when none was given explicitly."""
    if env_config := _get_env_value("LOCSHARE_CONFIG"):
        return Path(env_config)
    local = Path(LOCAL_CONFIG_NAME)
    if local.exists():
        return local
    return DEFAULT_CONFIG_PATH


def load_config(config_path: Path | None = None) -> Config:
    """Load configuration from file and environment variables.

    Configuration is loaded with the following precedence (highest to lowest):
    1. Environment variables
    2. Configuration file
    3. Default values

    Args:
        config_path: Path to configuration file. If None, uses $LOCSHARE_CONFIG,
            then ./.locshare.toml, then the default location.

    Returns:
        Populated Config object.
    """
    config = Config()

    if config_path is None:
        config_path = _find_config_path()

    config.config_path = config_path

    if config_path.exists():
        config = _load_from_file(config_path, config)

    config = _apply_env_overrides(config)

    return config


def _load_from_file(path: Path, config: Config) -> Config:
    """Load configuration from TOML file.

    Args:
        path: Path to TOML file.
        config: Existing config to update.

    Returns:
        Updated Config object.
    """
    with open(path, "rb") as f:
        data = tomllib.load(f)

    if "data" in data:
        data_section = data["data"]
        if "directory" in data_section:
            config.data.directory = Path(data_section["directory"])

    if "tracking" in data:
        tracking = data["tracking"]
        config.tracking.interval = float(tracking.get("interval", config.tracking.interval))
        config.tracking.name = tracking.get("name", config.tracking.name)

    if "viewer" in data:
        viewer = data["viewer"]
        config.viewer.base_url = viewer.get("base_url", config.viewer.base_url)
        config.viewer.refresh_interval = float(
            viewer.get("refresh_interval", config.viewer.refresh_interval)
        )

    if "links" in data:
        links = data["links"]
        code_length = int(links.get("code_length", config.links.code_length))
        if code_length < MIN_CODE_LENGTH:
            raise ValueError(
                f"{path}: links.code_length must be at least {MIN_CODE_LENGTH}, got {code_length}"
            )
        config.links.code_length = code_length

    return config


def _apply_env_overrides(config: Config) -> Config:
    """Apply environment variable overrides to configuration.

    Args:
        config: Config to update.

    Returns:
        Updated Config object.
    """
    if data_dir := _get_env_value("LOCSHARE_DATA_DIR"):
        config.data.directory = Path(data_dir)

    if base_url := _get_env_value("LOCSHARE_BASE_URL"):
        config.viewer.base_url = base_url

    if interval := _get_env_value("LOCSHARE_INTERVAL"):
        try:
            config.tracking.interval = float(interval)
        except ValueError as e:
            raise ValueError(f"LOCSHARE_INTERVAL must be a number, got {interval!r}") from e

    return config


def ensure_data_dir(config: Config) -> Path:
    """Ensure data directory exists and return its path.

    Args:
        config: Configuration with data directory setting.

    Returns:
        Path to data directory.
    """
    data_dir = config.data.directory.resolve()
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir
