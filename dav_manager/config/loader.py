"""
Reading and checking config.yaml.

The file is optional: a missing or empty file yields no settings. Known
keys are type-checked, unknown keys are reported and ignored.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from dav_manager.utils.paths import resolve_config_dir

DEFAULT_CONFIG_FILE = "config.yaml"

# Known configuration keys and their expected types
VALID_KEYS: dict[str, type[Any] | tuple[type[Any], ...]] = {
    # Server
    "base_url": str,
    "collection": str,
    "username": str,
    "password": str,
    "timeout": (int, float),
    # Local files
    "bucket_root": str,
    "extras_bucket": str,
    "photo_map": str,
    "source": str,
    "verify_table": str,
    # Photos
    "gravatar": bool,
    # Logging
    "verbose": bool,
    "log_dir": str,
}

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """config.yaml cannot be read, parsed or has invalid values."""


class ConfigLoader:
    """
    Loads config.yaml from the configuration directory.

    Attributes:
        config_dir: Resolved configuration directory
        config_file: File name inside config_dir

    Usage:
        loader = ConfigLoader()
        config = loader.load_and_validate()

        # Load from a specific file
        config = loader.load_from_file("/path/to/config.yaml")
    """

    def __init__(
        self, config_dir: Path | None = None, config_file: str = DEFAULT_CONFIG_FILE
    ):
        self.config_dir = resolve_config_dir(config_dir)
        self.config_file = config_file

    @property
    def config_path(self) -> Path:
        return self.config_dir / self.config_file

    def load(self) -> dict[str, Any]:
        """Load config.yaml from the configuration directory."""
        return self.load_from_file(self.config_path)

    def load_from_file(self, path: Path | str) -> dict[str, Any]:
        """
        Read a YAML mapping from ``path``; {} when the file is absent or empty.

        Raises:
            ConfigError: If the file exists but cannot be parsed
        """
        path = Path(path).expanduser()

        if not path.exists():
            logger.debug(f"Configuration file not found: {path}")
            return {}

        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigError(f"Cannot read {path}: {e}") from e
        try:
            config = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse YAML in {path}: {e}") from e

        if config is None:
            logger.debug(f"Configuration file is empty: {path}")
            return {}

        if not isinstance(config, dict):
            raise ConfigError(
                f"Configuration file must contain a YAML dictionary, "
                f"got {type(config).__name__}"
            )

        logger.debug(f"Loaded configuration from {path}")
        return config

    def validate(self, config: dict[str, Any]) -> None:
        """
        Validate the types and values of known configuration keys.

        Unknown keys are logged and ignored.

        Raises:
            ConfigError: If configuration is invalid
        """
        if not isinstance(config, dict):
            raise ConfigError(
                f"Configuration must be a dictionary, got {type(config).__name__}"
            )

        for key, value in config.items():
            expected_type = VALID_KEYS.get(key)
            if expected_type is None:
                logger.warning(f"Unknown configuration key ignored: {key}")
                continue

            # bool is an int subclass; do not accept it for numeric keys
            wrong_bool = isinstance(value, bool) and expected_type is not bool
            if wrong_bool or not isinstance(value, expected_type):
                if isinstance(expected_type, tuple):
                    type_name = " or ".join(t.__name__ for t in expected_type)
                else:
                    type_name = expected_type.__name__
                raise ConfigError(
                    f"Invalid type for '{key}': expected {type_name}, "
                    f"got {type(value).__name__}"
                )

        if "timeout" in config and config["timeout"] <= 0:
            raise ConfigError(f"timeout must be > 0, got {config['timeout']}")

        if "extras_bucket" in config and not config["extras_bucket"].strip():
            raise ConfigError("extras_bucket must not be empty")

        base_url = config.get("base_url")
        if base_url and not base_url.startswith(("http://", "https://")):
            raise ConfigError(f"base_url must be an http(s) URL, got {base_url!r}")

    def load_and_validate(self) -> dict[str, Any]:
        config = self.load()
        if config:
            self.validate(config)
        return config
