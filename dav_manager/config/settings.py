"""
Resolved runtime settings for dav-manager.

Settings come from, in decreasing priority: command-line options, the
environment (including ``.env`` files), the YAML configuration file and
built-in defaults.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from dav_manager.buckets import NEUTRAL_BUCKET
from dav_manager.config.loader import ConfigError

DEFAULT_BASE_URL = "http://localhost:5232/"
DEFAULT_BUCKET_ROOT = "~/un-contacts"
DEFAULT_PHOTO_MAP = "photo-map.json"
DEFAULT_VERIFY_TABLE = "all-contacts-synced.md"
DEFAULT_TIMEOUT = 30.0

# Environment variable -> setting name
ENV_VARS = {
    "RADICALE_BASE_URL": "base_url",
    "RADICALE_COLLECTION": "collection",
    "RADICALE_USER": "username",
    "RADICALE_PASS": "password",
    "UN_CONTACTS": "bucket_root",
    "PHOTO_MAP": "photo_map",
    "ENABLE_GRAVATAR": "gravatar",
}

logger = logging.getLogger(__name__)


def load_env_files(paths: Iterable[Path]) -> list[Path]:
    """
    Load ``.env`` files into the process environment.

    Variables that are already set are never overridden, so the first
    file that defines a variable wins.

    Returns:
        The files that were found and loaded
    """
    loaded: list[Path] = []
    for path in paths:
        if path.is_file():
            load_dotenv(path, override=False)
            loaded.append(path)
            logger.debug(f"Loaded environment from {path}")
    return loaded


def env_flag(value: str) -> bool:
    """Interpret an environment flag: anything but "0"/"false"/"no" is on."""
    return value.strip().lower() not in ("0", "false", "no", "off", "")


@dataclass
class DavConfig:
    """
    Settings for one dav-manager invocation.

    Attributes:
        base_url: CardDAV server root
        collection: Address-book path below the server root
        username: Basic auth user
        password: Basic auth password
        timeout: HTTP timeout in seconds
        bucket_root: Folder holding the bucket directories
        extras_bucket: Bucket for contacts missing from the desired table
        photo_map: JSON file mapping names to photo paths
        gravatar: Whether Gravatar lookups are allowed
        source: Default desired table for ``sync``
        verify_table: Where ``sync`` writes the post-sync table
        log_dir: Directory for log files (None = config dir/logs)
    """

    base_url: str = DEFAULT_BASE_URL
    collection: str = ""
    username: str = ""
    password: str = field(default="", repr=False)
    timeout: float = DEFAULT_TIMEOUT
    bucket_root: Path = field(
        default_factory=lambda: Path(DEFAULT_BUCKET_ROOT).expanduser()
    )
    extras_bucket: str = NEUTRAL_BUCKET
    photo_map: Path = field(default_factory=lambda: Path(DEFAULT_PHOTO_MAP))
    gravatar: bool = False
    source: Path | None = None
    verify_table: Path = field(default_factory=lambda: Path(DEFAULT_VERIFY_TABLE))
    log_dir: Path | None = None

    @classmethod
    def from_sources(
        cls,
        file_config: Mapping[str, Any] | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> DavConfig:
        """
        Build settings from a YAML mapping and an environment mapping.

        Environment values win over file values; empty environment values
        count as unset.

        Args:
            file_config: Validated values from config.yaml
            environ: Environment variables (normally ``os.environ``)
        """
        values: dict[str, Any] = dict(file_config or {})
        for var, key in ENV_VARS.items():
            value = (environ or {}).get(var, "")
            if not value.strip():
                continue
            values[key] = env_flag(value) if key == "gravatar" else value.strip()

        config = cls()
        for key in ("base_url", "collection", "username", "password", "extras_bucket"):
            if values.get(key):
                setattr(config, key, str(values[key]))
        for key in ("bucket_root", "photo_map", "verify_table", "source", "log_dir"):
            if values.get(key):
                setattr(config, key, Path(str(values[key])).expanduser())
        if "timeout" in values:
            config.timeout = float(values["timeout"])
        if "gravatar" in values:
            config.gravatar = bool(values["gravatar"])
        return config

    def with_overrides(self, **overrides: Any) -> DavConfig:
        """Return a copy with the given non-None values replaced."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    def require_credentials(self) -> None:
        """
        Check that the server can be contacted.

        Raises:
            ConfigError: If the user, password or collection is missing
        """
        missing = []
        if not self.username:
            missing.append("RADICALE_USER")
        if not self.password:
            missing.append("RADICALE_PASS")
        if not self.collection.strip("/"):
            missing.append("RADICALE_COLLECTION")
        if missing:
            raise ConfigError(f"{'/'.join(missing)} required")
