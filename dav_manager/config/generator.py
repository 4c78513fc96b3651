"""
Configuration file generator for dav-manager.

Writes a commented config.yaml template documenting every option.
"""

from __future__ import annotations

import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def generate_default_config() -> str:
    """
    Generate the default YAML configuration with all options documented.

    Every option is commented out so the built-in defaults apply until
    the user edits the file.
    """
    return """# dav-manager configuration
# ========================
#
# Save as ~/.dav-manager/config.yaml (or $DAV_MANAGER_CONFIG_DIR/config.yaml).
# Environment variables (also read from .env files) override these values,
# and command-line options override both.

# CardDAV Server
# --------------

# Server root URL (env: RADICALE_BASE_URL)
# Default: http://localhost:5232/
# base_url: https://dav.example.com/

# Address-book collection below the server root (env: RADICALE_COLLECTION)
# collection: /jane/contacts/

# Basic auth credentials (env: RADICALE_USER, RADICALE_PASS)
# Prefer the environment or a .env file for the password.
# username: jane
# password: secret

# HTTP timeout in seconds
# Default: 30
# timeout: 30


# Local Files
# -----------

# Folder holding one directory per bucket (env: UN_CONTACTS)
# Default: ~/un-contacts
# bucket_root: ~/un-contacts

# Bucket that contacts missing from the desired table are archived to
# Default: neutral
# extras_bucket: neutral

# Desired contacts table used by "dav contacts sync" when --source is omitted
# source: ~/notes/contacts.md

# Table written after every sync
# Default: all-contacts-synced.md
# verify_table: all-contacts-synced.md


# Photos
# ------

# JSON object mapping contact names to image files (env: PHOTO_MAP)
# Default: photo-map.json
# photo_map: ~/photos/photo-map.json

# Fall back to Gravatar for contacts with an email (env: ENABLE_GRAVATAR)
# Default: false
# gravatar: false


# Logging
# -------

# Verbose console output
# Default: false
# verbose: false

# Directory for dated log files
# Default: ~/.dav-manager/logs
# log_dir: ~/.dav-manager/logs
"""


def save_config_file(
    config_path: Path, overwrite: bool = False
) -> tuple[bool, str | None]:
    """
    Save the default configuration file to the given path.

    Creates parent directories and restricts permissions to the owner,
    since the file may end up holding a password.

    Returns:
        (True, None) on success, (False, error_message) on failure
    """
    config_path = config_path.expanduser().resolve()

    if config_path.exists() and not overwrite:
        return (
            False,
            f"Configuration file already exists: {config_path}\n"
            "Use --force to overwrite.",
        )

    try:
        config_path.parent.mkdir(parents=True, mode=0o700, exist_ok=True)
        config_path.write_text(generate_default_config(), encoding="utf-8")
        config_path.chmod(0o600)
    except OSError as e:
        error_msg = f"Failed to create configuration file: {e}"
        logger.error(error_msg)
        return (False, error_msg)

    logger.info(f"Created configuration file: {config_path}")
    return (True, None)
